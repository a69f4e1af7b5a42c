"""Proposal domain model and the children it owns (comments, votes, transactions)."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import Field

from pulse.domain.models.base import CamelModel


class ProposalStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    REJECTED = "rejected"


class Comment(CamelModel):
    id: str
    user_id: str
    content: str
    created_at: datetime
    updated_at: Optional[datetime] = None
    sentiment: Optional[bool] = None


class Vote(CamelModel):
    user_id: str
    in_favor: bool


class Transaction(CamelModel):
    """Treasury transaction: populated externally, read-only here."""

    id: str
    amount: float
    confirmations: int
    label: str
    created_at: datetime


class Proposal(CamelModel):
    id: str
    title: str
    description: str
    creator_id: str
    treasury_phone: str
    status: ProposalStatus = ProposalStatus.PENDING
    created_at: datetime
    updated_at: Optional[datetime] = None
    comments: List[Comment] = Field(default_factory=list)
    votes: List[Vote] = Field(default_factory=list)
    transactions: List[Transaction] = Field(default_factory=list)

    def has_commented(self, user_id: str) -> bool:
        return any(comment.user_id == user_id for comment in self.comments)

    def vote_by(self, user_id: str) -> Optional[Vote]:
        return next((vote for vote in self.votes if vote.user_id == user_id), None)

    def __repr__(self):
        return f"<Proposal {self.id} - {self.title} [{self.status.value}]>"
