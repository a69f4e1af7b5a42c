"""Local replica: a client's copy of the shared state, driven by server envelopes."""

from typing import Dict, List, Optional

import structlog

from pulse.domain.models.proposal import Proposal
from pulse.domain.models.user import User
from pulse.domain.schemas.messages import (
    ErrorMessage,
    InitialData,
    NewComment,
    NewProposal,
    NewUser,
    NewVote,
    OutboundMessage,
    ProposalStatusChanged,
    UserRegistered,
    UsersUpdated,
)

logger = structlog.get_logger(__name__)


class LocalReplica:
    def __init__(self) -> None:
        self.proposals: List[Proposal] = []
        self.users: List[User] = []
        self.current_user: Optional[User] = None
        self.last_error: Optional[str] = None

    def proposal(self, proposal_id: str) -> Optional[Proposal]:
        return next((p for p in self.proposals if p.id == proposal_id), None)

    def users_by_id(self) -> Dict[str, User]:
        return {user.id: user for user in self.users}

    def _upsert_user(self, user: User) -> None:
        if any(u.id == user.id for u in self.users):
            self.users = [user if u.id == user.id else u for u in self.users]
        else:
            self.users.append(user)

    def apply(self, message: OutboundMessage) -> None:
        match message:
            case UserRegistered(payload=user):
                self.current_user = user
            case InitialData(payload=data):
                self.proposals = list(data.proposals)
                self.users = list(data.users)
            case NewUser(payload=user):
                self._upsert_user(user)
            case NewProposal(payload=proposal):
                if self.proposal(proposal.id) is None:
                    self.proposals.insert(0, proposal)
            case NewComment(payload=payload):
                proposal = self.proposal(payload.proposal_id)
                if proposal is not None:
                    proposal.comments.append(payload.comment)
            case NewVote(payload=payload):
                proposal = self.proposal(payload.proposal_id)
                if proposal is not None:
                    proposal.votes = [
                        v for v in proposal.votes if v.user_id != payload.vote.user_id
                    ] + [payload.vote]
            case ProposalStatusChanged(payload=payload):
                proposal = self.proposal(payload.proposal_id)
                if proposal is not None:
                    proposal.status = payload.status
                    proposal.updated_at = payload.updated_at
            case UsersUpdated(payload=users):
                self.users = list(users)
            case ErrorMessage(payload=payload):
                self.last_error = payload.message
                logger.warning("Server rejected request", message=payload.message, code=payload.code)

        if self.current_user is not None:
            self.current_user = self.users_by_id().get(self.current_user.id, self.current_user)
