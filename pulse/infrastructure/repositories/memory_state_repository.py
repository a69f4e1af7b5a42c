"""
In-memory implementation of the State Repository.
Single process, single writer: callers serialize access on the event loop.
"""

from typing import Any, Dict, List, Optional

import structlog

from pulse.core.exceptions import DuplicateCommentError, ProposalNotFoundError
from pulse.domain.models.base import generate_id, utcnow
from pulse.domain.models.proposal import Comment, Proposal, ProposalStatus, Vote
from pulse.domain.models.user import User
from pulse.domain.repositories.state_repository import StateRepository
from pulse.domain.schemas.messages import InitialDataPayload, ProposalCreate
from pulse.infrastructure.connection_registry import ConnectionRegistry

logger = structlog.get_logger(__name__)


class InMemoryStateRepository(StateRepository):
    """Authoritative proposal and user state, plus the connection registry."""

    def __init__(self, registry: Optional[ConnectionRegistry] = None):
        self.registry = ConnectionRegistry() if registry is None else registry
        # Insertion order is join order
        self._users: Dict[str, User] = {}
        # Most recent first
        self._proposals: List[Proposal] = []
        self._proposals_by_id: Dict[str, Proposal] = {}

    # --- Reads ---

    def get_users(self) -> List[User]:
        return list(self._users.values())

    def get_user(self, user_id: str) -> Optional[User]:
        return self._users.get(user_id)

    def get_proposals(self) -> List[Proposal]:
        return list(self._proposals)

    def get_proposal(self, proposal_id: str) -> Optional[Proposal]:
        return self._proposals_by_id.get(proposal_id)

    def snapshot(self) -> InitialDataPayload:
        return InitialDataPayload(proposals=self.get_proposals(), users=self.get_users())

    def _require_proposal(self, proposal_id: str) -> Proposal:
        proposal = self._proposals_by_id.get(proposal_id)
        if proposal is None:
            raise ProposalNotFoundError(proposal_id)
        return proposal

    # --- Users ---

    def add_user(self, user_id: str) -> User:
        now = utcnow()
        existing = self._users.get(user_id)
        if existing is not None:
            existing.last_active = now
            return existing

        user = User(
            id=user_id,
            joined_at=now,
            last_active=now,
            is_first_user=not self._users,
        )
        self._users[user_id] = user
        logger.info("User added", user_id=user_id, is_first_user=user.is_first_user)
        return user

    def remove_user(self, connection: Any) -> Optional[User]:
        user_id = self.registry.deregister(connection)
        if user_id is None:
            return None

        user = self._users.pop(user_id, None)
        if user is not None:
            self._reassign_first_user()
            logger.info("User removed", user_id=user_id, remaining=len(self._users))
        return user

    def _reassign_first_user(self) -> None:
        """Flag the earliest-joined remaining user as first user."""
        for index, user in enumerate(self._users.values()):
            user.is_first_user = index == 0

    # --- Proposals ---

    def add_proposal(self, fields: ProposalCreate) -> Proposal:
        proposal = Proposal(
            id=generate_id("proposal"),
            title=fields.title,
            description=fields.description,
            creator_id=fields.creator_id,
            treasury_phone=fields.treasury_phone,
            status=ProposalStatus.PENDING,
            created_at=utcnow(),
            updated_at=None,
        )
        self._proposals.insert(0, proposal)
        self._proposals_by_id[proposal.id] = proposal
        logger.info("Proposal created", proposal_id=proposal.id, creator_id=proposal.creator_id)
        return proposal

    def add_comment(self, proposal_id: str, user_id: str, content: str) -> Comment:
        proposal = self._require_proposal(proposal_id)
        if proposal.has_commented(user_id):
            raise DuplicateCommentError(proposal_id, user_id)

        comment = Comment(
            id=generate_id("comment"),
            user_id=user_id,
            content=content,
            created_at=utcnow(),
            updated_at=None,
            sentiment=None,
        )
        proposal.comments.append(comment)
        return comment

    def add_vote(self, proposal_id: str, user_id: str, in_favor: bool) -> Vote:
        proposal = self._require_proposal(proposal_id)

        vote = Vote(user_id=user_id, in_favor=in_favor)
        proposal.votes = [v for v in proposal.votes if v.user_id != user_id] + [vote]
        return vote

    def update_status(self, proposal_id: str, status: ProposalStatus) -> Proposal:
        proposal = self._require_proposal(proposal_id)

        previous = proposal.status
        proposal.status = status
        proposal.updated_at = utcnow()
        logger.info(
            "Proposal status updated",
            proposal_id=proposal_id,
            previous=previous.value,
            status=proposal.status.value,
        )
        return proposal
