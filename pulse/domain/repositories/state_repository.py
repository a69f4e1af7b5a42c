"""
Shared State Repository Interface.
Defines the mutation and read contract for the authoritative proposal/user state.
"""

from typing import Any, List, Optional, Protocol, Set

from pulse.domain.models.proposal import Comment, Proposal, ProposalStatus, Vote
from pulse.domain.models.user import User
from pulse.domain.schemas.messages import InitialDataPayload, ProposalCreate


class ConnectionIndex(Protocol):
    """Lookup between client identifiers and their live connections."""

    def register(self, user_id: str, connection: Any) -> Optional[str]:
        ...

    def deregister(self, connection: Any) -> Optional[str]:
        ...

    def mute(self, user_id: str) -> Optional[Any]:
        ...

    def all_connections(self) -> Set[Any]:
        ...

    def connection_for(self, user_id: str) -> Optional[Any]:
        ...

    def user_id_for(self, connection: Any) -> Optional[str]:
        ...

    def __len__(self) -> int:
        ...


class StateRepository(Protocol):
    """Interface for the shared state store.

    Every mutation is synchronous and either completes or raises an
    ``AppError`` subclass without touching state.
    """

    registry: ConnectionIndex

    def get_users(self) -> List[User]:
        """List users in join order."""
        ...

    def get_user(self, user_id: str) -> Optional[User]:
        ...

    def get_proposals(self) -> List[Proposal]:
        """List proposals, most recent first."""
        ...

    def get_proposal(self, proposal_id: str) -> Optional[Proposal]:
        ...

    def snapshot(self) -> InitialDataPayload:
        """Full proposal and user collections for a newly registered client."""
        ...

    def add_user(self, user_id: str) -> User:
        """Create a user, or refresh ``last_active`` of an existing one."""
        ...

    def add_proposal(self, fields: ProposalCreate) -> Proposal:
        """Create a pending proposal at the head of the listing."""
        ...

    def add_comment(self, proposal_id: str, user_id: str, content: str) -> Comment:
        """Append a comment. One comment per user per proposal."""
        ...

    def add_vote(self, proposal_id: str, user_id: str, in_favor: bool) -> Vote:
        """Cast a vote, replacing the user's previous vote on the proposal."""
        ...

    def update_status(self, proposal_id: str, status: ProposalStatus) -> Proposal:
        """Set the proposal status and stamp ``updated_at``."""
        ...

    def remove_user(self, connection: Any) -> Optional[User]:
        """Drop the user owning ``connection`` and its registry entries."""
        ...
