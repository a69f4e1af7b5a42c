"""Message router: parses inbound envelopes and dispatches them to state mutations."""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, assert_never

import structlog

from pulse.application.services.broadcast_service import BroadcastService
from pulse.core.exceptions import AppError
from pulse.domain.repositories.state_repository import StateRepository
from pulse.domain.schemas.messages import (
    AddComment,
    AddProposal,
    AddVote,
    ErrorMessage,
    ErrorPayload,
    InboundMessage,
    InitialData,
    NewComment,
    NewCommentPayload,
    NewProposal,
    NewUser,
    NewVote,
    NewVotePayload,
    ProposalStatusChanged,
    RegisterUser,
    StatusChangedPayload,
    UpdateProposalStatus,
    UserDisconnect,
    UserRegistered,
    UsersUpdated,
    parse_inbound,
)

logger = structlog.get_logger(__name__)


class ConnectionState(str, Enum):
    CONNECTED = "connected"
    REGISTERED = "registered"
    CLOSED = "closed"


@dataclass(eq=False)
class ConnectionSession:
    """Per-connection bookkeeping. The state is informational, not enforced."""

    connection: Any
    connection_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    state: ConnectionState = ConnectionState.CONNECTED
    user_id: Optional[str] = None


def error_message(message: str, code: Optional[str] = None) -> ErrorMessage:
    return ErrorMessage(payload=ErrorPayload(message=message, code=code))


class MessageRouter:
    def __init__(self, store: StateRepository, broadcaster: BroadcastService):
        self.store = store
        self.broadcaster = broadcaster

    async def handle(self, session: ConnectionSession, raw: str) -> None:
        """Process one inbound frame. Never raises."""
        try:
            message = parse_inbound(raw)
        except AppError as e:
            logger.warning("Rejected inbound frame", reason=e.message, details=e.details)
            await self.broadcaster.send_to_connection(session.connection, error_message(e.message))
            return

        logger.debug("Received message", type=message.type)
        try:
            await self.dispatch(session, message)
        except AppError as e:
            logger.info("Mutation rejected", type=message.type, code=e.code, details=e.details)
            await self.broadcaster.send_to_connection(session.connection, error_message(e.message, e.code))
        except Exception:
            logger.exception("Unhandled error while dispatching", type=message.type)
            await self.broadcaster.send_to_connection(
                session.connection, error_message("Internal server error", "InternalServerError")
            )

    async def dispatch(self, session: ConnectionSession, message: InboundMessage) -> None:
        match message:
            case RegisterUser(payload=payload):
                await self._register_user(session, payload.user_id)
            case AddProposal(payload=payload):
                proposal = self.store.add_proposal(payload)
                await self.broadcaster.broadcast(NewProposal(payload=proposal))
            case AddComment(payload=payload):
                comment = self.store.add_comment(payload.proposal_id, payload.user_id, payload.content)
                await self.broadcaster.broadcast(
                    NewComment(payload=NewCommentPayload(proposal_id=payload.proposal_id, comment=comment))
                )
            case AddVote(payload=payload):
                vote = self.store.add_vote(payload.proposal_id, payload.user_id, payload.in_favor)
                await self.broadcaster.broadcast(
                    NewVote(payload=NewVotePayload(proposal_id=payload.proposal_id, vote=vote))
                )
            case UpdateProposalStatus(payload=payload):
                proposal = self.store.update_status(payload.proposal_id, payload.status)
                await self.broadcaster.broadcast(
                    ProposalStatusChanged(
                        payload=StatusChangedPayload(
                            proposal_id=proposal.id,
                            status=proposal.status,
                            updated_at=proposal.updated_at,
                        )
                    )
                )
            case UserDisconnect(payload=payload):
                self._user_disconnect(session, payload.user_id)
            case _:
                assert_never(message)

    async def _register_user(self, session: ConnectionSession, user_id: str) -> None:
        previous = self.store.registry.user_id_for(session.connection)
        if previous is not None and previous != user_id:
            # One connection, one user: the identity it used before leaves
            removed = self.store.remove_user(session.connection)
            if removed is not None:
                logger.info("Connection switched identity", previous_user_id=removed.id)
                await self.broadcaster.broadcast(UsersUpdated(payload=self.store.get_users()))

        user = self.store.add_user(user_id)
        self.store.registry.register(user_id, session.connection)
        session.state = ConnectionState.REGISTERED
        session.user_id = user_id
        structlog.contextvars.bind_contextvars(user_id=user_id)
        logger.info("User registered", connected=len(self.store.registry))

        await self.broadcaster.send_to_connection(session.connection, UserRegistered(payload=user))
        await self.broadcaster.send_to_connection(session.connection, InitialData(payload=self.store.snapshot()))
        await self.broadcaster.broadcast(NewUser(payload=user), exclude=session.connection)

    def _user_disconnect(self, session: ConnectionSession, user_id: str) -> None:
        """Leave the broadcast audience. The user record stays until the transport closes."""
        connection = self.store.registry.mute(user_id)
        if connection is session.connection:
            session.state = ConnectionState.CONNECTED
            session.user_id = None
        logger.info("User disconnected", target_user_id=user_id, had_connection=connection is not None)
