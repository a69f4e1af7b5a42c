"""Sync client: keeps a LocalReplica up to date over a WebSocket.

Reconnection policy:
- Capped exponential backoff: min(base * 2**attempt, max_delay)
- At most ``max_retries`` consecutive failed attempts
- After that the client is FAILED until ``retry()`` is called
"""

import asyncio
from enum import Enum
from typing import Any, Callable, Optional

import structlog
import websockets
from websockets.exceptions import WebSocketException
from pydantic import ValidationError

from pulse.client.identity import IdentityProvider
from pulse.client.replica import LocalReplica
from pulse.config import get_settings
from pulse.core.exceptions import ConnectionFailedError
from pulse.domain.models.proposal import ProposalStatus
from pulse.domain.schemas.messages import (
    AddComment,
    AddCommentPayload,
    AddProposal,
    AddVote,
    AddVotePayload,
    ProposalCreate,
    RegisterUser,
    RegisterUserPayload,
    UpdateProposalStatus,
    UpdateStatusPayload,
    UserDisconnect,
    UserDisconnectPayload,
    parse_outbound,
)

logger = structlog.get_logger(__name__)


class ClientState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


class SyncClient:
    def __init__(
        self,
        url: Optional[str] = None,
        user_id: Optional[str] = None,
        identity: Optional[IdentityProvider] = None,
        connect: Callable[[str], Any] = websockets.connect,
        sleep: Callable[[float], Any] = asyncio.sleep,
        base_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
        max_retries: Optional[int] = None,
    ):
        settings = get_settings()
        self.url = url or settings.WS_URL
        self.user_id = user_id or (identity or IdentityProvider()).get_user_id()
        self.base_delay = settings.RECONNECT_BASE_DELAY if base_delay is None else base_delay
        self.max_delay = settings.RECONNECT_MAX_DELAY if max_delay is None else max_delay
        self.max_retries = settings.RECONNECT_MAX_RETRIES if max_retries is None else max_retries

        self.replica = LocalReplica()
        self.state = ClientState.DISCONNECTED
        self.attempts = 0
        self._connect = connect
        self._sleep = sleep
        self._ws = None
        self._closing = False
        self.log = logger.bind(user_id=self.user_id, url=self.url)

    def backoff_delay(self, attempt: int) -> float:
        return min(self.base_delay * (2 ** attempt), self.max_delay)

    def retry(self) -> None:
        """Leave the FAILED state so ``run()`` may try again."""
        if self.state == ClientState.FAILED:
            self.state = ClientState.DISCONNECTED
            self.attempts = 0

    async def run(self) -> None:
        """Connect, register and apply server envelopes until closed.

        Raises ConnectionFailedError once the retry budget is spent.
        """
        if self.state == ClientState.FAILED:
            raise ConnectionFailedError(details={"attempts": self.attempts})
        self._closing = False

        while True:
            self.state = ClientState.CONNECTING
            try:
                async with self._connect(self.url) as ws:
                    self._ws = ws
                    self.state = ClientState.CONNECTED
                    self.attempts = 0
                    self.log.info("Connected")
                    await self._send(RegisterUser(type="REGISTER_USER", payload=RegisterUserPayload(user_id=self.user_id)))
                    async for raw in ws:
                        self._on_frame(raw)
            except (OSError, WebSocketException) as e:
                self.log.warning("Connection lost", error=str(e), attempt=self.attempts)
            finally:
                self._ws = None

            if self._closing:
                self.state = ClientState.DISCONNECTED
                return

            if self.attempts >= self.max_retries:
                self.state = ClientState.FAILED
                self.log.error("Giving up reconnecting", attempts=self.attempts)
                raise ConnectionFailedError(details={"attempts": self.attempts})

            delay = self.backoff_delay(self.attempts)
            self.attempts += 1
            self.state = ClientState.DISCONNECTED
            self.log.info("Reconnecting", delay=delay, attempt=self.attempts)
            await self._sleep(delay)

    def _on_frame(self, raw) -> None:
        try:
            message = parse_outbound(raw)
        except ValidationError as e:
            self.log.warning("Ignoring malformed server frame", errors=e.error_count())
            return
        self.replica.apply(message)

    async def _send(self, message) -> None:
        if self._ws is None:
            raise ConnectionFailedError("Not connected")
        await self._ws.send(message.model_dump_json(by_alias=True))

    # --- Commands ---

    async def add_proposal(self, title: str, description: str, treasury_phone: str) -> None:
        await self._send(AddProposal(
            type="ADD_PROPOSAL",
            payload=ProposalCreate(
                title=title,
                description=description,
                creator_id=self.user_id,
                treasury_phone=treasury_phone,
            ),
        ))

    async def add_comment(self, proposal_id: str, content: str) -> None:
        await self._send(AddComment(
            type="ADD_COMMENT",
            payload=AddCommentPayload(proposal_id=proposal_id, content=content, user_id=self.user_id),
        ))

    async def add_vote(self, proposal_id: str, in_favor: bool) -> None:
        await self._send(AddVote(
            type="ADD_VOTE",
            payload=AddVotePayload(proposal_id=proposal_id, in_favor=in_favor, user_id=self.user_id),
        ))

    async def update_proposal_status(self, proposal_id: str, status: ProposalStatus) -> None:
        await self._send(UpdateProposalStatus(
            type="UPDATE_PROPOSAL_STATUS",
            payload=UpdateStatusPayload(proposal_id=proposal_id, status=status),
        ))

    async def disconnect(self) -> None:
        """Announce departure and close the socket without reconnecting."""
        self._closing = True
        ws = self._ws
        if ws is None:
            return
        try:
            await self._send(UserDisconnect(type="USER_DISCONNECT", payload=UserDisconnectPayload(user_id=self.user_id)))
        finally:
            await ws.close()
