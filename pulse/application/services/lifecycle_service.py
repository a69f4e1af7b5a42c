"""Connection lifecycle: open, per-message dispatch and teardown on one timeline.

All inbound events from every connection pass through ``timeline``, a FIFO
lock, so each mutation and its broadcast finish before the next event is
processed.
"""

import asyncio
from typing import Any

import structlog

from pulse.application.services.broadcast_service import BroadcastService
from pulse.application.services.message_router import ConnectionSession, ConnectionState, MessageRouter
from pulse.domain.repositories.state_repository import StateRepository
from pulse.domain.schemas.messages import UsersUpdated

logger = structlog.get_logger(__name__)


class LifecycleService:
    def __init__(self, store: StateRepository):
        self.store = store
        self.broadcaster = BroadcastService(store.registry)
        self.router = MessageRouter(store, self.broadcaster)
        self.timeline = asyncio.Lock()

    def open(self, connection: Any) -> ConnectionSession:
        """Track a freshly accepted connection. No state changes until it registers."""
        session = ConnectionSession(connection=connection)
        logger.info("Connection opened", connection_id=session.connection_id)
        return session

    async def receive(self, session: ConnectionSession, raw: str) -> None:
        async with self.timeline:
            await self.router.handle(session, raw)

    async def close(self, session: ConnectionSession, reason: str = "closed") -> None:
        """Remove the connection's user and announce the updated user list."""
        if session.state == ConnectionState.CLOSED:
            return

        async with self.timeline:
            session.state = ConnectionState.CLOSED
            removed = self.store.remove_user(session.connection)
            logger.info(
                "Connection closed",
                connection_id=session.connection_id,
                reason=reason,
                removed_user=removed.id if removed else None,
            )
            if removed is not None:
                await self.broadcaster.broadcast(UsersUpdated(payload=self.store.get_users()))
