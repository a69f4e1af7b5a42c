"""Broadcast service: fan-out of outbound envelopes to registered connections.

Delivery is best effort:
- Each envelope is serialized once, before any send
- Only connections whose transport is open are attempted
- A failed or stalled send is logged and skipped, never raised to the caller
"""

from typing import Any, Iterable, Optional

import anyio
import structlog
from starlette.websockets import WebSocketState

from pulse.config import get_settings
from pulse.domain.repositories.state_repository import ConnectionIndex
from pulse.domain.schemas.messages import OutboundMessage, serialize

logger = structlog.get_logger(__name__)


def is_open(connection: Any) -> bool:
    """True when both sides of the WebSocket are still connected."""
    return (
        getattr(connection, "application_state", None) == WebSocketState.CONNECTED
        and getattr(connection, "client_state", None) == WebSocketState.CONNECTED
    )


class BroadcastService:
    def __init__(self, registry: ConnectionIndex, send_timeout: Optional[float] = None):
        self.registry = registry
        self.send_timeout = get_settings().SEND_TIMEOUT if send_timeout is None else send_timeout

    @staticmethod
    def _encode(message: OutboundMessage) -> Optional[str]:
        try:
            return serialize(message)
        except Exception:
            logger.exception("Failed to serialize outbound message", type=getattr(message, "type", None))
            return None

    async def _deliver(self, connections: Iterable[Any], data: str, message_type: str) -> int:
        delivered = 0
        for connection in connections:
            if not is_open(connection):
                continue
            try:
                # A peer that stops reading must not hold up the rest of the fan-out
                with anyio.fail_after(self.send_timeout):
                    await connection.send_text(data)
                delivered += 1
            except TimeoutError:
                user_id = self.registry.user_id_for(connection)
                logger.warning(
                    "Send timed out, muting connection",
                    type=message_type,
                    user_id=user_id,
                    timeout=self.send_timeout,
                )
                # Stays mapped so the transport close still removes the user
                if user_id is not None:
                    self.registry.mute(user_id)
            except Exception as e:
                logger.warning(
                    "Send failed, skipping connection",
                    type=message_type,
                    user_id=self.registry.user_id_for(connection),
                    error=str(e),
                )
        return delivered

    async def broadcast(self, message: OutboundMessage, exclude: Any = None) -> int:
        """Send ``message`` to every registered open connection except ``exclude``."""
        data = self._encode(message)
        if data is None:
            return 0

        targets = [c for c in self.registry.all_connections() if c is not exclude]
        delivered = await self._deliver(targets, data, message.type)
        logger.debug("Broadcast", type=message.type, targets=len(targets), delivered=delivered)
        return delivered

    async def send_to(self, user_id: str, message: OutboundMessage) -> int:
        """Send ``message`` to the connection registered for ``user_id``."""
        connection = self.registry.connection_for(user_id)
        if connection is None or not is_open(connection):
            logger.warning("No open connection for user", user_id=user_id, type=message.type)
            return 0
        return await self.send_to_connection(connection, message)

    async def send_to_connection(self, connection: Any, message: OutboundMessage) -> int:
        """Reply on one connection, registered or not."""
        data = self._encode(message)
        if data is None:
            return 0
        return await self._deliver([connection], data, message.type)
