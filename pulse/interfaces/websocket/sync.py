"""WebSocket endpoint: one receive loop per connection feeding the lifecycle service."""

import anyio
import structlog
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from pulse.application.services.lifecycle_service import LifecycleService
from pulse.config import get_settings
from pulse.interfaces.deps import get_lifecycle

settings = get_settings()
logger = structlog.get_logger(__name__)
router = APIRouter(tags=["Sync"])


async def receive_frame(websocket: WebSocket) -> str | bytes:
    """Next text or binary frame; raises WebSocketDisconnect when the peer goes away."""
    message = await websocket.receive()
    if message["type"] == "websocket.disconnect":
        raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))
    if message.get("text") is not None:
        return message["text"]
    return message.get("bytes") or b""


@router.websocket(settings.WS_PATH)
async def sync_socket(websocket: WebSocket, lifecycle: LifecycleService = Depends(get_lifecycle)):
    await websocket.accept()
    session = lifecycle.open(websocket)
    structlog.contextvars.bind_contextvars(connection_id=session.connection_id)

    reason = "closed"
    try:
        while True:
            raw = await receive_frame(websocket)
            await lifecycle.receive(session, raw)
    except WebSocketDisconnect as e:
        reason = f"disconnect:{e.code}"
    except Exception as e:
        reason = "error"
        logger.error("WebSocket transport error", error=str(e))
    finally:
        # Cleanup must finish even when the handler task is being cancelled
        with anyio.CancelScope(shield=True):
            await lifecycle.close(session, reason)
        structlog.contextvars.clear_contextvars()
