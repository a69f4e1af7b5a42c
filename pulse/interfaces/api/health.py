"""Health and server info routes: used only to bootstrap clients."""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse

from pulse.config import get_settings
from pulse.domain.repositories.state_repository import StateRepository
from pulse.interfaces.deps import get_state_repository

settings = get_settings()
router = APIRouter(tags=["Health"])

INFO_PAGE = """<!DOCTYPE html>
<html>
<head>
  <title>Pulse Sync WebSocket Server</title>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <style>
    body {{ font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, sans-serif;
           max-width: 600px; margin: 0 auto; padding: 20px; line-height: 1.6; }}
    h1 {{ color: #333; }}
  </style>
</head>
<body>
  <h1>Pulse Sync WebSocket Server</h1>
  <p>This is the WebSocket server for the Pulse proposals application.</p>
  <p>Connect to the WebSocket endpoint at: <code>{ws_url}</code></p>
</body>
</html>
"""


@router.get("/health")
def health(store: StateRepository = Depends(get_state_repository)):
    return {
        "status": "healthy",
        "connections": len(store.registry),
        "users": len(store.get_users()),
        "proposals": len(store.get_proposals()),
    }


@router.get("/", response_class=HTMLResponse)
def root(request: Request):
    scheme = "wss" if request.url.scheme == "https" else "ws"
    host = request.headers.get("host", f"localhost:{settings.PORT}")
    return INFO_PAGE.format(ws_url=f"{scheme}://{host}{settings.WS_PATH}")
