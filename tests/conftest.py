from __future__ import annotations

import json
import os
from typing import Any

import anyio
import pytest
from starlette.websockets import WebSocketState

# Keep the console renderer and avoid picking up a developer's .env values.
os.environ.setdefault("ENVIRONMENT", "test")

from pulse.application.services.broadcast_service import BroadcastService  # noqa: E402
from pulse.application.services.lifecycle_service import LifecycleService  # noqa: E402
from pulse.application.services.message_router import ConnectionSession  # noqa: E402
from pulse.infrastructure.repositories.memory_state_repository import InMemoryStateRepository  # noqa: E402


class FakeConnection:
    """Stands in for a Starlette WebSocket: records text frames."""

    def __init__(self, name: str = "conn", fail: bool = False) -> None:
        self.name = name
        self.fail = fail
        self.stalled = False
        self.sent: list[str] = []
        self.application_state = WebSocketState.CONNECTED
        self.client_state = WebSocketState.CONNECTED

    async def send_text(self, data: str) -> None:
        if self.stalled:
            # Peer stopped reading; the write never drains
            await anyio.sleep_forever()
        if self.fail:
            raise RuntimeError("broken pipe")
        self.sent.append(data)

    def close(self) -> None:
        self.client_state = WebSocketState.DISCONNECTED

    def messages(self) -> list[dict[str, Any]]:
        return [json.loads(frame) for frame in self.sent]

    def types(self) -> list[str]:
        return [m["type"] for m in self.messages()]

    def last(self) -> dict[str, Any]:
        return self.messages()[-1]

    def __repr__(self) -> str:
        return f"<FakeConnection {self.name}>"


def envelope(type_: str, **payload: Any) -> str:
    return json.dumps({"type": type_, "payload": payload})


@pytest.fixture
def store() -> InMemoryStateRepository:
    return InMemoryStateRepository()


@pytest.fixture
def broadcaster(store: InMemoryStateRepository) -> BroadcastService:
    return BroadcastService(store.registry)


@pytest.fixture
def lifecycle(store: InMemoryStateRepository) -> LifecycleService:
    return LifecycleService(store)


@pytest.fixture
def connect(lifecycle: LifecycleService):
    """Open a fake connection on the lifecycle service and return (conn, session)."""

    def _connect(name: str = "conn", fail: bool = False) -> tuple[FakeConnection, ConnectionSession]:
        conn = FakeConnection(name, fail=fail)
        return conn, lifecycle.open(conn)

    return _connect
