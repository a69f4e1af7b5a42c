"""Connection registry: live duplex connections keyed by client identifier, both ways."""

from typing import Any, Dict, Hashable, Optional, Set

import structlog

logger = structlog.get_logger(__name__)


class ConnectionRegistry:
    """Two one-directional lookup tables kept in lockstep.

    Connections are opaque hashable transport objects (a Starlette
    ``WebSocket`` in production, fakes in tests). A muted connection keeps
    its user lookup, so closing it still finds the user, but it is left out
    of the broadcast audience.
    """

    def __init__(self) -> None:
        self._connection_by_user: Dict[str, Any] = {}
        self._user_by_connection: Dict[Hashable, str] = {}
        self._muted: Set[Hashable] = set()

    def register(self, user_id: str, connection: Any) -> Optional[str]:
        """Bind ``user_id`` to ``connection``.

        Returns the user id the connection was bound to before, when that
        differs from ``user_id``.
        """
        previous_connection = self._connection_by_user.get(user_id)
        if previous_connection is not None and previous_connection is not connection:
            self._user_by_connection.pop(previous_connection, None)
            self._muted.discard(previous_connection)
            logger.info("Replaced stale connection", user_id=user_id)

        previous_user = self._user_by_connection.get(connection)
        if previous_user == user_id:
            previous_user = None
        elif previous_user is not None:
            self._connection_by_user.pop(previous_user, None)
            logger.info("Connection switched user", previous_user_id=previous_user, user_id=user_id)

        self._connection_by_user[user_id] = connection
        self._user_by_connection[connection] = user_id
        self._muted.discard(connection)
        return previous_user

    def deregister(self, connection: Any) -> Optional[str]:
        """Remove ``connection`` from both maps. Returns the user id it belonged to."""
        self._muted.discard(connection)
        user_id = self._user_by_connection.pop(connection, None)
        if user_id is not None and self._connection_by_user.get(user_id) is connection:
            del self._connection_by_user[user_id]
        return user_id

    def mute(self, user_id: str) -> Optional[Any]:
        """Stop broadcasting to ``user_id``'s connection. Returns that connection."""
        connection = self._connection_by_user.get(user_id)
        if connection is not None:
            self._muted.add(connection)
        return connection

    def all_connections(self) -> Set[Any]:
        return {c for c in self._user_by_connection if c not in self._muted}

    def connection_for(self, user_id: str) -> Optional[Any]:
        connection = self._connection_by_user.get(user_id)
        return None if connection in self._muted else connection

    def user_id_for(self, connection: Any) -> Optional[str]:
        return self._user_by_connection.get(connection)

    def __contains__(self, connection: Any) -> bool:
        return connection in self._user_by_connection and connection not in self._muted

    def __len__(self) -> int:
        return len(self._user_by_connection) - len(self._muted)
