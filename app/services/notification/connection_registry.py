"""
Process-scoped registry of live client connections.

A connection is anything exposing an awaitable ``send_json(dict)``,
typically a FastAPI ``WebSocket``. The registry is created once per
process and injected into the notifier; it is never a module global.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol
import logging
import threading
import time

from starlette.websockets import WebSocketState

logger = logging.getLogger(__name__)


class Connection(Protocol):
    async def send_json(self, data: Any) -> None:
        ...


@dataclass
class _Entry:
    user_id: str
    connection: Any
    last_seen: float = field(default=0.0)


def is_closed(connection: Any) -> bool:
    """Best-effort check for a connection the peer already dropped."""
    if getattr(connection, "closed", False):
        return True
    for attribute in ("client_state", "application_state"):
        state = getattr(connection, attribute, None)
        if state is WebSocketState.DISCONNECTED:
            return True
    return False


class ConnectionRegistry:
    """
    Tracks which users have live connections on this instance.

    Thread-safe: sync endpoints run in a worker pool while the event
    loop delivers messages.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[int, _Entry] = {}
        self._by_user: Dict[str, List[int]] = {}

    def register(self, user_id: str, connection: Any) -> None:
        key = id(connection)
        with self._lock:
            self._entries[key] = _Entry(user_id=user_id, connection=connection, last_seen=self._clock())
            keys = self._by_user.setdefault(user_id, [])
            if key not in keys:
                keys.append(key)
        logger.info(f"Connection registered for user {user_id}")

    def deregister(self, user_id: str, connection: Any) -> bool:
        """Drop a connection; returns False if it was not registered."""
        key = id(connection)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.user_id != user_id:
                return False
            self._remove(key)
        logger.info(f"Connection deregistered for user {user_id}")
        return True

    def touch(self, connection: Any) -> None:
        with self._lock:
            entry = self._entries.get(id(connection))
            if entry is not None:
                entry.last_seen = self._clock()

    def sweep(self, max_idle_seconds: Optional[float] = None) -> int:
        """
        Drop connections that are closed or idle for too long.

        Returns:
            Number of connections removed
        """
        now = self._clock()
        with self._lock:
            stale = [
                key
                for key, entry in self._entries.items()
                if is_closed(entry.connection)
                or (max_idle_seconds is not None and now - entry.last_seen > max_idle_seconds)
            ]
            for key in stale:
                self._remove(key)
        if stale:
            logger.info(f"Swept {len(stale)} stale connections")
        return len(stale)

    def is_user_connected(self, user_id: str) -> bool:
        with self._lock:
            return bool(self._by_user.get(user_id))

    def connected_users_count(self) -> int:
        with self._lock:
            return len(self._by_user)

    def connections_for(self, user_id: str) -> List[Any]:
        """Snapshot of the user's connections, safe to iterate while sending."""
        with self._lock:
            return [self._entries[key].connection for key in self._by_user.get(user_id, [])]

    def _remove(self, key: int) -> None:
        entry = self._entries.pop(key)
        keys = self._by_user.get(entry.user_id, [])
        if key in keys:
            keys.remove(key)
        if not keys:
            self._by_user.pop(entry.user_id, None)
