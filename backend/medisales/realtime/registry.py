"""Registry of live connections, their identities, rooms and groups.

Every live socket gets a ``Connection`` record keyed by an opaque
connection ID. A connection carries at most one authenticated user
identity, at most one active conversation room and any number of
broadcast groups (its role group plus ad-hoc notification groups).

Thread Safety:
    Connect, disconnect and lookups arrive from many connections at once, so
    all reads and writes of the internal map happen under ``self._lock``.
    List lookups return snapshot lists. ``get()`` hands back the live
    ``Connection`` record; its room and groups are only changed through the
    registry methods.

Lifecycle:
    on_connect() -> join_room()/leave_room()/join_group() -> on_disconnect()
    ``on_disconnect`` always removes the identity, room and groups together,
    so nothing addressed to a room or group can reach a closed session.
"""
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from medisales.users.schemas import UserRole

from .rooms import group_for_role

logger = logging.getLogger(__name__)


@dataclass
class Connection:
    """One live transport session.

    Attributes:
        connection_id: Opaque per-socket identifier.
        user_id: Resolved identity, or None for anonymous sockets.
        transport: Anything with an async ``send_json(dict)`` method.
        role: Role resolved at connect; never re-read afterwards.
        groups: Broadcast groups this connection belongs to.
        room: Active conversation room, if any.
    """
    connection_id: str
    user_id: Optional[int]
    transport: Any
    role: Optional[UserRole] = None
    groups: Set[str] = field(default_factory=set)
    room: Optional[str] = None
    connected_at: datetime = field(default_factory=datetime.utcnow)


class ConnectionRegistry:
    """Explicitly owned map of connection ID -> ``Connection``."""

    def __init__(self) -> None:
        self._connections: Dict[str, Connection] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def on_connect(
        self,
        connection_id: str,
        user_id: Optional[int],
        transport: Any,
        role: Optional[UserRole] = None,
    ) -> Connection:
        """Record a new connection, adding it to its role group if known."""
        connection = Connection(
            connection_id=connection_id,
            user_id=user_id,
            transport=transport,
            role=role,
        )
        group = group_for_role(role)
        if group is not None:
            connection.groups.add(group.value)
        with self._lock:
            self._connections[connection_id] = connection
        logger.debug(
            "[Registry] Connected %s (user=%s, groups=%s)",
            connection_id, user_id, sorted(connection.groups),
        )
        return connection

    def on_disconnect(self, connection_id: str) -> Optional[Connection]:
        """Forget a connection with all of its room and group memberships."""
        with self._lock:
            connection = self._connections.pop(connection_id, None)
        if connection is not None:
            connection.room = None
            connection.groups.clear()
            logger.debug("[Registry] Disconnected %s (user=%s)", connection_id, connection.user_id)
        return connection

    # ------------------------------------------------------------------
    # Rooms and groups
    # ------------------------------------------------------------------

    def join_room(self, connection_id: str, room: str) -> bool:
        """Make *room* the connection's active room, replacing any previous one."""
        with self._lock:
            connection = self._connections.get(connection_id)
            if connection is None:
                return False
            connection.room = room
        return True

    def leave_room(self, connection_id: str) -> Optional[str]:
        """Clear the active room and return it."""
        with self._lock:
            connection = self._connections.get(connection_id)
            if connection is None:
                return None
            room, connection.room = connection.room, None
        return room

    def join_group(self, connection_id: str, group: str) -> bool:
        with self._lock:
            connection = self._connections.get(connection_id)
            if connection is None:
                return False
            connection.groups.add(group)
        return True

    def leave_group(self, connection_id: str, group: str) -> bool:
        with self._lock:
            connection = self._connections.get(connection_id)
            if connection is None or group not in connection.groups:
                return False
            connection.groups.discard(group)
        return True

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get(self, connection_id: str) -> Optional[Connection]:
        with self._lock:
            return self._connections.get(connection_id)

    def room_for(self, connection_id: str) -> Optional[str]:
        with self._lock:
            connection = self._connections.get(connection_id)
            return connection.room if connection else None

    def identity_for(self, connection_id: str) -> Optional[int]:
        with self._lock:
            connection = self._connections.get(connection_id)
            return connection.user_id if connection else None

    def connections_for_user(self, user_id: int) -> List[Connection]:
        with self._lock:
            return [c for c in self._connections.values() if c.user_id == user_id]

    def connections_in_room(self, room: str) -> List[Connection]:
        with self._lock:
            return [c for c in self._connections.values() if c.room == room]

    def connections_in_group(self, group: str) -> List[Connection]:
        with self._lock:
            return [c for c in self._connections.values() if group in c.groups]

    def all_connections(self) -> List[Connection]:
        with self._lock:
            return list(self._connections.values())

    def online_user_ids(self) -> Set[int]:
        with self._lock:
            return {c.user_id for c in self._connections.values() if c.user_id is not None}

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)

    def __contains__(self, connection_id: object) -> bool:
        with self._lock:
            return connection_id in self._connections
