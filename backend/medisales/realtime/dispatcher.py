"""Fan-out of real-time events to live connections.

Addressing modes:
    - user:  every live connection of one user identity
    - room:  every connection whose active room matches, minus the sender
    - group: every connection in a role or notification group
    - all:   every live connection

Delivery Semantics:
    At-most-once and best-effort. A target with no live connection is a
    silent drop; the durable copy of a chat message stays in the message
    store. Sends run concurrently with asyncio.gather(), and a failing or
    slow recipient only loses its own copy of the event.

Performance Notes:
    - Connection lists are snapshots taken from the registry under its lock
    - ``send_timeout`` bounds how long one recipient can hold up the gather
"""
import asyncio
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from pydantic import BaseModel

from .registry import Connection, ConnectionRegistry

logger = logging.getLogger(__name__)

Payload = Union[BaseModel, Mapping[str, Any], None]


def build_envelope(event: str, payload: Payload = None) -> Dict[str, Any]:
    """Wrap a payload as ``{"type": event, **payload}``.

    The event name always wins over a ``type`` key in the payload.
    """
    if payload is None:
        body: Dict[str, Any] = {}
    elif isinstance(payload, BaseModel):
        body = payload.model_dump(mode="json", by_alias=True)
    else:
        body = dict(payload)
    return {**body, "type": event}


class FanoutDispatcher:
    """Delivers named events to connections resolved from the registry."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        send_timeout: Optional[float] = None,
    ) -> None:
        self._registry = registry
        self._send_timeout = send_timeout

    # ------------------------------------------------------------------
    # Addressing modes
    # ------------------------------------------------------------------

    async def send_to_user(
        self,
        user_id: int,
        event: str,
        payload: Payload = None,
        exclude_connection_id: Optional[str] = None,
    ) -> int:
        """Send to every live connection of *user_id*. Returns deliveries."""
        return await self.send_to_users([user_id], event, payload, exclude_connection_id)

    async def send_to_users(
        self,
        user_ids: Iterable[int],
        event: str,
        payload: Payload = None,
        exclude_connection_id: Optional[str] = None,
    ) -> int:
        """Send once per connection across several users (duplicates collapse)."""
        targets: Dict[str, Connection] = {}
        for user_id in dict.fromkeys(user_ids):
            for conn in self._registry.connections_for_user(user_id):
                targets[conn.connection_id] = conn
        return await self._deliver(
            self._without(targets.values(), exclude_connection_id), event, payload
        )

    async def send_to_room(
        self,
        room: str,
        event: str,
        payload: Payload = None,
        exclude_connection_id: Optional[str] = None,
    ) -> int:
        connections = self._registry.connections_in_room(room)
        return await self._deliver(
            self._without(connections, exclude_connection_id), event, payload
        )

    async def send_to_group(self, group: str, event: str, payload: Payload = None) -> int:
        return await self._deliver(self._registry.connections_in_group(group), event, payload)

    async def send_to_all(self, event: str, payload: Payload = None) -> int:
        return await self._deliver(self._registry.all_connections(), event, payload)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    @staticmethod
    def _without(
        connections: Iterable[Connection], exclude_connection_id: Optional[str]
    ) -> List[Connection]:
        return [c for c in connections if c.connection_id != exclude_connection_id]

    async def _deliver(
        self, connections: List[Connection], event: str, payload: Payload
    ) -> int:
        if not connections:
            logger.debug("[Dispatch] No live connections for %s; dropped", event)
            return 0

        message = build_envelope(event, payload)
        results = await asyncio.gather(
            *[self._safe_send(conn, message) for conn in connections],
            return_exceptions=True,
        )
        delivered = sum(1 for ok in results if ok is True)
        if delivered < len(connections):
            logger.debug(
                "[Dispatch] %s delivered to %d/%d connections",
                event, delivered, len(connections),
            )
        return delivered

    async def _safe_send(self, connection: Connection, message: dict) -> bool:
        """Send a message to one connection with error handling.

        Returns:
            True if successful, False if the send failed or timed out.
        """
        try:
            send = connection.transport.send_json(message)
            if self._send_timeout is not None:
                await asyncio.wait_for(send, timeout=self._send_timeout)
            else:
                await send
            return True
        except Exception as e:
            logger.debug(f"Failed to send to connection {connection.connection_id}: {e}")
            return False
