"""WebSocket endpoints for chat and notifications.

This module provides:
    - WebSocket /ws/chat: Direct messages, typing indicators, read receipts
    - WebSocket /ws/notifications: Stock, expiration, sales and dashboard alerts

Identity comes from the ``X-User-Id`` header or ``userId`` query parameter
(see ``identity.py``). Unknown identities connect anonymously: they receive
broadcasts addressed to everyone but cannot chat.

Protocol Flow (chat):
    1. Client connects -> Server sends {type: "connected", connectionId, userId, groups}
    2. Client sends {type: "join_conversation", otherUserId}
       -> Server replies {type: "conversation_joined", room}
    3. Client sends {type: "send_message", toUserId, message}
       -> Recipient and sender receive {type: "receive_message", messageId, ...}
    4. Client sends {type: "typing", otherUserId, isTyping}
       -> Others in the room receive {type: "user_typing", userId, isTyping, room}
    5. Client sends {type: "mark_read", messageId}
       -> Original sender receives {type: "message_read", messageId, readBy, readAt}
    6. Client sends {type: "leave_conversation"} -> {type: "conversation_left", room}

Errors are answered with {type: "error", error: "..."} and never close the
socket. Each frame is handled independently, so one failing frame does not
end the session.
"""
import json
import logging
from typing import Any, Dict

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from medisales.messages.store import MessagePermissionError, MessageValidationError

from .dispatcher import build_envelope
from .events import ClientFrame, Connected, ConversationRoom, ErrorPayload, EventType, GroupMembership
from .hub import ChatHub, HubError, NotificationHub
from .identity import resolve_identity
from .registry import Connection

logger = logging.getLogger(__name__)

router = APIRouter()


# =============================================================================
# Helpers
# =============================================================================


def _int_field(data: Dict[str, Any], key: str) -> int:
    value = data.get(key)
    if isinstance(value, bool):
        raise HubError(f"{key} is required")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise HubError(f"{key} is required") from None


async def _send_error(websocket: WebSocket, error: str) -> None:
    await websocket.send_json(build_envelope(EventType.ERROR.value, ErrorPayload(error=error)))


async def _receive_frame(websocket: WebSocket) -> Any:
    """Receive one JSON frame; malformed JSON yields None."""
    text = await websocket.receive_text()
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None


async def _send_connected(websocket: WebSocket, connection: Connection) -> None:
    await websocket.send_json(build_envelope(
        EventType.CONNECTED.value,
        Connected(
            connectionId=connection.connection_id,
            userId=connection.user_id,
            groups=sorted(connection.groups),
        ),
    ))


# =============================================================================
# Chat
# =============================================================================


async def _handle_chat_frame(
    hub: ChatHub, websocket: WebSocket, connection: Connection, data: Dict[str, Any]
) -> None:
    frame_type = data.get("type")

    if frame_type == ClientFrame.PING.value:
        await websocket.send_json(build_envelope(EventType.PONG.value))
        return

    if connection.user_id is None:
        raise HubError("Authentication required")

    # --- SEND_MESSAGE: persist, then deliver to recipient and echo to sender ---
    if frame_type == ClientFrame.SEND_MESSAGE.value:
        to_user_id = _int_field(data, "toUserId")
        await hub.send_message(connection.user_id, to_user_id, data.get("message"))
        return

    # --- JOIN_CONVERSATION ---
    if frame_type == ClientFrame.JOIN_CONVERSATION.value:
        room = hub.join_conversation(connection.connection_id, _int_field(data, "otherUserId"))
        await websocket.send_json(
            build_envelope(EventType.CONVERSATION_JOINED.value, ConversationRoom(room=room))
        )
        return

    # --- LEAVE_CONVERSATION ---
    if frame_type == ClientFrame.LEAVE_CONVERSATION.value:
        room = hub.leave_conversation(connection.connection_id)
        await websocket.send_json(
            build_envelope(EventType.CONVERSATION_LEFT.value, ConversationRoom(room=room))
        )
        return

    # --- TYPING indicator (room members except the sender) ---
    if frame_type == ClientFrame.TYPING.value:
        await hub.send_typing(
            connection.connection_id,
            _int_field(data, "otherUserId"),
            bool(data.get("isTyping", True)),
        )
        return

    # --- MARK_READ: update the store, receipt goes to the original sender ---
    if frame_type == ClientFrame.MARK_READ.value:
        message = await hub.mark_message_read(_int_field(data, "messageId"), connection.user_id)
        if message is None:
            await _send_error(websocket, "Message not found")
        return

    raise HubError(f"Unknown frame type: {frame_type}")


@router.websocket("/ws/chat")
async def websocket_chat_endpoint(websocket: WebSocket) -> None:
    """WebSocket endpoint for direct chat between pharmacy users."""
    hub: ChatHub = websocket.app.state.chat_hub
    user_id = resolve_identity(websocket)
    await websocket.accept()
    logger.info(f"[WS] New chat connection (userId={user_id})")

    async with hub.session(websocket, user_id) as connection:
        try:
            await _send_connected(websocket, connection)
            while True:
                data = await _receive_frame(websocket)
                if not isinstance(data, dict):
                    await _send_error(websocket, "Invalid frame: expected a JSON object")
                    continue
                try:
                    await _handle_chat_frame(hub, websocket, connection, data)
                except (HubError, MessageValidationError, MessagePermissionError) as e:
                    await _send_error(websocket, str(e))
                except WebSocketDisconnect:
                    raise
                except Exception:
                    logger.exception(
                        "[WS] Failed to handle %s frame on %s",
                        data.get("type"), connection.connection_id,
                    )
                    await _send_error(websocket, "Request failed")
        except WebSocketDisconnect:
            logger.info(f"[WS] Chat connection {connection.connection_id} disconnected")


# =============================================================================
# Notifications
# =============================================================================


async def _handle_notification_frame(
    hub: NotificationHub, websocket: WebSocket, connection: Connection, data: Dict[str, Any]
) -> None:
    frame_type = data.get("type")

    if frame_type == ClientFrame.PING.value:
        await websocket.send_json(build_envelope(EventType.PONG.value))
        return

    if frame_type in (ClientFrame.JOIN_GROUP.value, ClientFrame.LEAVE_GROUP.value):
        group = data.get("group")
        if not isinstance(group, str) or not group.strip():
            raise HubError("group is required")
        group = group.strip()
        if frame_type == ClientFrame.JOIN_GROUP.value:
            hub.join_group(connection.connection_id, group)
            event = EventType.GROUP_JOINED
        else:
            hub.leave_group(connection.connection_id, group)
            event = EventType.GROUP_LEFT
        await websocket.send_json(build_envelope(event.value, GroupMembership(group=group)))
        return

    raise HubError(f"Unknown frame type: {frame_type}")


@router.websocket("/ws/notifications")
async def websocket_notifications_endpoint(websocket: WebSocket) -> None:
    """WebSocket endpoint for inventory, sales and dashboard notifications."""
    hub: NotificationHub = websocket.app.state.notification_hub
    user_id = resolve_identity(websocket)
    await websocket.accept()

    async with hub.session(websocket, user_id) as connection:
        try:
            await _send_connected(websocket, connection)
            while True:
                data = await _receive_frame(websocket)
                if not isinstance(data, dict):
                    await _send_error(websocket, "Invalid frame: expected a JSON object")
                    continue
                try:
                    await _handle_notification_frame(hub, websocket, connection, data)
                except HubError as e:
                    await _send_error(websocket, str(e))
        except WebSocketDisconnect:
            logger.info(f"[WS] Notification connection {connection.connection_id} disconnected")
