"""Chat and notification hubs.

A hub ties one connection endpoint to its own ``ConnectionRegistry`` and
``FanoutDispatcher``. ``ChatHub`` adds presence and the durable message
store; ``NotificationHub`` only fans out alerts produced elsewhere.

Connection State Machine:
    Connecting -> Connected{identity?, room?} -> Disconnected

    ``session()`` is an async context manager covering the whole lifetime.
    Leaving the block on ANY path (normal close, WebSocketDisconnect, an
    unexpected exception) runs the offline presence update and then the
    registry cleanup. A reconnect is a brand-new session with a new
    connection ID and no room; clients re-join conversations explicitly.
"""
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import date
from typing import Any, AsyncIterator, Dict, Optional

from medisales.messages.schemas import Message
from medisales.messages.store import MessageStore
from medisales.users.repository import UserRepository

from .dispatcher import FanoutDispatcher
from .events import (
    DashboardUpdate,
    EventType,
    ExpirationAlert,
    LowStockAlert,
    MessageRead,
    NewMessageNotice,
    Notification,
    ReceiveMessage,
    SalesUpdate,
    StockAlert,
    StockUpdate,
    TransactionCompleted,
    UserTyping,
)
from .presence import PresenceTracker
from .registry import Connection, ConnectionRegistry
from .rooms import RoleGroup, room_name

logger = logging.getLogger(__name__)


class HubError(RuntimeError):
    """Raised when a connection asks for something it is not allowed to do."""


def _new_connection_id() -> str:
    return str(uuid.uuid4())


# =============================================================================
# Chat Hub
# =============================================================================


class ChatHub:
    """Direct messaging, typing indicators and read receipts.

    Attributes:
        registry: Live chat connections.
        dispatcher: Fan-out over ``registry``.
        messages: Durable message store.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        presence: PresenceTracker,
        dispatcher: FanoutDispatcher,
        messages: MessageStore,
    ) -> None:
        self.registry = registry
        self.presence = presence
        self.dispatcher = dispatcher
        self.messages = messages

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    def _resolve_presence(self, user_id: Optional[int]) -> tuple:
        """Mark *user_id* online and return ``(identity, role)``.

        An unknown or archived user yields an anonymous connection. A
        persistence failure keeps the identity but skips group assignment.
        """
        if user_id is None:
            return None, None
        try:
            role = self.presence.mark_online(user_id)
        except Exception:
            logger.exception("[Hub] Presence update failed on connect for user %s", user_id)
            return user_id, None
        if role is None:
            return None, None
        return user_id, role

    @asynccontextmanager
    async def session(
        self, transport: Any, user_id: Optional[int]
    ) -> AsyncIterator[Connection]:
        """Register a connection for the duration of the ``async with`` block."""
        identity, role = self._resolve_presence(user_id)
        connection = self.registry.on_connect(_new_connection_id(), identity, transport, role)
        logger.info(
            "[Hub] Connection %s opened (user=%s, groups=%s)",
            connection.connection_id, identity, sorted(connection.groups),
        )
        try:
            yield connection
        finally:
            try:
                if identity is not None:
                    self.presence.mark_offline(identity)
            finally:
                self.registry.on_disconnect(connection.connection_id)
                logger.info(
                    "[Hub] Connection %s closed (user=%s)", connection.connection_id, identity
                )

    def _require_identity(self, connection_id: str) -> int:
        user_id = self.registry.identity_for(connection_id)
        if user_id is None:
            raise HubError("Authentication required")
        return user_id

    # ------------------------------------------------------------------
    # Messaging
    # ------------------------------------------------------------------

    async def send_message(self, from_user_id: int, to_user_id: int, text: str) -> Message:
        """Persist a message, then deliver it to the recipient and the sender.

        Raises:
            MessageValidationError: Rejected input; nothing is persisted.
        """
        message = self.messages.send(from_user_id, to_user_id, text)
        payload = ReceiveMessage(
            messageId=message.message_id,
            fromUserId=message.from_user_id,
            toUserId=message.to_user_id,
            message=message.message_text,
            createdAt=message.created_at,
        )
        try:
            delivered = await self.dispatcher.send_to_users(
                [to_user_id, from_user_id], EventType.RECEIVE_MESSAGE.value, payload
            )
            logger.info(
                "[Hub] Message %s from user %s to user %s delivered to %d connections",
                message.message_id, from_user_id, to_user_id, delivered,
            )
        except Exception:
            # The message is already stored; live delivery is best-effort.
            logger.exception("[Hub] Failed to deliver message %s", message.message_id)
        return message

    async def mark_message_read(self, message_id: int, reader_id: int) -> Optional[Message]:
        """Mark a message read and send a receipt to its sender.

        Raises:
            MessagePermissionError: If *reader_id* is not the recipient.
        """
        message = self.messages.mark_read_by(message_id, reader_id)
        if message is None:
            logger.info("[Hub] Message %s not found; read receipt skipped", message_id)
            return None
        await self.dispatcher.send_to_user(
            message.from_user_id,
            EventType.MESSAGE_READ.value,
            MessageRead(messageId=message.message_id, readBy=reader_id, readAt=message.read_at),
        )
        logger.info("[Hub] Message %s marked as read by user %s", message_id, reader_id)
        return message

    # ------------------------------------------------------------------
    # Conversation rooms
    # ------------------------------------------------------------------

    def join_conversation(self, connection_id: str, other_user_id: int) -> str:
        user_id = self._require_identity(connection_id)
        room = room_name(user_id, other_user_id)
        self.registry.join_room(connection_id, room)
        logger.info("[Hub] Connection %s joined %s", connection_id, room)
        return room

    def leave_conversation(self, connection_id: str) -> Optional[str]:
        room = self.registry.leave_room(connection_id)
        if room:
            logger.info("[Hub] Connection %s left %s", connection_id, room)
        return room

    async def send_typing(self, connection_id: str, other_user_id: int, is_typing: bool) -> int:
        """Notify the other members of the conversation room, not the sender."""
        user_id = self._require_identity(connection_id)
        room = room_name(user_id, other_user_id)
        return await self.dispatcher.send_to_room(
            room,
            EventType.USER_TYPING.value,
            UserTyping(userId=user_id, isTyping=is_typing, room=room),
            exclude_connection_id=connection_id,
        )


# =============================================================================
# Notification Hub
# =============================================================================


class NotificationHub:
    """Broadcasts inventory, sales and dashboard events.

    Connections are placed in their role group at connect time and never
    change it; ad-hoc groups can be joined and left afterwards.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        dispatcher: FanoutDispatcher,
        users: UserRepository,
    ) -> None:
        self.registry = registry
        self.dispatcher = dispatcher
        self._users = users

    def _resolve_role(self, user_id: Optional[int]) -> tuple:
        if user_id is None:
            return None, None
        try:
            user = self._users.find_user_by_id(user_id)
        except Exception:
            logger.exception("[Notify] Could not resolve user %s", user_id)
            return user_id, None
        if user is None or user.is_archived:
            return None, None
        return user_id, user.role

    @asynccontextmanager
    async def session(
        self, transport: Any, user_id: Optional[int]
    ) -> AsyncIterator[Connection]:
        identity, role = self._resolve_role(user_id)
        connection = self.registry.on_connect(_new_connection_id(), identity, transport, role)
        logger.info(
            "[Notify] Client connected: %s (user=%s, groups=%s)",
            connection.connection_id, identity, sorted(connection.groups),
        )
        try:
            yield connection
        finally:
            self.registry.on_disconnect(connection.connection_id)
            logger.info("[Notify] Client disconnected: %s", connection.connection_id)

    @staticmethod
    def _check_ad_hoc(group: str) -> None:
        if group in {g.value for g in RoleGroup}:
            raise HubError("Role groups are assigned at connect")

    def join_group(self, connection_id: str, group: str) -> bool:
        """Join an ad-hoc group. Role group labels are refused.

        Raises:
            HubError: If *group* is a role group.
        """
        self._check_ad_hoc(group)
        joined = self.registry.join_group(connection_id, group)
        if joined:
            logger.info("[Notify] Connection %s joined group %s", connection_id, group)
        return joined

    def leave_group(self, connection_id: str, group: str) -> bool:
        self._check_ad_hoc(group)
        left = self.registry.leave_group(connection_id, group)
        if left:
            logger.info("[Notify] Connection %s left group %s", connection_id, group)
        return left

    # ------------------------------------------------------------------
    # Broadcasts
    # ------------------------------------------------------------------

    async def send_notification(self, message: str, type: str = "info") -> int:
        count = await self.dispatcher.send_to_all(
            EventType.RECEIVE_NOTIFICATION.value, Notification(message=message, notificationType=type)
        )
        logger.info("Notification broadcast: %s - %s", type, message)
        return count

    async def broadcast_sales_update(self, amount: float, transaction_code: str) -> int:
        count = await self.dispatcher.send_to_group(
            RoleGroup.ADMINS.value,
            EventType.SALES_UPDATED.value,
            SalesUpdate(amount=amount, transactionCode=transaction_code),
        )
        logger.info("Sales update broadcast: %s - %.2f", transaction_code, amount)
        return count

    async def broadcast_stock_update(self, product_id: int, product_name: str, new_stock: int) -> int:
        count = await self.dispatcher.send_to_all(
            EventType.STOCK_UPDATED.value,
            StockUpdate(productId=product_id, productName=product_name, newStock=new_stock),
        )
        logger.info("Stock update broadcast: %s - %d units", product_name, new_stock)
        return count

    async def send_low_stock_alert(
        self, product_id: int, product_name: str, current_stock: int, threshold: int
    ) -> int:
        count = await self.dispatcher.send_to_group(
            RoleGroup.ADMINS.value,
            EventType.LOW_STOCK_ALERT.value,
            LowStockAlert(
                productId=product_id,
                productName=product_name,
                currentStock=current_stock,
                threshold=threshold,
            ),
        )
        logger.warning(
            "Low stock alert: %s - %d units (threshold: %d)", product_name, current_stock, threshold
        )
        return count

    async def send_stock_alert(self, product_name: str, current_stock: int, alert_type: str) -> int:
        count = await self.dispatcher.send_to_group(
            RoleGroup.ADMINS.value,
            EventType.RECEIVE_STOCK_ALERT.value,
            StockAlert(productName=product_name, currentStock=current_stock, alertType=alert_type),
        )
        logger.warning("Stock alert: %s - %d units (%s)", product_name, current_stock, alert_type)
        return count

    async def send_transaction_complete(self, transaction_id: str, amount: float) -> int:
        count = await self.dispatcher.send_to_all(
            EventType.TRANSACTION_COMPLETED.value,
            TransactionCompleted(transactionId=transaction_id, amount=amount),
        )
        logger.info("Transaction completed notification: %s - %.2f", transaction_id, amount)
        return count

    async def send_new_message(
        self, to_user_id: int, from_user_id: int, from_user_name: str, preview: str
    ) -> int:
        count = await self.dispatcher.send_to_user(
            to_user_id,
            EventType.NEW_MESSAGE_RECEIVED.value,
            NewMessageNotice(
                toUserId=to_user_id,
                fromUserId=from_user_id,
                fromUserName=from_user_name,
                messagePreview=preview,
            ),
        )
        logger.info("New message notification sent to user %s from %s", to_user_id, from_user_name)
        return count

    async def broadcast_dashboard_update(self, data: Dict[str, Any]) -> int:
        count = await self.dispatcher.send_to_group(
            RoleGroup.ADMINS.value, EventType.DASHBOARD_UPDATED.value, DashboardUpdate(data=data)
        )
        logger.info("Dashboard update broadcast to Admins")
        return count

    async def send_expiration_alert(
        self, product_id: int, product_name: str, expiry_date: date, days_until_expiry: int
    ) -> int:
        count = await self.dispatcher.send_to_group(
            RoleGroup.ADMINS.value,
            EventType.EXPIRATION_ALERT.value,
            ExpirationAlert(
                productId=product_id,
                productName=product_name,
                expiryDate=expiry_date,
                daysUntilExpiry=days_until_expiry,
            ),
        )
        logger.warning("Expiration alert: %s - %d days until expiry", product_name, days_until_expiry)
        return count
