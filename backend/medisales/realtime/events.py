"""Event names and payload schemas for the real-time channels.

Every frame sent to a client is ``{"type": <EventType>, **payload}``.
Field names are camelCase to match the point-of-sale frontend. Notification
payloads are produced by the inventory and sales subsystems and are carried
through without interpretation.
"""
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Server -> client event names."""
    CONNECTED = "connected"
    ERROR = "error"
    PONG = "pong"
    # Chat
    RECEIVE_MESSAGE = "receive_message"
    MESSAGE_READ = "message_read"
    USER_TYPING = "user_typing"
    CONVERSATION_JOINED = "conversation_joined"
    CONVERSATION_LEFT = "conversation_left"
    # Notifications
    RECEIVE_NOTIFICATION = "receive_notification"
    SALES_UPDATED = "sales_updated"
    STOCK_UPDATED = "stock_updated"
    LOW_STOCK_ALERT = "low_stock_alert"
    RECEIVE_STOCK_ALERT = "receive_stock_alert"
    TRANSACTION_COMPLETED = "transaction_completed"
    NEW_MESSAGE_RECEIVED = "new_message_received"
    DASHBOARD_UPDATED = "dashboard_updated"
    EXPIRATION_ALERT = "expiration_alert"
    GROUP_JOINED = "group_joined"
    GROUP_LEFT = "group_left"


class ClientFrame(str, Enum):
    """Client -> server frame types."""
    SEND_MESSAGE = "send_message"
    JOIN_CONVERSATION = "join_conversation"
    LEAVE_CONVERSATION = "leave_conversation"
    TYPING = "typing"
    MARK_READ = "mark_read"
    JOIN_GROUP = "join_group"
    LEAVE_GROUP = "leave_group"
    PING = "ping"


# =============================================================================
# Connection / chat payloads
# =============================================================================


class Connected(BaseModel):
    connectionId: str
    userId: Optional[int] = None
    groups: List[str] = Field(default_factory=list)


class ErrorPayload(BaseModel):
    error: str


class ReceiveMessage(BaseModel):
    """Delivered to the recipient and echoed to the sender after a send."""
    messageId: int
    fromUserId: int
    toUserId: int
    message: str
    createdAt: datetime


class MessageRead(BaseModel):
    """Read receipt delivered to the original sender."""
    messageId: int
    readBy: int
    readAt: Optional[datetime] = None


class UserTyping(BaseModel):
    userId: int
    isTyping: bool
    room: str


class ConversationRoom(BaseModel):
    room: Optional[str] = None


class GroupMembership(BaseModel):
    group: str


# =============================================================================
# Notification payloads
# =============================================================================


class Notification(BaseModel):
    """``type`` is taken by the envelope, so the category travels as ``notificationType``."""
    message: str = Field(..., min_length=1)
    notificationType: str = Field(default="info", description="Severity or category label")
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class SalesUpdate(BaseModel):
    amount: float
    transactionCode: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class StockUpdate(BaseModel):
    productId: int
    productName: str
    newStock: int


class LowStockAlert(BaseModel):
    productId: int
    productName: str
    currentStock: int
    threshold: int


class StockAlert(BaseModel):
    productName: str
    currentStock: int
    alertType: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class TransactionCompleted(BaseModel):
    transactionId: str
    amount: float


class NewMessageNotice(BaseModel):
    toUserId: int
    fromUserId: int
    fromUserName: str
    messagePreview: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class DashboardUpdate(BaseModel):
    data: Dict[str, Any] = Field(default_factory=dict)


class ExpirationAlert(BaseModel):
    productId: int
    productName: str
    expiryDate: date
    daysUntilExpiry: int
