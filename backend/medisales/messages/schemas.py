"""Pydantic schemas for direct messages between pharmacy users.

These schemas are used by:
    - MessageStore: DuckDB storage layer
    - /api/messages: REST history, read and reply endpoints
    - ChatHub: real-time delivery payloads
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

MAX_MESSAGE_LENGTH = 1000


class MessageStatus(str, Enum):
    """Read state of a message.

    Attributes:
        UNREAD: Not yet read by the recipient.
        READ: Read; ``read_at`` is set.
        ARCHIVED: Retired from conversation views.
    """
    UNREAD = "Unread"
    READ = "Read"
    ARCHIVED = "Archived"


class Message(BaseModel):
    """A persisted chat message.

    ``read_at`` is set if and only if ``message_status`` moved to READ.
    Rows are never physically deleted; ``is_archived`` marks soft deletes.
    """
    message_id: int = Field(..., description="Message ID")
    from_user_id: int = Field(..., description="Sender user ID")
    to_user_id: int = Field(..., description="Recipient user ID")
    message_text: str = Field(..., description="Message body")
    reply_text: Optional[str] = Field(None, description="Latest reply (overwrites earlier replies)")
    message_status: MessageStatus = Field(default=MessageStatus.UNREAD)
    is_read: bool = False
    read_at: Optional[datetime] = None
    is_replied: bool = False
    replied_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    is_archived: bool = False
    archived_at: Optional[datetime] = None


class MessageCreate(BaseModel):
    """Request body for ``POST /api/messages``."""
    from_user_id: int = Field(..., gt=0, description="Sender user ID")
    to_user_id: int = Field(..., gt=0, description="Recipient user ID")
    message_text: str = Field(..., min_length=1, max_length=MAX_MESSAGE_LENGTH)


class MessageReply(BaseModel):
    reply_text: str = Field(..., min_length=1, max_length=MAX_MESSAGE_LENGTH)


class MessageUpdate(BaseModel):
    message_text: str = Field(..., min_length=1, max_length=MAX_MESSAGE_LENGTH)


class UnreadCount(BaseModel):
    user_id: int
    unread_count: int


class ConversationSummary(BaseModel):
    """One row of a user's conversation list, newest first.

    Attributes:
        other_user_id: The conversation partner.
        is_online: Partner's persisted presence flag.
        last_message_text: Text of the most recent non-archived message.
        is_last_message_from_me: True if the caller sent the last message.
        unread_count: Messages from the partner the caller has not read.
    """
    other_user_id: int
    other_username: str = ""
    other_user_full_name: str = ""
    other_user_role: str = ""
    is_online: bool = False
    last_seen_at: Optional[datetime] = None
    last_message_text: str = ""
    last_message_time: datetime
    is_last_message_from_me: bool = False
    unread_count: int = 0
