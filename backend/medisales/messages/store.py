"""Durable message store on DuckDB.

The store is the source of truth for chat history. Real-time delivery is
best-effort and lives in ``medisales.realtime``; anything a recipient misses
on the live channel is still returned here the next time history is fetched.

Error Model:
    - Validation problems raise ``MessageValidationError`` before any write.
    - Unknown message IDs return ``None`` (or ``False``) instead of raising.
    - DuckDB errors propagate: a failed send must be visible to the caller.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional

from medisales.db import Database
from medisales.users.repository import UserRepository

from .schemas import MAX_MESSAGE_LENGTH, ConversationSummary, Message, MessageStatus

logger = logging.getLogger(__name__)


class MessageValidationError(ValueError):
    """Raised when message input is rejected before persistence."""


class MessagePermissionError(PermissionError):
    """Raised when a user acts on a message addressed to someone else."""


_COLUMNS = [
    "message_id", "from_user_id", "to_user_id", "message_text", "reply_text",
    "message_status", "is_read", "read_at", "is_replied", "replied_at",
    "created_at", "is_archived", "archived_at",
]
_SELECT = f"SELECT {', '.join(_COLUMNS)} FROM messages"
_RETURNING = f"RETURNING {', '.join(_COLUMNS)}"


class MessageStore:
    """Creates, reads and updates chat messages.

    Attributes:
        max_length: Upper bound on message and reply text length.
    """

    def __init__(self, db: Database, max_length: int = MAX_MESSAGE_LENGTH) -> None:
        self._db = db
        self.max_length = max_length

    # -----------------------------------------------------------------------
    # Validation
    # -----------------------------------------------------------------------

    def _validate_text(self, text: Optional[str], field: str = "Message text") -> str:
        if not isinstance(text, str) or len(text) < 1:
            raise MessageValidationError(f"{field} is required")
        if len(text) > self.max_length:
            raise MessageValidationError(
                f"{field} cannot exceed {self.max_length} characters"
            )
        return text

    @staticmethod
    def _validate_user_id(user_id: Optional[int], field: str) -> int:
        if isinstance(user_id, bool) or not isinstance(user_id, int) or user_id <= 0:
            raise MessageValidationError(f"{field} is required")
        return user_id

    # -----------------------------------------------------------------------
    # Writes
    # -----------------------------------------------------------------------

    def send(self, from_user_id: int, to_user_id: int, text: str) -> Message:
        """Validate and persist a new Unread message.

        Raises:
            MessageValidationError: Missing ids or text outside 1..max_length.
        """
        self._validate_user_id(from_user_id, "Sender user ID")
        self._validate_user_id(to_user_id, "Recipient user ID")
        self._validate_text(text)

        row = self._db.fetchone(
            f"""
            INSERT INTO messages (from_user_id, to_user_id, message_text,
                                  message_status, is_read, is_replied,
                                  created_at, is_archived)
            VALUES (?, ?, ?, ?, FALSE, FALSE, ?, FALSE)
            {_RETURNING}
            """,
            [from_user_id, to_user_id, text, MessageStatus.UNREAD.value, datetime.utcnow()],
        )
        message = self._row_to_message(row)
        logger.info(
            "[Messages] Saved message %s from user %s to user %s",
            message.message_id, from_user_id, to_user_id,
        )
        return message

    def mark_read(self, message_id: int) -> Optional[Message]:
        """Mark a message Read. Already-read messages are returned unchanged."""
        self._db.execute(
            """
            UPDATE messages
            SET message_status = ?, is_read = TRUE, read_at = ?
            WHERE message_id = ? AND message_status <> ?
            """,
            [MessageStatus.READ.value, datetime.utcnow(), message_id, MessageStatus.READ.value],
        )
        return self.get(message_id)

    def mark_read_by(self, message_id: int, reader_id: int) -> Optional[Message]:
        """Mark read on behalf of *reader_id*, who must be the recipient.

        Raises:
            MessagePermissionError: If *reader_id* is not the recipient.
        """
        message = self.get(message_id)
        if message is None:
            return None
        if message.to_user_id != reader_id:
            raise MessagePermissionError("You can only mark messages sent to you as read.")
        return self.mark_read(message_id)

    def reply(self, message_id: int, reply_text: str) -> Optional[Message]:
        """Attach a reply. A later reply overwrites the earlier one."""
        self._validate_text(reply_text, "Reply text")
        row = self._db.fetchone(
            f"""
            UPDATE messages
            SET reply_text = ?, is_replied = TRUE, replied_at = ?
            WHERE message_id = ?
            {_RETURNING}
            """,
            [reply_text, datetime.utcnow(), message_id],
        )
        return self._row_to_message(row) if row else None

    def update_text(self, message_id: int, text: str) -> Optional[Message]:
        self._validate_text(text)
        row = self._db.fetchone(
            f"UPDATE messages SET message_text = ? WHERE message_id = ? {_RETURNING}",
            [text, message_id],
        )
        return self._row_to_message(row) if row else None

    def archive(self, message_id: int) -> bool:
        """Soft-delete a message. Returns False if it does not exist."""
        row = self._db.fetchone(
            """
            UPDATE messages SET is_archived = TRUE, archived_at = ?
            WHERE message_id = ?
            RETURNING message_id
            """,
            [datetime.utcnow(), message_id],
        )
        return row is not None

    # -----------------------------------------------------------------------
    # Reads
    # -----------------------------------------------------------------------

    def get(self, message_id: int) -> Optional[Message]:
        row = self._db.fetchone(f"{_SELECT} WHERE message_id = ?", [message_id])
        return self._row_to_message(row) if row else None

    def unread_count(self, user_id: int) -> int:
        row = self._db.fetchone(
            """
            SELECT COUNT(*) FROM messages
            WHERE to_user_id = ? AND message_status = ? AND NOT is_archived
            """,
            [user_id, MessageStatus.UNREAD.value],
        )
        return int(row[0]) if row else 0

    def get_messages_for_user(self, user_id: int, limit: Optional[int] = None) -> List[Message]:
        """Messages sent or received by a user, newest first, at most *limit*."""
        sql = f"""
            {_SELECT}
            WHERE from_user_id = ? OR to_user_id = ?
            ORDER BY created_at DESC, message_id DESC
            """
        if limit is not None:
            sql += f" LIMIT {int(limit)}"
        rows = self._db.fetchall(sql, [user_id, user_id])
        return [self._row_to_message(r) for r in rows]

    def get_conversation(
        self, user_id: int, other_user_id: int, mark_read: bool = True
    ) -> List[Message]:
        """Non-archived messages between two users, oldest first.

        When *mark_read* is set, messages addressed to *user_id* that are still
        unread are marked read in one statement before the history is returned.
        """
        if mark_read:
            self._db.execute(
                """
                UPDATE messages
                SET message_status = ?, is_read = TRUE, read_at = ?
                WHERE to_user_id = ? AND from_user_id = ?
                  AND message_status = ? AND NOT is_archived
                """,
                [
                    MessageStatus.READ.value, datetime.utcnow(),
                    user_id, other_user_id, MessageStatus.UNREAD.value,
                ],
            )
        rows = self._db.fetchall(
            f"""
            {_SELECT}
            WHERE ((from_user_id = ? AND to_user_id = ?)
                OR (from_user_id = ? AND to_user_id = ?))
              AND NOT is_archived
            ORDER BY created_at ASC, message_id ASC
            """,
            [user_id, other_user_id, other_user_id, user_id],
        )
        return [self._row_to_message(r) for r in rows]

    def list_conversations(
        self, user_id: int, users: UserRepository
    ) -> List[ConversationSummary]:
        """Summarise every conversation partner of *user_id*, newest first.

        Partners whose user row no longer exists are skipped.
        """
        rows = self._db.fetchall(
            f"""
            {_SELECT}
            WHERE (from_user_id = ? OR to_user_id = ?) AND NOT is_archived
            ORDER BY created_at DESC, message_id DESC
            """,
            [user_id, user_id],
        )
        latest: Dict[int, Message] = {}
        unread: Dict[int, int] = {}
        for message in (self._row_to_message(r) for r in rows):
            other_id = message.to_user_id if message.from_user_id == user_id else message.from_user_id
            latest.setdefault(other_id, message)
            if message.to_user_id == user_id and not message.is_read:
                unread[other_id] = unread.get(other_id, 0) + 1

        summaries: List[ConversationSummary] = []
        for other_id, last in latest.items():
            other = users.find_user_by_id(other_id)
            if other is None:
                continue
            summaries.append(ConversationSummary(
                other_user_id=other_id,
                other_username=other.username,
                other_user_full_name=other.full_name,
                other_user_role=other.role.value,
                is_online=other.is_online_now,
                last_seen_at=other.last_seen_at,
                last_message_text=last.message_text,
                last_message_time=last.created_at,
                is_last_message_from_me=last.from_user_id == user_id,
                unread_count=unread.get(other_id, 0),
            ))
        return summaries

    # -----------------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------------

    def _row_to_message(self, row: tuple) -> Message:
        d = dict(zip(_COLUMNS, row))
        d["message_status"] = MessageStatus(d["message_status"])
        return Message(**d)
