"""User persistence on top of the shared DuckDB database."""
import logging
from datetime import datetime
from typing import List, Optional

from medisales.db import Database

from .schemas import User, UserCreate, UserRole, UserStatus

logger = logging.getLogger(__name__)

_COLUMNS = [
    "user_id", "username", "full_name", "role", "status", "is_online_now",
    "last_seen_at", "is_archived", "created_at", "updated_at",
]
_SELECT = f"SELECT {', '.join(_COLUMNS)} FROM users"


class UserRepository:
    """Reads users and writes their presence fields."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def create_user(self, data: UserCreate) -> User:
        now = datetime.utcnow()
        row = self._db.fetchone(
            f"""
            INSERT INTO users (username, full_name, role, status, is_online_now,
                               is_archived, created_at, updated_at)
            VALUES (?, ?, ?, ?, FALSE, FALSE, ?, ?)
            RETURNING {', '.join(_COLUMNS)}
            """,
            [data.username, data.full_name, data.role.value, UserStatus.OFFLINE.value, now, now],
        )
        user = self._row_to_user(row)
        logger.info("[Users] Created user %s (%s, %s)", user.user_id, user.username, user.role.value)
        return user

    def find_user_by_id(self, user_id: int) -> Optional[User]:
        row = self._db.fetchone(f"{_SELECT} WHERE user_id = ?", [user_id])
        return self._row_to_user(row) if row else None

    def find_user_by_username(self, username: str) -> Optional[User]:
        row = self._db.fetchone(f"{_SELECT} WHERE username = ?", [username])
        return self._row_to_user(row) if row else None

    def save_user(self, user: User) -> User:
        """Persist the mutable presence fields of *user* in a single write.

        Raises:
            LookupError: If the row no longer exists.
        """
        user.updated_at = datetime.utcnow()
        row = self._db.fetchone(
            """
            UPDATE users
            SET status = ?, is_online_now = ?, last_seen_at = ?, updated_at = ?
            WHERE user_id = ?
            RETURNING user_id
            """,
            [user.status.value, user.is_online_now, user.last_seen_at, user.updated_at, user.user_id],
        )
        if row is None:
            raise LookupError(f"User {user.user_id} not found")
        return user

    def archive_user(self, user_id: int) -> bool:
        row = self._db.fetchone(
            "UPDATE users SET is_archived = TRUE, updated_at = ? WHERE user_id = ? RETURNING user_id",
            [datetime.utcnow(), user_id],
        )
        return row is not None

    def list_online_users(self) -> List[User]:
        rows = self._db.fetchall(
            f"{_SELECT} WHERE is_online_now AND NOT is_archived ORDER BY full_name ASC"
        )
        return [self._row_to_user(r) for r in rows]

    def _row_to_user(self, row: tuple) -> User:
        d = dict(zip(_COLUMNS, row))
        d["role"] = UserRole(d["role"])
        d["status"] = UserStatus(d["status"])
        return User(**d)
