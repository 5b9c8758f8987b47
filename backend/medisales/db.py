"""DuckDB-backed storage shared by the user and message stores.

Database Schema:
    users table:
        - user_id: Sequence-generated primary key
        - username / full_name: Display identity
        - role: 'Administrator' or 'Staff'
        - status / is_online_now / last_seen_at: Presence fields
        - is_archived: Archived users cannot connect as an identity
    messages table:
        - message_id: Sequence-generated primary key
        - from_user_id / to_user_id: The unordered conversation pair
        - message_text / reply_text: Bounded text (1000 chars)
        - message_status / is_read / read_at: Read state
        - is_replied / replied_at, is_archived / archived_at

Thread Safety:
    A single DuckDB connection is shared by every store. DuckDB connections
    are NOT thread-safe, so each statement runs under ``self._lock``.

Usage:
    db = Database(":memory:")
    row = db.fetchone("SELECT * FROM users WHERE user_id = ?", [5])
"""
import logging
import threading
from typing import Any, List, Optional, Sequence

import duckdb

logger = logging.getLogger(__name__)

_SCHEMA = (
    "CREATE SEQUENCE IF NOT EXISTS users_seq START 1",
    """
    CREATE TABLE IF NOT EXISTS users (
        user_id       INTEGER DEFAULT nextval('users_seq') PRIMARY KEY,
        username      VARCHAR NOT NULL UNIQUE,
        full_name     VARCHAR NOT NULL,
        role          VARCHAR NOT NULL,
        status        VARCHAR NOT NULL DEFAULT 'Offline',
        is_online_now BOOLEAN NOT NULL DEFAULT FALSE,
        last_seen_at  TIMESTAMP,
        is_archived   BOOLEAN NOT NULL DEFAULT FALSE,
        created_at    TIMESTAMP NOT NULL,
        updated_at    TIMESTAMP NOT NULL
    )
    """,
    "CREATE SEQUENCE IF NOT EXISTS messages_seq START 1",
    """
    CREATE TABLE IF NOT EXISTS messages (
        message_id     INTEGER DEFAULT nextval('messages_seq') PRIMARY KEY,
        from_user_id   INTEGER NOT NULL,
        to_user_id     INTEGER NOT NULL,
        message_text   VARCHAR NOT NULL,
        reply_text     VARCHAR,
        message_status VARCHAR NOT NULL DEFAULT 'Unread',
        is_read        BOOLEAN NOT NULL DEFAULT FALSE,
        read_at        TIMESTAMP,
        is_replied     BOOLEAN NOT NULL DEFAULT FALSE,
        replied_at     TIMESTAMP,
        created_at     TIMESTAMP NOT NULL,
        is_archived    BOOLEAN NOT NULL DEFAULT FALSE,
        archived_at    TIMESTAMP
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_messages_created ON messages(created_at)",
    "CREATE INDEX IF NOT EXISTS idx_messages_to_user ON messages(to_user_id)",
)


class Database:
    """Owns the DuckDB connection and creates the schema on first use.

    Attributes:
        db_path: Path to the DuckDB file, or ``:memory:``.
    """

    def __init__(self, db_path: str = "medisales.duckdb") -> None:
        self.db_path = db_path
        self._lock = threading.Lock()
        self._connection: Optional[duckdb.DuckDBPyConnection] = duckdb.connect(db_path)
        self._initialize_db()
        logger.info("[Database] Initialized with db=%s", db_path)

    def _initialize_db(self) -> None:
        """Create sequences, tables and indexes. Idempotent."""
        with self._lock:
            for statement in _SCHEMA:
                self._conn().execute(statement)

    def _conn(self) -> duckdb.DuckDBPyConnection:
        if self._connection is None:
            raise RuntimeError("Database connection is closed")
        return self._connection

    def execute(self, sql: str, params: Sequence[Any] = ()) -> None:
        with self._lock:
            self._conn().execute(sql, list(params))

    def fetchone(self, sql: str, params: Sequence[Any] = ()) -> Optional[tuple]:
        with self._lock:
            return self._conn().execute(sql, list(params)).fetchone()

    def fetchall(self, sql: str, params: Sequence[Any] = ()) -> List[tuple]:
        with self._lock:
            return self._conn().execute(sql, list(params)).fetchall()

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None
