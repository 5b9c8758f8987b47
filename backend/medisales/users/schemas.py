"""Pydantic schemas for pharmacy users and their presence fields.

Users are owned by the point-of-sale application. This service only reads
them to resolve connection identities and writes the three presence
fields (``status``, ``is_online_now``, ``last_seen_at``) on connect and
disconnect.
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class UserRole(str, Enum):
    """Closed set of roles, matched once at connect time.

    Attributes:
        ADMINISTRATOR: Full system access; receives stock and sales alerts.
        STAFF: Counter staff with limited access.
    """
    ADMINISTRATOR = "Administrator"
    STAFF = "Staff"


class UserStatus(str, Enum):
    ONLINE = "Online"
    OFFLINE = "Offline"


class User(BaseModel):
    """A persisted user row.

    Attributes:
        user_id: Sequence-generated identifier.
        username: Unique login name.
        full_name: Human-readable name shown in conversation lists.
        role: Administrator or Staff.
        status: Online/Offline presence status.
        is_online_now: True only while status is Online.
        last_seen_at: Last connect or disconnect time (UTC).
        is_archived: Archived users cannot be resolved as identities.
    """
    user_id: int = Field(..., description="User ID")
    username: str = Field(..., description="Unique login name")
    full_name: str = Field(..., description="Full name")
    role: UserRole = Field(..., description="Administrator or Staff")
    status: UserStatus = Field(default=UserStatus.OFFLINE, description="Presence status")
    is_online_now: bool = Field(default=False, description="Live presence flag")
    last_seen_at: Optional[datetime] = Field(None, description="Last presence transition (UTC)")
    is_archived: bool = Field(default=False, description="Soft-deleted user")
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class UserCreate(BaseModel):
    """Input schema for inserting a user (seeding and tests)."""
    username: str = Field(..., min_length=1, max_length=50)
    full_name: str = Field(..., min_length=1, max_length=100)
    role: UserRole = Field(default=UserRole.STAFF)


class PresenceRead(BaseModel):
    """Presence snapshot returned by ``GET /api/users/{id}/presence``."""
    user_id: int
    username: str
    full_name: str
    role: UserRole
    status: UserStatus
    is_online_now: bool
    last_seen_at: Optional[datetime] = None
    live_connections: int = Field(0, description="Open sockets for this user in this process")
