"""Conversation room names and role-based groups."""
from enum import Enum
from typing import Optional

from medisales.users.schemas import UserRole

ROOM_PREFIX = "conversation"


class RoleGroup(str, Enum):
    """Static broadcast groups, assigned once per connection at connect."""
    ADMINS = "Admins"
    STAFF = "Staff"


_ROLE_GROUPS = {
    UserRole.ADMINISTRATOR: RoleGroup.ADMINS,
    UserRole.STAFF: RoleGroup.STAFF,
}


def room_name(user_a: int, user_b: int) -> str:
    """Return the canonical room for the unordered pair {user_a, user_b}.

    Both participants must compute the same string regardless of argument
    order, so the IDs are always written smallest first.

    Example:
        >>> room_name(9, 5)
        'conversation_5_9'
    """
    low, high = sorted((int(user_a), int(user_b)))
    return f"{ROOM_PREFIX}_{low}_{high}"


def group_for_role(role: Optional[UserRole]) -> Optional[RoleGroup]:
    if role is None:
        return None
    return _ROLE_GROUPS[UserRole(role)]
