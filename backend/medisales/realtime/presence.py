"""Online/offline presence driven by connection lifecycle events.

Presence is advisory. Two tabs for the same user race freely and the last
write wins; a disconnect in one tab marks the user offline even if another
tab is still open. Failures while going offline are logged and swallowed
so they can never block connection teardown.
"""
import logging
from datetime import datetime
from typing import Optional

from medisales.users.repository import UserRepository
from medisales.users.schemas import UserRole, UserStatus

logger = logging.getLogger(__name__)


class PresenceTracker:
    """Writes ``status``, ``is_online_now`` and ``last_seen_at`` for a user."""

    def __init__(self, users: UserRepository) -> None:
        self._users = users

    def mark_online(self, user_id: int) -> Optional[UserRole]:
        """Flip a user online and return their role.

        Returns:
            The user's role, or None if the identity cannot be resolved
            (unknown or archived user). Nothing is written in that case.
        """
        user = self._users.find_user_by_id(user_id)
        if user is None or user.is_archived:
            logger.warning("[Presence] User %s not found; connection stays anonymous", user_id)
            return None

        user.status = UserStatus.ONLINE
        user.is_online_now = True
        user.last_seen_at = datetime.utcnow()
        self._users.save_user(user)
        logger.info("[Presence] User %s (%s) is online", user_id, user.full_name)
        return user.role

    def mark_offline(self, user_id: int) -> bool:
        """Flip a user offline. Never raises.

        Returns:
            True if the offline state was persisted.
        """
        try:
            user = self._users.find_user_by_id(user_id)
            if user is None:
                return False
            user.status = UserStatus.OFFLINE
            user.is_online_now = False
            user.last_seen_at = datetime.utcnow()
            self._users.save_user(user)
        except Exception:
            logger.exception("[Presence] Failed to persist offline state for user %s", user_id)
            return False
        logger.info("[Presence] User %s is offline", user_id)
        return True
