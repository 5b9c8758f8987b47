"""Tests for presence tracking."""
from datetime import datetime

from medisales.realtime.presence import PresenceTracker
from medisales.users.schemas import UserRole, UserStatus


def test_mark_online_sets_all_presence_fields(users, staff):
    before = datetime.utcnow()
    tracker = PresenceTracker(users)

    role = tracker.mark_online(staff.user_id)

    user = users.find_user_by_id(staff.user_id)
    assert role == UserRole.STAFF
    assert user.status == UserStatus.ONLINE
    assert user.is_online_now is True
    assert user.last_seen_at >= before


def test_mark_offline_clears_flag_and_updates_last_seen(users, admin):
    tracker = PresenceTracker(users)
    tracker.mark_online(admin.user_id)
    online_at = users.find_user_by_id(admin.user_id).last_seen_at

    assert tracker.mark_offline(admin.user_id) is True

    user = users.find_user_by_id(admin.user_id)
    assert user.status == UserStatus.OFFLINE
    assert user.is_online_now is False
    assert user.last_seen_at >= online_at


def test_unknown_user_is_not_written(users):
    tracker = PresenceTracker(users)
    assert tracker.mark_online(999) is None
    assert tracker.mark_offline(999) is False


def test_archived_user_stays_anonymous(users, staff):
    users.archive_user(staff.user_id)
    tracker = PresenceTracker(users)

    assert tracker.mark_online(staff.user_id) is None
    assert users.find_user_by_id(staff.user_id).is_online_now is False


def test_online_users_listing(users, admin, staff):
    tracker = PresenceTracker(users)
    tracker.mark_online(staff.user_id)

    assert [u.user_id for u in users.list_online_users()] == [staff.user_id]


class FailingRepository:
    """Resolves users but cannot persist them."""

    def __init__(self, real):
        self._real = real

    def find_user_by_id(self, user_id):
        return self._real.find_user_by_id(user_id)

    def save_user(self, user):
        raise RuntimeError("database is locked")


def test_mark_offline_swallows_persistence_errors(users, staff):
    tracker = PresenceTracker(FailingRepository(users))
    assert tracker.mark_offline(staff.user_id) is False
