"""Tests for fan-out delivery."""
import asyncio

import pytest

from medisales.realtime.dispatcher import FanoutDispatcher, build_envelope
from medisales.realtime.events import UserTyping
from medisales.realtime.registry import ConnectionRegistry
from medisales.users.schemas import UserRole


class RecordingTransport:
    def __init__(self):
        self.sent = []

    async def send_json(self, message):
        self.sent.append(message)


class BrokenTransport:
    async def send_json(self, message):
        raise ConnectionResetError("socket closed")


class SlowTransport:
    async def send_json(self, message):
        await asyncio.sleep(10)


@pytest.fixture
def registry():
    return ConnectionRegistry()


def test_build_envelope_from_model():
    envelope = build_envelope("user_typing", UserTyping(userId=5, isTyping=True, room="conversation_5_9"))
    assert envelope == {
        "type": "user_typing",
        "userId": 5,
        "isTyping": True,
        "room": "conversation_5_9",
    }


def test_build_envelope_without_payload():
    assert build_envelope("pong") == {"type": "pong"}


class TestAddressing:
    """Tests for user, room, group and broadcast delivery."""

    @pytest.mark.asyncio
    async def test_send_to_user_reaches_every_tab(self, registry):
        tab1, tab2, other = RecordingTransport(), RecordingTransport(), RecordingTransport()
        registry.on_connect("tab1", 9, tab1)
        registry.on_connect("tab2", 9, tab2)
        registry.on_connect("other", 5, other)

        delivered = await FanoutDispatcher(registry).send_to_user(9, "receive_message", {"message": "hi"})

        assert delivered == 2
        assert tab1.sent == tab2.sent == [{"type": "receive_message", "message": "hi"}]
        assert other.sent == []

    @pytest.mark.asyncio
    async def test_send_to_users_collapses_duplicates(self, registry):
        transport = RecordingTransport()
        registry.on_connect("c1", 5, transport)

        delivered = await FanoutDispatcher(registry).send_to_users([5, 5], "receive_message")

        assert delivered == 1
        assert len(transport.sent) == 1

    @pytest.mark.asyncio
    async def test_offline_target_is_silent_drop(self, registry):
        assert await FanoutDispatcher(registry).send_to_user(42, "receive_message") == 0

    @pytest.mark.asyncio
    async def test_send_to_room_excludes_sender(self, registry):
        sender, peer = RecordingTransport(), RecordingTransport()
        registry.on_connect("c5", 5, sender)
        registry.on_connect("c9", 9, peer)
        registry.join_room("c5", "conversation_5_9")
        registry.join_room("c9", "conversation_5_9")

        delivered = await FanoutDispatcher(registry).send_to_room(
            "conversation_5_9", "user_typing", exclude_connection_id="c5"
        )

        assert delivered == 1
        assert sender.sent == []
        assert peer.sent == [{"type": "user_typing"}]

    @pytest.mark.asyncio
    async def test_send_to_group_only_reaches_members(self, registry):
        admin, staff = RecordingTransport(), RecordingTransport()
        registry.on_connect("a", 1, admin, UserRole.ADMINISTRATOR)
        registry.on_connect("s", 2, staff, UserRole.STAFF)

        delivered = await FanoutDispatcher(registry).send_to_group("Admins", "low_stock_alert")

        assert delivered == 1
        assert len(admin.sent) == 1
        assert staff.sent == []

    @pytest.mark.asyncio
    async def test_send_to_all_includes_anonymous(self, registry):
        named, anonymous = RecordingTransport(), RecordingTransport()
        registry.on_connect("n", 1, named)
        registry.on_connect("x", None, anonymous)

        assert await FanoutDispatcher(registry).send_to_all("stock_updated") == 2


class TestFailureIsolation:
    """A failing or slow recipient only loses its own copy."""

    @pytest.mark.asyncio
    async def test_broken_transport_does_not_block_others(self, registry):
        good = RecordingTransport()
        registry.on_connect("bad", 1, BrokenTransport())
        registry.on_connect("good", 2, good)

        delivered = await FanoutDispatcher(registry).send_to_all("receive_notification")

        assert delivered == 1
        assert good.sent == [{"type": "receive_notification"}]

    @pytest.mark.asyncio
    async def test_slow_transport_times_out(self, registry):
        good = RecordingTransport()
        registry.on_connect("slow", 1, SlowTransport())
        registry.on_connect("good", 2, good)

        delivered = await FanoutDispatcher(registry, send_timeout=0.05).send_to_all("stock_updated")

        assert delivered == 1
        assert len(good.sent) == 1
