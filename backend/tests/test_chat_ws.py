"""Tests for the /ws/chat WebSocket endpoint.

Every socket is opened from a TestClient used as a context manager, so all
sessions share one event loop and frames are observed in send order.
"""


def connect(client, user_id=None):
    headers = {"X-User-Id": str(user_id)} if user_id is not None else {}
    return client.websocket_connect("/ws/chat", headers=headers)


def receive_connected(ws):
    """Helper to receive and validate the connect frame."""
    connected = ws.receive_json()
    assert connected["type"] == "connected"
    assert connected["connectionId"]
    return connected


def assert_nothing_pending(ws):
    """The next frame after a ping must be the pong."""
    ws.send_json({"type": "ping"})
    assert ws.receive_json() == {"type": "pong"}


def test_connect_frame_carries_identity_and_role_group(api_client, app_users):
    admin = app_users["admin"]

    with connect(api_client, admin.user_id) as ws:
        connected = receive_connected(ws)

    assert connected["userId"] == admin.user_id
    assert connected["groups"] == ["Admins"]


def test_identity_from_query_parameter(api_client, app_users):
    staff = app_users["staff"]

    with api_client.websocket_connect(f"/ws/chat?userId={staff.user_id}") as ws:
        connected = receive_connected(ws)

    assert connected["userId"] == staff.user_id
    assert connected["groups"] == ["Staff"]


def test_full_conversation_flow(api_client, app_users):
    admin, staff = app_users["admin"], app_users["staff"]
    room = f"conversation_{min(admin.user_id, staff.user_id)}_{max(admin.user_id, staff.user_id)}"

    with connect(api_client, admin.user_id) as ws_admin, connect(api_client, staff.user_id) as ws_staff:
        receive_connected(ws_admin)
        receive_connected(ws_staff)

        # Both sides compute the same room
        ws_admin.send_json({"type": "join_conversation", "otherUserId": staff.user_id})
        assert ws_admin.receive_json() == {"type": "conversation_joined", "room": room}
        ws_staff.send_json({"type": "join_conversation", "otherUserId": admin.user_id})
        assert ws_staff.receive_json() == {"type": "conversation_joined", "room": room}

        # Message goes to the recipient and is echoed to the sender
        ws_admin.send_json({"type": "send_message", "toUserId": staff.user_id, "message": "Restock aisle 3"})
        echo = ws_admin.receive_json()
        received = ws_staff.receive_json()
        assert echo == received
        assert received["type"] == "receive_message"
        assert received["fromUserId"] == admin.user_id
        assert received["toUserId"] == staff.user_id
        assert received["message"] == "Restock aisle 3"
        message_id = received["messageId"]

        # Typing reaches the peer but not the typist
        ws_staff.send_json({"type": "typing", "otherUserId": admin.user_id, "isTyping": True})
        typing = ws_admin.receive_json()
        assert typing == {"type": "user_typing", "userId": staff.user_id, "isTyping": True, "room": room}
        assert_nothing_pending(ws_staff)

        # Read receipt goes back to the sender
        ws_staff.send_json({"type": "mark_read", "messageId": message_id})
        receipt = ws_admin.receive_json()
        assert receipt["type"] == "message_read"
        assert receipt["messageId"] == message_id
        assert receipt["readBy"] == staff.user_id
        assert receipt["readAt"] is not None

        ws_staff.send_json({"type": "leave_conversation"})
        assert ws_staff.receive_json() == {"type": "conversation_left", "room": room}

    stored = api_client.get(f"/api/messages/{message_id}").json()
    assert stored["message_status"] == "Read"


def test_message_to_offline_user_is_kept(api_client, app_users):
    admin, staff2 = app_users["admin"], app_users["staff2"]

    with connect(api_client, admin.user_id) as ws:
        receive_connected(ws)
        ws.send_json({"type": "send_message", "toUserId": staff2.user_id, "message": "Call me back"})
        echo = ws.receive_json()
        assert echo["type"] == "receive_message"

    stored = api_client.get(f"/api/messages/user/{staff2.user_id}").json()
    assert [m["message_id"] for m in stored] == [echo["messageId"]]
    assert stored[0]["message_status"] == "Unread"

    history = api_client.get(
        f"/api/messages/conversation/{admin.user_id}", params={"currentUserId": staff2.user_id}
    ).json()
    assert [m["message_text"] for m in history] == ["Call me back"]


def test_invalid_message_returns_error_frame(api_client, app_users):
    admin, staff = app_users["admin"], app_users["staff"]

    with connect(api_client, admin.user_id) as ws:
        receive_connected(ws)
        ws.send_json({"type": "send_message", "toUserId": staff.user_id, "message": ""})
        error = ws.receive_json()
        assert error["type"] == "error"
        assert "required" in error["error"]

        ws.send_json({"type": "send_message", "toUserId": staff.user_id, "message": "x" * 1001})
        assert ws.receive_json()["type"] == "error"

        # The socket stays usable
        assert_nothing_pending(ws)

    assert api_client.get("/api/messages", params={"userId": admin.user_id}).json() == []


def test_malformed_frames(api_client, app_users):
    with connect(api_client, app_users["staff"].user_id) as ws:
        receive_connected(ws)

        ws.send_text("not json")
        assert ws.receive_json()["type"] == "error"

        ws.send_json({"type": "launch_rockets"})
        assert "Unknown frame type" in ws.receive_json()["error"]

        ws.send_json({"type": "join_conversation"})
        assert ws.receive_json() == {"type": "error", "error": "otherUserId is required"}

        assert_nothing_pending(ws)


def test_anonymous_connection_can_only_ping(api_client, app_users):
    with connect(api_client) as ws:
        connected = receive_connected(ws)
        assert connected["userId"] is None
        assert connected["groups"] == []

        ws.send_json({"type": "send_message", "toUserId": app_users["staff"].user_id, "message": "hi"})
        assert ws.receive_json() == {"type": "error", "error": "Authentication required"}

        assert_nothing_pending(ws)


def test_unknown_user_is_anonymous(api_client, app_users):
    with connect(api_client, 9999) as ws:
        assert receive_connected(ws)["userId"] is None


def test_presence_follows_connection(api_client, app_users):
    staff = app_users["staff"]

    with connect(api_client, staff.user_id) as ws:
        receive_connected(ws)
        presence = api_client.get(f"/api/users/{staff.user_id}/presence").json()
        assert presence["is_online_now"] is True
        assert presence["status"] == "Online"
        assert presence["live_connections"] == 1

    presence = api_client.get(f"/api/users/{staff.user_id}/presence").json()
    assert presence["is_online_now"] is False
    assert presence["status"] == "Offline"
    assert presence["live_connections"] == 0
    assert presence["last_seen_at"] is not None


def test_two_tabs_receive_and_last_disconnect_wins(api_client, app_users):
    admin, staff = app_users["admin"], app_users["staff"]

    with connect(api_client, admin.user_id) as ws_admin, connect(api_client, staff.user_id) as tab1:
        receive_connected(ws_admin)
        receive_connected(tab1)

        with connect(api_client, staff.user_id) as tab2:
            receive_connected(tab2)
            ws_admin.send_json({"type": "send_message", "toUserId": staff.user_id, "message": "both tabs"})
            ws_admin.receive_json()
            assert tab1.receive_json()["message"] == "both tabs"
            assert tab2.receive_json()["message"] == "both tabs"

        # One tab closing marks the user offline, the other still receives
        presence = api_client.get(f"/api/users/{staff.user_id}/presence").json()
        assert presence["is_online_now"] is False
        assert presence["live_connections"] == 1

        ws_admin.send_json({"type": "send_message", "toUserId": staff.user_id, "message": "still here"})
        ws_admin.receive_json()
        assert tab1.receive_json()["message"] == "still here"


def test_chat_and_notification_sockets_are_separate(api_client, app_users):
    admin, staff = app_users["admin"], app_users["staff"]

    with api_client.websocket_connect(
        "/ws/notifications", headers={"X-User-Id": str(staff.user_id)}
    ) as notifications, connect(api_client, admin.user_id) as ws_admin:
        receive_connected(notifications)
        receive_connected(ws_admin)

        ws_admin.send_json({"type": "send_message", "toUserId": staff.user_id, "message": "chat only"})
        ws_admin.receive_json()

        assert_nothing_pending(notifications)
