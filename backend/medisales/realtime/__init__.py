"""Real-time connection handling.

Provides:
    - ConnectionRegistry: Live connections with their identity, room and groups.
    - FanoutDispatcher: User, room, group and broadcast delivery.
    - ChatHub / NotificationHub: The two WebSocket endpoints' behaviour.
"""
