"""FastAPI dependencies that hand out the objects owned by ``app.state``."""
from starlette.requests import HTTPConnection

from medisales.config import AppConfig
from medisales.messages.store import MessageStore
from medisales.realtime.hub import ChatHub, NotificationHub
from medisales.users.repository import UserRepository


def get_chat_hub(connection: HTTPConnection) -> ChatHub:
    return connection.app.state.chat_hub


def get_notification_hub(connection: HTTPConnection) -> NotificationHub:
    return connection.app.state.notification_hub


def get_message_store(connection: HTTPConnection) -> MessageStore:
    return connection.app.state.chat_hub.messages


def get_user_repository(connection: HTTPConnection) -> UserRepository:
    return connection.app.state.users


def get_app_config(connection: HTTPConnection) -> AppConfig:
    return connection.app.state.config
