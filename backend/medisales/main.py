"""MediSales Realtime Backend Application.

Real-time layer of the MediSales pharmacy point-of-sale system: direct chat
between staff and administrators, presence, and inventory/sales
notifications pushed to connected terminals.

Modules:
    - realtime: WebSocket hubs, connection registry, presence and fan-out
    - messages: DuckDB message store and /api/messages history endpoints
    - users: User presence fields and /api/users lookups
    - notifications: /api/notifications triggers for the notification hub

Run with:
    uvicorn medisales.main:create_app --factory
or the ``medisales-realtime`` console script.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from medisales.config import AppConfig, get_config
from medisales.db import Database
from medisales.messages.router import router as messages_router
from medisales.messages.store import MessageStore
from medisales.notifications.router import router as notifications_router
from medisales.realtime.dispatcher import FanoutDispatcher
from medisales.realtime.hub import ChatHub, NotificationHub
from medisales.realtime.presence import PresenceTracker
from medisales.realtime.registry import ConnectionRegistry
from medisales.realtime.router import router as realtime_router
from medisales.users.repository import UserRepository
from medisales.users.router import router as users_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# httpx/httpcore log every request made by the test client.
for _noisy in ("httpx", "httpcore", "uvicorn.access"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    config: AppConfig = app.state.config

    # Apply configured log level to root logger so that
    # `logging.level: "debug"` in medisales.settings.yaml activates DEBUG output.
    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    logger.info(
        f"MediSales realtime running on http://{config.server.host}:{config.server.port}"
    )

    yield  # Application runs here

    # Shutdown
    app.state.db.close()
    logger.info("Application shutdown complete")


def create_app(config: Optional[AppConfig] = None) -> FastAPI:
    """Build the application and the objects it owns.

    Args:
        config: Settings to use. Defaults to the process-wide config loaded
            from ``medisales.settings.yaml``.

    Returns:
        A FastAPI app whose ``state`` holds the database, the user
        repository and both hubs. Each hub has its own connection registry.
    """
    config = config or get_config()

    db = Database(config.database.path)
    users = UserRepository(db)
    messages = MessageStore(db, max_length=config.chat.max_message_length)
    send_timeout = config.chat.send_timeout_seconds

    chat_registry = ConnectionRegistry()
    chat_hub = ChatHub(
        registry=chat_registry,
        presence=PresenceTracker(users),
        dispatcher=FanoutDispatcher(chat_registry, send_timeout=send_timeout),
        messages=messages,
    )

    notification_registry = ConnectionRegistry()
    notification_hub = NotificationHub(
        registry=notification_registry,
        dispatcher=FanoutDispatcher(notification_registry, send_timeout=send_timeout),
        users=users,
    )

    app = FastAPI(
        title="MediSales Realtime API",
        description="Chat, presence and notification fan-out for the MediSales pharmacy POS",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.db = db
    app.state.users = users
    app.state.chat_hub = chat_hub
    app.state.notification_hub = notification_hub

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register all routers
    app.include_router(realtime_router)
    app.include_router(messages_router)
    app.include_router(users_router)
    app.include_router(notifications_router)

    @app.get("/health")
    async def health() -> dict:
        """Health check endpoint.

        Returns:
            dict: Status object with live connection counts per hub.
        """
        return {
            "status": "ok",
            "chat_connections": len(chat_registry),
            "notification_connections": len(notification_registry),
        }

    return app


def main() -> None:
    """Console entry point: serve the app with the configured host and port."""
    config = get_config()
    uvicorn.run(
        "medisales.main:create_app",
        factory=True,
        host=config.server.host,
        port=config.server.port,
    )
