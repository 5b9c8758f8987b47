"""Shared test fixtures and configuration for backend tests."""
import pytest
from fastapi.testclient import TestClient

from medisales.config import AppConfig, DatabaseSettings
from medisales.db import Database
from medisales.main import create_app
from medisales.messages.store import MessageStore
from medisales.users.repository import UserRepository
from medisales.users.schemas import UserCreate, UserRole


@pytest.fixture
def db():
    """An in-memory database with the full schema."""
    database = Database(":memory:")
    yield database
    database.close()


@pytest.fixture
def users(db):
    return UserRepository(db)


@pytest.fixture
def store(db):
    return MessageStore(db)


@pytest.fixture
def admin(users):
    return users.create_user(
        UserCreate(username="admin", full_name="Alice Admin", role=UserRole.ADMINISTRATOR)
    )


@pytest.fixture
def staff(users):
    return users.create_user(
        UserCreate(username="cashier", full_name="Bob Cashier", role=UserRole.STAFF)
    )


@pytest.fixture
def app():
    """A fresh application on an in-memory database."""
    return create_app(AppConfig(database=DatabaseSettings(path=":memory:")))


@pytest.fixture
def api_client(app):
    """Provide a TestClient for the app.

    Used as a context manager so the lifespan runs and every WebSocket
    session shares the client's event loop.
    """
    with TestClient(app) as client:
        yield client


@pytest.fixture
def app_users(app):
    """Create one administrator and two staff users in the app's database.

    Returns:
        dict: ``{"admin": User, "staff": User, "staff2": User}``
    """
    repo = app.state.users
    return {
        "admin": repo.create_user(
            UserCreate(username="admin", full_name="Alice Admin", role=UserRole.ADMINISTRATOR)
        ),
        "staff": repo.create_user(
            UserCreate(username="cashier", full_name="Bob Cashier", role=UserRole.STAFF)
        ),
        "staff2": repo.create_user(
            UserCreate(username="cashier2", full_name="Carol Cashier", role=UserRole.STAFF)
        ),
    }
