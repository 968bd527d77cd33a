import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from notes_backend.api.core import NotesFacade
from notes_backend.api.main import app, get_sessions
from notes_backend.api.security import SessionRegistry
from notes_database.db import get_db
from notes_database.models import Base
from notes_database.store import JsonFileStore, SqlStore


@pytest.fixture
def store(tmp_path):
    """JSON file store in a fresh temporary data directory."""
    return JsonFileStore(tmp_path / "data")

@pytest.fixture
def sessions():
    return SessionRegistry()

@pytest.fixture
def facade(store, sessions):
    return NotesFacade(store, sessions)

@pytest.fixture(scope="session")
def sqlite_url():
    """Fixture to provide a SQLite in-memory database URL for testing."""
    return "sqlite://"

@pytest.fixture
def engine(sqlite_url):
    """In-memory SQLite engine shared across connections."""
    engine = create_engine(
        sqlite_url, connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()

@pytest.fixture
def sql_store(engine):
    return SqlStore(engine)

@pytest.fixture
def client(store, sessions):
    """Fixture for FastAPI TestClient with store and session overrides."""
    def override_get_db():
        yield store

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_sessions] = lambda: sessions

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()

@pytest.fixture
def user_data():
    """Returns default user data for registration."""
    return {
        "email": "alice@example.com",
        "password": "alicepassword123"
    }

@pytest.fixture
def second_user_data():
    """Returns a second user's data."""
    return {
        "email": "bob@example.com",
        "password": "bobpassword456"
    }

def register_and_auth(client, email, password):
    """Helper for registering then signing in to get a bearer token."""
    r1 = client.post("/auth/signup", json={"email": email, "password": password})
    assert r1.status_code == 201 or r1.status_code == 409

    r2 = client.post("/auth/signin", json={"email": email, "password": password})
    assert r2.status_code == 200
    return r2.json()["access_token"]

@pytest.fixture
def auth_header(client, user_data):
    """Returns {'Authorization': 'Bearer <token>'} for default user."""
    token = register_and_auth(client, user_data["email"], user_data["password"])
    return {"Authorization": f"Bearer {token}"}

@pytest.fixture
def second_auth_header(client, second_user_data):
    """Returns auth header for second user."""
    token = register_and_auth(client, second_user_data["email"], second_user_data["password"])
    return {"Authorization": f"Bearer {token}"}
