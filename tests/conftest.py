from pathlib import Path

from dotenv import load_dotenv

env_file = Path(__file__).parent.parent / ".env.test"
load_dotenv(env_file)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.db import base  # noqa: E402, F401
from app.db.session import Base, get_db, get_session_factory  # noqa: E402
from app.main import app  # noqa: E402
from app.realtime.manager import (  # noqa: E402
    ConnectionManager,
    get_broadcaster,
    get_connection_manager,
)
from tests.utils.factories import (  # noqa: E402
    create_conversation_factory,
    create_report_factory,
    create_user_factory,
)
from tests.utils.helpers import RecordingBroadcaster, create_user_token  # noqa: E402


@pytest.fixture
def memory_engine():
    """In-memory SQLite shared by every thread of a test through a single connection."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db_session(memory_engine):
    session_factory = sessionmaker(bind=memory_engine, autocommit=False, autoflush=False)
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture
async def test_app(db_session, broadcaster):
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_broadcaster] = lambda: broadcaster

    yield app

    app.dependency_overrides.clear()


@pytest.fixture
async def test_client(test_app):
    async with AsyncClient(transport=ASGITransport(app=test_app), base_url="http://test") as client:
        yield client


@pytest.fixture
def connection_manager():
    return ConnectionManager()


@pytest.fixture
def ws_client(memory_engine, db_session, connection_manager):
    """Synchronous client for WebSocket tests, backed by a fresh connection registry."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_connection_manager] = lambda: connection_manager
    app.dependency_overrides[get_session_factory] = lambda: sessionmaker(
        bind=memory_engine, autocommit=False, autoflush=False
    )

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def owner(db_session):
    return create_user_factory(db_session, email="owner@example.com", name="Olga Owner")


@pytest.fixture
def requester(db_session):
    return create_user_factory(db_session, email="finder@example.com", name="Felix Finder")


@pytest.fixture
def outsider(db_session):
    return create_user_factory(db_session, email="outsider@example.com")


@pytest.fixture
def test_admin(db_session):
    return create_user_factory(db_session, email="admin@example.com", role="admin")


@pytest.fixture
def report(db_session, owner):
    return create_report_factory(db_session, owner, title="Black umbrella in library")


@pytest.fixture
def conversation(db_session, report, requester):
    return create_conversation_factory(db_session, report, requester)


@pytest.fixture
def owner_token(owner):
    return create_user_token(owner)


@pytest.fixture
def requester_token(requester):
    return create_user_token(requester)


@pytest.fixture
def outsider_token(outsider):
    return create_user_token(outsider)


@pytest.fixture
def test_admin_token(test_admin):
    return create_user_token(test_admin)
