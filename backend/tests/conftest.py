"""Shared pytest fixtures for backend tests."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Callable, Iterator

import pytest

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("DATABASE_AUTO_CREATE", "false")

from fastapi.testclient import TestClient
from passlib.context import CryptContext
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from app.config import get_settings
from app.core import security
from app.database import get_db, get_session_factory
from app.main import app
from app.models import Base, Chat, ChatMember, User
from app.monitoring.registry import registry as metrics_registry

security.pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def reset_metrics() -> Iterator[None]:
    metrics_registry.reset()
    yield
    metrics_registry.reset()


@pytest.fixture()
def test_engine() -> Iterator[Engine]:
    """Provide an in-memory SQLite engine for isolated tests."""

    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture()
def session_factory(test_engine) -> sessionmaker[Session]:
    """Return a session factory bound to the test engine."""

    return sessionmaker(bind=test_engine, future=True, expire_on_commit=False)


@pytest.fixture()
def db_session(session_factory) -> Iterator[Session]:
    """Yield a SQLAlchemy session for unit tests."""

    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def media_root(tmp_path) -> Iterator[Path]:
    settings = get_settings()
    original = settings.media_root
    settings.media_root = tmp_path
    try:
        yield tmp_path
    finally:
        settings.media_root = original


@pytest.fixture()
def client(session_factory, media_root) -> Iterator[TestClient]:
    """Yield a FastAPI TestClient with the database dependency overridden."""

    def override_get_db() -> Iterator[Session]:
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def make_user(session_factory) -> Callable[..., User]:
    """Insert a user with a known password and return it."""

    def factory(username: str, *, name: str | None = None, password: str = "secret") -> User:
        with session_factory() as session:
            user = User(
                name=name or username.title(),
                username=username,
                bio="",
                hashed_password=security.get_password_hash(password),
            )
            session.add(user)
            session.commit()
            session.refresh(user)
            return user

    return factory


@pytest.fixture()
def make_chat(session_factory) -> Callable[..., Chat]:
    """Insert a chat whose members are added in the given order."""

    def factory(name: str, member_ids: list[int], *, is_group: bool = False, creator_id: int | None = None) -> Chat:
        with session_factory() as session:
            chat = Chat(name=name, is_group=is_group, creator_id=creator_id)
            chat.members = [ChatMember(user_id=user_id) for user_id in member_ids]
            session.add(chat)
            session.commit()
            session.refresh(chat)
            return chat

    return factory


def auth_headers(user: User) -> dict[str, str]:
    token = security.create_access_token({"sub": str(user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def headers_for() -> Callable[[User], dict[str, str]]:
    return auth_headers
