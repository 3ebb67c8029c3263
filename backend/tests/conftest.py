import os

from fastapi.testclient import TestClient
import pytest
from sqlalchemy.orm import Session

# Ensure tests run against an in-memory database without any external services.
ENV_DEFAULTS = {
    "APP_NAME": "RepoScope Backend",
    "ENV": "test",
    "DATABASE_URL": "sqlite:///:memory:",
    "GITHUB_CLIENT_ID": "test-client-id",
    "GITHUB_CLIENT_SECRET": "test-client-secret",
    "GITHUB_OAUTH_REDIRECT_URI": "http://localhost:8000/api/v1/auth/callback",
    "FRONTEND_URL": "http://localhost:3000",
    "OPENROUTER_API_KEY": "test-openrouter",
    "JWT_SECRET": "test-secret",
    "JWT_ACCESS_TTL_MINUTES": "15",
}

for key, value in ENV_DEFAULTS.items():
    os.environ.setdefault(key, value)

from reposcope.config import settings
from reposcope.db import Base, Repository, User
from reposcope.db.session import SessionLocal, engine
from reposcope.main import app
from reposcope.services.tokens import create_access_token


@pytest.fixture(autouse=True)
def database_schema():
    Base.metadata.create_all(engine)
    yield
    Base.metadata.drop_all(engine)


@pytest.fixture(autouse=True)
def no_redis(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(settings, "redis_url", None)


@pytest.fixture()
def client() -> TestClient:
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def db_session() -> Session:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def user(db_session: Session) -> User:
    row = User(open_id="github:900000001", name="Octo Cat", role="user", github_username="octocat", github_id="900000001")
    db_session.add(row)
    db_session.commit()
    return row


@pytest.fixture()
def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture()
def make_repository(db_session: Session, user: User):
    counter = {"next": 1}

    def _make(name: str | None = None, owner_id: int | None = None, **fields) -> Repository:
        index = counter["next"]
        counter["next"] += 1
        name = name or f"repo-{index}"
        repo = Repository(
            user_id=owner_id or user.id,
            github_id=str(1000 + index),
            name=name,
            full_name=f"octocat/{name}",
            url=f"https://github.com/octocat/{name}",
            **fields,
        )
        db_session.add(repo)
        db_session.commit()
        return repo

    return _make
