"""Shared fixtures: temporary database and upload root, fake analysis service, API client."""

import os

# Settings are read at import time; these must be in place first
os.environ.setdefault("SECRET_KEY", "test-secret-key-0123456789abcdef0123456789")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("DATABASE_URL", "sqlite://")

import json
from typing import Callable

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from dataweb.app.config import settings
from dataweb.app.database import create_db_engine, get_db, init_db
from dataweb.app.dependencies.rate_limit import auth_limiter, chat_limiter
from dataweb.app.services.analysis_client import AnalysisClient, get_analysis_client
from dataweb.app.services.auth_service import register_user
from dataweb.main import app


@pytest.fixture
def engine(tmp_path):
    """SQLite database file with all tables created."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'test.db'}")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def upload_dir(tmp_path, monkeypatch):
    """Point the upload root at a per-test directory."""
    root = tmp_path / "uploads"
    monkeypatch.setattr(settings, "UPLOAD_DIR", str(root))
    return root


@pytest.fixture(autouse=True)
def reset_rate_limits():
    auth_limiter.reset()
    chat_limiter.reset()
    yield
    auth_limiter.reset()
    chat_limiter.reset()


class FakeAnalysisService:
    """Stands in for the analysis service; records every request it receives."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.handler: Callable[[httpx.Request], httpx.Response] = self.answer

    def answer(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/health":
            return httpx.Response(200, json={"status": "ok"})
        return httpx.Response(200, json={
            "answer": "The average age is 30.",
            "data": {"average_age": 30},
            "code": "df['age'].mean()",
            "chart_type": "bar",
        })

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    @property
    def analyze_payloads(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests if r.url.path == "/analyze"]


@pytest.fixture
def fake_analysis():
    return FakeAnalysisService()


@pytest.fixture
def analysis_client(fake_analysis):
    client = AnalysisClient(
        base_url="http://analysis.test",
        timeout=10.0,
        transport=httpx.MockTransport(fake_analysis),
    )
    yield client
    client.close()


@pytest.fixture
def client(session_factory, analysis_client):
    """TestClient wired to the temporary database and the fake analysis service."""

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_analysis_client] = lambda: analysis_client
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    """Create a user directly (bypassing the auth rate limit). Returns (user, token)."""
    def _make(username: str, password: str = "secret123"):
        return register_user(db, username, password)
    return _make


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def upload_csv(client: TestClient, token: str, content: str | bytes, filename: str = "people.csv"):
    files = {"file": (filename, content, "text/csv")}
    return client.post("/api/upload", files=files, headers=auth_headers(token))


@pytest.fixture
def sample_csv() -> str:
    return "name,age,city\nAlice,30,Paris\nBob,25,Berlin\n"
