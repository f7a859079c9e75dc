"""Shared test fixtures and configuration for backend tests."""
import json
import uuid
from base64 import b64encode
from typing import Generator

import itsdangerous
import pytest
from fastapi.testclient import TestClient

from app.auth.session import sign_session_id
from app.config import AppConfig
from app.main import create_app


def make_session_cookie(secret_key: str, data: dict) -> str:
    """Sign ``data`` the way Starlette's SessionMiddleware does."""
    payload = b64encode(json.dumps(data).encode("utf-8"))
    return itsdangerous.TimestampSigner(secret_key).sign(payload).decode("utf-8")


class FakeSessionStore:
    """In-memory stand-in for the shared session table."""

    def __init__(self):
        self.sessions = {}
        self.lookups = []

    def add(self, data: dict) -> str:
        sid = uuid.uuid4().hex
        self.sessions[sid] = data
        return sid

    def get_session(self, sid):
        self.lookups.append(sid)
        return self.sessions.get(sid)


@pytest.fixture
def app_config(tmp_path) -> AppConfig:
    """Config with storage and ledger under a temp directory."""
    config = AppConfig()
    config.storage.public_root = str(tmp_path / "public")
    config.storage.ledger_path = str(tmp_path / "uploads.duckdb")
    config.secrets.session.secret_key = "test-secret"
    return config


@pytest.fixture
def session_store() -> FakeSessionStore:
    return FakeSessionStore()


@pytest.fixture
def api_client(app_config, session_store) -> Generator[TestClient, None, None]:
    """TestClient for an app built from ``app_config``, lifespan included."""
    with TestClient(create_app(app_config, session_store=session_store)) as client:
        yield client


@pytest.fixture
def session_cookie(app_config, session_store):
    """Open a session for a user id and return its signed cookie value."""
    def _cookie(user_id="user-1"):
        sid = session_store.add({app_config.session.user_key: user_id})
        return sign_session_id(sid, app_config.secrets.session.secret_key)

    return _cookie


@pytest.fixture
def login(api_client, app_config, session_cookie):
    """Attach a session cookie for ``user_id`` to ``api_client``."""
    def _login(user_id="user-1"):
        api_client.cookies.set(app_config.session.cookie_name, session_cookie(user_id))
        return api_client

    return _login


@pytest.fixture
def middleware_session_cookie(app_config):
    """Signed cookie for the ``cookie`` session backend (SessionMiddleware)."""
    def _cookie(user_id="user-1"):
        return make_session_cookie(
            app_config.secrets.session.secret_key,
            {app_config.session.user_key: user_id},
        )

    return _cookie
