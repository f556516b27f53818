"""Shared fixtures: an in-memory database and an API client bound to it.

Every connection of the ``StaticPool`` engine is the same SQLite connection, so
the request threads used by ``TestClient`` see the state the test set up.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Iterator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from config import Settings
from database import enable_sqlite_foreign_keys
from main import create_app


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database_url="sqlite://",
        token_secret="test-secret",
        token_expiration=timedelta(hours=24),
        bcrypt_rounds=4,
    )


@pytest.fixture
def engine() -> Engine:
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(eng)
    return eng


@pytest.fixture
def app(settings: Settings, engine: Engine):
    return create_app(settings, engine)


@pytest.fixture
def client(app) -> Iterator[TestClient]:
    with TestClient(app) as test_client:
        yield test_client


def register(client: TestClient, username: str, password: str = "secret123") -> None:
    resp = client.post(
        "/api/auth/register",
        json={
            "username": username,
            "email": f"{username}@mailbox.org",
            "password": password,
            "fullName": username.title(),
        },
    )
    assert resp.status_code == 201, resp.text


def auth_headers(client: TestClient, username: str, password: str = "secret123") -> dict:
    register(client, username, password)
    resp = client.post(
        "/api/auth/login", json={"username": username, "password": password}
    )
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['token']}"}
