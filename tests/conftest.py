from __future__ import annotations

from collections.abc import Callable, Generator
from pathlib import Path

import fakeredis
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine

from app import main as app_main
from app.infra import db, redis_state
from app.services.bootstrap_service import DEFAULT_PASSWORD, BootstrapService


@pytest.fixture()
def test_engine(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Engine:
    db_path = tmp_path / "admin_test.db"
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )
    SQLModel.metadata.create_all(engine)
    monkeypatch.setattr(db, "engine", engine)
    return engine


@pytest.fixture()
def fake_redis(monkeypatch: pytest.MonkeyPatch) -> fakeredis.FakeRedis:
    fake = fakeredis.FakeRedis(decode_responses=True)
    monkeypatch.setattr(redis_state, "get_redis", lambda: fake)
    return fake


@pytest.fixture()
def seeded_engine(test_engine: Engine) -> Engine:
    BootstrapService().seed_defaults()
    return test_engine


@pytest.fixture()
def client(seeded_engine: Engine, fake_redis: fakeredis.FakeRedis) -> Generator[TestClient, None, None]:
    test_client = TestClient(app_main.app)
    yield test_client
    test_client.close()


@pytest.fixture()
def login(client: TestClient) -> Callable[..., str]:
    def _login(user_name: str = "admin", password: str = DEFAULT_PASSWORD) -> str:
        response = client.post("/login", json={"user_name": user_name, "password": password})
        assert response.status_code == 200, response.text
        return response.json()["token"]

    return _login


@pytest.fixture()
def headers_for(login: Callable[..., str]) -> Callable[..., dict[str, str]]:
    def _headers(user_name: str = "admin", password: str = DEFAULT_PASSWORD) -> dict[str, str]:
        return {"Authorization": f"Bearer {login(user_name, password)}"}

    return _headers


@pytest.fixture()
def admin_headers(headers_for: Callable[..., dict[str, str]]) -> dict[str, str]:
    return headers_for()
