"""
Pytest fixtures for the reference / skill registry.

Every test gets its own SQLite file under tmp_path, so tests never share state.
"""

from typing import Dict

import pytest
from fastapi.testclient import TestClient

from refskills.api.server import create_app
from refskills.config import Config
from refskills.db import init_db

JWT_SECRET = "test-jwt-secret-0123456789abcdef0123456789"
ADMIN_PASSWORD = "correct horse battery staple"


def bearer(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def cfg(tmp_path) -> Config:
    return Config(
        DB_DSN=str(tmp_path / "refskills.sqlite"),
        BIND_ADDR="127.0.0.1:8000",
        LOG_LEVEL="DEBUG",
        JWT_SECRET=JWT_SECRET,
        ADMIN_PASSWORD=ADMIN_PASSWORD,
    )


@pytest.fixture()
def dsn(cfg: Config) -> str:
    init_db(cfg.DB_DSN)
    return cfg.DB_DSN


@pytest.fixture()
def client(cfg: Config) -> TestClient:
    return TestClient(create_app(cfg))


@pytest.fixture()
def admin_headers(client: TestClient) -> Dict[str, str]:
    resp = client.post("/token/admin", json={"password": ADMIN_PASSWORD})
    assert resp.status_code == 200
    return bearer(resp.text)


@pytest.fixture()
def ref_key(client: TestClient) -> str:
    resp = client.post("/ref/create/alice")
    assert resp.status_code == 200
    return resp.text


@pytest.fixture()
def user_headers(client: TestClient, ref_key: str) -> Dict[str, str]:
    resp = client.get(f"/token/{ref_key}")
    assert resp.status_code == 200
    return bearer(resp.text)
