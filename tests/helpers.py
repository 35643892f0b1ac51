from __future__ import annotations

import time
from pathlib import Path

from fastapi.testclient import TestClient

from crud_api.config import Settings


def make_settings(tmp_path: Path, **overrides) -> Settings:
    values = {
        "DATABASE_URL": f"sqlite+aiosqlite:///{tmp_path / 'users.db'}",
        "LOG_DIR": str(tmp_path / "logs"),
        "DB_RETRY_DELAY_SECONDS": 0.05,
        "DB_CONNECT_TIMEOUT_SECONDS": 5,
        "LOG_LEVEL": "DEBUG",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def wait_for_health(client: TestClient, expected: str = "healthy", timeout: float = 5.0) -> dict:
    deadline = time.monotonic() + timeout
    body = {}
    while time.monotonic() < deadline:
        body = client.get("/health").json()
        if body["status"] == expected:
            return body
        time.sleep(0.02)
    raise AssertionError(f"health never reached {expected!r}, last body: {body}")
