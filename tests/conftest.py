"""Pytest configuration and test helpers."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import pytest

# Ensure the application package is importable when running tests without an
# editable install.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.config import Settings  # noqa: E402
from app.models import EmbyConfig  # noqa: E402

SUBSCRIBE_TOKEN = "tvbox-secret"
SERVER_URL = "http://emby.local:8096"


def build_settings(**overrides: Any) -> Settings:
    """Return a settings object with defaults suitable for tests."""

    base: dict[str, Any] = {
        "_env_file": None,
        "TVBOX_SUBSCRIBE_TOKEN": SUBSCRIBE_TOKEN,
    }
    base.update(overrides)
    return Settings(**base)  # type: ignore[arg-type]


def build_emby_config(**overrides: Any) -> EmbyConfig:
    base: dict[str, Any] = {
        "enabled": True,
        "server_url": SERVER_URL,
        "api_key": "emby-key",
        "user_id": "user-1",
    }
    base.update(overrides)
    return EmbyConfig(**base)


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO tests to run on asyncio without requiring trio."""

    return "asyncio"
