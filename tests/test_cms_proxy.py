"""Route tests for the TVBox CMS endpoint."""

from __future__ import annotations

from typing import Callable

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.auth import AccessGuard
from app.main import register_routes
from app.models import EmbyConfig
from app.services.config_store import ConfigStore

from conftest import SUBSCRIBE_TOKEN, build_emby_config, build_settings
from test_catalog import emby_handler


class DummyConfigStore(ConfigStore):
    """In-memory ConfigStore stub for route testing."""

    def __init__(self, config: EmbyConfig | None) -> None:  # pragma: no cover - nothing to initialise
        # Deliberately skip super().__init__ to avoid touching the database.
        self.config = config
        self.remembered: list[tuple[str, str | None]] = []

    async def load(self) -> EmbyConfig | None:  # type: ignore[override]
        return self.config

    async def remember_user_id(  # type: ignore[override]
        self, user_id: str, access_token: str | None = None
    ) -> None:
        self.remembered.append((user_id, access_token))


def build_app(
    config: EmbyConfig | None,
    handler: Callable[[httpx.Request], httpx.Response] = emby_handler,
    **setting_overrides: str,
) -> tuple[FastAPI, DummyConfigStore]:
    app = FastAPI()
    register_routes(app)
    settings = build_settings(**setting_overrides)
    store = DummyConfigStore(config)
    app.state.settings = settings
    app.state.access_guard = AccessGuard(settings)
    app.state.config_store = store
    app.state.catalog_client_factory = lambda: httpx.AsyncClient(
        transport=httpx.MockTransport(handler)
    )
    return app, store


def cms_path(token: str = SUBSCRIBE_TOKEN) -> str:
    return f"/api/emby/cms-proxy/{token}"


def test_each_request_opens_and_closes_its_own_client() -> None:
    app, _ = build_app(build_emby_config())
    opened: list[httpx.AsyncClient] = []

    def factory() -> httpx.AsyncClient:
        client = httpx.AsyncClient(transport=httpx.MockTransport(emby_handler))
        opened.append(client)
        return client

    app.state.catalog_client_factory = factory

    with TestClient(app) as client:
        first = client.get(cms_path(), params={"ac": "videolist"})
        second = client.get(cms_path(), params={"ac": "videolist"})

    assert first.json()["code"] == second.json()["code"] == 1
    assert len(opened) == 2
    assert opened[0] is not opened[1]
    assert all(http_client.is_closed for http_client in opened)


@pytest.mark.parametrize("action", [None, "", "search", "DETAIL", "play"])
def test_unsupported_action_is_rejected(action: str | None) -> None:
    app, _ = build_app(build_emby_config())
    params = {} if action is None else {"ac": action}

    with TestClient(app) as client:
        response = client.get(cms_path(), params=params)

    assert response.status_code == 400
    assert response.json() == {"code": 400, "msg": "不支持的操作"}


@pytest.mark.parametrize("token", ["wrong", "tvbox-secret-extra", "TVBOX-SECRET"])
def test_invalid_token_soft_fails(token: str) -> None:
    app, _ = build_app(build_emby_config())

    with TestClient(app) as client:
        response = client.get(cms_path(token), params={"ac": "videolist"})

    assert response.status_code == 200
    payload = response.json()
    assert payload["code"] == 401
    assert payload["list"] == []
    assert payload["total"] == 0


def test_unset_subscribe_token_rejects_everything() -> None:
    app, _ = build_app(build_emby_config(), TVBOX_SUBSCRIBE_TOKEN="")

    with TestClient(app) as client:
        response = client.get(cms_path("anything"), params={"ac": "list"})

    assert response.json()["code"] == 401


def test_list_returns_whole_library() -> None:
    app, _ = build_app(build_emby_config())

    with TestClient(app) as client:
        response = client.get(cms_path(), params={"ac": "videolist", "wd": ""})

    payload = response.json()
    assert response.status_code == 200
    assert payload["code"] == 1
    assert payload["total"] == payload["limit"] == len(payload["list"]) == 2
    assert {record["vod_id"] for record in payload["list"]} == {"m1", "s1"}


def test_search_filters_by_keyword() -> None:
    app, _ = build_app(build_emby_config())

    with TestClient(app) as client:
        response = client.get(cms_path(), params={"ac": "list", "wd": "dark"})

    payload = response.json()
    assert [record["vod_id"] for record in payload["list"]] == ["s1"]
    assert "vod_play_url" not in payload["list"][0]


def test_detail_by_ids_builds_links_from_request_host() -> None:
    app, _ = build_app(build_emby_config())

    with TestClient(app) as client:
        response = client.get(
            cms_path(),
            params={"ac": "detail", "ids": "m1"},
            headers={"host": "localhost:3000"},
        )

    record = response.json()["list"][0]
    assert record["vod_play_url"] == (
        f"正片$http://localhost:3000/api/emby/play/{SUBSCRIBE_TOKEN}/video.mp4?itemId=m1"
    )


def test_detail_prefers_configured_site_base() -> None:
    app, _ = build_app(build_emby_config(), SITE_BASE="https://tv.example.com")

    with TestClient(app) as client:
        response = client.get(cms_path(), params={"ac": "detail", "ids": "s1"})

    play_url = response.json()["list"][0]["vod_play_url"]
    assert play_url.count("#") == 2
    assert all(
        segment.split("$", 1)[1].startswith("https://tv.example.com/api/emby/play/")
        for segment in play_url.split("#")
    )


def test_detail_by_keyword() -> None:
    app, _ = build_app(build_emby_config())

    with TestClient(app) as client:
        found = client.get(cms_path(), params={"ac": "detail", "wd": "arrival"})
        missing = client.get(cms_path(), params={"ac": "detail", "wd": "zzz"})

    assert found.json()["list"][0]["vod_id"] == "m1"
    assert missing.json()["code"] == 0
    assert missing.json()["msg"] == "未找到该视频"


def test_detail_without_ids_soft_fails() -> None:
    app, _ = build_app(build_emby_config())

    with TestClient(app) as client:
        response = client.get(cms_path(), params={"ac": "detail"})

    assert response.json()["code"] == 0
    assert response.json()["msg"] == "缺少视频ID"


@pytest.mark.parametrize(
    "config",
    [None, EmbyConfig(enabled=False, server_url="http://emby.local:8096")],
)
def test_disabled_emby_soft_fails(config: EmbyConfig | None) -> None:
    app, _ = build_app(config)

    with TestClient(app) as client:
        response = client.get(cms_path(), params={"ac": "list"})

    assert response.status_code == 200
    assert response.json()["code"] == 0
    assert response.json()["list"] == []


def test_missing_user_without_credentials_soft_fails() -> None:
    app, _ = build_app(build_emby_config(user_id=None))

    with TestClient(app) as client:
        response = client.get(cms_path(), params={"ac": "list"})

    assert response.json() == {
        "code": 0,
        "msg": "Emby 认证失败",
        "page": 1,
        "pagecount": 0,
        "limit": 0,
        "total": 0,
        "list": [],
    }


def test_credentials_resolve_and_persist_user() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/Users/AuthenticateByName":
            return httpx.Response(200, json={"User": {"Id": "user-1"}, "AccessToken": "t"})
        return emby_handler(request)

    app, store = build_app(
        build_emby_config(user_id=None, username="alice", password="pw"), handler
    )

    with TestClient(app) as client:
        response = client.get(cms_path(), params={"ac": "list"})

    assert response.json()["code"] == 1
    assert store.remembered == [("user-1", "t")]


def test_upstream_failure_soft_fails_with_message() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(502, text="bad gateway")

    app, _ = build_app(build_emby_config(), handler)

    with TestClient(app) as client:
        response = client.get(cms_path(), params={"ac": "list"})

    assert response.status_code == 200
    assert response.json()["code"] == 0
    assert "502" in response.json()["msg"]


def test_unexpected_error_surfaces_message() -> None:
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"Items": [{"Name": "no id"}]})

    app, _ = build_app(build_emby_config(), handler)

    with TestClient(app) as client:
        response = client.get(cms_path(), params={"ac": "list"})

    payload = response.json()
    assert response.status_code == 200
    assert payload["code"] == 500
    assert "Id" in payload["msg"]
    assert payload["list"] == []
