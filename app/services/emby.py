"""Thin wrapper around the Emby server HTTP API."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote, urlencode

import httpx

from ..errors import UpstreamUnavailable
from ..models import EmbyConfig, EmbyItem, EmbyItemsPage

logger = logging.getLogger(__name__)

CLIENT_NAME = "TVBox Bridge"
CLIENT_VERSION = "1.0.0"
DEVICE_NAME = "tvbox-bridge"
DEVICE_ID = "tvbox-bridge-server"


@dataclass(slots=True)
class AuthenticationResult:
    """User identity and session token issued by ``AuthenticateByName``."""

    user_id: str
    access_token: str | None = None


def build_stream_url(server_url: str, api_key: str, item_id: str) -> str:
    """Return the static stream URL for an item with the key embedded."""

    query = urlencode({"Static": "true", "api_key": api_key})
    return f"{server_url}/Videos/{quote(item_id, safe='')}/stream?{query}"


class EmbyClient:
    """Catalog lookups against a single Emby server on behalf of one user."""

    def __init__(self, http_client: httpx.AsyncClient, config: EmbyConfig):
        if not config.server_url:
            raise ValueError("An Emby server URL is required when initialising EmbyClient")
        self._client = http_client
        self._config = config

    @property
    def server_url(self) -> str:
        return self._config.server_url or ""

    @property
    def user_id(self) -> str | None:
        return self._config.user_id

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        credential = self._config.credential
        if credential:
            headers["X-Emby-Token"] = credential
        return headers

    def _url(self, path: str) -> str:
        return f"{self.server_url}{path}"

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        try:
            response = await self._client.get(
                self._url(path), headers=self._headers(), params=params
            )
        except httpx.HTTPError as exc:
            logger.warning("Emby request %s failed: %s", path, exc)
            raise UpstreamUnavailable(f"Emby 请求失败: {exc}") from exc
        if response.status_code >= 400:
            logger.warning(
                "Emby request %s failed with %s: %s",
                path,
                response.status_code,
                response.text[:200],
            )
            raise UpstreamUnavailable(
                f"Emby 请求失败: {response.status_code}",
                status_code=response.status_code,
            )
        return response.json()

    def _require_user(self) -> str:
        if not self._config.user_id:
            raise UpstreamUnavailable("Emby 认证失败")
        return self._config.user_id

    async def authenticate(self, username: str, password: str) -> AuthenticationResult:
        """Log in by name and adopt the returned user and access token."""

        authorization = (
            f'MediaBrowser Client="{CLIENT_NAME}", Device="{DEVICE_NAME}", '
            f'DeviceId="{DEVICE_ID}", Version="{CLIENT_VERSION}"'
        )
        try:
            response = await self._client.post(
                self._url("/Users/AuthenticateByName"),
                headers={
                    "Accept": "application/json",
                    "X-Emby-Authorization": authorization,
                },
                json={"Username": username, "Pw": password},
            )
        except httpx.HTTPError as exc:
            logger.warning("Emby authentication for %s failed: %s", username, exc)
            raise UpstreamUnavailable("Emby 认证失败") from exc
        if response.status_code >= 400:
            logger.warning(
                "Emby authentication for %s failed with %s",
                username,
                response.status_code,
            )
            raise UpstreamUnavailable(
                "Emby 认证失败", status_code=response.status_code
            )
        data = response.json()
        user = data.get("User") or {}
        user_id = str(user.get("Id") or "").strip()
        if not user_id:
            raise UpstreamUnavailable("Emby 认证失败")

        access_token = data.get("AccessToken") or None
        update: dict[str, Any] = {"user_id": user_id}
        if access_token and not self._config.credential:
            update["auth_token"] = access_token
        self._config = self._config.model_copy(update=update)
        return AuthenticationResult(user_id=user_id, access_token=access_token)

    async def get_items(
        self,
        *,
        search_term: str | None = None,
        include_item_types: str = "Movie,Series",
        recursive: bool = True,
        fields: str = "Overview,ProductionYear",
        limit: int | None = None,
    ) -> EmbyItemsPage:
        """Query the user's library."""

        params: dict[str, Any] = {
            "IncludeItemTypes": include_item_types,
            "Recursive": "true" if recursive else "false",
            "Fields": fields,
        }
        if search_term:
            params["SearchTerm"] = search_term
        if limit is not None:
            params["Limit"] = limit
        user_id = self._require_user()
        data = await self._get_json(f"/Users/{quote(user_id, safe='')}/Items", params)
        return EmbyItemsPage.model_validate(data)

    async def get_item(self, item_id: str) -> EmbyItem:
        user_id = self._require_user()
        data = await self._get_json(
            f"/Users/{quote(user_id, safe='')}/Items/{quote(item_id, safe='')}"
        )
        return EmbyItem.model_validate(data)

    async def get_episodes(self, series_id: str) -> list[EmbyItem]:
        """Return every episode of a series across all seasons."""

        params: dict[str, Any] = {"Fields": "Overview"}
        if self._config.user_id:
            params["UserId"] = self._config.user_id
        data = await self._get_json(
            f"/Shows/{quote(series_id, safe='')}/Episodes", params
        )
        return EmbyItemsPage.model_validate(data).items

    def image_url(self, item_id: str, image_type: str = "Primary") -> str:
        return self._url(f"/Items/{quote(item_id, safe='')}/Images/{image_type}")
