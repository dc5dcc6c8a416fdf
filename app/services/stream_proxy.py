"""Relay Emby video streams to playback clients."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import AsyncIterator, Callable

import httpx

from ..errors import UpstreamUnavailable
from .config_cache import ConfigCache
from .emby import build_stream_url

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "video/mp4"
RELAYED_HEADERS = ("Content-Length", "Accept-Ranges", "Content-Range")

ClientFactory = Callable[[], httpx.AsyncClient]


def _default_client_factory() -> httpx.AsyncClient:
    # Playback may pause for long stretches; no timeout at this layer.
    return httpx.AsyncClient(timeout=None)


@dataclass(slots=True)
class UpstreamStream:
    """An open upstream response whose body has not been read yet."""

    status_code: int
    headers: dict[str, str]
    _response: httpx.Response = field(repr=False)
    _client: httpx.AsyncClient = field(repr=False)

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        """Yield the body as it arrives and release the connection afterwards."""

        try:
            async for chunk in self._response.aiter_raw():
                if chunk:
                    yield chunk
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        await self._response.aclose()
        await self._client.aclose()


class StreamProxy:
    """Open upstream stream requests using cached connection settings."""

    def __init__(
        self,
        config_cache: ConfigCache,
        client_factory: ClientFactory = _default_client_factory,
    ) -> None:
        self._config_cache = config_cache
        self._client_factory = client_factory

    async def _upstream_url(self, item_id: str) -> str:
        config = await self._config_cache.get()
        return build_stream_url(config.server_url, config.api_key, item_id)

    async def open(
        self,
        item_id: str,
        *,
        filename: str,
        range_header: str | None = None,
    ) -> UpstreamStream:
        """Start streaming ``item_id``; only the ``Range`` header is forwarded."""

        url = await self._upstream_url(item_id)
        request_headers: dict[str, str] = {}
        if range_header:
            request_headers["Range"] = range_header

        client = self._client_factory()
        try:
            response = await client.send(
                client.build_request("GET", url, headers=request_headers),
                stream=True,
            )
        except BaseException:
            await client.aclose()
            raise

        if not response.is_success:
            logger.error(
                "Emby stream request for %s failed: %s %s",
                item_id,
                response.status_code,
                response.reason_phrase,
            )
            await response.aclose()
            await client.aclose()
            raise UpstreamUnavailable(
                "获取视频流失败", status_code=response.status_code
            )

        return UpstreamStream(
            status_code=response.status_code,
            headers=self.relay_headers(response.headers, filename),
            _response=response,
            _client=client,
        )

    @staticmethod
    def relay_headers(upstream: httpx.Headers, filename: str) -> dict[str, str]:
        """Pick the headers a player needs for seeking and type detection."""

        headers = {"Content-Type": upstream.get("content-type") or DEFAULT_CONTENT_TYPE}
        for name in RELAYED_HEADERS:
            value = upstream.get(name)
            if value:
                headers[name] = value
        headers["Content-Disposition"] = f'inline; filename="{filename}"'
        return headers
