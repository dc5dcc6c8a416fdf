"""Translate Emby library queries into TVBox CMS responses."""

from __future__ import annotations

import logging
from urllib.parse import quote, urlencode

from ..models import EmbyItem, VodRecord, VodResponse
from .emby import EmbyClient

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 100
MOVIE_LABEL = "正片"
PLAY_FROM = "Emby"
PLAY_FILENAME = "video.mp4"
NOT_FOUND_MESSAGE = "未找到该视频"


def build_play_url(base_url: str, token: str, item_id: str) -> str:
    """Return the link that routes playback back through this service."""

    query = urlencode({"itemId": item_id})
    return (
        f"{base_url.rstrip('/')}/api/emby/play/{quote(token, safe='')}"
        f"/{PLAY_FILENAME}?{query}"
    )


def episode_label(episode: EmbyItem, position: int) -> str:
    """Return the ``第N集`` title, numbering by position when Emby has none."""

    number = episode.index_number if episode.index_number is not None else position
    return f"第{number}集"


class CatalogTranslator:
    """Build list and detail payloads for the aggregator client."""

    def __init__(self, client: EmbyClient):
        self._client = client

    def _record(self, item: EmbyItem, **extra: str) -> VodRecord:
        return VodRecord.from_item(
            item, picture=self._client.image_url(item.id, "Primary"), **extra
        )

    async def search(self, query: str | None = None) -> VodResponse:
        """Search movies and series; an empty query lists the library."""

        page = await self._client.get_items(
            search_term=query or None,
            include_item_types="Movie,Series",
            recursive=True,
            fields="Overview,ProductionYear",
            limit=SEARCH_LIMIT,
        )
        records = [self._record(item) for item in page.items]
        return VodResponse.single_page(records)

    async def detail_by_search(
        self, query: str, token: str, base_url: str
    ) -> VodResponse:
        """Resolve ``query`` to its first match and return that item's detail."""

        page = await self._client.get_items(
            search_term=query,
            include_item_types="Movie,Series",
            recursive=True,
            fields="Overview,ProductionYear",
            limit=1,
        )
        if not page.items:
            logger.info("No Emby item matched detail search %r", query)
            return VodResponse.empty(0, NOT_FOUND_MESSAGE)
        return await self.detail_by_id(page.items[0].id, token, base_url)

    async def detail_by_id(
        self, item_id: str, token: str, base_url: str
    ) -> VodResponse:
        """Return one item with its play list encoded for the client."""

        item = await self._client.get_item(item_id)
        play_url = ""
        if item.is_movie:
            play_url = f"{MOVIE_LABEL}${build_play_url(base_url, token, item.id)}"
        elif item.is_series:
            episodes = await self._client.get_episodes(item_id)
            play_url = self.format_episodes(episodes, token, base_url)

        record = self._record(item, vod_play_url=play_url, vod_play_from=PLAY_FROM)
        return VodResponse.single_page([record])

    @staticmethod
    def format_episodes(episodes: list[EmbyItem], token: str, base_url: str) -> str:
        """Join episodes in season/episode order as ``title$url#title$url``."""

        ordered = sorted(episodes, key=lambda episode: episode.episode_sort_key())
        segments = [
            f"{episode_label(episode, position)}${build_play_url(base_url, token, episode.id)}"
            for position, episode in enumerate(ordered, start=1)
        ]
        return "#".join(segments)
