"""Persistent storage for the site's Emby configuration."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import Settings
from ..db_models import EMBY_CONFIG_ROW_ID, EmbyConfigRecord
from ..models import EmbyConfig

logger = logging.getLogger(__name__)


class ConfigStore:
    """Read and write the single Emby configuration row."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def load(self) -> EmbyConfig | None:
        """Return the stored configuration, or ``None`` when nothing is saved."""

        async with self._session_factory() as session:
            record = await session.get(EmbyConfigRecord, EMBY_CONFIG_ROW_ID)
            if record is None:
                return None
            return self._to_model(record)

    async def save(self, config: EmbyConfig) -> EmbyConfig:
        """Replace the stored configuration with ``config``."""

        async with self._session_factory() as session:
            record = await session.get(EmbyConfigRecord, EMBY_CONFIG_ROW_ID)
            if record is None:
                record = EmbyConfigRecord(id=EMBY_CONFIG_ROW_ID)
                session.add(record)
            record.enabled = config.enabled
            record.server_url = config.server_url
            record.api_key = config.api_key
            record.auth_token = config.auth_token
            record.username = config.username
            record.password = config.password
            record.user_id = config.user_id
            await session.commit()
            logger.info(
                "Saved Emby configuration for %s (enabled=%s)",
                config.server_url,
                config.enabled,
            )
            return self._to_model(record)

    async def remember_user_id(
        self, user_id: str, access_token: str | None = None
    ) -> None:
        """Persist the user resolved by the credential login fallback."""

        async with self._session_factory() as session:
            record = await session.get(EmbyConfigRecord, EMBY_CONFIG_ROW_ID)
            if record is None:
                logger.warning("Cannot store Emby user %s without a saved configuration", user_id)
                return
            record.user_id = user_id
            if access_token and not record.auth_token:
                record.auth_token = access_token
            await session.commit()

    async def seed_from_settings(self, settings: Settings) -> bool:
        """Create the configuration row from ``EMBY_*`` settings if absent."""

        if settings.emby_server_url is None:
            return False
        async with self._session_factory() as session:
            existing = await session.get(EmbyConfigRecord, EMBY_CONFIG_ROW_ID)
            if existing is not None:
                return False
        config = EmbyConfig(
            enabled=settings.emby_enabled,
            server_url=str(settings.emby_server_url),
            api_key=settings.emby_api_key,
            username=settings.emby_username,
            password=settings.emby_password,
            user_id=settings.emby_user_id,
        )
        await self.save(config)
        logger.info("Seeded Emby configuration from environment settings")
        return True

    @staticmethod
    def _to_model(record: EmbyConfigRecord) -> EmbyConfig:
        return EmbyConfig(
            enabled=record.enabled,
            server_url=record.server_url,
            api_key=record.api_key,
            auth_token=record.auth_token,
            username=record.username,
            password=record.password,
            user_id=record.user_id,
        )
