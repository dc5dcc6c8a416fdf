"""Pydantic models for Emby payloads and the TVBox CMS contract."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

MOVIE = "Movie"
SERIES = "Series"

LIST_MESSAGE = "数据列表"


def _normalize_server_url(value: Any) -> Any:
    if value is None:
        return None
    normalized = str(value).strip().rstrip("/")
    return normalized or None


class EmbyConfig(BaseModel):
    """Emby connection settings as kept by the site's configuration store."""

    model_config = ConfigDict(populate_by_name=True)

    enabled: bool = Field(default=False, alias="Enabled")
    server_url: str | None = Field(default=None, alias="ServerURL")
    api_key: str | None = Field(default=None, alias="ApiKey")
    auth_token: str | None = Field(default=None, alias="AuthToken")
    username: str | None = Field(default=None, alias="Username")
    password: str | None = Field(default=None, alias="Password")
    user_id: str | None = Field(default=None, alias="UserId")

    @field_validator("server_url", mode="before")
    @classmethod
    def _strip_server_url(cls, value: Any) -> Any:
        return _normalize_server_url(value)

    @field_validator(
        "api_key", "auth_token", "username", "password", "user_id", mode="before"
    )
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def is_usable(self) -> bool:
        """Return whether the catalog can be served from this configuration."""

        return bool(self.enabled and self.server_url)

    @property
    def credential(self) -> str | None:
        """Return the API key, falling back to a session access token."""

        return self.api_key or self.auth_token

    def masked(self) -> dict[str, Any]:
        """Return a JSON payload with secrets replaced by presence flags."""

        return {
            "Enabled": self.enabled,
            "ServerURL": self.server_url or "",
            "Username": self.username or "",
            "UserId": self.user_id or "",
            "HasApiKey": bool(self.api_key),
            "HasAuthToken": bool(self.auth_token),
            "HasPassword": bool(self.password),
        }


class EmbyItem(BaseModel):
    """Subset of an Emby ``BaseItemDto`` used by the catalog translator."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(alias="Id")
    name: str = Field(default="", alias="Name")
    type: str = Field(default="", alias="Type")
    overview: str | None = Field(default=None, alias="Overview")
    production_year: int | None = Field(default=None, alias="ProductionYear")
    index_number: int | None = Field(default=None, alias="IndexNumber")
    parent_index_number: int | None = Field(default=None, alias="ParentIndexNumber")

    @property
    def is_movie(self) -> bool:
        return self.type == MOVIE

    @property
    def is_series(self) -> bool:
        return self.type == SERIES

    def episode_sort_key(self) -> tuple[int, int]:
        """Order episodes by season then episode, treating gaps as zero."""

        return (self.parent_index_number or 0, self.index_number or 0)


class EmbyItemsPage(BaseModel):
    """Response envelope of Emby item queries."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    items: list[EmbyItem] = Field(default_factory=list, alias="Items")


class VodRecord(BaseModel):
    """A single entry of the CMS ``list`` array."""

    vod_id: str
    vod_name: str
    vod_pic: str
    vod_remarks: str
    vod_year: str
    vod_content: str
    type_name: str
    vod_play_url: str | None = None
    vod_play_from: str | None = None

    @classmethod
    def from_item(cls, item: EmbyItem, *, picture: str, **extra: str) -> "VodRecord":
        """Build a record with labels localized by the item's type."""

        return cls(
            vod_id=item.id,
            vod_name=item.name,
            vod_pic=picture,
            vod_remarks="电影" if item.is_movie else "剧集",
            vod_year=str(item.production_year) if item.production_year else "",
            vod_content=item.overview or "",
            type_name="电影" if item.is_movie else "电视剧",
            **extra,
        )


class VodResponse(BaseModel):
    """Envelope returned by the CMS endpoint."""

    code: int
    msg: str
    page: int = 1
    pagecount: int = 0
    limit: int = 0
    total: int = 0
    records: list[VodRecord] = Field(default_factory=list, serialization_alias="list")

    @classmethod
    def empty(cls, code: Literal[0, 401, 500], msg: str) -> "VodResponse":
        """Return a response carrying no records."""

        return cls(code=code, msg=msg)

    @classmethod
    def single_page(cls, records: list[VodRecord]) -> "VodResponse":
        """Return every record as page one of one."""

        return cls(
            code=1,
            msg=LIST_MESSAGE,
            page=1,
            pagecount=1,
            limit=len(records),
            total=len(records),
            records=records,
        )

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)
