"""Exception types shared by the catalog and stream endpoints."""

from __future__ import annotations


class BridgeError(Exception):
    """Base class for failures raised by the bridge services."""


class BadRequest(BridgeError):
    """The client sent an unsupported action or omitted a required value."""


class Unauthorized(BridgeError):
    """Neither the subscribe token nor a session cookie was accepted."""


class UpstreamUnavailable(BridgeError):
    """The Emby server could not be reached or rejected the request."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ConfigUnavailable(UpstreamUnavailable):
    """The stored Emby configuration is missing, disabled, or incomplete."""
