"""Utility helpers for the TVBox bridge service."""

from __future__ import annotations

from typing import Mapping

LOCAL_HOST_MARKERS = ("localhost", "127.0.0.1")


def first_forwarded_value(header_value: str | None) -> str | None:
    """Return the first entry of a comma-separated forwarding header."""

    if not header_value:
        return None
    value = header_value.split(",", 1)[0].strip()
    return value or None


def resolve_site_base(headers: Mapping[str, str], site_base: str | None = None) -> str:
    """Return the externally visible origin used in generated play links.

    ``site_base`` wins when configured. Otherwise the host comes from ``Host``
    (then ``X-Forwarded-Host``) and the scheme from ``X-Forwarded-Proto``,
    defaulting to plain HTTP only for loopback hosts.
    """

    if site_base:
        return site_base.rstrip("/")

    host = first_forwarded_value(headers.get("host")) or first_forwarded_value(
        headers.get("x-forwarded-host")
    )
    proto = first_forwarded_value(headers.get("x-forwarded-proto"))
    if not proto:
        is_local = bool(host) and any(marker in host for marker in LOCAL_HOST_MARKERS)
        proto = "http" if is_local else "https"
    return f"{proto}://{host or ''}"

