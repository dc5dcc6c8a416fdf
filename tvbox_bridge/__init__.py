"""Installable entry package for the TVBox bridge; re-exports the ASGI app."""

from __future__ import annotations

from app.main import app, create_app

__all__ = ["app", "create_app"]
