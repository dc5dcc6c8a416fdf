"""Serve the TVBox bridge with ``python -m tvbox_bridge`` or ``tvbox-bridge``."""

from __future__ import annotations

import uvicorn

from app.config import settings


def main() -> None:
    """Run uvicorn on the configured host and port, reloading in development."""

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )


if __name__ == "__main__":  # pragma: no cover - runtime entrypoint
    main()
