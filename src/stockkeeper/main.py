"""ASGI entrypoint for running the service."""
from __future__ import annotations

import uvicorn

from .config import get_settings
from .log_config import configure_logging


def run(host: str = "127.0.0.1", port: int = 8000) -> None:
    """Serve the API with uvicorn, reloading on change in development."""

    settings = get_settings()
    configure_logging(settings)
    uvicorn.run(
        "stockkeeper.api:create_app",
        factory=True,
        host=host,
        port=port,
        reload=settings.environment == "development",
        log_config=None,
    )


if __name__ == "__main__":
    run()
