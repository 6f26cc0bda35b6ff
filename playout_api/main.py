"""Entry point for the playout-storage FastAPI application.

Usage:
    uvicorn playout_api.main:app --host 0.0.0.0 --port 8787
    python -m playout_api.main
"""

from __future__ import annotations

import logging

import uvicorn
from fastapi import FastAPI

from playout_api.api.channels import router as channels_router
from playout_api.api.files import router as files_router
from playout_api.config import get_settings


def _configure_logging() -> None:
    """Initialize structured logging once for the service."""

    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )
    logging.getLogger("uvicorn.error").setLevel(logging.INFO)
    logging.getLogger("uvicorn.access").setLevel(logging.INFO)
    logging.getLogger("playout_api").setLevel(logging.INFO)


def create_app() -> FastAPI:
    """Create a new FastAPI instance with registered routers."""

    _configure_logging()
    application = FastAPI(title="playout-storage", version="0.1.0")
    application.include_router(channels_router)
    application.include_router(files_router)

    @application.get("/health")
    async def healthcheck():
        settings = get_settings()
        return {
            "ok": True,
            "service": "playout-storage",
            "storage_root": str(settings.storage_root),
            "allowed_roots": [str(root) for root in settings.allowed_roots],
        }

    return application


app = create_app()


if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run("playout_api.main:app", host="0.0.0.0", port=settings.port, reload=False)
