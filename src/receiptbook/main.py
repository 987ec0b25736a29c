"""Receiptbook FastAPI application."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from receiptbook.api import health_router, main_router, receipts_router
from receiptbook.core.config import get_settings
from receiptbook.core.dependencies import set_receipt_store
from receiptbook.core.logging_config import LoggingConfig, setup_logging
from receiptbook.services.receipt_store import ReceiptStore

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from fastapi import FastAPI as FastAPIType

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPIType) -> AsyncGenerator[None, None]:
    """Manage application lifecycle."""
    settings = get_settings()
    setup_logging(
        LoggingConfig(
            log_level=settings.log_level,
            log_format="text" if settings.debug else "json",
            log_path=Path(settings.log_dir),
        )
    )
    logger.info("Starting Receiptbook application...")

    store = ReceiptStore(
        file_path=settings.storage_path,
        media_dir=settings.media_dir,
        max_bytes=settings.storage_max_bytes,
    )
    set_receipt_store(store)
    logger.info("Receipt store ready with %d receipts", len(store))

    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY not set - analyses will ask for manual entry")

    yield

    logger.info("Shutting down Receiptbook application...")
    set_receipt_store(None)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Receiptbook",
        version=settings.app_version,
        description="Capture, analyze and organize receipts",
        lifespan=lifespan,
        debug=settings.debug,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(health_router)
    app.include_router(main_router)
    app.include_router(receipts_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "receiptbook.main:app",
        host="0.0.0.0",  # noqa: S104
        port=8000,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
