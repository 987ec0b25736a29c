"""Receiptbook API package."""

from .health import router as health_router
from .receipts import router as receipts_router
from .routes import router as main_router

__all__ = ["health_router", "main_router", "receipts_router"]
