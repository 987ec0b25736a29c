"""Health check endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, status

from receiptbook.core.dependencies import ReceiptStoreDep, SettingsDep

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check() -> dict[str, str]:
    """Check if the service is healthy."""
    return {"status": "healthy", "service": "receiptbook"}


@router.get("/ready", status_code=status.HTTP_200_OK)
async def readiness_check(
    store: ReceiptStoreDep,
    settings: SettingsDep,
) -> dict[str, Any]:
    """Check if the service is ready to accept requests."""
    return {
        "status": "ready",
        "service": "receiptbook",
        "dependencies": {
            "storage": "available",
            "vision_model": "configured" if settings.openai_api_key else "missing key",
        },
        "receipts": len(store),
    }
