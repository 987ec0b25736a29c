"""Receipt analysis endpoint."""

from __future__ import annotations

import logging

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from receiptbook import __version__
from receiptbook.core.dependencies import VisionServiceDep
from receiptbook.models import (
    ERROR_VENDOR,
    AnalyzeReceiptRequest,
    AnalyzeReceiptResponse,
    ReceiptAnalysis,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1", tags=["analysis"])

NO_IMAGE_MESSAGE = "No image provided"


@router.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "message": "Receiptbook API",
        "version": __version__,
        "docs": "/docs",
    }


@router.post("/analyze-receipt", response_model=AnalyzeReceiptResponse)
async def analyze_receipt(
    request: AnalyzeReceiptRequest,
    vision_service: VisionServiceDep,
) -> AnalyzeReceiptResponse | JSONResponse:
    """Extract vendor, amount, date and category from a receipt image.

    Failures never surface as bare errors: the body always carries an
    analysis the client can show for manual correction.
    """
    if not request.image_base64:
        logger.warning("Analyze request without image")
        body = AnalyzeReceiptResponse(
            success=False,
            error=NO_IMAGE_MESSAGE,
            analysis=ReceiptAnalysis.sentinel(
                "Keine Bilddaten erhalten", vendor=ERROR_VENDOR
            ),
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=body.model_dump(mode="json", by_alias=True),
        )

    result = await vision_service.analyze(request.image_base64, request.file_type)
    if not result.success:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=result.model_dump(mode="json", by_alias=True),
        )
    return result
