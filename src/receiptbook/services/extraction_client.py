"""HTTP client for the analyze-receipt endpoint."""

from __future__ import annotations

import base64
import logging
from typing import TYPE_CHECKING

import httpx
from pydantic import ValidationError

from receiptbook.models.analysis import (
    ERROR_VENDOR,
    AnalyzeReceiptRequest,
    AnalyzeReceiptResponse,
    ReceiptAnalysis,
)

if TYPE_CHECKING:
    from receiptbook.core.config import Settings

logger = logging.getLogger(__name__)

CLIENT_FAILURE_DESCRIPTION = "KI-Analyse fehlgeschlagen - bitte manuell eingeben"


class ExtractionClient:
    """Sends a bitmap to the extraction endpoint and returns its analysis.

    Every failure yields a placeholder analysis instead of an exception, so
    capturing a receipt never blocks on the model.
    """

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            settings: Application settings (endpoint URL and timeout)
            transport: Optional httpx transport (used by tests and in-process calls)
        """
        self.endpoint_url = settings.extraction_endpoint_url
        self.timeout = settings.extraction_timeout
        self._transport = transport

    async def analyze_image(
        self, image: bytes, media_type: str | None = None
    ) -> ReceiptAnalysis:
        """Request an analysis for raw image bytes."""
        request = AnalyzeReceiptRequest(
            image_base64=base64.b64encode(image).decode("ascii"),
            file_type=media_type,
        )

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    self.endpoint_url,
                    json=request.model_dump(by_alias=True, exclude_none=True),
                )
        except httpx.HTTPError as e:
            logger.error("Extraction endpoint unreachable: %s", e)
            return ReceiptAnalysis.sentinel(CLIENT_FAILURE_DESCRIPTION)

        try:
            body = AnalyzeReceiptResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.error(
                "Invalid extraction response (HTTP %d): %s", response.status_code, e
            )
            return ReceiptAnalysis.sentinel(CLIENT_FAILURE_DESCRIPTION)

        if body.success and response.is_success and body.analysis is not None:
            return body.analysis

        logger.warning(
            "Extraction failed (HTTP %d): %s",
            response.status_code,
            body.error or "no analysis returned",
        )
        if body.analysis is not None:
            # Keep the endpoint's wording, never its values
            return ReceiptAnalysis.sentinel(
                body.analysis.description or CLIENT_FAILURE_DESCRIPTION,
                vendor=body.analysis.vendor or ERROR_VENDOR,
            )
        return ReceiptAnalysis.sentinel(CLIENT_FAILURE_DESCRIPTION, vendor=ERROR_VENDOR)
