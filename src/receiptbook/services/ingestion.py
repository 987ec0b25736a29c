"""Capture pipeline: file -> bitmap -> analysis -> receipt draft."""

from __future__ import annotations

import base64
import logging
import re
import time
from decimal import Decimal
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from pydantic import BaseModel

from receiptbook.models.analysis import ERROR_VENDOR, ReceiptAnalysis
from receiptbook.models.receipt import Receipt, ReceiptDraft
from receiptbook.services.exporter import decode_data_uri
from receiptbook.services.file_processor import FileType
from receiptbook.services.rasterizer import RasterizationError
from receiptbook.services.receipt_store import StorageError

if TYPE_CHECKING:
    from receiptbook.services.file_processor import FileProcessorService
    from receiptbook.services.rasterizer import Rasterizer
    from receiptbook.services.receipt_store import ReceiptStore

logger = logging.getLogger(__name__)

RASTERIZATION_FAILED_DESCRIPTION = (
    "PDF konnte nicht gelesen werden - bitte manuell eingeben"
)

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9\s]")
_WHITESPACE = re.compile(r"\s+")


class ReceiptExtractor(Protocol):
    """Anything that turns a bitmap into a receipt analysis."""

    async def analyze_image(
        self, image: bytes, media_type: str | None = None
    ) -> ReceiptAnalysis: ...


class AnalyzedReceipt(BaseModel):
    """Draft produced from a captured file, plus the raw analysis."""

    draft: ReceiptDraft
    analysis: ReceiptAnalysis


def data_uri(content: bytes, media_type: str) -> str:
    """Encode bytes as a base64 ``data:`` URI."""
    return f"data:{media_type};base64,{base64.b64encode(content).decode('ascii')}"


def generate_filename(analysis: ReceiptAnalysis, extension: str = ".jpg") -> str:
    """Display filename such as ``2024-03-15_Bella-Vista_45,80EUR.jpg``."""
    vendor_clean = _WHITESPACE.sub("-", _NON_ALNUM.sub("", analysis.vendor))
    amount = analysis.amount.quantize(Decimal("0.01"))
    amount_str = f"{amount:.2f}".replace(".", ",")
    return f"{analysis.date.isoformat()}_{vendor_clean}_{amount_str}EUR{extension}"


class ReceiptIngestionService:
    """Turns captured files into receipt drafts and saves them."""

    def __init__(
        self,
        file_processor: FileProcessorService,
        rasterizer: Rasterizer,
        extractor: ReceiptExtractor,
        store: ReceiptStore,
    ) -> None:
        self.file_processor = file_processor
        self.rasterizer = rasterizer
        self.extractor = extractor
        self.store = store

    async def analyze(
        self,
        data: bytes,
        filename: str | None = None,
        media_type: str | None = None,
    ) -> AnalyzedReceipt:
        """Build a draft for a captured receipt file.

        Args:
            data: Raw file bytes
            filename: Name of the uploaded file, if any
            media_type: Declared MIME type

        Returns:
            AnalyzedReceipt with the editable draft

        Raises:
            UnsupportedFileTypeError: If the file is neither image nor PDF
            CorruptedFileError: If the file is empty or too large
        """
        original_name = filename or f"rechnung-{int(time.time() * 1000)}"
        captured = self.file_processor.inspect(data, original_name, media_type)
        if not filename:
            original_name += captured.file_type.extension

        try:
            bitmap = await self.rasterizer.rasterize(
                captured.content, captured.file_type
            )
        except RasterizationError as e:
            logger.warning("Rasterization of %s failed: %s", original_name, e)
            analysis = ReceiptAnalysis.sentinel(
                RASTERIZATION_FAILED_DESCRIPTION, vendor=ERROR_VENDOR
            )
            draft = self._build_draft(
                analysis,
                original_name,
                image=captured.content,
                image_type=captured.file_type,
                source=captured.content,
                source_type=captured.file_type,
            )
            return AnalyzedReceipt(draft=draft, analysis=analysis)

        analysis = await self.extractor.analyze_image(
            bitmap.content, bitmap.media_type
        )
        logger.info(
            "Analyzed %s: vendor=%s amount=%s category=%s manual=%s",
            original_name,
            analysis.vendor,
            analysis.amount,
            analysis.category.value,
            analysis.manual_entry_required,
        )
        draft = self._build_draft(
            analysis,
            original_name,
            image=bitmap.content,
            image_type=bitmap.file_type,
            source=captured.content,
            source_type=captured.file_type,
        )
        return AnalyzedReceipt(draft=draft, analysis=analysis)

    def save(self, draft: ReceiptDraft) -> Receipt:
        """Persist a confirmed draft.

        Inline ``data:`` files are moved into the store's media directory
        first, so cancelled drafts never leave files behind.
        """
        updates: dict[str, str] = {}
        for field in ("image_url", "original_url"):
            reference = getattr(draft, field)
            if reference and reference.startswith("data:"):
                updates[field] = self._externalize(reference)
        if not updates:
            return self.store.add(draft)

        try:
            return self.store.add(draft.model_copy(update=updates))
        except StorageError:
            for path in updates.values():
                Path(path).unlink(missing_ok=True)
            raise

    def _externalize(self, reference: str) -> str:
        media_type = reference.removeprefix("data:").split(",")[0].split(";")[0]
        suffix = FileType.from_mime_type(media_type).extension
        return self.store.store_media(decode_data_uri(reference), suffix)

    def _build_draft(
        self,
        analysis: ReceiptAnalysis,
        original_name: str,
        *,
        image: bytes,
        image_type: FileType,
        source: bytes,
        source_type: FileType,
    ) -> ReceiptDraft:
        return ReceiptDraft(
            filename=generate_filename(analysis, image_type.extension),
            original_name=original_name,
            image_url=data_uri(image, image_type.mime_type),
            original_url=(
                data_uri(source, source_type.mime_type) if source_type.is_pdf else None
            ),
            original_type=source_type.mime_type,
            category=analysis.category,
            amount=analysis.amount,
            vendor=analysis.vendor,
            date=analysis.date,
            description=analysis.description,
        )
