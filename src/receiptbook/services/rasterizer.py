"""Render receipts to a viewable bitmap (PDF page one via pdf2image)."""

from __future__ import annotations

import asyncio
import io
import logging

from pdf2image import convert_from_bytes
from pdf2image.exceptions import PDFPageCountError, PDFSyntaxError
from PIL import Image
from pydantic import BaseModel, ConfigDict
from pypdf import PdfReader

from receiptbook.services.file_processor import FileType

logger = logging.getLogger(__name__)


class RasterizationError(Exception):
    """Raised when a PDF page cannot be rendered."""


class RasterizedImage(BaseModel):
    """Bitmap ready for extraction and display."""

    model_config = ConfigDict(frozen=True)

    content: bytes
    file_type: FileType
    source_type: FileType
    page_count: int = 1

    @property
    def media_type(self) -> str:
        """MIME type of the bitmap."""
        return self.file_type.mime_type


class Rasterizer:
    """Converts page one of a PDF into a PNG; images pass through."""

    BASE_DPI = 72  # PDF user space unit
    DEFAULT_SCALE = 2.0
    MAX_IMAGE_SIZE = (2048, 2048)  # Max size for AI processing

    def __init__(self, scale: float | None = None) -> None:
        """Initialize the rasterizer.

        Args:
            scale: Render scale relative to 72 DPI (default: 2.0)
        """
        self.scale = scale or self.DEFAULT_SCALE

    @property
    def dpi(self) -> int:
        """Render resolution derived from the scale factor."""
        return round(self.BASE_DPI * self.scale)

    async def rasterize(self, content: bytes, file_type: FileType) -> RasterizedImage:
        """Return a bitmap for the given receipt file.

        Args:
            content: Raw file bytes
            file_type: Detected file type

        Returns:
            RasterizedImage holding PNG bytes for PDFs, the input for images

        Raises:
            RasterizationError: If the PDF cannot be rendered
        """
        if not file_type.is_pdf:
            return RasterizedImage(
                content=content, file_type=file_type, source_type=file_type
            )

        png_bytes = await asyncio.to_thread(self._render_first_page, content)
        page_count = self._page_count(content)
        logger.info(
            "Rendered PDF page 1 of %d at %d DPI (%d bytes)",
            page_count,
            self.dpi,
            len(png_bytes),
        )
        return RasterizedImage(
            content=png_bytes,
            file_type=FileType.PNG,
            source_type=FileType.PDF,
            page_count=page_count,
        )

    def _render_first_page(self, pdf_bytes: bytes) -> bytes:
        """Render page one to PNG bytes."""
        try:
            images = convert_from_bytes(
                pdf_bytes,
                dpi=self.dpi,
                first_page=1,  # pdf2image uses 1-based indexing
                last_page=1,
            )
        except PDFPageCountError as e:
            msg = "PDF has no readable pages"
            raise RasterizationError(msg) from e
        except PDFSyntaxError as e:
            msg = "Invalid or corrupted PDF file"
            raise RasterizationError(msg) from e
        except Exception as e:
            logger.error("PDF conversion failed: %s", e)
            msg = f"PDF conversion failed: {e}"
            raise RasterizationError(msg) from e

        if not images:
            msg = "No image generated for page 1"
            raise RasterizationError(msg)

        image = images[0]

        try:
            # Resize if too large while maintaining aspect ratio
            image.thumbnail(self.MAX_IMAGE_SIZE, Image.Resampling.LANCZOS)

            buffer = io.BytesIO()
            image.save(buffer, format="PNG", optimize=True)
        except (OSError, ValueError) as e:
            logger.error("Encoding rendered page failed: %s", e)
            msg = f"Could not encode rendered page: {e}"
            raise RasterizationError(msg) from e
        return buffer.getvalue()

    def _page_count(self, pdf_bytes: bytes) -> int:
        """Number of pages, or 1 when the document cannot be parsed by pypdf."""
        try:
            return len(PdfReader(io.BytesIO(pdf_bytes)).pages)
        except Exception as e:  # noqa: BLE001
            logger.debug("Could not count PDF pages: %s", e)
            return 1
