"""File type detection and validation for captured receipts."""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class FileType(str, Enum):
    """Supported file types for receipt capture."""

    JPEG = "jpeg"
    JPG = "jpg"
    PNG = "png"
    GIF = "gif"
    BMP = "bmp"
    WEBP = "webp"
    PDF = "pdf"
    UNKNOWN = "unknown"

    @classmethod
    def from_mime_type(cls, mime_type: str) -> FileType:
        """Convert MIME type to FileType enum."""
        mime_mapping = {
            "image/jpeg": cls.JPEG,
            "image/jpg": cls.JPG,
            "image/png": cls.PNG,
            "image/gif": cls.GIF,
            "image/bmp": cls.BMP,
            "image/webp": cls.WEBP,
            "application/pdf": cls.PDF,
        }
        return mime_mapping.get(mime_type.lower().split(";")[0].strip(), cls.UNKNOWN)

    @classmethod
    def from_extension(cls, extension: str) -> FileType:
        """Convert file extension to FileType enum."""
        ext = extension.lower().lstrip(".")
        try:
            return cls(ext)
        except ValueError:
            return cls.UNKNOWN

    @classmethod
    def from_declared(cls, declared: str | None) -> FileType:
        """Resolve a declared type given either as MIME type or extension."""
        if not declared:
            return cls.UNKNOWN
        if "/" in declared:
            return cls.from_mime_type(declared)
        return cls.from_extension(declared)

    @property
    def is_image(self) -> bool:
        """Check if file type is an image format."""
        return self in {
            self.JPEG,
            self.JPG,
            self.PNG,
            self.GIF,
            self.BMP,
            self.WEBP,
        }

    @property
    def is_pdf(self) -> bool:
        """Check if file type is PDF."""
        return self == self.PDF

    @property
    def mime_type(self) -> str:
        """Canonical MIME type."""
        if self.is_pdf:
            return "application/pdf"
        if self in {self.JPEG, self.JPG}:
            return "image/jpeg"
        if self == self.UNKNOWN:
            return "application/octet-stream"
        return f"image/{self.value}"

    @property
    def extension(self) -> str:
        """Canonical file extension including the dot."""
        if self in {self.JPEG, self.JPG}:
            return ".jpg"
        return f".{self.value}"


class CapturedFile(BaseModel):
    """Raw receipt file as delivered by the capture step."""

    model_config = ConfigDict(frozen=True)

    content: bytes = Field(..., min_length=1)
    file_type: FileType
    filename: str


class FileProcessingError(Exception):
    """Base exception for file processing errors."""


class UnsupportedFileTypeError(FileProcessingError):
    """Raised when file type is not supported."""


class CorruptedFileError(FileProcessingError):
    """Raised when file is corrupted, empty or too large."""


class FileProcessorService:
    """Service for detecting and validating captured receipt files."""

    MIN_FILE_SIZE = 32  # Minimum file size in bytes
    MAX_FILE_SIZE = 50 * 1024 * 1024  # Maximum file size (50MB)

    # Magic bytes for file type detection
    MAGIC_BYTES: ClassVar[dict[bytes, FileType]] = {
        b"\xff\xd8\xff": FileType.JPEG,
        b"\x89PNG\r\n\x1a\n": FileType.PNG,
        b"GIF87a": FileType.GIF,
        b"GIF89a": FileType.GIF,
        b"BM": FileType.BMP,
        b"RIFF": FileType.WEBP,  # Needs additional check
        b"%PDF": FileType.PDF,
    }

    def __init__(self, max_file_size: int | None = None) -> None:
        """Initialize file processor service."""
        self.max_file_size = max_file_size or self.MAX_FILE_SIZE

    def detect_file_type(self, file_bytes: bytes) -> FileType:
        """Detect file type from content using magic bytes."""
        for magic, file_type in self.MAGIC_BYTES.items():
            if file_bytes.startswith(magic):
                # Special case for WEBP
                if magic == b"RIFF":
                    if b"WEBP" in file_bytes[:20]:
                        return FileType.WEBP
                    continue
                return file_type
        return FileType.UNKNOWN

    def validate_size(self, file_bytes: bytes) -> None:
        """Reject empty, truncated or oversized files."""
        if len(file_bytes) < self.MIN_FILE_SIZE:
            msg = f"File too small ({len(file_bytes)} bytes)"
            raise CorruptedFileError(msg)
        if len(file_bytes) > self.max_file_size:
            size_mb = len(file_bytes) / (1024 * 1024)
            msg = f"File too large ({size_mb:.1f}MB)"
            raise CorruptedFileError(msg)

    def inspect(
        self,
        file_bytes: bytes,
        filename: str,
        declared_type: str | None = None,
    ) -> CapturedFile:
        """Validate a captured file and settle its type.

        Content sniffing wins over the declared type; the declared MIME type
        or the filename extension is used only when sniffing fails.
        """
        self.validate_size(file_bytes)

        file_type = self.detect_file_type(file_bytes)
        if file_type == FileType.UNKNOWN:
            file_type = FileType.from_declared(declared_type)
        if file_type == FileType.UNKNOWN:
            file_type = FileType.from_extension(Path(filename).suffix)

        if not (file_type.is_image or file_type.is_pdf):
            msg = "Bitte wählen Sie eine Bilddatei oder PDF aus."
            raise UnsupportedFileTypeError(msg)

        logger.debug("Captured %s as %s", filename, file_type.value)
        return CapturedFile(content=file_bytes, file_type=file_type, filename=filename)

    def get_supported_extensions(self) -> set[str]:
        """Get set of supported file extensions."""
        return {".jpg", ".jpeg", ".png", ".gif", ".bmp", ".webp", ".pdf"}

    def is_supported_file(self, filename: str) -> bool:
        """Check if file extension is supported."""
        return Path(filename).suffix.lower() in self.get_supported_extensions()
