"""Receiptbook services."""

from .exporter import ExportError, ReceiptExporter
from .extraction_client import ExtractionClient
from .file_processor import FileProcessorService
from .ingestion import ReceiptIngestionService
from .rasterizer import Rasterizer
from .receipt_store import ReceiptStore
from .vision import VisionReceiptService

__all__ = [
    "ExportError",
    "ExtractionClient",
    "FileProcessorService",
    "Rasterizer",
    "ReceiptExporter",
    "ReceiptIngestionService",
    "ReceiptStore",
    "VisionReceiptService",
]
