"""Dependency injection for FastAPI."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends

from receiptbook.core.config import Settings, get_settings
from receiptbook.services.exporter import ReceiptExporter
from receiptbook.services.file_processor import FileProcessorService
from receiptbook.services.ingestion import ReceiptIngestionService
from receiptbook.services.rasterizer import Rasterizer
from receiptbook.services.receipt_store import ReceiptStore
from receiptbook.services.vision import VisionReceiptService

# Global instance that will be initialized on startup
_receipt_store: ReceiptStore | None = None


def set_receipt_store(store: ReceiptStore | None) -> None:
    """Set the global receipt store instance."""
    global _receipt_store  # noqa: PLW0603
    _receipt_store = store


def get_receipt_store() -> ReceiptStore:
    """Get the receipt store instance."""
    if _receipt_store is None:
        msg = "Receipt store not initialized"
        raise RuntimeError(msg)
    return _receipt_store


def get_vision_service(
    settings: Annotated[Settings, Depends(get_settings)],
) -> VisionReceiptService:
    """Get vision service instance."""
    return VisionReceiptService(settings)


def get_ingestion_service(
    settings: Annotated[Settings, Depends(get_settings)],
    store: Annotated[ReceiptStore, Depends(get_receipt_store)],
    vision: Annotated[VisionReceiptService, Depends(get_vision_service)],
) -> ReceiptIngestionService:
    """Get ingestion service instance (in-process extraction)."""
    return ReceiptIngestionService(
        file_processor=FileProcessorService(max_file_size=settings.max_upload_size),
        rasterizer=Rasterizer(scale=settings.rasterizer_scale),
        extractor=vision,
        store=store,
    )


def get_exporter(
    settings: Annotated[Settings, Depends(get_settings)],
    store: Annotated[ReceiptStore, Depends(get_receipt_store)],
) -> ReceiptExporter:
    """Get receipt exporter instance limited to the store's files."""
    return ReceiptExporter(timeout=settings.extraction_timeout, owns=store.owns)


# Type aliases for dependency injection
SettingsDep = Annotated[Settings, Depends(get_settings)]
ReceiptStoreDep = Annotated[ReceiptStore, Depends(get_receipt_store)]
VisionServiceDep = Annotated[VisionReceiptService, Depends(get_vision_service)]
IngestionServiceDep = Annotated[
    ReceiptIngestionService, Depends(get_ingestion_service)
]
ExporterDep = Annotated[ReceiptExporter, Depends(get_exporter)]
