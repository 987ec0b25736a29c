"""Pytest configuration and fixtures."""

from __future__ import annotations

import datetime as dt
import io
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from receiptbook.core.config import Settings, get_settings
from receiptbook.core.dependencies import set_receipt_store
from receiptbook.main import create_app
from receiptbook.models import Receipt, ReceiptCategory, ReceiptDraft
from receiptbook.services.receipt_store import ReceiptStore

if TYPE_CHECKING:
    from collections.abc import Callable, Generator
    from pathlib import Path

    from fastapi import FastAPI


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Create test settings pointing at a temporary data directory."""
    return Settings(
        _env_file=None,
        openai_api_key="test-openai-key",
        storage_path=str(tmp_path / "data" / "receipts.json"),
        media_dir=str(tmp_path / "data" / "media"),
        log_dir=str(tmp_path / "logs"),
        extraction_endpoint_url="http://testserver/api/v1/analyze-receipt",
        debug=True,
    )


@pytest.fixture
def store(test_settings: Settings) -> ReceiptStore:
    """Create an empty receipt store."""
    return ReceiptStore(
        file_path=test_settings.storage_path,
        media_dir=test_settings.media_dir,
        max_bytes=test_settings.storage_max_bytes,
    )


@pytest.fixture
def png_bytes() -> bytes:
    """A small but valid PNG image."""
    buffer = io.BytesIO()
    Image.new("RGB", (16, 16), color="white").save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def pdf_bytes() -> bytes:
    """Bytes that sniff as a PDF (rendering is patched in tests)."""
    return b"%PDF-1.4\n1 0 obj\n<< /Type /Catalog >>\nendobj\ntrailer\n%%EOF\n"


@pytest.fixture
def make_draft() -> Callable[..., ReceiptDraft]:
    """Factory for receipt drafts with sensible defaults."""

    def _make(**overrides: Any) -> ReceiptDraft:
        data: dict[str, Any] = {
            "filename": "2024-03-15_Restaurant-Bella-Vista_45,80EUR.jpg",
            "original_name": "rechnung.jpg",
            "image_url": "data:image/jpeg;base64,/9j/4AAQSkZJRg==",
            "category": ReceiptCategory.RESTAURANT,
            "amount": Decimal("45.80"),
            "vendor": "Restaurant Bella Vista",
            "date": dt.date(2024, 3, 15),
            "description": "Abendessen für 2 Personen",
        }
        data.update(overrides)
        return ReceiptDraft(**data)

    return _make


@pytest.fixture
def make_receipt(
    make_draft: Callable[..., ReceiptDraft],
) -> Callable[..., Receipt]:
    """Factory for stored-style receipts (not persisted)."""

    def _make(**overrides: Any) -> Receipt:
        return Receipt(**make_draft(**overrides).model_dump())

    return _make


@pytest.fixture
def app(
    test_settings: Settings, store: ReceiptStore
) -> Generator[FastAPI, None, None]:
    """Create test FastAPI app."""
    app = create_app()
    app.dependency_overrides[get_settings] = lambda: test_settings
    set_receipt_store(store)

    yield app

    app.dependency_overrides.clear()
    set_receipt_store(None)


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    """Create test client (the lifespan is not run; services are injected)."""
    return TestClient(app)
