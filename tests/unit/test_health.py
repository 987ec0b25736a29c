"""Tests for health check endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import status

from receiptbook.core.config import get_settings

if TYPE_CHECKING:
    from collections.abc import Callable

    from fastapi import FastAPI
    from fastapi.testclient import TestClient

    from receiptbook.core.config import Settings
    from receiptbook.models import ReceiptDraft
    from receiptbook.services.receipt_store import ReceiptStore


def test_health_check(client: TestClient) -> None:
    """Test health check endpoint."""
    response = client.get("/health")
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"status": "healthy", "service": "receiptbook"}


def test_readiness_check(
    client: TestClient, store: ReceiptStore, make_draft: Callable[..., ReceiptDraft]
) -> None:
    """Readiness reports storage, model key and receipt count."""
    store.add(make_draft())

    response = client.get("/ready")

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["status"] == "ready"
    assert data["dependencies"] == {
        "storage": "available",
        "vision_model": "configured",
    }
    assert data["receipts"] == 1


def test_readiness_without_api_key(
    app: FastAPI, client: TestClient, test_settings: Settings
) -> None:
    """A missing key is reported, not fatal."""
    app.dependency_overrides[get_settings] = lambda: test_settings.model_copy(
        update={"openai_api_key": ""}
    )

    response = client.get("/ready")

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["dependencies"]["vision_model"] == "missing key"
