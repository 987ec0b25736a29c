"""Receipt book endpoints: capture, CRUD, export and dashboard."""

from __future__ import annotations

import datetime as dt
import logging
from pathlib import Path
from typing import Annotated, Any

from fastapi import APIRouter, File, HTTPException, Query, UploadFile, status
from fastapi.responses import FileResponse, RedirectResponse, Response

from receiptbook.core.dependencies import (
    ExporterDep,
    IngestionServiceDep,
    ReceiptStoreDep,
)
from receiptbook.models import Receipt, ReceiptDraft, ReceiptUpdate
from receiptbook.services.aggregation import (
    DashboardSummary,
    dashboard_summary,
    filter_by_date_range,
)
from receiptbook.services.exporter import (
    ExportError,
    decode_data_uri,
    export_json,
    import_json,
    json_export_filename,
)
from receiptbook.services.file_processor import (
    CorruptedFileError,
    UnsupportedFileTypeError,
)
from receiptbook.services.ingestion import AnalyzedReceipt
from receiptbook.services.receipt_store import StorageError

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/receipts", tags=["receipts"])

DateFrom = Annotated[dt.date | None, Query(description="Inclusive start date")]
DateTo = Annotated[dt.date | None, Query(description="Inclusive end date")]


def _not_found(receipt_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Receipt {receipt_id} not found",
    )


def _storage_failed(error: StorageError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_507_INSUFFICIENT_STORAGE,
        detail=str(error),
    )


def _attachment(filename: str) -> dict[str, str]:
    return {"Content-Disposition": f'attachment; filename="{filename}"'}


@router.get("", response_model=list[Receipt])
async def list_receipts(
    store: ReceiptStoreDep,
    date_from: DateFrom = None,
    date_to: DateTo = None,
) -> list[Receipt]:
    """List receipts, newest first, optionally limited to a date range."""
    return filter_by_date_range(store.list_receipts(), date_from, date_to)


@router.post("/analyze", response_model=AnalyzedReceipt)
async def analyze_receipt_file(
    file: Annotated[UploadFile, File(description="Receipt image or PDF")],
    ingestion: IngestionServiceDep,
) -> AnalyzedReceipt:
    """Analyze an uploaded receipt and return an editable draft.

    Nothing is stored until the draft is posted back.
    """
    content = await file.read()
    try:
        return await ingestion.analyze(content, file.filename, file.content_type)
    except UnsupportedFileTypeError as e:
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail=str(e),
        ) from e
    except CorruptedFileError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid receipt file: {e}",
        ) from e


@router.post("", response_model=Receipt, status_code=status.HTTP_201_CREATED)
async def create_receipt(
    draft: ReceiptDraft,
    ingestion: IngestionServiceDep,
) -> Receipt:
    """Save a confirmed draft."""
    try:
        return ingestion.save(draft)
    except StorageError as e:
        raise _storage_failed(e) from e


@router.get("/export/json")
async def export_receipts_json(
    store: ReceiptStoreDep,
    date_from: DateFrom = None,
    date_to: DateTo = None,
) -> Response:
    """Download all receipts as a JSON file."""
    receipts = filter_by_date_range(store.list_receipts(), date_from, date_to)
    return Response(
        content=export_json(receipts),
        media_type="application/json",
        headers=_attachment(json_export_filename()),
    )


@router.post("/import")
async def import_receipts(
    file: Annotated[UploadFile, File(description="JSON export file")],
    store: ReceiptStoreDep,
) -> dict[str, Any]:
    """Replace the stored receipts with the contents of a JSON export."""
    try:
        receipts = import_json(await file.read())
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        ) from e

    try:
        count = store.replace_all(receipts)
    except StorageError as e:
        raise _storage_failed(e) from e
    return {"status": "success", "imported": count}


@router.get("/export/zip")
async def export_receipts_zip(
    store: ReceiptStoreDep,
    exporter: ExporterDep,
    date_from: Annotated[dt.date, Query(description="Inclusive start date")],
    date_to: Annotated[dt.date, Query(description="Inclusive end date")],
) -> Response:
    """Download the receipt files of a date range as a ZIP archive."""
    try:
        result = await exporter.export_zip(store.list_receipts(), date_from, date_to)
    except ExportError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        ) from e

    headers = _attachment(result.filename)
    headers["X-Export-Included"] = str(len(result.included))
    headers["X-Export-Failed"] = str(len(result.failed))
    return Response(
        content=result.content, media_type="application/zip", headers=headers
    )


@router.get("/dashboard", response_model=DashboardSummary)
async def get_dashboard(
    store: ReceiptStoreDep,
    date_from: DateFrom = None,
    date_to: DateTo = None,
) -> DashboardSummary:
    """Totals per month and category."""
    return dashboard_summary(
        filter_by_date_range(store.list_receipts(), date_from, date_to)
    )


@router.get("/{receipt_id}", response_model=Receipt)
async def get_receipt(receipt_id: str, store: ReceiptStoreDep) -> Receipt:
    """Get a single receipt."""
    receipt = store.get(receipt_id)
    if receipt is None:
        raise _not_found(receipt_id)
    return receipt


@router.get("/{receipt_id}/file")
async def download_receipt_file(receipt_id: str, store: ReceiptStoreDep) -> Response:
    """Download the receipt's original file (or its image)."""
    receipt = store.get(receipt_id)
    if receipt is None:
        raise _not_found(receipt_id)

    reference = receipt.source_url
    if reference.startswith(("http://", "https://")):
        return RedirectResponse(reference)
    if reference.startswith("data:"):
        media_type = reference.removeprefix("data:").split(",")[0].split(";")[0]
        try:
            content = decode_data_uri(reference)
        except ValueError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=str(e),
            ) from e
        return Response(
            content=content,
            media_type=media_type or None,
            headers=_attachment(receipt.export_name),
        )
    if not store.owns(reference) or not Path(reference).is_file():
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Receipt file not available",
        )
    return FileResponse(reference, filename=receipt.export_name)


@router.patch("/{receipt_id}", response_model=Receipt)
async def update_receipt(
    receipt_id: str,
    changes: ReceiptUpdate,
    store: ReceiptStoreDep,
) -> Receipt:
    """Edit a stored receipt."""
    try:
        receipt = store.update(receipt_id, changes)
    except StorageError as e:
        raise _storage_failed(e) from e
    if receipt is None:
        raise _not_found(receipt_id)
    return receipt


@router.delete("/{receipt_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_receipt(receipt_id: str, store: ReceiptStoreDep) -> Response:
    """Delete a receipt; unknown ids are ignored."""
    try:
        store.delete(receipt_id)
    except StorageError as e:
        raise _storage_failed(e) from e
    return Response(status_code=status.HTTP_204_NO_CONTENT)
