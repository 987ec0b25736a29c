"""JSON and ZIP export of stored receipts."""

from __future__ import annotations

import asyncio
import base64
import binascii
import datetime as dt
import io
import json
import logging
import zipfile
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import unquote_to_bytes

import httpx
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from receiptbook.models.receipt import Receipt
from receiptbook.services.aggregation import filter_by_date_range

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

logger = logging.getLogger(__name__)

_RECEIPT_LIST = TypeAdapter(list[Receipt])


class ExportError(Exception):
    """Raised when an export produces nothing to deliver."""


class ForeignFileError(ExportError):
    """Raised for local file references outside the receipt store."""


class ExportResult(BaseModel):
    """A finished ZIP export."""

    filename: str
    content: bytes = Field(repr=False)
    included: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)


def json_export_filename(today: dt.date | None = None) -> str:
    """Download name of the JSON dump."""
    return f"rechnungen-export-{(today or dt.date.today()).isoformat()}.json"


def zip_export_filename(date_from: dt.date, date_to: dt.date) -> str:
    """Download name of the ZIP archive."""
    return f"belege-{date_from.isoformat()}-{date_to.isoformat()}.zip"


def export_json(receipts: Iterable[Receipt]) -> str:
    """Serialize receipts as a pretty-printed JSON array."""
    data = [
        r.model_dump(mode="json", by_alias=True, exclude_none=True) for r in receipts
    ]
    return json.dumps(data, indent=2, ensure_ascii=False)


def import_json(payload: str | bytes) -> list[Receipt]:
    """Parse a JSON dump produced by :func:`export_json`.

    Raises:
        ValueError: If the payload is not a valid receipt list
    """
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        msg = f"Invalid JSON export: {e}"
        raise ValueError(msg) from e

    # Accept the persisted blob format as well as the plain array
    if isinstance(data, dict) and len(data) == 1:
        data = next(iter(data.values()))

    try:
        return _RECEIPT_LIST.validate_python(data)
    except ValidationError as e:
        msg = f"Invalid receipt data: {e.error_count()} errors"
        raise ValueError(msg) from e


def decode_data_uri(uri: str) -> bytes:
    """Decode the payload of a ``data:`` URI."""
    header, sep, payload = uri.partition(",")
    if not uri.startswith("data:") or not sep:
        msg = "Malformed data URI"
        raise ValueError(msg)
    if header.endswith(";base64"):
        try:
            return base64.b64decode(payload, validate=True)
        except binascii.Error as e:
            msg = f"Invalid base64 in data URI: {e}"
            raise ValueError(msg) from e
    return unquote_to_bytes(payload)


class ReceiptExporter:
    """Builds date-range ZIP archives of receipt files."""

    def __init__(
        self,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        owns: Callable[[str], bool] | None = None,
    ) -> None:
        """Initialize the exporter.

        Args:
            timeout: Timeout for fetching remote files in seconds
            transport: Optional httpx transport (used by tests)
            owns: Ownership check for local paths; without it no local
                file is read
        """
        self.timeout = timeout
        self._transport = transport
        self._owns = owns

    async def export_zip(
        self,
        receipts: Iterable[Receipt],
        date_from: dt.date,
        date_to: dt.date,
    ) -> ExportResult:
        """Archive the files of all receipts dated within the range.

        Files that cannot be fetched are skipped and reported in ``failed``.

        Raises:
            ExportError: If no receipt is in range or no file could be fetched
        """
        selected = filter_by_date_range(receipts, date_from, date_to)
        if not selected:
            msg = "Keine Dateien im Zeitraum"
            raise ExportError(msg)

        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self._transport
        ) as client:
            results = await asyncio.gather(
                *(self._fetch(client, r.source_url) for r in selected),
                return_exceptions=True,
            )

        files: list[tuple[str, bytes]] = []
        failed: list[str] = []
        for receipt, result in zip(selected, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning("Skipping %s in export: %s", receipt.export_name, result)
                failed.append(receipt.export_name)
            else:
                files.append((receipt.export_name, result))

        if not files:
            msg = "Keine gültigen Dateien im angegebenen Zeitraum"
            raise ExportError(msg)

        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            used: set[str] = set()
            for name, content in files:
                archive.writestr(self._unique_name(name, used), content)

        logger.info(
            "ZIP export %s..%s: %d files, %d failed",
            date_from,
            date_to,
            len(files),
            len(failed),
        )
        return ExportResult(
            filename=zip_export_filename(date_from, date_to),
            content=buffer.getvalue(),
            included=[name for name, _ in files],
            failed=failed,
        )

    async def _fetch(self, client: httpx.AsyncClient, reference: str) -> bytes:
        """Load the bytes behind a receipt file reference."""
        if reference.startswith("data:"):
            return decode_data_uri(reference)
        if reference.startswith(("http://", "https://")):
            response = await client.get(reference)
            response.raise_for_status()
            return response.content
        path = reference.removeprefix("file://")
        if self._owns is None or not self._owns(path):
            msg = f"Not a receipt store file: {path}"
            raise ForeignFileError(msg)
        return await asyncio.to_thread(Path(path).read_bytes)

    @staticmethod
    def _unique_name(name: str, used: set[str]) -> str:
        """Avoid duplicate archive entries for receipts sharing a filename."""
        candidate = name
        stem, dot, suffix = name.rpartition(".")
        counter = 1
        while candidate in used:
            counter += 1
            candidate = f"{stem}-{counter}.{suffix}" if dot else f"{name}-{counter}"
        used.add(candidate)
        return candidate
