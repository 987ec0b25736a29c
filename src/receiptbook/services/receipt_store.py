"""Receipt storage backed by a single JSON file."""

from __future__ import annotations

import json
import logging
import os
import uuid
from pathlib import Path
from typing import TYPE_CHECKING, Any

from filelock import FileLock
from pydantic import ValidationError

from receiptbook.models.receipt import Receipt, ReceiptDraft, ReceiptUpdate

if TYPE_CHECKING:
    from collections.abc import Collection, Iterable

logger = logging.getLogger(__name__)

STORAGE_KEY = "receipt-analyzer-receipts"
QUOTA_EXCEEDED_MESSAGE = (
    "Speicher ist voll. Löschen Sie alte Rechnungen oder verringern Sie die "
    "Bildqualität."
)


class StorageError(Exception):
    """Base exception for receipt storage errors."""


class StorageQuotaExceededError(StorageError):
    """Raised when the persisted blob would exceed the configured size."""


class ReceiptStore:
    """In-memory receipt list mirrored to a JSON file on every mutation.

    Single-user storage: the list is ordered newest first, and every write
    replaces the whole file.
    """

    DEFAULT_MAX_BYTES = 5 * 1024 * 1024

    def __init__(
        self,
        file_path: str | Path = "data/receipts.json",
        media_dir: str | Path = "data/media",
        max_bytes: int | None = None,
    ) -> None:
        """Initialize the store and load persisted receipts.

        Args:
            file_path: Path to the receipts JSON file
            media_dir: Directory for receipt files owned by the store
            max_bytes: Maximum size of the serialized receipts
        """
        self.file_path = Path(file_path)
        self.media_dir = Path(media_dir)
        self.max_bytes = max_bytes or self.DEFAULT_MAX_BYTES
        self.lock_file = self.file_path.with_name(self.file_path.name + ".lock")

        # Ensure directories exist
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        self.media_dir.mkdir(parents=True, exist_ok=True)

        self._receipts: list[Receipt] = self._load()

    def __len__(self) -> int:
        return len(self._receipts)

    def list_receipts(self) -> list[Receipt]:
        """All receipts, newest first."""
        return list(self._receipts)

    def get(self, receipt_id: str) -> Receipt | None:
        """Look up a receipt by id."""
        return next((r for r in self._receipts if r.id == receipt_id), None)

    def reload(self) -> None:
        """Re-read the persisted file."""
        self._receipts = self._load()

    def add(self, draft: ReceiptDraft) -> Receipt:
        """Store a new receipt with a fresh id and creation timestamp."""
        receipt = Receipt(**draft.model_dump())
        self._save([receipt, *self._receipts])
        logger.info(
            "Added receipt %s (vendor=%s, amount=%s, date=%s, category=%s)",
            receipt.id,
            receipt.vendor,
            receipt.amount,
            receipt.date,
            receipt.category.value,
        )
        return receipt

    def update(
        self, receipt_id: str, changes: ReceiptUpdate | dict[str, Any]
    ) -> Receipt | None:
        """Apply an edit to a stored receipt.

        Returns:
            The updated receipt, or None if the id is unknown
        """
        if isinstance(changes, ReceiptUpdate):
            fields = changes.changes()
        else:
            fields = ReceiptUpdate.model_validate(changes).changes()

        updated: Receipt | None = None
        receipts = []
        for receipt in self._receipts:
            if receipt.id == receipt_id:
                updated = Receipt.model_validate({**receipt.model_dump(), **fields})
                receipts.append(updated)
            else:
                receipts.append(receipt)

        if updated is None:
            logger.info("Update ignored, unknown receipt %s", receipt_id)
            return None

        self._save(receipts)
        logger.info("Updated receipt %s (%s)", receipt_id, ", ".join(sorted(fields)))
        return updated

    def delete(self, receipt_id: str) -> bool:
        """Remove a receipt and release its store-owned files.

        Deleting an unknown id is a no-op.

        Returns:
            True if a receipt was removed
        """
        receipt = self.get(receipt_id)
        if receipt is None:
            logger.info("Delete ignored, unknown receipt %s", receipt_id)
            return False

        self._save([r for r in self._receipts if r.id != receipt_id])
        self._release_media(receipt)
        logger.info("Deleted receipt %s", receipt_id)
        return True

    def replace_all(self, receipts: Iterable[Receipt]) -> int:
        """Replace the stored list (used by JSON import).

        Returns:
            Number of receipts stored
        """
        unique: dict[str, Receipt] = {}
        for receipt in receipts:
            unique.setdefault(receipt.id, receipt)
        previous = self._receipts
        self._save(list(unique.values()))

        # Files still referenced by the new list stay on disk
        in_use = {
            reference
            for r in unique.values()
            for reference in (r.image_url, r.original_url)
            if reference
        }
        for receipt in previous:
            self._release_media(receipt, keep=in_use)
        logger.info("Replaced store contents with %d receipts", len(unique))
        return len(unique)

    def store_media(self, content: bytes, suffix: str) -> str:
        """Write a receipt file into the media directory.

        Returns:
            Path reference to the written file
        """
        path = self.media_dir / f"{uuid.uuid4().hex}{suffix}"
        try:
            path.write_bytes(content)
        except OSError as e:
            msg = f"Failed to write receipt file: {e}"
            raise StorageError(msg) from e
        logger.debug("Stored %d bytes at %s", len(content), path)
        return str(path)

    def owns(self, reference: str | None) -> bool:
        """Whether a reference points at a file inside the media directory."""
        if not reference or reference.startswith(("data:", "http://", "https://")):
            return False
        try:
            Path(reference).resolve().relative_to(self.media_dir.resolve())
        except ValueError:
            return False
        return True

    def _release_media(
        self, receipt: Receipt, keep: Collection[str] = ()
    ) -> None:
        """Delete files the store wrote for this receipt; data URIs are left alone."""
        for reference in {receipt.image_url, receipt.original_url}:
            if reference in keep or not self.owns(reference):
                continue
            try:
                Path(str(reference)).unlink(missing_ok=True)
                logger.debug("Released %s", reference)
            except OSError as e:
                logger.warning("Failed to release %s: %s", reference, e)

    def _load(self) -> list[Receipt]:
        """Load receipts from the JSON file with file locking."""
        if not self.file_path.exists():
            logger.info("Receipt file does not exist yet: %s", self.file_path)
            return []

        try:
            with FileLock(self.lock_file, timeout=10), self.file_path.open(
                encoding="utf-8"
            ) as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.error("Failed to parse receipt file: %s", e)
            return []
        except OSError as e:
            logger.error("Failed to load receipts: %s", e)
            return []

        entries = data.get(STORAGE_KEY, []) if isinstance(data, dict) else data
        receipts = []
        for entry in entries if isinstance(entries, list) else []:
            try:
                receipts.append(Receipt.model_validate(entry))
            except ValidationError as e:
                logger.warning("Skipping invalid stored receipt: %s", e)

        logger.info("Loaded %d receipts from %s", len(receipts), self.file_path)
        return receipts

    def _save(self, receipts: list[Receipt]) -> None:
        """Persist the full list, then swap it in memory."""
        payload = json.dumps(
            {
                STORAGE_KEY: [
                    r.model_dump(mode="json", by_alias=True, exclude_none=True)
                    for r in receipts
                ]
            },
            ensure_ascii=False,
        )
        size = len(payload.encode("utf-8"))
        logger.debug(
            "Saving %d receipts, data size: ~%.2f MB", len(receipts), size / 1048576
        )
        if size > self.max_bytes:
            logger.error(
                "Receipt storage quota exceeded (%d > %d)", size, self.max_bytes
            )
            raise StorageQuotaExceededError(QUOTA_EXCEEDED_MESSAGE)

        tmp_path = self.file_path.with_name(self.file_path.name + ".tmp")
        try:
            with FileLock(self.lock_file, timeout=10):
                tmp_path.write_text(payload, encoding="utf-8")
                os.replace(tmp_path, self.file_path)
        except OSError as e:
            logger.error("Failed to save receipts: %s", e)
            msg = f"Failed to save receipts: {e}"
            raise StorageError(msg) from e

        self._receipts = receipts
