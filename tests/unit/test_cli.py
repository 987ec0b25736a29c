"""Unit tests for the CLI module."""

from __future__ import annotations

import argparse
import datetime as dt
import json
import zipfile
from decimal import Decimal
from pathlib import Path
from typing import TYPE_CHECKING
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from receiptbook.cli import (
    FileValidationError,
    ReceiptBookCLI,
    async_main,
    create_parser,
)
from receiptbook.models import ReceiptAnalysis, ReceiptCategory
from receiptbook.services.file_processor import FileProcessorService
from receiptbook.services.ingestion import ReceiptIngestionService
from receiptbook.services.rasterizer import Rasterizer

if TYPE_CHECKING:
    from collections.abc import Callable

    from receiptbook.core.config import Settings
    from receiptbook.models import ReceiptDraft
    from receiptbook.services.receipt_store import ReceiptStore


@pytest.fixture
def cli(test_settings: Settings, store: ReceiptStore) -> ReceiptBookCLI:
    """CLI bound to the test store."""
    with patch("receiptbook.cli.get_settings", return_value=test_settings):
        return ReceiptBookCLI(store=store)


@pytest.fixture
def extractor() -> MagicMock:
    """Mock extractor returning an office receipt."""
    mock = MagicMock()
    mock.analyze_image = AsyncMock(
        return_value=ReceiptAnalysis(
            vendor="Staples",
            amount=Decimal("23.45"),
            date=dt.date(2024, 2, 12),
            category=ReceiptCategory.OFFICE,
            description="Druckerpapier",
            confidence=0.8,
        )
    )
    return mock


@pytest.fixture
def ingestion(
    cli: ReceiptBookCLI, extractor: MagicMock
) -> ReceiptIngestionService:
    """Pipeline with the mock extractor, wired into the CLI."""
    service = ReceiptIngestionService(
        file_processor=FileProcessorService(),
        rasterizer=Rasterizer(),
        extractor=extractor,
        store=cli.store,
    )
    cli.create_ingestion_service = MagicMock(return_value=service)
    return service


def parse(*argv: str) -> argparse.Namespace:
    """Parse CLI arguments."""
    return create_parser().parse_args(list(argv))


class TestCLIArgumentParsing:
    """Test CLI argument parsing."""

    def test_add_command_basic(self) -> None:
        """Test basic add command parsing."""
        args = parse("add", "rechnung.jpg")
        assert args.command == "add"
        assert args.receipt == "rechnung.jpg"
        assert args.dry_run is False
        assert args.local is False
        assert args.output == "text"

    def test_add_command_overrides(self) -> None:
        """Overrides are parsed into typed values."""
        args = parse(
            "add",
            "hotel.pdf",
            "--category",
            "transport",
            "--date",
            "2024-03-01",
            "--amount",
            "12,50",
        )
        assert args.category == "transport"
        assert args.date == dt.date(2024, 3, 1)
        assert args.amount == "12,50"

    def test_invalid_category(self) -> None:
        """Unknown categories are rejected by the parser."""
        with pytest.raises(SystemExit):
            parse("add", "rechnung.jpg", "--category", "licenses")

    def test_export_zip_requires_range(self) -> None:
        """The archive needs both dates."""
        with pytest.raises(SystemExit):
            parse("export-zip", "--from", "2024-01-01")

        args = parse("export-zip", "--from", "2024-01-01", "--to", "2024-12-31")
        assert args.date_from == dt.date(2024, 1, 1)
        assert args.date_to == dt.date(2024, 12, 31)
        assert args.output_dir == "."

    def test_invalid_date(self) -> None:
        """Dates must be ISO formatted."""
        with pytest.raises(SystemExit):
            parse("list", "--from", "15.03.2024")

    def test_invalid_command(self) -> None:
        """Test parser with invalid command."""
        with pytest.raises(SystemExit):
            parse("upload", "receipt.jpg")


class TestFileValidation:
    """Test file validation functionality."""

    def test_validate_file_success(self, cli: ReceiptBookCLI, tmp_path: Path) -> None:
        """Existing files pass."""
        test_file = tmp_path / "rechnung.jpg"
        test_file.write_bytes(b"test")
        cli.validate_file(test_file)

    def test_validate_file_not_found(self, cli: ReceiptBookCLI) -> None:
        """Test validation with non-existent file."""
        with pytest.raises(FileValidationError, match="File not found"):
            cli.validate_file(Path("/nonexistent/file.jpg"))

    def test_validate_file_is_directory(
        self, cli: ReceiptBookCLI, tmp_path: Path
    ) -> None:
        """Test validation with directory instead of file."""
        with pytest.raises(FileValidationError, match="Not a file"):
            cli.validate_file(tmp_path)


class TestAddCommand:
    """Tests for capturing receipts from the command line."""

    @pytest.mark.asyncio
    async def test_add_stores_receipt(
        self,
        cli: ReceiptBookCLI,
        ingestion: ReceiptIngestionService,
        png_bytes: bytes,
        tmp_path: Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """The analyzed receipt is saved and summarized."""
        receipt_file = tmp_path / "papier.png"
        receipt_file.write_bytes(png_bytes)

        exit_code = await cli.run(parse("add", str(receipt_file)))

        assert exit_code == 0
        [receipt] = cli.store.list_receipts()
        assert receipt.vendor == "Staples"
        assert receipt.filename == "2024-02-12_Staples_23,45EUR.png"
        assert cli.store.owns(receipt.image_url)
        out = capsys.readouterr().out
        assert "Saved:" in out
        assert "Staples" in out

    @pytest.mark.asyncio
    async def test_add_applies_overrides(
        self,
        cli: ReceiptBookCLI,
        ingestion: ReceiptIngestionService,
        png_bytes: bytes,
        tmp_path: Path,
    ) -> None:
        """Command-line values replace the analysis."""
        receipt_file = tmp_path / "papier.png"
        receipt_file.write_bytes(png_bytes)

        args = parse(
            "add",
            str(receipt_file),
            "--vendor",
            "Staples Berlin",
            "--amount",
            "30,00",
            "--category",
            "electronics",
        )
        assert await cli.run(args) == 0

        [receipt] = cli.store.list_receipts()
        assert receipt.vendor == "Staples Berlin"
        assert receipt.amount == Decimal("30.00")
        assert receipt.category == ReceiptCategory.ELECTRONICS

    @pytest.mark.asyncio
    async def test_dry_run_does_not_store(
        self,
        cli: ReceiptBookCLI,
        ingestion: ReceiptIngestionService,
        png_bytes: bytes,
        tmp_path: Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """Dry runs print the draft only."""
        receipt_file = tmp_path / "papier.png"
        receipt_file.write_bytes(png_bytes)

        assert await cli.run(parse("add", str(receipt_file), "--dry-run")) == 0

        assert len(cli.store) == 0
        out = capsys.readouterr().out
        assert "DRY RUN MODE" in out
        preview = json.loads(out.split("=== DRY RUN MODE ===", 1)[1])
        assert preview["vendor"] == "Staples"
        assert "image_url" not in preview

    @pytest.mark.asyncio
    async def test_missing_file_exit_code(self, cli: ReceiptBookCLI) -> None:
        """Missing files exit with code 2."""
        assert await cli.run(parse("add", "/nonexistent/rechnung.jpg")) == 2

    @pytest.mark.asyncio
    async def test_unsupported_file_exit_code(
        self,
        cli: ReceiptBookCLI,
        ingestion: ReceiptIngestionService,
        extractor: MagicMock,
        tmp_path: Path,
    ) -> None:
        """Unsupported content exits with code 2 before analysis."""
        notes = tmp_path / "notes.txt"
        notes.write_text("Einkaufsliste: Milch, Brot, Butter", encoding="utf-8")

        assert await cli.run(parse("add", str(notes))) == 2
        extractor.analyze_image.assert_not_awaited()


class TestListAndSummary:
    """Tests for read-only commands."""

    @pytest.fixture
    def seeded(
        self, cli: ReceiptBookCLI, make_draft: Callable[..., ReceiptDraft]
    ) -> ReceiptBookCLI:
        """CLI with receipts in March and April."""
        cli.store.add(make_draft())
        cli.store.add(
            make_draft(
                vendor="MediaMarkt",
                amount=Decimal("100"),
                category=ReceiptCategory.ELECTRONICS,
                date=dt.date(2024, 4, 2),
            )
        )
        return cli

    @pytest.mark.asyncio
    async def test_list_grouped_by_month(
        self, seeded: ReceiptBookCLI, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Months are printed newest first with totals."""
        assert await seeded.run(parse("list")) == 0

        out = capsys.readouterr().out
        assert "=== April 2024 (100.00 €) ===" in out
        assert "=== März 2024 (45.80 €) ===" in out
        assert out.index("April 2024") < out.index("März 2024")

    @pytest.mark.asyncio
    async def test_list_empty_range(
        self, seeded: ReceiptBookCLI, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """An empty range says so."""
        args = parse("list", "--from", "2023-01-01", "--to", "2023-12-31")
        assert await seeded.run(args) == 0
        assert "No receipts found." in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_summary(
        self, seeded: ReceiptBookCLI, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Totals and averages are printed."""
        assert await seeded.run(parse("summary")) == 0

        out = capsys.readouterr().out
        assert "Receipts: 2" in out
        assert "Total: 145.80 €" in out
        assert "Average per month: 72.90 €" in out

    @pytest.mark.asyncio
    async def test_delete(
        self, seeded: ReceiptBookCLI, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Deleting reports unknown ids without failing."""
        receipt_id = seeded.store.list_receipts()[0].id

        assert await seeded.run(parse("delete", receipt_id)) == 0
        assert await seeded.run(parse("delete", receipt_id)) == 0

        out = capsys.readouterr().out
        assert f"Deleted receipt {receipt_id}" in out
        assert f"No receipt with id {receipt_id}" in out
        assert len(seeded.store) == 1

    @pytest.mark.asyncio
    async def test_export_and_import_json(
        self, seeded: ReceiptBookCLI, tmp_path: Path
    ) -> None:
        """A JSON export can be imported back."""
        target = tmp_path / "export.json"
        args = parse("export-json", "--output-file", str(target))
        assert await seeded.run(args) == 0
        assert len(json.loads(target.read_text(encoding="utf-8"))) == 2

        seeded.store.replace_all([])
        assert await seeded.run(parse("import-json", str(target))) == 0
        assert len(seeded.store) == 2

    @pytest.mark.asyncio
    async def test_import_invalid_json(
        self, seeded: ReceiptBookCLI, tmp_path: Path
    ) -> None:
        """Broken imports exit with code 1 and keep the store."""
        broken = tmp_path / "broken.json"
        broken.write_text("{not json", encoding="utf-8")

        assert await seeded.run(parse("import-json", str(broken))) == 1
        assert len(seeded.store) == 2

    @pytest.mark.asyncio
    async def test_export_zip(self, seeded: ReceiptBookCLI, tmp_path: Path) -> None:
        """The archive is written to the output directory."""
        args = parse(
            "export-zip",
            "--from",
            "2024-03-01",
            "--to",
            "2024-04-30",
            "--output-dir",
            str(tmp_path),
        )
        assert await seeded.run(args) == 0

        archive_path = tmp_path / "belege-2024-03-01-2024-04-30.zip"
        with zipfile.ZipFile(archive_path) as archive:
            assert len(archive.namelist()) == 2

    @pytest.mark.asyncio
    async def test_export_zip_empty_range(
        self, seeded: ReceiptBookCLI, tmp_path: Path
    ) -> None:
        """An empty range exits with code 1."""
        args = parse(
            "export-zip",
            "--from",
            "2023-01-01",
            "--to",
            "2023-01-31",
            "--output-dir",
            str(tmp_path),
        )
        assert await seeded.run(args) == 1


@pytest.mark.asyncio
async def test_async_main_without_command(
    capsys: pytest.CaptureFixture[str],
) -> None:
    """No command prints help and exits with code 2."""
    assert await async_main([]) == 2
    assert "usage:" in capsys.readouterr().out
