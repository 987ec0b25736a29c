"""Receiptbook CLI interface."""

from __future__ import annotations

import argparse
import asyncio
import datetime as dt
import json
import logging
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from receiptbook import __version__
from receiptbook.core.config import get_settings
from receiptbook.models import Receipt, ReceiptCategory, ReceiptUpdate
from receiptbook.services.aggregation import (
    dashboard_summary,
    filter_by_date_range,
    group_by_month,
)
from receiptbook.services.exporter import (
    ExportError,
    ReceiptExporter,
    export_json,
    import_json,
    json_export_filename,
)
from receiptbook.services.extraction_client import ExtractionClient
from receiptbook.services.file_processor import (
    FileProcessingError,
    FileProcessorService,
)
from receiptbook.services.ingestion import ReceiptExtractor, ReceiptIngestionService
from receiptbook.services.rasterizer import Rasterizer
from receiptbook.services.receipt_store import ReceiptStore, StorageError
from receiptbook.services.vision import VisionReceiptService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


class CLIError(Exception):
    """Base exception for CLI errors."""


class FileValidationError(CLIError):
    """File validation error."""


class ReceiptBookCLI:
    """Main CLI application class."""

    def __init__(self, store: ReceiptStore | None = None) -> None:
        """Initialize the CLI application."""
        self.settings = get_settings()
        self._store = store

    @property
    def store(self) -> ReceiptStore:
        """Receipt store, opened on first use."""
        if self._store is None:
            self._store = ReceiptStore(
                file_path=self.settings.storage_path,
                media_dir=self.settings.media_dir,
                max_bytes=self.settings.storage_max_bytes,
            )
        return self._store

    def create_ingestion_service(
        self, *, local: bool = False
    ) -> ReceiptIngestionService:
        """Pipeline using the HTTP endpoint, or the model directly with ``local``."""
        extractor: ReceiptExtractor
        if local:
            extractor = VisionReceiptService(self.settings)
        else:
            extractor = ExtractionClient(self.settings)
        return ReceiptIngestionService(
            file_processor=FileProcessorService(
                max_file_size=self.settings.max_upload_size
            ),
            rasterizer=Rasterizer(scale=self.settings.rasterizer_scale),
            extractor=extractor,
            store=self.store,
        )

    def validate_file(self, file_path: Path) -> None:
        """Validate the input file."""
        if not file_path.exists():
            raise FileValidationError(f"File not found: {file_path}")

        if not file_path.is_file():
            raise FileValidationError(f"Not a file: {file_path}")

    def format_receipt(self, receipt: Receipt) -> str:
        """One-line summary of a receipt."""
        amount = f"{receipt.amount:.2f} €" if receipt.amount is not None else "-"
        return (
            f"{receipt.id}  {receipt.date.isoformat()}  {amount:>12}  "
            f"{receipt.category.label:<24}  {receipt.vendor or '-'}"
        )

    async def add_command(self, args: argparse.Namespace) -> None:
        """Analyze a receipt file and store it."""
        file_path = Path(args.receipt)
        self.validate_file(file_path)

        ingestion = self.create_ingestion_service(local=args.local)
        try:
            analyzed = await ingestion.analyze(file_path.read_bytes(), file_path.name)
        except FileProcessingError as e:
            raise FileValidationError(str(e)) from e

        overrides = {
            key: value
            for key, value in {
                "vendor": args.vendor,
                "amount": args.amount,
                "date": args.date,
                "category": args.category,
                "description": args.description,
            }.items()
            if value is not None
        }
        try:
            changes = ReceiptUpdate.model_validate(overrides).changes()
        except ValidationError as e:
            raise CLIError(f"Invalid value: {e.errors()[0]['msg']}") from e
        draft = analyzed.draft.model_copy(update=changes)

        if analyzed.analysis.manual_entry_required and not changes:
            print(  # noqa: T201
                f"Warning: {analyzed.analysis.description}", file=sys.stderr
            )

        if args.dry_run:
            print("\n=== DRY RUN MODE ===")  # noqa: T201
            preview = draft.model_dump(
                mode="json", exclude={"image_url", "original_url"}
            )
            print(json.dumps(preview, indent=2))  # noqa: T201
            return

        receipt = ingestion.save(draft)
        if args.output == "json":
            print(receipt.model_dump_json(by_alias=True, indent=2))  # noqa: T201
        else:
            print(f"Saved: {self.format_receipt(receipt)}")  # noqa: T201
            print(f"File:  {receipt.filename}")  # noqa: T201

    async def list_command(self, args: argparse.Namespace) -> None:
        """List stored receipts grouped by month."""
        receipts = filter_by_date_range(
            self.store.list_receipts(), args.date_from, args.date_to
        )
        if args.output == "json":
            print(export_json(receipts))  # noqa: T201
            return

        if not receipts:
            print("No receipts found.")  # noqa: T201
            return

        for group in group_by_month(receipts):
            print(f"\n=== {group.label} ({group.total:.2f} €) ===")  # noqa: T201
            for receipt in group.receipts:
                print(self.format_receipt(receipt))  # noqa: T201

    async def delete_command(self, args: argparse.Namespace) -> None:
        """Delete a receipt by id."""
        if self.store.delete(args.receipt_id):
            print(f"Deleted receipt {args.receipt_id}")  # noqa: T201
        else:
            print(f"No receipt with id {args.receipt_id}")  # noqa: T201

    async def export_json_command(self, args: argparse.Namespace) -> None:
        """Write all receipts to a JSON file."""
        target = Path(args.output_file or json_export_filename())
        target.write_text(export_json(self.store.list_receipts()), encoding="utf-8")
        print(f"Exported {len(self.store)} receipts to {target}")  # noqa: T201

    async def import_json_command(self, args: argparse.Namespace) -> None:
        """Replace stored receipts with a JSON export."""
        file_path = Path(args.file)
        self.validate_file(file_path)
        try:
            receipts = import_json(file_path.read_bytes())
        except ValueError as e:
            raise CLIError(str(e)) from e
        count = self.store.replace_all(receipts)
        print(f"Imported {count} receipts")  # noqa: T201

    async def export_zip_command(self, args: argparse.Namespace) -> None:
        """Archive the receipt files of a date range."""
        if args.date_from > args.date_to:
            raise CLIError("--from must not be after --to")

        exporter = ReceiptExporter(
            timeout=self.settings.extraction_timeout, owns=self.store.owns
        )
        try:
            result = await exporter.export_zip(
                self.store.list_receipts(), args.date_from, args.date_to
            )
        except ExportError as e:
            raise CLIError(str(e)) from e

        target = Path(args.output_dir) / result.filename
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(result.content)
        print(f"Exported {len(result.included)} files to {target}")  # noqa: T201
        for name in result.failed:
            print(f"  skipped: {name}", file=sys.stderr)  # noqa: T201

    async def summary_command(self, args: argparse.Namespace) -> None:
        """Show dashboard totals."""
        summary = dashboard_summary(
            filter_by_date_range(
                self.store.list_receipts(), args.date_from, args.date_to
            )
        )
        if args.output == "json":
            print(summary.model_dump_json(indent=2))  # noqa: T201
            return

        lines = [
            "\n=== Summary ===",
            f"Receipts: {summary.receipt_count}",
            f"Total: {summary.total_amount:.2f} €",
            f"Average per month: {summary.average_monthly:.2f} €",
        ]
        if summary.by_month:
            lines.append("\n=== By Month ===")
            lines.extend(
                f"  {m.label:<16} {m.sum:>10.2f} €" for m in summary.by_month
            )
        if summary.by_category:
            lines.append("\n=== By Category ===")
            lines.extend(
                f"  {c.label:<24} {c.amount:>10.2f} € ({c.percentage:.1f}%)"
                for c in summary.by_category
            )
        print("\n".join(lines))  # noqa: T201

    def serve_command(self, args: argparse.Namespace) -> None:
        """Run the HTTP API."""
        import uvicorn

        uvicorn.run(
            "receiptbook.main:app",
            host=args.host,
            port=args.port,
            reload=args.reload,
            log_level=self.settings.log_level.lower(),
        )

    async def run(self, args: argparse.Namespace) -> int:
        """Dispatch a parsed command and map errors to exit codes."""
        commands: dict[str, Any] = {
            "add": self.add_command,
            "list": self.list_command,
            "delete": self.delete_command,
            "export-json": self.export_json_command,
            "import-json": self.import_json_command,
            "export-zip": self.export_zip_command,
            "summary": self.summary_command,
        }
        try:
            await commands[args.command](args)
        except FileValidationError as e:
            print(f"\nError: {e}", file=sys.stderr)  # noqa: T201
            return 2
        except StorageError as e:
            print(f"\nError: {e}", file=sys.stderr)  # noqa: T201
            return 3
        except CLIError as e:
            print(f"\nError: {e}", file=sys.stderr)  # noqa: T201
            return 1
        return 0


def _add_range_arguments(parser: argparse.ArgumentParser, *, required: bool) -> None:
    parser.add_argument(
        "--from",
        dest="date_from",
        type=dt.date.fromisoformat,
        required=required,
        help="Start date, inclusive (YYYY-MM-DD)",
    )
    parser.add_argument(
        "--to",
        dest="date_to",
        type=dt.date.fromisoformat,
        required=required,
        help="End date, inclusive (YYYY-MM-DD)",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        description="Receiptbook CLI - Capture and organize receipts with AI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  receiptbook add rechnung.jpg
  receiptbook add hotel.pdf --category transport --dry-run
  receiptbook list --from 2024-03-01 --to 2024-03-31
  receiptbook export-zip --from 2024-01-01 --to 2024-12-31

Supported formats: JPEG, PNG, GIF, BMP, WebP, PDF
        """,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"receiptbook {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Add command
    add_parser = subparsers.add_parser(
        "add",
        help="Analyze and store a receipt",
        description="Analyze a receipt image or PDF and add it to the receipt book",
    )
    add_parser.add_argument("receipt", type=str, help="Path to the receipt file")
    add_parser.add_argument("--vendor", help="Override the detected vendor")
    add_parser.add_argument("--amount", help="Override the detected amount")
    add_parser.add_argument(
        "--date", type=dt.date.fromisoformat, help="Override the detected date"
    )
    add_parser.add_argument(
        "--category",
        choices=[c.value for c in ReceiptCategory],
        help="Override the detected category",
    )
    add_parser.add_argument("--description", help="Override the description")
    add_parser.add_argument(
        "--local",
        action="store_true",
        help="Call the vision model directly instead of the analyze endpoint",
    )
    add_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show the draft without storing it",
    )
    add_parser.add_argument(
        "--output",
        choices=["text", "json"],
        default="text",
        help="Output format (default: text)",
    )

    # List command
    list_parser = subparsers.add_parser("list", help="List stored receipts")
    _add_range_arguments(list_parser, required=False)
    list_parser.add_argument(
        "--output", choices=["text", "json"], default="text", help="Output format"
    )

    # Delete command
    delete_parser = subparsers.add_parser("delete", help="Delete a receipt")
    delete_parser.add_argument("receipt_id", help="Receipt id")

    # Export / import
    export_json_parser = subparsers.add_parser(
        "export-json", help="Export all receipts as JSON"
    )
    export_json_parser.add_argument(
        "--output-file", help="Target file (default: rechnungen-export-<date>.json)"
    )

    import_json_parser = subparsers.add_parser(
        "import-json", help="Replace stored receipts with a JSON export"
    )
    import_json_parser.add_argument("file", help="JSON export file")

    export_zip_parser = subparsers.add_parser(
        "export-zip", help="Export receipt files of a date range as ZIP"
    )
    _add_range_arguments(export_zip_parser, required=True)
    export_zip_parser.add_argument(
        "--output-dir", default=".", help="Directory for the archive"
    )

    # Summary command
    summary_parser = subparsers.add_parser("summary", help="Show dashboard totals")
    _add_range_arguments(summary_parser, required=False)
    summary_parser.add_argument(
        "--output", choices=["text", "json"], default="text", help="Output format"
    )

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port")
    serve_parser.add_argument(
        "--reload", action="store_true", help="Reload on code changes"
    )

    return parser


async def async_main(argv: list[str] | None = None) -> int:
    """Async main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 2
    if args.command == "serve":
        parser.error("serve must be started from the command line entry point")

    return await ReceiptBookCLI().run(args)


def main() -> None:
    """Main entry point for the CLI."""
    argv = sys.argv[1:]
    if argv[:1] == ["serve"]:
        # uvicorn runs its own event loop
        ReceiptBookCLI().serve_command(create_parser().parse_args(argv))
        return

    try:
        sys.exit(asyncio.run(async_main(argv)))
    except KeyboardInterrupt:
        print("\n\nOperation cancelled by user", file=sys.stderr)  # noqa: T201
        sys.exit(130)
    except Exception as e:
        logger.exception("Fatal error in main")
        print(f"\nFatal error: {e}", file=sys.stderr)  # noqa: T201
        sys.exit(1)


if __name__ == "__main__":
    main()
