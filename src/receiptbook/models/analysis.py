"""Models for receipt analysis (extraction) requests and results."""

from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel

from .receipt import ReceiptCategory, parse_amount

MANUAL_ENTRY_VENDOR = "Manuell eingeben"
UNREADABLE_VENDOR = "Unbekannt"
ERROR_VENDOR = "Fehler bei der Analyse"


class ReceiptAnalysis(BaseModel):
    """Best-effort structured guess extracted from a receipt image."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    vendor: str = Field(default="", description="Vendor name")
    amount: Decimal = Field(default=Decimal(0), description="Total amount")
    date: dt.date = Field(default_factory=dt.date.today, description="Receipt date")
    category: ReceiptCategory = Field(default=ReceiptCategory.OTHER)
    description: str = Field(default="", description="Short description of items")
    confidence: float = Field(default=0.0, description="Model confidence (0-1)")
    manual_entry_required: bool = Field(
        default=False, description="Set when the values are a placeholder"
    )

    @field_validator("vendor", "description", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> str:  # noqa: ANN401
        """Models occasionally send null for text fields."""
        return "" if v is None else str(v)

    @field_validator("amount", mode="before")
    @classmethod
    def convert_amount(cls, v: Any) -> Decimal:  # noqa: ANN401
        """Convert amount values to Decimal, treating missing as zero."""
        return parse_amount(v) or Decimal(0)

    @field_validator("date", mode="before")
    @classmethod
    def default_date(cls, v: Any) -> Any:  # noqa: ANN401
        """Fall back to today for missing dates; keep the day of timestamps."""
        if v in (None, ""):
            return dt.date.today()
        if isinstance(v, str) and len(v) > len("YYYY-MM-DD"):
            return v[:10]
        return v

    @field_validator("category", mode="before")
    @classmethod
    def coerce_category(cls, v: Any) -> ReceiptCategory:  # noqa: ANN401
        """Unknown labels from the model become OTHER."""
        return ReceiptCategory.coerce(v)

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: Any) -> float:  # noqa: ANN401
        """Parse and clamp confidence into [0, 1]."""
        try:
            value = float(v)
        except (TypeError, ValueError):
            return 0.0
        return min(max(value, 0.0), 1.0)

    @field_serializer("amount", when_used="json")
    def serialize_amount(self, v: Decimal) -> float:
        """Write amounts as JSON numbers."""
        return float(v)

    @classmethod
    def sentinel(
        cls, description: str, *, vendor: str = MANUAL_ENTRY_VENDOR
    ) -> ReceiptAnalysis:
        """Placeholder analysis flagged for manual entry."""
        return cls(
            vendor=vendor,
            amount=Decimal(0),
            date=dt.date.today(),
            category=ReceiptCategory.OTHER,
            description=description,
            confidence=0.0,
            manual_entry_required=True,
        )


class AnalyzeReceiptRequest(BaseModel):
    """Request body of the analyze-receipt endpoint."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    image_base64: str = Field(default="", description="Base64 encoded image")
    file_type: str | None = Field(None, description="Declared media type")


class AnalyzeReceiptResponse(BaseModel):
    """Response body of the analyze-receipt endpoint."""

    success: bool
    analysis: ReceiptAnalysis | None = None
    error: str | None = None
