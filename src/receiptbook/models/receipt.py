"""Receipt record models."""

from __future__ import annotations

import datetime as dt
import logging
import uuid
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)


class ReceiptCategory(str, Enum):
    """Closed set of receipt categories."""

    RESTAURANT = "restaurant"
    TRANSPORT = "transport"
    OFFICE = "office"
    ELECTRONICS = "electronics"
    UTILITIES = "utilities"
    OTHER = "other"

    @classmethod
    def coerce(cls, value: Any) -> ReceiptCategory:  # noqa: ANN401
        """Map a free-form label onto the enumeration, defaulting to OTHER."""
        if isinstance(value, ReceiptCategory):
            return value
        label = str(value or "").strip().lower()
        if label in CATEGORY_ALIASES:
            return CATEGORY_ALIASES[label]
        try:
            return cls(label)
        except ValueError:
            logger.warning("Unknown receipt category %r, using 'other'", value)
            return cls.OTHER

    @property
    def label(self) -> str:
        """German display label."""
        return CATEGORY_LABELS[self]


CATEGORY_ALIASES: dict[str, ReceiptCategory] = {
    "licenses": ReceiptCategory.UTILITIES,
    "licences": ReceiptCategory.UTILITIES,
}

CATEGORY_LABELS: dict[ReceiptCategory, str] = {
    ReceiptCategory.RESTAURANT: "Restaurant & Gastronomie",
    ReceiptCategory.TRANSPORT: "Transport & Reisen",
    ReceiptCategory.OFFICE: "Bürobedarf",
    ReceiptCategory.ELECTRONICS: "Elektronik",
    ReceiptCategory.UTILITIES: "Nebenkosten & Lizenzen",
    ReceiptCategory.OTHER: "Sonstiges",
}

# Receipt fields an update may change but never clear
REQUIRED_RECEIPT_FIELDS = frozenset({"filename", "category", "date", "description"})


def parse_amount(value: Any) -> Decimal | None:  # noqa: ANN401
    """Convert a numeric or textual amount to Decimal.

    Accepts currency symbols and German decimal commas ("45,80 €").
    """
    if value is None or value == "":
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        msg = f"Invalid type for amount conversion: {type(value)}"
        raise ValueError(msg)
    if isinstance(value, int | float):
        return Decimal(str(value))
    if isinstance(value, str):
        cleaned = value.strip().replace("€", "").replace("EUR", "").replace("$", "")
        cleaned = cleaned.replace(" ", "")
        if "," in cleaned and "." in cleaned:
            # 1.234,56 -> 1234.56
            cleaned = cleaned.replace(".", "").replace(",", ".")
        elif "," in cleaned:
            cleaned = cleaned.replace(",", ".")
        try:
            return Decimal(cleaned)
        except InvalidOperation as e:
            msg = f"Invalid amount: {value!r}"
            raise ValueError(msg) from e
    msg = f"Invalid type for amount conversion: {type(value)}"
    raise ValueError(msg)


class _CamelModel(BaseModel):
    """Base model persisted with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ReceiptDraft(_CamelModel):
    """Receipt data before it is added to the store."""

    filename: str = Field(..., min_length=1, description="Display filename")
    original_name: str = Field(..., description="Original upload filename")
    image_url: str = Field(..., description="Viewable image reference")
    original_url: str | None = Field(None, description="Original file reference")
    original_type: str | None = Field(None, description="Media type of the original")
    category: ReceiptCategory = Field(default=ReceiptCategory.OTHER)
    amount: Decimal | None = Field(None, description="Total amount")
    vendor: str | None = Field(None, description="Vendor name")
    date: dt.date = Field(..., description="Receipt date")
    description: str = Field(default="", description="Free-text description")
    tags: list[str] | None = Field(None, description="Optional tags")

    @field_validator("category", mode="before")
    @classmethod
    def coerce_category(cls, v: Any) -> ReceiptCategory:  # noqa: ANN401
        """Accept unknown labels as OTHER."""
        return ReceiptCategory.coerce(v)

    @field_validator("amount", mode="before")
    @classmethod
    def convert_amount(cls, v: Any) -> Decimal | None:  # noqa: ANN401
        """Convert amount values to Decimal."""
        return parse_amount(v)

    @field_validator("date", mode="before")
    @classmethod
    def truncate_timestamp(cls, v: Any) -> Any:  # noqa: ANN401
        """Accept full ISO timestamps and keep the calendar day."""
        if isinstance(v, str) and len(v) > len("YYYY-MM-DD"):
            return v[:10]
        if isinstance(v, dt.datetime):
            return v.date()
        return v

    @field_serializer("amount", when_used="json")
    def serialize_amount(self, v: Decimal | None) -> float | None:
        """Write amounts as JSON numbers."""
        return float(v) if v is not None else None


class Receipt(ReceiptDraft):
    """A stored receipt record."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    created_at: dt.datetime = Field(default_factory=lambda: dt.datetime.now(dt.UTC))

    @property
    def source_url(self) -> str:
        """Reference used for downloads and exports (original preferred)."""
        return self.original_url or self.image_url

    @property
    def export_name(self) -> str:
        """Archive entry name."""
        return self.filename or self.original_name

    @property
    def month_key(self) -> str:
        """Calendar month key (YYYY-MM)."""
        return self.date.strftime("%Y-%m")


class ReceiptUpdate(_CamelModel):
    """Partial update of a stored receipt."""

    filename: str | None = Field(None, min_length=1)
    category: ReceiptCategory | None = None
    amount: Decimal | None = None
    vendor: str | None = None
    date: dt.date | None = None
    description: str | None = None
    tags: list[str] | None = None

    @field_validator("category", mode="before")
    @classmethod
    def coerce_category(cls, v: Any) -> ReceiptCategory | None:  # noqa: ANN401
        """Accept unknown labels as OTHER."""
        return None if v is None else ReceiptCategory.coerce(v)

    @field_validator("amount", mode="before")
    @classmethod
    def convert_amount(cls, v: Any) -> Decimal | None:  # noqa: ANN401
        """Convert amount values to Decimal."""
        return parse_amount(v)

    @model_validator(mode="after")
    def reject_cleared_required_fields(self) -> ReceiptUpdate:
        """Only optional receipt fields may be cleared with null."""
        cleared = sorted(
            name
            for name in self.model_fields_set & REQUIRED_RECEIPT_FIELDS
            if getattr(self, name) is None
        )
        if cleared:
            msg = f"Fields cannot be cleared: {', '.join(cleared)}"
            raise ValueError(msg)
        return self

    def changes(self) -> dict[str, Any]:
        """Fields explicitly set by the caller."""
        return self.model_dump(exclude_unset=True)
