"""Filtering and aggregation over receipt lists for the dashboard."""

from __future__ import annotations

from collections import defaultdict
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from receiptbook.models.receipt import CATEGORY_LABELS, Receipt, ReceiptCategory

if TYPE_CHECKING:
    import datetime as dt
    from collections.abc import Iterable

CENT = Decimal("0.01")

GERMAN_MONTHS = (
    "Januar",
    "Februar",
    "März",
    "April",
    "Mai",
    "Juni",
    "Juli",
    "August",
    "September",
    "Oktober",
    "November",
    "Dezember",
)


class MonthGroup(BaseModel):
    """Receipts of one calendar month."""

    month: str = Field(..., description="Month key (YYYY-MM)")
    label: str = Field(..., description="Display label, e.g. 'März 2024'")
    receipts: list[Receipt] = Field(default_factory=list)

    @property
    def total(self) -> Decimal:
        """Sum of the group's amounts."""
        return total_amount(self.receipts)


class MonthlyTotal(BaseModel):
    """Spending total of one month."""

    month: str
    label: str
    sum: Decimal


class CategoryTotal(BaseModel):
    """Spending total of one category."""

    category: ReceiptCategory
    label: str
    amount: Decimal
    percentage: float


class DashboardSummary(BaseModel):
    """Everything the dashboard shows."""

    receipt_count: int
    total_amount: Decimal
    average_monthly: Decimal
    by_month: list[MonthlyTotal]
    by_category: list[CategoryTotal]


def _round(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def month_label(month_key: str) -> str:
    """German label for a YYYY-MM key."""
    year, month = month_key.split("-")
    return f"{GERMAN_MONTHS[int(month) - 1]} {year}"


def filter_by_date_range(
    receipts: Iterable[Receipt],
    date_from: dt.date | None = None,
    date_to: dt.date | None = None,
) -> list[Receipt]:
    """Receipts with ``date_from <= date <= date_to``.

    Either bound may be omitted; with neither the full list is returned.
    """
    receipts = list(receipts)
    if date_from is None and date_to is None:
        return receipts
    return [
        r
        for r in receipts
        if (date_from is None or r.date >= date_from)
        and (date_to is None or r.date <= date_to)
    ]


def total_amount(receipts: Iterable[Receipt]) -> Decimal:
    """Sum of all amounts; missing amounts count as zero."""
    return sum((r.amount or Decimal(0) for r in receipts), Decimal(0))


def group_by_month(receipts: Iterable[Receipt]) -> list[MonthGroup]:
    """Group receipts by calendar month, newest month first."""
    groups: dict[str, list[Receipt]] = defaultdict(list)
    for receipt in receipts:
        groups[receipt.month_key].append(receipt)
    return [
        MonthGroup(month=key, label=month_label(key), receipts=groups[key])
        for key in sorted(groups, reverse=True)
    ]


def monthly_totals(receipts: Iterable[Receipt]) -> list[MonthlyTotal]:
    """Per-month sums in ascending month order, rounded to cents."""
    sums: dict[str, Decimal] = defaultdict(Decimal)
    for receipt in receipts:
        sums[receipt.month_key] += receipt.amount or Decimal(0)
    return [
        MonthlyTotal(month=key, label=month_label(key), sum=_round(sums[key]))
        for key in sorted(sums)
    ]


def category_totals(receipts: Iterable[Receipt]) -> list[CategoryTotal]:
    """Per-category sums with share of the overall total, largest first.

    Receipts without an amount are skipped.
    """
    receipts = list(receipts)
    overall = total_amount(receipts)
    sums: dict[ReceiptCategory, Decimal] = defaultdict(Decimal)
    for receipt in receipts:
        if receipt.amount:
            sums[receipt.category] += receipt.amount

    totals = [
        CategoryTotal(
            category=category,
            label=CATEGORY_LABELS[category],
            amount=_round(amount),
            percentage=round(float(amount / overall * 100), 1) if overall > 0 else 0.0,
        )
        for category, amount in sums.items()
    ]
    return sorted(totals, key=lambda t: t.amount, reverse=True)


def average_monthly(receipts: Iterable[Receipt]) -> Decimal:
    """Total divided by the number of distinct months with receipts."""
    receipts = list(receipts)
    months = {r.month_key for r in receipts}
    if not months:
        return Decimal(0)
    return _round(total_amount(receipts) / len(months))


def dashboard_summary(receipts: Iterable[Receipt]) -> DashboardSummary:
    """Build the dashboard figures for a receipt list."""
    receipts = list(receipts)
    return DashboardSummary(
        receipt_count=len(receipts),
        total_amount=_round(total_amount(receipts)),
        average_monthly=average_monthly(receipts),
        by_month=monthly_totals(receipts),
        by_category=category_totals(receipts),
    )
