"""Tests for dashboard aggregation."""

from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import TYPE_CHECKING

import pytest

from receiptbook.models import ReceiptCategory
from receiptbook.services.aggregation import (
    average_monthly,
    category_totals,
    dashboard_summary,
    filter_by_date_range,
    group_by_month,
    month_label,
    monthly_totals,
    total_amount,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from receiptbook.models import Receipt


@pytest.fixture
def receipts(make_receipt: Callable[..., Receipt]) -> list[Receipt]:
    """Receipts spread over three months."""
    return [
        make_receipt(
            date=dt.date(2024, 3, 15),
            amount=Decimal("45.80"),
            category=ReceiptCategory.RESTAURANT,
        ),
        make_receipt(
            date=dt.date(2024, 1, 31),
            amount=Decimal("100.00"),
            category=ReceiptCategory.ELECTRONICS,
        ),
        make_receipt(
            date=dt.date(2024, 1, 2),
            amount=Decimal("20.00"),
            category=ReceiptCategory.RESTAURANT,
        ),
        make_receipt(
            date=dt.date(2024, 2, 10),
            amount=None,
            category=ReceiptCategory.OFFICE,
        ),
    ]


def test_month_label() -> None:
    """Month keys render with German month names."""
    assert month_label("2024-03") == "März 2024"
    assert month_label("2023-12") == "Dezember 2023"


def test_single_receipt_monthly_total(make_receipt: Callable[..., Receipt]) -> None:
    """A 45.80 receipt in March gives a March total of 45.80."""
    totals = monthly_totals(
        [make_receipt(date=dt.date(2024, 3, 15), amount=Decimal("45.80"))]
    )
    assert len(totals) == 1
    assert totals[0].month == "2024-03"
    assert totals[0].sum == Decimal("45.80")


class TestFilterByDateRange:
    """Tests for the inclusive date filter."""

    def test_bounds_are_inclusive(self, receipts: list[Receipt]) -> None:
        """Receipts on either boundary are included."""
        selected = filter_by_date_range(
            receipts, dt.date(2024, 1, 2), dt.date(2024, 1, 31)
        )
        assert sorted(r.date.day for r in selected) == [2, 31]

    def test_no_bounds_returns_everything(self, receipts: list[Receipt]) -> None:
        """Without a range the full list comes back."""
        assert filter_by_date_range(receipts) == receipts

    def test_open_ended_range(self, receipts: list[Receipt]) -> None:
        """A single bound limits one side only."""
        selected = filter_by_date_range(receipts, date_from=dt.date(2024, 2, 1))
        assert {r.month_key for r in selected} == {"2024-02", "2024-03"}

    def test_empty_range(self, receipts: list[Receipt]) -> None:
        """A range without receipts yields nothing."""
        empty = filter_by_date_range(
            receipts, dt.date(2025, 1, 1), dt.date(2025, 12, 31)
        )
        assert empty == []


class TestTotals:
    """Tests for sums and groupings."""

    def test_total_amount_ignores_missing(self, receipts: list[Receipt]) -> None:
        """Receipts without an amount count as zero."""
        assert total_amount(receipts) == Decimal("165.80")

    def test_group_by_month_newest_first(self, receipts: list[Receipt]) -> None:
        """Groups are ordered newest month first."""
        groups = group_by_month(receipts)
        assert [g.month for g in groups] == ["2024-03", "2024-02", "2024-01"]
        assert groups[2].label == "Januar 2024"
        assert groups[2].total == Decimal("120.00")
        assert len(groups[2].receipts) == 2

    def test_monthly_totals_ascending(self, receipts: list[Receipt]) -> None:
        """Monthly totals are ordered oldest month first."""
        totals = monthly_totals(receipts)
        assert [(t.month, t.sum) for t in totals] == [
            ("2024-01", Decimal("120.00")),
            ("2024-02", Decimal("0.00")),
            ("2024-03", Decimal("45.80")),
        ]

    def test_category_totals(self, receipts: list[Receipt]) -> None:
        """Categories are sorted by amount with their share of the total."""
        totals = category_totals(receipts)

        assert [t.category for t in totals] == [
            ReceiptCategory.ELECTRONICS,
            ReceiptCategory.RESTAURANT,
        ]
        assert totals[0].amount == Decimal("100.00")
        assert totals[0].percentage == 60.3
        assert totals[1].amount == Decimal("65.80")
        assert totals[1].label == "Restaurant & Gastronomie"

    def test_average_monthly(self, receipts: list[Receipt]) -> None:
        """Average is taken over months that have receipts."""
        assert average_monthly(receipts) == Decimal("55.27")
        assert average_monthly([]) == Decimal(0)


def test_dashboard_summary(receipts: list[Receipt]) -> None:
    """The summary bundles all figures."""
    summary = dashboard_summary(receipts)

    assert summary.receipt_count == 4
    assert summary.total_amount == Decimal("165.80")
    assert summary.average_monthly == Decimal("55.27")
    assert len(summary.by_month) == 3
    assert len(summary.by_category) == 2


def test_dashboard_summary_empty() -> None:
    """An empty book has zero totals."""
    summary = dashboard_summary([])
    assert summary.receipt_count == 0
    assert summary.total_amount == Decimal("0.00")
    assert summary.by_month == []
    assert summary.by_category == []
