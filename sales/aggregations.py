"""
Aggregation engine: reducers over a filtered record sequence.

Each reducer is a single O(n) pass and returns empty/zero results for an
empty input.  Sums are exact; rounding happens only in the display strings
produced by ``SalesSummary.formatted()``.

    monthly_totals   group by "YYYY-MM", sorted by key
    category_totals  group by item type, first-seen order
    summarize        record count and retail / warehouse / grand totals
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from sales.records import SalesRecord
from utils.config import MONTHS
from utils.formatting import format_count, format_total


@dataclass
class MonthlyBucket:
    """Totals for one calendar month."""

    key: str                   # "YYYY-MM"
    label: str                 # "Jan 2020"
    retail_total: float = 0.0
    warehouse_total: float = 0.0
    count: int = 0

    @property
    def total(self) -> float:
        return self.retail_total + self.warehouse_total

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "label": self.label,
            "retail_total": self.retail_total,
            "warehouse_total": self.warehouse_total,
            "count": self.count,
        }


@dataclass
class CategoryTotal:
    """Combined retail + warehouse sales for one item type."""

    item_type: str
    total: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {"item_type": self.item_type, "total": self.total}


@dataclass
class SalesSummary:
    """Headline totals for the stat cards."""

    total_records: int = 0
    total_retail: float = 0.0
    total_warehouse: float = 0.0

    @property
    def total_sales(self) -> float:
        return self.total_retail + self.total_warehouse

    def formatted(self) -> dict[str, str]:
        """Display strings: grouping separators, zero decimals."""
        return {
            "total_records": format_count(self.total_records),
            "total_retail": format_total(self.total_retail),
            "total_warehouse": format_total(self.total_warehouse),
            "total_sales": format_total(self.total_sales),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_records": self.total_records,
            "total_retail": self.total_retail,
            "total_warehouse": self.total_warehouse,
            "total_sales": self.total_sales,
        }


def month_label(key: str) -> str:
    """``"2020-01"`` -> ``"Jan 2020"``."""
    year, month = key.split("-")
    return f"{MONTHS[int(month) - 1]} {year}"


def monthly_totals(records: Iterable[SalesRecord]) -> list[MonthlyBucket]:
    """Group by year-month and emit buckets in ascending key order."""
    buckets: dict[str, MonthlyBucket] = {}
    for record in records:
        key = record.month_key
        bucket = buckets.get(key)
        if bucket is None:
            bucket = buckets[key] = MonthlyBucket(key=key, label=month_label(key))
        bucket.retail_total += record.retail_sales
        bucket.warehouse_total += record.warehouse_sales
        bucket.count += 1
    return [buckets[k] for k in sorted(buckets)]


def category_totals(records: Iterable[SalesRecord]) -> list[CategoryTotal]:
    """Group by item type; output order is the order types are first seen."""
    totals: dict[str, CategoryTotal] = {}
    for record in records:
        entry = totals.get(record.item_type)
        if entry is None:
            entry = totals[record.item_type] = CategoryTotal(item_type=record.item_type)
        entry.total += record.retail_sales + record.warehouse_sales
    return list(totals.values())


def summarize(records: Iterable[SalesRecord]) -> SalesSummary:
    summary = SalesSummary()
    for record in records:
        summary.total_records += 1
        summary.total_retail += record.retail_sales
        summary.total_warehouse += record.warehouse_sales
    return summary


# ── Chart view models ─────────────────────────────────────────────────────────

def monthly_chart(buckets: list[MonthlyBucket]) -> dict[str, list]:
    """Parallel arrays for the line/bar time-series chart."""
    return {
        "labels": [b.label for b in buckets],
        "retail": [b.retail_total for b in buckets],
        "warehouse": [b.warehouse_total for b in buckets],
    }


def category_chart(totals: list[CategoryTotal]) -> dict[str, list]:
    """Parallel arrays for the category doughnut chart."""
    return {
        "labels": [t.item_type for t in totals],
        "values": [t.total for t in totals],
    }
