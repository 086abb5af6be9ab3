"""Dashboard view model: everything the page renders for one selection."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from sales.aggregations import (
    CategoryTotal,
    MonthlyBucket,
    SalesSummary,
    category_chart,
    category_totals,
    monthly_chart,
    monthly_totals,
    summarize,
)
from sales.filters import Facets, FilterSelection, apply_filters, facets
from sales.records import SalesRecord
from utils.formatting import format_currency, truncate_text

# Column widths of the table preview.
_DESCRIPTION_WIDTH = 40
_SUPPLIER_WIDTH = 25


@dataclass
class DashboardView:
    selection: FilterSelection
    facets: Facets
    summary: SalesSummary
    monthly: list[MonthlyBucket]
    categories: list[CategoryTotal]
    preview: list[SalesRecord] = field(default_factory=list)
    filtered_count: int = 0

    @property
    def truncated(self) -> bool:
        """True when the table preview shows fewer rows than matched."""
        return self.filtered_count > len(self.preview)

    def monthly_chart(self) -> dict[str, list]:
        return monthly_chart(self.monthly)

    def category_chart(self) -> dict[str, list]:
        return category_chart(self.categories)

    def preview_rows(self) -> list[dict[str, Any]]:
        """Table rows with display-ready cells."""
        return [
            {
                "year": r.year,
                "month": r.month_name,
                "item_type": r.item_type,
                "item_description": truncate_text(r.item_description, _DESCRIPTION_WIDTH),
                "supplier": truncate_text(r.supplier, _SUPPLIER_WIDTH),
                "retail_sales": format_currency(r.retail_sales),
                "warehouse_sales": format_currency(r.warehouse_sales),
            }
            for r in self.preview
        ]


def build_view(
    records: Sequence[SalesRecord],
    selection: FilterSelection,
    supplier_limit: int | None = 50,
    preview_limit: int = 100,
) -> DashboardView:
    """Filter *records* by *selection* and run every reducer over the result.

    Facets are derived from the unfiltered records so every option stays
    selectable.
    """
    filtered = apply_filters(records, selection)
    return DashboardView(
        selection=selection,
        facets=facets(records, supplier_limit=supplier_limit),
        summary=summarize(filtered),
        monthly=monthly_totals(filtered),
        categories=category_totals(filtered),
        preview=filtered[:max(preview_limit, 0)],
        filtered_count=len(filtered),
    )
