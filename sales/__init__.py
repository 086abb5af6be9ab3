"""
Sales data core: loading, filtering and aggregating the warehouse/retail
sales dataset.

Modules:
  - records:       SalesRecord, the typed row
  - loader:        CSV resource -> SalesRecord list; SalesDataset holder
  - filters:       facet discovery and FilterSelection application
  - aggregations:  monthly, category and summary reducers
  - views:         DashboardView bundling the above for one selection
"""

from sales.records import SalesRecord
from sales.loader import LoadError, SalesDataset, load_records
from sales.filters import Facets, FilterSelection, apply_filters, facets
from sales.aggregations import category_totals, monthly_totals, summarize
from sales.views import DashboardView, build_view

__all__ = [
    "SalesRecord",
    "LoadError",
    "SalesDataset",
    "load_records",
    "Facets",
    "FilterSelection",
    "apply_filters",
    "facets",
    "category_totals",
    "monthly_totals",
    "summarize",
    "DashboardView",
    "build_view",
]
