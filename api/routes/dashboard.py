"""Dashboard endpoints: summary, monthly series, categories and record preview.

Every endpoint takes the same ``item_type`` / ``year`` / ``supplier`` query
parameters and reads from one cached DashboardView per selection.
"""

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_config, get_records, get_view_cache
from api.models import (
    CategoryResponse,
    ErrorResponse,
    MonthlyResponse,
    RecordsResponse,
    SummaryOut,
)
from sales.filters import FilterSelection
from sales.loader import SalesDataset
from sales.views import DashboardView, build_view
from utils.cache import MemoCache
from utils.config import AppConfig

router = APIRouter(
    prefix="/dashboard",
    tags=["dashboard"],
    responses={
        400: {"model": ErrorResponse, "description": "Unknown item_type"},
        503: {"model": ErrorResponse, "description": "Dataset loading or unavailable"},
    },
)


def _selection(
    item_type: str | None = Query(None, description="Item type, e.g. 'BEER' (ALL = any)"),
    year: str | None = Query(None, description="Year, e.g. '2020' (ALL = any)"),
    supplier: str | None = Query(None, description="Exact supplier name (ALL = any)"),
) -> FilterSelection:
    return FilterSelection.from_params(item_type, year, supplier)


def _view(
    selection: FilterSelection = Depends(_selection),
    dataset: SalesDataset = Depends(get_records),
    cache: MemoCache = Depends(get_view_cache),
    cfg: AppConfig = Depends(get_config),
) -> DashboardView:
    cache_key = (dataset.generation, selection, cfg.supplier_limit, cfg.preview_limit)
    return cache.get_or_compute(
        cache_key,
        lambda: build_view(
            dataset.records, selection,
            supplier_limit=cfg.supplier_limit,
            preview_limit=cfg.preview_limit,
        ),
    )


def _selection_dict(selection: FilterSelection) -> dict:
    return {
        "item_type": selection.item_type,
        "year": selection.year,
        "supplier": selection.supplier,
    }


@router.get("/summary", response_model=SummaryOut, summary="Headline totals")
def dashboard_summary(view: DashboardView = Depends(_view)) -> dict:
    """Record count, retail, warehouse and combined totals for the selection."""
    return {
        "selection": _selection_dict(view.selection),
        **view.summary.to_dict(),
        "formatted": view.summary.formatted(),
    }


@router.get("/monthly", response_model=MonthlyResponse, summary="Monthly sales series")
def dashboard_monthly(view: DashboardView = Depends(_view)) -> dict:
    return {
        "selection": _selection_dict(view.selection),
        "buckets": [b.to_dict() for b in view.monthly],
        "chart": view.monthly_chart(),
    }


@router.get("/categories", response_model=CategoryResponse, summary="Sales by item type")
def dashboard_categories(view: DashboardView = Depends(_view)) -> dict:
    return {
        "selection": _selection_dict(view.selection),
        "categories": [c.to_dict() for c in view.categories],
        "chart": view.category_chart(),
    }


@router.get("/records", response_model=RecordsResponse, summary="Filtered record preview")
def dashboard_records(
    view: DashboardView = Depends(_view),
    cfg: AppConfig = Depends(get_config),
) -> dict:
    """First ``preview_limit`` filtered records in source order.

    ``total`` is the full filtered count, so a client can show
    "Showing first 100 of N records" when ``truncated`` is true.
    """
    return {
        "selection": _selection_dict(view.selection),
        "total": view.filtered_count,
        "limit": cfg.preview_limit,
        "truncated": view.truncated,
        "items": [r.to_dict() for r in view.preview],
    }
