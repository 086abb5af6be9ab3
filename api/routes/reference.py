"""
Reference data endpoints.

GET /api/v1/reference/facets      → item types, years and suppliers
GET /api/v1/reference/item-types  → recognized item types
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from api.dependencies import get_config, get_records, get_view_cache
from api.models import FacetsOut
from sales.filters import facets
from sales.loader import SalesDataset
from utils.cache import MemoCache
from utils.config import ITEM_TYPES, AppConfig

router = APIRouter(prefix="/reference", tags=["reference"])

_CACHE_HEADER = {"Cache-Control": "max-age=300"}


@router.get("/facets", response_model=FacetsOut, summary="Filter options")
def list_facets(
    dataset: SalesDataset = Depends(get_records),
    cache: MemoCache = Depends(get_view_cache),
    cfg: AppConfig = Depends(get_config),
) -> JSONResponse:
    """Return the selectable values for every filter dimension.

    Years are ascending; suppliers are alphabetical with blanks removed and
    capped at ``supplier_limit`` (``suppliers_truncated`` says whether the
    cap cut anything).
    """
    result = cache.get_or_compute(
        ("facets", dataset.generation, cfg.supplier_limit),
        lambda: facets(dataset.records, supplier_limit=cfg.supplier_limit),
    )
    data = {
        "item_types": list(result.item_types),
        "years": list(result.years),
        "suppliers": list(result.suppliers),
        "supplier_limit": cfg.supplier_limit,
        "suppliers_truncated": result.suppliers_truncated,
    }
    return JSONResponse(content=data, headers=_CACHE_HEADER)


@router.get("/item-types", response_model=list[str], summary="List item types")
def list_item_types() -> JSONResponse:
    """Item types in canonical order; rows of any other type are never loaded."""
    return JSONResponse(content=list(ITEM_TYPES), headers=_CACHE_HEADER)
