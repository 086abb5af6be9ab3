"""
Pydantic request/response models for the dashboard API.

Field() descriptions and examples feed the OpenAPI docs at /docs.
Amounts are exact sums; the ``formatted`` blocks carry display strings.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


# ── Reference data models ─────────────────────────────────────────────────────

class FacetsOut(BaseModel):
    """Selectable values for each filter dimension."""
    item_types: list[str] = Field(..., description="Recognized item types in canonical order",
                                  examples=[["BEER", "WINE", "LIQUOR", "KEGS", "NON-ALCOHOL"]])
    years: list[str] = Field(..., description="Years present in the dataset, ascending", examples=[["2019", "2020"]])
    suppliers: list[str] = Field(..., description="Supplier names, alphabetical, capped at supplier_limit")
    supplier_limit: int = Field(..., description="Cap applied to the supplier list (0 = none)", examples=[50])
    suppliers_truncated: bool = Field(..., description="True when more suppliers exist than are listed")


# ── Dashboard models ──────────────────────────────────────────────────────────

class SelectionOut(BaseModel):
    """The filter selection a response was computed for."""
    item_type: str = Field("ALL", examples=["BEER"])
    year: str = Field("ALL", examples=["2020"])
    supplier: str = Field("ALL", examples=["ALL"])


class SummaryFormatted(BaseModel):
    total_records: str = Field(..., examples=["2"])
    total_retail: str = Field(..., examples=["30"])
    total_warehouse: str = Field(..., examples=["5"])
    total_sales: str = Field(..., examples=["35"])


class SummaryOut(BaseModel):
    """Headline totals over the filtered records."""
    selection: SelectionOut
    total_records: int = Field(..., description="Number of filtered records", examples=[2])
    total_retail: float = Field(..., description="Sum of retail sales", examples=[30.0])
    total_warehouse: float = Field(..., description="Sum of warehouse sales", examples=[5.0])
    total_sales: float = Field(..., description="Retail + warehouse", examples=[35.0])
    formatted: SummaryFormatted = Field(..., description="Grouped, zero-decimal display strings")


class MonthlyBucketOut(BaseModel):
    key: str = Field(..., description="YYYY-MM", examples=["2020-01"])
    label: str = Field(..., description="Month abbreviation and year", examples=["Jan 2020"])
    retail_total: float = Field(..., examples=[30.0])
    warehouse_total: float = Field(..., examples=[5.0])
    count: int = Field(..., examples=[2])


class MonthlyChartOut(BaseModel):
    labels: list[str]
    retail: list[float]
    warehouse: list[float]


class MonthlyResponse(BaseModel):
    """Time series of monthly totals, ascending by month."""
    selection: SelectionOut
    buckets: list[MonthlyBucketOut]
    chart: MonthlyChartOut


class CategoryTotalOut(BaseModel):
    item_type: str = Field(..., examples=["BEER"])
    total: float = Field(..., description="Retail + warehouse sales", examples=[15.0])


class CategoryChartOut(BaseModel):
    labels: list[str]
    values: list[float]


class CategoryResponse(BaseModel):
    """Sales per item type in first-seen order."""
    selection: SelectionOut
    categories: list[CategoryTotalOut]
    chart: CategoryChartOut


class RecordOut(BaseModel):
    year: str = Field(..., examples=["2020"])
    month: int = Field(..., ge=1, le=12, examples=[1])
    item_type: str = Field(..., examples=["BEER"])
    item_description: str = Field("", examples=["CORONA EXTRA 6/12 NR"])
    supplier: str = Field("", examples=["CROWN IMPORTS"])
    retail_sales: float = Field(0.0, examples=[10.0])
    warehouse_sales: float = Field(0.0, examples=[5.0])


class RecordsResponse(BaseModel):
    """Preview of the filtered records."""
    selection: SelectionOut
    total: int = Field(..., description="Number of records matching the filters", examples=[3842])
    limit: int = Field(..., description="Preview size", examples=[100])
    truncated: bool = Field(..., description="True when total exceeds the preview size")
    items: list[RecordOut]


# ── Auth and vote models ──────────────────────────────────────────────────────

class SignInRequest(BaseModel):
    uid: str = Field(..., min_length=1, max_length=128, description="Identity id", examples=["u-123"])
    display_name: str = Field("", max_length=200, examples=["Ada Lovelace"])
    photo_url: str = Field("", max_length=2000)


class SessionOut(BaseModel):
    authenticated: bool
    uid: str | None = None
    display_name: str | None = None
    photo_url: str | None = None
    vote_state: str = Field(..., description="unauthenticated | no_vote | voted", examples=["no_vote"])
    vote: str | None = Field(None, description="Recorded vote when vote_state is voted", examples=["support"])


class VoteRequest(BaseModel):
    vote: Literal["support", "against"] = Field(..., examples=["support"])


class VoteCountsOut(BaseModel):
    support: int = Field(..., ge=0, examples=[12])
    against: int = Field(..., ge=0, examples=[4])
    total: int = Field(..., ge=0, examples=[16])
    support_fraction: float = Field(..., ge=0, le=1, description="0.5 when no votes yet", examples=[0.75])


class VoteStatusOut(BaseModel):
    counts: VoteCountsOut
    vote_state: str = Field(..., examples=["voted"])
    vote: str | None = Field(None, examples=["support"])


# ── Error model ───────────────────────────────────────────────────────────────

class ErrorResponse(BaseModel):
    """Standard error response body."""
    error: str = Field(..., description="Short error category", examples=["Bad request"])
    detail: str | None = Field(None, description="Extended error detail")
    status_code: int = Field(..., ge=400, le=599, description="HTTP status code", examples=[400])
