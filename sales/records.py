"""Typed record for one row of the warehouse/retail sales dataset."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from utils.config import MONTHS


@dataclass(frozen=True)
class SalesRecord:
    """One validated CSV row.  Created once at load time, never mutated."""

    year: str
    month: int                 # 1..12
    item_type: str             # one of utils.config.ITEM_TYPES
    item_description: str = ""
    supplier: str = ""
    retail_sales: float = 0.0
    warehouse_sales: float = 0.0

    @property
    def month_key(self) -> str:
        """``"YYYY-MM"`` with a zero-padded month; sorts chronologically."""
        return f"{self.year}-{self.month:02d}"

    @property
    def month_name(self) -> str:
        return MONTHS[self.month - 1]

    @property
    def total_sales(self) -> float:
        return self.retail_sales + self.warehouse_sales

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
