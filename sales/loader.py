"""
Dataset loader: CSV resource -> validated SalesRecord list.

The resource is a header-driven CSV file, read from disk or fetched over
HTTP(S).  Each row is mapped to a fixed-shape SalesRecord at this boundary;
nothing downstream sees the parser's dictionaries.

Row rules:
    - YEAR, MONTH and ITEM TYPE must be non-blank
    - ITEM TYPE must be one of ITEM_TYPES, exactly as written (no trimming)
    - SUPPLIER and ITEM DESCRIPTION have runs of whitespace collapsed
    - MONTH must be an integer in 1..12
    - RETAIL SALES / WAREHOUSE SALES default to 0 when missing or non-numeric

A row that breaks a rule is dropped; it never fails the load.  Only an
unreachable or unparsable resource raises LoadError.

Usage::

    from sales.loader import load_records
    records = load_records("data/Warehouse_and_Retail_Sales.csv")
"""

from __future__ import annotations

import csv
import io
import logging
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

import requests

from sales.records import SalesRecord
from utils.config import (
    COL_ITEM_DESCRIPTION,
    COL_ITEM_TYPE,
    COL_MONTH,
    COL_RETAIL_SALES,
    COL_SUPPLIER,
    COL_WAREHOUSE_SALES,
    COL_YEAR,
    ITEM_TYPES,
    REQUIRED_COLUMNS,
)
from utils.strings import normalize_whitespace, safe_float

logger = logging.getLogger(__name__)

_ITEM_TYPE_SET = frozenset(ITEM_TYPES)


class LoadError(Exception):
    """The dataset resource is unreachable or not parsable as CSV."""


@dataclass
class LoadReport:
    """Outcome of validating parsed rows."""

    records: list[SalesRecord] = field(default_factory=list)
    rows_read: int = 0
    rows_dropped: int = 0


def _cell(row: Mapping[str, object], column: str) -> str:
    value = row.get(column)
    if value is None:
        return ""
    return str(value).strip()


def _parse_month(raw: str) -> int | None:
    try:
        month = int(raw)
    except ValueError:
        return None
    return month if 1 <= month <= 12 else None


def parse_row(row: Mapping[str, object]) -> SalesRecord | None:
    """Validate one parsed CSV row; return None if it must be dropped."""
    year = _cell(row, COL_YEAR)
    month_raw = _cell(row, COL_MONTH)
    # Exact match: " BEER " or "beer" is not an item type.
    item_type = row.get(COL_ITEM_TYPE)
    if not year or not month_raw or item_type not in _ITEM_TYPE_SET:
        return None
    month = _parse_month(month_raw)
    if month is None:
        return None
    return SalesRecord(
        year=year,
        month=month,
        item_type=item_type,
        item_description=normalize_whitespace(_cell(row, COL_ITEM_DESCRIPTION)),
        supplier=normalize_whitespace(_cell(row, COL_SUPPLIER)),
        retail_sales=safe_float(row.get(COL_RETAIL_SALES)),
        warehouse_sales=safe_float(row.get(COL_WAREHOUSE_SALES)),
    )


def parse_rows(rows: Iterable[Mapping[str, object]]) -> LoadReport:
    """Validate every parsed row, keeping the valid ones in input order."""
    report = LoadReport()
    for row in rows:
        report.rows_read += 1
        record = parse_row(row)
        if record is None:
            report.rows_dropped += 1
        else:
            report.records.append(record)
    return report


def _is_url(source: str) -> bool:
    return source.lower().startswith(("http://", "https://"))


def _read_text(source: str | Path, timeout: float) -> str:
    """Return the raw CSV text of *source* (path or URL)."""
    source_str = str(source)
    if _is_url(source_str):
        try:
            response = requests.get(source_str, timeout=timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise LoadError(f"Could not fetch dataset from {source_str}: {exc}") from exc
        return response.text
    path = Path(source_str)
    try:
        # utf-8-sig strips a BOM that would otherwise corrupt the first header
        return path.read_text(encoding="utf-8-sig")
    except FileNotFoundError as exc:
        raise LoadError(f"Dataset not found at {path}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise LoadError(f"Could not read dataset at {path}: {exc}") from exc


def parse_csv(text: str) -> LoadReport:
    """Parse CSV *text* with a header row into a LoadReport.

    Raises:
        LoadError: if the header is missing a required column or the text
            is not valid CSV.
    """
    reader = csv.DictReader(io.StringIO(text, newline=""))
    try:
        header = reader.fieldnames
        if not header:
            raise LoadError("Dataset is empty (no header row)")
        header = [h.strip() for h in header]
        reader.fieldnames = header
        missing = [c for c in REQUIRED_COLUMNS if c not in header]
        if missing:
            raise LoadError(f"Dataset header is missing column(s): {', '.join(missing)}")
        return parse_rows(reader)
    except csv.Error as exc:
        raise LoadError(f"Dataset is not valid CSV: {exc}") from exc


def load_records(source: str | Path, timeout: float = 30) -> list[SalesRecord]:
    """Fetch and parse the dataset at *source*.

    Args:
        source: Filesystem path or http(s) URL of the CSV resource.
        timeout: Seconds to wait for a remote fetch (single attempt).

    Returns:
        Validated records in file order.

    Raises:
        LoadError: the resource is unreachable or not parsable as CSV.
    """
    report = parse_csv(_read_text(source, timeout))
    logger.info(
        "dataset loaded source=%s rows_read=%d kept=%d dropped=%d",
        source, report.rows_read, len(report.records), report.rows_dropped,
    )
    return report.records


# ── Dataset holder ────────────────────────────────────────────────────────────

class SalesDataset:
    """Holds the record sequence for one application lifetime.

    States: ``loading`` -> ``ready`` | ``no_data``.  ``no_data`` is terminal:
    the dashboard shows an empty state instead of crashing.  ``generation``
    changes on every load and is part of every derived-state cache key.
    """

    LOADING = "loading"
    READY = "ready"
    NO_DATA = "no_data"

    def __init__(self, source: str | Path, timeout: float = 30) -> None:
        self.source = source
        self.timeout = timeout
        self.status = self.LOADING
        self.error: str | None = None
        self.generation = 0
        self._records: tuple[SalesRecord, ...] = ()
        self._lock = threading.Lock()

    @classmethod
    def from_records(cls, records: Iterable[SalesRecord], source: str = "<memory>") -> "SalesDataset":
        """Build a ready dataset directly from records (no I/O)."""
        dataset = cls(source)
        dataset._set(tuple(records))
        return dataset

    def _set(self, records: tuple[SalesRecord, ...]) -> None:
        with self._lock:
            self._records = records
            self.status = self.READY
            self.error = None
            self.generation += 1

    def load(self) -> None:
        """Load the resource; on failure log it and enter ``no_data``."""
        try:
            records = load_records(self.source, timeout=self.timeout)
        except LoadError as exc:
            with self._lock:
                self._records = ()
                self.status = self.NO_DATA
                self.error = str(exc)
                self.generation += 1
            logger.error("dataset load failed: %s", exc)
            return
        self._set(tuple(records))

    @property
    def ready(self) -> bool:
        return self.status == self.READY

    @property
    def records(self) -> tuple[SalesRecord, ...]:
        return self._records

    def __len__(self) -> int:
        return len(self._records)
