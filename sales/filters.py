"""
Filter engine: facet discovery and filter application.

Both operations are pure functions of their inputs.  ``apply_filters``
preserves the relative order of the input records and keeps a record iff it
matches every facet of the selection that is not ``ALL``.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field, fields

from sales.records import SalesRecord
from utils.config import ALL, ITEM_TYPES

# Selection field -> SalesRecord attribute it is compared against.
_FACET_ATTRS = {
    "item_type": "item_type",
    "year": "year",
    "supplier": "supplier",
}


@dataclass(frozen=True)
class FilterSelection:
    """Active facet choices.  Hashable, so it can key the view cache."""

    item_type: str = ALL
    year: str = ALL
    supplier: str = ALL

    @classmethod
    def from_params(
        cls,
        item_type: str | None = None,
        year: str | None = None,
        supplier: str | None = None,
    ) -> "FilterSelection":
        """Build a selection from request parameters.

        ``None`` and blank values mean ``ALL``.

        Raises:
            ValueError: if *item_type* is not ALL or a known item type.
        """
        def norm(value: str | None) -> str:
            if value is None or not value.strip():
                return ALL
            return value.strip()

        selection = cls(item_type=norm(item_type), year=norm(year), supplier=norm(supplier))
        if selection.item_type != ALL and selection.item_type not in ITEM_TYPES:
            raise ValueError(
                f"item_type must be ALL or one of: {', '.join(ITEM_TYPES)}"
            )
        return selection

    def active(self) -> dict[str, str]:
        """Facets that actually filter (everything not ``ALL``)."""
        return {f.name: getattr(self, f.name) for f in fields(self)
                if getattr(self, f.name) != ALL}

    def intersect(self, other: "FilterSelection") -> "FilterSelection":
        """AND-compose two selections.

        Raises:
            ValueError: if both select different values for the same facet.
        """
        merged: dict[str, str] = {}
        for f in fields(self):
            mine, theirs = getattr(self, f.name), getattr(other, f.name)
            if mine != ALL and theirs != ALL and mine != theirs:
                raise ValueError(
                    f"Conflicting {f.name} filters: {mine!r} and {theirs!r}"
                )
            merged[f.name] = mine if mine != ALL else theirs
        return FilterSelection(**merged)


@dataclass(frozen=True)
class Facets:
    """Selectable values for each facet."""

    years: tuple[str, ...] = ()
    suppliers: tuple[str, ...] = ()
    item_types: tuple[str, ...] = field(default=ITEM_TYPES)
    suppliers_truncated: bool = False


def facets(records: Iterable[SalesRecord], supplier_limit: int | None = 50) -> Facets:
    """Derive the year and supplier facets from *records*.

    Years are sorted ascending as strings (fixed-width numeric, so this is
    chronological).  Suppliers are sorted lexicographically, blanks removed,
    and cut to the first *supplier_limit* names; ``None`` or a value <= 0
    disables the cap.
    """
    years: set[str] = set()
    suppliers: set[str] = set()
    for record in records:
        years.add(record.year)
        if record.supplier:
            suppliers.add(record.supplier)

    supplier_list = sorted(suppliers)
    truncated = False
    if supplier_limit is not None and supplier_limit > 0 and len(supplier_list) > supplier_limit:
        supplier_list = supplier_list[:supplier_limit]
        truncated = True
    return Facets(
        years=tuple(sorted(years)),
        suppliers=tuple(supplier_list),
        suppliers_truncated=truncated,
    )


def apply_filters(
    records: Sequence[SalesRecord],
    selection: FilterSelection,
) -> list[SalesRecord]:
    """Return the records matching *selection*, in their original order."""
    active = selection.active()
    if not active:
        return list(records)
    checks = [(_FACET_ATTRS[name], value) for name, value in active.items()]
    return [r for r in records
            if all(getattr(r, attr) == value for attr, value in checks)]
