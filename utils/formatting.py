"""Output formatting utilities for the sales dashboard.

Display helpers only: every function here takes an exact internal value and
returns a string.  Totals are never rounded before they reach this module.
"""

from typing import Optional


def format_total(value: Optional[float]) -> str:
    """Format a sales total with grouping separators and no decimals.

    Args:
        value: Exact summed amount (can be None)

    Returns:
        Formatted string like "1,234,567"

    Examples:
        format_total(1234567.4) -> "1,234,567"
        format_total(35) -> "35"
        format_total(None) -> "0"
    """
    if value is None:
        return "0"
    return f"{value:,.0f}"


def format_currency(value: Optional[float], precision: int = 2) -> str:
    """Format a single row amount for the table preview.

    Examples:
        format_currency(10) -> "$10.00"
        format_currency(None) -> "$0.00"
    """
    if value is None:
        value = 0.0
    return f"${value:,.{precision}f}"


def format_count(value: Optional[int]) -> str:
    """Format a count with thousands separator.

    Examples:
        format_count(1234567) -> "1,234,567"
        format_count(None) -> "-"
    """
    if value is None:
        return "-"
    return f"{value:,d}"


def format_percent(fraction: Optional[float], precision: int = 1) -> str:
    """Format a 0..1 fraction as a percentage.

    Examples:
        format_percent(0.5) -> "50.0%"
        format_percent(None) -> "-"
    """
    if fraction is None:
        return "-"
    return f"{fraction * 100:.{precision}f}%"


def truncate_text(text: Optional[str], max_length: int) -> str:
    """Cut *text* to at most *max_length* characters (no suffix).

    Used by the table preview, which clips item descriptions and supplier
    names to fixed column widths.
    """
    if not text:
        return ""
    return text[:max_length]
