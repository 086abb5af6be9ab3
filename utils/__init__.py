"""Shared utilities for the sales dashboard."""

# String utilities
from utils.strings import normalize_whitespace, safe_float

# Output formatting
from utils.formatting import (
    format_total,
    format_currency,
    format_count,
    format_percent,
    truncate_text,
)

# Memoization
from utils.cache import MemoCache

# Configuration
from utils.config import (
    ALL,
    ITEM_TYPES,
    MONTHS,
    VOTE_KINDS,
    AppConfig,
)

__all__ = [
    # Strings
    "safe_float",
    "normalize_whitespace",
    # Formatting
    "format_total",
    "format_currency",
    "format_count",
    "format_percent",
    "truncate_text",
    # Cache
    "MemoCache",
    # Config
    "ALL",
    "ITEM_TYPES",
    "MONTHS",
    "VOTE_KINDS",
    "AppConfig",
]
