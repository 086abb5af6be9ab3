"""String processing utilities for the sales dashboard.

safe_float() runs once per numeric cell during dataset load, so the
patterns it needs are compiled at import time.
"""

import math
import re

CURRENCY_SYMBOLS = re.compile(r"[$£€¥]")
WHITESPACE = re.compile(r"\s+")


def safe_float(val, default: float = 0.0) -> float:
    """Safely convert value to float with fallback default.

    Handles:
    - None, empty strings -> default
    - Numeric types -> float
    - Strings with currency symbols, whitespace, commas
    - Invalid input, NaN and infinities -> default

    Args:
        val: Value to convert (any type)
        default: Value to return on failure (default: 0.0)

    Returns:
        float: Parsed value or default
    """
    if val is None or val == '':
        return default
    if isinstance(val, (int, float)):
        result = float(val)
    else:
        s = CURRENCY_SYMBOLS.sub('', str(val))
        s = s.replace(',', '').strip()
        if not s:
            return default
        try:
            result = float(s)
        except (ValueError, TypeError):
            return default
    if math.isnan(result) or math.isinf(result):
        return default
    return result


def normalize_whitespace(s: str) -> str:
    """Collapse runs of whitespace to single spaces and strip the ends.

    Example:
        "CROWN   IMPORTS\\n LLC" -> "CROWN IMPORTS LLC"
    """
    return WHITESPACE.sub(' ', s).strip()
