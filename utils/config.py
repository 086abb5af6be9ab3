"""Configuration management for the sales dashboard.

Provides:
- AppConfig, populated from environment variables
- Dataset constants shared by the loader and the API (column names,
  item types, month abbreviations)
"""

import os
from pathlib import Path


# ── Dataset constants ─────────────────────────────────────────────────────────
# Header names of the warehouse/retail sales CSV.

COL_YEAR = "YEAR"
COL_MONTH = "MONTH"
COL_ITEM_TYPE = "ITEM TYPE"
COL_ITEM_DESCRIPTION = "ITEM DESCRIPTION"
COL_SUPPLIER = "SUPPLIER"
COL_RETAIL_SALES = "RETAIL SALES"
COL_WAREHOUSE_SALES = "WAREHOUSE SALES"

REQUIRED_COLUMNS = (COL_YEAR, COL_MONTH, COL_ITEM_TYPE)

# Canonical order is also the order of the item-type dropdown.
ITEM_TYPES = ("BEER", "WINE", "LIQUOR", "KEGS", "NON-ALCOHOL")

MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
          "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

# Facet value meaning "do not filter on this dimension".
ALL = "ALL"

# Document store layout for the vote widget.
USER_VOTES_COLLECTION = "userVotes"
VOTES_COLLECTION = "votes"
VOTES_DOC_ID = "salesData"
VOTE_KINDS = ("support", "against")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


class AppConfig:
    """Application-level configuration loaded from environment variables.

    All env vars have defaults so the dashboard runs out of the box.

    Environment variables:
        APP_DATA_SOURCE: CSV path or http(s) URL
            (default: data/Warehouse_and_Retail_Sales.csv)
        APP_VOTES_DB_PATH: SQLite file backing the vote store (default: votes.sqlite)
        APP_SUPPLIER_LIMIT: Max suppliers offered as a facet; 0 disables the cap (default: 50)
        APP_PREVIEW_LIMIT: Rows shown in the table preview (default: 100)
        APP_FETCH_TIMEOUT: Seconds to wait when fetching a remote dataset (default: 30)
        APP_PORT: Server port (default: 8000)
        APP_HOST: Bind address (default: 127.0.0.1)
        APP_LOG_FORMAT: "text" or "json" (default: text)
        APP_CORS_ORIGINS: Comma-separated allowed origins (default: *)
        RATE_LIMIT_VOTES: Max vote/auth POSTs per minute per IP (default: 20)
        RATE_LIMIT_DEFAULT: Max requests per minute for other endpoints (default: 240)
        TRUSTED_PROXIES: Comma-separated proxy IPs whose X-Forwarded-For is trusted
        APP_SESSION_TTL: Seconds an idle sign-in session is kept (default: 86400)
        APP_MAX_SESSIONS: Most sign-in sessions held at once (default: 10000)
    """

    def __init__(self) -> None:
        self.data_source = os.getenv(
            "APP_DATA_SOURCE", "data/Warehouse_and_Retail_Sales.csv"
        )
        self.votes_db_path = Path(os.getenv("APP_VOTES_DB_PATH", "votes.sqlite"))
        self.supplier_limit = _env_int("APP_SUPPLIER_LIMIT", 50)
        self.preview_limit = _env_int("APP_PREVIEW_LIMIT", 100)
        self.fetch_timeout = _env_int("APP_FETCH_TIMEOUT", 30)
        self.api_port = _env_int("APP_PORT", 8000)
        self.api_host = os.getenv("APP_HOST", "127.0.0.1")
        self.log_format = os.getenv("APP_LOG_FORMAT", "text")
        raw_origins = os.getenv("APP_CORS_ORIGINS", "*")
        self.cors_origins: list[str] = (
            ["*"] if raw_origins == "*"
            else [o.strip() for o in raw_origins.split(",") if o.strip()]
        )
        self.rate_limit_votes = _env_int("RATE_LIMIT_VOTES", 20)
        self.rate_limit_default = _env_int("RATE_LIMIT_DEFAULT", 240)
        raw_proxies = os.getenv("TRUSTED_PROXIES", "")
        self.trusted_proxies: set[str] = (
            {p.strip() for p in raw_proxies.split(",") if p.strip()}
        )
        self.session_ttl = _env_int("APP_SESSION_TTL", 86_400)
        self.max_sessions = _env_int("APP_MAX_SESSIONS", 10_000)

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create an AppConfig instance populated from environment variables."""
        return cls()
