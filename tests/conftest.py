"""
Pytest fixtures for the sales dashboard tests.

Provides a small sample CSV, parsed records, a temporary SQLite vote store,
and TestClient instances over create_app() with test overrides.
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sales.loader import SalesDataset, parse_csv  # noqa: E402
from sales.records import SalesRecord  # noqa: E402
from votes.identity import LocalIdentityProvider  # noqa: E402
from votes.store import DocumentStore  # noqa: E402

SAMPLE_CSV = """\
YEAR,MONTH,SUPPLIER,ITEM CODE,ITEM DESCRIPTION,ITEM TYPE,RETAIL SALES,RETAIL TRANSFERS,WAREHOUSE SALES
2020,1,CROWN IMPORTS,101220,CORONA EXTRA 6/12 NR,BEER,10,0,5
2020,1,E & J GALLO WINERY,102110,BAREFOOT CAB SAUV - 1.5L,WINE,20,0,0
2020,2,ANHEUSER BUSCH INC,101500,BUD LIGHT 30PK CAN,BEER,7.5,0,2.5
2019,12,DIAGEO NORTH AMERICA INC,102400,JOHNNIE WALKER BLACK - 750ML,LIQUOR,30,0,
2020,1,MISC SUPPLIER,999001,COLA 12PK,SODA,99,0,99
2020,,CROWN IMPORTS,101220,CORONA EXTRA 6/12 NR,BEER,1,0,1
"""


@pytest.fixture()
def sample_csv(tmp_path) -> Path:
    """Sample dataset on disk: 6 data rows, 4 valid (one SODA, one blank MONTH)."""
    path = tmp_path / "sales.csv"
    path.write_text(SAMPLE_CSV, encoding="utf-8")
    return path


@pytest.fixture()
def sample_records() -> list[SalesRecord]:
    return parse_csv(SAMPLE_CSV).records


@pytest.fixture()
def store(tmp_path) -> DocumentStore:
    return DocumentStore(tmp_path / "votes.sqlite")


@pytest.fixture()
def identity() -> LocalIdentityProvider:
    return LocalIdentityProvider()


@pytest.fixture()
def app_config(tmp_path, monkeypatch):
    """AppConfig pointed at tmp_path, with default limits."""
    monkeypatch.setenv("APP_VOTES_DB_PATH", str(tmp_path / "votes.sqlite"))
    monkeypatch.setenv("APP_DATA_SOURCE", str(tmp_path / "missing.csv"))
    from utils.config import AppConfig
    return AppConfig.from_env()


@pytest.fixture(autouse=True)
def _reset_rate_limits():
    """Rate-limit counters are module state; start every test clean."""
    import api.app as app_module
    app_module._limiter.reset()
    yield
    app_module._limiter.reset()


@pytest.fixture()
def app(app_config, sample_records, store, identity):
    from api.app import create_app
    return create_app(
        config=app_config,
        dataset=SalesDataset.from_records(sample_records),
        store=store,
        identity=identity,
    )


@pytest.fixture()
def client(app):
    from fastapi.testclient import TestClient
    return TestClient(app)
