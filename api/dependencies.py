"""
Shared application state and FastAPI dependencies.

create_app() puts the dataset, config and identity provider on
``app.state``.  The vote store and tally registry open the SQLite file, so
they are created on first use rather than at import time.

Usage in a route::

    from api.dependencies import get_records
    from fastapi import Depends

    @router.get("/example")
    def example(dataset=Depends(get_records)):
        ...
"""

import threading

from fastapi import Request

from sales.loader import SalesDataset
from utils.cache import MemoCache
from utils.config import AppConfig
from votes.identity import IdentityProvider
from votes.store import DocumentStore
from votes.tally import TallyRegistry, VoteTally

SESSION_COOKIE = "session"

_init_lock = threading.Lock()


class DatasetUnavailable(Exception):
    """The dataset is still loading or failed to load; mapped to HTTP 503."""

    def __init__(self, status: str, detail: str) -> None:
        super().__init__(detail)
        self.status = status
        self.detail = detail


def get_config(request: Request) -> AppConfig:
    return request.app.state.config


def get_records(request: Request) -> SalesDataset:
    """FastAPI dependency: the loaded dataset, or HTTP 503 if there is none."""
    dataset: SalesDataset = request.app.state.dataset
    if dataset.status == SalesDataset.LOADING:
        raise DatasetUnavailable(dataset.status, "Sales data is still loading.")
    if not dataset.ready:
        raise DatasetUnavailable(dataset.status, dataset.error or "Dataset unavailable.")
    return dataset


def get_view_cache(request: Request) -> MemoCache:
    return request.app.state.view_cache


def get_identity(request: Request) -> IdentityProvider:
    return request.app.state.identity


def get_store(request: Request) -> DocumentStore:
    state = request.app.state
    if state.store is None:
        with _init_lock:
            if state.store is None:
                state.store = DocumentStore(state.config.votes_db_path)
    return state.store


def get_tallies(request: Request) -> TallyRegistry:
    state = request.app.state
    if state.tallies is None:
        store = get_store(request)
        with _init_lock:
            if state.tallies is None:
                state.tallies = TallyRegistry(store, state.identity)
    return state.tallies


def get_session_token(request: Request) -> str | None:
    return request.cookies.get(SESSION_COOKIE)


def get_viewer_tally(request: Request) -> VoteTally:
    """The requesting viewer's vote state machine."""
    return get_tallies(request).for_token(get_session_token(request))
