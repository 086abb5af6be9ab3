"""
Frontend HTML routes.

Serves the Jinja2 dashboard page.  Filters are a plain GET form, so every
selection has its own URL; charts and the vote widget are driven by
static/dashboard.js.

Routes:
    GET /   → index.html (filters, stat cards, charts, vote widget, preview)
"""

import logging

from fastapi import APIRouter, FastAPI, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.templating import Jinja2Templates
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.dependencies import get_session_token, get_tallies
from sales.filters import FilterSelection
from sales.views import build_view
from utils.config import ALL
from votes.store import StoreError
from votes.tally import VoteCounts, VoteTally

logger = logging.getLogger(__name__)

router = APIRouter(tags=["frontend"])

# Templates instance is set by create_app() after mounting.
_templates: Jinja2Templates | None = None

VOTE_QUESTION = "Should sales regulations be updated based on this data?"


def set_templates(t: Jinja2Templates) -> None:
    global _templates
    _templates = t


def _tmpl() -> Jinja2Templates:
    if _templates is None:
        raise RuntimeError("Templates not initialised; call set_templates() first")
    return _templates


def _selection_or_default(
    item_type: str | None, year: str | None, supplier: str | None,
) -> tuple[FilterSelection, str | None]:
    """Bad query parameters fall back to the unfiltered view with a notice."""
    try:
        return FilterSelection.from_params(item_type, year, supplier), None
    except ValueError as exc:
        return FilterSelection(), str(exc)


@router.get("/", response_class=HTMLResponse, include_in_schema=False)
def index(
    request: Request,
    item_type: str | None = Query(None),
    year: str | None = Query(None),
    supplier: str | None = Query(None),
    chart: str = Query("line"),
) -> HTMLResponse:
    state = request.app.state
    dataset = state.dataset
    cfg = state.config
    selection, notice = _selection_or_default(item_type, year, supplier)

    session, vote_state, vote, counts = None, VoteTally.UNAUTHENTICATED, None, VoteCounts()
    try:
        tally = get_tallies(request).for_token(get_session_token(request))
        session, vote_state, vote = tally.session, tally.state, tally.vote
        counts = tally.counts()
    except StoreError as exc:
        # The page still renders; the live stream fills the counter in later.
        logger.warning("vote store unavailable: %s", exc)
    context = {
        "ALL": ALL,
        "status": dataset.status,
        "error": dataset.error,
        "selection": selection,
        "notice": notice,
        "chart_type": chart if chart in ("line", "bar") else "line",
        "question": VOTE_QUESTION,
        "session": session,
        "vote_state": vote_state,
        "vote": vote,
        "counts": counts,
        "view": None,
    }
    if dataset.ready:
        cache_key = (dataset.generation, selection, cfg.supplier_limit, cfg.preview_limit)
        context["view"] = state.view_cache.get_or_compute(
            cache_key,
            lambda: build_view(
                dataset.records, selection,
                supplier_limit=cfg.supplier_limit,
                preview_limit=cfg.preview_limit,
            ),
        )
    return _tmpl().TemplateResponse(request, "index.html", context)


def register_error_handlers(app: FastAPI) -> None:
    """HTML 404 page for browser requests; JSON for API paths."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if request.url.path.startswith("/api/") or _templates is None:
            return JSONResponse(
                status_code=exc.status_code,
                content={"error": str(exc.detail), "detail": None, "status_code": exc.status_code},
                headers=getattr(exc, "headers", None),
            )
        return _tmpl().TemplateResponse(
            request, "error.html",
            {"status_code": exc.status_code, "message": str(exc.detail)},
            status_code=exc.status_code,
        )
