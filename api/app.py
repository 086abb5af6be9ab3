"""
FastAPI application factory.

Usage:
    python -m api.app                    # Dev server on port 8000
    APP_DATA_SOURCE=https://example.org/sales.csv python -m api.app

OpenAPI docs available at http://localhost:8000/docs after starting.

The dataset is loaded once per process, in the background, when the app
starts; until it finishes the dashboard endpoints return 503 ``loading``.
The vote store is a SQLite file opened on first use.

Environment (see utils.config.AppConfig):
    APP_LOG_FORMAT=json   newline-delimited JSON logs
    APP_CORS_ORIGINS      comma-separated allowed origins
    RATE_LIMIT_VOTES      per-IP limit for vote and sign-in POSTs
    TRUSTED_PROXIES       proxies whose X-Forwarded-For is honoured
"""

import asyncio
import json
import logging
import time
import uuid
from collections import defaultdict, deque
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates

from api.dependencies import DatasetUnavailable
from api.routes import auth, dashboard, reference, votes
from api.routes import frontend as frontend_routes
from sales.loader import SalesDataset
from utils.cache import MemoCache
from utils.config import AppConfig
from utils.formatting import format_percent, format_total
from votes.identity import AuthError, IdentityProvider, LocalIdentityProvider
from votes.store import DocumentStore, StoreError
from votes.tally import VoteWriteError

# ── Configuration ─────────────────────────────────────────────────────────────
_cfg = AppConfig.from_env()

# ── Structured JSON logging ───────────────────────────────────────────────────


_REQUEST_FIELDS = ("method", "path", "status", "duration_ms", "client_ip", "request_id")


class _JsonFormatter(logging.Formatter):
    """One JSON object per line, including request fields passed via ``extra``."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(
            (name, getattr(record, name))
            for name in _REQUEST_FIELDS if hasattr(record, name)
        )
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry)


_logger = logging.getLogger("sales_dashboard_api")


def configure_logging(log_format: str) -> None:
    handler = logging.StreamHandler()
    if log_format == "json":
        handler.setFormatter(_JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
        )
    logging.basicConfig(handlers=[handler], level=logging.INFO, force=True)


configure_logging(_cfg.log_format)

# ── Rate limiting ─────────────────────────────────────────────────────────────
# Only state-changing POSTs get the tight limit; everything else shares
# RATE_LIMIT_DEFAULT.
_LIMITED_POSTS = frozenset({
    "/api/v1/votes",
    "/api/v1/auth/sign-in",
    "/api/v1/auth/sign-out",
})
_UNLIMITED_PATHS = ("/health", "/static/", "/api/v1/votes/stream")
_WINDOW_SECONDS = 60.0


class _RateLimiter:
    """Sliding one-minute window of request times per client IP and route.

    Idle entries are swept every ``sweep_interval`` seconds; past
    ``max_ips`` the least active clients are forgotten.
    """

    def __init__(self, max_ips: int = 10_000, sweep_interval: float = 300.0):
        self.max_ips = max_ips
        self.sweep_interval = sweep_interval
        self.hits: dict[str, dict[str, list[float]]] = defaultdict(lambda: defaultdict(list))
        self.blocked = 0
        self._last_sweep = 0.0

    def allow(self, client_ip: str, route: str, limit: int) -> bool:
        now = time.time()
        recent = [t for t in self.hits[client_ip][route] if t > now - _WINDOW_SECONDS]
        if len(recent) >= limit:
            self.hits[client_ip][route] = recent
            self.blocked += 1
            return False
        recent.append(now)
        self.hits[client_ip][route] = recent
        return True

    def sweep(self, force: bool = False) -> None:
        now = time.time()
        if not force and now - self._last_sweep < self.sweep_interval:
            return
        self._last_sweep = now
        cutoff = now - _WINDOW_SECONDS
        for client_ip in list(self.hits):
            routes = self.hits[client_ip]
            for route in list(routes):
                routes[route] = [t for t in routes[route] if t > cutoff]
                if not routes[route]:
                    del routes[route]
            if not routes:
                del self.hits[client_ip]
        overflow = len(self.hits) - self.max_ips
        if overflow > 0:
            quietest = sorted(
                self.hits, key=lambda ip: sum(map(len, self.hits[ip].values()))
            )
            for client_ip in quietest[:overflow]:
                del self.hits[client_ip]

    def reset(self) -> None:
        self.hits.clear()
        self.blocked = 0

    def stats(self) -> dict:
        return {"tracked_ips": len(self.hits), "blocked_requests": self.blocked}


_limiter = _RateLimiter()


def _rate_limit_for(method: str, path: str, cfg: AppConfig) -> int:
    if method == "POST" and path in _LIMITED_POSTS:
        return cfg.rate_limit_votes
    return cfg.rate_limit_default


# ── Client IP (proxy-aware) ───────────────────────────────────────────────────

def _get_client_ip(request: Request, trusted_proxies: set[str]) -> str:
    """Client address, taken from X-Forwarded-For only behind a trusted proxy."""
    peer = request.client.host if request.client else "unknown"
    if peer not in trusted_proxies:
        return peer
    forwarded = request.headers.get("X-Forwarded-For", "")
    # Leftmost entry is the originating client.
    origin = forwarded.split(",")[0].strip()
    return origin or peer


# ── Application metrics ───────────────────────────────────────────────────────

class _Metrics:
    """In-process request counters; reset on restart."""

    def __init__(self, window: int = 100):
        self.started = time.time()
        self.requests = 0
        self.errors = 0
        self.durations_ms: deque[float] = deque(maxlen=window)

    def record(self, status_code: int, duration_ms: float) -> None:
        self.requests += 1
        self.durations_ms.append(duration_ms)
        if status_code >= 500:
            self.errors += 1

    def snapshot(self) -> dict:
        avg = sum(self.durations_ms) / len(self.durations_ms) if self.durations_ms else 0.0
        return {
            "uptime_seconds": round(time.time() - self.started, 2),
            "request_count": self.requests,
            "error_count": self.errors,
            "avg_response_time_ms": round(avg, 2),
        }


_metrics = _Metrics()


def _error_body(error: str, detail: str | None, status_code: int) -> dict:
    return {"error": error, "detail": detail, "status_code": status_code}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start loading the dataset; release vote subscriptions on shutdown."""
    dataset: SalesDataset = app.state.dataset
    if dataset.status == SalesDataset.LOADING:
        loop = asyncio.get_running_loop()
        if app.state.background_load:
            app.state.load_future = loop.run_in_executor(None, dataset.load)
        else:
            await loop.run_in_executor(None, dataset.load)
    yield
    future = getattr(app.state, "load_future", None)
    if future is not None and not future.done():
        future.cancel()
    if app.state.tallies is not None:
        app.state.tallies.close()


def create_app(
    config: AppConfig | None = None,
    dataset: SalesDataset | None = None,
    store: DocumentStore | None = None,
    identity: IdentityProvider | None = None,
    background_load: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Settings; defaults to AppConfig.from_env().
        dataset: A prebuilt dataset (tests pass a ready one).  Otherwise one
            is created for ``config.data_source`` and loaded at startup.
        store: Vote document store; defaults to a SQLite file at
            ``config.votes_db_path`` opened on first use.
        identity: Identity provider; defaults to LocalIdentityProvider.
        background_load: When False, startup waits for the dataset to load.

    Returns:
        Configured FastAPI application instance.
    """
    cfg = config if config is not None else _cfg

    app = FastAPI(
        title="Sales Analytics API",
        summary="Warehouse & Retail Data Explorer.",
        description=(
            "## Sales Analytics API\n\n"
            "Filters, totals and charts over a warehouse and retail sales "
            "dataset, plus a single-vote community poll.\n\n"
            "### Key concepts\n"
            "- **Filters** `item_type`, `year` and `supplier` are combined with AND; "
            "`ALL` (or omitting the parameter) leaves a dimension unfiltered.\n"
            "- **Amounts** are summed exactly; `formatted` fields carry display strings.\n"
            "- **Votes** require a session (`POST /api/v1/auth/sign-in`); each "
            "identity votes once.\n\n"
            "### Rate limits\n"
            f"- Vote and sign-in POSTs: {cfg.rate_limit_votes} req/min per IP\n"
            f"- All other endpoints: {cfg.rate_limit_default} req/min per IP\n\n"
            "Returns `429 Too Many Requests` with `Retry-After: 60` when exceeded."
        ),
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_tags=[
            {"name": "dashboard", "description": "Summary, monthly, category and record views."},
            {"name": "reference", "description": "Filter options: item types, years, suppliers."},
            {"name": "auth", "description": "Sign-in sessions."},
            {"name": "votes", "description": "Community vote counter and live stream."},
            {"name": "meta", "description": "Health check."},
        ],
    )

    app.state.config = cfg
    if dataset is None:
        dataset = SalesDataset(cfg.data_source, timeout=cfg.fetch_timeout)
    app.state.dataset = dataset
    app.state.store = store
    if identity is None:
        identity = LocalIdentityProvider(
            session_ttl=cfg.session_ttl, max_sessions=cfg.max_sessions,
        )
    app.state.identity = identity
    app.state.tallies = None
    app.state.view_cache = MemoCache(maxsize=64)
    app.state.background_load = background_load

    # ── CORS middleware ───────────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "HEAD", "OPTIONS"],
        allow_headers=["*"],
    )

    # ── Request logging + rate limiting middleware ────────────────────────────

    @app.middleware("http")
    async def log_and_rate_limit(request: Request, call_next):
        """Apply per-IP rate limits, then log and time the request."""
        path = request.url.path
        if path.startswith(_UNLIMITED_PATHS):
            return await call_next(request)

        client_ip = _get_client_ip(request, cfg.trusted_proxies)
        _limiter.sweep()
        limit = _rate_limit_for(request.method, path, cfg)
        if not _limiter.allow(client_ip, f"{request.method} {path}", limit):
            _logger.warning("rate_limited ip=%s path=%s limit=%d", client_ip, path, limit)
            return JSONResponse(
                status_code=429,
                content=_error_body("Too many requests", None, 429),
                headers={"Retry-After": "60"},
            )

        request_id = uuid.uuid4().hex[:8]
        started = time.monotonic()
        response = await call_next(request)
        elapsed_ms = (time.monotonic() - started) * 1000
        _metrics.record(response.status_code, elapsed_ms)
        response.headers["X-Request-ID"] = request_id

        fields = {
            "method": request.method,
            "path": path,
            "status": response.status_code,
            "duration_ms": round(elapsed_ms, 1),
            "client_ip": client_ip,
            "request_id": request_id,
        }
        if cfg.log_format == "json":
            _logger.info("request", extra=fields)
        else:
            _logger.info("%s", " ".join(f"{k}={v}" for k, v in fields.items()))
        if elapsed_ms > 500:
            _logger.warning("slow_request path=%s duration_ms=%.1f", path, elapsed_ms)
        return response

    # ── Content Security Policy + security headers ────────────────────────────

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        """Add Content-Security-Policy, X-Content-Type-Options, and X-Frame-Options."""
        response = await call_next(request)
        # Chart.js is served from the jsDelivr CDN.
        response.headers["Content-Security-Policy"] = (
            "default-src 'self'; "
            "script-src 'self' cdn.jsdelivr.net; "
            "style-src 'self' 'unsafe-inline'; "
            "img-src 'self' data: https:; "
            "font-src 'self'; "
            "connect-src 'self';"
        )
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        return response

    # ── Error handling ────────────────────────────────────────────────────────

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """Catch unhandled exceptions and return JSON instead of HTML traceback."""
        _logger.exception("unhandled error path=%s", request.url.path)
        return JSONResponse(
            status_code=500,
            content=_error_body("Internal server error", str(exc), 500),
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return JSONResponse(
            status_code=400,
            content=_error_body("Bad request", str(exc), 400),
        )

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError):
        _logger.warning("auth_error path=%s detail=%s", request.url.path, exc)
        return JSONResponse(
            status_code=401,
            content=_error_body("Unauthorized", str(exc), 401),
        )

    @app.exception_handler(VoteWriteError)
    async def vote_write_error_handler(request: Request, exc: VoteWriteError):
        return JSONResponse(
            status_code=503,
            content=_error_body("Vote not recorded", str(exc), 503),
            headers={"Retry-After": "1"},
        )

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        _logger.error("store_error path=%s detail=%s", request.url.path, exc)
        return JSONResponse(
            status_code=503,
            content=_error_body("Vote store unavailable", str(exc), 503),
        )

    @app.exception_handler(DatasetUnavailable)
    async def dataset_unavailable_handler(request: Request, exc: DatasetUnavailable):
        error = "Loading" if exc.status == SalesDataset.LOADING else "No data"
        return JSONResponse(
            status_code=503,
            content=_error_body(error, exc.detail, 503),
        )

    # ── Health check ──────────────────────────────────────────────────────────

    @app.get("/health", tags=["meta"], summary="Health check")
    def health():
        """Return 200 OK once the dataset is loaded, 503 while loading or empty."""
        ds: SalesDataset = app.state.dataset
        if ds.ready:
            return {"status": "ok", "source": str(ds.source), "records": len(ds)}
        return JSONResponse(
            status_code=503,
            content={"status": ds.status, "source": str(ds.source), "error": ds.error},
        )

    @app.get(
        "/health/detailed",
        tags=["meta"],
        summary="Detailed health metrics",
        response_description="Operational metrics for monitoring dashboards",
    )
    def health_detailed():
        """Uptime, request/error counters, cache and rate-limiter stats."""
        ds: SalesDataset = app.state.dataset
        return {
            "status": "ok" if ds.ready else ds.status,
            "records": len(ds),
            "dataset_generation": ds.generation,
            **_metrics.snapshot(),
            "view_cache": app.state.view_cache.stats(),
            "rate_limiter_stats": _limiter.stats(),
        }

    # ── Register routers ──────────────────────────────────────────────────────

    prefix = "/api/v1"
    app.include_router(reference.router, prefix=prefix)
    app.include_router(dashboard.router, prefix=prefix)
    app.include_router(auth.router,      prefix=prefix)
    app.include_router(votes.router,     prefix=prefix)

    # ── Static files + Jinja2 templates ───────────────────────────────────────
    _here = Path(__file__).parent.parent  # project root

    static_dir = _here / "static"
    templates_dir = _here / "templates"

    if static_dir.exists():
        app.mount("/static", StaticFiles(directory=str(static_dir)), name="static")

    if templates_dir.exists():
        templates = Jinja2Templates(directory=str(templates_dir))
        templates.env.filters["fmt_total"] = format_total
        templates.env.filters["fmt_percent"] = format_percent

        frontend_routes.set_templates(templates)
        app.include_router(frontend_routes.router)
        frontend_routes.register_error_handlers(app)

    return app


# Singleton instance for uvicorn
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.app:app",
        host=_cfg.api_host,
        port=_cfg.api_port,
        reload=True,
        log_level="info",
    )
