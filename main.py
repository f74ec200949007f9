"""
PostPolice cache server - dedupe paid summarize/verify calls by content fingerprint.
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from admin_service import CacheAdminService
from cache_redis import RedisStore
from cache_service import SummaryCacheService
from config import Settings, load_settings
from dashboard import render_dashboard
from exceptions import (
    AdminOperationError,
    StoreUnavailable,
    StoreWriteFailed,
    UpstreamGenerationError,
    ValidationError,
)
from llm_provider import GroqGenerator, SummaryGenerator
from models import (
    AdminResponse,
    CacheSummaryRequest,
    CacheSummaryResponse,
    CheckSummaryRequest,
    CheckSummaryResponse,
    HealthResponse,
    MetricsResponse,
    SummarizeRequest,
    SummarizeResponse,
)
import metrics

logger = logging.getLogger(__name__)

VERSION = "0.1.0"
SHUTDOWN_TIMEOUT_SEC = 10


def build_store(settings: Settings) -> RedisStore:
    return RedisStore(
        redis_url=settings.redis_url,
        ttl_seconds=settings.ttl_seconds,
        key_namespace=settings.key_namespace,
        timeout_sec=settings.store_timeout_sec,
        connect_attempts=settings.connect_attempts,
        backoff_step_ms=settings.backoff_step_ms,
        backoff_cap_ms=settings.backoff_cap_ms,
        reconnect_on_demand=settings.reconnect_on_demand,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: connect store and generator. Shutdown: drain requests, close resources."""
    state = app.state
    state.shutdown_event = asyncio.Event()

    # connect() never raises; a dead store leaves the server up in degraded mode
    store_state = await state.store.connect()
    metrics.set_store_up(state.store.is_connected)
    await state.generator.connect()
    logger.info(f"🚀 PostPolice cache server started (store={store_state.value})")

    yield

    logger.info("Shutting down gracefully...")
    state.shutdown_event.set()

    start_shutdown = time.time()
    while state.active_requests > 0 and time.time() - start_shutdown < SHUTDOWN_TIMEOUT_SEC:
        logger.info(f"Waiting for {state.active_requests} active request(s) to complete...")
        await asyncio.sleep(0.1)

    if state.active_requests > 0:
        logger.warning(f"Shutdown timeout: {state.active_requests} request(s) still active after {SHUTDOWN_TIMEOUT_SEC}s")

    await state.generator.disconnect()
    await state.store.disconnect()
    logger.info("PostPolice cache server shut down")


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[RedisStore] = None,
    generator: Optional[SummaryGenerator] = None,
) -> FastAPI:
    """
    Build the app with its process-wide collaborators on app.state.

    One store client, one CacheMetrics and one generator per app; tests
    inject their own store/generator to get independent instances.
    """
    settings = settings or load_settings()
    store = store or build_store(settings)
    cache_metrics = metrics.CacheMetrics()

    app = FastAPI(
        title="PostPolice Cache Server",
        description="Content-fingerprint cache for summaries and fact-check verdicts",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = store
    app.state.cache_metrics = cache_metrics
    app.state.cache_service = SummaryCacheService(store, cache_metrics, namespace=settings.key_namespace)
    app.state.admin_service = CacheAdminService(store, cache_metrics, purge_scope=settings.purge_scope)
    app.state.generator = generator or GroqGenerator(
        api_key=settings.groq_api_key,
        model=settings.groq_model,
        timeout_sec=settings.generator_timeout_sec,
    )
    app.state.active_requests = 0
    app.state.shutdown_event = None

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_middleware(app)
    register_exception_handlers(app)
    register_routes(app)
    return app


def endpoint_label(request: Request) -> str:
    """Matched route template (e.g. "/check-summary"), or "unmatched" for unknown paths."""
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    return path if path is not None else "unmatched"


def register_middleware(app: FastAPI) -> None:
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log method/path/latency, record RED metrics, reject new work while draining."""
        state = request.app.state

        if state.shutdown_event is not None and state.shutdown_event.is_set():
            logger.warning(f"Rejecting request during shutdown: {request.method} {request.url.path}")
            return JSONResponse(status_code=503, content={"error": "server_shutting_down"})

        state.active_requests += 1
        start_time = time.time()
        endpoint = request.url.path

        logger.info(f"→ {request.method} {endpoint}")

        try:
            response = await call_next(request)
        finally:
            state.active_requests -= 1

        latency_seconds = time.time() - start_time
        logger.info(f"← {response.status_code} | {latency_seconds * 1000:.1f}ms")

        metrics.record_request(
            endpoint=endpoint_label(request), status=response.status_code, duration_seconds=latency_seconds
        )
        return response


# EXCEPTION HANDLERS: map domain exceptions to HTTP status codes.
# The service layer stays transport-agnostic.

def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        logger.info(f"Rejected {request.url.path}: {exc}")
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def request_validation_error_handler(request: Request, exc: RequestValidationError):
        """Malformed JSON or wrong field types. 400 (not FastAPI's default 422) to match the client contract."""
        logger.info(f"Rejected {request.url.path}: invalid request body")
        return JSONResponse(status_code=400, content={"error": "invalid request body"})

    @app.exception_handler(StoreWriteFailed)
    async def store_write_failed_handler(request: Request, exc: StoreWriteFailed):
        logger.error(f"cache-summary error: {exc}")
        return JSONResponse(status_code=503, content={"stored": False, "error": "cache store failed"})

    @app.exception_handler(AdminOperationError)
    async def admin_operation_error_handler(request: Request, exc: AdminOperationError):
        logger.error(f"Admin operation failed: {exc}")
        return JSONResponse(
            status_code=503,
            content=AdminResponse(success=False, message=str(exc)).model_dump(by_alias=True),
        )

    @app.exception_handler(UpstreamGenerationError)
    async def upstream_generation_error_handler(request: Request, exc: UpstreamGenerationError):
        """Hosted model failed. 502: the problem is upstream, not here."""
        logger.error(f"summarize error: {exc}")
        return JSONResponse(status_code=502, content={"error": "summarize failed", "message": str(exc)})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Last resort. If we see these in logs, it's a bug - add a specific handler."""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "internal_error", "message": "An unexpected error occurred"},
        )


def _wants_html(request: Request) -> bool:
    return "text/html" in request.headers.get("accept", "")


def register_routes(app: FastAPI) -> None:
    @app.post("/check-summary", response_model=CheckSummaryResponse, response_model_exclude_none=True, tags=["cache"])
    async def check_summary(body: CheckSummaryRequest, request: Request) -> CheckSummaryResponse:
        """Look up a cached summary by content fingerprint. Store outages read as misses."""
        result = await request.app.state.cache_service.lookup(body.content)
        return CheckSummaryResponse(hit=result.hit, summary=result.value)

    @app.post("/cache-summary", response_model=CacheSummaryResponse, tags=["cache"])
    async def cache_summary(body: CacheSummaryRequest, request: Request) -> CacheSummaryResponse:
        """Store a summary for content with the configured TTL."""
        await request.app.state.cache_service.store(body.content, body.summary)
        return CacheSummaryResponse(stored=True)

    @app.post("/summarize", response_model=SummarizeResponse, tags=["generation"])
    async def summarize(body: SummarizeRequest, request: Request) -> SummarizeResponse:
        """Proxy to the hosted model so the API key stays server-side."""
        if not body.user_prompt:
            raise ValidationError("userPrompt is required")
        summary = await request.app.state.generator.generate(body.user_prompt, body.system_prompt)
        return SummarizeResponse(summary=summary)

    @app.get("/metrics", response_model=MetricsResponse, tags=["monitoring"])
    async def metrics_view(request: Request):
        """Cache counters plus live store stats. JSON, or an HTML dashboard for browsers."""
        state = request.app.state
        status_code = 200
        try:
            snapshot = await state.admin_service.snapshot()
            body = MetricsResponse(
                cache_hits=snapshot.hits,
                cache_misses=snapshot.misses,
                hit_rate_percent=snapshot.hit_rate_percent,
                total_keys=snapshot.total_keys,
                used_memory=snapshot.used_memory,
                used_memory_bytes=snapshot.used_memory_bytes,
                uptime=round(snapshot.uptime_seconds, 1),
                store_state=state.store.state.value,
            )
        except StoreUnavailable as e:
            logger.warning(f"Metrics degraded, store unavailable: {e}")
            hits, misses = state.cache_metrics.counts()
            total = hits + misses
            status_code = 503
            body = MetricsResponse(
                cache_hits=hits,
                cache_misses=misses,
                hit_rate_percent=round(hits / total * 100, 2) if total else 0.0,
                total_keys=None,
                used_memory=None,
                used_memory_bytes=None,
                uptime=round(state.cache_metrics.uptime_seconds(), 1),
                store_state=state.store.state.value,
                degraded=True,
            )

        if _wants_html(request):
            return HTMLResponse(content=render_dashboard(body), status_code=status_code)
        return JSONResponse(status_code=status_code, content=body.model_dump(by_alias=True))

    @app.get("/metrics/prometheus", tags=["monitoring"])
    async def prometheus_metrics() -> Response:
        """Prometheus metrics endpoint (text format, Prometheus scraping standard)."""
        return Response(content=generate_latest(metrics.REGISTRY), media_type=CONTENT_TYPE_LATEST)

    @app.post("/clear-cache", response_model=AdminResponse, tags=["admin"])
    async def clear_cache(request: Request) -> AdminResponse:
        """Purge cached entries (whole store unless PURGE_SCOPE=namespace)."""
        message = await request.app.state.admin_service.purge_all()
        return AdminResponse(success=True, message=message)

    @app.post("/reset-stats", response_model=AdminResponse, tags=["admin"])
    async def reset_stats(request: Request) -> AdminResponse:
        """Zero hit/miss counters without touching cached entries."""
        message = request.app.state.admin_service.reset_counters()
        return AdminResponse(success=True, message=message)

    @app.get("/health", response_model=HealthResponse, tags=["health"])
    async def health_check(request: Request) -> HealthResponse:
        """Liveness for load balancers. Always 200; store status is reported, not enforced."""
        store = request.app.state.store
        connected = await store.ping()
        metrics.set_store_up(connected)
        return HealthResponse(
            status="ok",
            store="connected" if connected else "disconnected",
            store_state=store.state.value,
        )


_settings = load_settings()
logging.basicConfig(level=_settings.log_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

app = create_app(_settings)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=_settings.host, port=_settings.port, log_level=_settings.log_level.lower())
