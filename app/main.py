import logging
import time
import uuid

from fastapi import FastAPI, HTTPException, Request
from starlette.concurrency import run_in_threadpool
from starlette.responses import JSONResponse, Response

from app.api.responses import error_response
from app.api.routes import stats
from app.core.config import Settings, settings
from app.core.limiter import build_limiter
from app.core.logging import client_ip_ctx, configure_logging, request_id_ctx
from app.core.metrics import CounterStore, StatKind
from app.schemas.common import ErrorCode
from app.services.access import AccessPolicy
from app.services.stats import FormatRegistry, StatsRenderer

configure_logging(settings.log_level)


def configure_state(app: FastAPI, config: Settings) -> None:
    counters = CounterStore()
    app.state.settings = config
    app.state.counters = counters
    app.state.access_policy = AccessPolicy(config.allowed_networks, config.denied_networks)
    app.state.stats_renderer = StatsRenderer(
        counters,
        FormatRegistry(config.stat_template_pairs),
        product_name=config.product_name,
        product_version=config.product_version,
        product_website=config.product_website,
    )


def _is_stat_host(request: Request) -> bool:
    host = request.headers.get("host", "")
    stat_host = request.app.state.settings.stat_host
    return host.rsplit(":", 1)[0].lower() == stat_host.lower()


async def enforce_json_content_type(request: Request, call_next):
    if request.method in {"POST", "PUT", "PATCH"}:
        content_length = request.headers.get("content-length")
        has_body = False
        if content_length:
            try:
                has_body = int(content_length) > 0
            except ValueError:
                has_body = False
        if has_body:
            content_type = request.headers.get("content-type", "")
            media_type = content_type.split(";")[0].strip().lower()
            if media_type != "application/json":
                request.app.state.counters.update(StatKind.BAD_CONNECTION)
                return error_response(
                    request,
                    415,
                    ErrorCode.unsupported_media_type,
                    "Content-Type must be application/json",
                )
    return await call_next(request)


async def limit_body_size(request: Request, call_next):
    content_length = request.headers.get("content-length")
    if content_length:
        try:
            too_large = int(content_length) > 1_000_000
        except ValueError:
            too_large = True
        if too_large:
            request.app.state.counters.update(StatKind.BAD_CONNECTION)
            return error_response(
                request, 413, ErrorCode.payload_too_large, "Request body too large"
            )
    return await call_next(request)


async def track_connection(request: Request, call_next):
    counters: CounterStore = request.app.state.counters
    max_clients = request.app.state.settings.max_clients
    if counters.snapshot().open_connections >= max_clients:
        counters.update(StatKind.REFUSE)
        logging.getLogger("access").warning(
            "Maximum number of clients reached",
            extra={"event": {"max_clients": max_clients}},
        )
        return error_response(
            request,
            503,
            ErrorCode.too_many_clients,
            "Maximum number of clients reached",
        )
    counters.update(StatKind.OPEN)
    try:
        client_ip = request.client.host if request.client else None
        if not request.app.state.access_policy.is_allowed(client_ip):
            counters.update(StatKind.DENIED)
            logging.getLogger("access").info(
                "Access denied", extra={"event": {"path": request.url.path}}
            )
            return error_response(request, 403, ErrorCode.access_denied, "Access denied")
        if _is_stat_host(request):
            return await run_in_threadpool(
                stats.render_stats, request, request.app.state.stats_renderer
            )
        return await call_next(request)
    finally:
        counters.update(StatKind.CLOSE)


async def security_headers(request: Request, call_next):
    response: Response = await call_next(request)
    response.headers.setdefault("Content-Security-Policy", "default-src 'self'")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "no-referrer")
    return response


async def add_request_id(request: Request, call_next):
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id
    request_id_ctx.set(request_id)
    if request.client:
        client_ip_ctx.set(request.client.host)
    start = time.monotonic()
    response: Response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    duration_ms = int((time.monotonic() - start) * 1000)
    logging.getLogger("access").info(
        "request",
        extra={
            "event": {
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            }
        },
    )
    return response


def live():
    return {"status": "ok"}


def ready():
    return {"status": "ready"}


async def generic_exception_handler(request: Request, exc: Exception):
    logging.getLogger("app").exception(
        "Unhandled exception",
        extra={
            "event": {
                "method": request.method,
                "path": request.url.path,
                "request_id": getattr(request.state, "request_id", None),
            }
        },
    )
    message = "Internal server error"
    details = None
    if request.app.state.settings.env.lower() != "production":
        message = f"{exc.__class__.__name__}: {exc}"
        details = [{"type": exc.__class__.__name__}]
    return error_response(
        request, 500, ErrorCode.internal_server_error, message, details=details
    )


def rate_limit_handler(request: Request, exc: Exception):
    request.app.state.counters.update(StatKind.REFUSE)
    retry_after = None
    detail = getattr(exc, "detail", None)
    if isinstance(detail, dict):
        if "retry_after" in detail:
            retry_after = int(detail["retry_after"])
        elif "reset" in detail:
            retry_after = max(0, int(detail["reset"] - time.time()))
    headers = {}
    if retry_after is not None:
        headers["Retry-After"] = str(retry_after)
    return error_response(
        request, 429, ErrorCode.rate_limited, "Too many requests", headers=headers
    )


async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "code": f"http_{exc.status_code}",
                "message": exc.detail,
                "request_id": getattr(request.state, "request_id", None),
            }
        },
    )


def create_app(config: Settings, limiter=None) -> FastAPI:
    app = FastAPI(title=config.app_name)
    configure_state(app, config)
    limiter = limiter or build_limiter(config)

    # last registered runs first
    app.middleware("http")(enforce_json_content_type)
    app.middleware("http")(limit_body_size)
    app.middleware("http")(track_connection)
    if limiter is not None:
        from slowapi.errors import RateLimitExceeded
        from slowapi.middleware import SlowAPIMiddleware

        # outside track_connection so a rate-limited request is never opened
        app.state.limiter = limiter
        app.add_middleware(SlowAPIMiddleware)
        app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    app.middleware("http")(security_headers)
    app.middleware("http")(add_request_id)

    app.add_exception_handler(Exception, generic_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)

    app.get("/health/live")(live)
    app.get("/health/ready")(ready)
    app.include_router(stats.router)
    return app


app = create_app(settings)
