"""FastAPI application for the chat relay.

Wires together:
  - Service lifecycle (store connect, periodic tasks, hub shutdown)
  - Logging + OpenTelemetry setup
  - Router mounting
  - CORS and per-address request rate limiting
  - Uniform ``{"success": false, "error": ...}`` error envelopes
  - Health endpoint
"""

from __future__ import annotations

import logging
import math
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from chatr.configs.settings import Settings, settings as default_settings
from chatr.core.services import ChatServices
from chatr.exceptions import BackingStoreError, ChatError, RateLimitExceeded
from chatr.logger import setup_logging
from chatr.observability import (
    configure_opentelemetry,
    global_metrics,
    shutdown_opentelemetry,
)
from chatr.server.deps import client_address
from chatr.server.routes.agents import router as agents_router
from chatr.server.routes.messages import router as messages_router
from chatr.server.routes.stream import router as stream_router

logger = logging.getLogger("chatr.server")

# Not counted against the per-address request bucket
UNLIMITED_PATHS = frozenset({"/health"})


def error_response(status_code: int, error: str, retry_after: Optional[float] = None) -> JSONResponse:
    headers = None
    if retry_after is not None:
        headers = {"Retry-After": str(max(1, math.ceil(retry_after)))}
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": error},
        headers=headers,
    )


# ── Lifespan ─────────────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    services: ChatServices = app.state.services
    cfg = services.settings

    # ---------- STARTUP ----------
    setup_logging(level=cfg.LOG_LEVEL)
    configure_opentelemetry(
        service_name="chatr",
        otlp_trace_endpoint=cfg.OTLP_TRACE_ENDPOINT or None,
        otlp_metric_endpoint=cfg.OTLP_METRIC_ENDPOINT or None,
        console_traces=cfg.OTEL_CONSOLE_TRACES,
    )
    await services.start()

    logger.info("chatr listening on %s:%d", cfg.HOST, cfg.PORT)

    yield

    # ---------- SHUTDOWN ----------
    await services.stop()
    shutdown_opentelemetry()


# ── Error handlers ───────────────────────────────────────────────────────────

async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
    if isinstance(exc, BackingStoreError):
        logger.error(
            "Backing store failure on %s %s", request.method, request.url.path, exc_info=exc
        )
        return error_response(exc.status_code, "Internal error")
    if isinstance(exc, RateLimitExceeded):
        global_metrics.increment_counter("chatr.rate_limit.denied", tags={"bucket": exc.bucket})
        return error_response(exc.status_code, exc.message, retry_after=exc.retry_after)
    return error_response(exc.status_code, exc.message)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        detail = first.get("msg", "Invalid request")
        message = f"{location}: {detail}" if location else detail
    else:
        message = "Invalid request"
    return error_response(400, message)


# ── App factory ──────────────────────────────────────────────────────────────

def create_app(
    settings: Optional[Settings] = None,
    services: Optional[ChatServices] = None,
) -> FastAPI:
    """Build and return the FastAPI application."""
    settings = settings or default_settings
    if services is None:
        services = ChatServices.build(settings)

    app = FastAPI(
        title="chatr",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.services = services

    @app.middleware("http")
    async def request_rate_limit(request: Request, call_next):
        if request.url.path in UNLIMITED_PATHS or request.method == "OPTIONS":
            return await call_next(request)
        try:
            services.limiter.check("request", client_address(request), services.policy.request)
        except RateLimitExceeded as exc:
            global_metrics.increment_counter("chatr.rate_limit.denied", tags={"bucket": exc.bucket})
            return error_response(exc.status_code, exc.message, retry_after=exc.retry_after)
        return await call_next(request)

    # Outermost layer; wraps the request limiter
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ChatError, chat_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    # Mount routers
    app.include_router(agents_router)
    app.include_router(messages_router)
    app.include_router(stream_router)

    # Health check
    @app.get("/health", tags=["infra"])
    async def health():
        return {
            "success": True,
            "status": "ok",
            "connections": services.hub.connection_count,
        }

    # Instrument with OpenTelemetry
    FastAPIInstrumentor.instrument_app(app)

    return app


# ── Module-level app (for `uvicorn chatr.server.app:app`) ────────────────────

app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=default_settings.HOST, port=default_settings.PORT)
