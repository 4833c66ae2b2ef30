"""
TrustSignal — Trust Scoring API

Explainable trust scores for products and companies, built from public
records (recalls, complaints, news, court filings, datasets, policy text).

Start with:
    uvicorn trustsignal.main:app --host 0.0.0.0 --port 8000
"""
import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import structlog

from trustsignal import __version__
from trustsignal.api.admin import admin_router
from trustsignal.api.trust import trust_router
from trustsignal.compute.pipeline import Pipeline, build_pipeline
from trustsignal.log_config import configure_logging

VERSION = __version__

logger = structlog.get_logger()

# Health checks are not worth a log line each
_QUIET_PATHS = frozenset({"/health", "/v1/trust/health"})


def _install_request_hooks(app: FastAPI) -> None:

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex[:8]
        request.state.request_id = request_id
        started = time.perf_counter()

        response = await call_next(request)

        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
        response.headers["X-Request-Id"] = request_id
        response.headers["X-Response-Time"] = f"{elapsed_ms}ms"
        if request.url.path not in _QUIET_PATHS:
            logger.info("request",
                        method=request.method,
                        path=request.url.path,
                        status=response.status_code,
                        duration_ms=elapsed_ms,
                        request_id=request_id)
        return response

    @app.exception_handler(Exception)
    async def unhandled(request: Request, exc: Exception):
        request_id = getattr(request.state, "request_id", "unknown")
        logger.error("unhandled_exception",
                     path=request.url.path,
                     error=str(exc),
                     type=type(exc).__name__,
                     request_id=request_id)
        return JSONResponse(
            status_code=500,
            content={"error": "internal_server_error", "request_id": request_id},
        )


def create_app(pipeline: Optional[Pipeline] = None) -> FastAPI:
    """
    A prebuilt pipeline is used as-is. Otherwise one is built from Settings
    at startup; ConfigError or StoreUnavailable then abort the startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.pipeline = pipeline or build_pipeline()
        logger.info("api_started",
                    version=VERSION,
                    config_version=app.state.pipeline.config.version)
        try:
            yield
        finally:
            await app.state.pipeline.shutdown()
            logger.info("api_stopped")

    app = FastAPI(
        title="TrustSignal",
        description="Trust scores with letter grades, confidence and evidence for products and companies.",
        version=VERSION,
        lifespan=lifespan,
    )
    _install_request_hooks(app)

    @app.get("/health")
    async def health():
        return {"status": "healthy", "version": VERSION}

    app.include_router(trust_router)
    app.include_router(admin_router)
    return app


configure_logging()
app = create_app()
