"""
FastAPI Application

Entry point for the Stripe-Wix contact sync service. Wires the webhook and
health routers, per-request correlation IDs, and exception handlers that keep
every error body in the ``{"error": ...}`` shape Stripe and operators see.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from contact_sync.config import settings
from contact_sync.routes import health, webhook
from contact_sync.utils.exceptions import MiddlewareException
from contact_sync.utils.logging_config import (
    clear_request_context,
    get_logger,
    set_correlation_id,
    setup_logging,
)

setup_logging(log_level=settings.log_level)
logger = get_logger(__name__)

HTTP_ERROR_MESSAGES = {
    404: "Not found",
    405: "Method not allowed",
}


def log_matching_configuration() -> None:
    """Report which product matching strategies can ever fire"""
    strategies = {
        "metadata_label_rules": len(settings.metadata_label_rules),
        "target_product_ids": len(settings.target_product_ids),
        "target_price_ids": len(settings.target_price_ids),
        "line_item_lookup": settings.line_item_lookup_enabled and settings.has_target_ids,
    }
    logger.info(
        "Tracked product matching configured",
        extra={"target_label": settings.target_label, **strategies},
    )
    if not settings.metadata_label_rules and not settings.has_target_ids:
        logger.warning("No label rules or target IDs configured; every purchase will be skipped")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        f"Starting {settings.app_name} v{settings.app_version}",
        extra={
            "environment": settings.environment,
            "wix_api_base_url": settings.wix_api_base_url,
            "processed_session_tracking": settings.processed_session_tracking,
        },
    )
    log_matching_configuration()
    yield
    logger.info(f"{settings.app_name} stopped")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Labels Wix contacts for Stripe purchases of a tracked product",
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next):
    """
    Start each request with a fresh logging context.

    The caller's X-Correlation-ID is reused when present and echoed back;
    Stripe event and session IDs bound later in the pipeline never leak
    into the next request.
    """
    clear_request_context()
    correlation_id = set_correlation_id(request.headers.get("X-Correlation-ID"))
    started = time.perf_counter()

    response = await call_next(request)

    response.headers["X-Correlation-ID"] = correlation_id
    logger.info(
        "Request completed",
        extra={
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": round((time.perf_counter() - started) * 1000, 1),
        },
    )
    return response


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Routing errors (unknown path, wrong verb) use the service's error shape"""
    message = HTTP_ERROR_MESSAGES.get(exc.status_code, str(exc.detail))
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": message},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(MiddlewareException)
async def middleware_exception_handler(request: Request, exc: MiddlewareException):
    logger.error(
        f"Unhandled {exc.error_code}: {exc.message}",
        extra={"error": exc.to_dict(), "path": request.url.path},
    )
    return JSONResponse(
        status_code=500,
        content={"error": exc.message, "error_code": exc.error_code},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error(
        f"Unexpected exception: {exc}",
        exc_info=exc,
        extra={"type": type(exc).__name__, "path": request.url.path},
    )
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error"},
    )


app.include_router(webhook.router)
app.include_router(health.router)


@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "webhook": "/webhook/stripe",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "contact_sync.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_level=settings.log_level.lower(),
    )
