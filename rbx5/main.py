"""
RBX5 Storefront API - FastAPI application serving the /api/* routes the
purchase page calls.
"""

import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from rbx5.api.dependencies import close_roblox_gateway
from rbx5.api.routes import router
from rbx5.config import settings
from rbx5.db.session import close_engine, create_tables
from rbx5.models.api import ErrorResponse
from rbx5.observability import get_logger, metrics, setup_logging
from rbx5.observability.logging import log_context

setup_logging()
logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create tables on startup; release the Roblox client and the engine on shutdown."""
    logger.info(
        "rbx5_api_starting",
        version=settings.api_version,
        create_tables=settings.database_create_tables,
        metrics_enabled=settings.metrics_enabled,
    )
    if settings.database_create_tables:
        await create_tables()
        logger.info("database_tables_ready")

    yield

    await close_roblox_gateway()
    await close_engine()
    logger.info("rbx5_api_stopped")


app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    description=settings.api_description,
    lifespan=lifespan,
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Answer malformed requests with the same body shape as every other failure."""
    problems = [
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg')}"
        for error in exc.errors()
    ]
    logger.warning("request_rejected", path=request.url.path, problems=problems)
    return JSONResponse(
        status_code=422, content=ErrorResponse(message="; ".join(problems)).to_wire()
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "PUT", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=[REQUEST_ID_HEADER],
)


def _route_label(request: Request) -> str:
    # Route template; unmatched paths share one series
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


@app.middleware("http")
async def request_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Tag the request with an id, time it and record it."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
    method = request.method
    in_progress = metrics.http_requests_in_progress.labels(method=method)
    in_progress.inc()
    started = time.perf_counter()
    status_code = 500

    try:
        with log_context(request_id=request_id):
            response = await call_next(request)
        status_code = response.status_code
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
    except Exception as e:
        metrics.record_error(type(e).__name__, "http_request")
        logger.exception("request_failed", method=method, path=request.url.path, request_id=request_id)
        raise
    finally:
        duration = time.perf_counter() - started
        in_progress.dec()
        metrics.record_http_request(_route_label(request), method, status_code, duration)
        logger.info(
            "request_handled",
            method=method,
            path=request.url.path,
            status_code=status_code,
            duration_ms=round(duration * 1000, 1),
            request_id=request_id,
        )


app.include_router(router)


@app.get("/metrics", include_in_schema=False)
async def metrics_endpoint() -> Response:
    """Prometheus scrape target; 404 when metrics are switched off."""
    if not settings.metrics_enabled:
        return Response("metrics disabled\n", status_code=404, media_type="text/plain")
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "rbx5.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )
