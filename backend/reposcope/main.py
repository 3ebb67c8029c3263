from contextlib import asynccontextmanager
from urllib.parse import urlparse
import logging
import socket
import time

from fastapi import FastAPI
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.requests import Request

from reposcope.api.v1 import api_router
from reposcope.config import settings
from reposcope.db.session import engine
from reposcope.deps import get_task_runner
from reposcope.errors import install_exception_handlers
from reposcope.middleware.rate_limit import RateLimitMiddleware
from reposcope.observability import (
    begin_trace,
    configure_logging,
    http_request_duration_seconds,
    metrics_response,
    trace_span,
)

logger = logging.getLogger("reposcope.main")


@asynccontextmanager
async def lifespan(_app: FastAPI):
    configure_logging(settings.log_level)
    logger.info("app.startup env=%s", settings.env)
    yield
    if get_task_runner.cache_info().currsize:
        get_task_runner().shutdown(wait=False)
    logger.info("app.shutdown")


app = FastAPI(title=settings.app_name, lifespan=lifespan)
app.add_middleware(RateLimitMiddleware)
app.include_router(api_router, prefix="/api/v1")
install_exception_handlers(app)


@app.middleware("http")
async def observability_middleware(request: Request, call_next):
    start = time.perf_counter()
    trace_id = begin_trace(request)
    path = request.url.path
    method = request.method.upper()

    with trace_span("http.request", method=method, path=path):
        response = await call_next(request)

    duration = time.perf_counter() - start
    route = request.scope.get("route")
    path_label = getattr(route, "path", path)
    http_request_duration_seconds.labels(method=method, path=path_label, status=str(response.status_code)).observe(duration)
    response.headers["X-Trace-Id"] = trace_id
    return response


def _tcp_check(url: str, default_port: int) -> bool:
    parsed = urlparse(url)
    host = parsed.hostname
    port = parsed.port or default_port
    if not host:
        return False
    try:
        with socket.create_connection((host, port), timeout=2):
            return True
    except OSError:
        return False


def _database_check() -> bool:
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError:
        return False


@app.get("/health")
def health() -> dict:
    return {"status": "ok", "service": "reposcope", "env": settings.env}


@app.get("/health/deps")
def health_deps() -> dict:
    database_ok = _database_check()
    redis_ok = _tcp_check(settings.redis_url, 6379) if settings.redis_url else None

    return {
        "database": database_ok,
        "redis": redis_ok,
        "all_healthy": database_ok and redis_ok is not False,
    }


@app.get("/metrics")
def metrics() -> object:
    return metrics_response()
