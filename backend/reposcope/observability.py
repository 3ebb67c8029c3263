from contextlib import contextmanager
from contextvars import ContextVar
import logging
import sys
import time
from uuid import uuid4

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request
from starlette.responses import Response


logger = logging.getLogger("reposcope.observability")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

trace_id_var: ContextVar[str] = ContextVar("trace_id", default="")

http_request_duration_seconds = Histogram(
    "reposcope_http_request_duration_seconds",
    "Duration of HTTP requests.",
    ["method", "path", "status"],
)
analysis_stage_duration_seconds = Histogram(
    "reposcope_analysis_stage_duration_seconds",
    "Duration of analysis pipeline stages.",
    ["stage", "status"],
)
llm_requests_total = Counter(
    "reposcope_llm_requests_total",
    "AI gateway calls by status/error code.",
    ["status", "error_code"],
)
sync_repositories_total = Counter(
    "reposcope_sync_repositories_total",
    "Repositories processed by user syncs.",
    ["outcome"],
)
persistence_soft_failures_total = Counter(
    "reposcope_persistence_soft_failures_total",
    "Sub-collection writes skipped after a successful AI call.",
    ["collection"],
)


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger("reposcope")
    root.setLevel(level.upper())
    if root.handlers:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)


def record_stage_duration(stage: str, status: str, duration_seconds: float) -> None:
    analysis_stage_duration_seconds.labels(stage=stage, status=status).observe(max(duration_seconds, 0.0))


def record_llm_request(status: str, error_code: str = "none") -> None:
    llm_requests_total.labels(status=(status or "unknown").lower(), error_code=(error_code or "none").lower()).inc()


def record_sync_outcome(outcome: str, count: int = 1) -> None:
    if count > 0:
        sync_repositories_total.labels(outcome=outcome).inc(count)


def record_soft_failure(collection: str) -> None:
    persistence_soft_failures_total.labels(collection=collection).inc()


def metrics_response() -> Response:
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


def current_trace_id() -> str:
    return trace_id_var.get() or ""


def begin_trace(request: Request) -> str:
    incoming = request.headers.get("x-trace-id", "").strip()
    trace_id = incoming or uuid4().hex
    trace_id_var.set(trace_id)
    return trace_id


@contextmanager
def trace_span(name: str, **attributes):
    started = time.perf_counter()
    trace_id = current_trace_id() or uuid4().hex
    logger.info("span.start name=%s trace_id=%s attrs=%s", name, trace_id, attributes)
    try:
        yield
    finally:
        duration = time.perf_counter() - started
        logger.info("span.end name=%s trace_id=%s duration_s=%.6f", name, trace_id, duration)
