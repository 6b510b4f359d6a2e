"""Logging, metrics, tracing and error reporting.

Everything is wired up once by ``setup_observability(app)``. Sentry and
OpenTelemetry stay off until ``SENTRY_DSN`` / ``OTLP_ENDPOINT`` are set;
structured logging and Prometheus metrics are always on.
"""

import logging
import time
import uuid
from contextvars import ContextVar

import sentry_sdk
import structlog
from fastapi import FastAPI, Request, Response
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from linktrack.core.config import get_settings

settings = get_settings()
logger = structlog.get_logger()

REQUEST_ID_HEADER = "X-Request-ID"

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)

# HTTP metrics, labelled by route template rather than raw path

HTTP_REQUESTS = Counter(
    "http_requests_total",
    "HTTP requests by route and status",
    ["method", "route", "status_code"],
)

HTTP_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "route"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

# Domain metrics

REDIRECTS = Counter(
    "redirects_total",
    "Short-code redirects by response status",
    ["status_code"],
)

LINK_OPERATIONS = Counter(
    "link_operations_total",
    "Links created and deleted",
    ["operation"],
)

CLICKS_RECORDED = Counter(
    "clicks_recorded_total",
    "Clicks stored during redirects",
)

CLICK_RECORD_FAILURES = Counter(
    "click_record_failures_total",
    "Redirects whose click could not be stored",
    ["reason"],
)

LINK_CACHE_LOOKUPS = Counter(
    "link_cache_lookups_total",
    "Redis link cache lookups by result",
    ["result"],  # hit, miss, error
)


def get_request_id() -> str | None:
    """Request ID of the request being handled, if any."""
    return request_id_ctx.get()


def route_template(request: Request) -> str:
    """Path template of the route that served the request."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Per-request context: request ID, access log line and HTTP metrics.

    The request ID is taken from the ``X-Request-ID`` header when the caller
    sends one, otherwise generated. It is bound to the structlog context so
    every log line of the request carries it, and echoed on the response.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        token = request_id_ctx.set(request_id)
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            elapsed = time.perf_counter() - started
            route = route_template(request)
            HTTP_REQUESTS.labels(request.method, route, str(status_code)).inc()
            HTTP_LATENCY.labels(request.method, route).observe(elapsed)
            logger.info(
                "Request handled",
                status_code=status_code,
                duration_ms=round(elapsed * 1000, 2),
                client=request.client.host if request.client else None,
            )
            request_id_ctx.reset(token)


def configure_logging() -> None:
    """Send structlog and stdlib records (uvicorn, sqlalchemy) through one chain.

    Output is one JSON object per line, or coloured console output when
    ``DEBUG`` is on.
    """
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    if settings.debug:
        renderers = [structlog.dev.ConsoleRenderer()]
    else:
        renderers = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                *renderers,
            ],
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(logging.DEBUG if settings.debug else settings.log_level.upper())


def setup_tracing(app: FastAPI) -> None:
    """Export request spans over OTLP/gRPC."""
    if not settings.otlp_endpoint:
        logger.info("Tracing disabled", reason="no OTLP endpoint")
        return

    resource = Resource.create({
        SERVICE_NAME: "linktrack",
        SERVICE_VERSION: settings.app_version,
        "deployment.environment": settings.environment,
    })
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(
        BatchSpanProcessor(
            OTLPSpanExporter(
                endpoint=settings.otlp_endpoint,
                insecure=not settings.otlp_endpoint.startswith("https://"),
            )
        )
    )
    trace.set_tracer_provider(provider)

    # Probes and scrapes would drown the interesting spans
    FastAPIInstrumentor.instrument_app(app, excluded_urls="health,metrics")
    logger.info("Tracing enabled", otlp_endpoint=settings.otlp_endpoint)


def setup_error_tracking() -> None:
    """Initialise Sentry."""
    if not settings.sentry_dsn:
        logger.info("Error tracking disabled", reason="no Sentry DSN")
        return

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        release=f"linktrack@{settings.app_version}",
        traces_sample_rate=settings.sentry_traces_sample_rate,
        integrations=[
            StarletteIntegration(transaction_style="endpoint"),
            FastApiIntegration(transaction_style="endpoint"),
        ],
        # Visitor IPs belong in click records only
        send_default_pii=False,
    )
    logger.info("Error tracking enabled", environment=settings.environment)


def report_exception(exc: BaseException, **context: object) -> None:
    """Send a handled exception to Sentry. No-op while Sentry is off."""
    sentry_sdk.capture_exception(
        exc,
        extras={"request_id": get_request_id(), **context},
    )


async def metrics() -> Response:
    """Prometheus scrape endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


def setup_observability(app: FastAPI) -> None:
    """Configure logging, error tracking and tracing, and mount ``/metrics``."""
    configure_logging()
    setup_error_tracking()
    setup_tracing(app)
    app.add_api_route("/metrics", metrics, methods=["GET"], include_in_schema=False)


def record_redirect(status_code: int) -> None:
    REDIRECTS.labels(status_code=str(status_code)).inc()


def record_link_operation(operation: str) -> None:
    LINK_OPERATIONS.labels(operation=operation).inc()


def record_click_recorded() -> None:
    CLICKS_RECORDED.inc()


def record_click_failure(reason: str) -> None:
    CLICK_RECORD_FAILURES.labels(reason=reason).inc()


def record_cache_lookup(result: str) -> None:
    LINK_CACHE_LOOKUPS.labels(result=result).inc()
