"""
Observability module for the Badge Rules API.

Provides:
- Structured logging with JSON format and correlation IDs
- Request correlation ID (request_id) generation and propagation
- Prometheus metrics collection (HTTP, rule validation, canvas conversion)
- Request tracking middleware for latency and status codes

Usage:
    from badge_rules.core.observability import (
        get_request_id,
        set_correlation_id,
        metrics,
    )
"""

import json
import logging
import time
import uuid
from collections.abc import Callable
from contextvars import ContextVar
from datetime import UTC, datetime

from fastapi import Request, Response
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.routing import Match
from starlette.types import ASGIApp

# ============================================================================
# Context Variables for Request Tracking
# ============================================================================

# Correlation ID - links all logs for a single request
_request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")


def generate_request_id() -> str:
    """Generate a unique request ID for correlation."""
    return str(uuid.uuid4())


def get_request_id() -> str:
    """Get the current request ID from context."""
    return _request_id_ctx.get()


def set_correlation_id(request_id: str) -> None:
    """Set the correlation ID for the current request context."""
    _request_id_ctx.set(request_id)


# ============================================================================
# Structured Logging Configuration
# ============================================================================

_RESERVED_RECORD_KEYS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "getMessage",
        "exc_info",
        "exc_text",
        "stack_info",
    }
)


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs as JSON with standard fields:
    - timestamp: ISO 8601 format
    - level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - logger: Logger name
    - message: Log message
    - request_id: Correlation ID (if available)
    - extra: Any additional context from logging.extra
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = get_request_id()
        if request_id:
            log_entry["request_id"] = request_id

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
            }

        log_entry["file"] = record.pathname
        log_entry["line"] = record.lineno
        log_entry["function"] = record.funcName

        # These come from logger.info("msg", extra={"key": "value"})
        extra_keys = {
            k: v for k, v in record.__dict__.items() if k not in _RESERVED_RECORD_KEYS
        }
        if extra_keys:
            log_entry["extra"] = extra_keys

        return json.dumps(log_entry, default=str)


def configure_structured_logging(level: str = "INFO", structured: bool = True) -> None:
    """
    Configure root logger.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        structured: Emit JSON lines; plain text otherwise (local development)
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler()
    if structured:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )

    root_logger.addHandler(handler)


# ============================================================================
# Prometheus Metrics
# ============================================================================

# Use a custom registry to avoid conflicts with other Prometheus metrics
_registry = CollectorRegistry()


class Metrics:
    """
    Centralized metrics collection for the application.

    Metrics groups:
    - HTTP: Request rate, errors, latency
    - Rules: Validation outcomes
    - Canvas: Conversion outcomes and structural issue counts
    """

    def __init__(self, registry: CollectorRegistry) -> None:
        self.registry = registry

        # -------------------------------------------------------------------
        # HTTP Metrics
        # -------------------------------------------------------------------

        self.http_requests_total = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "route", "status_code"],
            registry=self.registry,
        )

        self.http_request_duration_seconds = Histogram(
            "http_request_duration_seconds",
            "HTTP request latency in seconds",
            ["method", "route"],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
            registry=self.registry,
        )

        self.http_requests_in_progress = Gauge(
            "http_requests_in_progress",
            "HTTP requests currently in progress",
            ["method", "route"],
            registry=self.registry,
        )

        self.http_errors_total = Counter(
            "http_errors_total",
            "Total HTTP errors",
            ["error_type", "method", "route"],
            registry=self.registry,
        )

        # -------------------------------------------------------------------
        # Rule Metrics
        # -------------------------------------------------------------------

        # result is "valid" or the failing validation code
        self.rule_validations_total = Counter(
            "rule_validations_total",
            "Total rule tree validations",
            ["result"],
            registry=self.registry,
        )

        self.rule_conditions_count = Histogram(
            "rule_conditions_count",
            "Number of conditions in validated rule trees",
            buckets=(1, 2, 5, 10, 25, 50, 100, 250, 1000),
            registry=self.registry,
        )

        # -------------------------------------------------------------------
        # Canvas Metrics
        # -------------------------------------------------------------------

        self.canvas_conversions_total = Counter(
            "canvas_conversions_total",
            "Total canvas graph to rule tree conversions",
            ["result"],
            registry=self.registry,
        )

        self.graph_issues_total = Counter(
            "graph_issues_total",
            "Structural issues found in canvas graphs",
            ["code"],
            registry=self.registry,
        )


# Global metrics instance
metrics = Metrics(_registry)


# ============================================================================
# Middleware
# ============================================================================

# Route label for requests no route matches (404s).
UNMATCHED_ROUTE = "unmatched"


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """
    Request tracking: correlation id, latency, status counts, access log.

    The correlation id is read from the incoming request header when the
    client sent one, otherwise generated, and is echoed on the response.
    """

    def __init__(
        self,
        app: ASGIApp,
        metrics_instance: Metrics | None = None,
        skip_paths: list[str] | None = None,
        request_id_header: str = "X-Request-ID",
    ) -> None:
        """
        Args:
            app: ASGI application
            metrics_instance: Metrics instance (uses global if None)
            skip_paths: Path prefixes left out of the access log
            request_id_header: Header carrying the correlation id
        """
        super().__init__(app)
        self.metrics = metrics_instance or metrics
        self.skip_paths = tuple(skip_paths or ("/api/v1/health", "/metrics"))
        self.request_id_header = request_id_header
        self.logger = logging.getLogger("badge_rules.request")

    def _observe(self, method: str, route: str, status_code: int, elapsed: float) -> None:
        self.metrics.http_requests_total.labels(
            method=method, route=route, status_code=status_code
        ).inc()
        self.metrics.http_request_duration_seconds.labels(method=method, route=route).observe(
            elapsed
        )

    @staticmethod
    def _route_template(request: Request) -> str | None:
        """Path template of the route serving `request`, None when nothing matches."""
        route = request.scope.get("route")
        if route is not None:
            return getattr(route, "path", None)
        router = getattr(request.scope.get("app"), "router", None)
        for candidate in getattr(router, "routes", ()):
            match, _ = candidate.matches(request.scope)
            if match is Match.FULL:
                return getattr(candidate, "path", None)
        return None

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(self.request_id_header) or generate_request_id()
        set_correlation_id(request_id)

        method = request.method
        # Label by path template so every rule id shares one series.
        route = self._route_template(request) or UNMATCHED_ROUTE
        in_progress = self.metrics.http_requests_in_progress.labels(method=method, route=route)
        in_progress.inc()
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            elapsed = time.perf_counter() - started
            error_type = type(e).__name__
            self._observe(method, route, 500, elapsed)
            self.metrics.http_errors_total.labels(
                error_type=error_type, method=method, route=route
            ).inc()
            self.logger.error(
                f"{method} {route} failed with {error_type}",
                extra={
                    "method": method,
                    "route": route,
                    "status_code": 500,
                    "latency_ms": round(elapsed * 1000, 2),
                    "error_type": error_type,
                },
                exc_info=True,
            )
            raise
        finally:
            in_progress.dec()

        elapsed = time.perf_counter() - started
        # The router records the matched route on the shared scope.
        matched = getattr(request.scope.get("route"), "path", None) or route
        self._observe(method, matched, response.status_code, elapsed)
        response.headers[self.request_id_header] = request_id

        shown = request.url.path if matched == UNMATCHED_ROUTE else matched
        if not shown.startswith(self.skip_paths):
            self.logger.info(
                f"{method} {shown} {response.status_code}",
                extra={
                    "method": method,
                    "route": shown,
                    "status_code": response.status_code,
                    "latency_ms": round(elapsed * 1000, 2),
                },
            )
        return response


# ============================================================================
# Metrics Endpoint
# ============================================================================


def metrics_endpoint() -> Response:
    """Render the application registry in Prometheus text format."""
    return Response(
        content=generate_latest(_registry),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
