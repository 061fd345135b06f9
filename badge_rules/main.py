import hmac
import logging
from typing import Any

from fastapi import FastAPI, HTTPException, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from badge_rules.api.routes.canvas import router as canvas_router
from badge_rules.api.routes.fields import router as fields_router
from badge_rules.api.routes.health import router as health_router
from badge_rules.api.routes.rules import router as rules_router
from badge_rules.core.config import AppEnvironment, settings
from badge_rules.core.errors import BadgeRuleError, get_status_code
from badge_rules.core.observability import (
    ObservabilityMiddleware,
    configure_structured_logging,
    get_request_id,
    metrics_endpoint,
)

configure_structured_logging(
    settings.app_log_level, structured=settings.observability_structured_logs
)

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


def _sanitize_error_details(details: dict[str, Any]) -> dict[str, Any]:
    """
    Drop rejected literal values from error details in production.

    Rule values can carry user-entered data; paths, codes and issue lists are
    kept since the editor needs them to point at the offending node.
    """
    if settings.app_env != AppEnvironment.PROD:
        return details
    return {key: value for key, value in details.items() if key != "value"}


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Sets up:
    - Structured logging with correlation IDs
    - CORS middleware
    - Observability middleware (metrics, request tracking)
    - Exception handlers for domain errors
    - API routers
    - Metrics endpoint for Prometheus scraping
    """
    app = FastAPI(
        title="Badge Rules API",
        description="Badge grant rule authoring: rule tree validation and canvas conversion",
        version="0.1.0",
    )

    # ============================================================================
    # Observability Middleware
    # ============================================================================

    if settings.observability_enabled:
        app.add_middleware(
            ObservabilityMiddleware,
            request_id_header=settings.observability_request_id_header,
        )

    # ============================================================================
    # CORS Configuration
    # ============================================================================

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ============================================================================
    # Exception Handlers
    # ============================================================================

    @app.exception_handler(BadgeRuleError)
    async def badge_rule_error_handler(request: Request, exc: BadgeRuleError) -> JSONResponse:
        """
        Map domain errors to HTTP status codes with a structured body.

        Returns:
            JSON response with error class name, message and details
        """
        status_code = get_status_code(exc)
        context = {
            "details": exc.details,
            "path": request.url.path,
            "request_id": get_request_id(),
        }

        if status_code >= 500:
            logger.error(f"{exc.__class__.__name__}: {exc.message}", extra=context)
        else:
            logger.warning(f"{exc.__class__.__name__}: {exc.message}", extra=context)

        return JSONResponse(
            status_code=status_code,
            content={
                "error": exc.__class__.__name__,
                "message": exc.message,
                "details": _sanitize_error_details(exc.details),
            },
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        """Consistent error body for FastAPI HTTP exceptions."""
        if exc.status_code == 403:
            logger.warning(
                f"Access denied: {exc.detail}",
                extra={
                    "security_event": True,
                    "path": request.url.path,
                    "method": request.method,
                    "request_id": get_request_id(),
                },
            )
        elif exc.status_code >= 500:
            logger.error(
                f"HTTP {exc.status_code}: {exc.detail}",
                extra={"path": request.url.path, "request_id": get_request_id()},
            )

        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": "HTTPException",
                "message": exc.detail,
                "details": {},
            },
            headers=exc.headers,
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """
        Catch-all handler for unexpected exceptions.

        Logs the full exception and returns a generic 500 error to the client
        without exposing internal implementation details.
        """
        logger.error(
            f"Unhandled exception: {exc}",
            exc_info=True,
            extra={"path": request.url.path, "request_id": get_request_id()},
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "InternalServerError",
                "message": "An unexpected error occurred",
                "details": {},
            },
        )

    # ============================================================================
    # Router Registration
    # ============================================================================

    app.include_router(health_router, prefix=API_PREFIX)
    app.include_router(fields_router, prefix=API_PREFIX)
    app.include_router(rules_router, prefix=API_PREFIX)
    app.include_router(canvas_router, prefix=API_PREFIX)

    # ============================================================================
    # Metrics Endpoint (Prometheus) - Token Protected
    # ============================================================================

    async def protected_metrics(request: Request) -> Response:
        """
        Protected Prometheus metrics endpoint.

        Always requires the X-Metrics-Token header to match METRICS_TOKEN.
        """
        expected_token = settings.metrics_token
        if not expected_token:
            logger.error(
                "Metrics endpoint accessed but METRICS_TOKEN not configured",
                extra={"security_event": True, "event_type": "METRICS_NOT_CONFIGURED"},
            )
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Metrics token not configured. Set METRICS_TOKEN environment variable.",
            )

        # Constant-time comparison
        metrics_token = request.headers.get("X-Metrics-Token")
        if not hmac.compare_digest(metrics_token or "", expected_token):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Invalid metrics token",
            )

        return metrics_endpoint()

    if settings.observability_enabled:
        app.add_route("/metrics", protected_metrics)

    return app


app = create_app()
