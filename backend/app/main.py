"""FastAPI application for FixRx magic link authentication.

Builds the app that serves /api/v1/auth: security headers, CORS for the
web client, the error envelope for every failure, and the slowapi per-IP
ceiling. Liveness is reported by GET /api/v1/auth/magic-link/health, which
checks the token store and delivery configuration.

Run with: uvicorn app.main:app
"""

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from app.api.v1.router import router as v1_router
from app.core.config import settings
from app.core.errors import APIError
from app.core.rate_limiting import limiter, rate_limit_exceeded_handler
from app.core.responses import ErrorDetail, ErrorResponse

logger = structlog.get_logger()

# Every response here is JSON that may carry a session credential or
# reveal account state, so responses are never cached or framed.
_SECURITY_HEADERS: dict[str, str] = {
    "Cache-Control": "no-store",
    "Pragma": "no-cache",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
    # Verify URLs carry the token in the query string
    "Referrer-Policy": "no-referrer",
}

_HSTS = "max-age=31536000; includeSubDomains"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Stamp the auth API's security headers on every response.

    HSTS is only sent in production, where TLS terminates at the proxy.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        response = await call_next(request)
        response.headers.update(_SECURITY_HEADERS)
        if settings.is_production:
            response.headers["Strict-Transport-Security"] = _HSTS
        return response


def _error_response(
    status_code: int,
    code: str,
    message: str,
    *,
    details: list[dict] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error=ErrorDetail(code=code, message=message, details=details)
        ).model_dump(),
        headers=headers,
    )


def api_error_handler(_request: Request, exc: APIError) -> JSONResponse:
    """Render an APIError in the error envelope.

    Headers set on the error, such as Retry-After for RATE_LIMITED, are
    passed through.
    """
    return _error_response(
        exc.status_code,
        exc.code,
        exc.message,
        details=exc.details,
        headers=exc.headers,
    )


def validation_error_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Turn FastAPI body validation failures into 400 VALIDATION_ERROR.

    Only location, message and type are returned. The offending input is
    dropped so a submitted token is never echoed back.
    """
    return _error_response(
        400,
        "VALIDATION_ERROR",
        "Request validation failed",
        details=[
            {"loc": list(e["loc"]), "msg": e["msg"], "type": e["type"]}
            for e in exc.errors()
        ],
    )


def internal_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log an unhandled exception and answer with a bare 500."""
    logger.exception(
        "request.unhandled_exception",
        exc_info=exc,
        path=request.url.path,
        method=request.method,
    )
    return _error_response(500, "INTERNAL_ERROR", "An unexpected error occurred")


def create_app() -> FastAPI:
    """Build the auth API.

    A factory so tests can rebuild the app after patching settings.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title="FixRx Auth API",
        version="1.0.0",
        description="Passwordless magic link authentication",
    )

    # Starlette runs the last-added middleware first; CORS must see
    # preflight requests before anything else.
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Accept", "Authorization"],
    )

    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_exception_handler(Exception, internal_error_handler)

    # slowapi looks the limiter up on app.state
    app.state.limiter = limiter

    app.include_router(v1_router, prefix="/api/v1")
    return app


app = create_app()
