"""Pydantic request/response schemas for API endpoints."""

from app.schemas.magic_link import (
    CleanupResponse,
    DevResetRequest,
    DevResetResponse,
    HealthChecks,
    HealthResponse,
    SendMagicLinkRequest,
    SendMagicLinkResponse,
    TokenStatusResponse,
    UserResponse,
    VerifyMagicLinkRequest,
    VerifyMagicLinkResponse,
)

__all__ = [
    # Requests
    "DevResetRequest",
    "SendMagicLinkRequest",
    "VerifyMagicLinkRequest",
    # Responses
    "CleanupResponse",
    "DevResetResponse",
    "HealthChecks",
    "HealthResponse",
    "SendMagicLinkResponse",
    "TokenStatusResponse",
    "UserResponse",
    "VerifyMagicLinkResponse",
]
