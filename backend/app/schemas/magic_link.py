"""Magic link API request/response schemas.

Request models reject unexpected fields. Response models serialize with
camelCase aliases (expiresIn, sessionToken, isNewUser) for the mobile
and web clients.

Email syntax is checked by the service layer (normalize_email) so that
malformed addresses get one consistent VALIDATION_ERROR message.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.models.magic_link import MagicLinkPurpose, MagicLinkState

_MAX_EMAIL_INPUT = 320
_MAX_TOKEN_INPUT = 256


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Requests
# =============================================================================


class SendMagicLinkRequest(BaseModel):
    """Request body for POST /auth/magic-link/send."""

    model_config = ConfigDict(extra="forbid")

    email: str = Field(min_length=1, max_length=_MAX_EMAIL_INPUT)
    purpose: MagicLinkPurpose


class VerifyMagicLinkRequest(BaseModel):
    """Request body for POST /auth/magic-link/verify."""

    model_config = ConfigDict(extra="forbid")

    token: str = Field(min_length=1, max_length=_MAX_TOKEN_INPUT)
    email: str = Field(min_length=1, max_length=_MAX_EMAIL_INPUT)


class DevResetRequest(BaseModel):
    """Request body for POST /auth/magic-link/dev-reset."""

    model_config = ConfigDict(extra="forbid")

    email: str = Field(min_length=1, max_length=_MAX_EMAIL_INPUT)
    purpose: MagicLinkPurpose


# =============================================================================
# Responses
# =============================================================================


class SendMagicLinkResponse(_CamelModel):
    """Send result. Never contains the token."""

    message: str
    expires_in: int
    delivery_status: str | None = None
    warning: str | None = None


class UserResponse(_CamelModel):
    """Public user projection."""

    id: uuid.UUID
    email: str
    first_name: str
    last_name: str
    user_type: str
    is_verified: bool


class VerifyMagicLinkResponse(_CamelModel):
    """Verify result with the minted session credential."""

    user: UserResponse
    session_token: str
    is_new_user: bool
    expires_in: int


class HealthChecks(_CamelModel):
    store: str
    delivery: str


class HealthResponse(_CamelModel):
    status: str
    checks: HealthChecks


class TokenStatusResponse(_CamelModel):
    """Development-only token inspection. Never contains the token."""

    state: MagicLinkState
    purpose: MagicLinkPurpose
    email: str
    created_at: datetime
    expires_at: datetime
    used_at: datetime | None = None
    remaining_seconds: int


class CleanupResponse(_CamelModel):
    deleted: int
    cutoff: datetime


class DevResetResponse(_CamelModel):
    email: str
    purpose: MagicLinkPurpose
    deleted_tokens: int
    deleted_user: bool
    created_user: bool
    reactivated_user: bool
