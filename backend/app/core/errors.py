"""API error classes.

HTTP status codes and machine-readable error codes for the magic link
service.

WHY CUSTOM ERROR CLASSES:
- Consistent error response format across all endpoints
- Easy to map to HTTP status codes in exception handlers
- Type-safe error handling in services/repositories
"""


class APIError(Exception):
    """Base class for API errors.

    All API errors have a code, message, and HTTP status.
    Subclasses set default status_code.

    Attributes:
        code: Machine-readable error code (e.g., "NOT_FOUND").
        message: Human-readable error message.
        status_code: HTTP status code to return.
        details: Optional list of additional error details.
        headers: Optional extra response headers (e.g., Retry-After).
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: list[dict] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        self.headers = headers
        super().__init__(message)


class ValidationError(APIError):
    """Field validation failed (400).

    Always safe to report verbatim: malformed email, unknown purpose, etc.
    """

    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            status_code=400,
            details=details,
        )


class UnauthorizedError(APIError):
    """Authentication required (401).

    Use when no valid session credential is provided.
    """

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(
            code="UNAUTHORIZED",
            message=message,
            status_code=401,
        )


class ForbiddenError(APIError):
    """Not allowed to access resource (403).

    Use when the identity is known but not allowed (e.g., deactivated account).
    """

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(
            code="FORBIDDEN",
            message=message,
            status_code=403,
        )


class NotFoundError(APIError):
    """Resource not found (404)."""

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(
            code="NOT_FOUND",
            message=message,
            status_code=404,
        )


# =============================================================================
# Purpose preconditions (send path)
# =============================================================================


class PreconditionFailedError(APIError):
    """The declared purpose does not fit the account state of the email.

    Reported verbatim: the product discloses account existence on the
    send path in exchange for clearer user-facing errors.
    """


class AccountAlreadyExistsError(PreconditionFailedError):
    """REGISTRATION requested for an email that already has an account (409)."""

    def __init__(self) -> None:
        super().__init__(
            code="ACCOUNT_ALREADY_EXISTS",
            message=(
                "An account already exists with this email address. "
                "Please use the login option instead."
            ),
            status_code=409,
        )


class AccountNotFoundError(PreconditionFailedError):
    """LOGIN requested for an email with no active account (404)."""

    def __init__(self) -> None:
        super().__init__(
            code="ACCOUNT_NOT_FOUND",
            message="No account found with this email address. Please register first.",
            status_code=404,
        )


# =============================================================================
# Rate limiting
# =============================================================================


class RateLimitedError(APIError):
    """Too many attempts for this identity inside the current window (429).

    Args:
        retry_after: Seconds until the window resets (always >= 1).
    """

    def __init__(self, retry_after: int) -> None:
        self.retry_after = retry_after
        super().__init__(
            code="RATE_LIMITED",
            message=f"Too many requests. Please try again in {retry_after} seconds.",
            status_code=429,
            details=[{"retry_after": retry_after}],
            headers={"Retry-After": str(retry_after)},
        )


# =============================================================================
# Redemption (verify path)
# =============================================================================

GENERIC_MAGIC_LINK_CODE = "MAGIC_LINK_INVALID"
GENERIC_MAGIC_LINK_MESSAGE = "Invalid or expired magic link"


class TokenRedemptionError(APIError):
    """A token could not be claimed.

    The specific subclass is kept for logs and telemetry. The verify
    endpoint collapses it to one generic response unless verbose
    verify errors are enabled.

    Attributes:
        reason: Short telemetry label ("invalid", "expired", "already_used").
    """

    reason = "invalid"

    def __init__(self, code: str, message: str) -> None:
        super().__init__(code=code, message=message, status_code=400)

    def to_generic(self) -> APIError:
        """Collapse into the generic response for the wire."""
        return APIError(
            code=GENERIC_MAGIC_LINK_CODE,
            message=GENERIC_MAGIC_LINK_MESSAGE,
            status_code=400,
        )


class TokenInvalidError(TokenRedemptionError):
    """Token never issued, or issued for a different email."""

    reason = "invalid"

    def __init__(self) -> None:
        super().__init__(code="TOKEN_INVALID", message="Invalid magic link")


class TokenExpiredError(TokenRedemptionError):
    """Token validity window has passed."""

    reason = "expired"

    def __init__(self) -> None:
        super().__init__(code="TOKEN_EXPIRED", message="Magic link has expired")


class TokenAlreadyUsedError(TokenRedemptionError):
    """Token was already redeemed."""

    reason = "already_used"

    def __init__(self) -> None:
        super().__init__(
            code="TOKEN_ALREADY_USED",
            message="This magic link has already been used",
        )


class InternalError(APIError):
    """Unexpected server error (500).

    Use for store failures and unhandled exceptions. Never expose stack
    traces or store details to clients.
    """

    def __init__(self, message: str = "An unexpected error occurred") -> None:
        super().__init__(
            code="INTERNAL_ERROR",
            message=message,
            status_code=500,
        )
