"""Application configuration loaded from environment variables.

Settings for the database, session signing, magic link issuance, rate
limiting, CORS, and email delivery. Uses pydantic-settings for validation and
.env file support.
"""

import logging
import secrets
from typing import Literal

from limits import parse
from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# Known insecure default password that must not be used in production
# Security: Runtime check in check_production_security() prevents use in production
_INSECURE_DEFAULT_PASSWORD = "fixrx_dev_password"  # nosec B105

# Minimum length for AUTH_SECRET in production (256 bits = 32 bytes)
_MIN_AUTH_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "fixrx"
    database_user: str = "fixrx_user"
    database_password: str = _INSECURE_DEFAULT_PASSWORD
    # Every store call is bounded: connect, per-statement, and pool checkout
    database_connect_timeout_seconds: float = 10.0
    database_command_timeout_seconds: float = 10.0
    database_pool_timeout_seconds: float = 10.0

    # CORS (Security)
    # Production: Set ALLOWED_ORIGINS to specific domain(s)
    allowed_origins: list[str] = ["http://localhost:3000"]

    # Application
    environment: Literal["development", "staging", "production"] = "development"
    log_level: str = "INFO"

    # Session credential minted after a successful redemption
    auth_secret: SecretStr = SecretStr("")
    auth_issuer: str = "fixrx-auth"
    auth_audience: str = "fixrx"
    session_token_ttl_minutes: int = 15

    # Magic links
    magic_link_ttl_minutes: int = 15
    magic_link_retention_hours: int = 24
    magic_link_base_url: str = "http://localhost:3000"
    app_scheme: str = "fixrx"
    # Product choice: send-path errors say whether an account exists.
    # Set false to answer every eligible-looking request identically.
    magic_link_disclose_account_state: bool = True
    # When false, verify failures collapse to one generic code/message.
    magic_link_verbose_verify_errors: bool = False

    # Rate Limiting (Security)
    # Format: "count/period" (e.g., "10/minute", "5/15 minutes")
    rate_limit_magic_link_send: str = "5/15 minutes"
    rate_limit_magic_link_verify: str = "10/5 minutes"
    rate_limit_ip_ceiling: str = "100/15 minutes"
    # memory:// is per-process; use redis://host:6379 when running several workers
    rate_limit_storage_uri: str = "memory://"
    rate_limit_enabled: bool = True  # Disable for testing

    # Email delivery (Resend)
    email_from: str = "noreply@fixrx.com"
    resend_api_key: SecretStr = SecretStr("")
    delivery_timeout_seconds: float = 10.0

    # Client IP resolution behind a reverse proxy
    trust_forwarded_for: bool = False

    # Development-only account reset (never allowed in production)
    dev_account_reset_enabled: bool = False

    @property
    def database_url(self) -> str:
        """Async database URL for SQLAlchemy."""
        return (
            f"postgresql+asyncpg://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def is_production(self) -> bool:
        """True when running with production safeguards."""
        return self.environment == "production"

    @property
    def email_delivery_configured(self) -> bool:
        """True when an email provider key is present."""
        return bool(self.resend_api_key.get_secret_value())

    @model_validator(mode="after")
    def check_production_security(self) -> "Settings":
        """Validate configuration invariants and production security requirements.

        Checks:
        - TTLs and retention window must be positive (all environments)
        - Rate limit strings must parse (all environments)
        - CORS must not use wildcard origin (all environments)
        - Database password must not be the default in production
        - AUTH_SECRET must be set and >= 32 chars in production
        - Dev account reset must be off in production

        Outside production an empty AUTH_SECRET is replaced with a random
        per-process key so sessions can still be minted locally.
        """
        for name in (
            "magic_link_ttl_minutes",
            "magic_link_retention_hours",
            "session_token_ttl_minutes",
        ):
            value = getattr(self, name)
            if value <= 0:
                msg = f"{name.upper()} must be positive. Got: {value}"
                raise ValueError(msg)

        for name in (
            "rate_limit_magic_link_send",
            "rate_limit_magic_link_verify",
            "rate_limit_ip_ceiling",
        ):
            value = getattr(self, name)
            try:
                parse(value)
            except ValueError as exc:
                msg = f"{name.upper()} is not a valid rate limit string: {value!r}"
                raise ValueError(msg) from exc

        if "*" in self.allowed_origins:
            msg = (
                "ALLOWED_ORIGINS must not contain '*' (wildcard). "
                "Use explicit origins instead."
            )
            raise ValueError(msg)

        if self.is_production:
            if self.database_password == _INSECURE_DEFAULT_PASSWORD:
                msg = (
                    "Cannot use default database password in production. "
                    "Set DATABASE_PASSWORD environment variable to a secure value."
                )
                raise ValueError(msg)

            secret_value = self.auth_secret.get_secret_value()
            if not secret_value:
                msg = (
                    "AUTH_SECRET must be set in production. "
                    'Generate with: python -c "import secrets; '
                    'print(secrets.token_hex(32))"'
                )
                raise ValueError(msg)
            if len(secret_value) < _MIN_AUTH_SECRET_LENGTH:
                msg = (
                    f"AUTH_SECRET must be at least {_MIN_AUTH_SECRET_LENGTH} "
                    "characters for adequate security."
                )
                raise ValueError(msg)

            if self.dev_account_reset_enabled:
                msg = "DEV_ACCOUNT_RESET_ENABLED cannot be enabled in production."
                raise ValueError(msg)
        elif not self.auth_secret.get_secret_value():
            logger.warning(
                "AUTH_SECRET is not set; using a random per-process signing key. "
                "Sessions will not survive a restart."
            )
            self.auth_secret = SecretStr(secrets.token_hex(32))

        return self


settings = Settings()
