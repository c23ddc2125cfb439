"""User model - account records resolved after a magic link is redeemed.

Tier 0, no FK dependencies. Magic link tokens reference users through
a nullable link set at redemption time.
"""

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, CheckConstraint, String, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, TimestampMixin

_DEFAULT_UUID = text("gen_random_uuid()")


class UserType(str, Enum):
    """Account role encoded into the session credential."""

    CONSUMER = "CONSUMER"
    VENDOR = "VENDOR"


class User(Base, TimestampMixin):
    """User account.

    Attributes:
        id: UUID primary key.
        email: Unique, normalized (lower-cased, trimmed) email address.
        first_name: Given name (derived from the email on magic link signup).
        last_name: Family name, empty until the profile is completed.
        user_type: CONSUMER or VENDOR.
        is_verified: True once the email has been round-tripped.
        email_verified_at: When the email was verified. NULL = unverified.
        is_active: False for deactivated accounts (cannot sign in).
        last_login_at: Timestamp of the most recent successful sign-in.
        last_login_ip: Requester IP of the most recent sign-in (audit only).
        created_at: Account creation timestamp (from TimestampMixin).
        updated_at: Last modification timestamp (from TimestampMixin).
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            "user_type IN ('CONSUMER', 'VENDOR')", name="ck_users_user_type"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=_DEFAULT_UUID,
        default=uuid.uuid4,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
    )
    first_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        server_default=text("''"),
        default="",
    )
    last_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        server_default=text("''"),
        default="",
    )
    user_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        server_default=text(f"'{UserType.CONSUMER.value}'"),
        default=UserType.CONSUMER.value,
    )
    is_verified: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=text("false"),
        default=False,
    )
    email_verified_at: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=text("true"),
        default=True,
    )
    last_login_at: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )
    last_login_ip: Mapped[str | None] = mapped_column(
        String(45),
        nullable=True,
    )
