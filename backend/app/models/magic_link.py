"""Magic link token records.

Single-use, time-limited tokens bound to an email and a purpose. Only the
SHA-256 hash of the token is stored; lookup at verification time is by
hash alone, so the hash is globally unique.
"""

import uuid
from datetime import UTC, datetime
from enum import Enum

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, String, Text, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base

_DEFAULT_UUID = text("gen_random_uuid()")


class MagicLinkPurpose(str, Enum):
    """Declared intent of a token request, fixed at issuance."""

    LOGIN = "LOGIN"
    REGISTRATION = "REGISTRATION"


class MagicLinkState(str, Enum):
    """Derived token state. EXPIRED is computed, never stored."""

    PENDING = "PENDING"
    REDEEMED = "REDEEMED"
    EXPIRED = "EXPIRED"


class MagicLink(Base):
    """Magic link token record.

    Redeemable iff ``used_at IS NULL AND now < expires_at``. The only
    write after insert is the atomic claim (is_used, used_at) followed by
    linking the resolved user.

    Attributes:
        id: UUID primary key.
        email: Normalized email the token was issued for.
        token_hash: SHA-256 hex digest of the plain token (unique).
        purpose: LOGIN or REGISTRATION.
        is_used: Set together with used_at by the claim.
        used_at: Redemption timestamp, set exactly once.
        expires_at: issued_at + TTL.
        ip_address: Requester IP at issuance (audit only).
        user_agent: Requester User-Agent at issuance (audit only).
        user_id: User linked at redemption time.
        created_at: Issuance timestamp.
    """

    __tablename__ = "magic_links"
    __table_args__ = (
        CheckConstraint(
            "purpose IN ('LOGIN', 'REGISTRATION')", name="ck_magic_links_purpose"
        ),
        Index("idx_magic_links_email", "email"),
        Index("idx_magic_links_expires_at", "expires_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=_DEFAULT_UUID,
        default=uuid.uuid4,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    token_hash: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
    )
    purpose: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )
    is_used: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=text("false"),
        default=False,
    )
    used_at: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )
    expires_at: Mapped[datetime] = mapped_column(
        nullable=False,
    )
    ip_address: Mapped[str | None] = mapped_column(
        String(45),
        nullable=True,
    )
    user_agent: Mapped[str | None] = mapped_column(
        Text(),
        nullable=True,
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        nullable=False,
    )

    def state_at(self, now: datetime | None = None) -> MagicLinkState:
        """Derive the token state at a point in time."""
        if self.is_used or self.used_at is not None:
            return MagicLinkState.REDEEMED
        if (now or datetime.now(UTC)) >= self.expires_at:
            return MagicLinkState.EXPIRED
        return MagicLinkState.PENDING

    @property
    def state(self) -> MagicLinkState:
        """Token state right now."""
        return self.state_at()
