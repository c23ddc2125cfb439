"""Create magic_links table.

Revision ID: 002_magic_links
Revises: 001_users
Create Date: 2026-10-19

Single-use sign-in tokens. Only the SHA-256 hash of a token is stored and
it is unique across all rows, since verification looks tokens up by hash
alone.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "002_magic_links"
down_revision: str | None = "001_users"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "magic_links",
        sa.Column(
            "id",
            sa.UUID(),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("token_hash", sa.String(64), nullable=False, unique=True),
        sa.Column("purpose", sa.String(20), nullable=False),
        sa.Column("is_used", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ip_address", sa.String(45), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column(
            "user_id",
            sa.UUID(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "purpose IN ('LOGIN', 'REGISTRATION')",
            name="ck_magic_links_purpose",
        ),
    )
    op.create_index("idx_magic_links_email", "magic_links", ["email"])
    # Retention sweep scans by expiry
    op.create_index("idx_magic_links_expires_at", "magic_links", ["expires_at"])


def downgrade() -> None:
    op.drop_index("idx_magic_links_expires_at")
    op.drop_index("idx_magic_links_email")
    op.drop_table("magic_links")
