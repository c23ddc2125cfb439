"""SQLAlchemy ORM models.

All models are exported from this module for convenient imports:
    from app.models import User, MagicLink

Models are organized by domain:
- user.py: User (Tier 0)
- magic_link.py: MagicLink (Tier 1 - auth tokens, nullable FK to users)
"""

from app.models.base import Base, TimestampMixin
from app.models.magic_link import MagicLink, MagicLinkPurpose, MagicLinkState
from app.models.user import User, UserType

__all__ = [
    # Base classes
    "Base",
    "TimestampMixin",
    # Tier 0
    "User",
    "UserType",
    # Tier 1 - Auth
    "MagicLink",
    "MagicLinkPurpose",
    "MagicLinkState",
]
