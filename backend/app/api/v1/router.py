"""API v1 router aggregator.

URL structure with /api/v1 prefix.

All v1 endpoint routers are included here.
"""

from fastapi import APIRouter

from app.api.v1 import auth_magic_link

router = APIRouter()

# =============================================================================
# Authentication
# =============================================================================

_AUTH_PREFIX = "/auth"

router.include_router(auth_magic_link.router, prefix=_AUTH_PREFIX, tags=["auth"])
