"""Tests for the redemption engine.

Claim outcomes with the repository patched. Real concurrent claims
against PostgreSQL live in test_magic_link_repository.py.
"""

import uuid
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from structlog.testing import capture_logs

from app.core.errors import (
    GENERIC_MAGIC_LINK_CODE,
    TokenAlreadyUsedError,
    TokenExpiredError,
    TokenInvalidError,
)
from app.models.magic_link import MagicLinkPurpose
from app.services.redemption_engine import classify_failure, redeem_token
from app.services.token_issuer import hash_token

_REPO = "app.services.redemption_engine.MagicLinkRepository"
_NOW = datetime(2026, 3, 1, 9, 30, tzinfo=UTC)
_EMAIL = "user@example.com"


def _link(
    *,
    email: str = _EMAIL,
    is_used: bool = False,
    used_at: datetime | None = None,
    expires_at: datetime | None = None,
    purpose: str = "LOGIN",
) -> MagicMock:
    link = MagicMock()
    link.id = uuid.uuid4()
    link.email = email
    link.purpose = purpose
    link.is_used = is_used
    link.used_at = used_at
    link.expires_at = expires_at or _NOW + timedelta(minutes=10)
    return link


class TestClassifyFailure:
    def test_unknown_token_is_invalid(self):
        assert isinstance(
            classify_failure(None, email=_EMAIL, now=_NOW), TokenInvalidError
        )

    def test_email_mismatch_is_invalid(self):
        """A wrong email never reveals that the token exists."""
        link = _link(email="someone-else@example.com", is_used=True, used_at=_NOW)
        assert isinstance(
            classify_failure(link, email=_EMAIL, now=_NOW), TokenInvalidError
        )

    def test_used_token_is_already_used(self):
        link = _link(is_used=True, used_at=_NOW - timedelta(minutes=1))
        assert isinstance(
            classify_failure(link, email=_EMAIL, now=_NOW), TokenAlreadyUsedError
        )

    def test_used_wins_over_expired(self):
        link = _link(
            is_used=True,
            used_at=_NOW - timedelta(hours=1),
            expires_at=_NOW - timedelta(minutes=30),
        )
        assert isinstance(
            classify_failure(link, email=_EMAIL, now=_NOW), TokenAlreadyUsedError
        )

    def test_expired_token_is_expired(self):
        link = _link(expires_at=_NOW - timedelta(seconds=1))
        assert isinstance(
            classify_failure(link, email=_EMAIL, now=_NOW), TokenExpiredError
        )

    def test_expiry_boundary_is_exclusive(self):
        """A token is no longer valid at exactly expires_at."""
        link = _link(expires_at=_NOW)
        assert isinstance(
            classify_failure(link, email=_EMAIL, now=_NOW), TokenExpiredError
        )

    def test_redeemable_row_after_failed_claim_is_invalid(self):
        assert isinstance(
            classify_failure(_link(), email=_EMAIL, now=_NOW), TokenInvalidError
        )


class TestTokenErrors:
    @pytest.mark.parametrize(
        ("error", "code", "reason"),
        [
            (TokenInvalidError(), "TOKEN_INVALID", "invalid"),
            (TokenExpiredError(), "TOKEN_EXPIRED", "expired"),
            (TokenAlreadyUsedError(), "TOKEN_ALREADY_USED", "already_used"),
        ],
    )
    def test_specific_codes_collapse_to_generic(self, error, code, reason):
        assert error.code == code
        assert error.reason == reason
        assert error.status_code == 400

        generic = error.to_generic()
        assert generic.code == GENERIC_MAGIC_LINK_CODE
        assert generic.status_code == 400


class TestRedeemToken:
    async def test_successful_claim_returns_claimed_token(self):
        link = _link(purpose="REGISTRATION")
        with patch(f"{_REPO}.claim", new_callable=AsyncMock) as claim:
            claim.return_value = link
            claimed = await redeem_token(
                MagicMock(),
                token="plain-token",
                email=_EMAIL,
                ip_address="203.0.113.7",
                now=_NOW,
            )

        assert claimed.id == link.id
        assert claimed.email == _EMAIL
        assert claimed.purpose is MagicLinkPurpose.REGISTRATION
        assert claimed.used_at == _NOW
        assert claimed.ip_address == "203.0.113.7"

    async def test_claims_by_hash_not_plain_token(self):
        with patch(f"{_REPO}.claim", new_callable=AsyncMock) as claim:
            claim.return_value = _link()
            await redeem_token(MagicMock(), token="plain-token", email=_EMAIL, now=_NOW)

        kwargs = claim.call_args.kwargs
        assert kwargs["token_hash"] == hash_token("plain-token")
        assert kwargs["email"] == _EMAIL
        assert kwargs["now"] == _NOW

    async def test_success_skips_secondary_read(self):
        with (
            patch(f"{_REPO}.claim", new_callable=AsyncMock) as claim,
            patch(f"{_REPO}.get_by_token_hash", new_callable=AsyncMock) as lookup,
        ):
            claim.return_value = _link()
            await redeem_token(MagicMock(), token="t", email=_EMAIL, now=_NOW)

        lookup.assert_not_awaited()

    @pytest.mark.parametrize(
        ("existing", "error"),
        [
            (None, TokenInvalidError),
            (_link(is_used=True, used_at=_NOW), TokenAlreadyUsedError),
            (_link(expires_at=_NOW - timedelta(minutes=1)), TokenExpiredError),
        ],
    )
    async def test_failed_claim_raises_classified_error(self, existing, error):
        with (
            patch(f"{_REPO}.claim", new_callable=AsyncMock, return_value=None),
            patch(
                f"{_REPO}.get_by_token_hash",
                new_callable=AsyncMock,
                return_value=existing,
            ),
            pytest.raises(error),
        ):
            await redeem_token(MagicMock(), token="t", email=_EMAIL, now=_NOW)

    async def test_failed_claim_logs_reason(self):
        with (
            patch(f"{_REPO}.claim", new_callable=AsyncMock, return_value=None),
            patch(
                f"{_REPO}.get_by_token_hash",
                new_callable=AsyncMock,
                return_value=_link(is_used=True, used_at=_NOW),
            ),
            capture_logs() as logs,
            pytest.raises(TokenAlreadyUsedError),
        ):
            await redeem_token(MagicMock(), token="t", email=_EMAIL, now=_NOW)

        failures = [e for e in logs if e["event"] == "magic_link.redeem_failed"]
        assert failures[0]["reason"] == "already_used"
        assert "t" not in failures[0].values()
