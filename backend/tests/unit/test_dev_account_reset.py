"""Tests for the development-only account reset."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.core.config import settings
from app.core.errors import NotFoundError, ValidationError
from app.models.magic_link import MagicLinkPurpose
from app.services.dev_account_reset import (
    ensure_dev_reset_enabled,
    reset_account_for_testing,
)

_SVC = "app.services.dev_account_reset"


@pytest.fixture
def enabled(monkeypatch):
    monkeypatch.setattr(settings, "dev_account_reset_enabled", True)
    monkeypatch.setattr(settings, "environment", "development")


class TestEnsureDevResetEnabled:
    def test_disabled_by_default_looks_like_missing_route(self, monkeypatch):
        monkeypatch.setattr(settings, "dev_account_reset_enabled", False)
        with pytest.raises(NotFoundError):
            ensure_dev_reset_enabled()

    def test_production_always_refuses(self, monkeypatch):
        monkeypatch.setattr(settings, "dev_account_reset_enabled", True)
        monkeypatch.setattr(settings, "environment", "production")
        with pytest.raises(NotFoundError):
            ensure_dev_reset_enabled()

    def test_enabled_in_development(self, enabled):
        ensure_dev_reset_enabled()


class TestResetAccountForTesting:
    async def test_registration_deletes_tokens_and_user(self, enabled):
        with (
            patch(
                f"{_SVC}.MagicLinkRepository.delete_for_email",
                new_callable=AsyncMock,
                return_value=2,
            ) as delete_tokens,
            patch(
                f"{_SVC}.UserRepository.delete_by_email",
                new_callable=AsyncMock,
                return_value=1,
            ),
        ):
            result = await reset_account_for_testing(
                AsyncMock(),
                email=" Dev@Example.com ",
                purpose=MagicLinkPurpose.REGISTRATION,
            )

        assert result.email == "dev@example.com"
        assert result.deleted_tokens == 2
        assert result.deleted_user is True
        assert result.created_user is False
        assert delete_tokens.call_args.args[1] == "dev@example.com"

    async def test_login_creates_missing_user(self, enabled):
        with (
            patch(
                f"{_SVC}.MagicLinkRepository.delete_for_email",
                new_callable=AsyncMock,
                return_value=0,
            ),
            patch(
                f"{_SVC}.UserRepository.get_by_email",
                new_callable=AsyncMock,
                return_value=None,
            ),
            patch(f"{_SVC}.UserRepository.create", new_callable=AsyncMock) as create,
        ):
            result = await reset_account_for_testing(
                AsyncMock(), email="dev@example.com", purpose=MagicLinkPurpose.LOGIN
            )

        assert result.created_user is True
        assert create.call_args.kwargs["first_name"] == "Dev"
        assert create.call_args.kwargs["is_verified"] is True

    async def test_login_keeps_existing_user(self, enabled):
        with (
            patch(
                f"{_SVC}.MagicLinkRepository.delete_for_email",
                new_callable=AsyncMock,
                return_value=1,
            ),
            patch(
                f"{_SVC}.UserRepository.get_by_email",
                new_callable=AsyncMock,
                return_value=MagicMock(is_active=True),
            ),
            patch(f"{_SVC}.UserRepository.create", new_callable=AsyncMock) as create,
            patch(f"{_SVC}.UserRepository.update", new_callable=AsyncMock) as update,
        ):
            result = await reset_account_for_testing(
                AsyncMock(), email="dev@example.com", purpose=MagicLinkPurpose.LOGIN
            )

        create.assert_not_awaited()
        assert result.created_user is False
        assert result.deleted_tokens == 1
        update.assert_not_awaited()
        assert result.reactivated_user is False

    async def test_login_reactivates_deactivated_user(self, enabled):
        existing = MagicMock(is_active=False)
        with (
            patch(
                f"{_SVC}.MagicLinkRepository.delete_for_email",
                new_callable=AsyncMock,
                return_value=0,
            ),
            patch(
                f"{_SVC}.UserRepository.get_by_email",
                new_callable=AsyncMock,
                return_value=existing,
            ),
            patch(f"{_SVC}.UserRepository.create", new_callable=AsyncMock) as create,
            patch(f"{_SVC}.UserRepository.update", new_callable=AsyncMock) as update,
        ):
            result = await reset_account_for_testing(
                AsyncMock(), email="dev@example.com", purpose=MagicLinkPurpose.LOGIN
            )

        create.assert_not_awaited()
        update.assert_awaited_once()
        assert update.call_args.args[1] == existing.id
        assert update.call_args.kwargs == {"is_active": True}
        assert result.reactivated_user is True

    async def test_disabled_touches_nothing(self, monkeypatch):
        monkeypatch.setattr(settings, "dev_account_reset_enabled", False)
        with (
            patch(
                f"{_SVC}.MagicLinkRepository.delete_for_email", new_callable=AsyncMock
            ) as delete_tokens,
            pytest.raises(NotFoundError),
        ):
            await reset_account_for_testing(
                AsyncMock(), email="dev@example.com", purpose=MagicLinkPurpose.LOGIN
            )

        delete_tokens.assert_not_awaited()

    async def test_invalid_email_rejected(self, enabled):
        with pytest.raises(ValidationError):
            await reset_account_for_testing(
                AsyncMock(), email="nope", purpose=MagicLinkPurpose.LOGIN
            )
