"""Unit tests for API dependencies."""

from unittest.mock import MagicMock, patch

import pytest

from src.api.deps import get_user_id, require_admin
from src.api.middleware.error_handler import AuthorizationError


class TestGetUserId:
    """Tests for get_user_id."""

    @pytest.mark.asyncio
    async def test_missing_header(self) -> None:
        assert await get_user_id(None) is None

    @pytest.mark.asyncio
    async def test_blank_header(self) -> None:
        assert await get_user_id("   ") is None

    @pytest.mark.asyncio
    async def test_strips_value(self) -> None:
        assert await get_user_id(" user-1 ") == "user-1"


class TestRequireAdmin:
    """Tests for require_admin."""

    @pytest.mark.asyncio
    async def test_accepts_matching_key(self) -> None:
        settings = MagicMock(admin_api_key="admin-secret")
        with patch("src.api.deps.get_settings", return_value=settings):
            await require_admin("admin-secret")

    @pytest.mark.asyncio
    async def test_rejects_wrong_key(self) -> None:
        settings = MagicMock(admin_api_key="admin-secret")
        with patch("src.api.deps.get_settings", return_value=settings):
            with pytest.raises(AuthorizationError):
                await require_admin("guess")

    @pytest.mark.asyncio
    async def test_rejects_missing_key(self) -> None:
        settings = MagicMock(admin_api_key="admin-secret")
        with patch("src.api.deps.get_settings", return_value=settings):
            with pytest.raises(AuthorizationError):
                await require_admin(None)

    @pytest.mark.asyncio
    async def test_rejects_everything_when_unconfigured(self) -> None:
        settings = MagicMock(admin_api_key="")
        with patch("src.api.deps.get_settings", return_value=settings):
            with pytest.raises(AuthorizationError):
                await require_admin("")
