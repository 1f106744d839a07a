"""Unit tests for API key authentication module."""

import asyncio
from unittest.mock import patch

import pytest
from fastapi import HTTPException

from gatekeeper.core.auth import authenticate_api_key, parse_api_keys, require_admin, resolve_user
from gatekeeper.core.errors import AuthenticationAppError
from gatekeeper.core.identity import AuthenticatedUser


class TestParseAPIKeys:
    """Test API key parsing utility function."""

    def test_parse_single_key(self) -> None:
        """Test parsing a single key entry with default role."""
        result = parse_api_keys("my-secret-key:42")
        assert result == {"my-secret-key": AuthenticatedUser(id="42", role="user")}

    def test_parse_multiple_keys_with_roles(self) -> None:
        """Test parsing multiple comma-separated entries."""
        result = parse_api_keys("k1:1:admin,k2:2:user,k3:3")
        assert result["k1"] == AuthenticatedUser(id="1", role="admin")
        assert result["k2"].role == "user"
        assert result["k3"].role == "user"

    def test_parse_keys_with_whitespace(self) -> None:
        """Test that whitespace is trimmed around entries and parts."""
        result = parse_api_keys(" k1 : 1 , k2:2 ")
        assert set(result) == {"k1", "k2"}
        assert result["k1"].id == "1"

    def test_parse_none_returns_empty(self) -> None:
        assert parse_api_keys(None) == {}

    def test_parse_empty_string_returns_empty(self) -> None:
        assert parse_api_keys("") == {}
        assert parse_api_keys("   ,  ,  ") == {}

    def test_malformed_entries_are_skipped(self) -> None:
        """Entries without a user id or with extra parts are ignored."""
        result = parse_api_keys("no-user,k1:1,a:b:c:d,:5")
        assert set(result) == {"k1"}


class TestAuthenticateAPIKey:
    """Test core API key lookup logic."""

    @patch("gatekeeper.core.auth.settings")
    def test_known_key_resolves_user(self, mock_settings) -> None:
        mock_settings.app.api_keys = "valid-key:7:admin"

        user = authenticate_api_key("valid-key")

        assert user.id == "7"
        assert user.is_admin

    @patch("gatekeeper.core.auth.settings")
    def test_unknown_key_is_rejected(self, mock_settings) -> None:
        mock_settings.app.api_keys = "valid-key:7"

        with pytest.raises(AuthenticationAppError) as exc_info:
            authenticate_api_key("invalid-key")

        assert exc_info.value.code == "invalid_api_key"

    @patch("gatekeeper.core.auth.settings")
    def test_no_keys_configured_rejects_everything(self, mock_settings) -> None:
        mock_settings.app.api_keys = None

        with pytest.raises(AuthenticationAppError):
            authenticate_api_key("any")


class TestResolveUserDependency:
    """Test FastAPI dependencies resolving the caller."""

    def test_missing_header_is_anonymous(self) -> None:
        assert asyncio.run(resolve_user(x_api_key=None)) is None

    @patch("gatekeeper.core.auth.settings")
    def test_invalid_key_raises_403(self, mock_settings) -> None:
        mock_settings.app.api_keys = "valid-key:1"

        with pytest.raises(HTTPException) as exc_info:
            asyncio.run(resolve_user(x_api_key="wrong-key"))

        assert exc_info.value.status_code == 403
        assert exc_info.value.detail == "Invalid API key"

    @patch("gatekeeper.core.auth.settings")
    def test_valid_key_returns_user(self, mock_settings) -> None:
        mock_settings.app.api_keys = "valid-key:1"

        user = asyncio.run(resolve_user(x_api_key="valid-key"))

        assert user == AuthenticatedUser(id="1")

    def test_require_admin_rejects_anonymous_and_regular_users(self) -> None:
        for user in (None, AuthenticatedUser(id="5")):
            with pytest.raises(HTTPException) as exc_info:
                asyncio.run(require_admin(user=user))
            assert exc_info.value.status_code == 403

    def test_require_admin_accepts_admin(self) -> None:
        admin = AuthenticatedUser(id="1", role="admin")

        assert asyncio.run(require_admin(user=admin)) is admin
