"""Tests for the Google and Microsoft OAuth flows."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from mailbridge.auth.google import GoogleOAuth
from mailbridge.auth.microsoft import MicrosoftOAuth
from mailbridge.auth.oauth import TokenBundle
from mailbridge.core.exceptions import (
    AuthExpired,
    CredentialError,
    OAuthError,
    ProviderUnavailable,
)
from mailbridge.schemas.integration import ProviderType


def _google(transport: httpx.AsyncBaseTransport | None = None) -> GoogleOAuth:
    return GoogleOAuth(
        client_id="google-id",
        client_secret="google-secret",
        redirect_uri="https://app.example.com/api/auth/gmail/callback",
        api_transport=transport,
    )


def _microsoft(transport: httpx.AsyncBaseTransport | None = None) -> MicrosoftOAuth:
    return MicrosoftOAuth(
        client_id="ms-id",
        client_secret="ms-secret",
        redirect_uri="https://app.example.com/api/auth/outlook/callback",
        api_transport=transport,
    )


def _response(status_code: int, body: dict[str, Any]) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body
    response.text = str(body)
    return response


def _patch_client(mock_client: MagicMock, **methods: AsyncMock) -> MagicMock:
    """Make ``httpx.AsyncClient()`` yield a client with the given methods."""
    inner = MagicMock(**methods)
    mock_client.return_value.__aenter__ = AsyncMock(return_value=inner)
    mock_client.return_value.__aexit__ = AsyncMock(return_value=None)
    return inner


class TestTokenBundle:
    """Tests for TokenBundle."""

    def test_is_expired_with_skew(self) -> None:
        """Tokens within the skew window count as expired."""
        soon = TokenBundle("a", "r", datetime.now(UTC) + timedelta(seconds=30))
        later = TokenBundle("a", "r", datetime.now(UTC) + timedelta(hours=1))
        assert soon.is_expired()
        assert not later.is_expired()

    def test_dict_roundtrip(self) -> None:
        """to_dict/from_dict preserve every field."""
        bundle = TokenBundle("a", "r", datetime(2030, 1, 1, tzinfo=UTC), ["s1", "s2"])
        assert TokenBundle.from_dict(bundle.to_dict()) == bundle

    def test_naive_expiry_assumed_utc(self) -> None:
        """Stored expiries without a timezone are read as UTC."""
        bundle = TokenBundle.from_dict(
            {"access_token": "a", "refresh_token": "r", "expires_at": "2030-01-01T00:00:00"}
        )
        assert bundle.expires_at.tzinfo is not None

    def test_incomplete_bundle_raises(self) -> None:
        """A bundle without a refresh token is rejected."""
        with pytest.raises(CredentialError):
            TokenBundle.from_dict({"access_token": "a", "expires_at": "2030-01-01T00:00:00"})


class TestAuthorizationUrl:
    """Tests for authorization_url."""

    def test_google_url(self) -> None:
        """Google URL carries offline access, forced consent and the user id."""
        url = _google().authorization_url("user-42")
        parsed = urlparse(url)
        query = parse_qs(parsed.query)

        assert url.startswith(GoogleOAuth.AUTHORIZATION_URL)
        assert query["state"] == ["user-42"]
        assert query["access_type"] == ["offline"]
        assert query["prompt"] == ["consent"]
        assert query["response_type"] == ["code"]
        assert query["client_id"] == ["google-id"]
        assert "gmail.send" in query["scope"][0]

    def test_microsoft_url(self) -> None:
        """Microsoft URL requests offline_access and forces consent."""
        query = parse_qs(urlparse(_microsoft().authorization_url("user-42")).query)

        assert query["state"] == ["user-42"]
        assert query["prompt"] == ["consent"]
        assert query["scope"][0].split()[0] == "offline_access"
        assert "Mail.Send" in query["scope"][0]

    def test_provider_types(self) -> None:
        """Each flow reports its provider."""
        assert _google().provider_type is ProviderType.GMAIL
        assert _microsoft().provider_type is ProviderType.OUTLOOK


class TestExchangeCode:
    """Tests for exchange_code."""

    @pytest.mark.asyncio
    async def test_returns_tokens_on_success(self) -> None:
        """A 200 response yields a TokenBundle."""
        response = _response(
            200,
            {
                "access_token": "access-123",
                "refresh_token": "refresh-456",
                "expires_in": 1800,
                "scope": "scope-a scope-b",
            },
        )
        before = datetime.now(UTC)

        with patch("httpx.AsyncClient") as mock_client:
            inner = _patch_client(mock_client, post=AsyncMock(return_value=response))
            tokens = await _google().exchange_code("auth-code")

        assert tokens.access_token == "access-123"
        assert tokens.refresh_token == "refresh-456"
        assert tokens.scopes == ["scope-a", "scope-b"]
        assert before + timedelta(seconds=1790) < tokens.expires_at
        sent = inner.post.call_args.kwargs["data"]
        assert sent["grant_type"] == "authorization_code"
        assert sent["code"] == "auth-code"

    @pytest.mark.asyncio
    async def test_microsoft_sends_scope(self) -> None:
        """Microsoft token requests include the scope parameter."""
        response = _response(200, {"access_token": "a", "refresh_token": "r"})

        with patch("httpx.AsyncClient") as mock_client:
            inner = _patch_client(mock_client, post=AsyncMock(return_value=response))
            await _microsoft().exchange_code("code")

        assert "offline_access" in inner.post.call_args.kwargs["data"]["scope"]

    @pytest.mark.asyncio
    async def test_invalid_grant_raises_oauth_error(self) -> None:
        """A rejected code raises OAuthError with the provider's error."""
        response = _response(
            400, {"error": "invalid_grant", "error_description": "Code has expired"}
        )

        with patch("httpx.AsyncClient") as mock_client:
            _patch_client(mock_client, post=AsyncMock(return_value=response))
            with pytest.raises(OAuthError) as exc_info:
                await _google().exchange_code("expired")

        assert exc_info.value.error == "invalid_grant"
        assert exc_info.value.description == "Code has expired"

    @pytest.mark.asyncio
    async def test_missing_refresh_token_rejected(self) -> None:
        """A grant without a refresh token cannot back an integration."""
        response = _response(200, {"access_token": "a", "expires_in": 3600})

        with patch("httpx.AsyncClient") as mock_client:
            _patch_client(mock_client, post=AsyncMock(return_value=response))
            with pytest.raises(OAuthError) as exc_info:
                await _google().exchange_code("code")

        assert exc_info.value.error == "missing_refresh_token"

    @pytest.mark.asyncio
    async def test_server_error_is_unavailable(self) -> None:
        """A 5xx from the token endpoint is retryable."""
        response = _response(503, {})

        with patch("httpx.AsyncClient") as mock_client:
            _patch_client(mock_client, post=AsyncMock(return_value=response))
            with pytest.raises(ProviderUnavailable) as exc_info:
                await _google().exchange_code("code")

        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_transport_error_is_unavailable(self) -> None:
        """Network failures map to ProviderUnavailable."""
        with patch("httpx.AsyncClient") as mock_client:
            _patch_client(mock_client, post=AsyncMock(side_effect=httpx.ConnectError("down")))
            with pytest.raises(ProviderUnavailable):
                await _microsoft().exchange_code("code")


class TestRefreshTokens:
    """Tests for refresh_tokens."""

    @pytest.mark.asyncio
    async def test_keeps_refresh_token_when_not_rotated(self) -> None:
        """Google omits the refresh token on refresh; the old one is kept."""
        response = _response(200, {"access_token": "new-access", "expires_in": 3600})

        with patch("httpx.AsyncClient") as mock_client:
            inner = _patch_client(mock_client, post=AsyncMock(return_value=response))
            tokens = await _google().refresh_tokens("refresh-1")

        assert tokens.access_token == "new-access"
        assert tokens.refresh_token == "refresh-1"
        assert inner.post.call_args.kwargs["data"]["grant_type"] == "refresh_token"

    @pytest.mark.asyncio
    async def test_uses_rotated_refresh_token(self) -> None:
        """Microsoft rotates refresh tokens; the new one is used."""
        response = _response(200, {"access_token": "a2", "refresh_token": "r2"})

        with patch("httpx.AsyncClient") as mock_client:
            _patch_client(mock_client, post=AsyncMock(return_value=response))
            tokens = await _microsoft().refresh_tokens("r1")

        assert tokens.refresh_token == "r2"

    @pytest.mark.asyncio
    async def test_revoked_refresh_token_raises_auth_expired(self) -> None:
        """invalid_grant on refresh means the user must reconnect."""
        response = _response(400, {"error": "invalid_grant"})

        with patch("httpx.AsyncClient") as mock_client:
            _patch_client(mock_client, post=AsyncMock(return_value=response))
            with pytest.raises(AuthExpired) as exc_info:
                await _google().refresh_tokens("revoked")

        assert exc_info.value.provider == "gmail"

    @pytest.mark.asyncio
    async def test_other_rejection_raises_oauth_error(self) -> None:
        """A non-auth refusal is an OAuthError."""
        response = _response(403, {"error": "access_denied"})

        with patch("httpx.AsyncClient") as mock_client:
            _patch_client(mock_client, post=AsyncMock(return_value=response))
            with pytest.raises(OAuthError):
                await _google().refresh_tokens("r")

    @pytest.mark.asyncio
    async def test_missing_access_token_rejected(self) -> None:
        """A 200 without an access token is an OAuthError."""
        response = _response(200, {"expires_in": 3600})

        with patch("httpx.AsyncClient") as mock_client:
            _patch_client(mock_client, post=AsyncMock(return_value=response))
            with pytest.raises(OAuthError) as exc_info:
                await _google().refresh_tokens("r")

        assert exc_info.value.error == "missing_access_token"


class TestFetchProfile:
    """Tests for fetch_profile over the mailbox API clients."""

    @pytest.mark.asyncio
    async def test_google_profile(self) -> None:
        """The Gmail address is lowercased."""
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"emailAddress": "Owner@Gmail.com"})

        profile = await _google(httpx.MockTransport(handler)).fetch_profile("access")

        assert profile.email == "owner@gmail.com"
        assert str(seen[0].url) == "https://gmail.googleapis.com/gmail/v1/users/me/profile"
        assert seen[0].headers["Authorization"] == "Bearer access"

    @pytest.mark.asyncio
    async def test_microsoft_profile_falls_back_to_upn(self) -> None:
        """Accounts without ``mail`` use the user principal name."""
        body = {"mail": None, "userPrincipalName": "Sam@Contoso.com", "displayName": "Sam"}

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/v1.0/me"
            return httpx.Response(200, json=body)

        profile = await _microsoft(httpx.MockTransport(handler)).fetch_profile("access")

        assert profile.email == "sam@contoso.com"
        assert profile.display_name == "Sam"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403])
    async def test_rejected_profile_raises_oauth_error(self, status: int) -> None:
        """A rejected profile request is an OAuthError, not a provider outage."""
        transport = httpx.MockTransport(
            lambda request: httpx.Response(
                status, json={"error": {"code": "Forbidden", "message": "Access denied"}}
            )
        )

        with pytest.raises(OAuthError, match="Access denied") as exc_info:
            await _microsoft(transport).fetch_profile("access")

        assert exc_info.value.error == "profile_failed"

    @pytest.mark.asyncio
    async def test_profile_outage_is_not_retried(self) -> None:
        """A 503 during connection surfaces at once as ProviderUnavailable."""
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(503, json={"error": {"message": "Backend Error"}})

        with pytest.raises(ProviderUnavailable):
            await _google(httpx.MockTransport(handler)).fetch_profile("access")

        assert calls == 1

    @pytest.mark.asyncio
    async def test_profile_without_address(self) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={}))

        with pytest.raises(OAuthError, match="no email address"):
            await _google(transport).fetch_profile("access")


class TestRevokeToken:
    """Tests for revoke_token."""

    @pytest.mark.asyncio
    async def test_google_revokes(self) -> None:
        """Google confirms revocation with a 200."""
        with patch("httpx.AsyncClient") as mock_client:
            inner = _patch_client(mock_client, post=AsyncMock(return_value=_response(200, {})))
            assert await _google().revoke_token("refresh") is True

        assert inner.post.call_args.kwargs["params"] == {"token": "refresh"}

    @pytest.mark.asyncio
    async def test_google_revoke_network_failure(self) -> None:
        """Revocation failures are reported, not raised."""
        with patch("httpx.AsyncClient") as mock_client:
            _patch_client(mock_client, post=AsyncMock(side_effect=httpx.ConnectError("x")))
            assert await _google().revoke_token("refresh") is False

    @pytest.mark.asyncio
    async def test_microsoft_has_no_revocation(self) -> None:
        """Graph offers no token revocation endpoint."""
        assert await _microsoft().revoke_token("refresh") is False
