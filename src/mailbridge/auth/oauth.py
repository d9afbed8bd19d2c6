"""Shared OAuth2 authorization-code flow for mailbox providers."""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, ClassVar
from urllib.parse import urlencode

import httpx
import structlog

from mailbridge.core.config import RetryConfig
from mailbridge.core.exceptions import (
    AuthExpired,
    CredentialError,
    OAuthError,
    ProviderUnavailable,
)
from mailbridge.schemas.integration import ProviderType

logger = structlog.get_logger(__name__)

# Token errors that mean the refresh token itself is no longer usable.
REVOKED_TOKEN_ERRORS = frozenset({"invalid_grant", "invalid_token", "unauthorized_client"})


@dataclass
class TokenBundle:
    """Access/refresh token pair with expiration.

    Attributes:
        access_token: Short-lived bearer token for provider API calls.
        refresh_token: Long-lived token used to obtain new access tokens.
        expires_at: When the access token expires (UTC).
        scopes: Granted scopes.
    """

    access_token: str
    refresh_token: str
    expires_at: datetime
    scopes: list[str] = field(default_factory=list)

    def is_expired(self, skew_seconds: int = 60) -> bool:
        """Check if the access token is expired or about to expire."""
        return datetime.now(UTC) + timedelta(seconds=skew_seconds) >= self.expires_at

    def to_dict(self) -> dict[str, Any]:
        """Serialize for encrypted storage."""
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at.isoformat(),
            "scopes": list(self.scopes),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TokenBundle:
        """Deserialize a stored token bundle.

        Raises:
            CredentialError: If required fields are missing or invalid.
        """
        try:
            expires_at = datetime.fromisoformat(str(data["expires_at"]))
            bundle = cls(
                access_token=str(data["access_token"]),
                refresh_token=str(data["refresh_token"]),
                expires_at=expires_at if expires_at.tzinfo else expires_at.replace(tzinfo=UTC),
                scopes=list(data.get("scopes") or []),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise CredentialError("Stored token bundle is incomplete") from e
        return bundle


@dataclass(frozen=True)
class MailboxProfile:
    """Mailbox identity returned by the provider after authorization."""

    email: str
    display_name: str | None = None


class OAuthFlowManager(abc.ABC):
    """OAuth2 authorization-code flow for one provider.

    Handles:
    1. Authorization URL with the platform user id as ``state``
    2. Code exchange for access/refresh tokens
    3. Silent refresh of expired access tokens

    Attributes:
        AUTHORIZATION_URL: Provider authorization endpoint.
        TOKEN_URL: Provider token endpoint.
        SCOPES: Scopes requested during authorization.
    """

    AUTHORIZATION_URL: ClassVar[str]
    TOKEN_URL: ClassVar[str]
    SCOPES: ClassVar[list[str]]

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        timeout: float = 30.0,
        api_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize OAuth client.

        Args:
            client_id: OAuth2 client ID.
            client_secret: OAuth2 client secret.
            redirect_uri: URI to redirect to after authorization.
            timeout: Timeout for token and profile requests in seconds.
            api_transport: Optional httpx transport for profile API calls,
                used to stub the network.
        """
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.timeout = timeout
        self.api_transport = api_transport

    @property
    @abc.abstractmethod
    def provider_type(self) -> ProviderType:
        """Provider this flow authorizes."""
        ...

    def _authorization_params(self) -> dict[str, str]:
        """Provider-specific authorization query parameters."""
        return {}

    def _api_client_options(self) -> dict[str, Any]:
        """Options for the one-shot API client that reads the profile."""
        return {
            "retry_config": RetryConfig(max_attempts=1),
            "timeout": self.timeout,
            "transport": self.api_transport,
        }

    def _token_params(self) -> dict[str, str]:
        """Provider-specific token request parameters."""
        return {}

    def authorization_url(self, user_id: str) -> str:
        """Generate the consent URL for a platform user.

        The user id is carried in ``state`` so the callback can be correlated.
        Consent is always forced so a refresh token is issued even when the
        user re-authorizes.

        Args:
            user_id: Platform user starting the connection.

        Returns:
            Full authorization URL with query parameters.
        """
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.SCOPES),
            "prompt": "consent",
            "state": user_id,
            **self._authorization_params(),
        }
        return f"{self.AUTHORIZATION_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> TokenBundle:
        """Exchange an authorization code for tokens.

        Args:
            code: Authorization code from the OAuth callback.

        Returns:
            TokenBundle with access_token, refresh_token, and expiration.

        Raises:
            OAuthError: If the exchange fails (e.g., invalid code).
            ProviderUnavailable: On network or server-side failure.
        """
        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": self.redirect_uri,
            **self._token_params(),
        }
        status_code, result = await self._post_token(data)

        if status_code != 200:
            raise OAuthError(
                str(result.get("error", "unknown_error")),
                result.get("error_description"),
                provider=self.provider_type.value,
            )

        if not result.get("refresh_token"):
            raise OAuthError(
                "missing_refresh_token",
                "Provider did not issue a refresh token",
                provider=self.provider_type.value,
            )

        return self._tokens_from_response(result, fallback_refresh_token=None)

    async def refresh_tokens(self, refresh_token: str) -> TokenBundle:
        """Refresh an expired access token.

        Args:
            refresh_token: The refresh token from a previous authorization.

        Returns:
            TokenBundle with a new access token. The refresh token is kept
            when the provider does not rotate it.

        Raises:
            AuthExpired: If the refresh token was revoked or expired.
            ProviderUnavailable: On network or server-side failure.
        """
        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
            **self._token_params(),
        }
        status_code, result = await self._post_token(data)

        if status_code != 200:
            error = str(result.get("error", "unknown_error"))
            description = result.get("error_description")
            await logger.awarning(
                "oauth_refresh_rejected",
                provider=self.provider_type.value,
                status=status_code,
                error=error,
            )
            if status_code in (400, 401) or error in REVOKED_TOKEN_ERRORS:
                raise AuthExpired(
                    f"Refresh token rejected: {error}",
                    provider=self.provider_type.value,
                )
            raise OAuthError(error, description, provider=self.provider_type.value)

        return self._tokens_from_response(result, fallback_refresh_token=refresh_token)

    async def revoke_token(self, token: str) -> bool:
        """Revoke a token at the provider, if the provider supports it.

        Returns:
            True if the provider confirmed revocation.
        """
        return False

    @abc.abstractmethod
    async def fetch_profile(self, access_token: str) -> MailboxProfile:
        """Fetch the mailbox address and display name for a new integration."""
        ...

    async def _post_token(self, data: dict[str, str]) -> tuple[int, dict[str, Any]]:
        """POST to the token endpoint.

        Returns:
            Tuple of (status code, JSON body).

        Raises:
            ProviderUnavailable: On transport errors or 5xx responses.
        """
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.TOKEN_URL, data=data)
        except httpx.TransportError as e:
            raise ProviderUnavailable(
                f"Token endpoint unreachable: {e}",
                provider=self.provider_type.value,
            ) from e

        if response.status_code >= 500:
            raise ProviderUnavailable(
                f"Token endpoint error {response.status_code}",
                provider=self.provider_type.value,
                status_code=response.status_code,
            )

        try:
            result = response.json()
        except ValueError:
            result = {}
        return response.status_code, result if isinstance(result, dict) else {}

    def _tokens_from_response(
        self,
        result: dict[str, Any],
        fallback_refresh_token: str | None,
    ) -> TokenBundle:
        """Build a TokenBundle from a token endpoint response."""
        access_token = result.get("access_token")
        if not access_token:
            raise OAuthError(
                "missing_access_token",
                "Token response did not include an access token",
                provider=self.provider_type.value,
            )

        expires_in = int(result.get("expires_in", 3600))
        scope_str = result.get("scope", "")
        return TokenBundle(
            access_token=str(access_token),
            refresh_token=str(result.get("refresh_token") or fallback_refresh_token or ""),
            expires_at=datetime.now(UTC) + timedelta(seconds=expires_in),
            scopes=scope_str.split() if scope_str else [],
        )
