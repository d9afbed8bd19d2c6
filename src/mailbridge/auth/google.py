"""Google OAuth2 implementation for Gmail API access."""

from __future__ import annotations

import httpx

from mailbridge.auth.oauth import MailboxProfile, OAuthFlowManager
from mailbridge.core.exceptions import OAuthError, ProviderRequestError, TokenExpiredError
from mailbridge.integrations.gmail import GmailClient
from mailbridge.schemas.integration import ProviderType


class GoogleOAuth(OAuthFlowManager):
    """Google OAuth2 flow requesting read, send, and modify access to Gmail.

    Attributes:
        AUTHORIZATION_URL: Google's OAuth2 authorization endpoint.
        TOKEN_URL: Google's OAuth2 token endpoint.
        REVOKE_URL: Google's token revocation endpoint.
        SCOPES: Gmail scopes requested during authorization.
    """

    AUTHORIZATION_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"
    REVOKE_URL = "https://oauth2.googleapis.com/revoke"
    SCOPES = [
        "https://www.googleapis.com/auth/gmail.readonly",
        "https://www.googleapis.com/auth/gmail.send",
        "https://www.googleapis.com/auth/gmail.modify",
    ]

    @property
    def provider_type(self) -> ProviderType:
        """Get the provider type identifier."""
        return ProviderType.GMAIL

    def _authorization_params(self) -> dict[str, str]:
        # Offline access is what makes Google issue a refresh token.
        return {"access_type": "offline"}

    async def fetch_profile(self, access_token: str) -> MailboxProfile:
        """Fetch the authorized Gmail address.

        Raises:
            OAuthError: If the profile request is rejected.
            ProviderUnavailable: On network or server-side failure.
        """
        async with GmailClient(access_token, **self._api_client_options()) as client:
            try:
                profile = await client.get_profile()
            except (TokenExpiredError, ProviderRequestError) as e:
                raise OAuthError(
                    "profile_failed", e.message, provider=self.provider_type.value
                ) from e

        email = str(profile.get("emailAddress", ""))
        if not email:
            raise OAuthError(
                "profile_failed", "Profile has no email address", provider=self.provider_type.value
            )
        return MailboxProfile(email=email.lower(), display_name=email)

    async def revoke_token(self, token: str) -> bool:
        """Revoke an access or refresh token.

        This invalidates the token and removes the user's consent.

        Args:
            token: Access token or refresh token to revoke.

        Returns:
            True if Google confirmed the revocation.
        """
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.REVOKE_URL, params={"token": token})
        except httpx.TransportError:
            return False
        return response.status_code == 200
