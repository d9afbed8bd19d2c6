"""Microsoft identity platform OAuth2 implementation for Graph mail access."""

from __future__ import annotations

from mailbridge.auth.oauth import MailboxProfile, OAuthFlowManager
from mailbridge.core.exceptions import OAuthError, ProviderRequestError, TokenExpiredError
from mailbridge.integrations.outlook import GraphClient
from mailbridge.schemas.integration import ProviderType


class MicrosoftOAuth(OAuthFlowManager):
    """Microsoft OAuth2 flow requesting Graph read and send access.

    Uses the multi-tenant ``common`` authority so both work/school and
    personal accounts can connect. ``offline_access`` is what makes the
    identity platform issue a refresh token.
    """

    AUTHORITY = "https://login.microsoftonline.com/common"
    AUTHORIZATION_URL = f"{AUTHORITY}/oauth2/v2.0/authorize"
    TOKEN_URL = f"{AUTHORITY}/oauth2/v2.0/token"
    SCOPES = [
        "offline_access",
        "https://graph.microsoft.com/User.Read",
        "https://graph.microsoft.com/Mail.Read",
        "https://graph.microsoft.com/Mail.Send",
    ]

    @property
    def provider_type(self) -> ProviderType:
        """Get the provider type identifier."""
        return ProviderType.OUTLOOK

    def _authorization_params(self) -> dict[str, str]:
        return {"response_mode": "query"}

    def _token_params(self) -> dict[str, str]:
        # The v2 endpoint expects the scopes on every token request.
        return {"scope": " ".join(self.SCOPES)}

    async def fetch_profile(self, access_token: str) -> MailboxProfile:
        """Fetch the signed-in user's mailbox address from Graph.

        Raises:
            OAuthError: If the profile request is rejected.
            ProviderUnavailable: On network or server-side failure.
        """
        async with GraphClient(access_token, **self._api_client_options()) as client:
            try:
                profile = await client.get_me()
            except (TokenExpiredError, ProviderRequestError) as e:
                raise OAuthError(
                    "profile_failed", e.message, provider=self.provider_type.value
                ) from e

        email = str(profile.get("mail") or profile.get("userPrincipalName") or "")
        if not email:
            raise OAuthError(
                "profile_failed", "Profile has no mailbox address", provider=self.provider_type.value
            )
        return MailboxProfile(email=email.lower(), display_name=profile.get("displayName"))
