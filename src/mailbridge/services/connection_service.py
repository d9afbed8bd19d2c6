"""Integration lifecycle: connect, reconnect, flag for re-auth, disconnect."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any
from uuid import UUID

import structlog

from mailbridge.auth.oauth import OAuthFlowManager, TokenBundle
from mailbridge.core.exceptions import (
    IntegrationNotFound,
    MailBridgeError,
    OAuthError,
    UnsupportedProvider,
)
from mailbridge.core.vault import CredentialVault
from mailbridge.schemas.integration import (
    Integration,
    IntegrationState,
    ProviderType,
    SmtpSettings,
    ensure_transition,
)

if TYPE_CHECKING:
    from mailbridge.providers.smtp import SmtpRelayAdapter
    from mailbridge.repositories.base import IntegrationStore

logger = structlog.get_logger(__name__)


class ConnectionService:
    """Owns every integration state change.

    States move ``pending_auth -> active``, ``active <-> needs_reauth`` and
    any state ``-> disabled``; disabled integrations are deleted.
    """

    def __init__(
        self,
        store: IntegrationStore,
        vault: CredentialVault,
        oauth_managers: Mapping[ProviderType, OAuthFlowManager],
        relay: SmtpRelayAdapter | None = None,
    ) -> None:
        """Initialize connection service.

        Args:
            store: Integration storage.
            vault: Encrypts tokens and relay passwords before storage.
            oauth_managers: Configured OAuth flows by provider.
            relay: SMTP relay adapter used to test relay settings.
        """
        self._store = store
        self._vault = vault
        self._oauth = dict(oauth_managers)
        self._relay = relay

    def oauth_manager(self, provider: ProviderType | str) -> OAuthFlowManager:
        """Get the OAuth flow for a provider tag.

        Raises:
            UnsupportedProvider: If the provider has no configured OAuth flow.
        """
        try:
            manager = self._oauth.get(ProviderType(provider))
        except ValueError:
            manager = None
        if manager is None:
            raise UnsupportedProvider(str(getattr(provider, "value", provider)))
        return manager

    def authorization_url(self, provider: ProviderType | str, user_id: str) -> str:
        """Build the consent URL that starts an OAuth connection."""
        return self.oauth_manager(provider).authorization_url(user_id)

    async def get_owned(self, integration_id: UUID, user_id: str) -> Integration:
        """Load an integration that belongs to *user_id*.

        Raises:
            IntegrationNotFound: If it does not exist or belongs to someone else.
        """
        integration = await self._store.get_integration(integration_id)
        if integration is None or integration.user_id != user_id:
            raise IntegrationNotFound(integration_id)
        return integration

    async def list_integrations(self, user_id: str) -> list[Integration]:
        return await self._store.list_integrations(user_id)

    async def transition(
        self,
        integration: Integration,
        target: IntegrationState,
        **fields: Any,
    ) -> Integration:
        """Move an integration to *target*, persisting any extra fields.

        Raises:
            InvalidStateTransition: If the move is not allowed.
        """
        ensure_transition(integration.state, target)
        updated = await self._store.update_integration(integration.id, state=target, **fields)
        await logger.ainfo(
            "integration_state_changed",
            integration_id=str(integration.id),
            provider=integration.provider.value,
            from_state=integration.state.value,
            to_state=target.value,
        )
        return updated

    async def complete_oauth_callback(
        self,
        provider: ProviderType | str,
        code: str | None,
        state: str | None,
    ) -> Integration:
        """Finish an OAuth connection from the provider redirect.

        Exchanges the code, looks up the mailbox address, and either creates
        a new integration or reactivates the user's existing one for the same
        mailbox.

        Args:
            provider: Provider tag from the callback path.
            code: Authorization code.
            state: Platform user id passed through the consent screen.

        Returns:
            The active integration.

        Raises:
            OAuthError: If code or state is missing or the exchange fails.
            UnsupportedProvider: If the provider has no OAuth flow.
        """
        manager = self.oauth_manager(provider)
        if not code or not state:
            raise OAuthError(
                "invalid_request",
                "Missing authorization code or state",
                provider=manager.provider_type.value,
            )

        tokens = await manager.exchange_code(code)
        profile = await manager.fetch_profile(tokens.access_token)
        credentials = {
            "encrypted_tokens": self._vault.encrypt_json(tokens.to_dict()),
            "token_expires_at": tokens.expires_at,
            "display_name": profile.display_name,
            "error_message": None,
        }

        existing = await self._store.find_integration(state, manager.provider_type, profile.email)
        if existing is not None:
            return await self.transition(existing, IntegrationState.ACTIVE, **credentials)

        pending = await self._store.create_integration(
            Integration(
                user_id=state,
                provider=manager.provider_type,
                email=profile.email,
                display_name=profile.display_name,
                encrypted_tokens=credentials["encrypted_tokens"],
                token_expires_at=tokens.expires_at,
            )
        )
        return await self.transition(pending, IntegrationState.ACTIVE)

    async def connect_smtp(self, user_id: str, settings: SmtpSettings) -> Integration:
        """Verify relay settings and store them as an active integration.

        Nothing is stored when the connection test fails.

        Raises:
            RelayConnectionError: If the relay test fails.
            UnsupportedProvider: If no relay adapter is configured.
        """
        if self._relay is None:
            raise UnsupportedProvider(ProviderType.SMTP.value)

        await self._relay.test_connection(settings)

        email = str(settings.email).lower()
        fields: dict[str, Any] = {
            "display_name": settings.display_name,
            "smtp_host": settings.smtp_host,
            "smtp_port": settings.smtp_port,
            "smtp_username": settings.smtp_username,
            "smtp_password": self._vault.encrypt(settings.smtp_password.get_secret_value()),
            "smtp_security": settings.smtp_security,
        }

        existing = await self._store.find_integration(user_id, ProviderType.SMTP, email)
        if existing is not None:
            return await self.transition(
                existing, IntegrationState.ACTIVE, error_message=None, **fields
            )

        pending = await self._store.create_integration(
            Integration(user_id=user_id, provider=ProviderType.SMTP, email=email, **fields)
        )
        return await self.transition(pending, IntegrationState.ACTIVE)

    async def mark_needs_reauth(self, integration_id: UUID, reason: str) -> Integration:
        """Flag an integration whose credentials the provider no longer accepts."""
        integration = await self._store.get_integration(integration_id)
        if integration is None:
            raise IntegrationNotFound(integration_id)
        if integration.state is IntegrationState.NEEDS_REAUTH:
            return integration
        return await self.transition(
            integration, IntegrationState.NEEDS_REAUTH, error_message=reason
        )

    async def disconnect(self, integration_id: UUID, user_id: str) -> None:
        """Disable an integration, revoke its tokens if possible, and delete it.

        Raises:
            IntegrationNotFound: If the integration is not the user's.
        """
        integration = await self.get_owned(integration_id, user_id)
        disabled = await self.transition(integration, IntegrationState.DISABLED)

        if disabled.is_oauth and disabled.encrypted_tokens:
            await self._revoke(disabled)

        await self._store.delete_integration(integration_id)
        await logger.ainfo(
            "integration_deleted",
            integration_id=str(integration_id),
            provider=integration.provider.value,
        )

    async def _revoke(self, integration: Integration) -> None:
        try:
            manager = self.oauth_manager(integration.provider)
            bundle = TokenBundle.from_dict(self._vault.decrypt_json(integration.encrypted_tokens or ""))
            revoked = await manager.revoke_token(bundle.refresh_token)
        except MailBridgeError as e:
            await logger.awarning(
                "token_revoke_failed",
                integration_id=str(integration.id),
                error=e.message,
            )
            return
        await logger.ainfo("token_revoked", integration_id=str(integration.id), revoked=revoked)
