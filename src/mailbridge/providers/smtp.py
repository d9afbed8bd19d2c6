"""Password-authenticated SMTP relay adapter (send only)."""

from __future__ import annotations

from collections.abc import Callable

import structlog

from mailbridge.core.exceptions import CredentialError
from mailbridge.core.vault import CredentialVault
from mailbridge.integrations.smtp.client import (
    SmtpRelayClient,
    SmtpRelayConfig,
    build_relay_message,
)
from mailbridge.providers.base import FetchResult, ProviderAdapter
from mailbridge.schemas.integration import Integration, ProviderType, SmtpSettings

logger = structlog.get_logger(__name__)


class SmtpRelayAdapter(ProviderAdapter):
    """Sends through a user's SMTP relay. There is no inbox to read."""

    supports_fetch = False
    supports_threading = False

    def __init__(
        self,
        vault: CredentialVault,
        timeout: float = 30.0,
        client_factory: Callable[[SmtpRelayConfig], SmtpRelayClient] = SmtpRelayClient,
    ) -> None:
        self._vault = vault
        self._timeout = timeout
        self._client_factory = client_factory

    @property
    def provider_type(self) -> ProviderType:
        return ProviderType.SMTP

    async def fetch_messages(
        self,
        integration: Integration,
        max_results: int = 50,
    ) -> FetchResult:
        """Relays are send-only; the result is always empty."""
        return FetchResult.empty()

    async def send_message(
        self,
        integration: Integration,
        to: str,
        subject: str | None,
        body: str,
        reply_to_id: str | None = None,
    ) -> str:
        """Send over a fresh relay session.

        Returns:
            The generated ``Message-ID``.
        """
        if reply_to_id:
            await logger.awarning(
                "smtp_reply_unthreaded",
                integration_id=str(integration.id),
                reply_to_id=reply_to_id,
            )

        client = self._client_factory(self._relay_config(integration))
        message = build_relay_message(integration.email, integration.display_name, to, subject, body)
        message_id = await client.send(message)
        await logger.ainfo(
            "smtp_message_sent",
            integration_id=str(integration.id),
            message_id=message_id,
        )
        return message_id

    async def test_connection(self, settings: SmtpSettings) -> None:
        """Log in to a relay before it is saved.

        Raises:
            RelayConnectionError: If the relay is unreachable or rejects login.
        """
        config = SmtpRelayConfig(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password.get_secret_value(),
            security=settings.smtp_security,
            timeout=self._timeout,
        )
        await self._client_factory(config).verify()

    def _relay_config(self, integration: Integration) -> SmtpRelayConfig:
        if not (
            integration.smtp_host
            and integration.smtp_port
            and integration.smtp_username
            and integration.smtp_password
        ):
            raise CredentialError(
                f"Integration {integration.id} is missing SMTP settings",
                provider=ProviderType.SMTP.value,
            )
        return SmtpRelayConfig(
            host=integration.smtp_host,
            port=integration.smtp_port,
            username=integration.smtp_username,
            password=self._vault.decrypt(integration.smtp_password),
            security=integration.smtp_security or "tls",
            timeout=self._timeout,
        )
