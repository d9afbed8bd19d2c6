"""Provider adapter registry keyed by provider tag."""

from __future__ import annotations

import httpx

from mailbridge.core.config import Settings
from mailbridge.core.exceptions import UnsupportedProvider
from mailbridge.core.vault import CredentialVault
from mailbridge.providers.base import ProviderAdapter
from mailbridge.providers.gmail import GmailAdapter
from mailbridge.providers.outlook import OutlookAdapter
from mailbridge.providers.smtp import SmtpRelayAdapter
from mailbridge.schemas.integration import ProviderType
from mailbridge.services.token_manager import TokenManager


class ProviderRegistry:
    """Looks up the adapter for an integration's provider.

    Example:
        registry = ProviderRegistry()
        registry.register(GmailAdapter(token_manager))
        adapter = registry.get_adapter("gmail")
    """

    def __init__(self) -> None:
        self._adapters: dict[ProviderType, ProviderAdapter] = {}

    def register(self, adapter: ProviderAdapter) -> None:
        """Register an adapter, replacing any previous one for its provider."""
        self._adapters[adapter.provider_type] = adapter

    def get_adapter(self, provider: ProviderType | str) -> ProviderAdapter:
        """Get the adapter for a provider tag.

        Raises:
            UnsupportedProvider: If the tag is unknown or has no adapter.
        """
        try:
            adapter = self._adapters.get(ProviderType(provider))
        except ValueError:
            adapter = None
        if adapter is None:
            raise UnsupportedProvider(str(getattr(provider, "value", provider)))
        return adapter

    @property
    def providers(self) -> list[ProviderType]:
        return list(self._adapters)


def build_default_registry(
    settings: Settings,
    token_manager: TokenManager,
    vault: CredentialVault,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ProviderRegistry:
    """Register Gmail, Outlook and the SMTP relay with configured limits."""
    registry = ProviderRegistry()
    options = {
        "requests_per_second": settings.requests_per_second,
        "burst": settings.request_burst,
        "retry_config": settings.retry,
        "timeout": settings.http_timeout_seconds,
        "transport": transport,
    }
    registry.register(GmailAdapter(token_manager, **options))
    registry.register(OutlookAdapter(token_manager, **options))
    registry.register(SmtpRelayAdapter(vault, timeout=settings.http_timeout_seconds))
    return registry
