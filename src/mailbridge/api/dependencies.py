"""FastAPI dependency injection providers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated

import httpx
from fastapi import Depends, Header, Request

from mailbridge.api.exceptions import UnauthorizedError
from mailbridge.auth.google import GoogleOAuth
from mailbridge.auth.microsoft import MicrosoftOAuth
from mailbridge.auth.oauth import OAuthFlowManager
from mailbridge.core.config import Settings
from mailbridge.core.locks import KeyedLock
from mailbridge.core.vault import CredentialVault
from mailbridge.providers.registry import ProviderRegistry, build_default_registry
from mailbridge.providers.smtp import SmtpRelayAdapter
from mailbridge.repositories.base import IntegrationStore
from mailbridge.schemas.integration import ProviderType
from mailbridge.services.connection_service import ConnectionService
from mailbridge.services.send_service import SendService
from mailbridge.services.sync_service import SyncService
from mailbridge.services.token_manager import TokenManager


@dataclass
class ServiceContainer:
    """Wired services shared by every request."""

    settings: Settings
    store: IntegrationStore
    vault: CredentialVault
    registry: ProviderRegistry
    connections: ConnectionService
    sync: SyncService
    send: SendService


def build_oauth_managers(settings: Settings) -> dict[ProviderType, OAuthFlowManager]:
    """Create OAuth flows for each provider with configured credentials."""
    managers: dict[ProviderType, OAuthFlowManager] = {}
    if settings.has_gmail:
        managers[ProviderType.GMAIL] = GoogleOAuth(
            client_id=settings.gmail_client_id or "",
            client_secret=settings.gmail_client_secret or "",
            redirect_uri=settings.callback_url(ProviderType.GMAIL.value),
            timeout=settings.http_timeout_seconds,
        )
    if settings.has_outlook:
        managers[ProviderType.OUTLOOK] = MicrosoftOAuth(
            client_id=settings.outlook_client_id or "",
            client_secret=settings.outlook_client_secret or "",
            redirect_uri=settings.callback_url(ProviderType.OUTLOOK.value),
            timeout=settings.http_timeout_seconds,
        )
    return managers


def build_container(
    settings: Settings,
    store: IntegrationStore,
    registry: ProviderRegistry | None = None,
    oauth_managers: dict[ProviderType, OAuthFlowManager] | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ServiceContainer:
    """Wire the services around a store.

    Args:
        settings: Deployment settings.
        store: Integration storage.
        registry: Adapter registry (default: Gmail, Outlook and SMTP relay).
        oauth_managers: OAuth flows (default: built from settings).
        transport: Optional httpx transport for the default adapters.
    """
    vault = CredentialVault.from_settings(settings)
    managers = oauth_managers if oauth_managers is not None else build_oauth_managers(settings)
    locks = KeyedLock()

    if registry is None:
        tokens = TokenManager(store, vault, managers, locks=locks, retry_config=settings.retry)
        registry = build_default_registry(settings, tokens, vault, transport=transport)

    relay: SmtpRelayAdapter | None = None
    if ProviderType.SMTP in registry.providers:
        adapter = registry.get_adapter(ProviderType.SMTP)
        relay = adapter if isinstance(adapter, SmtpRelayAdapter) else None

    connections = ConnectionService(store, vault, managers, relay=relay)
    return ServiceContainer(
        settings=settings,
        store=store,
        vault=vault,
        registry=registry,
        connections=connections,
        sync=SyncService(
            store,
            registry,
            connections,
            locks=KeyedLock(),
            max_results=settings.sync_max_results,
        ),
        send=SendService(store, registry, connections),
    )


def get_container(request: Request) -> ServiceContainer:
    """Get the service container built at startup."""
    container: ServiceContainer | None = getattr(request.app.state, "container", None)
    if container is None:
        raise RuntimeError("Service container not initialized. App startup incomplete.")
    return container


def get_user_id(
    x_user_id: Annotated[str | None, Header(alias="X-User-ID")] = None,
) -> str:
    """Extract the platform user id set by the upstream auth layer.

    Raises:
        UnauthorizedError: If the header is missing.
    """
    if not x_user_id:
        raise UnauthorizedError("Missing X-User-ID header")
    return x_user_id


def get_connection_service(
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> ConnectionService:
    return container.connections


def get_sync_service(
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> SyncService:
    return container.sync


def get_send_service(
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> SendService:
    return container.send


# Type aliases for dependency injection
UserIdDep = Annotated[str, Depends(get_user_id)]
ConnectionServiceDep = Annotated[ConnectionService, Depends(get_connection_service)]
SyncServiceDep = Annotated[SyncService, Depends(get_sync_service)]
SendServiceDep = Annotated[SendService, Depends(get_send_service)]
