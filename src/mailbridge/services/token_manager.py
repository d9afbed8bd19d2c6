"""Access-token lifecycle for OAuth integrations.

Every OAuth provider call goes through :meth:`TokenManager.run`, which walks
an explicit refresh cycle::

    fresh ──(expired or 401)──> needs_refresh ──> refreshed ──(401 seen)──> retried
                                      │                                      │
                                      └────────────> failed <────(401 again)─┘

A refresh is single-flight per integration: concurrent callers holding the
same stale token wait on one refresh and reuse its result.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import TypeVar
from uuid import UUID

import structlog

from mailbridge.auth.oauth import OAuthFlowManager, TokenBundle
from mailbridge.core.config import RetryConfig
from mailbridge.core.exceptions import (
    AuthExpired,
    CredentialError,
    IntegrationNotFound,
    TokenExpiredError,
    UnsupportedProvider,
)
from mailbridge.core.locks import KeyedLock
from mailbridge.core.retry import with_retry
from mailbridge.core.vault import CredentialVault
from mailbridge.repositories.base import IntegrationStore
from mailbridge.schemas.integration import Integration, ProviderType

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class RefreshPhase(str, Enum):
    """Phase of one provider call's token refresh cycle."""

    FRESH = "fresh"
    NEEDS_REFRESH = "needs_refresh"
    REFRESHED = "refreshed"
    RETRIED = "retried"
    FAILED = "failed"


_NEXT_PHASES: dict[RefreshPhase, frozenset[RefreshPhase]] = {
    RefreshPhase.FRESH: frozenset({RefreshPhase.NEEDS_REFRESH}),
    RefreshPhase.NEEDS_REFRESH: frozenset({RefreshPhase.REFRESHED, RefreshPhase.FAILED}),
    # A proactively refreshed token can still be rejected once.
    RefreshPhase.REFRESHED: frozenset({RefreshPhase.RETRIED, RefreshPhase.NEEDS_REFRESH}),
    RefreshPhase.RETRIED: frozenset({RefreshPhase.FAILED}),
    RefreshPhase.FAILED: frozenset(),
}


@dataclass
class RefreshCycle:
    """Recorded phases of one call through :meth:`TokenManager.run`."""

    integration_id: UUID
    history: list[RefreshPhase] = field(default_factory=lambda: [RefreshPhase.FRESH])

    @property
    def phase(self) -> RefreshPhase:
        return self.history[-1]

    @property
    def retried(self) -> bool:
        return RefreshPhase.RETRIED in self.history

    def advance(self, phase: RefreshPhase) -> None:
        """Move to *phase*.

        Raises:
            RuntimeError: If the move is not part of the cycle.
        """
        if phase not in _NEXT_PHASES[self.phase]:
            raise RuntimeError(f"Refresh cycle cannot move from {self.phase.value} to {phase.value}")
        self.history.append(phase)


class TokenManager:
    """Supplies valid access tokens to provider calls."""

    def __init__(
        self,
        store: IntegrationStore,
        vault: CredentialVault,
        oauth_managers: Mapping[ProviderType, OAuthFlowManager],
        locks: KeyedLock | None = None,
        retry_config: RetryConfig | None = None,
    ) -> None:
        """Initialize the token manager.

        Args:
            store: Integration storage, read for current credentials.
            vault: Decrypts and encrypts stored token bundles.
            oauth_managers: OAuth flow per provider, used to refresh.
            locks: Per-integration locks guarding refreshes.
            retry_config: Backoff for token endpoint outages.
        """
        self._store = store
        self._vault = vault
        self._oauth = dict(oauth_managers)
        self._locks = locks or KeyedLock()
        self._retry_config = retry_config or RetryConfig()
        self.last_cycle: dict[UUID, RefreshCycle] = {}

    def load_tokens(self, integration: Integration) -> TokenBundle:
        """Decrypt the token bundle stored on an integration.

        Raises:
            CredentialError: If the integration has no usable tokens.
        """
        if not integration.encrypted_tokens:
            raise CredentialError(
                f"Integration {integration.id} has no stored tokens",
                provider=integration.provider.value,
            )
        return TokenBundle.from_dict(self._vault.decrypt_json(integration.encrypted_tokens))

    async def run(
        self,
        integration: Integration,
        operation: Callable[[str], Awaitable[T]],
    ) -> T:
        """Run a provider call with a valid access token.

        The token is refreshed first when it is already expired. If the
        provider still rejects it, the token is refreshed once more and the
        call retried once.

        Args:
            integration: OAuth integration the call acts for.
            operation: Coroutine function taking the access token.

        Returns:
            Whatever *operation* returns.

        Raises:
            AuthExpired: If the refresh token is rejected or the provider
                rejects a freshly refreshed token twice.
            CredentialError: If stored tokens cannot be decrypted.
        """
        cycle = RefreshCycle(integration.id)
        self.last_cycle[integration.id] = cycle

        current = await self._store.get_integration(integration.id)
        if current is None:
            raise IntegrationNotFound(integration.id)
        bundle = self.load_tokens(current)

        if bundle.is_expired():
            bundle = await self._refresh_in_cycle(cycle, current, bundle.access_token)

        while True:
            try:
                return await operation(bundle.access_token)
            except TokenExpiredError as e:
                if cycle.retried:
                    cycle.advance(RefreshPhase.FAILED)
                    await logger.awarning(
                        "token_rejected_after_refresh",
                        integration_id=str(integration.id),
                        provider=integration.provider.value,
                    )
                    raise AuthExpired(
                        "Provider rejected a freshly refreshed access token",
                        provider=integration.provider.value,
                    ) from e
                bundle = await self._refresh_in_cycle(cycle, current, bundle.access_token)
                cycle.advance(RefreshPhase.RETRIED)

    async def _refresh_in_cycle(
        self,
        cycle: RefreshCycle,
        integration: Integration,
        stale_access_token: str,
    ) -> TokenBundle:
        cycle.advance(RefreshPhase.NEEDS_REFRESH)
        try:
            bundle = await self.refresh(integration, stale_access_token)
        except AuthExpired:
            cycle.advance(RefreshPhase.FAILED)
            raise
        cycle.advance(RefreshPhase.REFRESHED)
        return bundle

    async def refresh(self, integration: Integration, stale_access_token: str) -> TokenBundle:
        """Refresh tokens once per stale access token.

        Callers that arrive while another refresh of the same integration is
        in flight wait for it and get the stored result.

        Raises:
            AuthExpired: If the provider rejects the refresh token.
            UnsupportedProvider: If no OAuth flow is configured for the provider.
        """
        manager = self._oauth.get(integration.provider)
        if manager is None:
            raise UnsupportedProvider(integration.provider.value)

        async with self._locks.hold(integration.id):
            current = await self._store.get_integration(integration.id)
            if current is None:
                raise IntegrationNotFound(integration.id)
            bundle = self.load_tokens(current)

            if bundle.access_token != stale_access_token and not bundle.is_expired():
                await logger.adebug("token_refresh_reused", integration_id=str(integration.id))
                return bundle

            refresh = with_retry(self._retry_config)(manager.refresh_tokens)
            refreshed: TokenBundle = await refresh(bundle.refresh_token)

            await self._store.update_integration_credentials(
                integration.id,
                self._vault.encrypt_json(refreshed.to_dict()),
                refreshed.expires_at,
            )
            await logger.ainfo(
                "token_refreshed",
                integration_id=str(integration.id),
                provider=integration.provider.value,
                expires_at=refreshed.expires_at.isoformat(),
            )
            return refreshed
