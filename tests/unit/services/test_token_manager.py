"""Tests for the access-token refresh cycle."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any
from uuid import uuid4

import pytest

from mailbridge.auth.oauth import TokenBundle
from mailbridge.core.config import RetryConfig
from mailbridge.core.exceptions import (
    AuthExpired,
    CredentialError,
    IntegrationNotFound,
    ProviderUnavailable,
    TokenExpiredError,
    UnsupportedProvider,
)
from mailbridge.core.vault import CredentialVault
from mailbridge.repositories import InMemoryIntegrationStore
from mailbridge.schemas.integration import Integration, ProviderType
from mailbridge.services import RefreshCycle, RefreshPhase, TokenManager

P = RefreshPhase


@pytest.fixture
def manager_factory(
    store: InMemoryIntegrationStore,
    vault: CredentialVault,
    fast_retry: RetryConfig,
) -> Callable[[Any], TokenManager]:
    def make(oauth: Any) -> TokenManager:
        managers = {ProviderType.GMAIL: oauth} if oauth is not None else {}
        return TokenManager(store, vault, managers, retry_config=fast_retry)

    return make


def _reject(token: str) -> Callable[[str], Any]:
    """Provider call that rejects *token* with a 401 and echoes any other."""

    async def call(access_token: str) -> str:
        if access_token == token:
            raise TokenExpiredError("401", provider="gmail")
        return access_token

    return call


async def _echo(access_token: str) -> str:
    return access_token


async def _always_401(access_token: str) -> str:
    raise TokenExpiredError("401", provider="gmail")


class TestRefreshCycle:
    """Tests for RefreshCycle."""

    def test_starts_fresh(self) -> None:
        """A cycle starts in the fresh phase."""
        cycle = RefreshCycle(uuid4())
        assert cycle.phase is P.FRESH
        assert not cycle.retried

    def test_rejects_skipping_refresh(self) -> None:
        """A call cannot be retried without a refresh."""
        cycle = RefreshCycle(uuid4())
        with pytest.raises(RuntimeError):
            cycle.advance(P.RETRIED)

    def test_failed_is_terminal(self) -> None:
        """Nothing follows failure."""
        cycle = RefreshCycle(uuid4())
        cycle.advance(P.NEEDS_REFRESH)
        cycle.advance(P.FAILED)
        with pytest.raises(RuntimeError):
            cycle.advance(P.NEEDS_REFRESH)


class TestRun:
    """Tests for TokenManager.run."""

    @pytest.mark.asyncio
    async def test_fresh_token_used_directly(
        self,
        manager_factory: Callable[[Any], TokenManager],
        make_integration: Callable[..., Any],
        fake_oauth: Any,
        token_bundle: Callable[..., TokenBundle],
    ) -> None:
        """A valid token is passed straight to the call."""
        oauth = fake_oauth(token_bundle("access-2"))
        manager = manager_factory(oauth)
        integration = await make_integration()

        assert await manager.run(integration, _echo) == "access-1"
        assert oauth.refresh_calls == []
        assert manager.last_cycle[integration.id].history == [P.FRESH]

    @pytest.mark.asyncio
    async def test_expired_token_refreshed_first(
        self,
        manager_factory: Callable[[Any], TokenManager],
        make_integration: Callable[..., Any],
        fake_oauth: Any,
        token_bundle: Callable[..., TokenBundle],
        store: InMemoryIntegrationStore,
        vault: CredentialVault,
    ) -> None:
        """An expired token is refreshed and persisted before the call."""
        oauth = fake_oauth(token_bundle("access-2", "refresh-2"))
        manager = manager_factory(oauth)
        integration = await make_integration(tokens=token_bundle(expires_in=-10))

        assert await manager.run(integration, _echo) == "access-2"
        assert oauth.refresh_calls == ["refresh-1"]
        assert manager.last_cycle[integration.id].history == [P.FRESH, P.NEEDS_REFRESH, P.REFRESHED]

        stored = await store.get_integration(integration.id)
        assert stored is not None
        assert vault.decrypt_json(stored.encrypted_tokens or "")["refresh_token"] == "refresh-2"
        assert stored.token_expires_at is not None

    @pytest.mark.asyncio
    async def test_401_refreshes_and_retries_once(
        self,
        manager_factory: Callable[[Any], TokenManager],
        make_integration: Callable[..., Any],
        fake_oauth: Any,
        token_bundle: Callable[..., TokenBundle],
    ) -> None:
        """needs_refresh -> refreshed -> retried on a rejected token."""
        manager = manager_factory(fake_oauth(token_bundle("access-2")))
        integration = await make_integration()

        assert await manager.run(integration, _reject("access-1")) == "access-2"
        assert manager.last_cycle[integration.id].history == [
            P.FRESH,
            P.NEEDS_REFRESH,
            P.REFRESHED,
            P.RETRIED,
        ]

    @pytest.mark.asyncio
    async def test_second_401_fails(
        self,
        manager_factory: Callable[[Any], TokenManager],
        make_integration: Callable[..., Any],
        fake_oauth: Any,
        token_bundle: Callable[..., TokenBundle],
    ) -> None:
        """A freshly refreshed token rejected again raises AuthExpired."""
        oauth = fake_oauth(token_bundle("access-2"))
        manager = manager_factory(oauth)
        integration = await make_integration()

        with pytest.raises(AuthExpired):
            await manager.run(integration, _always_401)

        assert manager.last_cycle[integration.id].phase is P.FAILED
        assert len(oauth.refresh_calls) == 1

    @pytest.mark.asyncio
    async def test_revoked_refresh_token(
        self,
        manager_factory: Callable[[Any], TokenManager],
        make_integration: Callable[..., Any],
        fake_oauth: Any,
        token_bundle: Callable[..., TokenBundle],
    ) -> None:
        """A rejected refresh token fails the cycle with AuthExpired."""
        manager = manager_factory(fake_oauth(AuthExpired("invalid_grant", provider="gmail")))
        integration = await make_integration(tokens=token_bundle(expires_in=-10))

        with pytest.raises(AuthExpired):
            await manager.run(integration, _echo)

        assert manager.last_cycle[integration.id].history == [P.FRESH, P.NEEDS_REFRESH, P.FAILED]

    @pytest.mark.asyncio
    async def test_refresh_retried_when_unavailable(
        self,
        manager_factory: Callable[[Any], TokenManager],
        make_integration: Callable[..., Any],
        fake_oauth: Any,
        token_bundle: Callable[..., TokenBundle],
    ) -> None:
        """Token endpoint outages are retried with backoff."""
        oauth = fake_oauth(ProviderUnavailable("503"), token_bundle("access-2"))
        manager = manager_factory(oauth)
        integration = await make_integration(tokens=token_bundle(expires_in=-10))

        assert await manager.run(integration, _echo) == "access-2"
        assert len(oauth.refresh_calls) == 2

    @pytest.mark.asyncio
    async def test_provider_without_oauth(
        self,
        manager_factory: Callable[[Any], TokenManager],
        make_integration: Callable[..., Any],
        token_bundle: Callable[..., TokenBundle],
    ) -> None:
        """Refreshing without a configured flow raises UnsupportedProvider."""
        manager = manager_factory(None)
        integration = await make_integration(tokens=token_bundle(expires_in=-10))

        with pytest.raises(UnsupportedProvider):
            await manager.run(integration, _echo)

    @pytest.mark.asyncio
    async def test_deleted_integration(
        self,
        manager_factory: Callable[[Any], TokenManager],
        make_integration: Callable[..., Any],
        store: InMemoryIntegrationStore,
    ) -> None:
        """Calls for a deleted integration fail."""
        manager = manager_factory(None)
        integration = await make_integration()
        await store.delete_integration(integration.id)

        with pytest.raises(IntegrationNotFound):
            await manager.run(integration, _echo)


class TestSingleFlight:
    """Tests for per-integration refresh coalescing."""

    @pytest.mark.asyncio
    async def test_concurrent_refreshes_coalesce(
        self,
        manager_factory: Callable[[Any], TokenManager],
        make_integration: Callable[..., Any],
        fake_oauth: Any,
        token_bundle: Callable[..., TokenBundle],
    ) -> None:
        """Callers holding the same stale token share one refresh."""
        oauth = fake_oauth(token_bundle("access-2"), token_bundle("access-3"))
        manager = manager_factory(oauth)
        integration = await make_integration()

        first, second = await asyncio.gather(
            manager.refresh(integration, "access-1"),
            manager.refresh(integration, "access-1"),
        )

        assert len(oauth.refresh_calls) == 1
        assert first.access_token == second.access_token == "access-2"

    @pytest.mark.asyncio
    async def test_concurrent_runs_with_expired_token(
        self,
        manager_factory: Callable[[Any], TokenManager],
        make_integration: Callable[..., Any],
        fake_oauth: Any,
        token_bundle: Callable[..., TokenBundle],
    ) -> None:
        """Parallel calls on an expired token trigger a single refresh."""
        oauth = fake_oauth(token_bundle("access-2"), token_bundle("access-3"))
        manager = manager_factory(oauth)
        integration = await make_integration(tokens=token_bundle(expires_in=-10))

        results = await asyncio.gather(*(manager.run(integration, _echo) for _ in range(3)))

        assert results == ["access-2"] * 3
        assert len(oauth.refresh_calls) == 1


class TestLoadTokens:
    """Tests for load_tokens."""

    def test_missing_tokens(self, vault: CredentialVault, store: InMemoryIntegrationStore) -> None:
        """Integrations without tokens raise CredentialError."""
        integration = Integration(user_id="u", provider=ProviderType.GMAIL, email="a@b.com")
        with pytest.raises(CredentialError):
            TokenManager(store, vault, {}).load_tokens(integration)

    def test_undecryptable_tokens(
        self, vault: CredentialVault, store: InMemoryIntegrationStore
    ) -> None:
        """Tokens encrypted under an unknown key raise CredentialError."""
        integration = Integration(
            user_id="u",
            provider=ProviderType.GMAIL,
            email="a@b.com",
            encrypted_tokens="7$000000000000000000000000:00",
        )
        with pytest.raises(CredentialError):
            TokenManager(store, vault, {}).load_tokens(integration)
