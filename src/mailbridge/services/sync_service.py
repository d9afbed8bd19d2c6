"""Inbound sync from a provider mailbox into storage."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from mailbridge.core.exceptions import (
    AuthExpired,
    IntegrationInactive,
    IntegrationNotFound,
    MailBridgeError,
    MalformedMessage,
    ProviderRequestError,
    ProviderUnavailable,
)
from mailbridge.core.locks import KeyedLock
from mailbridge.schemas.integration import IntegrationState

if TYPE_CHECKING:
    from mailbridge.providers.registry import ProviderRegistry
    from mailbridge.repositories.base import IntegrationStore
    from mailbridge.schemas.message import NormalizedMessage
    from mailbridge.services.connection_service import ConnectionService

logger = structlog.get_logger(__name__)


@dataclass
class SyncResult:
    """Result of syncing one integration.

    Attributes:
        integration_id: Integration that was synced.
        upserted: Messages written (new or refreshed).
        skipped: Messages that could not be normalized or stored.
        created: Messages that did not exist before this run.
    """

    integration_id: UUID
    upserted: int = 0
    skipped: int = 0
    created: int = 0


@dataclass
class UserSyncReport:
    """Per-integration outcome of syncing everything a user has connected."""

    results: list[SyncResult] = field(default_factory=list)
    failures: dict[UUID, str] = field(default_factory=dict)

    @property
    def upserted(self) -> int:
        return sum(result.upserted for result in self.results)


class SyncService:
    """Pulls recent messages for an integration and upserts them.

    Typical usage:
        service = SyncService(store, registry, connections)
        result = await service.sync_integration(integration_id)
        print(result.upserted, result.skipped)
    """

    def __init__(
        self,
        store: IntegrationStore,
        registry: ProviderRegistry,
        connections: ConnectionService,
        locks: KeyedLock | None = None,
        max_results: int = 50,
    ) -> None:
        """Initialize sync service.

        Args:
            store: Integration and message storage.
            registry: Adapter lookup by provider tag.
            connections: Used to flag integrations that need re-auth.
            locks: Serializes syncs of the same integration.
            max_results: Default number of messages per sync.
        """
        self._store = store
        self._registry = registry
        self._connections = connections
        self._locks = locks or KeyedLock()
        self._max_results = max_results

    async def sync_integration(
        self,
        integration_id: UUID,
        max_results: int | None = None,
    ) -> SyncResult:
        """Sync one integration.

        Upserts are idempotent on ``(integration_id, provider_message_id)``,
        so running twice over unchanged provider data creates no rows.

        Args:
            integration_id: Integration to sync.
            max_results: Messages to fetch (default: service setting).

        Returns:
            Counts of upserted, skipped and newly created messages.

        Raises:
            IntegrationNotFound: If the integration does not exist.
            IntegrationInactive: If the integration is not active.
            AuthExpired: After flagging the integration ``needs_reauth``.
            ProviderUnavailable: After recording the error on the integration.
            ProviderRequestError: After recording the rejection on the integration.
        """
        async with self._locks.hold(integration_id):
            integration = await self._store.get_integration(integration_id)
            if integration is None:
                raise IntegrationNotFound(integration_id)
            if not integration.is_active:
                raise IntegrationInactive(integration_id, integration.state.value)

            adapter = self._registry.get_adapter(integration.provider)
            log = logger.bind(integration_id=str(integration_id), provider=integration.provider.value)

            try:
                fetched = await adapter.fetch_messages(
                    integration, max_results=max_results or self._max_results
                )
            except AuthExpired as e:
                await log.awarning("sync_auth_expired", error=e.message)
                await self._connections.mark_needs_reauth(integration_id, e.message)
                raise
            except (ProviderUnavailable, ProviderRequestError) as e:
                await log.awarning(
                    "sync_provider_failed", error=e.message, status_code=e.status_code
                )
                await self._store.update_integration(integration_id, error_message=e.message)
                raise

            result = SyncResult(integration_id=integration_id, skipped=fetched.skipped)
            for message in fetched.messages:
                try:
                    created = await self._store.upsert_normalized_message(message)
                except MalformedMessage as e:
                    await log.awarning(
                        "sync_message_rejected",
                        message_id=message.provider_message_id,
                        error=e.message,
                    )
                    result.skipped += 1
                    continue
                result.upserted += 1
                result.created += int(created)

            await self._store.update_integration(
                integration_id,
                last_sync_at=datetime.now(UTC),
                error_message=None,
            )
            await log.ainfo(
                "sync_completed",
                upserted=result.upserted,
                skipped=result.skipped,
                created=result.created,
            )
            return result

    async def sync_user(self, user_id: str) -> UserSyncReport:
        """Sync every active, fetchable integration of a user.

        One integration failing does not stop the others; its error is
        reported in ``failures``.
        """
        report = UserSyncReport()
        integrations = await self._store.list_integrations(user_id, state=IntegrationState.ACTIVE)

        for integration in integrations:
            try:
                if not self._registry.get_adapter(integration.provider).supports_fetch:
                    continue
                report.results.append(await self.sync_integration(integration.id))
            except MailBridgeError as e:
                report.failures[integration.id] = e.message
                await logger.awarning(
                    "user_sync_integration_failed",
                    user_id=user_id,
                    integration_id=str(integration.id),
                    error=e.message,
                )

        await logger.ainfo(
            "user_sync_completed",
            user_id=user_id,
            synced=len(report.results),
            failed=len(report.failures),
        )
        return report

    async def list_messages(
        self,
        user_id: str,
        integration_id: UUID | None = None,
        limit: int = 50,
    ) -> list[NormalizedMessage]:
        """Return a user's synced messages, newest first.

        Args:
            user_id: Owner of the messages.
            integration_id: Restrict to one integration when given.
            limit: Maximum number of messages.
        """
        return await self._store.list_messages(user_id, integration_id=integration_id, limit=limit)
