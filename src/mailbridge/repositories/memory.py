"""In-process integration store."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from mailbridge.core.exceptions import IntegrationNotFound
from mailbridge.schemas.integration import Integration, IntegrationState, ProviderType
from mailbridge.schemas.message import NormalizedMessage

# Fields a resync is allowed to change on an existing message.
MUTABLE_MESSAGE_FIELDS = ("is_read", "is_important")


class InMemoryIntegrationStore:
    """Dict-backed store for tests and single-process deployments.

    Records are copied on the way in and out so callers cannot mutate stored
    state without going through the store.
    """

    def __init__(self) -> None:
        self._integrations: dict[UUID, Integration] = {}
        self._messages: dict[tuple[UUID, str], NormalizedMessage] = {}
        self._lock = asyncio.Lock()

    async def get_integration(self, integration_id: UUID) -> Integration | None:
        integration = self._integrations.get(integration_id)
        return integration.model_copy(deep=True) if integration else None

    async def list_integrations(
        self,
        user_id: str,
        state: IntegrationState | None = None,
    ) -> list[Integration]:
        found = [
            integration.model_copy(deep=True)
            for integration in self._integrations.values()
            if integration.user_id == user_id and (state is None or integration.state is state)
        ]
        return sorted(found, key=lambda i: i.created_at)

    async def find_integration(
        self,
        user_id: str,
        provider: ProviderType,
        email: str,
    ) -> Integration | None:
        for integration in self._integrations.values():
            if (
                integration.user_id == user_id
                and integration.provider is provider
                and integration.email == email.lower()
            ):
                return integration.model_copy(deep=True)
        return None

    async def create_integration(self, integration: Integration) -> Integration:
        async with self._lock:
            self._integrations[integration.id] = integration.model_copy(deep=True)
        return integration.model_copy(deep=True)

    async def update_integration(self, integration_id: UUID, **fields: Any) -> Integration:
        async with self._lock:
            current = self._integrations.get(integration_id)
            if current is None:
                raise IntegrationNotFound(integration_id)
            updated = current.model_copy(update={**fields, "updated_at": datetime.now(UTC)})
            self._integrations[integration_id] = updated
        return updated.model_copy(deep=True)

    async def update_integration_credentials(
        self,
        integration_id: UUID,
        encrypted_tokens: str,
        token_expires_at: datetime | None,
    ) -> None:
        await self.update_integration(
            integration_id,
            encrypted_tokens=encrypted_tokens,
            token_expires_at=token_expires_at,
        )

    async def delete_integration(self, integration_id: UUID) -> bool:
        async with self._lock:
            if self._integrations.pop(integration_id, None) is None:
                return False
            for key in [key for key in self._messages if key[0] == integration_id]:
                del self._messages[key]
        return True

    async def upsert_normalized_message(self, record: NormalizedMessage) -> bool:
        async with self._lock:
            existing = self._messages.get(record.natural_key)
            if existing is None:
                self._messages[record.natural_key] = record.model_copy(deep=True)
                return True
            changes = {name: getattr(record, name) for name in MUTABLE_MESSAGE_FIELDS}
            self._messages[record.natural_key] = existing.model_copy(update=changes)
            return False

    async def get_message(
        self,
        integration_id: UUID,
        provider_message_id: str,
    ) -> NormalizedMessage | None:
        message = self._messages.get((integration_id, provider_message_id))
        return message.model_copy(deep=True) if message else None

    async def list_messages(
        self,
        user_id: str,
        integration_id: UUID | None = None,
        limit: int = 50,
    ) -> list[NormalizedMessage]:
        found = [
            message
            for message in self._messages.values()
            if message.user_id == user_id
            and (integration_id is None or message.integration_id == integration_id)
        ]
        found.sort(key=lambda message: message.received_at, reverse=True)
        return [message.model_copy(deep=True) for message in found[:limit]]

    def message_count(self, integration_id: UUID | None = None) -> int:
        """Count stored messages, optionally for one integration."""
        if integration_id is None:
            return len(self._messages)
        return sum(1 for key in self._messages if key[0] == integration_id)
