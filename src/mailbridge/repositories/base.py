"""Storage contract for integrations and synchronized messages."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

from mailbridge.schemas.integration import Integration, IntegrationState, ProviderType
from mailbridge.schemas.message import NormalizedMessage


class IntegrationStore(Protocol):
    """Persistence boundary used by the services.

    Implementations must make ``upsert_normalized_message`` idempotent on
    ``(integration_id, provider_message_id)`` and refresh only ``is_read``
    and ``is_important`` when the record already exists.
    """

    async def get_integration(self, integration_id: UUID) -> Integration | None: ...

    async def list_integrations(
        self,
        user_id: str,
        state: IntegrationState | None = None,
    ) -> list[Integration]: ...

    async def find_integration(
        self,
        user_id: str,
        provider: ProviderType,
        email: str,
    ) -> Integration | None: ...

    async def create_integration(self, integration: Integration) -> Integration: ...

    async def update_integration(self, integration_id: UUID, **fields: Any) -> Integration: ...

    async def update_integration_credentials(
        self,
        integration_id: UUID,
        encrypted_tokens: str,
        token_expires_at: datetime | None,
    ) -> None: ...

    async def delete_integration(self, integration_id: UUID) -> bool: ...

    async def upsert_normalized_message(self, record: NormalizedMessage) -> bool:
        """Insert or refresh a message. Returns True if a new row was created."""
        ...

    async def get_message(
        self,
        integration_id: UUID,
        provider_message_id: str,
    ) -> NormalizedMessage | None: ...

    async def list_messages(
        self,
        user_id: str,
        integration_id: UUID | None = None,
        limit: int = 50,
    ) -> list[NormalizedMessage]:
        """List a user's synced messages, newest ``received_at`` first."""
        ...
