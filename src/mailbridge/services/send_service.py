"""Outbound mail through an integration's provider."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from mailbridge.core.exceptions import AuthExpired, IntegrationInactive, IntegrationNotFound

if TYPE_CHECKING:
    from mailbridge.providers.registry import ProviderRegistry
    from mailbridge.repositories.base import IntegrationStore
    from mailbridge.services.connection_service import ConnectionService

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SendResult:
    """Outcome of a send.

    Attributes:
        provider_message_id: Provider id of the sent message, or a status
            token for providers that return none.
        threaded: Whether the message was filed into the original thread.
    """

    provider_message_id: str
    threaded: bool


class SendService:
    """Sends replies and new messages through the right adapter."""

    def __init__(
        self,
        store: IntegrationStore,
        registry: ProviderRegistry,
        connections: ConnectionService,
    ) -> None:
        self._store = store
        self._registry = registry
        self._connections = connections

    async def send_reply(
        self,
        integration_id: UUID,
        to: str,
        subject: str | None,
        body: str,
        reply_to_id: str | None = None,
    ) -> SendResult:
        """Send an HTML message from an integration's mailbox.

        When *reply_to_id* names a synced message, the provider-specific
        reference for it is used (Gmail threads by thread id).

        Raises:
            IntegrationNotFound: If the integration does not exist.
            IntegrationInactive: If the integration is not active.
            AuthExpired: After flagging the integration ``needs_reauth``.
        """
        integration = await self._store.get_integration(integration_id)
        if integration is None:
            raise IntegrationNotFound(integration_id)
        if not integration.is_active:
            raise IntegrationInactive(integration_id, integration.state.value)

        adapter = self._registry.get_adapter(integration.provider)

        reference = reply_to_id
        if reply_to_id and adapter.supports_threading:
            stored = await self._store.get_message(integration_id, reply_to_id)
            if stored is not None:
                reference = adapter.reply_reference(stored)

        try:
            provider_message_id = await adapter.send_message(
                integration, to, subject, body, reply_to_id=reference
            )
        except AuthExpired as e:
            await self._connections.mark_needs_reauth(integration_id, e.message)
            raise

        threaded = bool(reply_to_id) and adapter.supports_threading
        await logger.ainfo(
            "message_sent",
            integration_id=str(integration_id),
            provider=integration.provider.value,
            threaded=threaded,
        )
        return SendResult(provider_message_id=provider_message_id, threaded=threaded)
