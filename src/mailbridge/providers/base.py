"""Provider adapter interface.

Every mailbox provider is exposed through one ``ProviderAdapter`` so the sync
and send services never branch on the provider tag.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass, field

from mailbridge.schemas.integration import Integration, ProviderType
from mailbridge.schemas.message import NormalizedMessage


@dataclass
class FetchResult:
    """Messages fetched in one pass, plus the ones that failed to normalize.

    Attributes:
        messages: Normalized messages in provider order (newest first).
        skipped_ids: Provider IDs of messages that were malformed.
    """

    messages: list[NormalizedMessage] = field(default_factory=list)
    skipped_ids: list[str] = field(default_factory=list)

    @property
    def skipped(self) -> int:
        return len(self.skipped_ids)

    @classmethod
    def empty(cls) -> FetchResult:
        return cls()


class ProviderAdapter(abc.ABC):
    """Fetch and send operations for one provider.

    Attributes:
        supports_fetch: Whether the provider exposes an inbox to sync.
        supports_threading: Whether ``reply_to_id`` files a send into the
            original conversation.
    """

    supports_fetch: bool = True
    supports_threading: bool = True

    @property
    @abc.abstractmethod
    def provider_type(self) -> ProviderType:
        """Provider this adapter serves."""
        ...

    @abc.abstractmethod
    async def fetch_messages(
        self,
        integration: Integration,
        max_results: int = 50,
    ) -> FetchResult:
        """Fetch and normalize the newest inbox messages.

        A message that fails to normalize is recorded in
        ``FetchResult.skipped_ids`` instead of failing the batch.

        Raises:
            AuthExpired: If credentials can no longer be refreshed.
            ProviderUnavailable: If the provider stayed unreachable.
        """
        ...

    @abc.abstractmethod
    async def send_message(
        self,
        integration: Integration,
        to: str,
        subject: str | None,
        body: str,
        reply_to_id: str | None = None,
    ) -> str:
        """Send an HTML message, threaded under *reply_to_id* if supported.

        Returns:
            A provider message id, or a status token where the provider
            returns none.
        """
        ...

    def reply_reference(self, message: NormalizedMessage) -> str:
        """Identifier this provider expects as ``reply_to_id`` for *message*."""
        return message.provider_message_id
