"""Outlook provider adapter backed by Microsoft Graph."""

from __future__ import annotations

import httpx
import structlog

from mailbridge.core.config import RetryConfig
from mailbridge.core.exceptions import MalformedMessage
from mailbridge.integrations.outlook.client import GraphClient, build_graph_message
from mailbridge.integrations.throttle import TokenBucket
from mailbridge.normalizer.outlook import normalize_graph_message
from mailbridge.providers.base import FetchResult, ProviderAdapter
from mailbridge.schemas.integration import Integration, ProviderType
from mailbridge.services.token_manager import TokenManager

logger = structlog.get_logger(__name__)

# Graph returns 202 with no body for sends.
SENT_STATUS = "sent"


class OutlookAdapter(ProviderAdapter):
    """Outlook and Microsoft 365 mailboxes via Graph."""

    def __init__(
        self,
        token_manager: TokenManager,
        requests_per_second: int = 10,
        burst: int = 5,
        retry_config: RetryConfig | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._tokens = token_manager
        self._requests_per_second = requests_per_second
        self._burst = burst
        self._retry_config = retry_config or RetryConfig()
        self._timeout = timeout
        self._transport = transport

    @property
    def provider_type(self) -> ProviderType:
        return ProviderType.OUTLOOK

    def _client(self, access_token: str) -> GraphClient:
        return GraphClient(
            access_token,
            throttle=TokenBucket(self._requests_per_second, burst=self._burst),
            retry_config=self._retry_config,
            timeout=self._timeout,
            transport=self._transport,
        )

    async def fetch_messages(
        self,
        integration: Integration,
        max_results: int = 50,
    ) -> FetchResult:
        """List the newest messages; the listing already carries bodies."""

        async def fetch(access_token: str) -> FetchResult:
            async with self._client(access_token) as client:
                raw_messages = await client.list_messages(top=max_results)

            result = FetchResult()
            for raw in raw_messages:
                try:
                    result.messages.append(normalize_graph_message(raw, integration))
                except MalformedMessage as e:
                    await logger.awarning(
                        "outlook_message_skipped",
                        integration_id=str(integration.id),
                        message_id=e.message_id,
                        field=e.field,
                        error=e.message,
                    )
                    result.skipped_ids.append(e.message_id or str(raw.get("id", "")))
            return result

        return await self._tokens.run(integration, fetch)

    async def send_message(
        self,
        integration: Integration,
        to: str,
        subject: str | None,
        body: str,
        reply_to_id: str | None = None,
    ) -> str:
        """Send via ``/me/sendMail``, or ``/me/messages/{id}/reply`` for replies."""
        message = build_graph_message(to, subject, body)

        async def send(access_token: str) -> None:
            async with self._client(access_token) as client:
                if reply_to_id:
                    await client.reply(reply_to_id, message)
                else:
                    await client.send_mail(message)

        await self._tokens.run(integration, send)
        await logger.ainfo(
            "outlook_message_sent",
            integration_id=str(integration.id),
            threaded=reply_to_id is not None,
        )
        return SENT_STATUS
