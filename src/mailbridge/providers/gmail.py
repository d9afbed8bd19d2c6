"""Gmail provider adapter."""

from __future__ import annotations

import base64
from email.message import EmailMessage

import httpx
import structlog

from mailbridge.core.config import RetryConfig
from mailbridge.core.exceptions import MalformedMessage, ProviderRequestError
from mailbridge.integrations.gmail.client import GmailClient
from mailbridge.integrations.throttle import TokenBucket
from mailbridge.normalizer.gmail import normalize_gmail_message
from mailbridge.providers.base import FetchResult, ProviderAdapter
from mailbridge.schemas.integration import Integration, ProviderType
from mailbridge.schemas.message import NormalizedMessage
from mailbridge.services.token_manager import TokenManager

logger = structlog.get_logger(__name__)

INBOX_QUERY = "in:inbox"


def build_raw_message(to: str, subject: str | None, body_html: str) -> str:
    """Encode an HTML message for ``messages.send``.

    Returns:
        Unpadded base64url encoding of the RFC 822 message.
    """
    message = EmailMessage()
    message["To"] = to
    message["Subject"] = subject or ""
    message.set_content(body_html, subtype="html", charset="utf-8")
    return base64.urlsafe_b64encode(message.as_bytes()).decode("ascii").rstrip("=")


class GmailAdapter(ProviderAdapter):
    """Gmail via the REST API, authenticated through the token manager.

    Example:
        adapter = GmailAdapter(token_manager)
        result = await adapter.fetch_messages(integration, max_results=50)
    """

    def __init__(
        self,
        token_manager: TokenManager,
        requests_per_second: int = 10,
        burst: int = 5,
        retry_config: RetryConfig | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the adapter.

        Args:
            token_manager: Supplies and refreshes access tokens.
            requests_per_second: Sustained request rate per client.
            burst: Requests a client may send back to back.
            retry_config: Backoff for provider outages.
            timeout: Per-request timeout in seconds.
            transport: Optional httpx transport, used to stub the network.
        """
        self._tokens = token_manager
        self._requests_per_second = requests_per_second
        self._burst = burst
        self._retry_config = retry_config or RetryConfig()
        self._timeout = timeout
        self._transport = transport

    @property
    def provider_type(self) -> ProviderType:
        return ProviderType.GMAIL

    def _client(self, access_token: str) -> GmailClient:
        return GmailClient(
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
        """List inbox messages, then fetch each in full and normalize it."""

        async def fetch(access_token: str) -> FetchResult:
            result = FetchResult()
            async with self._client(access_token) as client:
                async for ref in client.list_all_messages(query=INBOX_QUERY, max_messages=max_results):
                    try:
                        raw = await client.get_message(ref.id, format="full")
                        result.messages.append(normalize_gmail_message(raw, integration))
                    except MalformedMessage as e:
                        await logger.awarning(
                            "gmail_message_skipped",
                            integration_id=str(integration.id),
                            message_id=ref.id,
                            field=e.field,
                            error=e.message,
                        )
                        result.skipped_ids.append(ref.id)
                    except ProviderRequestError as e:
                        # Deleted between list and get.
                        if e.status_code != 404:
                            raise
                        await logger.ainfo(
                            "gmail_message_vanished",
                            integration_id=str(integration.id),
                            message_id=ref.id,
                        )
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
        """Send through ``messages.send``; a reply is filed under ``threadId``."""
        raw = build_raw_message(to, subject, body)

        async def send(access_token: str) -> str:
            async with self._client(access_token) as client:
                sent = await client.send_message(raw, thread_id=reply_to_id)
            return str(sent.get("id", ""))

        message_id = await self._tokens.run(integration, send)
        await logger.ainfo(
            "gmail_message_sent",
            integration_id=str(integration.id),
            message_id=message_id,
            threaded=reply_to_id is not None,
        )
        return message_id

    def reply_reference(self, message: NormalizedMessage) -> str:
        """Gmail threads replies by thread id, not message id."""
        return message.thread_id or message.provider_message_id
