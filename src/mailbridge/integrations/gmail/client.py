"""Gmail API client for email operations."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

from mailbridge.integrations.base import BaseApiClient
from mailbridge.integrations.gmail.models import GmailMessageRef
from mailbridge.schemas.integration import ProviderType


class GmailClient(BaseApiClient):
    """Client for Gmail API operations.

    Typical usage:
        async with GmailClient(access_token="...") as client:
            async for ref in client.list_all_messages(query="in:inbox", max_messages=50):
                raw = await client.get_message(ref.id)

    Attributes:
        BASE_URL: Gmail API base URL for the authenticated mailbox.
    """

    BASE_URL = "https://gmail.googleapis.com/gmail/v1/users/me"
    PROVIDER = ProviderType.GMAIL.value

    async def list_messages(
        self,
        max_results: int = 100,
        page_token: str | None = None,
        query: str | None = None,
    ) -> tuple[list[GmailMessageRef], str | None]:
        """List message IDs with pagination.

        Args:
            max_results: Maximum number of results per page (1-500).
            page_token: Token for fetching next page.
            query: Gmail search query (e.g., "in:inbox").

        Returns:
            Tuple of (list of message refs, next page token or None).
        """
        params: dict[str, str] = {"maxResults": str(max(1, min(max_results, 500)))}
        if page_token:
            params["pageToken"] = page_token
        if query:
            params["q"] = query

        result = await self._request("GET", "messages", params)

        messages = []
        raw_messages = result.get("messages", [])
        if isinstance(raw_messages, list):
            for msg in raw_messages:
                if isinstance(msg, dict) and msg.get("id"):
                    messages.append(
                        GmailMessageRef(id=str(msg["id"]), thread_id=str(msg.get("threadId", "")))
                    )

        next_page = result.get("nextPageToken")
        return messages, str(next_page) if next_page else None

    async def list_all_messages(
        self,
        query: str | None = None,
        max_messages: int | None = None,
    ) -> AsyncIterator[GmailMessageRef]:
        """Iterate over messages with automatic pagination.

        Args:
            query: Gmail search query.
            max_messages: Maximum total messages to return (None for all).

        Yields:
            GmailMessageRef for each message, newest first.
        """
        page_token = None
        count = 0
        page_size = min(max_messages, 500) if max_messages else 500

        while True:
            refs, next_token = await self.list_messages(
                max_results=page_size,
                page_token=page_token,
                query=query,
            )

            for ref in refs:
                yield ref
                count += 1
                if max_messages and count >= max_messages:
                    return

            if not next_token:
                break
            page_token = next_token

    async def get_message(
        self,
        message_id: str,
        format: str = "full",  # noqa: A002
    ) -> dict[str, Any]:
        """Get a single message by ID.

        Args:
            message_id: Gmail message ID.
            format: Response format ("minimal", "full", "raw", "metadata").

        Returns:
            Raw Gmail API message response.
        """
        return await self._request("GET", f"messages/{message_id}", {"format": format})

    async def send_message(self, raw: str, thread_id: str | None = None) -> dict[str, Any]:
        """Send a base64url-encoded RFC 822 message.

        Args:
            raw: Encoded message.
            thread_id: Thread to file the message under, for replies.

        Returns:
            The sent message resource (``id``, ``threadId``, ``labelIds``).
        """
        body: dict[str, Any] = {"raw": raw}
        if thread_id:
            body["threadId"] = thread_id
        return await self._request("POST", "messages/send", json_body=body)

    async def get_profile(self) -> dict[str, Any]:
        """Get the authenticated user's Gmail profile."""
        return await self._request("GET", "profile")
