"""Microsoft Graph client for mailbox operations."""

from __future__ import annotations

from typing import Any

from mailbridge.integrations.base import BaseApiClient
from mailbridge.schemas.integration import ProviderType


def build_graph_message(to: str, subject: str | None, body_html: str) -> dict[str, Any]:
    """Build a Graph ``message`` resource with an HTML body and one recipient."""
    message: dict[str, Any] = {
        "body": {"contentType": "HTML", "content": body_html},
        "toRecipients": [{"emailAddress": {"address": to}}],
    }
    if subject is not None:
        message["subject"] = subject
    return message


class GraphClient(BaseApiClient):
    """Client for the Graph ``/me`` mail endpoints.

    Attributes:
        BASE_URL: Graph v1.0 root.
        PAGE_SIZE: Largest ``$top`` requested per page.
    """

    BASE_URL = "https://graph.microsoft.com/v1.0"
    PROVIDER = ProviderType.OUTLOOK.value
    PAGE_SIZE = 100

    async def list_messages(self, top: int = 50) -> list[dict[str, Any]]:
        """List the newest messages, following ``@odata.nextLink`` until *top*.

        Args:
            top: Maximum number of messages to return.

        Returns:
            Raw Graph message resources, newest first.
        """
        params: dict[str, str] | None = {
            "$top": str(max(1, min(top, self.PAGE_SIZE))),
            "$orderby": "receivedDateTime desc",
        }
        url = "me/messages"
        messages: list[dict[str, Any]] = []

        while len(messages) < top:
            result = await self._request("GET", url, params)
            page = result.get("value", [])
            if isinstance(page, list):
                messages.extend(item for item in page if isinstance(item, dict))

            next_link = result.get("@odata.nextLink")
            if not next_link:
                break
            # nextLink already carries the query string
            url, params = str(next_link), None

        return messages[:top]

    async def send_mail(self, message: dict[str, Any]) -> None:
        """Send a new message and save it to Sent Items."""
        await self._request(
            "POST",
            "me/sendMail",
            json_body={"message": message, "saveToSentItems": True},
        )

    async def reply(self, message_id: str, message: dict[str, Any]) -> None:
        """Reply to an existing message so Graph keeps the conversation."""
        await self._request("POST", f"me/messages/{message_id}/reply", json_body={"message": message})

    async def get_me(self) -> dict[str, Any]:
        """Get the signed-in user's profile."""
        return await self._request("GET", "me")
