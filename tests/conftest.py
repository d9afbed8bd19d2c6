"""Shared test fixtures for mailbridge."""

from __future__ import annotations

import asyncio
import base64
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from mailbridge.auth.oauth import TokenBundle
from mailbridge.core.config import RetryConfig, Settings
from mailbridge.core.vault import CredentialVault, SecretCipher
from mailbridge.repositories.memory import InMemoryIntegrationStore
from mailbridge.schemas.integration import Integration, IntegrationState, ProviderType


def b64url(text: str) -> str:
    """Encode text the way Gmail encodes body data (unpadded base64url)."""
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def gmail_message(
    msg_id: str = "msg-1",
    *,
    thread_id: str = "thread-1",
    labels: list[str] | None = None,
    text: str | None = "Hello from the plain part",
    html: str | None = "<p>Hello from the html part</p>",
    sender: str = '"Jane Doe" <Jane@Example.COM>',
    to: str = "Owner <owner@example.com>",
    subject: str = "Quarterly numbers",
) -> dict[str, Any]:
    """Build a Gmail ``messages.get`` (format=full) response."""
    parts = []
    if text is not None:
        parts.append({"mimeType": "text/plain", "body": {"data": b64url(text)}})
    if html is not None:
        parts.append({"mimeType": "text/html", "body": {"data": b64url(html)}})
    return {
        "id": msg_id,
        "threadId": thread_id,
        "labelIds": labels if labels is not None else ["INBOX", "UNREAD"],
        "snippet": "Hello from the plain part",
        "internalDate": "1704103200000",
        "payload": {
            "mimeType": "multipart/alternative",
            "headers": [
                {"name": "From", "value": sender},
                {"name": "To", "value": to},
                {"name": "Subject", "value": subject},
                {"name": "Date", "value": "Mon, 1 Jan 2024 10:00:00 +0000"},
            ],
            "body": {"size": 0},
            "parts": parts,
        },
    }


def graph_message(
    msg_id: str = "AAMk-1",
    *,
    content_type: str = "html",
    content: str = "<p>Hi there</p>",
    importance: str = "normal",
    is_read: bool = False,
) -> dict[str, Any]:
    """Build a Graph ``/me/messages`` item."""
    return {
        "id": msg_id,
        "conversationId": "conv-1",
        "subject": "Lunch?",
        "bodyPreview": "Hi there",
        "body": {"contentType": content_type, "content": content},
        "from": {"emailAddress": {"name": "Sam Smith", "address": "Sam@Contoso.com"}},
        "toRecipients": [{"emailAddress": {"name": "Owner", "address": "owner@contoso.com"}}],
        "receivedDateTime": "2024-01-02T09:30:00Z",
        "sentDateTime": "2024-01-02T09:29:58Z",
        "isRead": is_read,
        "importance": importance,
        "hasAttachments": False,
        "categories": ["Blue category"],
    }


class FakeOAuthFlow:
    """Provider OAuth flow that returns scripted refresh results.

    Each refresh pops the next result; the last one repeats. An exception
    result is raised instead of returned.
    """

    def __init__(self, *results: TokenBundle | Exception) -> None:
        self.results = list(results)
        self.refresh_calls: list[str] = []
        self.revoked: list[str] = []

    async def refresh_tokens(self, refresh_token: str) -> TokenBundle:
        self.refresh_calls.append(refresh_token)
        # Yield so concurrent callers can pile up behind the refresh lock.
        await asyncio.sleep(0.01)
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result

    async def revoke_token(self, token: str) -> bool:
        self.revoked.append(token)
        return True


@pytest.fixture
def fast_retry() -> RetryConfig:
    """Retry config that never sleeps."""
    return RetryConfig(max_attempts=3, initial_wait_seconds=0, max_wait_seconds=0, multiplier=0)


@pytest.fixture
def settings(fast_retry: RetryConfig) -> Settings:
    """Settings with both OAuth providers configured and a two-key keyring."""
    return Settings(
        _env_file=None,
        gmail_client_id="gmail-client",
        gmail_client_secret="gmail-secret",
        outlook_client_id="outlook-client",
        outlook_client_secret="outlook-secret",
        base_url="https://app.example.com/",
        encryption_keys="1:old-secret,2:new-secret",
        retry=fast_retry,
        log_json=False,
    )


@pytest.fixture
def vault() -> CredentialVault:
    return CredentialVault(SecretCipher({1: "test-secret"}))


@pytest.fixture
def store() -> InMemoryIntegrationStore:
    return InMemoryIntegrationStore()


@pytest.fixture
def token_bundle() -> Callable[..., TokenBundle]:
    """Factory for token bundles that expire relative to now."""

    def make(
        access_token: str = "access-1",
        refresh_token: str = "refresh-1",
        expires_in: int = 3600,
    ) -> TokenBundle:
        return TokenBundle(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=datetime.now(UTC) + timedelta(seconds=expires_in),
        )

    return make


@pytest.fixture
def make_integration(
    store: InMemoryIntegrationStore,
    vault: CredentialVault,
    token_bundle: Callable[..., TokenBundle],
) -> Callable[..., Any]:
    """Async factory that stores an integration with encrypted credentials."""

    async def make(
        provider: ProviderType = ProviderType.GMAIL,
        state: IntegrationState = IntegrationState.ACTIVE,
        user_id: str = "user-1",
        email: str = "owner@example.com",
        tokens: TokenBundle | None = None,
    ) -> Integration:
        integration = Integration(
            user_id=user_id,
            provider=provider,
            email=email,
            display_name="Owner",
            state=state,
        )
        if provider is ProviderType.SMTP:
            integration.smtp_host = "smtp.example.com"
            integration.smtp_port = 587
            integration.smtp_username = email
            integration.smtp_password = vault.encrypt("relay-password")
            integration.smtp_security = "tls"
        else:
            bundle = tokens or token_bundle()
            integration.encrypted_tokens = vault.encrypt_json(bundle.to_dict())
            integration.token_expires_at = bundle.expires_at
        return await store.create_integration(integration)

    return make


@pytest.fixture
def gmail_raw() -> Callable[..., dict[str, Any]]:
    """Factory for Gmail ``messages.get`` responses."""
    return gmail_message


@pytest.fixture
def graph_raw() -> Callable[..., dict[str, Any]]:
    """Factory for Graph message resources."""
    return graph_message


@pytest.fixture
def encode_b64url() -> Callable[[str], str]:
    return b64url


@pytest.fixture
def fake_oauth() -> type[FakeOAuthFlow]:
    return FakeOAuthFlow
