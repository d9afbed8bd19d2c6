"""Request and response bodies for the HTTP API."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from mailbridge.schemas.integration import IntegrationState, ProviderType


class AuthUrlResponse(BaseModel):
    """Consent URL that starts an OAuth connection."""

    auth_url: str


class CallbackResponse(BaseModel):
    """Integration created or reactivated by an OAuth callback."""

    integration_id: UUID
    provider: ProviderType
    email: str
    state: IntegrationState


class SyncResponse(BaseModel):
    """Counts from one integration sync."""

    integration_id: UUID
    upserted: int
    skipped: int
    created: int


class UserSyncResponse(BaseModel):
    """Outcome of syncing all of a user's integrations."""

    results: list[SyncResponse] = Field(default_factory=list)
    failures: dict[UUID, str] = Field(default_factory=dict)


class SendRequest(BaseModel):
    """Outbound message from an integration's mailbox."""

    to: EmailStr
    subject: str | None = Field(default=None, max_length=998)
    body: str = Field(min_length=1, description="HTML body")
    reply_to_id: str | None = Field(
        default=None,
        description="Provider message id being replied to",
    )


class SendResponse(BaseModel):
    """Result of a send."""

    provider_message_id: str
    threaded: bool


class MessageResponse(BaseModel):
    """A synced message as stored in the normalized table."""

    model_config = ConfigDict(from_attributes=True)

    integration_id: UUID
    provider_message_id: str
    thread_id: str | None = None
    from_email: str
    from_name: str | None = None
    to_email: str
    to_name: str | None = None
    subject: str | None = None
    snippet: str
    body_text: str | None = None
    body_html: str | None = None
    is_read: bool
    is_important: bool
    has_attachments: bool
    labels: list[str] = Field(default_factory=list)
    received_at: datetime
    sent_at: datetime
