"""Normalized message schema shared by every provider."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

SNIPPET_LENGTH = 200


class NormalizedMessage(BaseModel):
    """One inbound email in the platform's unified schema.

    The natural key is ``(integration_id, provider_message_id)``. Only
    ``is_read`` and ``is_important`` change on a resync upsert.
    """

    model_config = ConfigDict(from_attributes=True)

    integration_id: UUID
    user_id: str
    provider_message_id: str = Field(min_length=1)
    thread_id: str | None = None

    from_email: str = ""
    from_name: str | None = None
    to_email: str = ""
    to_name: str | None = None

    subject: str | None = None
    body_text: str | None = None
    body_html: str | None = None
    snippet: str = Field(default="", max_length=SNIPPET_LENGTH)

    is_read: bool = False
    is_important: bool = False
    has_attachments: bool = False
    labels: list[str] = Field(default_factory=list)

    received_at: datetime
    sent_at: datetime

    @field_validator("from_email", "to_email")
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        """Lowercase addresses so dedup and matching are case-insensitive."""
        return v.strip().lower()

    @property
    def natural_key(self) -> tuple[UUID, str]:
        """Upsert key for this message."""
        return self.integration_id, self.provider_message_id
