"""Integration Pydantic schemas and lifecycle states."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Literal
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, EmailStr, Field, SecretStr

from mailbridge.core.exceptions import InvalidStateTransition


class ProviderType(str, Enum):
    """Supported mailbox providers."""

    GMAIL = "gmail"
    OUTLOOK = "outlook"
    SMTP = "smtp"


class IntegrationState(str, Enum):
    """Lifecycle state of a connected mailbox."""

    PENDING_AUTH = "pending_auth"
    ACTIVE = "active"
    NEEDS_REAUTH = "needs_reauth"
    DISABLED = "disabled"


# Re-authorizing an already active mailbox is allowed and keeps it active.
ALLOWED_TRANSITIONS: dict[IntegrationState, frozenset[IntegrationState]] = {
    IntegrationState.PENDING_AUTH: frozenset({IntegrationState.ACTIVE, IntegrationState.DISABLED}),
    IntegrationState.ACTIVE: frozenset(
        {IntegrationState.ACTIVE, IntegrationState.NEEDS_REAUTH, IntegrationState.DISABLED}
    ),
    IntegrationState.NEEDS_REAUTH: frozenset({IntegrationState.ACTIVE, IntegrationState.DISABLED}),
    IntegrationState.DISABLED: frozenset(),
}


def ensure_transition(current: IntegrationState, target: IntegrationState) -> None:
    """Validate a lifecycle transition.

    Raises:
        InvalidStateTransition: If *target* is not reachable from *current*.
    """
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidStateTransition(current.value, target.value)


SmtpSecurity = Literal["ssl", "tls", "none"]


class Integration(BaseModel):
    """One connected mailbox owned by one platform user.

    OAuth integrations carry ``encrypted_tokens`` (an encrypted JSON token
    bundle). SMTP relay integrations carry the ``smtp_*`` fields, with the
    password encrypted.
    """

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: str
    provider: ProviderType
    email: str
    display_name: str | None = None
    state: IntegrationState = IntegrationState.PENDING_AUTH

    encrypted_tokens: str | None = None
    token_expires_at: datetime | None = None

    smtp_host: str | None = None
    smtp_port: int | None = None
    smtp_username: str | None = None
    smtp_password: str | None = None
    smtp_security: SmtpSecurity | None = None

    last_sync_at: datetime | None = None
    error_message: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_active(self) -> bool:
        """Check if the integration can sync and send."""
        return self.state is IntegrationState.ACTIVE

    @property
    def is_oauth(self) -> bool:
        """Check if the integration authenticates with OAuth tokens."""
        return self.provider in (ProviderType.GMAIL, ProviderType.OUTLOOK)

    @property
    def sender(self) -> str:
        """Display form of the mailbox address for From headers."""
        return self.display_name or self.email


class SmtpSettings(BaseModel):
    """User-supplied SMTP relay settings, validated before activation."""

    email: EmailStr
    display_name: str | None = None
    smtp_host: str = Field(min_length=1)
    smtp_port: int = Field(ge=1, le=65535)
    smtp_username: str = Field(min_length=1)
    smtp_password: SecretStr
    smtp_security: SmtpSecurity = "tls"


class IntegrationResponse(BaseModel):
    """Integration as exposed to clients, without any secret material."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    provider: ProviderType
    email: str
    display_name: str | None
    state: IntegrationState
    last_sync_at: datetime | None
    error_message: str | None
    created_at: datetime
