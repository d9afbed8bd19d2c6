"""Pydantic schemas for mailbridge."""

from mailbridge.schemas.api import (
    AuthUrlResponse,
    CallbackResponse,
    SendRequest,
    SendResponse,
    SyncResponse,
    UserSyncResponse,
)
from mailbridge.schemas.integration import (
    ALLOWED_TRANSITIONS,
    Integration,
    IntegrationResponse,
    IntegrationState,
    ProviderType,
    SmtpSettings,
    ensure_transition,
)
from mailbridge.schemas.message import SNIPPET_LENGTH, NormalizedMessage

__all__ = [
    "ALLOWED_TRANSITIONS",
    "AuthUrlResponse",
    "CallbackResponse",
    "Integration",
    "IntegrationResponse",
    "IntegrationState",
    "NormalizedMessage",
    "ProviderType",
    "SNIPPET_LENGTH",
    "SendRequest",
    "SendResponse",
    "SmtpSettings",
    "SyncResponse",
    "UserSyncResponse",
    "ensure_transition",
]
