"""Core utilities for mailbridge."""

from __future__ import annotations

from mailbridge.core.config import RetryConfig, Settings, get_settings
from mailbridge.core.exceptions import (
    AuthExpired,
    CredentialError,
    MailBridgeError,
    MalformedMessage,
    ProviderUnavailable,
    UnsupportedProvider,
)
from mailbridge.core.locks import KeyedLock
from mailbridge.core.logging import setup_logging
from mailbridge.core.retry import with_retry
from mailbridge.core.vault import CredentialVault, SecretCipher

__all__ = [
    "AuthExpired",
    "CredentialError",
    "CredentialVault",
    "KeyedLock",
    "MailBridgeError",
    "MalformedMessage",
    "ProviderUnavailable",
    "RetryConfig",
    "SecretCipher",
    "Settings",
    "UnsupportedProvider",
    "get_settings",
    "setup_logging",
    "with_retry",
]
