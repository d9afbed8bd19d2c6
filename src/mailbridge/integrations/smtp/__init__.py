"""SMTP relay integration."""

from mailbridge.integrations.smtp.client import (
    SmtpRelayClient,
    SmtpRelayConfig,
    build_relay_message,
)

__all__ = ["SmtpRelayClient", "SmtpRelayConfig", "build_relay_message"]
