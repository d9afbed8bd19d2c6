"""Gmail REST API integration."""

from mailbridge.integrations.gmail.client import GmailClient
from mailbridge.integrations.gmail.models import GmailMessageRef

__all__ = ["GmailClient", "GmailMessageRef"]
