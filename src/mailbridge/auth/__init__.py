"""OAuth flows for mailbox providers."""

from mailbridge.auth.google import GoogleOAuth
from mailbridge.auth.microsoft import MicrosoftOAuth
from mailbridge.auth.oauth import MailboxProfile, OAuthFlowManager, TokenBundle

__all__ = [
    "GoogleOAuth",
    "MailboxProfile",
    "MicrosoftOAuth",
    "OAuthFlowManager",
    "TokenBundle",
]
