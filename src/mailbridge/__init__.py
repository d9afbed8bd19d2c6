"""mailbridge - multi-provider mailbox integration and synchronization.

Connects Gmail, Outlook (Microsoft Graph) and password-authenticated SMTP
relays to the platform, normalizes inbound mail and routes outbound replies.
"""

__version__ = "0.1.0"
