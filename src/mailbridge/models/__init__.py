"""SQLAlchemy models for mailbridge."""

from mailbridge.models.base import Base
from mailbridge.models.integration import EmailIntegration
from mailbridge.models.message import SynchronizedEmail

__all__ = [
    "Base",
    "EmailIntegration",
    "SynchronizedEmail",
]
