"""Gmail API data models."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class GmailMessageRef:
    """Reference to a Gmail message (from list operation).

    Attributes:
        id: Gmail message ID.
        thread_id: Gmail thread ID.
    """

    id: str
    thread_id: str
