"""Snippet and date helpers used during normalization."""

from __future__ import annotations

from datetime import UTC, datetime
from email.utils import parsedate_to_datetime

from mailbridge.schemas.message import SNIPPET_LENGTH

# Raised by stdlib parsing on values of the wrong type or range.
SHAPE_ERRORS = (TypeError, ValueError, AttributeError, OverflowError, OSError)


def snippet(source: str | None, limit: int = SNIPPET_LENGTH) -> str:
    """Return a list-preview prefix of *source*.

    Whitespace runs collapse to single spaces before truncation, so the same
    input always yields the same snippet.
    """
    if not source:
        return ""
    return " ".join(source.split())[:limit]


def parse_date(raw: str | None) -> datetime | None:
    """Parse an RFC 2822 or ISO 8601 date into an aware datetime.

    Returns:
        The parsed datetime in UTC-aware form, or None if unparseable.
    """
    if not raw:
        return None

    parsed: datetime | None = None
    try:
        parsed = parsedate_to_datetime(raw)
    except (ValueError, TypeError, IndexError, OverflowError):
        parsed = None

    if parsed is None:
        try:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except (ValueError, TypeError):
            return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def parse_epoch_millis(raw: object) -> datetime | None:
    """Parse a millisecond epoch timestamp (string or int).

    Returns:
        The timestamp as an aware UTC datetime, or None if it is not a number
        or lies outside the range the platform can represent.
    """
    try:
        millis = int(str(raw))
        return datetime.fromtimestamp(millis / 1000, tz=UTC)
    except (TypeError, ValueError, OverflowError, OSError):
        return None
