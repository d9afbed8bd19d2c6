"""Microsoft Graph message normalization."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime

from pydantic import ValidationError

from mailbridge.core.exceptions import MalformedMessage
from mailbridge.normalizer.text import SHAPE_ERRORS, parse_date, snippet
from mailbridge.schemas.integration import Integration, ProviderType
from mailbridge.schemas.message import NormalizedMessage


def _email_address(recipient: object, field: str) -> tuple[str, str | None]:
    """Read ``{"emailAddress": {"address", "name"}}`` into (email, name)."""
    if recipient is None:
        return "", None
    address = (recipient.get("emailAddress") or {}) if isinstance(recipient, dict) else None
    if not isinstance(address, dict):
        raise MalformedMessage(f"{field} is not a recipient object", field=field)
    email = str(address.get("address") or "").lower()
    name = address.get("name")
    return email, str(name) if name else None


def normalize_graph_message(raw: Mapping[str, object], integration: Integration) -> NormalizedMessage:
    """Convert a Graph ``/me/messages`` item.

    The listing already carries body content, so no further fetch is needed.
    ``body.contentType`` decides whether ``body_text`` or ``body_html`` is set.

    Raises:
        MalformedMessage: If any field is missing or has the wrong shape.
    """
    msg_id = raw.get("id")
    if not isinstance(msg_id, str) or not msg_id:
        raise MalformedMessage("Missing message ID", provider=ProviderType.OUTLOOK.value, field="id")

    try:
        return _build_message(raw, integration, msg_id)
    except MalformedMessage as e:
        e.provider = ProviderType.OUTLOOK.value
        e.message_id = msg_id
        raise
    except ValidationError as e:
        raise MalformedMessage(
            f"Message failed validation: {e.error_count()} errors",
            provider=ProviderType.OUTLOOK.value,
            message_id=msg_id,
        ) from e
    except SHAPE_ERRORS as e:
        raise MalformedMessage(
            f"Unreadable message: {e}",
            provider=ProviderType.OUTLOOK.value,
            message_id=msg_id,
        ) from e


def _build_message(
    raw: Mapping[str, object],
    integration: Integration,
    msg_id: str,
) -> NormalizedMessage:
    from_email, from_name = _email_address(raw.get("from"), "from")

    to_recipients = raw.get("toRecipients") or []
    if not isinstance(to_recipients, list):
        raise MalformedMessage("toRecipients is not a list", field="toRecipients")
    to_email, to_name = _email_address(to_recipients[0] if to_recipients else None, "to")

    body = raw.get("body") or {}
    if not isinstance(body, dict):
        raise MalformedMessage("body is not an object", field="body")
    content_type = str(body.get("contentType", "")).lower()
    content = body.get("content")
    content = content if isinstance(content, str) and content else None

    categories = raw.get("categories") or []
    if not isinstance(categories, list):
        raise MalformedMessage("categories is not a list", field="categories")

    received_at = parse_date(str(raw.get("receivedDateTime") or "")) or datetime.now(UTC)
    sent_at = parse_date(str(raw.get("sentDateTime") or "")) or received_at
    preview = raw.get("bodyPreview")
    thread_id = raw.get("conversationId")

    return NormalizedMessage(
        integration_id=integration.id,
        user_id=integration.user_id,
        provider_message_id=msg_id,
        thread_id=str(thread_id) if thread_id else None,
        from_email=from_email,
        from_name=from_name,
        to_email=to_email,
        to_name=to_name,
        subject=str(raw["subject"]) if raw.get("subject") else None,
        body_text=content if content_type == "text" else None,
        body_html=content if content_type == "html" else None,
        snippet=snippet(preview if isinstance(preview, str) else None),
        is_read=bool(raw.get("isRead", False)),
        is_important=raw.get("importance") == "high",
        has_attachments=bool(raw.get("hasAttachments", False)),
        labels=[str(category) for category in categories],
        received_at=received_at,
        sent_at=sent_at,
    )
