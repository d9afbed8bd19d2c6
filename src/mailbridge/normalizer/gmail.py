"""Gmail API message normalization."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime

from pydantic import ValidationError

from mailbridge.core.exceptions import MalformedMessage
from mailbridge.normalizer.addresses import parse_address_header
from mailbridge.normalizer.mime import MimePart, extract_body, has_attachments
from mailbridge.normalizer.text import SHAPE_ERRORS, parse_date, parse_epoch_millis, snippet
from mailbridge.schemas.integration import Integration, ProviderType
from mailbridge.schemas.message import NormalizedMessage


def normalize_gmail_message(raw: Mapping[str, object], integration: Integration) -> NormalizedMessage:
    """Convert a Gmail ``messages.get`` (format=full) response.

    Args:
        raw: Raw JSON response from the Gmail API.
        integration: Integration the message was fetched for.

    Returns:
        Normalized message.

    Raises:
        MalformedMessage: If any field is missing or has the wrong shape.
    """
    msg_id = raw.get("id")
    if not isinstance(msg_id, str) or not msg_id:
        raise MalformedMessage("Missing message ID", provider=ProviderType.GMAIL.value, field="id")

    try:
        return _build_message(raw, integration, msg_id)
    except MalformedMessage as e:
        e.provider = ProviderType.GMAIL.value
        e.message_id = msg_id
        raise
    except ValidationError as e:
        raise MalformedMessage(
            f"Message failed validation: {e.error_count()} errors",
            provider=ProviderType.GMAIL.value,
            message_id=msg_id,
        ) from e
    except SHAPE_ERRORS as e:
        raise MalformedMessage(
            f"Unreadable message: {e}",
            provider=ProviderType.GMAIL.value,
            message_id=msg_id,
        ) from e


def _build_message(
    raw: Mapping[str, object],
    integration: Integration,
    msg_id: str,
) -> NormalizedMessage:
    tree = MimePart.from_gmail_payload(raw.get("payload"), message_id=msg_id)
    body = extract_body(tree)

    label_ids = raw.get("labelIds", [])
    if not isinstance(label_ids, list):
        raise MalformedMessage("labelIds is not a list", field="labelIds")
    labels = [str(label) for label in label_ids]

    headers = tree.headers
    sender = parse_address_header(headers.get("from"))
    recipient = parse_address_header(headers.get("to"))

    sent_at = parse_date(headers.get("date"))
    received_at = parse_epoch_millis(raw.get("internalDate")) or sent_at or datetime.now(UTC)

    preview = raw.get("snippet")
    thread_id = raw.get("threadId")

    return NormalizedMessage(
        integration_id=integration.id,
        user_id=integration.user_id,
        provider_message_id=msg_id,
        thread_id=str(thread_id) if thread_id else None,
        from_email=sender.email,
        from_name=sender.name,
        to_email=recipient.email,
        to_name=recipient.name,
        subject=headers.get("subject") or None,
        body_text=body.text or None,
        body_html=body.html or None,
        snippet=snippet(preview if isinstance(preview, str) and preview else body.text),
        is_read="UNREAD" not in labels,
        is_important="IMPORTANT" in labels,
        has_attachments=has_attachments(tree),
        labels=labels,
        received_at=received_at,
        sent_at=sent_at or received_at,
    )
