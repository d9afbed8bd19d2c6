"""MIME part tree and depth-first body extraction.

Provider payloads are converted into a small tree of ``MimePart`` values. Body
extraction walks the tree depth-first and keeps the first plain-text part and,
independently, the first HTML part it meets.
"""

from __future__ import annotations

import base64
import binascii
from collections.abc import Iterator
from dataclasses import dataclass, field

from mailbridge.core.exceptions import MalformedMessage


@dataclass
class MimePart:
    """One node of a (possibly multipart) message.

    Attributes:
        mime_type: Declared content type, e.g. ``text/plain``.
        data: Transport-encoded (base64url) body data, if inline.
        filename: Attachment filename; empty for inline parts.
        headers: Part headers with lowercased names.
        parts: Child parts for multipart nodes.
    """

    mime_type: str
    data: str | None = None
    filename: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    parts: list[MimePart] = field(default_factory=list)

    @property
    def content_type(self) -> str:
        """Content type without parameters, lowercased."""
        return self.mime_type.split(";", 1)[0].strip().lower()

    @property
    def is_attachment(self) -> bool:
        """Check if the part is an attachment rather than a body."""
        if self.filename:
            return True
        return "attachment" in self.headers.get("content-disposition", "").lower()

    def walk(self) -> Iterator[MimePart]:
        """Yield this part and its descendants in depth-first order."""
        yield self
        for part in self.parts:
            yield from part.walk()

    @classmethod
    def from_gmail_payload(cls, payload: object, message_id: str | None = None) -> MimePart:
        """Build a part tree from a Gmail API ``payload`` object.

        Raises:
            MalformedMessage: If the payload does not have the expected shape.
        """
        if not isinstance(payload, dict):
            raise MalformedMessage("Payload is not an object", message_id=message_id, field="payload")

        body = payload.get("body") or {}
        if not isinstance(body, dict):
            raise MalformedMessage("Part body is not an object", message_id=message_id, field="body")
        data = body.get("data")
        if data is not None and not isinstance(data, str):
            raise MalformedMessage("Part body data is not a string", message_id=message_id, field="body")

        raw_parts = payload.get("parts") or []
        if not isinstance(raw_parts, list):
            raise MalformedMessage("Parts is not a list", message_id=message_id, field="parts")

        return cls(
            mime_type=str(payload.get("mimeType", "")),
            data=data,
            filename=str(payload.get("filename") or ""),
            headers=parse_headers(payload.get("headers"), message_id),
            parts=[cls.from_gmail_payload(part, message_id) for part in raw_parts],
        )


@dataclass(frozen=True)
class BodyParts:
    """Extracted message bodies."""

    text: str | None = None
    html: str | None = None


def parse_headers(raw_headers: object, message_id: str | None = None) -> dict[str, str]:
    """Parse a Gmail header list into a lowercase-keyed dict.

    Raises:
        MalformedMessage: If the headers are not a list.
    """
    if raw_headers is None:
        return {}
    if not isinstance(raw_headers, list):
        raise MalformedMessage("Headers is not a list", message_id=message_id, field="headers")

    headers: dict[str, str] = {}
    for header in raw_headers:
        if isinstance(header, dict):
            name = str(header.get("name", "")).lower()
            if name and name not in headers:
                headers[name] = str(header.get("value", ""))
    return headers


def decode_body_data(data: str) -> str:
    """Decode base64url body data, tolerating missing padding.

    Raises:
        MalformedMessage: If the data is not valid base64.
    """
    padded = data + "=" * (-len(data) % 4)
    try:
        decoded = base64.urlsafe_b64decode(padded)
    except (binascii.Error, ValueError) as e:
        raise MalformedMessage("Body data is not valid base64", field="body") from e
    return decoded.decode("utf-8", errors="replace")


def extract_body(tree: MimePart) -> BodyParts:
    """Extract the first plain-text and first HTML body from a part tree.

    A single-part message yields one body, assigned by its content type.
    Attachments are never treated as bodies.
    """
    text: str | None = None
    html: str | None = None

    for part in tree.walk():
        if part.data is None or part.is_attachment:
            continue
        if part.content_type == "text/plain" and text is None:
            text = decode_body_data(part.data)
        elif part.content_type == "text/html" and html is None:
            html = decode_body_data(part.data)
        if text is not None and html is not None:
            break

    return BodyParts(text=text, html=html)


def has_attachments(tree: MimePart) -> bool:
    """Check if any part below the root is an attachment."""
    return any(part.is_attachment for part in tree.walk() if part is not tree)
