"""Message normalization: provider payloads into NormalizedMessage records.

Example:
    from mailbridge.normalizer import extract_body, parse_address_header

    address = parse_address_header('"Jane Doe" <Jane@Example.COM>')
    assert address.email == "jane@example.com"
"""

from mailbridge.normalizer.addresses import Address, parse_address_header, split_addresses
from mailbridge.normalizer.gmail import normalize_gmail_message
from mailbridge.normalizer.mime import (
    BodyParts,
    MimePart,
    decode_body_data,
    extract_body,
    has_attachments,
)
from mailbridge.normalizer.outlook import normalize_graph_message
from mailbridge.normalizer.text import parse_date, snippet

__all__ = [
    "Address",
    "BodyParts",
    "MimePart",
    "decode_body_data",
    "extract_body",
    "has_attachments",
    "normalize_gmail_message",
    "normalize_graph_message",
    "parse_address_header",
    "parse_date",
    "snippet",
    "split_addresses",
]
