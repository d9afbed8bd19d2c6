"""Address header parsing."""

from __future__ import annotations

import re
from dataclasses import dataclass

# "Display Name" <address> or Display Name <address>
_NAMED_ADDRESS = re.compile(r'^\s*"?(?P<name>[^"<]*?)"?\s*<(?P<email>[^<>]+)>\s*$')
_BARE_ADDRESS = re.compile(r"(?P<email>[^\s<>\"',;]+@[^\s<>\"',;]+)")
# Split on commas that are not inside a quoted display name.
_ADDRESS_SPLIT = re.compile(r",\s*(?=(?:[^\"]*\"[^\"]*\")*[^\"]*$)")


@dataclass(frozen=True)
class Address:
    """A parsed mailbox address.

    Attributes:
        name: Display name, or None when the header carries none.
        email: Lowercased address.
    """

    name: str | None
    email: str


def parse_address_header(raw: str | None) -> Address:
    """Parse the first address of an address header.

    Handles formats like:
    - "Jane Doe" <jane@example.com>
    - Jane Doe <jane@example.com>
    - <jane@example.com>
    - jane@example.com

    Args:
        raw: Raw header value.

    Returns:
        Address with a lowercased email.
    """
    if not raw or not raw.strip():
        return Address(name=None, email="")

    first = split_addresses(raw)[0]

    match = _NAMED_ADDRESS.match(first)
    if match:
        name = match.group("name").strip()
        return Address(name=name or None, email=match.group("email").strip().lower())

    match = _BARE_ADDRESS.search(first)
    if match:
        return Address(name=None, email=match.group("email").lower())

    return Address(name=None, email=first.strip().lower())


def split_addresses(raw: str) -> list[str]:
    """Split a comma-separated address header, respecting quoted names."""
    parts = [part.strip() for part in _ADDRESS_SPLIT.split(raw)]
    return [part for part in parts if part] or [raw.strip()]
