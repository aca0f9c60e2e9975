"""
Email address helpers shared by the normalizer, matcher and policy filter.
"""

from __future__ import annotations

import re

_ANGLE_RE = re.compile(r"<([^>]+)>")
_CUSTOMER_FRAGMENT_RE = re.compile(r"@([^.]+)")


def extract_email_address(value: str | None) -> str:
    """
    Normalize an address from "Name <user@example.com>" or bare form.

    Examples:
        >>> extract_email_address("John Doe <John@Company.com>")
        'john@company.com'

        >>> extract_email_address("room-4b")
        'room-4b'
    """
    if not value:
        return ""

    lowered = value.lower().strip()
    angle_match = _ANGLE_RE.search(lowered)
    if angle_match:
        lowered = angle_match.group(1).strip()
    return lowered


def extract_domain_only(value: str | None) -> str:
    """
    Domain portion of an address, or "" when there is no "@".

    Examples:
        >>> extract_domain_only("a@client.com")
        'client.com'
    """
    address = extract_email_address(value)
    if "@" in address:
        return address.rsplit("@", 1)[1]
    return ""


def customer_fragment(value: str | None) -> str | None:
    """
    First label of the address domain, used as a best-effort customer name.

    Examples:
        >>> customer_fragment("a@client.com")
        'client'

        >>> customer_fragment("no-address") is None
        True
    """
    match = _CUSTOMER_FRAGMENT_RE.search(extract_email_address(value))
    return match.group(1) if match else None
