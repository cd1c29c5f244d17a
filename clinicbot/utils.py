"""Shared utilities used across the clinic booking bot."""

import re


def normalize_phone(value: str) -> str:
    """Normalize a phone number by stripping everything except digits and a leading +.

    Examples:
        >>> normalize_phone("549 11 2233-4455")
        '5491122334455'
        >>> normalize_phone("+54 (911) 2233-4455")
        '+5491122334455'
    """
    value = value.strip()
    if value.startswith("+"):
        return "+" + re.sub(r"[^\d]", "", value[1:])
    return re.sub(r"[^\d]", "", value)


def phone_from_address(address: str) -> str:
    """Extract the phone part of a transport address.

    Examples:
        >>> phone_from_address("5491122334455@s.whatsapp.net")
        '5491122334455'
        >>> phone_from_address("5491122334455")
        '5491122334455'
    """
    return address.strip().split("@", 1)[0]


def to_address(phone: str, suffix: str) -> str:
    """Build the outbound ``<phone>@<suffix>`` address for a customer."""
    return f"{phone_from_address(phone)}@{suffix}"
