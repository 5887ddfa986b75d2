"""Shared normalization helpers used across the admission service."""

import re
from datetime import date, datetime
from typing import Optional


def normalize_phone(value: str) -> str:
    """Normalize a phone number by stripping everything except digits and a leading +.

    Examples:
        >>> normalize_phone("087 123 4567")
        '0871234567'
        >>> normalize_phone("+353 (87) 123-4567")
        '+353871234567'
    """
    value = value.strip()
    if value.startswith("+"):
        return "+" + re.sub(r"[^\d]", "", value[1:])
    return re.sub(r"[^\d]", "", value)


def normalize_email(value: str) -> str:
    """Trim and lower-case an e-mail address."""
    return value.strip().lower()


def normalize_registration(value: str) -> str:
    """Trim and upper-case a vehicle registration.

    Examples:
        >>> normalize_registration(" 191-d-1 ")
        '191-D-1'
    """
    return value.strip().upper()


def parse_iso_date(value: str) -> Optional[date]:
    """Parse a ``YYYY-MM-DD`` calendar date. Returns None if malformed."""
    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d").date()
    except ValueError:
        return None
