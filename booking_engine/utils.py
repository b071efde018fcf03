"""Shared utilities used across the booking engine."""

import re
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal


def normalize_phone(value: str) -> str:
    """Normalize a phone number by stripping everything except digits and a leading +.

    Examples:
        >>> normalize_phone("0412 345 678")
        '0412345678'
        >>> normalize_phone("+61 (412) 345-678")
        '+61412345678'
    """
    value = value.strip()
    if value.startswith("+"):
        return "+" + re.sub(r"[^\d]", "", value[1:])
    return re.sub(r"[^\d]", "", value)


def to_e164(value: str, country_code: str = "61") -> str:
    """Format a local number in E.164 for SMS delivery.

    Examples:
        >>> to_e164("0412 345 678")
        '+61412345678'
        >>> to_e164("61412345678")
        '+61412345678'
    """
    cleaned = normalize_phone(value)
    if not cleaned:
        raise ValueError("Phone number cannot be empty")
    if cleaned.startswith("+"):
        return cleaned
    if cleaned.startswith(country_code):
        return "+" + cleaned
    if cleaned.startswith("0"):
        cleaned = cleaned[1:]
    return f"+{country_code}{cleaned}"


def to_minor_units(amount: Decimal) -> int:
    """Convert a major-unit amount (dollars) to minor units (cents), rounding half up.

    Examples:
        >>> to_minor_units(Decimal("180.00"))
        18000
        >>> to_minor_units(Decimal("99.995"))
        10000
    """
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def intervals_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open interval intersection: [a_start, a_end) and [b_start, b_end)."""
    return a_start < b_end and a_end > b_start
