"""Helpers shared by every provider family."""

import math
import re
from collections.abc import Iterable

from email_validator import EmailNotValidError, validate_email

from notify_shared.errors import InvalidRecipientError

E164_RE = re.compile(r"^\+[1-9]\d{7,14}$")

SMS_SEGMENT_LENGTH = 160


def normalize_recipients(to: str | Iterable[str]) -> tuple[str, ...]:
    """Turn one-or-many recipients into a de-duplicated, stripped tuple."""
    if isinstance(to, str):
        to = [to]
    seen: dict[str, None] = {}
    for recipient in to:
        value = recipient.strip()
        if value:
            seen.setdefault(value, None)
    return tuple(seen)


def validate_email_address(address: str) -> str:
    """Check syntax without a DNS lookup and return the normalized address.

    Uses the same rules as the ``EmailStr`` fields of the request schemas.
    """
    try:
        return validate_email(address.strip(), check_deliverability=False).normalized
    except EmailNotValidError as exc:
        raise InvalidRecipientError(f"Invalid email address: {address!r} ({exc})") from exc


def normalize_phone(number: str, default_country_code: str = "33") -> str:
    """Normalize a phone number to E.164.

    ``00`` international prefixes become ``+``; a single leading ``0`` is
    a national number and gets *default_country_code*.
    """
    digits = re.sub(r"[\s\-().]", "", number)
    if digits.startswith("00"):
        digits = "+" + digits[2:]
    elif digits.startswith("0"):
        digits = f"+{default_country_code}{digits[1:]}"
    elif not digits.startswith("+"):
        digits = "+" + digits

    if not E164_RE.match(digits):
        raise InvalidRecipientError(f"Invalid phone number: {number!r}")
    return digits


def base_cost(rate: float, recipients: int) -> float:
    return rate * max(recipients, 0)


def sms_segments(text: str) -> int:
    return max(1, math.ceil(len(text) / SMS_SEGMENT_LENGTH))
