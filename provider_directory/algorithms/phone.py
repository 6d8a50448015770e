"""
Provider Directory — Phone Normalisation

Submitted telephone numbers are cleaned and, when they parse as a number for
the default region, stored in one canonical international display form:

    "030 / 12345678"     → "+49 30 12345678"
    "+49-30-12345678"    → "+49 30 12345678"

Numbers that cannot be parsed are kept (cleaned) rather than rejected.

Dependencies:
    pip install phonenumbers
"""

from __future__ import annotations

import logging
import re

import phonenumbers

logger = logging.getLogger(__name__)

DEFAULT_REGION = "DE"

_PHONE_STRIP = re.compile(r"[^0-9+()]")


def clean_phone(phone: str | None) -> str | None:
    """Drop every character except digits, '+' and parentheses."""
    if not phone:
        return None
    cleaned = _PHONE_STRIP.sub("", phone)
    return cleaned or None


def normalize_phone(phone: str | None, region: str = DEFAULT_REGION) -> str | None:
    """
    Canonicalise a raw telephone number.

    Returns the international format when the cleaned number parses for
    ``region``, otherwise the cleaned string unchanged. None / empty input
    stays None.
    """
    cleaned = clean_phone(phone)
    if cleaned is None:
        return None

    try:
        parsed = phonenumbers.parse(cleaned, region)
    except phonenumbers.NumberParseException as e:
        logger.debug("Phone %r not parseable for %s: %s", cleaned, region, e)
        return cleaned

    if not phonenumbers.is_possible_number(parsed):
        return cleaned

    return phonenumbers.format_number(parsed, phonenumbers.PhoneNumberFormat.INTERNATIONAL)
