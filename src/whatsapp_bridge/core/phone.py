"""
Phone number normalization shared by message sending and pairing
"""

import re

from ..utils.error_handler import InvalidInputError

DEFAULT_JID_SUFFIX = "@s.whatsapp.net"
MIN_DIGITS = 10

_NON_DIGITS = re.compile(r'[^\d]')


def normalize_phone_number(raw: str, suffix: str = DEFAULT_JID_SUFFIX) -> str:
    """Reduce a phone number to its digits, e.g. '+1 (555) 000-1111' -> '15550001111'"""
    if not raw or not isinstance(raw, str):
        raise InvalidInputError("Phone number is required")

    number = raw.strip()
    if number.endswith(suffix):
        number = number[:-len(suffix)]

    digits = _NON_DIGITS.sub('', number)
    if len(digits) < MIN_DIGITS:
        raise InvalidInputError("Invalid phone number format")
    return digits


def to_jid(raw: str, suffix: str = DEFAULT_JID_SUFFIX) -> str:
    """Build the WhatsApp address for a phone number"""
    return f"{normalize_phone_number(raw, suffix)}{suffix}"
