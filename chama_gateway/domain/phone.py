"""Conversion between local (07XX...) and international (2547XX...) phone formats"""

import re
from chama_gateway.domain.exceptions import InvalidPhoneFormat

COUNTRY_CODE = "254"

# 0 + 9 digits locally, 254 + 9 digits on the gateway side
_LOCAL_PATTERN = re.compile(r"^0\d{9}$")
_INTERNATIONAL_PATTERN = re.compile(rf"^{COUNTRY_CODE}\d{{9}}$")


def to_international(local: str) -> str:
    """0712345678 -> 254712345678"""
    if not isinstance(local, str) or not _LOCAL_PATTERN.match(local):
        raise InvalidPhoneFormat(f"Expected local phone like 0712345678, got {local!r}")
    return COUNTRY_CODE + local[1:]


def to_local(international: str) -> str:
    """254712345678 -> 0712345678"""
    if not isinstance(international, str) or not _INTERNATIONAL_PATTERN.match(international):
        raise InvalidPhoneFormat(f"Expected international phone like 254712345678, got {international!r}")
    return "0" + international[len(COUNTRY_CODE):]


def normalize_international(phone: str) -> str:
    """Accept either format (optionally with a leading +) and return the international one"""
    if not isinstance(phone, str):
        raise InvalidPhoneFormat(f"Phone must be a string, got {type(phone).__name__}")

    candidate = phone.strip().lstrip("+")
    if candidate.startswith("0"):
        return to_international(candidate)

    # to_local raises unless candidate is 254 + 9 digits
    return to_international(to_local(candidate))
