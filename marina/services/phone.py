"""
Contact normalization used when matching accounts to ledger entries
and when deciding whether a number can receive SMS.
"""
import re
from typing import Optional

from ..config import settings


_NON_DIGITS = re.compile(r"\D")


def normalize_phone(value: Optional[str]) -> str:
    """
    Canonical local form of a Swedish number, digits only.

        "+46 70-123 45 67" -> "0701234567"
        "0701234567"       -> "0701234567"
        "701234567"        -> "0701234567"
    """
    if not value:
        return ""
    digits = _NON_DIGITS.sub("", value)
    if digits.startswith("46") and len(digits) >= 10:
        digits = "0" + digits[2:]
    if len(digits) >= 9 and not digits.startswith("0"):
        digits = "0" + digits
    return digits


def normalize_email(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def phones_match(a: Optional[str], b: Optional[str]) -> bool:
    na = normalize_phone(a)
    nb = normalize_phone(b)
    return bool(na) and bool(nb) and na == nb


def emails_match(a: Optional[str], b: Optional[str]) -> bool:
    na = normalize_email(a)
    nb = normalize_email(b)
    return bool(na) and bool(nb) and na == nb


def is_mobile_number(value: Optional[str], pattern: Optional[str] = None) -> bool:
    local = normalize_phone(value)
    if not local:
        return False
    return re.match(pattern or settings.mobile_number_pattern, local) is not None


def to_e164(value: str) -> str:
    """Gateway form (+46...) of a number given in any local or international format."""
    cleaned = re.sub(r"[^\d+]", "", value)
    if cleaned.startswith("00"):
        cleaned = "+" + cleaned[2:]
    if cleaned.startswith("0"):
        cleaned = "+46" + cleaned[1:]
    if not cleaned.startswith("+"):
        cleaned = "+" + cleaned
    return cleaned
