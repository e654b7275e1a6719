"""
Phone number normalization.

Best-effort conversion of locally typed numbers to an international form.
This is a heuristic, not E.164 validation: a number that already starts
with "+" is trusted as international whatever its prefix.
"""

from typing import Optional


def normalize_phone(country_code: str, raw: Optional[str]) -> str:
    """
    Normalize a phone number against the configured country calling code.

    >>> normalize_phone("+242", "061234567")
    '+24261234567'
    >>> normalize_phone("+242", "+15551234")
    '+15551234'
    """
    phone = (raw or "").strip()
    if phone.startswith(country_code):
        return phone
    if phone.startswith("+"):
        return phone
    if phone.startswith("0"):
        phone = phone[1:]
    return country_code + phone
