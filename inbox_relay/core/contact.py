"""Contact identifier normalization (digits-only handle ↔ E.164 phone)."""

from __future__ import annotations

from typing import Optional


def normalize_contact_id(value: Optional[str]) -> str:
    """
    Canonical contact id: the phone number's digits with no leading '+'.

    '+34 600 111 222' and '34600111222' map to the same id. Returns '' when the
    value carries no digits.
    """
    if not value:
        return ""
    return "".join(ch for ch in str(value) if ch.isdigit())


def to_e164(contact_id: Optional[str]) -> Optional[str]:
    """Contact id → '+<digits>', the format appointments are keyed by."""
    digits = normalize_contact_id(contact_id)
    if not digits:
        return None
    return f"+{digits}"
