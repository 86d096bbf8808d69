"""
SMS helpers: template rendering, tracking ids, sender and phone validation.
"""

import re
import secrets
from typing import Optional

from .models import Contact

E164_PATTERN = re.compile(r"^\+[1-9]\d{6,14}$")
ALPHA_SENDER_PATTERN = re.compile(r"^[A-Za-z0-9]{3,11}$")
PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")
STOP_PATTERN = re.compile(r"^\s*stop\b", re.IGNORECASE)
BARE_DIGITS_PATTERN = re.compile(r"^\d{10,15}$")

# placeholder (lower-cased) -> Contact attribute
_PLACEHOLDER_FIELDS = {
    "firstname": "first_name",
    "first_name": "first_name",
    "lastname": "last_name",
    "last_name": "last_name",
    "email": "email",
}


def render_template(text: Optional[str], contact: Contact) -> str:
    """
    Substitute {{firstName}}, {{lastName}} and {{email}} (snake_case and any
    casing accepted). Missing values and unknown placeholders render empty.
    """

    def _replace(match: "re.Match[str]") -> str:
        field = _PLACEHOLDER_FIELDS.get(match.group(1).lower())
        if field is None:
            return ""
        return getattr(contact, field) or ""

    return PLACEHOLDER_PATTERN.sub(_replace, text or "")


def generate_tracking_id() -> str:
    """Opaque, unguessable public id (16 url-safe chars)"""
    return secrets.token_urlsafe(12)


def is_e164(value: Optional[str]) -> bool:
    return isinstance(value, str) and bool(E164_PATTERN.match(value))


def is_alpha_sender(value: Optional[str]) -> bool:
    return isinstance(value, str) and bool(ALPHA_SENDER_PATTERN.match(value))


def sanitize_sender(value: Optional[str]) -> Optional[str]:
    """Return the sender if it is a valid alphanumeric or E.164 sender, else None"""
    if is_alpha_sender(value) or is_e164(value):
        return value
    return None


def resolve_sender(*candidates: Optional[str]) -> Optional[str]:
    """First valid sender among candidates, in priority order"""
    for candidate in candidates:
        sender = sanitize_sender(candidate.strip() if isinstance(candidate, str) else candidate)
        if sender:
            return sender
    return None


def normalize_msisdn(value: Optional[str], default_country_code: str = "30") -> Optional[str]:
    """
    Normalize an inbound MSISDN: 00-prefix becomes +, bare 10-15 digit
    numbers get the default country code.
    """
    if not value:
        return None
    msisdn = str(value).strip()
    if msisdn.startswith("00"):
        msisdn = "+" + msisdn[2:]
    if not msisdn.startswith("+") and BARE_DIGITS_PATTERN.match(msisdn):
        msisdn = f"+{default_country_code}{msisdn}"
    return msisdn


def is_stop_keyword(text: Optional[str]) -> bool:
    """True when the message starts with the word STOP (any case)"""
    return bool(text) and bool(STOP_PATTERN.match(text))


def is_plausible_tracking_id(value: Optional[str]) -> bool:
    return isinstance(value, str) and 6 <= len(value) <= 64


__all__ = [
    "render_template",
    "generate_tracking_id",
    "is_e164",
    "is_alpha_sender",
    "sanitize_sender",
    "resolve_sender",
    "normalize_msisdn",
    "is_stop_keyword",
    "is_plausible_tracking_id",
]
