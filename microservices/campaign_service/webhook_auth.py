"""
Provider webhook authentication

A callback is accepted when WEBHOOK_SECRET is configured and one of:
- query parameter ``secret`` equals it
- header ``X-Webhook-Token`` equals it
- header ``X-Webhook-Signature`` is the hex HMAC-SHA256 of the raw body

All comparisons are constant time. Without a configured secret every call
is rejected.
"""

import hashlib
import hmac
import logging
from typing import Optional

from .protocols import WebhookAuthenticationError

logger = logging.getLogger(__name__)


def compute_signature(secret: str, raw_body: bytes) -> str:
    """Hex HMAC-SHA256 of the raw request body"""
    return hmac.new(secret.encode(), raw_body, hashlib.sha256).hexdigest()


def _matches(expected: str, provided: Optional[str]) -> bool:
    if not provided:
        return False
    return hmac.compare_digest(expected.encode(), provided.strip().encode())


def is_authentic(
    secret: Optional[str],
    raw_body: bytes,
    query_secret: Optional[str] = None,
    token: Optional[str] = None,
    signature: Optional[str] = None,
) -> bool:
    if not secret:
        return False
    if _matches(secret, query_secret) or _matches(secret, token):
        return True
    if signature:
        return _matches(compute_signature(secret, raw_body or b""), signature.lower())
    return False


def verify_webhook(
    secret: Optional[str],
    raw_body: bytes,
    query_secret: Optional[str] = None,
    token: Optional[str] = None,
    signature: Optional[str] = None,
) -> None:
    """Raise WebhookAuthenticationError unless the callback is authentic"""
    if not secret:
        logger.warning("Webhook rejected: WEBHOOK_SECRET is not configured")
        raise WebhookAuthenticationError("Webhook secret not configured")
    if not is_authentic(secret, raw_body, query_secret, token, signature):
        raise WebhookAuthenticationError("Invalid webhook credentials")


__all__ = ["compute_signature", "is_authentic", "verify_webhook"]
