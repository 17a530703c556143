"""Webhook signature verification: constant-time HMAC-SHA256 per provider.

Security contract:
- All verifications use hmac.compare_digest() (constant-time)
- Verification failure -> 401 immediately, no payload processing
- Missing secret -> verification skipped with a warning, unless the service
  is configured to require secrets, in which case it fails closed
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging

logger = logging.getLogger(__name__)


def _digest(secret: str, body: bytes) -> bytes:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()


def verify_shopify(body: bytes, signature_header: str | None, secret: str) -> bool:
    """Shopify sends ``X-Shopify-Hmac-SHA256``: base64 HMAC-SHA256 of the raw body."""
    if not signature_header:
        return False
    expected = base64.b64encode(_digest(secret, body)).decode("utf-8")
    return hmac.compare_digest(expected, signature_header.strip())


def verify_bigcommerce(body: bytes, signature_header: str | None, secret: str) -> bool:
    """BigCommerce sends ``X-BC-Webhook-Signature``: base64 HMAC-SHA256 of the raw body."""
    if not signature_header:
        return False
    expected = base64.b64encode(_digest(secret, body)).decode("utf-8")
    return hmac.compare_digest(expected, signature_header.strip())


def verify_clover(body: bytes, signature_header: str | None, secret: str) -> bool:
    """Clover sends ``X-Clover-Signature``: hex HMAC-SHA256 of the raw body."""
    if not signature_header:
        return False
    expected = _digest(secret, body).hex()
    return hmac.compare_digest(expected, signature_header.strip().lower())


# Provider -> verifier mapping
VERIFIERS = {
    "shopify": verify_shopify,
    "bigcommerce": verify_bigcommerce,
    "clover": verify_clover,
}

# Provider -> signature header (lowercase)
SIGNATURE_HEADERS = {
    "shopify": "x-shopify-hmac-sha256",
    "bigcommerce": "x-bc-webhook-signature",
    "clover": "x-clover-signature",
}


def verify_webhook(
    provider: str,
    body: bytes,
    headers: dict[str, str],
    secret: str,
    *,
    require_secret: bool = False,
) -> bool:
    """Verify a delivery's signature.

    Args:
        provider: One of 'shopify', 'bigcommerce', 'clover'
        body: Raw request body
        headers: Request headers (lowercase keys)
        secret: Platform-level shared secret ('' when not configured)
        require_secret: Reject when no secret is configured

    Returns:
        True if the delivery may be processed
    """
    verifier = VERIFIERS.get(provider)
    if not verifier:
        logger.warning("Unknown webhook provider: %s", provider)
        return False

    if not secret:
        if require_secret:
            logger.warning("%s webhook secret not configured - rejecting webhook", provider)
            return False
        logger.warning("%s webhook secret not configured - skipping signature verification", provider)
        return True

    return verifier(body, headers.get(SIGNATURE_HEADERS[provider]), secret)
