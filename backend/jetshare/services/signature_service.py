"""
Signature Service for Payment Webhooks

Implements HMAC-SHA256 signature generation and verification over raw
webhook bodies. Verification always uses constant-time comparison and never
raises on a bad or missing signature; it returns False instead.
"""
import base64
import binascii
import hashlib
import hmac
from typing import Optional


def compute_hmac(secret_key: str, message: bytes) -> bytes:
    """HMAC-SHA256 digest of message under secret_key."""
    return hmac.new(secret_key.encode("utf-8"), message, hashlib.sha256).digest()


def sign_hex(secret_key: str, payload: bytes) -> str:
    """Hex-encoded HMAC-SHA256 (Coinbase Commerce style)."""
    return compute_hmac(secret_key, payload).hex()


def sign_base64(secret_key: str, payload: bytes) -> str:
    """Base64-encoded HMAC-SHA256 (mock gateway style)."""
    return base64.b64encode(compute_hmac(secret_key, payload)).decode("ascii")


def verify_hex_signature(secret_key: str, payload: bytes, signature: Optional[str]) -> bool:
    """
    Verify a hex HMAC-SHA256 signature using constant-time comparison.

    Args:
        secret_key: Shared webhook secret
        payload: Raw request body, exactly as received
        signature: Signature header value

    Returns:
        True if signature valid, False otherwise
    """
    if not signature:
        return False
    expected = sign_hex(secret_key, payload)
    return hmac.compare_digest(expected, signature.strip().lower())


def verify_base64_signature(secret_key: str, payload: bytes, signature: Optional[str]) -> bool:
    """Verify a base64 HMAC-SHA256 signature using constant-time comparison."""
    if not signature:
        return False
    try:
        provided = base64.b64decode(signature.strip(), validate=True)
    except (binascii.Error, ValueError):
        return False
    return hmac.compare_digest(compute_hmac(secret_key, payload), provided)
