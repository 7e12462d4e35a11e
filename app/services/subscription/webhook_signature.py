"""
Gateway webhook signature verification.

The HMAC is computed over the exact bytes received. Parsing and
re-serialising the body first can reorder keys or change whitespace
and break verification of a genuine delivery.
"""

from typing import Optional
import hashlib
import hmac

SIGNATURE_HEADER = "X-Razorpay-Signature"


def compute_signature(raw_body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of ``raw_body`` keyed with ``secret``."""
    return hmac.new(secret.encode(), raw_body, hashlib.sha256).hexdigest()


def verify_signature(raw_body: bytes, signature: Optional[str], secret: Optional[str]) -> bool:
    """Constant-time check of a hex signature; False if either side is missing."""
    if not signature or not secret:
        return False
    expected = compute_signature(raw_body, secret)
    return hmac.compare_digest(expected.encode(), signature.strip().lower().encode())
