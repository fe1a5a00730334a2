"""
Constant-time comparison, HMAC helpers and replay protection for webhook
verification.
"""

import base64
import hashlib
import hmac
import time
from typing import Dict, Optional

# Accepted clock skew for timestamps slightly in the future
CLOCK_SKEW_SECONDS = 30


def secure_compare(a: str, b: str) -> bool:
    """
    Constant-time string comparison.

    On a length mismatch a dummy comparison of equal cost still runs before
    returning False, so the result time does not reveal the expected length.
    """
    a_bytes = (a or "").encode("utf-8")
    b_bytes = (b or "").encode("utf-8")
    if len(a_bytes) != len(b_bytes):
        hmac.compare_digest(a_bytes, a_bytes)
        return False
    return hmac.compare_digest(a_bytes, b_bytes)


def hmac_sha256_hex(secret: str, message: str) -> str:
    return hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()


def hmac_sha256_base64(secret: str, message: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def is_timestamp_fresh(timestamp: int, max_age_seconds: int, now: Optional[float] = None) -> bool:
    """True when ``timestamp`` (unix seconds) lies inside the freshness window."""
    now = time.time() if now is None else now
    age = now - timestamp
    return -CLOCK_SKEW_SECONDS <= age < max_age_seconds


def parse_timestamped_signature(header: str) -> Dict[str, str]:
    """Parse ``t=<unix>,v1=<hex>`` into a dict. The first value of each key wins."""
    parts: Dict[str, str] = {}
    for item in (header or "").split(","):
        key, sep, value = item.strip().partition("=")
        if sep and key and key not in parts:
            parts[key] = value.strip()
    return parts


def verify_timestamped_hmac(
    raw_body: str,
    header: Optional[str],
    secret: str,
    max_age_seconds: int,
    now: Optional[float] = None,
) -> bool:
    """Verify a ``t=...,v1=...`` signature over ``"{t}.{raw_body}"``."""
    if not header:
        return False
    parts = parse_timestamped_signature(header)
    timestamp, signature = parts.get("t"), parts.get("v1")
    if not timestamp or not signature:
        return False
    try:
        ts = int(timestamp)
    except ValueError:
        return False
    if not is_timestamp_fresh(ts, max_age_seconds, now=now):
        return False
    expected = hmac_sha256_hex(secret, f"{timestamp}.{raw_body}")
    return secure_compare(signature, expected)


def verify_hmac_hex(raw_body: str, signature: Optional[str], secret: str) -> bool:
    if not signature:
        return False
    if signature.startswith("sha256="):
        signature = signature[len("sha256="):]
    return secure_compare(signature.lower(), hmac_sha256_hex(secret, raw_body))


def verify_hmac_base64(raw_body: str, signature: Optional[str], secret: str) -> bool:
    if not signature:
        return False
    if signature.startswith("sha256="):
        signature = signature[len("sha256="):]
    return secure_compare(signature, hmac_sha256_base64(secret, raw_body))


def verify_token(token: Optional[str], secret: str) -> bool:
    if not token:
        return False
    return secure_compare(token, secret)
