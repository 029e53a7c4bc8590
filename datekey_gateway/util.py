"""
Utility functions for the datekey gateway.

Provides hashing, masking, and time helpers used by logging and routes.
"""

import hashlib
from datetime import datetime, timezone
from typing import Union


def sha256_hex(data: Union[bytes, str]) -> str:
    """Compute SHA-256 hash and return as hex string."""
    if isinstance(data, str):
        data = data.encode('utf-8')
    return hashlib.sha256(data).hexdigest()


def utc_now_iso() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and a Z suffix."""
    now = datetime.now(timezone.utc)
    return now.strftime('%Y-%m-%dT%H:%M:%S.') + f"{now.microsecond // 1000:03d}Z"


def mask_sensitive(value: str, visible_chars: int = 4) -> str:
    """
    Mask a sensitive value, showing only the last N characters.
    Useful for logging.
    """
    if len(value) <= visible_chars:
        return '*' * len(value)
    return '*' * (len(value) - visible_chars) + value[-visible_chars:]


def credential_fingerprint(credential: str) -> str:
    """Short stable fingerprint of a presented credential for log correlation."""
    return sha256_hex(credential)[:12]
