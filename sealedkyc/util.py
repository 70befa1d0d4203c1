"""
Utility functions for SealedKYC.

Encoding and time helpers shared by the oracle, API and CLI.
"""

import base64
from datetime import datetime, timezone


def b64e(b: bytes) -> str:
    """Base64 encode bytes to string."""
    return base64.b64encode(b).decode('ascii')


def b64d(s: str) -> bytes:
    """Base64 decode string to bytes (strict)."""
    return base64.b64decode(s.encode('ascii'), validate=True)


def hex_to_bytes(s: str) -> bytes:
    """Decode hex with or without a 0x prefix."""
    if s.startswith(("0x", "0X")):
        s = s[2:]
    try:
        return bytes.fromhex(s)
    except ValueError as e:
        raise ValueError(f"invalid hex string: {e}") from e


def utc_now_rfc3339() -> str:
    """Current UTC time as an RFC3339 string."""
    return datetime.now(timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')
