"""
Core Utilities Package

Modules:
    - time: Timestamp conversion and normalization utilities
    - signing: HMAC-SHA256 helpers and credential checks for request signing
"""

from core.utils.time import now_ms, to_utc_datetime
from core.utils.signing import sign_base64, sign_hex

__all__ = ["now_ms", "to_utc_datetime", "sign_base64", "sign_hex"]
