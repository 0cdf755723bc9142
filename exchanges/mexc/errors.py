"""
MEXC Error Codes

Contract endpoints report failures as {"success": false, "code": ..., "message": ...},
often with HTTP 200. Spot endpoints use {"code": ..., "msg": ...} with a non-2xx status.

Documentation:
    https://mexcdevelop.github.io/apidocs/contract_v1_en/#error-code-example
"""

from typing import Any, Optional

from core.errors import (
    ApiAuthError,
    ApiError,
    AuthPermissionError,
    IpTimeoutError,
    KeyExpiredError,
    OtherApiError,
    SignatureError,
    UnauthorizedError,
)

_AUTH_ERRORS = {
    401: UnauthorizedError,
    402: KeyExpiredError,
    406: AuthPermissionError,    # IP not whitelisted
    602: SignatureError,
    701: AuthPermissionError,    # key lacks contract permission
}

RATE_LIMITED = 510


def map_error(code: Any, msg: str) -> ApiError:
    """
    Example:
        >>> type(map_error(602, "Signature verification failed").auth).__name__
        'SignatureError'
    """
    try:
        numeric: Optional[int] = int(code)
    except (TypeError, ValueError):
        numeric = None

    auth_cls = _AUTH_ERRORS.get(numeric)
    if auth_cls is not None:
        return ApiAuthError(auth_cls(msg, numeric))
    if numeric == RATE_LIMITED:
        return IpTimeoutError(None)
    return OtherApiError(f"MEXC error {code}: {msg}", code)
