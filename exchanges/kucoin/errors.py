"""
Kucoin Error Codes

Kucoin wraps every response in {"code": "200000", "data": ...}; any other
code is an error, even with HTTP 200. Codes are strings.

Documentation:
    https://www.kucoin.com/docs/basic-info/request-rate-limit/rest-api
"""

from core.errors import (
    ApiAuthError,
    ApiError,
    AuthPermissionError,
    IpTimeoutError,
    OtherApiError,
    SignatureError,
    TimestampError,
    UnauthorizedError,
)

SUCCESS_CODE = "200000"

_AUTH_ERRORS = {
    "400001": UnauthorizedError,     # missing KC-API headers
    "400002": TimestampError,        # KC-API-TIMESTAMP outside the window
    "400003": UnauthorizedError,     # KC-API-KEY not found
    "400004": UnauthorizedError,     # invalid KC-API-PASSPHRASE
    "400005": SignatureError,        # invalid KC-API-SIGN
    "400006": AuthPermissionError,   # IP not in the whitelist
    "400007": AuthPermissionError,   # key lacks the permission
    "411100": AuthPermissionError,   # user frozen
}

RATE_LIMITED = "429000"


def map_error(code: str, msg: str) -> ApiError:
    """
    Example:
        >>> type(map_error("400005", "Invalid KC-API-SIGN").auth).__name__
        'SignatureError'
    """
    auth_cls = _AUTH_ERRORS.get(code)
    if auth_cls is not None:
        return ApiAuthError(auth_cls(msg, code))
    if code == RATE_LIMITED:
        return IpTimeoutError(None)
    return OtherApiError(f"Kucoin error {code}: {msg}", code)
