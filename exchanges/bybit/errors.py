"""
Bybit Error Codes

Bybit reports failures as {"retCode": <int>, "retMsg": "..."}, with HTTP 200
on v3/v5 endpoints and as {"code", "msg"} on older ones.

Documentation:
    https://bybit-exchange.github.io/docs/v5/error
"""

from enum import IntEnum
from typing import Optional

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
from core.logging import get_logger

logger = get_logger(__name__)


class BybitErrorCode(IntEnum):
    OK = 0

    # 10xxx - General / auth
    INVALID_API_KEY = 10003
    ERROR_SIGN = 10004
    PERMISSION_DENIED = 10005
    TOO_MANY_VISITS = 10006
    AUTHENTICATION_FAILED = 10007
    IP_BANNED = 10009
    UNMATCHED_IP = 10010
    INVALID_DUPLICATE_REQUEST = 10014
    SERVER_ERROR = 10016
    ROUTE_NOT_FOUND = 10017
    IP_RATE_LIMIT = 10018
    COMPLIANCE_RULES = 10024

    # 33xxx - Derivatives
    API_KEY_EXPIRED = 33004

    # 110xxx - Orders and positions
    ORDER_NOT_EXIST = 110001
    INSUFFICIENT_BALANCE = 110007


_AUTH_ERRORS = {
    BybitErrorCode.INVALID_API_KEY: UnauthorizedError,
    BybitErrorCode.ERROR_SIGN: SignatureError,
    BybitErrorCode.PERMISSION_DENIED: AuthPermissionError,
    BybitErrorCode.AUTHENTICATION_FAILED: UnauthorizedError,
    BybitErrorCode.UNMATCHED_IP: UnauthorizedError,
    BybitErrorCode.API_KEY_EXPIRED: KeyExpiredError,
}

_RATE_LIMITS = (BybitErrorCode.TOO_MANY_VISITS, BybitErrorCode.IP_RATE_LIMIT)


def lookup_code(code: int) -> Optional[BybitErrorCode]:
    try:
        return BybitErrorCode(code)
    except ValueError:
        logger.warning(f"Unknown Bybit error code {code}")
        return None


def map_error(code: int, msg: str) -> ApiError:
    """
    Translate a Bybit error code into an ApiError.

    Example:
        >>> type(map_error(33004, "api key expired").auth).__name__
        'KeyExpiredError'
    """
    named = lookup_code(code)
    if named is None:
        return OtherApiError(f"Bybit error {code}: {msg}", code)

    auth_cls = _AUTH_ERRORS.get(named)
    if auth_cls is not None:
        return ApiAuthError(auth_cls(msg, int(named)))
    if named in _RATE_LIMITS:
        return IpTimeoutError(None)
    return OtherApiError(f"Bybit error {int(named)}: {msg}", int(named))
