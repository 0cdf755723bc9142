"""
Binance Error Codes

Binance reports failures as {"code": <negative int>, "msg": "..."}. This
module names every documented code and maps the ones with auth or rate-limit
meaning onto the unified taxonomy.

Documentation:
    https://developers.binance.com/docs/binance-spot-api-docs/errors
"""

from enum import IntEnum
from typing import Optional

from core.errors import (
    ApiAuthError,
    ApiError,
    IpTimeoutError,
    OtherApiError,
    SignatureError,
    TimestampError,
    UnauthorizedError,
)
from core.logging import get_logger

logger = get_logger(__name__)


class BinanceErrorCode(IntEnum):
    # 10xx - General server or network issues
    UNKNOWN = -1000
    DISCONNECTED = -1001
    UNAUTHORIZED = -1002
    TOO_MANY_REQUESTS = -1003
    UNEXPECTED_RESPONSE = -1006
    TIMEOUT = -1007
    SERVER_BUSY = -1008
    INVALID_MESSAGE = -1013
    UNKNOWN_ORDER_COMPOSITION = -1014
    TOO_MANY_ORDERS = -1015
    SERVICE_SHUTTING_DOWN = -1016
    UNSUPPORTED_OPERATION = -1020
    INVALID_TIMESTAMP = -1021
    INVALID_SIGNATURE = -1022

    # 11xx - Request issues
    ILLEGAL_CHARS = -1100
    TOO_MANY_PARAMETERS = -1101
    MANDATORY_PARAM_EMPTY_OR_MALFORMED = -1102
    UNKNOWN_PARAM = -1103
    UNREAD_PARAMETERS = -1104
    PARAM_EMPTY = -1105
    PARAM_NOT_REQUIRED = -1106
    PARAM_OVERFLOW = -1108
    BAD_PRECISION = -1111
    NO_DEPTH = -1112
    TIF_NOT_REQUIRED = -1114
    INVALID_TIF = -1115
    INVALID_ORDER_TYPE = -1116
    INVALID_SIDE = -1117
    EMPTY_NEW_CL_ORD_ID = -1118
    EMPTY_ORG_CL_ORD_ID = -1119
    BAD_INTERVAL = -1120
    BAD_SYMBOL = -1121
    INVALID_SYMBOL_STATUS = -1122
    INVALID_LISTEN_KEY = -1125
    MORE_THAN_XX_HOURS = -1127
    OPTIONAL_PARAMS_BAD_COMBO = -1128
    INVALID_PARAMETER = -1130
    BAD_STRATEGY_TYPE = -1134
    INVALID_JSON = -1135
    INVALID_TICKER_TYPE = -1139
    INVALID_CANCEL_RESTRICTIONS = -1145
    DUPLICATE_SYMBOLS = -1151
    INVALID_SBE_HEADER = -1152
    UNSUPPORTED_SCHEMA_ID = -1153
    SBE_DISABLED = -1155
    OCO_ORDER_TYPE_REJECTED = -1158
    OCO_ICEBERGQTY_TIMEINFORCE = -1160
    DEPRECATED_SCHEMA = -1161
    BUY_OCO_LIMIT_MUST_BE_BELOW = -1165
    SELL_OCO_LIMIT_MUST_BE_ABOVE = -1166
    BOTH_OCO_ORDERS_CANNOT_BE_LIMIT = -1168
    INVALID_TAG_NUMBER = -1169
    TAG_NOT_DEFINED_IN_MESSAGE = -1170
    TAG_APPEARS_MORE_THAN_ONCE = -1171
    TAG_OUT_OF_ORDER = -1172
    GROUP_FIELDS_OUT_OF_ORDER = -1173
    INVALID_COMPONENT = -1174
    RESET_SEQ_NUM_SUPPORT = -1175
    ALREADY_LOGGED_IN = -1176
    GARBLED_MESSAGE = -1177
    BAD_SENDER_COMPID = -1178
    BAD_SEQ_NUM = -1179
    EXPECTED_LOGON = -1180
    TOO_MANY_MESSAGES = -1181
    PARAMS_BAD_COMBO = -1182
    NOT_ALLOWED_IN_DROP_COPY_SESSIONS = -1183
    DROP_COPY_SESSION_NOT_ALLOWED = -1184
    DROP_COPY_SESSION_REQUIRED = -1185
    NOT_ALLOWED_IN_ORDER_ENTRY_SESSIONS = -1186
    NOT_ALLOWED_IN_MARKET_DATA_SESSIONS = -1187
    INCORRECT_NUM_IN_GROUP_COUNT = -1188
    DUPLICATE_ENTRIES_IN_A_GROUP = -1189
    INVALID_REQUEST_ID = -1190
    TOO_MANY_SUBSCRIPTIONS = -1191
    BUY_OCO_STOP_LOSS_MUST_BE_ABOVE = -1196
    SELL_OCO_STOP_LOSS_MUST_BE_BELOW = -1197
    BUY_OCO_TAKE_PROFIT_MUST_BE_BELOW = -1198
    SELL_OCO_TAKE_PROFIT_MUST_BE_ABOVE = -1199

    # 20xx - Processing issues
    NEW_ORDER_REJECTED = -2010
    CANCEL_REJECTED = -2011
    NO_SUCH_ORDER = -2013
    BAD_API_KEY_FMT = -2014
    REJECTED_MBX_KEY = -2015
    NO_TRADING_WINDOW = -2016
    ORDER_CANCEL_REPLACE_PARTIALLY_FAILED = -2021
    ORDER_CANCEL_REPLACE_FAILED = -2022
    ORDER_ARCHIVED = -2026


_AUTH_ERRORS = {
    BinanceErrorCode.UNAUTHORIZED: UnauthorizedError,
    BinanceErrorCode.BAD_API_KEY_FMT: UnauthorizedError,
    BinanceErrorCode.REJECTED_MBX_KEY: UnauthorizedError,
    BinanceErrorCode.INVALID_TIMESTAMP: TimestampError,
    BinanceErrorCode.INVALID_SIGNATURE: SignatureError,
}


def lookup_code(code: int) -> Optional[BinanceErrorCode]:
    """Return the named code, or None (with a warning) for undocumented codes."""
    try:
        return BinanceErrorCode(code)
    except ValueError:
        logger.warning(f"Unknown Binance error code {code}")
        return None


def map_error(code: int, msg: str) -> ApiError:
    """
    Translate a Binance {code, msg} body into an ApiError.

    Example:
        >>> err = map_error(-2015, "Invalid API-key, IP, or permissions for action.")
        >>> type(err.auth).__name__, err.auth.code
        ('UnauthorizedError', -2015)
    """
    named = lookup_code(code)
    if named is None:
        return OtherApiError(msg, code)

    auth_cls = _AUTH_ERRORS.get(named)
    if auth_cls is not None:
        return ApiAuthError(auth_cls(msg, int(named)))
    if named == BinanceErrorCode.TOO_MANY_REQUESTS:
        return IpTimeoutError(None)
    return OtherApiError(f"{named.name}: {msg}", int(named))
