"""
Error Taxonomy

Every failure the client can report is an exception class from this module.
The hierarchy mirrors the stages of a call so that callers can react to
exchange semantics (IP bans, expired keys, bad signatures) without parsing
messages:

    UnifexError
    ├── UrlError                      base URL could not be resolved
    │   ├── UrlParseError
    │   └── MissingTestnetError       descriptor has no testnet URL
    ├── AuthError                     credential problems (local or reported by the exchange)
    │   ├── MissingPubkeyError / MissingSecretError / MissingPassphraseError
    │   ├── InvalidCharacterInApiKeyError
    │   └── UnauthorizedError / KeyExpiredError / SignatureError / TimestampError / AuthPermissionError
    ├── BuildError                    request could not be built
    │   ├── BuildAuthError            .auth holds the AuthError
    │   ├── SerializationError
    │   └── OtherBuildError
    ├── HandleError                   response was received but not accepted
    │   ├── ApiError
    │   │   ├── IpTimeoutError        .until holds the unban deadline (or None)
    │   │   ├── ApiAuthError          .auth holds the AuthError
    │   │   └── OtherApiError         .code / .message
    │   ├── ParseError                .body holds the truncated body
    │   └── OtherHandleError
    ├── RequestError                  what HTTP dispatch raises
    │   ├── BuildRequestError         .error holds the BuildError
    │   ├── SendRequestError          transport failure before a response
    │   ├── ReceiveResponseError      body could not be read
    │   ├── HandleResponseError       .error holds the HandleError
    │   ├── RequestUrlError           .error holds the UrlError
    │   └── OtherRequestError
    ├── WsError                       what WebSocket connections raise
    └── domain errors raised before any network activity

Usage:
    try:
        await client.get_no_query("/fapi/v3/balance", [...])
    except HandleResponseError as e:
        auth = find_auth_error(e)
        if auth is not None:
            rotate_keys()

Notes:
    Transport exceptions from aiohttp are chained with ``raise ... from``.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, List, Optional, Tuple


class UnifexError(Exception):
    """Base class of every error raised by the client."""


# ============================================
# URL Errors
# ============================================

class UrlError(UnifexError):
    """The base URL for a request or stream could not be resolved."""


class UrlParseError(UrlError):
    """A configured URL is not a valid absolute URL."""

    def __init__(self, url: str):
        self.url = url
        super().__init__(f"Invalid URL: {url!r}")


class MissingTestnetError(UrlError):
    """
    The testnet flag is set but the chosen endpoint has no testnet.

    Attributes:
        mainnet_url: The mainnet URL of the descriptor, for diagnostics
    """

    def __init__(self, mainnet_url: str):
        self.mainnet_url = mainnet_url
        super().__init__(f"Testnet is not available for {mainnet_url}")


# ============================================
# Auth Errors
# ============================================

class AuthError(UnifexError):
    """
    Credential problem, detected locally or reported by the exchange.

    Attributes:
        message: Human readable message (the exchange's own message when reported remotely)
        code: Exchange error code when the error came from a response
    """

    def __init__(self, message: str = "", code: Optional[Any] = None):
        self.message = message
        self.code = code
        text = message or self.__class__.__name__
        if code is not None:
            text = f"{text} (code {code})"
        super().__init__(text)


class MissingPubkeyError(AuthError):
    def __init__(self):
        super().__init__("Missing API public key")


class MissingSecretError(AuthError):
    def __init__(self):
        super().__init__("Missing API secret")


class MissingPassphraseError(AuthError):
    def __init__(self):
        super().__init__("Missing passphrase")


class InvalidCharacterInApiKeyError(AuthError):
    """The API key contains a character that is not allowed in an HTTP header."""

    def __init__(self, value: str):
        self.value = value
        super().__init__(f"Invalid character in API key: {value!r}")


class UnauthorizedError(AuthError):
    pass


class KeyExpiredError(AuthError):
    pass


class SignatureError(AuthError):
    pass


class TimestampError(AuthError):
    pass


class AuthPermissionError(AuthError):
    pass


# ============================================
# Build Errors
# ============================================

class BuildError(UnifexError):
    """The request could not be turned into a wire request."""


class BuildAuthError(BuildError):
    def __init__(self, auth: AuthError):
        self.auth = auth
        super().__init__(f"Authentication error while building request: {auth}")


class SerializationError(BuildError):
    """
    The body or query could not be serialized.

    Attributes:
        format: "url" or "json"
    """

    def __init__(self, format: str, detail: str):
        self.format = format
        self.detail = detail
        super().__init__(f"Could not serialize {format} payload: {detail}")


class OtherBuildError(BuildError):
    pass


# ============================================
# Handle Errors
# ============================================

class HandleError(UnifexError):
    """A response arrived but could not be turned into a success value."""


class ApiError(HandleError):
    """The exchange reported an error."""


class IpTimeoutError(ApiError):
    """
    The exchange is rate limiting or banning this IP.

    Attributes:
        until: UTC deadline after which requests may resume, None when unknown
    """

    def __init__(self, until: Optional[datetime] = None):
        self.until = until
        if until is None:
            super().__init__("IP timeout (rate limited)")
        else:
            super().__init__(f"IP timeout (rate limited) until {until.isoformat()}")

    @classmethod
    def from_retry_after(cls, retry_after: Optional[str]) -> "IpTimeoutError":
        """
        Build the error from a Retry-After header holding whole seconds.

        Args:
            retry_after: Raw header value or None

        Returns:
            IpTimeoutError with until = now + seconds, or None when absent/unparsable
        """
        if retry_after is None:
            return cls(None)
        try:
            seconds = int(retry_after.strip())
        except ValueError:
            return cls(None)
        return cls(datetime.now(timezone.utc) + timedelta(seconds=seconds))


class ApiAuthError(ApiError):
    def __init__(self, auth: AuthError):
        self.auth = auth
        super().__init__(f"Authentication error: {auth}")


class OtherApiError(ApiError):
    """
    Any other error reported by the exchange.

    Attributes:
        code: Exchange error code (int or str), None when the exchange sent none
        message: Exchange message
    """

    def __init__(self, message: str, code: Optional[Any] = None):
        self.code = code
        self.message = message
        if code is None:
            super().__init__(message)
        else:
            super().__init__(f"{message} (code {code})")


class ParseError(HandleError):
    """
    The body could not be decoded as the expected success type.

    Attributes:
        body: Truncated response body
        detail: Decoder message
    """

    def __init__(self, detail: str, body: str = ""):
        self.detail = detail
        self.body = body
        super().__init__(f"Could not parse response: {detail} | body: {body}")


class OtherHandleError(HandleError):
    pass


# ============================================
# Request Errors
# ============================================

class RequestError(UnifexError):
    """Raised by HTTP dispatch; subclasses tell which stage failed."""


class BuildRequestError(RequestError):
    def __init__(self, error: BuildError):
        self.error = error
        super().__init__(f"Failed to build request: {error}")


class SendRequestError(RequestError):
    pass


class ReceiveResponseError(RequestError):
    pass


class HandleResponseError(RequestError):
    def __init__(self, error: HandleError):
        self.error = error
        super().__init__(f"Failed to handle response: {error}")


class RequestUrlError(RequestError):
    def __init__(self, error: UrlError):
        self.error = error
        super().__init__(str(error))


class OtherRequestError(RequestError):
    pass


# ============================================
# WebSocket Errors
# ============================================

class WsError(UnifexError):
    """Raised by WebSocket connections."""


class WsUrlError(WsError):
    def __init__(self, error: UrlError):
        self.error = error
        super().__init__(str(error))


class WsAuthError(WsError):
    def __init__(self, auth: AuthError):
        self.auth = auth
        super().__init__(f"WebSocket authentication error: {auth}")


class WsTransportError(WsError):
    pass


class WsParseError(WsError):
    def __init__(self, detail: str, frame: str = ""):
        self.detail = detail
        self.frame = frame
        super().__init__(f"Could not parse frame: {detail} | frame: {frame}")


class WsSubscriptionError(WsError):
    def __init__(self, message: str):
        self.message = message
        super().__init__(f"Subscription failed: {message}")


class WsClosedError(WsError):
    """The connection was closed by the caller."""


class OtherWsError(WsError):
    pass


# ============================================
# Domain Errors (raised before transport)
# ============================================

class UnsupportedTimeframeError(UnifexError):
    def __init__(self, provided: str, allowed: Iterable[str]):
        self.provided = provided
        self.allowed: List[str] = [str(tf) for tf in allowed]
        super().__init__(
            f"Timeframe {provided} is not supported; allowed: {', '.join(self.allowed)}"
        )


class OutOfRangeError(UnifexError):
    def __init__(self, allowed: Tuple[int, int], provided: int):
        self.allowed = allowed
        self.provided = provided
        super().__init__(f"Value {provided} is out of range {allowed[0]}..={allowed[1]}")


class MethodNotSupportedError(UnifexError):
    def __init__(self, exchange: str, instrument: Optional[str] = None, method: Optional[str] = None):
        self.exchange = exchange
        self.instrument = instrument
        self.method = method
        what = method or "method"
        where = f" for instrument {instrument}" if instrument else ""
        super().__init__(f"{exchange} does not support {what}{where}")


# ============================================
# Helpers
# ============================================

def find_auth_error(error: BaseException) -> Optional[AuthError]:
    """
    Walk the wrapper attributes of an error and return the nested AuthError.

    Args:
        error: Any exception raised by the client

    Returns:
        The AuthError at the bottom of the chain, or None

    Example:
        >>> err = HandleResponseError(ApiAuthError(UnauthorizedError("bad key", -2015)))
        >>> find_auth_error(err).code
        -2015
    """
    current: Optional[BaseException] = error
    while current is not None:
        if isinstance(current, AuthError):
            return current
        current = getattr(current, "auth", None) or getattr(current, "error", None)
    return None
