"""
Options Store

Every exchange has an option bag (a HandlerOptions subclass) holding its
credentials, base URL descriptors, auth mode, retry policy and WebSocket
settings, plus an option factory (a HandlerOption subclass) producing the
single-field updates applied to it:

    client.update_default_option(BinanceOption.pubkey("my-key"))
    await client.get_no_query("/fapi/v3/balance", [
        BinanceOption.http_url(BinanceHttpUrl.FUTURES_USDM),
        BinanceOption.http_auth(BinanceAuth.SIGN),
    ])

Key Features:
    - update() overwrites exactly one field and validates it
    - merged() applies per-call overrides to a deep copy of the defaults
    - Secrets are stored as pydantic.SecretStr and render redacted
    - The option class tells the facade which exchange a call is for

Notes:
    `<Exchange>Option.default()` is a no-op update, used when a call needs no
    overrides but still has to name its exchange.
"""

from typing import Any, ClassVar, Iterable, Optional, Set, Type

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from core.errors import MethodNotSupportedError
from core.http import RequestConfig, RequestHandler
from core.ws import WsConfig, WsHandler

DEFAULT_FIELD = "default"


class HandlerOption(BaseModel):
    """
    One update for an option bag: the field to set and its value.

    Subclasses bind `options_class` to their exchange's bag and may add
    factories for exchange-specific fields.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    options_class: ClassVar[Type["HandlerOptions"]]

    field: str
    value: Any = None

    def __repr__(self) -> str:
        if self.field == "secret":
            return f"{self.__class__.__name__}(secret=**********)"
        return f"{self.__class__.__name__}({self.field}={self.value!r})"

    __str__ = __repr__

    # ============================================
    # Factories for the common fields
    # ============================================

    @classmethod
    def default(cls):
        return cls(field=DEFAULT_FIELD)

    @classmethod
    def pubkey(cls, value: str):
        return cls(field="pubkey", value=value)

    @classmethod
    def secret(cls, value: str):
        return cls(field="secret", value=SecretStr(value))

    @classmethod
    def recv_window(cls, value: int):
        return cls(field="recv_window", value=value)

    @classmethod
    def testnet(cls, value: bool = True):
        return cls(field="testnet", value=value)

    @classmethod
    def request_config(cls, value: RequestConfig):
        return cls(field="request_config", value=value)

    @classmethod
    def http_url(cls, value: Any):
        return cls(field="http_url", value=value)

    @classmethod
    def http_auth(cls, value: Any):
        return cls(field="http_auth", value=value)

    @classmethod
    def ws_url(cls, value: Any):
        return cls(field="ws_url", value=value)

    @classmethod
    def ws_config(cls, value: WsConfig):
        return cls(field="ws_config", value=value)

    @classmethod
    def ws_topics(cls, value: Iterable[str]):
        return cls(field="ws_topics", value=set(value))


class HandlerOptions(BaseModel):
    """
    Per-exchange option bag.

    Subclasses declare `http_url`, `http_auth` and `ws_url` with their own
    enums and implement the two handler factories.

    Attributes:
        pubkey: API public key
        secret: API secret (redacted in repr and logs)
        recv_window: Receive window in milliseconds, exchange default when None
        testnet: Route calls to the testnet URL of each descriptor
        request_config: Retry policy and timeouts
        ws_config: WebSocket timings and base topics
        ws_topics: Extra topics merged into ws_config.topics
    """

    model_config = ConfigDict(validate_assignment=True, arbitrary_types_allowed=True)

    exchange: ClassVar[str] = ""

    pubkey: Optional[str] = None
    secret: Optional[SecretStr] = None
    recv_window: Optional[int] = Field(default=None, gt=0)
    testnet: bool = False
    request_config: RequestConfig = Field(default_factory=RequestConfig)
    ws_config: WsConfig = Field(default_factory=WsConfig)
    ws_topics: Set[str] = Field(default_factory=set)

    def update(self, option: HandlerOption) -> None:
        """
        Fold one option into the bag.

        Raises:
            TypeError: The option belongs to another exchange
            pydantic.ValidationError: The value does not fit the field
        """
        if not isinstance(option, HandlerOption) or option.options_class is not type(self):
            raise TypeError(
                f"{type(option).__name__} cannot update {type(self).__name__}"
            )
        if option.field == DEFAULT_FIELD:
            return
        if option.field not in type(self).model_fields:
            raise TypeError(f"{type(self).__name__} has no option {option.field!r}")
        setattr(self, option.field, option.value)

    def merged(self, overrides: Iterable[HandlerOption]) -> "HandlerOptions":
        """Return a copy of the bag with `overrides` applied in order."""
        result = self.model_copy(deep=True)
        for option in overrides:
            result.update(option)
        return result

    def is_authenticated(self) -> bool:
        """True when the fields needed for signed requests are present."""
        return self.pubkey is not None and self.secret is not None

    def request_handler(self, response_type: Any = None) -> RequestHandler:
        raise MethodNotSupportedError(self.exchange, method="request_handler")

    def ws_handler(self) -> WsHandler:
        raise MethodNotSupportedError(self.exchange, method="ws_connection")
