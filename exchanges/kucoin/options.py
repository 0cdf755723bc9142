"""
Kucoin Options

Kucoin signs with a third credential, the API passphrase, so its bag adds a
`passphrase` field and only counts as authenticated when all three are set.

Usage:
    client.update_default_option(KucoinOption.pubkey("key"))
    client.update_default_option(KucoinOption.secret("secret"))
    client.update_default_option(KucoinOption.passphrase("passphrase"))
"""

from enum import Enum
from typing import Any, ClassVar, Optional, Type

from pydantic import SecretStr

from core.options import HandlerOption, HandlerOptions
from core.urls import EndpointUrl


class KucoinHttpUrl(EndpointUrl):
    SPOT = ("https://api.kucoin.com", "https://openapi-sandbox.kucoin.com")
    FUTURES = ("https://api-futures.kucoin.com", "https://api-sandbox-futures.kucoin.com")
    NONE = ("", "")


class KucoinWsUrl(EndpointUrl):
    SPOT = ("wss://ws-api-spot.kucoin.com", "wss://ws-api-sandbox-spot.kucoin.com")
    FUTURES = ("wss://ws-api-futures.kucoin.com", "wss://ws-api-sandbox-futures.kucoin.com")
    NONE = ("", "")


class KucoinAuth(str, Enum):
    SIGN = "sign"
    NONE = "none"


class KucoinOptions(HandlerOptions):
    exchange: ClassVar[str] = "kucoin"

    passphrase: Optional[SecretStr] = None
    http_url: KucoinHttpUrl = KucoinHttpUrl.SPOT
    http_auth: KucoinAuth = KucoinAuth.NONE
    ws_url: KucoinWsUrl = KucoinWsUrl.SPOT

    def is_authenticated(self) -> bool:
        return super().is_authenticated() and self.passphrase is not None

    def request_handler(self, response_type: Any = None):
        from exchanges.kucoin.api_client import KucoinRequestHandler
        return KucoinRequestHandler(self, response_type)

    def ws_handler(self):
        from exchanges.kucoin.ws_client import KucoinWsHandler
        return KucoinWsHandler(self)


class KucoinOption(HandlerOption):
    options_class: ClassVar[Type[HandlerOptions]] = KucoinOptions

    def __repr__(self) -> str:
        if self.field == "passphrase":
            return f"{self.__class__.__name__}(passphrase=**********)"
        return super().__repr__()

    __str__ = __repr__

    @classmethod
    def passphrase(cls, value: str):
        return cls(field="passphrase", value=SecretStr(value))
