"""
MEXC Options

MEXC runs two unrelated REST APIs: spot (`api.mexc.com`, Binance-like query
signatures) and contracts (`contract.mexc.com`, header signatures). The
HTTP descriptor picks both the host and the signing scheme.
"""

from enum import Enum
from typing import Any, ClassVar, Type

from pydantic import Field

from core.options import HandlerOption, HandlerOptions
from core.urls import EndpointUrl
from core.ws import WsConfig


class MexcHttpUrl(EndpointUrl):
    SPOT = ("https://api.mexc.com", "https://api-testnet.mexc.com")
    FUTURES = ("https://contract.mexc.com",)
    NONE = ("", "")


class MexcWsUrl(EndpointUrl):
    SPOT = ("wss://stream.mexc.com/ws", "wss://stream-testnet.mexc.com/ws")
    NONE = ("", "")


class MexcAuth(str, Enum):
    """
    NONE: no credentials sent
    KEY: only the API key header
    SIGN: API key plus signature
    """

    NONE = "none"
    KEY = "key"
    SIGN = "sign"


def _mexc_ws_config() -> WsConfig:
    return WsConfig(ignore_duplicate_during_reconnection=True)


class MexcOptions(HandlerOptions):
    exchange: ClassVar[str] = "mexc"

    http_url: MexcHttpUrl = MexcHttpUrl.NONE
    http_auth: MexcAuth = MexcAuth.NONE
    ws_url: MexcWsUrl = MexcWsUrl.NONE
    ws_config: WsConfig = Field(default_factory=_mexc_ws_config)

    def request_handler(self, response_type: Any = None):
        from exchanges.mexc.api_client import MexcRequestHandler
        return MexcRequestHandler(self, response_type)

    def ws_handler(self):
        from exchanges.mexc.ws_client import MexcWsHandler
        return MexcWsHandler(self)


class MexcOption(HandlerOption):
    options_class: ClassVar[Type[HandlerOptions]] = MexcOptions
