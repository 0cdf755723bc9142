"""
Binance Options

Base URLs, auth modes and the option bag used by the Binance handlers.

Usage:
    from exchanges.binance.options import BinanceAuth, BinanceHttpUrl, BinanceOption

    options = [
        BinanceOption.http_url(BinanceHttpUrl.FUTURES_USDM),
        BinanceOption.http_auth(BinanceAuth.SIGN),
        BinanceOption.recv_window(5000),
    ]
"""

from enum import Enum
from typing import Any, ClassVar, Type

from pydantic import Field

from core.options import HandlerOption, HandlerOptions
from core.urls import EndpointUrl
from core.ws import WsConfig

_SPOT_TESTNET = "https://testnet.binance.vision"
_FUTURES_TESTNET = "https://testnet.binancefuture.com"


class BinanceHttpUrl(EndpointUrl):
    SPOT = ("https://api.binance.com", _SPOT_TESTNET)
    SPOT1 = ("https://api1.binance.com", _SPOT_TESTNET)
    SPOT2 = ("https://api2.binance.com", _SPOT_TESTNET)
    SPOT3 = ("https://api3.binance.com", _SPOT_TESTNET)
    SPOT4 = ("https://api4.binance.com", _SPOT_TESTNET)
    SPOT_TEST = (_SPOT_TESTNET, _SPOT_TESTNET)
    SPOT_DATA = ("https://data.binance.com",)
    FUTURES_USDM = ("https://fapi.binance.com", _FUTURES_TESTNET)
    FUTURES_COINM = ("https://dapi.binance.com", _FUTURES_TESTNET)
    FUTURES_TEST = (_FUTURES_TESTNET, _FUTURES_TESTNET)
    EUROPEAN_OPTIONS = ("https://eapi.binance.com",)
    NONE = ("",)


class BinanceWsUrl(EndpointUrl):
    SPOT_9443 = ("wss://stream.binance.com:9443", "wss://testnet.binance.vision")
    SPOT_443 = ("wss://stream.binance.com:443", "wss://testnet.binance.vision")
    SPOT_TEST = ("wss://testnet.binance.vision", "wss://testnet.binance.vision")
    SPOT_DATA = ("wss://data-stream.binance.com",)
    WEBSOCKET_443 = ("wss://ws-api.binance.com:443", "wss://testnet.binance.vision")
    WEBSOCKET_9443 = ("wss://ws-api.binance.com:9443", "wss://testnet.binance.vision")
    FUTURES_USDM = ("wss://fstream.binance.com", "wss://stream.binancefuture.com")
    FUTURES_USDM_AUTH = ("wss://fstream-auth.binance.com",)
    FUTURES_COINM = ("wss://dstream.binance.com", "wss://dstream.binancefuture.com")
    FUTURES_USDM_TEST = ("wss://stream.binancefuture.com", "wss://stream.binancefuture.com")
    FUTURES_COINM_TEST = ("wss://dstream.binancefuture.com", "wss://dstream.binancefuture.com")
    EUROPEAN_OPTIONS = ("wss://nbstream.binance.com",)
    NONE = ("",)


class BinanceAuth(str, Enum):
    """
    NONE: no credentials sent
    KEY: only the X-MBX-APIKEY header
    SIGN: API key header plus timestamp/recvWindow/signature query parameters
    """

    NONE = "none"
    KEY = "key"
    SIGN = "sign"


def _binance_ws_config() -> WsConfig:
    return WsConfig(ignore_duplicate_during_reconnection=True)


class BinanceOptions(HandlerOptions):
    exchange: ClassVar[str] = "binance"

    http_url: BinanceHttpUrl = BinanceHttpUrl.NONE
    http_auth: BinanceAuth = BinanceAuth.NONE
    ws_url: BinanceWsUrl = BinanceWsUrl.NONE
    ws_config: WsConfig = Field(default_factory=_binance_ws_config)

    def request_handler(self, response_type: Any = None):
        from exchanges.binance.api_client import BinanceRequestHandler
        return BinanceRequestHandler(self, response_type)

    def ws_handler(self):
        from exchanges.binance.ws_client import BinanceWsHandler
        return BinanceWsHandler(self)


class BinanceOption(HandlerOption):
    options_class: ClassVar[Type[HandlerOptions]] = BinanceOptions
