"""
Coincheck Options
"""

from typing import Any, ClassVar, Type

from core.options import HandlerOption, HandlerOptions
from core.urls import EndpointUrl


class CoincheckHttpUrl(EndpointUrl):
    MAIN = ("https://coincheck.com",)
    NONE = ("",)


class CoincheckWsUrl(EndpointUrl):
    DEFAULT = ("wss://ws-api.coincheck.com/",)
    NONE = ("",)


class CoincheckOptions(HandlerOptions):
    """
    Attributes:
        http_auth: Sign HTTP requests
    """

    exchange: ClassVar[str] = "coincheck"

    http_url: CoincheckHttpUrl = CoincheckHttpUrl.MAIN
    http_auth: bool = False
    ws_url: CoincheckWsUrl = CoincheckWsUrl.DEFAULT

    def request_handler(self, response_type: Any = None):
        from exchanges.coincheck.api_client import CoincheckRequestHandler
        return CoincheckRequestHandler(self, response_type)

    def ws_handler(self):
        from exchanges.coincheck.ws_client import CoincheckWsHandler
        return CoincheckWsHandler(self)


class CoincheckOption(HandlerOption):
    options_class: ClassVar[Type[HandlerOptions]] = CoincheckOptions
