"""
bitFlyer Options

bitFlyer has a single REST host and a single JSON-RPC socket, neither with
a testnet. Authentication is a plain on/off switch for both.
"""

from typing import Any, ClassVar, Type

from core.options import HandlerOption, HandlerOptions
from core.urls import EndpointUrl


class BitflyerHttpUrl(EndpointUrl):
    MAIN = ("https://api.bitflyer.com",)
    NONE = ("",)


class BitflyerWsUrl(EndpointUrl):
    DEFAULT = ("wss://ws.lightstream.bitflyer.com/json-rpc",)
    NONE = ("",)


class BitflyerOptions(HandlerOptions):
    """
    Attributes:
        http_auth: Sign HTTP requests
        ws_auth: Authenticate the socket before subscribing (private channels)
    """

    exchange: ClassVar[str] = "bitflyer"

    http_url: BitflyerHttpUrl = BitflyerHttpUrl.MAIN
    http_auth: bool = False
    ws_url: BitflyerWsUrl = BitflyerWsUrl.DEFAULT
    ws_auth: bool = False

    def request_handler(self, response_type: Any = None):
        from exchanges.bitflyer.api_client import BitflyerRequestHandler
        return BitflyerRequestHandler(self, response_type)

    def ws_handler(self):
        from exchanges.bitflyer.ws_client import BitflyerWsHandler
        return BitflyerWsHandler(self)


class BitflyerOption(HandlerOption):
    options_class: ClassVar[Type[HandlerOptions]] = BitflyerOptions

    @classmethod
    def ws_auth(cls, value: bool = True):
        return cls(field="ws_auth", value=value)
