"""
Bitmex Options
"""

from typing import Any, ClassVar, Type

from core.options import HandlerOption, HandlerOptions
from core.urls import EndpointUrl


class BitmexHttpUrl(EndpointUrl):
    MAIN = ("https://www.bitmex.com", "https://testnet.bitmex.com")
    NONE = ("",)


class BitmexOptions(HandlerOptions):
    """
    Attributes:
        http_auth: Sign HTTP requests with api-expires/api-key/api-signature
    """

    exchange: ClassVar[str] = "bitmex"

    http_url: BitmexHttpUrl = BitmexHttpUrl.MAIN
    http_auth: bool = False

    def request_handler(self, response_type: Any = None):
        from exchanges.bitmex.api_client import BitmexRequestHandler
        return BitmexRequestHandler(self, response_type)


class BitmexOption(HandlerOption):
    options_class: ClassVar[Type[HandlerOptions]] = BitmexOptions
