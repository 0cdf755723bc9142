"""
Bybit Options

Base URLs, auth modes and the option bag used by the Bybit handlers.

Usage:
    from exchanges.bybit.options import BybitAuth, BybitOption

    options = [BybitOption.http_auth(BybitAuth.V3_AND_ABOVE), BybitOption.recv_window(5000)]

Notes:
    http_url and ws_url default to BYBIT, so public v5 calls only need
    `BybitOption.default()`.
"""

from enum import Enum
from typing import Any, ClassVar, Type

from pydantic import Field

from core.options import HandlerOption, HandlerOptions
from core.urls import EndpointUrl
from core.ws import WsConfig


class BybitHttpUrl(EndpointUrl):
    BYBIT = ("https://api.bybit.com", "https://api-testnet.bybit.com")
    BYTICK = ("https://api.bytick.com",)
    NONE = ("", "")


class BybitWsUrl(EndpointUrl):
    BYBIT = ("wss://stream.bybit.com", "wss://stream-testnet.bybit.com")
    BYTICK = ("wss://stream.bytick.com",)
    NONE = ("", "")


class BybitAuth(str, Enum):
    """
    SPOT_V1: legacy spot API, sorted-parameter signature, form body
    BELOW_V3: legacy derivatives APIs, sorted-parameter signature, JSON body
    USDC_CONTRACT_V1: v3-style header signature plus X-BAPI-SIGN-TYPE: 2
    V3_AND_ABOVE: v3 and v5 header signature
    NONE: public endpoints
    """

    SPOT_V1 = "spot_v1"
    BELOW_V3 = "below_v3"
    USDC_CONTRACT_V1 = "usdc_contract_v1"
    V3_AND_ABOVE = "v3_and_above"
    NONE = "none"


def _bybit_ws_config() -> WsConfig:
    return WsConfig(ignore_duplicate_during_reconnection=True)


class BybitOptions(HandlerOptions):
    """
    Attributes:
        ws_auth: Authenticate the socket before subscribing (private topics)
    """

    exchange: ClassVar[str] = "bybit"

    http_url: BybitHttpUrl = BybitHttpUrl.BYBIT
    http_auth: BybitAuth = BybitAuth.NONE
    ws_url: BybitWsUrl = BybitWsUrl.BYBIT
    ws_auth: bool = False
    ws_config: WsConfig = Field(default_factory=_bybit_ws_config)

    def request_handler(self, response_type: Any = None):
        from exchanges.bybit.api_client import BybitRequestHandler
        return BybitRequestHandler(self, response_type)

    def ws_handler(self):
        from exchanges.bybit.ws_client import BybitWsHandler
        return BybitWsHandler(self)


class BybitOption(HandlerOption):
    options_class: ClassVar[Type[HandlerOptions]] = BybitOptions

    @classmethod
    def ws_auth(cls, value: bool = True):
        return cls(field="ws_auth", value=value)
