"""
Coincheck WebSocket Handler

Public channels only. One subscribe frame per channel:
    {"type": "subscribe", "channel": "btc_jpy-orderbook"}

Inbound frames are bare arrays without acknowledgements:
    - ["btc_jpy", {"bids": [...], "asks": [...]}]           order book
    - [["1663318663", "2357062", "btc_jpy", ...], ...]     trades
"""

from typing import Any, List, Set

from core.errors import WsParseError
from core.ws import ContentEvent, JrpcResult, WsHandler, WsResponse, encode_frame


class CoincheckWsHandler(WsHandler):
    exchange = "coincheck"

    def handle_subscribe(self, topics: Set[str]) -> List[str]:
        return [encode_frame({"type": "subscribe", "channel": c}) for c in sorted(topics)]

    def handle_jrpc(self, value: Any) -> JrpcResult:
        if isinstance(value, dict):
            # Coincheck does not acknowledge; anything keyed is informational
            return WsResponse()
        if not isinstance(value, list) or not value:
            raise WsParseError("Expected a JSON array from Coincheck", str(value)[:500])

        if isinstance(value[0], list):
            pair = value[0][2] if len(value[0]) > 2 else ""
            return ContentEvent(topic=f"{pair}-trades", event_type="trades", data=value)
        if len(value) == 2 and isinstance(value[1], dict):
            return ContentEvent(topic=f"{value[0]}-orderbook", event_type="orderbook", data=value[1])
        raise WsParseError("Unrecognized Coincheck frame", str(value)[:500])
