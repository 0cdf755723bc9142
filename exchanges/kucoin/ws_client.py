"""
Kucoin WebSocket Handler

Frames are typed by their "type" field:
    - welcome / ack / pong: protocol, consumed by the connection
    - error: rejected subscription
    - message: {"topic": "/market/ticker:BTC-USDT", "subject": "trade.ticker", "data": {...}}

Subscribing:
    {"id": 1, "type": "subscribe", "topic": "/market/ticker:BTC-USDT,ETH-USDT", "response": true}

Notes:
    Kucoin hands out the socket URL and token through POST /api/v1/bullet-public;
    pass the resulting path (with `?token=...`) to client.ws_connection().
"""

from typing import Any, List, Set

from core.errors import WsParseError, WsSubscriptionError
from core.utils.time import to_utc_datetime
from core.ws import ContentEvent, JrpcResult, WsHandler, WsResponse, encode_frame

_PROTOCOL_TYPES = ("welcome", "ack", "pong")


class KucoinWsHandler(WsHandler):
    exchange = "kucoin"

    def __init__(self, options: Any):
        super().__init__(options)
        self._request_id = 0

    def handle_subscribe(self, topics: Set[str]) -> List[str]:
        if not topics:
            return []
        self._request_id += 1
        return [encode_frame({
            "id": self._request_id,
            "type": "subscribe",
            "topic": ",".join(sorted(topics)),
            "response": True,
        })]

    def handle_jrpc(self, value: Any) -> JrpcResult:
        if not isinstance(value, dict):
            raise WsParseError("Expected a JSON object from Kucoin", str(value)[:500])

        frame_type = value.get("type")
        if frame_type in _PROTOCOL_TYPES:
            return WsResponse()
        if frame_type == "error":
            raise WsSubscriptionError(str(value.get("data", value)))

        time = value.get("time")
        return ContentEvent(
            topic=str(value.get("topic", "")),
            event_type=str(value.get("subject", frame_type or "")),
            time=to_utc_datetime(time) if isinstance(time, int) else None,
            data=value.get("data"),
        )
