"""
Binance WebSocket Handler

Binance streams either carry the stream name in the URL path
(`/ws/btcusdt@trade`) or are subscribed after connecting with

    {"method": "SUBSCRIBE", "params": ["btcusdt@trade", ...], "id": 1}

Inbound frames:
    - {"result": null, "id": 1}           subscribe acknowledgement
    - {"error": {"code", "msg"}, "id": 1}  rejected request
    - {"stream": "...", "data": {...}}     combined-stream payload
    - {"e": "trade", "E": 1700000000000, ...} raw-stream payload

WebSocket Documentation:
    https://developers.binance.com/docs/binance-spot-api-docs/web-socket-streams
"""

from typing import Any, List, Set

from core.errors import WsSubscriptionError
from core.utils.time import to_utc_datetime
from core.ws import ContentEvent, JrpcResult, WsHandler, WsResponse, encode_frame


class BinanceWsHandler(WsHandler):
    """WebSocket handler for Binance market and user-data streams."""

    exchange = "binance"

    def __init__(self, options: Any):
        super().__init__(options)
        self._request_id = 0

    def handle_subscribe(self, topics: Set[str]) -> List[str]:
        if not topics:
            return []
        self._request_id += 1
        return [encode_frame({"method": "SUBSCRIBE", "params": sorted(topics), "id": self._request_id})]

    def handle_jrpc(self, value: Any) -> JrpcResult:
        if isinstance(value, list):
            return ContentEvent(topic="", event_type="array", data=value)
        if not isinstance(value, dict):
            return ContentEvent(data=value)

        if "error" in value:
            error = value["error"]
            message = error.get("msg", str(error)) if isinstance(error, dict) else str(error)
            raise WsSubscriptionError(message)
        if "result" in value and "id" in value:
            return WsResponse()

        if "stream" in value and "data" in value:
            return _content(value["stream"], value["data"])
        return _content(str(value.get("s", "")), value)


def _content(topic: str, payload: Any) -> ContentEvent:
    if not isinstance(payload, dict):
        return ContentEvent(topic=topic, data=payload)
    event_time = payload.get("E")
    return ContentEvent(
        topic=topic,
        event_type=str(payload.get("e", "")),
        time=to_utc_datetime(event_time) if isinstance(event_time, int) else None,
        data=payload,
    )
