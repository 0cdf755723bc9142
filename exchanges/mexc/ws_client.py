"""
MEXC WebSocket Handler

Subscribing:
    {"method": "SUBSCRIPTION", "params": ["spot@public.deals.v3.api@BTCUSDT"]}

Inbound frames:
    - {"id": 0, "code": 0, "msg": "spot@public.deals.v3.api@BTCUSDT"}  request result
    - {"c": "<channel>", "d": {...}, "s": "BTCUSDT", "t": 1700000000000}  channel data
"""

from typing import Any, List, Set

from core.errors import WsParseError, WsSubscriptionError
from core.utils.time import to_utc_datetime
from core.ws import ContentEvent, JrpcResult, WsHandler, WsResponse, encode_frame


class MexcWsHandler(WsHandler):
    exchange = "mexc"

    def handle_subscribe(self, topics: Set[str]) -> List[str]:
        if not topics:
            return []
        return [encode_frame({"method": "SUBSCRIPTION", "params": sorted(topics)})]

    def handle_jrpc(self, value: Any) -> JrpcResult:
        if not isinstance(value, dict):
            raise WsParseError("Expected a JSON object from MEXC", str(value)[:500])

        if "code" in value and "c" not in value:
            if value["code"] != 0:
                raise WsSubscriptionError(str(value.get("msg", value)))
            return WsResponse()

        if "c" in value:
            t = value.get("t")
            return ContentEvent(
                topic=str(value["c"]),
                event_type=str(value.get("s", "")),
                time=to_utc_datetime(t) if isinstance(t, int) else None,
                data=value.get("d"),
            )

        # {"msg": "PONG"} and similar
        return WsResponse()
