"""
Bybit WebSocket Handler

Public streams (`/v5/public/linear`, `/v5/public/spot`, ...) only need a
subscribe frame; private streams (`/v5/private`) authenticate first:

    {"op": "auth", "args": [api_key, expires, hex(HMAC-SHA256(secret, "GET/realtime" + expires))]}
    {"op": "subscribe", "args": ["publicTrade.BTCUSDT", ...]}

Inbound frames:
    - {"success": true, "op": "auth" | "subscribe", "ret_msg": "", "conn_id": "..."}
    - {"topic": "publicTrade.BTCUSDT", "type": "snapshot", "ts": 1700000000000, "data": [...]}

Usage:
    conn = client.ws_connection("/v5/public/linear", [
        BybitOption.ws_topics(["publicTrade.BTCUSDT"]),
    ])

WebSocket Documentation:
    https://bybit-exchange.github.io/docs/v5/ws/connect
"""

from typing import Any, List, Set

from core.errors import BuildAuthError, UnauthorizedError, WsAuthError, WsParseError, WsSubscriptionError
from core.logging import get_logger
from core.utils.signing import require_pubkey, require_secret, sign_hex
from core.utils.time import now_ms, to_utc_datetime
from core.ws import ContentEvent, JrpcResult, WsConfig, WsHandler, WsResponse, encode_frame

logger = get_logger(__name__)

# auth frames expire this many milliseconds after being built
AUTH_EXPIRY_MS = 1000


class BybitWsHandler(WsHandler):
    """WebSocket handler for Bybit v5 public and private streams."""

    exchange = "bybit"

    def config(self) -> WsConfig:
        config = super().config()
        config.auth = bool(self.options.ws_auth)
        return config

    def handle_auth(self) -> List[str]:
        try:
            pubkey = require_pubkey(self.options.pubkey)
            secret = require_secret(self.options.secret)
        except BuildAuthError as e:
            raise WsAuthError(e.auth) from e

        expires = now_ms() + AUTH_EXPIRY_MS
        signature = sign_hex(secret, f"GET/realtime{expires}")
        return [encode_frame({"op": "auth", "args": [pubkey, expires, signature]})]

    def handle_subscribe(self, topics: Set[str]) -> List[str]:
        if not topics:
            return []
        return [encode_frame({"op": "subscribe", "args": sorted(topics)})]

    def handle_jrpc(self, value: Any) -> JrpcResult:
        if not isinstance(value, dict):
            raise WsParseError("Expected a JSON object from Bybit", str(value)[:500])

        op = value.get("op")
        if op is not None:
            return self._handle_feedback(op, value)

        if "topic" in value and "data" in value:
            ts = value.get("ts")
            return ContentEvent(
                topic=str(value["topic"]),
                event_type=str(value.get("type", "")),
                time=to_utc_datetime(ts) if isinstance(ts, int) else None,
                data=value["data"],
            )

        raise WsParseError("Unrecognized Bybit frame", str(value)[:500])

    def _handle_feedback(self, op: str, value: dict) -> WsResponse:
        success = value.get("success") is True
        ret_msg = str(value.get("ret_msg", ""))

        if op == "auth":
            if not success:
                raise WsAuthError(UnauthorizedError(f"Authentication was not successful: {ret_msg}"))
            logger.info("Bybit websocket authentication successful")
            return WsResponse(subscribe=True)

        if op == "subscribe":
            if success:
                logger.info("Bybit websocket topics subscription successful")
                return WsResponse()
            if not self.options.ws_auth and ret_msg == "Request not authorized":
                raise WsAuthError(
                    UnauthorizedError("Tried to access a private endpoint without authentication")
                )
            raise WsSubscriptionError(ret_msg)

        # pong, unsubscribe
        return WsResponse()
