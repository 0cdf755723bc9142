"""
bitFlyer WebSocket Handler

JSON-RPC 2.0 over `wss://ws.lightstream.bitflyer.com/json-rpc`.

Outbound:
    {"jsonrpc": "2.0", "method": "auth", "id": "auth",
     "params": {"api_key": ..., "timestamp": ..., "nonce": ..., "signature": hex(HMAC(secret, timestamp || nonce))}}
    {"jsonrpc": "2.0", "method": "subscribe", "id": 1, "params": {"channel": "lightning_executions_BTC_JPY"}}

Inbound:
    - {"jsonrpc": "2.0", "id": 1, "result": true}                   request result
    - {"jsonrpc": "2.0", "id": 1, "error": {"code": ..., "message": ...}}
    - {"jsonrpc": "2.0", "method": "channelMessage",
       "params": {"channel": "...", "message": ...}}                 channel data

WebSocket Documentation:
    https://bf-lightning-api.readme.io/docs/realtime-api-auth
"""

import secrets
from typing import Any, List, Set

from core.errors import BuildAuthError, UnauthorizedError, WsAuthError, WsParseError, WsSubscriptionError
from core.utils.signing import require_pubkey, require_secret, sign_hex
from core.utils.time import now_ms
from core.ws import ContentEvent, JrpcResult, WsConfig, WsHandler, WsResponse, encode_frame

AUTH_ID = "auth"


class BitflyerWsHandler(WsHandler):
    exchange = "bitflyer"

    def __init__(self, options: Any):
        super().__init__(options)
        self._request_id = 0

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

        timestamp = now_ms()
        nonce = secrets.token_hex(16)
        return [encode_frame({
            "jsonrpc": "2.0",
            "method": "auth",
            "id": AUTH_ID,
            "params": {
                "api_key": pubkey,
                "timestamp": timestamp,
                "nonce": nonce,
                "signature": sign_hex(secret, f"{timestamp}{nonce}"),
            },
        })]

    def handle_subscribe(self, topics: Set[str]) -> List[str]:
        frames = []
        for channel in sorted(topics):
            self._request_id += 1
            frames.append(encode_frame({
                "jsonrpc": "2.0",
                "method": "subscribe",
                "id": self._request_id,
                "params": {"channel": channel},
            }))
        return frames

    def handle_jrpc(self, value: Any) -> JrpcResult:
        if not isinstance(value, dict):
            raise WsParseError("Expected a JSON-RPC object from bitFlyer", str(value)[:500])

        if value.get("method") == "channelMessage":
            params = value.get("params") or {}
            return ContentEvent(
                topic=str(params.get("channel", "")),
                event_type="channelMessage",
                data=params.get("message"),
            )

        if "error" in value:
            error = value["error"]
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            if value.get("id") == AUTH_ID:
                raise WsAuthError(UnauthorizedError(message))
            raise WsSubscriptionError(message)

        if value.get("id") == AUTH_ID:
            if value.get("result") is not True:
                raise WsAuthError(UnauthorizedError(f"bitFlyer auth rejected: {value}"))
            return WsResponse(subscribe=True)

        if "result" in value:
            return WsResponse()
        raise WsParseError("Unrecognized bitFlyer frame", str(value)[:500])
