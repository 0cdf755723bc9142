"""
MEXC Request Handler

Signing (FUTURES host):
    Signature = hex(HMAC-SHA256(secret, api_key || Request-Time || param_string))
    where param_string is the query string for GET/DELETE and the JSON body
    otherwise. Sent as ApiKey, Request-Time, Recv-Window and Signature headers.

Signing (SPOT host):
    Binance-style: `timestamp` (and `recvWindow`) are appended to the query,
    signature = hex(HMAC-SHA256(secret, query || body)) is appended as
    `signature`, and the key travels in X-MEXC-APIKEY.

Response Handling:
    Contract endpoints answer {"success": false, "code": ..., "message": ...}
    with HTTP 200 on failure; spot endpoints use non-2xx {"code", "msg"}.

API Documentation:
    https://mexcdevelop.github.io/apidocs/contract_v1_en/#access-and-method
    https://mexcdevelop.github.io/apidocs/spot_v3_en/#signed
"""

from typing import Any

from core.errors import IpTimeoutError, OtherApiError
from core.http import BodyLike, PreparedRequest, RawResponse, RequestHandler, encode_form_body, encode_json_body
from core.utils.signing import require_pubkey, require_secret, sign_hex
from core.utils.time import now_ms
from exchanges.mexc.errors import map_error
from exchanges.mexc.options import MexcAuth, MexcHttpUrl

JSON_CONTENT_TYPE = "application/json"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


class MexcRequestHandler(RequestHandler):
    """Request handler for the MEXC spot and contract REST APIs."""

    exchange = "mexc"

    @property
    def is_futures(self) -> bool:
        return self.options.http_url is MexcHttpUrl.FUTURES

    def build_request(self, request: PreparedRequest, body: BodyLike, attempt: int) -> PreparedRequest:
        if self.is_futures:
            return self._build_futures(request, body)
        return self._build_spot(request, body)

    def _build_futures(self, request: PreparedRequest, body: BodyLike) -> PreparedRequest:
        request.body = encode_json_body(body)
        if request.body is not None:
            request.headers["Content-Type"] = JSON_CONTENT_TYPE

        auth = self.options.http_auth
        if auth is MexcAuth.NONE:
            return request

        pubkey = require_pubkey(self.options.pubkey)
        request.headers["ApiKey"] = pubkey
        if auth is MexcAuth.KEY:
            return request

        secret = require_secret(self.options.secret)
        timestamp = str(now_ms())
        if request.method in ("GET", "DELETE"):
            param_string = request.query_string()
        else:
            param_string = request.body or ""

        request.headers["Request-Time"] = timestamp
        if self.options.recv_window is not None:
            request.headers["Recv-Window"] = str(self.options.recv_window)
        request.headers["Signature"] = sign_hex(secret, f"{pubkey}{timestamp}{param_string}")
        return request

    def _build_spot(self, request: PreparedRequest, body: BodyLike) -> PreparedRequest:
        request.body = encode_form_body(body)
        if request.body is not None:
            request.headers["Content-Type"] = FORM_CONTENT_TYPE

        auth = self.options.http_auth
        if auth is MexcAuth.NONE:
            return request

        request.headers["X-MEXC-APIKEY"] = require_pubkey(self.options.pubkey)
        if auth is MexcAuth.KEY:
            return request

        secret = require_secret(self.options.secret)
        request.query.append(("timestamp", str(now_ms())))
        if self.options.recv_window is not None:
            request.query.append(("recvWindow", str(self.options.recv_window)))
        payload = request.query_string() + (request.body or "")
        request.query.append(("signature", sign_hex(secret, payload)))
        return request

    def handle_response(self, response: RawResponse) -> Any:
        if response.status == 429:
            raise IpTimeoutError.from_retry_after(response.header("Retry-After"))

        data = response.json()
        if response.ok:
            if isinstance(data, dict) and data.get("success") is False:
                raise map_error(data.get("code"), str(data.get("message", data.get("msg", ""))))
            return self.decode(data, response)

        if isinstance(data, dict) and "code" in data:
            raise map_error(data["code"], str(data.get("msg", data.get("message", ""))))
        raise OtherApiError(f"MEXC HTTP {response.status}: {response.truncated()}")
