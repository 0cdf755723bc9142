"""
bitFlyer Request Handler

Signing:
    ACCESS-SIGN = hex(HMAC-SHA256(secret, timestamp || METHOD || path?query || body))
    sent with ACCESS-KEY and ACCESS-TIMESTAMP (milliseconds).

Response Handling:
    bitFlyer has no success envelope. Error bodies look like
    {"status": -208, "error_message": "Order is not accepted", "data": null}
    and keep their status as the error code.

API Documentation:
    https://lightning.bitflyer.com/docs?lang=en#authentication
"""

from typing import Any

from core.errors import IpTimeoutError, OtherApiError
from core.http import BodyLike, PreparedRequest, RawResponse, RequestHandler, encode_json_body
from core.utils.signing import require_pubkey, require_secret, sign_hex
from core.utils.time import now_ms

JSON_CONTENT_TYPE = "application/json"


class BitflyerRequestHandler(RequestHandler):
    exchange = "bitflyer"

    def build_request(self, request: PreparedRequest, body: BodyLike, attempt: int) -> PreparedRequest:
        request.body = encode_json_body(body)
        if request.body is not None:
            request.headers["Content-Type"] = JSON_CONTENT_TYPE

        if not self.options.http_auth:
            return request

        secret = require_secret(self.options.secret)
        pubkey = require_pubkey(self.options.pubkey)
        timestamp = str(now_ms())
        payload = f"{timestamp}{request.method}{request.path_with_query()}{request.body or ''}"

        request.headers["ACCESS-KEY"] = pubkey
        request.headers["ACCESS-TIMESTAMP"] = timestamp
        request.headers["ACCESS-SIGN"] = sign_hex(secret, payload)
        request.headers["Content-Type"] = JSON_CONTENT_TYPE
        return request

    def handle_response(self, response: RawResponse) -> Any:
        if response.ok:
            return self.decode(response.json(), response)
        if response.status == 429:
            raise IpTimeoutError.from_retry_after(response.header("Retry-After"))

        data = response.json()
        if isinstance(data, dict) and "status" in data:
            message = data.get("error_message") or f"HTTP {response.status}"
            raise OtherApiError(f"bitFlyer error: {message}", data["status"])
        raise OtherApiError(f"bitFlyer API error (status {response.status}): {data}", response.status)
