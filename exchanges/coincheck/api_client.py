"""
Coincheck Request Handler

Signing:
    ACCESS-SIGNATURE = hex(HMAC-SHA256(secret, nonce || full URL || body))
    sent with ACCESS-KEY and ACCESS-NONCE. The nonce is the current time in
    milliseconds and the URL includes the query string. Bodies are form-encoded.

Response Handling:
    Errors come back as {"success": false, "error": "..."}.

API Documentation:
    https://coincheck.com/documents/exchange/api#auth
"""

from typing import Any

from core.errors import IpTimeoutError, OtherApiError
from core.http import BodyLike, PreparedRequest, RawResponse, RequestHandler, encode_form_body
from core.utils.signing import require_pubkey, require_secret, sign_hex
from core.utils.time import now_ms

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


class CoincheckRequestHandler(RequestHandler):
    exchange = "coincheck"

    def build_request(self, request: PreparedRequest, body: BodyLike, attempt: int) -> PreparedRequest:
        request.body = encode_form_body(body)
        if request.body is not None:
            request.headers["Content-Type"] = FORM_CONTENT_TYPE

        if not self.options.http_auth:
            return request

        secret = require_secret(self.options.secret)
        pubkey = require_pubkey(self.options.pubkey)
        nonce = str(now_ms())
        payload = f"{nonce}{request.full_url()}{request.body or ''}"

        request.headers["ACCESS-KEY"] = pubkey
        request.headers["ACCESS-NONCE"] = nonce
        request.headers["ACCESS-SIGNATURE"] = sign_hex(secret, payload)
        return request

    def handle_response(self, response: RawResponse) -> Any:
        if response.ok:
            return self.decode(response.json(), response)
        if response.status == 429:
            raise IpTimeoutError.from_retry_after(response.header("Retry-After"))

        data = response.json()
        if isinstance(data, dict) and "error" in data:
            raise OtherApiError(f"Coincheck error: {data['error']}", response.status)
        raise OtherApiError(f"Coincheck API error (status {response.status}): {data}", response.status)
