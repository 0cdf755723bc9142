"""
Binance Request Handler

Builds, signs and decodes Binance REST requests for every Binance API family
(spot, USD-M and COIN-M futures, options).

Signing (HttpAuth = SIGN):
    1. Append `timestamp` (ms) and, when set, `recvWindow` to the query
    2. signature = hex(HMAC-SHA256(secret, query_string || body))
    3. Append `signature` to the query and send `X-MBX-APIKEY: <pubkey>`

    HttpAuth = KEY only sends the API key header.

Response Handling:
    - 2xx: JSON, validated into the requested response type
    - 429 / 418: IpTimeoutError with the Retry-After deadline
    - anything else: {"code", "msg"} mapped through BinanceErrorCode

API Documentation:
    https://developers.binance.com/docs/binance-spot-api-docs/rest-api/request-security
"""

from typing import Any

from core.errors import IpTimeoutError, OtherApiError
from core.http import BodyLike, PreparedRequest, RawResponse, RequestHandler, encode_form_body
from core.utils.signing import require_pubkey, require_secret, sign_hex
from core.utils.time import now_ms
from exchanges.binance.errors import map_error
from exchanges.binance.options import BinanceAuth

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


class BinanceRequestHandler(RequestHandler):
    """
    Request handler for all Binance REST endpoints.

    Example:
        >>> handler = BinanceOptions(http_url=BinanceHttpUrl.FUTURES_USDM).request_handler()
        >>> handler.base_url(False)
        'https://fapi.binance.com'
    """

    exchange = "binance"

    def build_request(self, request: PreparedRequest, body: BodyLike, attempt: int) -> PreparedRequest:
        request.body = encode_form_body(body)
        if request.body is not None:
            request.headers["Content-Type"] = FORM_CONTENT_TYPE

        auth = self.options.http_auth
        if auth is BinanceAuth.NONE:
            return request

        request.headers["X-MBX-APIKEY"] = require_pubkey(self.options.pubkey)

        if auth is BinanceAuth.SIGN:
            secret = require_secret(self.options.secret)
            request.query.append(("timestamp", str(now_ms())))
            if self.options.recv_window is not None:
                request.query.append(("recvWindow", str(self.options.recv_window)))

            payload = request.query_string() + (request.body or "")
            request.query.append(("signature", sign_hex(secret, payload)))

        return request

    def handle_response(self, response: RawResponse) -> Any:
        if response.ok:
            return self.decode(response.json(), response)

        if response.status in (429, 418):
            raise IpTimeoutError.from_retry_after(response.header("Retry-After"))

        data = response.json()
        if not isinstance(data, dict) or "code" not in data:
            raise OtherApiError(f"Binance HTTP {response.status}: {response.truncated()}")
        try:
            code = int(data["code"])
        except (TypeError, ValueError):
            raise OtherApiError(str(data.get("msg", "")), data["code"]) from None
        raise map_error(code, str(data.get("msg", "")))
