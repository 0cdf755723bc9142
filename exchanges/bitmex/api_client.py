"""
Bitmex Request Handler

Signing:
    api-signature = hex(HMAC-SHA256(secret, VERB || path?query || expires || body))
    sent with api-key and api-expires. `expires` is a UNIX time in seconds:
    now plus the receive window, or plus 60 seconds when none is set.

Response Handling:
    Errors look like {"error": {"message": "...", "name": "HTTPError"}}.

API Documentation:
    https://www.bitmex.com/app/apiKeysUsage
"""

import time
from typing import Any

from core.errors import (
    ApiAuthError,
    AuthPermissionError,
    IpTimeoutError,
    OtherApiError,
    UnauthorizedError,
)
from core.http import BodyLike, PreparedRequest, RawResponse, RequestHandler, encode_json_body
from core.utils.signing import require_pubkey, require_secret, sign_hex

JSON_CONTENT_TYPE = "application/json"
DEFAULT_EXPIRY_S = 60


class BitmexRequestHandler(RequestHandler):
    exchange = "bitmex"

    def build_request(self, request: PreparedRequest, body: BodyLike, attempt: int) -> PreparedRequest:
        request.body = encode_json_body(body)
        if request.body is not None:
            request.headers["Content-Type"] = JSON_CONTENT_TYPE

        if not self.options.http_auth:
            return request

        pubkey = require_pubkey(self.options.pubkey)
        secret = require_secret(self.options.secret)
        if self.options.recv_window is not None:
            window_s = max(1, self.options.recv_window // 1000)
        else:
            window_s = DEFAULT_EXPIRY_S
        expires = str(int(time.time()) + window_s)
        payload = f"{request.method}{request.path_with_query()}{expires}{request.body or ''}"

        request.headers["api-expires"] = expires
        request.headers["api-key"] = pubkey
        request.headers["api-signature"] = sign_hex(secret, payload)
        return request

    def handle_response(self, response: RawResponse) -> Any:
        if response.ok:
            return self.decode(response.json(), response)
        if response.status == 429:
            raise IpTimeoutError.from_retry_after(response.header("Retry-After"))

        data = response.json()
        message = f"HTTP {response.status}"
        if isinstance(data, dict) and isinstance(data.get("error"), dict):
            message = str(data["error"].get("message", message))

        if response.status == 401:
            raise ApiAuthError(UnauthorizedError(message, response.status))
        if response.status == 403:
            raise ApiAuthError(AuthPermissionError(message, response.status))
        raise OtherApiError(f"Bitmex error: {message}", response.status)
