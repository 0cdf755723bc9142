"""
Kucoin Request Handler

Signing (KucoinAuth.SIGN, key version 2):
    KC-API-SIGN       = base64(HMAC-SHA256(secret, timestamp || METHOD || path?query || body))
    KC-API-PASSPHRASE = base64(HMAC-SHA256(secret, passphrase))
    plus KC-API-KEY, KC-API-TIMESTAMP (ms) and KC-API-KEY-VERSION: 2

Response Handling:
    Kucoin answers HTTP 200 with {"code": "<non-200000>", "msg": ...} for
    application errors, so the envelope code is checked before decoding.

API Documentation:
    https://www.kucoin.com/docs/basic-info/connection-method/authentication/signing-a-message
"""

from typing import Any

from core.errors import BuildAuthError, IpTimeoutError, MissingPassphraseError, OtherApiError
from core.http import BodyLike, PreparedRequest, RawResponse, RequestHandler, encode_json_body
from core.utils.signing import require_pubkey, require_secret, sign_base64
from core.utils.time import now_ms
from exchanges.kucoin.errors import SUCCESS_CODE, map_error
from exchanges.kucoin.options import KucoinAuth

JSON_CONTENT_TYPE = "application/json"


class KucoinRequestHandler(RequestHandler):
    """Request handler for Kucoin spot and futures REST endpoints."""

    exchange = "kucoin"

    def build_request(self, request: PreparedRequest, body: BodyLike, attempt: int) -> PreparedRequest:
        request.body = encode_json_body(body)
        if request.body is not None:
            request.headers["Content-Type"] = JSON_CONTENT_TYPE

        if self.options.http_auth is KucoinAuth.NONE:
            return request

        pubkey = require_pubkey(self.options.pubkey)
        secret = require_secret(self.options.secret)
        if self.options.passphrase is None:
            raise BuildAuthError(MissingPassphraseError())
        passphrase = self.options.passphrase.get_secret_value()

        timestamp = str(now_ms())
        prehash = f"{timestamp}{request.method}{request.path_with_query()}{request.body or ''}"

        request.headers.update({
            "KC-API-KEY": pubkey,
            "KC-API-SIGN": sign_base64(secret, prehash),
            "KC-API-TIMESTAMP": timestamp,
            "KC-API-PASSPHRASE": sign_base64(secret, passphrase),
            "KC-API-KEY-VERSION": "2",
            "Content-Type": JSON_CONTENT_TYPE,
        })
        return request

    def handle_response(self, response: RawResponse) -> Any:
        if response.status == 429:
            raise IpTimeoutError.from_retry_after(response.header("Retry-After"))

        data = response.json()
        code = data.get("code") if isinstance(data, dict) else None

        if response.ok:
            if code is not None and str(code) != SUCCESS_CODE:
                raise map_error(str(code), str(data.get("msg", "Unknown error")))
            return self.decode(data, response)

        if code is None:
            raise OtherApiError(f"Kucoin HTTP {response.status}: {response.truncated()}")
        raise map_error(str(code), str(data.get("msg", "")))
