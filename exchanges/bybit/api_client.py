"""
Bybit Request Handler

Builds, signs and decodes Bybit REST requests.

Signing (V3_AND_ABOVE, USDC_CONTRACT_V1):
    payload = timestamp || api_key || recv_window? || (query for GET/DELETE, JSON body otherwise)
    X-BAPI-SIGN = hex(HMAC-SHA256(secret, payload)), sent with X-BAPI-API-KEY,
    X-BAPI-TIMESTAMP and X-BAPI-RECV-WINDOW. A POST without body signs and
    sends "{}". USDC_CONTRACT_V1 also sends X-BAPI-SIGN-TYPE: 2.

Signing (SPOT_V1, BELOW_V3):
    All parameters plus api_key and timestamp (and recvWindow / recv_window)
    are sorted and joined as k=v&..., signed, and `sign` is appended.

Response Handling:
    - 2xx with a non-zero retCode is an error (v3/v5 report errors with HTTP 200)
    - 403: IP ban, IpTimeoutError without deadline
    - 401: UnauthorizedError carrying the body
    - 429: IpTimeoutError with the Retry-After deadline

API Documentation:
    https://bybit-exchange.github.io/docs/v5/guide#authentication
"""

import json
from typing import Any, List, Tuple
from urllib.parse import parse_qsl

from core.errors import ApiAuthError, IpTimeoutError, OtherApiError, UnauthorizedError
from core.http import BodyLike, PreparedRequest, RawResponse, RequestHandler, encode_form_body, encode_json_body
from core.utils.signing import require_pubkey, require_secret, sign_hex
from core.utils.time import now_ms
from exchanges.bybit.errors import map_error
from exchanges.bybit.options import BybitAuth

JSON_CONTENT_TYPE = "application/json"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

_QUERY_SIGNED_METHODS = ("GET", "DELETE")


def _sorted_params(pairs: List[Tuple[str, str]], pubkey: str, timestamp: int) -> List[Tuple[str, str]]:
    pairs = pairs + [("api_key", pubkey), ("timestamp", str(timestamp))]
    return sorted(pairs)


def _join_params(pairs: List[Tuple[str, str]]) -> str:
    """k=v&k2=v2, with bare keys for empty values."""
    return "&".join(f"{k}={v}" if v else k for k, v in pairs)


class BybitRequestHandler(RequestHandler):
    """Request handler for every Bybit REST API generation."""

    exchange = "bybit"

    def build_request(self, request: PreparedRequest, body: BodyLike, attempt: int) -> PreparedRequest:
        auth = self.options.http_auth

        if auth is BybitAuth.NONE:
            request.body = encode_json_body(body)
            if request.body is not None:
                request.headers["Content-Type"] = JSON_CONTENT_TYPE
            return request

        pubkey = require_pubkey(self.options.pubkey)
        secret = require_secret(self.options.secret)
        timestamp = now_ms()

        if auth is BybitAuth.SPOT_V1:
            return self._v1_auth(request, body, pubkey, secret, timestamp, spot=True)
        if auth is BybitAuth.BELOW_V3:
            return self._v1_auth(request, body, pubkey, secret, timestamp, spot=False)
        return self._v3_auth(
            request, body, pubkey, secret, timestamp,
            sign_type_header=auth is BybitAuth.USDC_CONTRACT_V1,
        )

    def _recv_window_param(self, spot: bool) -> List[Tuple[str, str]]:
        if self.options.recv_window is None:
            return []
        return [("recvWindow" if spot else "recv_window", str(self.options.recv_window))]

    def _v1_auth(
        self,
        request: PreparedRequest,
        body: BodyLike,
        pubkey: str,
        secret: str,
        timestamp: int,
        spot: bool,
    ) -> PreparedRequest:
        if request.method in _QUERY_SIGNED_METHODS:
            params = _sorted_params(request.query + self._recv_window_param(spot), pubkey, timestamp)
            signature = sign_hex(secret, _join_params(params))
            request.query = params + [("sign", signature)]

            if spot:
                request.body = encode_form_body(body)
                content_type = FORM_CONTENT_TYPE
            else:
                request.body = encode_json_body(body)
                content_type = JSON_CONTENT_TYPE
            if request.body is not None:
                request.headers["Content-Type"] = content_type
            return request

        form = encode_form_body(body) or ""
        if spot:
            # the form body is signed as sent, still url-encoded
            pairs = [tuple(p.split("=", 1)) if "=" in p else (p, "") for p in form.split("&") if p]
        else:
            pairs = parse_qsl(form, keep_blank_values=True)
        params = _sorted_params(pairs + self._recv_window_param(spot), pubkey, timestamp)
        signature = sign_hex(secret, _join_params(params))
        params.append(("sign", signature))

        if spot:
            request.body = _join_params(params)
            request.headers["Content-Type"] = FORM_CONTENT_TYPE
        else:
            request.body = json.dumps(dict(params), separators=(",", ":"))
            request.headers["Content-Type"] = JSON_CONTENT_TYPE
        return request

    def _v3_auth(
        self,
        request: PreparedRequest,
        body: BodyLike,
        pubkey: str,
        secret: str,
        timestamp: int,
        sign_type_header: bool,
    ) -> PreparedRequest:
        request.body = encode_json_body(body)
        if request.body is not None:
            request.headers["Content-Type"] = JSON_CONTENT_TYPE

        payload = f"{timestamp}{pubkey}"
        if self.options.recv_window is not None:
            payload += str(self.options.recv_window)

        if request.method in _QUERY_SIGNED_METHODS:
            payload += request.query_string()
        else:
            if request.body is None:
                request.body = "{}"
                request.headers["Content-Type"] = JSON_CONTENT_TYPE
            payload += request.body

        if sign_type_header:
            request.headers["X-BAPI-SIGN-TYPE"] = "2"
        request.headers["X-BAPI-SIGN"] = sign_hex(secret, payload)
        request.headers["X-BAPI-API-KEY"] = pubkey
        request.headers["X-BAPI-TIMESTAMP"] = str(timestamp)
        if self.options.recv_window is not None:
            request.headers["X-BAPI-RECV-WINDOW"] = str(self.options.recv_window)
        return request

    def handle_response(self, response: RawResponse) -> Any:
        if response.ok:
            data = response.json()
            if isinstance(data, dict):
                ret_code = data.get("retCode")
                if isinstance(ret_code, int) and ret_code != 0:
                    raise map_error(ret_code, str(data.get("retMsg", "Unknown error")))
            return self.decode(data, response)

        if response.status == 403:
            raise IpTimeoutError(None)
        if response.status == 401:
            raise ApiAuthError(UnauthorizedError(response.text() or "HTTP 401 Unauthorized", 401))
        if response.status == 429:
            raise IpTimeoutError.from_retry_after(response.header("Retry-After"))

        data = response.json()
        if isinstance(data, dict):
            code = data.get("retCode", data.get("code"))
            msg = data.get("retMsg", data.get("msg", ""))
            if isinstance(code, int):
                raise map_error(code, str(msg))
        raise OtherApiError(f"Bybit HTTP {response.status}: {response.truncated()}")
