"""
Unit Tests for Coincheck

These tests verify that:
- Requests are signed over nonce, full URL and form body
- Public channels are subscribed one frame at a time
- Array frames are classified into trades and order books

Run with:
    pytest tests/unit/test_coincheck.py -v
"""

import hashlib
import hmac

import pytest

from core.errors import OtherApiError, WsParseError
from core.http import PreparedRequest, RawResponse
from core.ws import ContentEvent, WsResponse
from exchanges.coincheck import CoincheckOption, CoincheckOptions

NOW_MS = 1_700_000_000_000
SECRET = "coincheck-secret"


def _hmac(payload: str) -> str:
    return hmac.new(SECRET.encode(), payload.encode(), hashlib.sha256).hexdigest()


@pytest.fixture
def frozen_time(monkeypatch):
    monkeypatch.setattr("exchanges.coincheck.api_client.now_ms", lambda: NOW_MS)


class TestHttp:
    """Tests for CoincheckRequestHandler"""

    def test_signature_covers_full_url(self, frozen_time):
        handler = CoincheckOptions(pubkey="my-key", secret=SECRET, http_auth=True).request_handler()
        request = PreparedRequest("GET", "https://coincheck.com/api/exchange/orders/opens", {"pair": "btc_jpy"})

        request = handler.build_request(request, None, 1)

        url = "https://coincheck.com/api/exchange/orders/opens?pair=btc_jpy"
        assert request.headers["ACCESS-KEY"] == "my-key"
        assert request.headers["ACCESS-NONCE"] == str(NOW_MS)
        assert request.headers["ACCESS-SIGNATURE"] == _hmac(f"{NOW_MS}{url}")

    def test_signature_covers_form_body(self, frozen_time):
        handler = CoincheckOptions(pubkey="my-key", secret=SECRET, http_auth=True).request_handler()
        request = PreparedRequest("POST", "https://coincheck.com/api/exchange/orders")

        request = handler.build_request(request, {"pair": "btc_jpy", "order_type": "buy"}, 1)

        assert request.body == "pair=btc_jpy&order_type=buy"
        assert request.headers["ACCESS-SIGNATURE"] == _hmac(
            f"{NOW_MS}https://coincheck.com/api/exchange/orders{request.body}"
        )

    def test_error_body(self):
        handler = CoincheckOptions().request_handler()

        with pytest.raises(OtherApiError) as exc:
            handler.handle_response(RawResponse(400, {}, b'{"success":false,"error":"invalid authentication"}'))

        assert exc.value.code == 400
        assert "invalid authentication" in str(exc.value)

    @pytest.mark.asyncio
    async def test_through_client(self, client, fake_session):
        fake_session.add("/api/rate/btc_jpy", {"rate": "6000000"})

        rate = await client.get_no_query("/api/rate/btc_jpy", [CoincheckOption.default()])

        assert rate == {"rate": "6000000"}
        assert fake_session.last().headers == {}


class TestWs:
    """Tests for CoincheckWsHandler"""

    def test_subscribe(self):
        frames = CoincheckOptions().ws_handler().handle_subscribe({"btc_jpy-trades", "btc_jpy-orderbook"})
        assert frames == [
            '{"type":"subscribe","channel":"btc_jpy-orderbook"}',
            '{"type":"subscribe","channel":"btc_jpy-trades"}',
        ]

    def test_trades(self):
        frame = [["1663318663", "2357062", "btc_jpy", "2820896.0", "5.0", "sell", "1193401", "2078767"]]

        event = CoincheckOptions().ws_handler().handle_jrpc(frame)

        assert isinstance(event, ContentEvent)
        assert event.topic == "btc_jpy-trades"
        assert event.event_type == "trades"
        assert event.data == frame

    def test_orderbook(self):
        book = {"bids": [["148634.0", "0"]], "asks": [], "last_update_at": "1659321701"}

        event = CoincheckOptions().ws_handler().handle_jrpc(["btc_jpy", book])

        assert event.topic == "btc_jpy-orderbook"
        assert event.data == book

    def test_objects_are_protocol(self):
        assert isinstance(CoincheckOptions().ws_handler().handle_jrpc({"info": "x"}), WsResponse)

    @pytest.mark.parametrize("frame", [[], "text", ["btc_jpy", "x", "y"]])
    def test_unrecognized(self, frame):
        with pytest.raises(WsParseError):
            CoincheckOptions().ws_handler().handle_jrpc(frame)
