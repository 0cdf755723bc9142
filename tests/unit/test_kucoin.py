"""
Unit Tests for Kucoin

These tests verify that:
- Signed requests carry the base64 signature and the signed passphrase
- The {"code": "200000"} envelope is checked on HTTP 200
- Kline limits are emulated with a time window
- Balances need the passphrase and are valued in USD

Run with:
    pytest tests/unit/test_kucoin.py -v
"""

import base64
import hashlib
import hmac
import time

import pytest

from core.errors import (
    ApiAuthError,
    BuildAuthError,
    HandleResponseError,
    IpTimeoutError,
    MethodNotSupportedError,
    MissingPassphraseError,
    OtherApiError,
    SignatureError,
    UnauthorizedError,
    WsParseError,
    WsSubscriptionError,
)
from core.http import PreparedRequest, RawResponse
from core.schemas import Instrument, Pair, RequestRange, Symbol, Timeframe
from core.ws import ContentEvent, WsResponse
from exchanges.kucoin import Kucoin
from exchanges.kucoin.options import KucoinAuth, KucoinOption, KucoinOptions

NOW_S = 1_700_000_000
NOW_MS = NOW_S * 1000
SECRET = "kucoin-secret"


def _b64(payload: str) -> str:
    digest = hmac.new(SECRET.encode(), payload.encode(), hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


def _ok(data):
    return {"code": "200000", "data": data}


@pytest.fixture
def frozen_time(monkeypatch):
    monkeypatch.setattr("exchanges.kucoin.api_client.now_ms", lambda: NOW_MS)
    monkeypatch.setattr(time, "time", lambda: float(NOW_S))


@pytest.fixture
def kucoin(client):
    return Kucoin(client)


class TestSigning:
    """Tests for KucoinRequestHandler.build_request"""

    def test_signed_headers(self, frozen_time):
        options = KucoinOptions(
            pubkey="my-key", secret=SECRET, passphrase="my-passphrase", http_auth=KucoinAuth.SIGN,
        )
        request = PreparedRequest("GET", "https://api.kucoin.com/api/v1/accounts", {"type": "trade"})

        request = options.request_handler().build_request(request, None, 1)

        assert request.headers["KC-API-SIGN"] == _b64(f"{NOW_MS}GET/api/v1/accounts?type=trade")
        assert request.headers["KC-API-PASSPHRASE"] == _b64("my-passphrase")
        assert request.headers["KC-API-KEY"] == "my-key"
        assert request.headers["KC-API-TIMESTAMP"] == str(NOW_MS)
        assert request.headers["KC-API-KEY-VERSION"] == "2"

    def test_post_signs_body(self, frozen_time):
        options = KucoinOptions(pubkey="k", secret=SECRET, passphrase="p", http_auth=KucoinAuth.SIGN)
        request = PreparedRequest("POST", "https://api.kucoin.com/api/v1/orders")

        request = options.request_handler().build_request(request, {"side": "buy"}, 1)

        assert request.headers["KC-API-SIGN"] == _b64(f"{NOW_MS}POST/api/v1/orders{request.body}")

    def test_missing_passphrase(self, frozen_time):
        options = KucoinOptions(pubkey="k", secret=SECRET, http_auth=KucoinAuth.SIGN)

        with pytest.raises(BuildAuthError) as exc:
            options.request_handler().build_request(PreparedRequest("GET", "https://api.kucoin.com/x"), None, 1)
        assert isinstance(exc.value.auth, MissingPassphraseError)

    def test_passphrase_is_needed_to_be_authenticated(self):
        options = KucoinOptions(pubkey="k", secret=SECRET)
        assert not options.is_authenticated()
        options.update(KucoinOption.passphrase("p"))
        assert options.is_authenticated()

    def test_passphrase_is_redacted(self):
        assert "hidden" not in repr(KucoinOption.passphrase("hidden"))


class TestResponses:
    """Tests for KucoinRequestHandler.handle_response"""

    def _handle(self, status, body: bytes, headers=None):
        return KucoinOptions().request_handler().handle_response(RawResponse(status, headers or {}, body))

    def test_success_envelope(self):
        assert self._handle(200, b'{"code":"200000","data":1}') == {"code": "200000", "data": 1}

    def test_error_code_with_http_200(self):
        with pytest.raises(ApiAuthError) as exc:
            self._handle(200, b'{"code":"400005","msg":"Invalid KC-API-SIGN"}')
        assert isinstance(exc.value.auth, SignatureError)

    def test_error_with_http_400(self):
        with pytest.raises(OtherApiError) as exc:
            self._handle(400, b'{"code":"900001","msg":"Symbol not exists"}')
        assert exc.value.code == "900001"

    def test_rate_limited(self):
        with pytest.raises(IpTimeoutError):
            self._handle(429, b"{}")


class TestExchange:
    """Tests for the Kucoin exchange operations"""

    @pytest.mark.asyncio
    async def test_limit_becomes_time_window(self, kucoin, fake_session, frozen_time):
        minute = 60
        fake_session.add("/api/v1/market/candles", _ok([
            [str(NOW_S - 30), "4", "4", "4", "4", "1", "40"],  # still forming
            [str(NOW_S - minute - 30), "3", "3", "3", "3", "1", "30"],
            [str(NOW_S - 2 * minute - 30), "2", "2", "2", "2", "1", "20"],
            [str(NOW_S - 3 * minute - 30), "1", "1", "1", "1", "1", "10"],
        ]))

        klines = await kucoin.klines(Symbol.parse("BTC-USDT"), Timeframe.parse("1m"), RequestRange(limit=2))

        assert fake_session.last().query == {
            "symbol": "BTC-USDT", "type": "1min",
            "startAt": str(NOW_S - 3 * minute), "endAt": str(NOW_S),
        }
        assert [k.volume_quote for k in klines.klines] == [20.0, 30.0]
        assert klines.klines[0].open == 2.0

    @pytest.mark.asyncio
    async def test_perp_klines_not_supported(self, kucoin):
        with pytest.raises(MethodNotSupportedError) as exc:
            await kucoin.klines(Symbol.parse("BTC-USDT.P"), Timeframe.parse("1m"), RequestRange(limit=1))
        assert str(exc.value) == "kucoin does not support klines for instrument perp"

    @pytest.mark.asyncio
    async def test_price(self, kucoin, fake_session):
        fake_session.add("/api/v1/market/orderbook/level1", _ok({"price": "42000.1", "size": "0.1"}))
        assert await kucoin.price(Symbol.parse("BTC-USDT")) == 42000.1

    @pytest.mark.asyncio
    async def test_prices_skip_missing_last(self, kucoin, fake_session):
        fake_session.add("/api/v1/market/allTickers", _ok({"time": NOW_MS, "ticker": [
            {"symbol": "BTC-USDT", "last": "42000"},
            {"symbol": "NEW-USDT", "last": None},
        ]}))

        assert await kucoin.prices(None, Instrument.SPOT) == {Pair.parse("BTC-USDT"): 42000.0}

    @pytest.mark.asyncio
    async def test_exchange_info_precision_from_increment(self, kucoin, fake_session):
        fake_session.add("/api/v2/symbols", _ok([
            {"symbol": "BTC-USDT", "baseCurrency": "BTC", "quoteCurrency": "USDT", "priceIncrement": "0.1"},
            {"symbol": "SHIB-USDT", "baseCurrency": "SHIB", "quoteCurrency": "USDT", "priceIncrement": "0.00000001"},
        ]))

        info = await kucoin.exchange_info(Instrument.SPOT)

        assert info.get(Pair.parse("BTC-USDT")).price_precision == 1
        assert info.get(Pair.parse("SHIB-USDT")).price_precision == 8

    @pytest.mark.asyncio
    async def test_balances_need_passphrase(self, kucoin, fake_session):
        kucoin.auth("k", SECRET)
        with pytest.raises(MissingPassphraseError):
            await kucoin.balances(Instrument.SPOT)
        assert fake_session.calls == []

    @pytest.mark.asyncio
    async def test_balances(self, kucoin, fake_session, frozen_time):
        kucoin.auth("k", SECRET, passphrase="p")
        fake_session.add("/api/v1/accounts", _ok([
            {"currency": "USDT", "type": "trade", "balance": "50"},
            {"currency": "BTC", "type": "trade", "balance": "0.1"},
            {"currency": "ETH", "type": "trade", "balance": "0"},
        ]))
        fake_session.add("/api/v1/market/allTickers", _ok({"time": NOW_MS, "ticker": [
            {"symbol": "BTC-USDT", "last": "40000"},
        ]}))

        balances = await kucoin.balances(Instrument.SPOT)

        assert balances.get("BTC").usd == 4000.0
        assert balances.total_usd == 4050.0
        call = fake_session.last("/api/v1/accounts")
        assert call.query == {"type": "trade"}
        assert call.headers["KC-API-SIGN"] == _b64(f"{NOW_MS}GET/api/v1/accounts?type=trade")

    @pytest.mark.asyncio
    async def test_rejected_signature(self, kucoin, fake_session, frozen_time):
        kucoin.auth("k", SECRET, passphrase="p")
        fake_session.add("/api/v1/accounts", {"code": "400005", "msg": "Invalid KC-API-SIGN"}, status=401)

        with pytest.raises(HandleResponseError) as exc:
            await kucoin.balances(Instrument.SPOT)
        assert isinstance(exc.value.error.auth, SignatureError)

    @pytest.mark.asyncio
    async def test_unknown_key_on_http_200(self, kucoin, fake_session, frozen_time):
        kucoin.auth("k", SECRET, passphrase="p")
        fake_session.add("/api/v1/accounts", {"code": "400003", "msg": "KC-API-KEY not exists"})

        with pytest.raises(HandleResponseError) as exc:
            await kucoin.balances(Instrument.SPOT)

        assert isinstance(exc.value.error, ApiAuthError)
        assert isinstance(exc.value.error.auth, UnauthorizedError)
        assert exc.value.error.auth.code == "400003"

    def test_set_recv_window_only_warns(self, kucoin, caplog):
        with caplog.at_level("WARNING", logger="unifex"):
            kucoin.set_recv_window(1000)
        assert kucoin.options.recv_window is None
        assert "recv_window" in caplog.text


class TestWsHandler:
    """Tests for KucoinWsHandler"""

    def test_subscribe_joins_topics(self):
        frames = KucoinOptions().ws_handler().handle_subscribe({"/market/ticker:ETH-USDT", "/market/ticker:BTC-USDT"})
        assert frames == [
            '{"id":1,"type":"subscribe","topic":"/market/ticker:BTC-USDT,/market/ticker:ETH-USDT","response":true}'
        ]

    @pytest.mark.parametrize("frame_type", ["welcome", "ack", "pong"])
    def test_protocol_frames(self, frame_type):
        assert isinstance(KucoinOptions().ws_handler().handle_jrpc({"type": frame_type, "id": "1"}), WsResponse)

    def test_error_frame(self):
        with pytest.raises(WsSubscriptionError):
            KucoinOptions().ws_handler().handle_jrpc({"type": "error", "data": "topic not found"})

    def test_message(self):
        event = KucoinOptions().ws_handler().handle_jrpc({
            "type": "message", "topic": "/market/ticker:BTC-USDT", "subject": "trade.ticker",
            "data": {"price": "1"},
        })
        assert isinstance(event, ContentEvent)
        assert event.event_type == "trade.ticker"
        assert event.data == {"price": "1"}

    def test_non_object(self):
        with pytest.raises(WsParseError):
            KucoinOptions().ws_handler().handle_jrpc("hello")
