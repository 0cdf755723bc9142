"""
Bybit Exchange

Implements the Exchange operations for Bybit USDT-margined perpetuals
(`category=linear`) and the unified trading account.

Endpoints Used:
    REST (v5):
        - GET /v5/market/kline - Candlesticks
        - GET /v5/market/tickers - Last prices
        - GET /v5/market/open-interest - Open interest history
        - GET /v5/market/instruments-info - Market metadata
        - GET /v5/account/wallet-balance - Unified wallet (signed)

    WebSocket:
        - Any v5 stream through `client.ws_connection(path, [BybitOption...])`

Notes:
    - Bybit lists klines and open interest newest first; they are returned
      oldest first like every other venue
    - A kline is kept only when the response time is past its close
"""

from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.exchange_interface import Exchange
from core.logging import get_logger
from core.schemas import (
    AssetBalance,
    Balances,
    ExchangeInfo,
    ExchangeName,
    Instrument,
    Kline,
    Klines,
    Oi,
    Pair,
    PairInfo,
    RequestRange,
    Symbol,
    Timeframe,
)
from core.utils.time import datetime_to_ms, to_utc_datetime
from exchanges.bybit.options import BybitAuth, BybitHttpUrl, BybitOption, BybitWsUrl

logger = get_logger(__name__)

CATEGORY = "linear"

KLINE_TIMEFRAMES: Dict[Timeframe, str] = {
    Timeframe.parse(tf): code
    for tf, code in (
        ("1m", "1"), ("3m", "3"), ("5m", "5"), ("15m", "15"), ("30m", "30"),
        ("1h", "60"), ("2h", "120"), ("4h", "240"), ("6h", "360"), ("12h", "720"),
        ("1d", "D"), ("1w", "W"), ("1M", "M"),
    )
}
OI_TIMEFRAMES: Dict[Timeframe, str] = {
    Timeframe.parse(tf): code
    for tf, code in (("5m", "5min"), ("15m", "15min"), ("30m", "30min"), ("1h", "1h"), ("4h", "4h"), ("1d", "1d"))
}

# [startTime, open, high, low, close, volume, turnover]
KlineRow = Tuple[int, float, float, float, float, float, float]


# ============================================
# Response Models
# ============================================

class _Envelope(BaseModel):
    ret_code: int = Field(alias="retCode")
    time: int


class _KlineResult(BaseModel):
    list: List[KlineRow]


class _KlineResponse(_Envelope):
    result: _KlineResult


class _Ticker(BaseModel):
    symbol: str
    last_price: float = Field(alias="lastPrice")


class _TickerResult(BaseModel):
    list: List[_Ticker]


class _TickerResponse(_Envelope):
    result: _TickerResult


class _OpenInterest(BaseModel):
    open_interest: float = Field(alias="openInterest")
    timestamp: int


class _OpenInterestResult(BaseModel):
    list: List[_OpenInterest]


class _OpenInterestResponse(_Envelope):
    result: _OpenInterestResult


class _Instrument(BaseModel):
    symbol: str
    base_coin: str = Field(alias="baseCoin")
    quote_coin: str = Field(alias="quoteCoin")
    price_scale: int = Field(alias="priceScale")


class _InstrumentsResult(BaseModel):
    list: List[_Instrument]


class _InstrumentsResponse(_Envelope):
    result: _InstrumentsResult


class _Coin(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    coin: str
    wallet_balance: float = Field(alias="walletBalance")
    usd_value: Optional[float] = Field(default=None, alias="usdValue")

    # Bybit sends "" for fields that do not apply to the account
    @field_validator("wallet_balance", mode="before")
    @classmethod
    def empty_as_zero(cls, v: Any) -> Any:
        return 0.0 if v == "" else v

    @field_validator("usd_value", mode="before")
    @classmethod
    def empty_as_none(cls, v: Any) -> Any:
        return None if v == "" else v


class _Account(BaseModel):
    coin: List[_Coin]


class _WalletResult(BaseModel):
    list: List[_Account]


class _WalletResponse(_Envelope):
    result: _WalletResult


# ============================================
# Exchange
# ============================================

class Bybit(Exchange):
    """
    Bybit linear perpetuals and unified account.

    Example:
        >>> async with Bybit() as bybit:
        ...     price = await bybit.price(Symbol.parse("BTC-USDT.P"))
    """

    name = ExchangeName.BYBIT
    option_class = BybitOption
    capabilities = {
        "klines": True,
        "price": True,
        "prices": True,
        "open_interest": True,
        "exchange_info": True,
        "balances": True,
        "asset_balance": True,
        "streams": False,
    }

    def _require_perp(self, method: str, instrument: Instrument) -> None:
        if instrument is not Instrument.PERP:
            raise self.unsupported(method, instrument)

    @staticmethod
    def _range_query(range: RequestRange, start_key: str, end_key: str) -> Dict[str, Any]:
        if range.limit is not None:
            return {"limit": range.limit}
        return {
            start_key: datetime_to_ms(range.start),
            end_key: datetime_to_ms(range.end) if range.end is not None else None,
        }

    # ============================================
    # Market Data
    # ============================================

    async def klines(self, symbol: Symbol, tf: Timeframe, range: RequestRange) -> Klines:
        self._require_perp("klines", symbol.instrument)
        interval = self.format_timeframe(tf, KLINE_TIMEFRAMES)
        range.ensure_allowed((1, 1000))

        query = {
            "category": CATEGORY,
            "symbol": symbol.pair.fmt_bybit(),
            "interval": interval,
            **self._range_query(range, "start", "end"),
        }
        r: _KlineResponse = await self.client.get(
            "/v5/market/kline", query, [BybitOption.default()], response_type=_KlineResponse
        )

        tf_ms = tf.seconds * 1000
        klines: List[Kline] = []
        for row in reversed(r.result.list):
            if r.time <= row[0] + tf_ms:
                logger.debug(f"Skipped Bybit kline opened at {row[0]}, it is not closed yet")
                continue
            klines.append(Kline(
                open_time=to_utc_datetime(row[0]),
                open=row[1],
                high=row[2],
                low=row[3],
                close=row[4],
                volume_quote=row[6],
            ))
        return Klines(symbol=symbol, tf=tf, klines=klines)

    async def _tickers(self, symbol: Optional[str] = None) -> List[_Ticker]:
        query = {"category": CATEGORY, "symbol": symbol}
        r: _TickerResponse = await self.client.get(
            "/v5/market/tickers", query, [BybitOption.default()], response_type=_TickerResponse
        )
        return r.result.list

    async def price(self, symbol: Symbol) -> float:
        self._require_perp("price", symbol.instrument)
        tickers = await self._tickers(symbol.pair.fmt_bybit())
        if not tickers:
            raise ValueError(f"Bybit returned no ticker for {symbol}")
        return tickers[0].last_price

    async def prices(self, pairs: Optional[List[Pair]], instrument: Instrument) -> Dict[Pair, float]:
        self._require_perp("prices", instrument)
        tickers = await self._tickers()

        if pairs:
            wanted = {p.fmt_bybit(): p for p in pairs}
            return {wanted[t.symbol]: t.last_price for t in tickers if t.symbol in wanted}

        result: Dict[Pair, float] = {}
        for t in tickers:
            try:
                result[Pair.from_concatenated(t.symbol)] = t.last_price
            except ValueError as e:
                logger.warning(f"Failed to parse Bybit pair: {e}")
        return result

    async def open_interest(self, symbol: Symbol, tf: Timeframe, range: RequestRange) -> List[Oi]:
        self._require_perp("open_interest", symbol.instrument)
        interval = self.format_timeframe(tf, OI_TIMEFRAMES)
        range.ensure_allowed((1, 200))

        query = {
            "category": CATEGORY,
            "symbol": symbol.pair.fmt_bybit(),
            "intervalTime": interval,
            **self._range_query(range, "startTime", "endTime"),
        }
        r: _OpenInterestResponse = await self.client.get(
            "/v5/market/open-interest", query, [BybitOption.default()], response_type=_OpenInterestResponse
        )
        return [
            Oi(timestamp=to_utc_datetime(oi.timestamp), value=oi.open_interest)
            for oi in reversed(r.result.list)
        ]

    async def exchange_info(self, instrument: Instrument) -> ExchangeInfo:
        self._require_perp("exchange_info", instrument)
        r: _InstrumentsResponse = await self.client.get(
            "/v5/market/instruments-info",
            {"category": CATEGORY, "limit": 1000},
            [BybitOption.default()],
            response_type=_InstrumentsResponse,
        )
        pairs: Dict[str, PairInfo] = {}
        for i in r.result.list:
            pair = Pair(base=i.base_coin, quote=i.quote_coin)
            pairs[str(pair)] = PairInfo(pair=pair, price_precision=i.price_scale)
        return ExchangeInfo(server_time=to_utc_datetime(r.time), pairs=pairs)

    # ============================================
    # Account Data
    # ============================================

    async def balances(self, instrument: Instrument, recv_window: Optional[int] = None) -> Balances:
        self._require_perp("balances", instrument)
        self.require_auth()

        options = [BybitOption.http_auth(BybitAuth.V3_AND_ABOVE)]
        if recv_window is not None:
            options.append(BybitOption.recv_window(recv_window))

        r: _WalletResponse = await self.client.get(
            "/v5/account/wallet-balance", {"accountType": "UNIFIED"}, options, response_type=_WalletResponse
        )
        if len(r.result.list) != 1:
            logger.warning(f"Expected one unified account from Bybit, got {len(r.result.list)}")

        balances = [
            AssetBalance(asset=c.coin, underlying=c.wallet_balance, usd=c.usd_value)
            for account in r.result.list
            for c in account.coin
            if c.wallet_balance != 0
        ]
        return Balances.from_balances(balances)


__all__ = ["Bybit", "BybitOption", "BybitHttpUrl", "BybitWsUrl", "BybitAuth"]
