"""
MEXC Exchange

Implements the Exchange operations for MEXC USDT-margined contracts.

Endpoints Used:
    - GET /api/v1/contract/kline/{symbol} - Candlesticks
    - GET /api/v1/contract/index_price/{symbol} - Index price
    - GET /api/v1/private/account/assets - All contract balances (signed)
    - GET /api/v1/private/account/asset/{currency} - One contract balance (signed)

Notes:
    - The kline endpoint takes seconds and returns columns, not rows:
      {"time": [...], "open": [...], "close": [...], ...}
    - USD values of balances use each asset's index price against USDT
"""

import asyncio
import time
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from core.exchange_interface import Exchange
from core.logging import get_logger
from core.schemas import (
    AssetBalance,
    Balances,
    ExchangeName,
    Instrument,
    Kline,
    Klines,
    Pair,
    RequestRange,
    Symbol,
    Timeframe,
)
from core.utils.time import to_utc_datetime
from exchanges.mexc.options import MexcAuth, MexcHttpUrl, MexcOption, MexcWsUrl

logger = get_logger(__name__)

KLINE_TIMEFRAMES: Dict[Timeframe, str] = {
    Timeframe.parse(tf): code
    for tf, code in (
        ("1m", "Min1"), ("5m", "Min5"), ("15m", "Min15"), ("30m", "Min30"), ("1h", "Min60"),
        ("4h", "Hour4"), ("8h", "Hour8"), ("1d", "Day1"), ("1w", "Week1"), ("1M", "Month1"),
    )
}


# ============================================
# Response Models
# ============================================

class _KlineColumns(BaseModel):
    time: List[int]
    open: List[float]
    close: List[float]
    high: List[float]
    low: List[float]
    amount: List[float]


class _KlineResponse(BaseModel):
    data: _KlineColumns


class _IndexPrice(BaseModel):
    index_price: float = Field(alias="indexPrice")


class _IndexPriceResponse(BaseModel):
    data: _IndexPrice


class _AssetData(BaseModel):
    currency: str
    equity: float


class _AssetsResponse(BaseModel):
    data: List[_AssetData]


class _AssetResponse(BaseModel):
    data: _AssetData


# ============================================
# Exchange
# ============================================

class Mexc(Exchange):
    """
    MEXC contracts.

    Example:
        >>> mexc = Mexc()
        >>> mexc.auth("key", "secret")
        >>> balances = await mexc.balances(Instrument.PERP)
    """

    name = ExchangeName.MEXC
    option_class = MexcOption
    capabilities = {
        "klines": True,
        "price": True,
        "prices": False,
        "open_interest": False,
        "exchange_info": False,
        "balances": True,
        "asset_balance": True,
        "streams": False,
    }

    def _require_perp(self, method: str, instrument: Instrument) -> None:
        if instrument is not Instrument.PERP:
            raise self.unsupported(method, instrument)

    @staticmethod
    def _signed(recv_window: Optional[int]) -> List[MexcOption]:
        options = [MexcOption.http_url(MexcHttpUrl.FUTURES), MexcOption.http_auth(MexcAuth.SIGN)]
        if recv_window is not None:
            options.append(MexcOption.recv_window(recv_window))
        return options

    # ============================================
    # Market Data
    # ============================================

    async def klines(self, symbol: Symbol, tf: Timeframe, range: RequestRange) -> Klines:
        self._require_perp("klines", symbol.instrument)
        interval = self.format_timeframe(tf, KLINE_TIMEFRAMES)
        range.ensure_allowed((1, 2000))

        now_s = int(time.time())
        if range.limit is not None:
            start = now_s - (range.limit + 1) * tf.seconds
            end: Optional[int] = now_s
        else:
            start = int(range.start.timestamp())
            end = int(range.end.timestamp()) if range.end is not None else None

        r: _KlineResponse = await self.client.get(
            f"/api/v1/contract/kline/{symbol.pair.fmt_mexc()}",
            {"interval": interval, "start": start, "end": end},
            [MexcOption.http_url(MexcHttpUrl.FUTURES)],
            response_type=_KlineResponse,
        )

        c = r.data
        klines: List[Kline] = []
        for i, open_time in enumerate(c.time):
            if open_time + tf.seconds > now_s:
                logger.debug(f"Skipped MEXC kline opened at {open_time}, it is not closed yet")
                continue
            klines.append(Kline(
                open_time=to_utc_datetime(open_time),
                open=c.open[i],
                high=c.high[i],
                low=c.low[i],
                close=c.close[i],
                volume_quote=c.amount[i],
            ))
        if range.limit is not None:
            klines = klines[-range.limit:]
        return Klines(symbol=symbol, tf=tf, klines=klines)

    async def _index_price(self, pair: Pair) -> float:
        r: _IndexPriceResponse = await self.client.get_no_query(
            f"/api/v1/contract/index_price/{pair.fmt_mexc()}",
            [MexcOption.http_url(MexcHttpUrl.FUTURES)],
            response_type=_IndexPriceResponse,
        )
        return r.data.index_price

    async def price(self, symbol: Symbol) -> float:
        self._require_perp("price", symbol.instrument)
        return await self._index_price(symbol.pair)

    # ============================================
    # Account Data
    # ============================================

    async def balances(self, instrument: Instrument, recv_window: Optional[int] = None) -> Balances:
        self._require_perp("balances", instrument)
        self.require_auth()

        r: _AssetsResponse = await self.client.get_no_query(
            "/api/v1/private/account/assets", self._signed(recv_window), response_type=_AssetsResponse
        )
        held = [a for a in r.data if a.equity != 0]

        async def usdt_price(asset: str) -> float:
            if asset == "USDT":
                return 1.0
            return await self._index_price(Pair(base=asset, quote="USDT"))

        prices = await asyncio.gather(*(usdt_price(a.currency.upper()) for a in held))
        balances = [
            AssetBalance(asset=a.currency.upper(), underlying=a.equity, usd=a.equity * p)
            for a, p in zip(held, prices)
        ]
        return Balances.from_balances(balances)

    async def asset_balance(
        self, asset: str, instrument: Instrument, recv_window: Optional[int] = None
    ) -> AssetBalance:
        self._require_perp("asset_balance", instrument)
        self.require_auth()

        r: _AssetResponse = await self.client.get_no_query(
            f"/api/v1/private/account/asset/{asset.upper()}",
            self._signed(recv_window),
            response_type=_AssetResponse,
        )
        return AssetBalance(asset=r.data.currency.upper(), underlying=r.data.equity)


__all__ = ["Mexc", "MexcOption", "MexcHttpUrl", "MexcWsUrl", "MexcAuth"]
