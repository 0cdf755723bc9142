"""
Kucoin Exchange

Implements the Exchange operations for Kucoin spot.

Endpoints Used:
    - GET /api/v1/market/candles - Candlesticks
    - GET /api/v1/market/orderbook/level1 - Last price
    - GET /api/v1/market/allTickers - All last prices
    - GET /api/v2/symbols - Market metadata
    - GET /api/v1/accounts - Balances (signed, needs the passphrase)

Notes:
    - The candles endpoint has no count parameter; a `limit` range is turned
      into a time window ending now and trimmed to the last `limit` klines
    - Kucoin uses a fixed receive window; set_recv_window() only warns
"""

import time
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from core.client import Client
from core.config import settings
from core.errors import MissingPassphraseError
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
    Pair,
    PairInfo,
    RequestRange,
    Symbol,
    Timeframe,
    USD_STABLECOINS,
)
from core.utils.time import to_utc_datetime
from exchanges.kucoin.options import KucoinAuth, KucoinHttpUrl, KucoinOption, KucoinWsUrl

logger = get_logger(__name__)

KLINE_TIMEFRAMES: Dict[Timeframe, str] = {
    Timeframe.parse(tf): code
    for tf, code in (
        ("1m", "1min"), ("3m", "3min"), ("5m", "5min"), ("15m", "15min"), ("30m", "30min"),
        ("1h", "1hour"), ("2h", "2hour"), ("4h", "4hour"), ("6h", "6hour"), ("8h", "8hour"),
        ("12h", "12hour"), ("1d", "1day"), ("1w", "1week"),
    )
}

# [time (s), open, close, high, low, volume, turnover]
KlineRow = Tuple[int, float, float, float, float, float, float]


# ============================================
# Response Models
# ============================================

class _KlinesResponse(BaseModel):
    data: List[KlineRow]


class _Level1(BaseModel):
    price: float


class _Level1Response(BaseModel):
    data: _Level1


class _Ticker(BaseModel):
    symbol: str
    last: Optional[float] = None


class _AllTickers(BaseModel):
    time: int
    ticker: List[_Ticker]


class _AllTickersResponse(BaseModel):
    data: _AllTickers


class _SymbolInfo(BaseModel):
    symbol: str
    base_currency: str = Field(alias="baseCurrency")
    quote_currency: str = Field(alias="quoteCurrency")
    price_increment: str = Field(alias="priceIncrement")


class _SymbolsResponse(BaseModel):
    data: List[_SymbolInfo]


class _Account(BaseModel):
    currency: str
    type: str
    balance: float


class _AccountsResponse(BaseModel):
    data: List[_Account]


def _decimals(increment: str) -> int:
    """Number of decimal places of a tick size such as "0.001"."""
    exponent = Decimal(increment).normalize().as_tuple().exponent
    return max(0, -exponent) if isinstance(exponent, int) else 0


# ============================================
# Exchange
# ============================================

class Kucoin(Exchange):
    """
    Kucoin spot.

    Example:
        >>> kucoin = Kucoin()
        >>> kucoin.auth("key", "secret", passphrase="passphrase")
        >>> balances = await kucoin.balances(Instrument.SPOT)
    """

    name = ExchangeName.KUCOIN
    option_class = KucoinOption
    capabilities = {
        "klines": True,
        "price": True,
        "prices": True,
        "open_interest": False,
        "exchange_info": True,
        "balances": True,
        "asset_balance": True,
        "streams": False,
    }

    @classmethod
    def from_settings(cls, client: Optional[Client] = None) -> "Kucoin":
        exchange = super().from_settings(client)
        passphrase = settings.kucoin_passphrase.get_secret_value()
        if passphrase:
            exchange.client.update_default_option(KucoinOption.passphrase(passphrase))
        return exchange

    def auth(self, pubkey: str, secret: str, passphrase: Optional[str] = None) -> None:
        super().auth(pubkey, secret)
        if passphrase is not None:
            self.client.update_default_option(KucoinOption.passphrase(passphrase))

    def set_recv_window(self, recv_window: int) -> None:
        logger.warning(
            "Kucoin does not support a configurable recv_window; "
            "it uses a fixed 5-second tolerance for all signed requests"
        )

    def require_auth(self) -> None:
        super().require_auth()
        if self.options.passphrase is None:
            raise MissingPassphraseError()

    def _require_spot(self, method: str, instrument: Instrument) -> None:
        if instrument is not Instrument.SPOT:
            raise self.unsupported(method, instrument)

    # ============================================
    # Market Data
    # ============================================

    async def klines(self, symbol: Symbol, tf: Timeframe, range: RequestRange) -> Klines:
        self._require_spot("klines", symbol.instrument)
        kline_type = self.format_timeframe(tf, KLINE_TIMEFRAMES)
        range.ensure_allowed((1, 1500))

        now_s = int(time.time())
        if range.limit is not None:
            # one extra interval covers the kline still forming
            start_at = now_s - (range.limit + 1) * tf.seconds
            end_at: Optional[int] = now_s
        else:
            start_at = int(range.start.timestamp())
            end_at = int(range.end.timestamp()) if range.end is not None else None

        query = {
            "symbol": symbol.pair.fmt_kucoin(),
            "type": kline_type,
            "startAt": start_at,
            "endAt": end_at,
        }
        r: _KlinesResponse = await self.client.get(
            "/api/v1/market/candles", query, [KucoinOption.default()], response_type=_KlinesResponse
        )

        klines: List[Kline] = []
        for row in reversed(r.data):
            if row[0] + tf.seconds > now_s:
                logger.debug(f"Skipped Kucoin kline opened at {row[0]}, it is not closed yet")
                continue
            klines.append(Kline(
                open_time=to_utc_datetime(row[0]),
                open=row[1],
                close=row[2],
                high=row[3],
                low=row[4],
                volume_quote=row[6],
            ))
        if range.limit is not None:
            klines = klines[-range.limit:]
        return Klines(symbol=symbol, tf=tf, klines=klines)

    async def price(self, symbol: Symbol) -> float:
        self._require_spot("price", symbol.instrument)
        r: _Level1Response = await self.client.get(
            "/api/v1/market/orderbook/level1",
            {"symbol": symbol.pair.fmt_kucoin()},
            [KucoinOption.default()],
            response_type=_Level1Response,
        )
        return r.data.price

    async def prices(self, pairs: Optional[List[Pair]], instrument: Instrument) -> Dict[Pair, float]:
        self._require_spot("prices", instrument)
        r: _AllTickersResponse = await self.client.get_no_query(
            "/api/v1/market/allTickers", [KucoinOption.default()], response_type=_AllTickersResponse
        )

        result: Dict[Pair, float] = {}
        wanted = {p.fmt_kucoin(): p for p in pairs} if pairs else None
        for t in r.data.ticker:
            if t.last is None:
                continue
            if wanted is not None:
                if t.symbol in wanted:
                    result[wanted[t.symbol]] = t.last
                continue
            try:
                result[Pair.parse(t.symbol)] = t.last
            except ValueError as e:
                logger.warning(f"Failed to parse Kucoin pair: {e}")
        return result

    async def exchange_info(self, instrument: Instrument) -> ExchangeInfo:
        self._require_spot("exchange_info", instrument)
        r: _SymbolsResponse = await self.client.get_no_query(
            "/api/v2/symbols", [KucoinOption.default()], response_type=_SymbolsResponse
        )
        pairs: Dict[str, PairInfo] = {}
        for s in r.data:
            pair = Pair(base=s.base_currency, quote=s.quote_currency)
            pairs[str(pair)] = PairInfo(pair=pair, price_precision=_decimals(s.price_increment))
        return ExchangeInfo(pairs=pairs)

    # ============================================
    # Account Data
    # ============================================

    async def balances(self, instrument: Instrument, recv_window: Optional[int] = None) -> Balances:
        self._require_spot("balances", instrument)
        self.require_auth()

        r: _AccountsResponse = await self.client.get(
            "/api/v1/accounts",
            {"type": "trade"},
            [KucoinOption.http_auth(KucoinAuth.SIGN), KucoinOption.http_url(KucoinHttpUrl.SPOT)],
            response_type=_AccountsResponse,
        )
        held = [a for a in r.data if a.balance > 0]
        needs_price = any(a.currency.upper() not in USD_STABLECOINS for a in held)
        prices = await self.prices(None, Instrument.SPOT) if needs_price else {}

        balances: List[AssetBalance] = []
        for a in held:
            asset = a.currency.upper()
            if asset in USD_STABLECOINS:
                usd: Optional[float] = a.balance
            else:
                price = prices.get(Pair(base=asset, quote="USDT"))
                if price is None:
                    logger.warning(f"No USDT price for {asset}, leaving its USD value unknown")
                usd = a.balance * price if price is not None else None
            balances.append(AssetBalance(asset=asset, underlying=a.balance, usd=usd))
        return Balances.from_balances(balances)


__all__ = ["Kucoin", "KucoinOption", "KucoinHttpUrl", "KucoinWsUrl", "KucoinAuth"]
