"""
Binance Exchange

Implements the Exchange operations for Binance spot and USD-M perpetuals.

Endpoints Used:
    REST:
        - GET /api/v3/klines, /fapi/v1/klines - Candlesticks
        - GET /api/v3/ticker/price - Spot prices
        - GET /fapi/v1/premiumIndex - Perp index price
        - GET /fapi/v2/ticker/price - Perp prices
        - GET /futures/data/openInterestHist - Open interest history
        - GET /futures/data/globalLongShortAccountRatio, topLongShortPositionRatio - Long/short ratio
        - GET /api/v3/exchangeInfo, /fapi/v1/exchangeInfo - Market metadata
        - GET /api/v3/account, /fapi/v3/balance - Balances (signed)
        - POST /fapi/v1/order - New perp order (signed)
        - GET /fapi/v1/income - Perp income history (signed)

    WebSocket:
        - wss://fstream.binance.com/ws/<pair>@trade - Perp trades

Kline Close Heuristic:
    Binance returns the still-forming kline with the close time it *will*
    have. A kline is kept only once `now > open_time + threshold * tf`;
    `threshold` defaults to settings.kline_close_threshold (0.99).
"""

from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from core.client import Client
from core.config import settings
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
    Lsr,
    LsrWho,
    Oi,
    Pair,
    PairInfo,
    RequestRange,
    Symbol,
    Timeframe,
    TradeEvent,
    USD_STABLECOINS,
)
from core.utils.time import datetime_to_ms, now_ms, to_utc_datetime
from exchanges.binance.options import BinanceAuth, BinanceHttpUrl, BinanceOption, BinanceWsUrl
from exchanges.binance.orders import IncomeRecord, IncomeType, OrderRequest, OrderResponse, OrderSide, OrderType

logger = get_logger(__name__)

KLINE_TIMEFRAMES: Dict[Timeframe, str] = {
    Timeframe.parse(tf): tf
    for tf in ("1m", "3m", "5m", "15m", "30m", "1h", "2h", "4h", "6h", "8h", "12h", "1d", "3d", "1w", "1M")
}
OI_TIMEFRAMES: Dict[Timeframe, str] = {
    Timeframe.parse(tf): tf for tf in ("5m", "15m", "30m", "1h", "2h", "4h", "6h", "12h", "1d")
}
LSR_PATHS: Dict[LsrWho, str] = {
    LsrWho.GLOBAL: "/futures/data/globalLongShortAccountRatio",
    LsrWho.TOP: "/futures/data/topLongShortPositionRatio",
}

# [open_time, open, high, low, close, volume, close_time, quote_volume,
#  trades, taker_buy_base, taker_buy_quote, ignore]
KlineRow = Tuple[int, float, float, float, float, float, int, float, int, float, float, Any]


# ============================================
# Response Models
# ============================================

class _PriceResponse(BaseModel):
    symbol: str
    price: float


class _PremiumIndexResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    symbol: str
    mark_price: float = Field(alias="markPrice")
    index_price: float = Field(alias="indexPrice")


class _OpenInterestResponse(BaseModel):
    sum_open_interest: float = Field(alias="sumOpenInterest")
    sum_open_interest_value: float = Field(alias="sumOpenInterestValue")
    timestamp: int


class _LsrResponse(BaseModel):
    symbol: str
    long_account: float = Field(alias="longAccount")
    timestamp: int


class _FuturesBalanceResponse(BaseModel):
    asset: str
    balance: float


class _SpotBalance(BaseModel):
    asset: str
    free: float
    locked: float


class _SpotAccountResponse(BaseModel):
    balances: List[_SpotBalance]


class _SymbolInfo(BaseModel):
    base_asset: str = Field(alias="baseAsset")
    quote_asset: str = Field(alias="quoteAsset")
    price_precision: Optional[int] = Field(default=None, alias="pricePrecision")
    quote_precision: Optional[int] = Field(default=None, alias="quotePrecision")


class _ExchangeInfoResponse(BaseModel):
    server_time: int = Field(alias="serverTime")
    symbols: List[_SymbolInfo]


# ============================================
# Exchange
# ============================================

class Binance(Exchange):
    """
    Binance spot and USD-M perpetuals.

    Example:
        >>> async with Binance() as binance:
        ...     klines = await binance.klines(Symbol.parse("BTC-USDT.P"), Timeframe.parse("1m"),
        ...                                   RequestRange(limit=2))
    """

    name = ExchangeName.BINANCE
    option_class = BinanceOption
    capabilities = {
        "klines": True,
        "price": True,
        "prices": True,
        "open_interest": True,
        "exchange_info": True,
        "balances": True,
        "asset_balance": True,
        "lsr": True,
        "place_order": True,
        "income_history": True,
        "streams": True,
    }

    def __init__(self, client: Optional[Client] = None, kline_close_threshold: Optional[float] = None):
        super().__init__(client)
        self.kline_close_threshold = (
            settings.kline_close_threshold if kline_close_threshold is None else kline_close_threshold
        )

    # ============================================
    # Helpers
    # ============================================

    def _market(self, method: str, instrument: Instrument) -> Tuple[str, BinanceHttpUrl]:
        if instrument is Instrument.SPOT:
            return "/api/v3", BinanceHttpUrl.SPOT
        if instrument is Instrument.PERP:
            return "/fapi/v1", BinanceHttpUrl.FUTURES_USDM
        raise self.unsupported(method, instrument)

    def _signed(self, url: BinanceHttpUrl, recv_window: Optional[int]) -> List[BinanceOption]:
        options = [BinanceOption.http_url(url), BinanceOption.http_auth(BinanceAuth.SIGN)]
        if recv_window is not None:
            options.append(BinanceOption.recv_window(recv_window))
        return options

    @staticmethod
    def _range_query(range: RequestRange) -> Dict[str, Any]:
        if range.limit is not None:
            return {"limit": range.limit}
        return {
            "startTime": datetime_to_ms(range.start),
            "endTime": datetime_to_ms(range.end) if range.end is not None else None,
        }

    # ============================================
    # Market Data
    # ============================================

    async def klines(self, symbol: Symbol, tf: Timeframe, range: RequestRange) -> Klines:
        prefix, url = self._market("klines", symbol.instrument)
        interval = self.format_timeframe(tf, KLINE_TIMEFRAMES)
        range.ensure_allowed((1, 1000) if symbol.instrument is Instrument.SPOT else (1, 1500))

        query = {"symbol": symbol.pair.fmt_binance(), "interval": interval, **self._range_query(range)}
        rows: List[KlineRow] = await self.client.get(
            f"{prefix}/klines", query, [BinanceOption.http_url(url)], response_type=List[KlineRow]
        )
        return Klines(symbol=symbol, tf=tf, klines=self._closed_klines(rows, tf))

    def _closed_klines(self, rows: List[KlineRow], tf: Timeframe) -> List[Kline]:
        now = now_ms()
        min_age = self.kline_close_threshold * tf.seconds * 1000
        klines: List[Kline] = []
        for i, row in enumerate(rows):
            open_time = row[0]
            if now <= open_time + min_age:
                if i == len(rows) - 1:
                    logger.debug("Skipped last Binance kline as it is not closed yet")
                else:
                    logger.warning(f"Skipped Binance kline opened at {open_time}, it is not closed yet")
                continue
            klines.append(Kline(
                open_time=to_utc_datetime(open_time),
                open=row[1],
                high=row[2],
                low=row[3],
                close=row[4],
                volume_quote=row[7],
                trades=row[8],
                taker_buy_volume_quote=row[10],
            ))
        return klines

    async def price(self, symbol: Symbol) -> float:
        if symbol.instrument is Instrument.SPOT:
            r: _PriceResponse = await self.client.get(
                "/api/v3/ticker/price",
                {"symbol": symbol.pair.fmt_binance()},
                [BinanceOption.http_url(BinanceHttpUrl.SPOT)],
                response_type=_PriceResponse,
            )
            return r.price
        if symbol.instrument is Instrument.PERP:
            r: _PremiumIndexResponse = await self.client.get(
                "/fapi/v1/premiumIndex",
                {"symbol": symbol.pair.fmt_binance()},
                [BinanceOption.http_url(BinanceHttpUrl.FUTURES_USDM)],
                response_type=_PremiumIndexResponse,
            )
            return r.index_price
        raise self.unsupported("price", symbol.instrument)

    async def prices(self, pairs: Optional[List[Pair]], instrument: Instrument) -> Dict[Pair, float]:
        if instrument is Instrument.SPOT:
            path, url = "/api/v3/ticker/price", BinanceHttpUrl.SPOT
            query = {"symbols": [p.fmt_binance() for p in pairs]} if pairs else None
        elif instrument is Instrument.PERP:
            # the perp endpoint takes one symbol or none, so filter locally
            path, url = "/fapi/v2/ticker/price", BinanceHttpUrl.FUTURES_USDM
            query = None
        else:
            raise self.unsupported("prices", instrument)

        rs: List[_PriceResponse] = await self.client.get(
            path, query, [BinanceOption.http_url(url)], response_type=List[_PriceResponse]
        )

        if pairs:
            wanted = {p.fmt_binance(): p for p in pairs}
            return {wanted[r.symbol]: r.price for r in rs if r.symbol in wanted}

        result: Dict[Pair, float] = {}
        for r in rs:
            try:
                result[Pair.from_concatenated(r.symbol)] = r.price
            except ValueError as e:
                logger.warning(f"Failed to parse Binance pair: {e}")
        return result

    async def open_interest(self, symbol: Symbol, tf: Timeframe, range: RequestRange) -> List[Oi]:
        if symbol.instrument is not Instrument.PERP:
            raise self.unsupported("open_interest", symbol.instrument)
        period = self.format_timeframe(tf, OI_TIMEFRAMES)
        range.ensure_allowed((1, 500))

        query = {"symbol": symbol.pair.fmt_binance(), "period": period, **self._range_query(range)}
        rs: List[_OpenInterestResponse] = await self.client.get(
            "/futures/data/openInterestHist",
            query,
            [BinanceOption.http_url(BinanceHttpUrl.FUTURES_USDM)],
            response_type=List[_OpenInterestResponse],
        )
        return [
            Oi(timestamp=to_utc_datetime(r.timestamp), value=r.sum_open_interest, value_usd=r.sum_open_interest_value)
            for r in rs
        ]

    async def lsr(
        self, pair: Pair, tf: Timeframe, range: RequestRange, who: LsrWho = LsrWho.GLOBAL
    ) -> List[Lsr]:
        """
        Long/short ratio history of a USD-M perpetual.

        Args:
            who: GLOBAL for all accounts, TOP for the positions of top traders

        Raises:
            OutOfRangeError: limit outside 1..=500
            UnsupportedTimeframeError: tf is not a Binance data period
        """
        period = self.format_timeframe(tf, OI_TIMEFRAMES)
        range.ensure_allowed((1, 500))

        query = {"symbol": pair.fmt_binance(), "period": period, **self._range_query(range)}
        rs: List[_LsrResponse] = await self.client.get(
            LSR_PATHS[who],
            query,
            [BinanceOption.http_url(BinanceHttpUrl.FUTURES_USDM)],
            response_type=List[_LsrResponse],
        )
        return [Lsr(time=to_utc_datetime(r.timestamp), pair=pair, long=r.long_account) for r in rs]

    async def exchange_info(self, instrument: Instrument) -> ExchangeInfo:
        prefix, url = self._market("exchange_info", instrument)
        r: _ExchangeInfoResponse = await self.client.get_no_query(
            f"{prefix}/exchangeInfo", [BinanceOption.http_url(url)], response_type=_ExchangeInfoResponse
        )
        pairs: Dict[str, PairInfo] = {}
        for s in r.symbols:
            pair = Pair(base=s.base_asset, quote=s.quote_asset)
            precision = s.price_precision if s.price_precision is not None else (s.quote_precision or 0)
            pairs[str(pair)] = PairInfo(pair=pair, price_precision=precision)
        return ExchangeInfo(server_time=to_utc_datetime(r.server_time), pairs=pairs)

    # ============================================
    # Account Data
    # ============================================

    async def _raw_balances(self, instrument: Instrument, recv_window: Optional[int]) -> List[AssetBalance]:
        self.require_auth()
        if instrument is Instrument.PERP:
            rs: List[_FuturesBalanceResponse] = await self.client.get_no_query(
                "/fapi/v3/balance",
                self._signed(BinanceHttpUrl.FUTURES_USDM, recv_window),
                response_type=List[_FuturesBalanceResponse],
            )
            return [AssetBalance(asset=r.asset, underlying=r.balance) for r in rs]
        if instrument is Instrument.SPOT:
            account: _SpotAccountResponse = await self.client.get_no_query(
                "/api/v3/account",
                self._signed(BinanceHttpUrl.SPOT, recv_window),
                response_type=_SpotAccountResponse,
            )
            return [AssetBalance(asset=b.asset, underlying=b.free + b.locked) for b in account.balances]
        raise self.unsupported("balances", instrument)

    async def balances(self, instrument: Instrument, recv_window: Optional[int] = None) -> Balances:
        raw = [b for b in await self._raw_balances(instrument, recv_window) if b.underlying != 0]
        needs_price = [b for b in raw if b.asset not in USD_STABLECOINS]
        prices = await self.prices(None, instrument) if needs_price else {}

        valued: List[AssetBalance] = []
        for b in raw:
            if b.asset in USD_STABLECOINS:
                usd: Optional[float] = b.underlying
            else:
                price = prices.get(Pair(base=b.asset, quote="USDT"))
                if price is None:
                    logger.warning(f"No USDT price for {b.asset}, leaving its USD value unknown")
                usd = b.underlying * price if price is not None else None
            valued.append(AssetBalance(asset=b.asset, underlying=b.underlying, usd=usd))
        return Balances.from_balances(valued)

    async def asset_balance(
        self, asset: str, instrument: Instrument, recv_window: Optional[int] = None
    ) -> AssetBalance:
        for b in await self._raw_balances(instrument, recv_window):
            if b.asset.upper() == asset.upper():
                return b
        return AssetBalance(asset=asset.upper(), underlying=0.0)

    # ============================================
    # Trading
    # ============================================

    async def place_order(self, order: OrderRequest, recv_window: Optional[int] = None) -> OrderResponse:
        """
        Place a USD-M perpetual order. The signed parameters travel in the form body.

        Example:
            >>> order = OrderRequest(pair=Pair.parse("BTC-USDT"), side=OrderSide.SELL,
            ...                      order_type=OrderType.MARKET, qty=0.01, reduce_only=True)
            >>> response = await binance.place_order(order)
        """
        self.require_auth()
        response: OrderResponse = await self.client.post(
            "/fapi/v1/order",
            order.to_params(),
            self._signed(BinanceHttpUrl.FUTURES_USDM, recv_window),
            response_type=OrderResponse,
        )
        logger.info(f"Binance order {response.order_id} {response.side.value} {response.symbol}: {response.status}")
        return response

    async def income_history(
        self,
        pair: Optional[Pair] = None,
        income_type: Optional[IncomeType] = None,
        range: Optional[RequestRange] = None,
        page: Optional[int] = None,
        recv_window: Optional[int] = None,
    ) -> List[IncomeRecord]:
        """
        USD-M futures income records such as funding fees and realized PnL.

        Raises:
            OutOfRangeError: limit outside 1..=1000
        """
        self.require_auth()
        query: Dict[str, Any] = {
            "symbol": pair.fmt_binance() if pair is not None else None,
            "incomeType": income_type.value if income_type is not None else None,
        }
        if range is not None:
            range.ensure_allowed((1, 1000))
            query.update(self._range_query(range))
        query["page"] = page

        return await self.client.get(
            "/fapi/v1/income",
            query,
            self._signed(BinanceHttpUrl.FUTURES_USDM, recv_window),
            response_type=List[IncomeRecord],
        )

    # ============================================
    # Streams
    # ============================================

    async def ws_trades(self, pair: Pair) -> AsyncIterator[TradeEvent]:
        """
        Stream USD-M perpetual trades for a pair.

        Example:
            >>> async for trade in binance.ws_trades(Pair.parse("BTC-USDT")):
            ...     print(trade.price)
        """
        path = f"/ws/{pair.fmt_binance().lower()}@trade"
        connection = self.client.ws_connection(path, [BinanceOption.ws_url(BinanceWsUrl.FUTURES_USDM)])
        async with connection:
            async for event in connection:
                data = event.data
                if event.event_type != "trade" or not isinstance(data, dict):
                    logger.debug(f"Ignoring non-trade event on {path}: {event.event_type}")
                    continue
                yield TradeEvent(time=to_utc_datetime(data["T"]), qty=float(data["q"]), price=float(data["p"]))


__all__ = [
    "Binance",
    "BinanceOption",
    "BinanceHttpUrl",
    "BinanceWsUrl",
    "BinanceAuth",
    "IncomeRecord",
    "IncomeType",
    "OrderRequest",
    "OrderResponse",
    "OrderSide",
    "OrderType",
]
