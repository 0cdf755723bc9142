"""
Normalized Data Schemas

Exchange-agnostic value types returned by the Exchange implementations.

Key Principle:
    Whatever the venue, a candle is a Kline, a wallet is a Balances and a
    market is addressed by a Symbol. Venue formats (BTCUSDT, BTC-USDT,
    BTC_USDT, btc_jpy) are produced by Pair.fmt_* helpers at the edge.

Models:
    - ExchangeName, Instrument: enumerations used in tickers
    - Pair, Symbol, Ticker: market identifiers ("bybit:BTC-USDT.P")
    - Timeframe, RequestRange: kline/open-interest request parameters
    - Kline, Klines, Oi, Lsr: market data
    - AssetBalance, Balances: account data
    - PairInfo, ExchangeInfo: market metadata
    - TradeEvent, BvolPoint: stream and index data
"""

import re
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from core.errors import OutOfRangeError


# ============================================
# Identifiers
# ============================================

class ExchangeName(str, Enum):
    BINANCE = "binance"
    BYBIT = "bybit"
    KUCOIN = "kucoin"
    MEXC = "mexc"
    BITFLYER = "bitflyer"
    COINCHECK = "coincheck"
    BITMEX = "bitmex"


class Instrument(str, Enum):
    """
    Market type. The value is the suffix used in symbol strings.

    Example:
        >>> Instrument.PERP.value
        '.P'
    """

    SPOT = ""
    PERP = ".P"
    MARGIN = ".M"
    PERP_INVERSE = ".PERP_INVERSE"
    OPTIONS = ".OPTIONS"

    @classmethod
    def from_suffix(cls, suffix: str) -> "Instrument":
        for instrument in cls:
            if instrument.value == suffix.upper():
                return instrument
        raise ValueError(f"Unknown instrument suffix: {suffix!r}")


# Longest first so "FDUSD" wins over "USD"
KNOWN_QUOTES: Tuple[str, ...] = (
    "FDUSD", "USDT", "USDC", "BUSD", "TUSD", "USDE", "DAI", "EUR", "TRY", "BRL",
    "JPY", "BTC", "ETH", "BNB", "USD",
)

# Valued at face value when converting balances to USD
USD_STABLECOINS: Tuple[str, ...] = ("USDT", "USDC", "BUSD", "DAI", "FDUSD", "TUSD")


class Pair(BaseModel):
    """
    Base/quote asset pair.

    Attributes:
        base: Base asset in uppercase (e.g., "BTC")
        quote: Quote asset in uppercase (e.g., "USDT")

    Example:
        >>> pair = Pair.parse("btc-usdt")
        >>> pair.fmt_binance(), pair.fmt_kucoin(), pair.fmt_mexc()
        ('BTCUSDT', 'BTC-USDT', 'BTC_USDT')
    """

    model_config = ConfigDict(frozen=True)

    base: str
    quote: str

    @field_validator("base", "quote")
    @classmethod
    def validate_asset(cls, v: str) -> str:
        """Ensure asset is non-empty uppercase"""
        v = v.strip().upper()
        if not v:
            raise ValueError("asset must not be empty")
        return v

    @classmethod
    def parse(cls, value: str) -> "Pair":
        """Parse "BTC-USDT", "BTC/USDT" or "BTC_USDT"."""
        parts = re.split(r"[-/_]", value.strip())
        if len(parts) != 2:
            raise ValueError(f"Cannot parse pair from {value!r}; expected BASE-QUOTE")
        return cls(base=parts[0], quote=parts[1])

    @classmethod
    def from_concatenated(cls, value: str, quotes: Optional[Tuple[str, ...]] = None) -> "Pair":
        """
        Split a venue symbol without separator ("BTCUSDT") on a known quote asset.

        Raises:
            ValueError: No known quote asset ends the symbol
        """
        value = value.strip().upper()
        for quote in quotes or KNOWN_QUOTES:
            if value.endswith(quote) and len(value) > len(quote):
                return cls(base=value[: -len(quote)], quote=quote)
        raise ValueError(f"Cannot split {value!r} into base and quote")

    def fmt_binance(self) -> str:
        return f"{self.base}{self.quote}"

    def fmt_bybit(self) -> str:
        return f"{self.base}{self.quote}"

    def fmt_kucoin(self) -> str:
        return f"{self.base}-{self.quote}"

    def fmt_mexc(self) -> str:
        return f"{self.base}_{self.quote}"

    def fmt_bitflyer(self) -> str:
        return f"{self.base}_{self.quote}"

    def fmt_coincheck(self) -> str:
        return f"{self.base}_{self.quote}".lower()

    def __str__(self) -> str:
        return f"{self.base}-{self.quote}"


class Symbol(BaseModel):
    """
    A pair on a given instrument, written "BTC-USDT.P".
    """

    model_config = ConfigDict(frozen=True)

    pair: Pair
    instrument: Instrument = Instrument.SPOT

    @classmethod
    def parse(cls, value: str) -> "Symbol":
        pair_part, dot, suffix = value.partition(".")
        instrument = Instrument.from_suffix(dot + suffix) if dot else Instrument.SPOT
        return cls(pair=Pair.parse(pair_part), instrument=instrument)

    def __str__(self) -> str:
        return f"{self.pair}{self.instrument.value}"


class Ticker(BaseModel):
    """Exchange-qualified symbol, written "bybit:BTC-USDT.P"."""

    model_config = ConfigDict(frozen=True)

    exchange: ExchangeName
    symbol: Symbol

    @classmethod
    def parse(cls, value: str) -> "Ticker":
        exchange, sep, symbol = value.partition(":")
        if not sep:
            raise ValueError(f"Cannot parse ticker from {value!r}; expected exchange:BASE-QUOTE[.suffix]")
        return cls(exchange=ExchangeName(exchange.strip().lower()), symbol=Symbol.parse(symbol))

    def __str__(self) -> str:
        return f"{self.exchange.value}:{self.symbol}"


# ============================================
# Request Parameters
# ============================================

_TF_UNITS = {"s": 1, "m": 60, "h": 3600, "d": 86400, "w": 604800, "M": 2592000}


class Timeframe(BaseModel):
    """
    Kline interval.

    Attributes:
        seconds: Length of the interval ("1M" is taken as 30 days)

    Example:
        >>> Timeframe.parse("4h").seconds
        14400
        >>> str(Timeframe.parse("4h"))
        '4h'
    """

    model_config = ConfigDict(frozen=True)

    seconds: int = Field(..., gt=0)

    @classmethod
    def parse(cls, value: str) -> "Timeframe":
        match = re.fullmatch(r"(\d+)([smhdwM])", value.strip())
        if match is None:
            raise ValueError(f"Invalid timeframe: {value!r}")
        return cls(seconds=int(match.group(1)) * _TF_UNITS[match.group(2)])

    @property
    def duration(self) -> timedelta:
        return timedelta(seconds=self.seconds)

    def __str__(self) -> str:
        for unit in ("M", "w", "d", "h", "m"):
            size = _TF_UNITS[unit]
            if self.seconds % size == 0:
                return f"{self.seconds // size}{unit}"
        return f"{self.seconds}s"


class RequestRange(BaseModel):
    """
    How many points to request: either a count or a time window.

    Example:
        >>> RequestRange(limit=100)
        >>> RequestRange(start=datetime(2024, 1, 1, tzinfo=timezone.utc))
    """

    limit: Optional[int] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    @model_validator(mode="after")
    def check_exclusive(self) -> "RequestRange":
        if self.limit is None and self.start is None:
            raise ValueError("RequestRange needs a limit or a start time")
        if self.limit is not None and self.start is not None:
            raise ValueError("RequestRange takes either a limit or a start time, not both")
        if self.start is not None and self.end is not None and self.end <= self.start:
            raise ValueError("RequestRange end must be after start")
        return self

    def ensure_allowed(self, allowed: Tuple[int, int]) -> None:
        """
        Check the limit against an inclusive range.

        Raises:
            OutOfRangeError: The limit is outside `allowed`
        """
        if self.limit is not None and not (allowed[0] <= self.limit <= allowed[1]):
            raise OutOfRangeError(allowed, self.limit)


# ============================================
# Market Data
# ============================================

class Kline(BaseModel):
    """
    One candlestick.

    Attributes:
        open_time: Candle opening time in UTC
        open, high, low, close: Prices
        volume_quote: Traded volume in the quote asset
        trades: Number of trades, when the venue reports it
        taker_buy_volume_quote: Taker-buy volume in the quote asset, when reported
    """

    open_time: datetime
    open: float = Field(..., ge=0)
    high: float = Field(..., ge=0)
    low: float = Field(..., ge=0)
    close: float = Field(..., ge=0)
    volume_quote: float = Field(..., ge=0)
    trades: Optional[int] = None
    taker_buy_volume_quote: Optional[float] = None


class Klines(BaseModel):
    symbol: Symbol
    tf: Timeframe
    klines: List[Kline] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.klines)


class Oi(BaseModel):
    """Open interest at a point in time."""

    timestamp: datetime
    value: float = Field(..., description="Open interest in base asset")
    value_usd: Optional[float] = Field(default=None, description="Open interest in quote/USD")


class LsrWho(str, Enum):
    """Whose positioning a long/short ratio describes."""

    GLOBAL = "global"
    TOP = "top"


class Lsr(BaseModel):
    """
    Long/short ratio at a point in time.

    Attributes:
        long: Share of accounts (or top-trader positions) that are long, 0..1
    """

    time: datetime
    pair: Pair
    long: float = Field(..., ge=0, le=1)

    @property
    def short(self) -> float:
        return 1.0 - self.long

    @property
    def ratio(self) -> float:
        return self.long / self.short if self.short else float("inf")


class TradeEvent(BaseModel):
    time: datetime
    qty: float
    price: float


class BvolPoint(BaseModel):
    """One value of Bitmex's BVOL24H volatility index."""

    timestamp: datetime
    price: float


# ============================================
# Account Data
# ============================================

class AssetBalance(BaseModel):
    asset: str
    underlying: float = Field(..., description="Balance in units of the asset")
    usd: Optional[float] = Field(default=None, description="Balance in USD when known")


class Balances(BaseModel):
    """
    Wallet snapshot.

    Attributes:
        balances: Non-zero asset balances
        total_usd: Sum of the known USD values
    """

    balances: List[AssetBalance] = Field(default_factory=list)
    total_usd: float = 0.0

    @classmethod
    def from_balances(cls, balances: List[AssetBalance]) -> "Balances":
        return cls(balances=balances, total_usd=sum(b.usd or 0.0 for b in balances))

    def get(self, asset: str) -> Optional[AssetBalance]:
        asset = asset.upper()
        for balance in self.balances:
            if balance.asset.upper() == asset:
                return balance
        return None


# ============================================
# Market Metadata
# ============================================

class PairInfo(BaseModel):
    pair: Pair
    price_precision: int = Field(..., description="Decimal places of the price tick")


class ExchangeInfo(BaseModel):
    server_time: Optional[datetime] = None
    pairs: Dict[str, PairInfo] = Field(default_factory=dict)

    def get(self, pair: Pair) -> Optional[PairInfo]:
        return self.pairs.get(str(pair))
