"""
Exchange Interface: Domain Operations on Top of the Client

Exchange wraps a Client and exposes venue-independent operations returning
the schemas from core.schemas. Each venue subclasses it, sets its option
class and capability map, and overrides the operations it offers:

    async with Binance() as binance:
        klines = await binance.klines(Symbol.parse("BTC-USDT.P"), Timeframe.parse("1h"),
                                      RequestRange(limit=100))
        price = await binance.price(Symbol.parse("ETH-USDT"))

Capabilities System:
    `capabilities` declares which operations the venue implements. Operations
    a venue does not override raise MethodNotSupportedError, and so do
    implemented operations called with an instrument the venue lacks.

Notes:
    Range and timeframe checks happen before any network call, so
    OutOfRangeError and UnsupportedTimeframeError never cost a request.
"""

from abc import ABC
from typing import ClassVar, Dict, List, Mapping, Optional, Type

from core.client import Client
from core.config import settings
from core.errors import (
    MethodNotSupportedError,
    MissingPubkeyError,
    MissingSecretError,
    UnsupportedTimeframeError,
)
from core.http import RequestConfig
from core.logging import get_logger
from core.options import HandlerOption, HandlerOptions
from core.schemas import (
    AssetBalance,
    Balances,
    ExchangeInfo,
    ExchangeName,
    Instrument,
    Klines,
    Oi,
    Pair,
    RequestRange,
    Symbol,
    Timeframe,
)

logger = get_logger(__name__)


class Exchange(ABC):
    """
    Base class of venue implementations.

    Class Attributes:
        name: Venue identifier
        option_class: The venue's HandlerOption subclass
        capabilities: Which operations the venue implements

    Attributes:
        client: The Client requests go through (shared when passed in)
    """

    name: ClassVar[ExchangeName]
    option_class: ClassVar[Type[HandlerOption]]

    capabilities: ClassVar[Dict[str, bool]] = {
        "klines": False,
        "price": False,
        "prices": False,
        "open_interest": False,
        "exchange_info": False,
        "balances": False,
        "asset_balance": False,
        "streams": False,
    }

    def __init__(self, client: Optional[Client] = None):
        self.client = client or Client()

    @classmethod
    def from_settings(cls, client: Optional[Client] = None) -> "Exchange":
        """Build the exchange and authenticate it with credentials from settings, if any."""
        exchange = cls(client)
        credentials = settings.credentials_for(cls.name.value)
        if credentials is not None:
            exchange.auth(*credentials)
            logger.info(f"{cls.name.value}: authenticated from settings")
        return exchange

    # ============================================
    # Lifecycle
    # ============================================

    async def close(self) -> None:
        await self.client.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # ============================================
    # Configuration
    # ============================================

    @property
    def options(self) -> HandlerOptions:
        return self.client.default_options(self.option_class)

    def supports(self, feature: str) -> bool:
        return self.capabilities.get(feature, False)

    def auth(self, pubkey: str, secret: str) -> None:
        self.client.update_default_option(self.option_class.pubkey(pubkey))
        self.client.update_default_option(self.option_class.secret(secret))

    def is_authenticated(self) -> bool:
        return self.client.is_authenticated(self.option_class)

    def set_recv_window(self, recv_window: int) -> None:
        self.client.update_default_option(self.option_class.recv_window(recv_window))

    def set_max_tries(self, max_tries: int) -> None:
        self._update_request_config(max_tries=max_tries)

    def set_timeout(self, timeout: float) -> None:
        self._update_request_config(timeout=timeout)

    def _update_request_config(self, **changes) -> None:
        current = self.options.request_config.model_dump()
        current.update(changes)
        self.client.update_default_option(self.option_class.request_config(RequestConfig(**current)))

    # ============================================
    # Helpers for subclasses
    # ============================================

    def require_auth(self) -> None:
        """
        Fail fast when credentials are missing.

        Raises:
            MissingPubkeyError / MissingSecretError
        """
        if self.options.pubkey is None:
            raise MissingPubkeyError()
        if self.options.secret is None:
            raise MissingSecretError()

    def unsupported(self, method: str, instrument: Optional[Instrument] = None) -> MethodNotSupportedError:
        label = None
        if instrument is not None:
            label = instrument.name.lower()
        return MethodNotSupportedError(self.name.value, label, method)

    @staticmethod
    def format_timeframe(tf: Timeframe, allowed: Mapping[Timeframe, str]) -> str:
        """
        Look up the venue spelling of a timeframe.

        Raises:
            UnsupportedTimeframeError: The venue does not offer `tf`
        """
        formatted = allowed.get(tf)
        if formatted is None:
            raise UnsupportedTimeframeError(str(tf), [str(t) for t in allowed])
        return formatted

    # ============================================
    # Market Data
    # ============================================

    async def klines(self, symbol: Symbol, tf: Timeframe, range: RequestRange) -> Klines:
        raise self.unsupported("klines", symbol.instrument)

    async def price(self, symbol: Symbol) -> float:
        raise self.unsupported("price", symbol.instrument)

    async def prices(self, pairs: Optional[List[Pair]], instrument: Instrument) -> Dict[Pair, float]:
        raise self.unsupported("prices", instrument)

    async def open_interest(self, symbol: Symbol, tf: Timeframe, range: RequestRange) -> List[Oi]:
        raise self.unsupported("open_interest", symbol.instrument)

    async def exchange_info(self, instrument: Instrument) -> ExchangeInfo:
        raise self.unsupported("exchange_info", instrument)

    # ============================================
    # Account Data
    # ============================================

    async def balances(self, instrument: Instrument, recv_window: Optional[int] = None) -> Balances:
        raise self.unsupported("balances", instrument)

    async def asset_balance(
        self, asset: str, instrument: Instrument, recv_window: Optional[int] = None
    ) -> AssetBalance:
        """Default: pick the asset out of balances()."""
        balances = await self.balances(instrument, recv_window)
        found = balances.get(asset)
        if found is None:
            return AssetBalance(asset=asset.upper(), underlying=0.0, usd=0.0)
        return found
