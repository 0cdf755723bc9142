"""
Client Facade

The Client owns the HTTP transport, the shared concurrency cap and one
default option bag per exchange. Every call names its exchange through the
option class of its overrides, merges them into that exchange's defaults and
dispatches through the matching request handler.

Usage:
    async with Client() as client:
        client.update_default_option(BinanceOption.pubkey("key"))
        client.update_default_option(BinanceOption.secret("secret"))

        klines = await client.get(
            "/fapi/v1/klines",
            {"symbol": "BTCUSDT", "interval": "1m", "limit": 2},
            [BinanceOption.http_url(BinanceHttpUrl.FUTURES_USDM)],
        )

Key Features:
    - At most `max_simultaneous_requests` requests in flight per client,
      shared with every clone
    - Lazily created aiohttp session, closed by close() or `async with`
    - ws_connection() builds self-reconnecting WebSocket streams

Notes:
    set_max_simultaneous_requests() installs a new semaphore on this client
    only; clones made earlier keep the previous cap.
"""

import asyncio
from typing import Any, Dict, Iterable, List, Optional, Type

import aiohttp

from core.config import settings
from core.http import BodyLike, QueryLike, send_request
from core.logging import get_logger
from core.options import HandlerOption, HandlerOptions
from core.ws import WsConnection

logger = get_logger(__name__)


class _Transport:
    """aiohttp session shared between a client and its clones."""

    def __init__(self, session: Optional[aiohttp.ClientSession] = None):
        self.session = session
        self.owned = session is None

    def get(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession()
            self.owned = True
            logger.debug("HTTP session created")
        return self.session

    async def close(self) -> None:
        if self.owned and self.session is not None and not self.session.closed:
            await self.session.close()
            logger.debug("HTTP session closed")


class Client:
    """
    Unified HTTP/WebSocket client for every supported exchange.

    Attributes:
        max_simultaneous_requests: Capacity of the current semaphore

    Example:
        >>> async with Client() as client:
        ...     ticker = await client.get("/api/v3/ticker/price", {"symbol": "BTCUSDT"},
        ...                               [BinanceOption.http_url(BinanceHttpUrl.SPOT)])
    """

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        max_simultaneous_requests: Optional[int] = None,
    ):
        """
        Args:
            session: Optional externally managed aiohttp session (not closed by close())
            max_simultaneous_requests: Concurrency cap, settings default when None
        """
        self.max_simultaneous_requests = max_simultaneous_requests or settings.max_simultaneous_requests
        self._semaphore = asyncio.Semaphore(self.max_simultaneous_requests)
        self._transport = _Transport(session)
        self._defaults: Dict[Type[HandlerOption], HandlerOptions] = {}

    # ============================================
    # Context Manager for Session Management
    # ============================================

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        """Close the HTTP session (shared with clones)."""
        await self._transport.close()

    # ============================================
    # Options
    # ============================================

    def clone(self) -> "Client":
        """
        Copy the client: option bags are copied, session and semaphore are shared.
        """
        other = Client.__new__(Client)
        other.max_simultaneous_requests = self.max_simultaneous_requests
        other._semaphore = self._semaphore
        other._transport = self._transport
        other._defaults = {cls: bag.model_copy(deep=True) for cls, bag in self._defaults.items()}
        return other

    def set_max_simultaneous_requests(self, max_requests: int) -> None:
        """Replace the semaphore. Existing clones keep the old one."""
        if max_requests < 1:
            raise ValueError(f"max_requests must be at least 1, got {max_requests}")
        self.max_simultaneous_requests = max_requests
        self._semaphore = asyncio.Semaphore(max_requests)

    def default_options(self, option_cls: Type[HandlerOption]) -> HandlerOptions:
        """Return (creating on first use) the default bag for an exchange."""
        bag = self._defaults.get(option_cls)
        if bag is None:
            bag = option_cls.options_class()
            self._defaults[option_cls] = bag
        return bag

    def update_default_option(self, option: HandlerOption) -> None:
        self.default_options(type(option)).update(option)

    def is_authenticated(self, option_cls: Type[HandlerOption]) -> bool:
        return self.default_options(option_cls).is_authenticated()

    def merged_options(self, options: Iterable[HandlerOption]) -> HandlerOptions:
        """
        Merge per-call overrides into the defaults of their exchange.

        Raises:
            ValueError: No override was given, or overrides mix exchanges
        """
        overrides: List[HandlerOption] = list(options)
        if not overrides:
            raise ValueError("At least one option is required to select the exchange; use <Exchange>Option.default()")
        option_cls = type(overrides[0])
        for option in overrides[1:]:
            if type(option) is not option_cls:
                raise ValueError(
                    f"Options for different exchanges in one call: "
                    f"{option_cls.__name__} and {type(option).__name__}"
                )
        return self.default_options(option_cls).merged(overrides)

    # ============================================
    # HTTP Verbs
    # ============================================

    async def request(
        self,
        method: str,
        path: str,
        options: Iterable[HandlerOption],
        query: QueryLike = None,
        body: BodyLike = None,
        response_type: Any = None,
    ) -> Any:
        """
        Send one request through the exchange handler selected by `options`.

        Args:
            method: HTTP verb
            path: Path appended to the handler's base URL
            options: Per-call overrides (at least one, all for the same exchange)
            query: Optional query parameters
            body: Optional body
            response_type: Optional type the success payload is validated into

        Returns:
            Decoded JSON, or an instance of response_type

        Raises:
            RequestError: See core.http.send_request
        """
        async with self._semaphore:
            merged = self.merged_options(options)
            handler = merged.request_handler(response_type)
            return await send_request(self._transport.get(), handler, method, path, query, body)

    async def get(self, path: str, query: QueryLike, options: Iterable[HandlerOption], response_type: Any = None) -> Any:
        return await self.request("GET", path, options, query=query, response_type=response_type)

    async def get_no_query(self, path: str, options: Iterable[HandlerOption], response_type: Any = None) -> Any:
        return await self.request("GET", path, options, response_type=response_type)

    async def post(self, path: str, body: BodyLike, options: Iterable[HandlerOption], response_type: Any = None) -> Any:
        return await self.request("POST", path, options, body=body, response_type=response_type)

    async def post_no_body(self, path: str, options: Iterable[HandlerOption], response_type: Any = None) -> Any:
        return await self.request("POST", path, options, response_type=response_type)

    async def put(self, path: str, body: BodyLike, options: Iterable[HandlerOption], response_type: Any = None) -> Any:
        return await self.request("PUT", path, options, body=body, response_type=response_type)

    async def put_no_body(self, path: str, options: Iterable[HandlerOption], response_type: Any = None) -> Any:
        return await self.request("PUT", path, options, response_type=response_type)

    async def delete(self, path: str, query: QueryLike, options: Iterable[HandlerOption], response_type: Any = None) -> Any:
        return await self.request("DELETE", path, options, query=query, response_type=response_type)

    async def delete_no_query(self, path: str, options: Iterable[HandlerOption], response_type: Any = None) -> Any:
        return await self.request("DELETE", path, options, response_type=response_type)

    # ============================================
    # WebSocket
    # ============================================

    def ws_connection(self, path: str, options: Iterable[HandlerOption]) -> WsConnection:
        """
        Build a WebSocket connection for the exchange selected by `options`.

        The connection is not opened until its first next(). It connects
        through this client's session, which close() on the client owns.

        Raises:
            WsUrlError: The base URL could not be resolved
        """
        merged = self.merged_options(options)
        return WsConnection.try_new(path, merged.ws_handler(), session_factory=self._transport.get)
