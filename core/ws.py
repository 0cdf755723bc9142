"""
WebSocket Connection Manager

A WsConnection keeps one logical stream alive on top of successive physical
sockets. Each exchange supplies a WsHandler that knows its URLs, handshake
frames and how to classify inbound JSON; the connection does the rest:

- connects lazily on the first next() call and runs the auth/subscribe handshake
- answers pings, ignores pongs, discards binary frames
- reconnects on server close, transport errors, silence longer than
  message_timeout, every refresh_after seconds, or on request_reconnect()
- opens the new socket before closing the old one and drops messages seen on
  both sockets during the overlap

Usage:
    conn = client.ws_connection("/v5/public/linear", [
        BybitOption.ws_topics({"publicTrade.BTCUSDT"}),
    ])
    async with conn:
        async for event in conn:
            print(event.topic, event.data)

Key Features:
    - One reader task per socket feeding a single inbox queue, so events from
      one socket are delivered in socket order
    - A supervisor task performs reconnections; next() never blocks on them
    - Topics live in WsConfig and are replayed on every new socket

Notes:
    A connection is meant to be consumed by a single task.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from collections import OrderedDict
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple, Union

import aiohttp
from aiohttp import WSMsgType
from pydantic import BaseModel, Field

from core.config import settings
from core.errors import (
    UrlError,
    WsClosedError,
    WsError,
    WsParseError,
    WsTransportError,
    WsUrlError,
)
from core.logging import get_logger, log_websocket_event

logger = get_logger(__name__)

_CLOSING_TYPES = (WSMsgType.CLOSE, WSMsgType.CLOSING, WSMsgType.CLOSED, WSMsgType.ERROR)


# ============================================
# Configuration and Events
# ============================================

class WsConfig(BaseModel):
    """
    Timings and subscriptions of a WebSocket connection.

    Attributes:
        base_url: scheme://host[:port] prefix the path is appended to
        connect_cooldown: Minimum seconds between connection attempts
        refresh_after: Seconds after which the socket is replaced proactively
        message_timeout: Reconnect when nothing arrives for this many seconds
        reconnection_wait: Overlap window while switching sockets (seconds)
        topics: Topics subscribed on every new socket
        auth: Run the auth handshake before subscribing
        ignore_duplicate_during_reconnection: Drop every repeated frame while reconnecting
        dedup_capacity: Number of recent frames remembered for deduplication
    """

    base_url: Optional[str] = None
    connect_cooldown: float = Field(default_factory=lambda: settings.ws_connect_cooldown, ge=0)
    refresh_after: float = Field(default_factory=lambda: settings.ws_refresh_after, gt=0)
    message_timeout: float = Field(default_factory=lambda: settings.ws_message_timeout, gt=0)
    reconnection_wait: float = Field(default_factory=lambda: settings.ws_reconnection_wait, ge=0)
    topics: Set[str] = Field(default_factory=set)
    auth: bool = False
    ignore_duplicate_during_reconnection: bool = False
    dedup_capacity: int = Field(default=1024, ge=1)


class ContentEvent(BaseModel):
    """A normalized inbound message delivered to the caller."""

    topic: str = ""
    event_type: str = ""
    time: Optional[datetime] = None
    data: Any = None


class WsResponse(BaseModel):
    """
    A protocol frame consumed by the connection.

    Attributes:
        frames: Frames sent back on the same socket
        subscribe: Send the subscribe frames for the connection's current topics
            (set on an auth acknowledgement)
    """

    frames: List[str] = Field(default_factory=list)
    subscribe: bool = False


JrpcResult = Union[WsResponse, ContentEvent]


def encode_frame(payload: Any) -> str:
    return json.dumps(payload, separators=(",", ":"))


class WsState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    SUBSCRIBED = "subscribed"
    RECONNECTING = "reconnecting"
    DRAINING = "draining"


# ============================================
# WebSocket Handler
# ============================================

class WsHandler(ABC):
    """
    Per-exchange WebSocket strategy.

    Attributes:
        exchange: Exchange name used in log lines
        options: Merged option bag the handler was built from
    """

    exchange: str = ""

    def __init__(self, options: Any):
        self.options = options

    def config(self) -> WsConfig:
        """
        Finalize the bag's WsConfig: pick the base URL and merge topics.

        Raises:
            UrlError: The testnet flag is set and the descriptor has no testnet
        """
        config = self.options.ws_config.model_copy(deep=True)
        config.base_url = self.options.ws_url.url(self.options.testnet)
        config.topics = set(config.topics) | set(self.options.ws_topics)
        return config

    def handle_auth(self) -> List[str]:
        """Frames that authenticate the socket. Default: none."""
        return []

    @abstractmethod
    def handle_subscribe(self, topics: Set[str]) -> List[str]:
        """Frames that subscribe to `topics`."""

    @abstractmethod
    def handle_jrpc(self, value: Any) -> JrpcResult:
        """
        Classify a decoded inbound frame.

        Returns:
            WsResponse for protocol frames, ContentEvent for data

        Raises:
            WsError: Auth or subscription rejected by the server
        """


class _TransportFailure:
    """Inbox marker for a socket whose receive() raised."""

    type = WSMsgType.ERROR

    def __init__(self, error: BaseException):
        self.data = error


# ============================================
# Connection Manager
# ============================================

class WsConnection:
    """
    Self-reconnecting WebSocket stream.

    Attributes:
        url: Full URL (base_url + path)
        handler: Exchange handler
        config: Finalized WsConfig

    Example:
        >>> conn = WsConnection.try_new("/ws/btcusdt@trade", handler)
        >>> event = await conn.next()

    Notes:
        - try_new() performs no I/O; the first next() connects
        - Each physical socket has a generation bit that flips on every connect
        - Frames from a socket that is being replaced never trigger a reconnect
        - A session or session_factory supplied by the caller is never closed here
    """

    def __init__(
        self,
        url: str,
        handler: WsHandler,
        config: WsConfig,
        session: Optional[aiohttp.ClientSession] = None,
        session_factory: Optional[Callable[[], aiohttp.ClientSession]] = None,
    ):
        self.url = url
        self.handler = handler
        self.config = config

        self._session = session
        self._session_factory = session_factory
        self._owns_session = session is None and session_factory is None

        self._state = WsState.DISCONNECTED
        self._generation = False
        self._sockets: Dict[bool, aiohttp.ClientWebSocketResponse] = {}
        self._readers: Dict[bool, asyncio.Task] = {}
        self._inbox: "asyncio.Queue[Tuple[Optional[bool], Any]]" = asyncio.Queue()
        self._last_attempt: Optional[float] = None

        self._reconnect_event = asyncio.Event()
        self._reconnecting = False
        self._supervisor: Optional[asyncio.Task] = None
        self._closed = False

        self._dedup: "OrderedDict[str, int]" = OrderedDict()

    @classmethod
    def try_new(
        cls,
        path: str,
        handler: WsHandler,
        session: Optional[aiohttp.ClientSession] = None,
        session_factory: Optional[Callable[[], aiohttp.ClientSession]] = None,
    ) -> "WsConnection":
        """
        Resolve the handler's config and build a connection. Does not connect.

        session_factory is called on every connect, so a shared transport that
        recreated its session is picked up by the next socket.

        Raises:
            WsUrlError: The base URL could not be resolved
        """
        try:
            config = handler.config()
        except UrlError as e:
            raise WsUrlError(e) from e
        return cls(f"{config.base_url}{path}", handler, config, session, session_factory)

    # ============================================
    # Public API
    # ============================================

    @property
    def state(self) -> WsState:
        return self._state

    @property
    def generation(self) -> bool:
        return self._generation

    @property
    def is_reconnecting(self) -> bool:
        return self._reconnecting

    async def next(self) -> ContentEvent:
        """
        Return the next content event, connecting first if needed.

        Raises:
            WsClosedError: close() was called
            WsTransportError: The initial connection failed
            WsError: The handler rejected auth or a subscription
        """
        if self._closed:
            raise WsClosedError("Connection is closed")

        if self._supervisor is None:
            await self._start_connection()
            self._supervisor = asyncio.create_task(self._reconnect_loop())

        while True:
            try:
                generation, item = await asyncio.wait_for(
                    self._inbox.get(), timeout=self.config.message_timeout
                )
            except asyncio.TimeoutError:
                logger.warning(
                    f"No message from {self.url} within {self.config.message_timeout}s, reconnecting"
                )
                self.request_reconnect()
                continue

            if isinstance(item, BaseException):
                raise item

            event = await self._handle_message(generation, item)
            if event is not None:
                return event

    def request_reconnect(self) -> bool:
        """
        Ask the supervisor to replace the socket.

        Returns:
            False when nothing is connected yet, the connection is closed, or a
            reconnection is already pending; True otherwise
        """
        if self._supervisor is None or self._closed:
            return False
        already_pending = self._reconnecting or self._reconnect_event.is_set()
        self._reconnect_event.set()
        return not already_pending

    async def subscribe(self, topics: Iterable[str]) -> None:
        """
        Add topics to the connection.

        New topics are kept in the config so they are replayed on reconnect,
        and are subscribed on the live socket right away when one exists.
        """
        new_topics = set(topics) - self.config.topics
        if not new_topics:
            return
        self.config.topics |= new_topics
        if self._generation in self._sockets:
            await self._send_frames(self._generation, self.handler.handle_subscribe(new_topics))

    async def close(self) -> None:
        """Stop the supervisor, close every socket and the owned session."""
        if self._closed:
            return
        self._closed = True
        self._state = WsState.DRAINING

        if self._supervisor is not None:
            self._supervisor.cancel()
            try:
                await self._supervisor
            except asyncio.CancelledError:
                pass

        for generation in list(self._sockets):
            await self._close_generation(generation)

        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

        self._state = WsState.DISCONNECTED
        log_websocket_event(self.handler.exchange, "closed", details=self.url)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def __aiter__(self):
        return self

    async def __anext__(self) -> ContentEvent:
        if self._closed:
            raise StopAsyncIteration
        return await self.next()

    # ============================================
    # Message Handling
    # ============================================

    async def _handle_message(self, generation: Optional[bool], msg: Any) -> Optional[ContentEvent]:
        if msg.type == WSMsgType.TEXT:
            text = msg.data
            try:
                value = json.loads(text)
            except ValueError as e:
                raise WsParseError(str(e), text[:500]) from e

            # protocol frames look alike on every socket, so only content is deduplicated
            result = self.handler.handle_jrpc(value)
            if isinstance(result, WsResponse):
                frames = list(result.frames)
                if result.subscribe:
                    frames.extend(self.handler.handle_subscribe(self.config.topics))
                if frames:
                    await self._send_frames(generation, frames)
                if result.subscribe and self._state == WsState.AUTHENTICATING:
                    self._state = WsState.SUBSCRIBED
                return None

            if self._is_duplicate(text, bool(generation)):
                logger.debug(f"Dropping duplicate frame from generation {generation}")
                return None
            return result

        if msg.type == WSMsgType.PING:
            socket = self._sockets.get(generation)
            if socket is not None:
                await socket.pong(msg.data)
            return None

        if msg.type == WSMsgType.PONG:
            return None

        if msg.type == WSMsgType.BINARY:
            logger.debug(f"Discarding binary frame of {len(msg.data)} bytes from {self.url}")
            return None

        if msg.type in _CLOSING_TYPES:
            if generation == self._generation and not self._reconnecting:
                log_websocket_event(
                    self.handler.exchange, "disconnected",
                    details=f"{self.url} ({msg.type.name}: {msg.data})"
                )
                self.request_reconnect()
            else:
                logger.debug(f"Ignoring {msg.type.name} from replaced socket (generation {generation})")
            return None

        logger.debug(f"Ignoring frame of type {msg.type} from {self.url}")
        return None

    def _is_duplicate(self, text: str, generation: bool) -> bool:
        """
        Track a text frame and tell whether it should be dropped.

        Counts are signed by generation (+1 for True, -1 for False). A frame is
        dropped when adding its sign moves the running count away from that
        sign, i.e. the frame was already seen on the other socket.
        """
        id_sign = 1 if generation else -1
        count = self._dedup.get(text)

        if count is None:
            self._dedup[text] = id_sign
            if len(self._dedup) > self.config.dedup_capacity:
                self._dedup.popitem(last=False)
            return False

        self._dedup.move_to_end(text)
        if self._reconnecting and self.config.ignore_duplicate_during_reconnection:
            return True

        count += id_sign
        self._dedup[text] = count
        signum = (count > 0) - (count < 0)
        return signum != id_sign

    # ============================================
    # Socket Lifecycle
    # ============================================

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session_factory is not None:
            self._session = self._session_factory()
        elif self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def _start_connection(self) -> None:
        if not self._reconnecting:
            self._state = WsState.CONNECTING

        loop = asyncio.get_running_loop()
        if self._last_attempt is not None:
            wait = self._last_attempt + self.config.connect_cooldown - loop.time()
            if wait > 0:
                await asyncio.sleep(wait)
        self._last_attempt = loop.time()

        session = await self._get_session()
        try:
            socket = await session.ws_connect(self.url, autoping=False)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            log_websocket_event(self.handler.exchange, "error", details=f"connect to {self.url} failed: {e}")
            raise WsTransportError(f"Failed to connect to {self.url}: {e}") from e

        self._generation = not self._generation
        generation = self._generation
        self._sockets[generation] = socket
        self._readers[generation] = asyncio.create_task(self._pump(generation, socket))
        log_websocket_event(self.handler.exchange, "connected", details=f"{self.url} generation={generation}")

        if self.config.auth:
            if not self._reconnecting:
                self._state = WsState.AUTHENTICATING
            frames = self.handler.handle_auth()
        else:
            frames = self.handler.handle_subscribe(self.config.topics)
            if not self._reconnecting:
                self._state = WsState.SUBSCRIBED
        await self._send_frames(generation, frames)

    async def _pump(self, generation: bool, socket: aiohttp.ClientWebSocketResponse) -> None:
        try:
            while True:
                msg = await socket.receive()
                await self._inbox.put((generation, msg))
                if msg.type in _CLOSING_TYPES:
                    break
        except (aiohttp.ClientError, asyncio.TimeoutError, RuntimeError) as e:
            await self._inbox.put((generation, _TransportFailure(e)))

    async def _send_frames(self, generation: Optional[bool], frames: List[str]) -> None:
        socket = self._sockets.get(generation)
        if socket is None:
            logger.warning(f"Dropping {len(frames)} frame(s): socket generation {generation} is gone")
            return
        try:
            for frame in frames:
                await socket.send_str(frame)
        except (aiohttp.ClientError, ConnectionError, RuntimeError) as e:
            raise WsTransportError(f"Failed to send frame to {self.url}: {e}") from e

    async def _close_generation(self, generation: bool) -> None:
        reader = self._readers.pop(generation, None)
        if reader is not None and not reader.done():
            reader.cancel()
        socket = self._sockets.pop(generation, None)
        if socket is not None and not socket.closed:
            await socket.close()

    async def _reconnect_loop(self) -> None:
        while not self._closed:
            try:
                await asyncio.wait_for(self._reconnect_event.wait(), timeout=self.config.refresh_after)
            except asyncio.TimeoutError:
                logger.info(f"Refreshing connection to {self.url} after {self.config.refresh_after}s")
            self._reconnect_event.clear()

            self._reconnecting = True
            self._state = WsState.RECONNECTING
            old_generation = self._generation
            log_websocket_event(self.handler.exchange, "reconnecting", details=self.url)

            try:
                await self._start_connection()
            except WsTransportError as e:
                logger.error(f"Reconnection to {self.url} failed: {e}")
                self._reconnecting = False
                self._reconnect_event.set()
                continue
            except WsError as e:
                self._reconnecting = False
                await self._inbox.put((None, e))
                continue

            await asyncio.sleep(self.config.reconnection_wait)
            await self._close_generation(old_generation)
            await asyncio.sleep(self.config.reconnection_wait)

            self._dedup.clear()
            self._reconnecting = False
            self._state = WsState.SUBSCRIBED
            log_websocket_event(self.handler.exchange, "reconnected", details=self.url)
