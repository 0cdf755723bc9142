"""
Unit Tests for WsConnection

These tests verify that the WebSocket connection manager:
- Connects lazily on the first next() and sends auth or subscribe frames
- Answers pings, ignores pongs and binary frames, hands back content events
- Replaces the socket when it closes or goes silent
- Drops frames already delivered by the other socket generation

A scripted session stands in for aiohttp: every ws_connect() pops the next
list of inbound messages and returns a socket that replays them.

Run with:
    pytest tests/unit/test_ws_connection.py -v
"""

import asyncio
import json
from collections import namedtuple
from typing import Any, List
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest
import pytest_asyncio
from aiohttp import WSMsgType

from core.errors import WsAuthError, WsClosedError, WsTransportError
from core.ws import ContentEvent, WsConfig, WsConnection, WsState
from exchanges.binance.options import BinanceOptions, BinanceWsUrl
from exchanges.bitflyer.options import BitflyerOptions
from exchanges.bybit.options import BybitOptions

Msg = namedtuple("Msg", ["type", "data", "extra"])


def text(payload: Any) -> Msg:
    return Msg(WSMsgType.TEXT, json.dumps(payload), None)


def trade(price: str) -> Msg:
    return text({"e": "trade", "E": 1700000000000, "s": "BTCUSDT", "p": price})


CLOSE = Msg(WSMsgType.CLOSE, 1000, "")


class FakeSocket:
    def __init__(self, script: List[Msg]):
        self.incoming: "asyncio.Queue[Msg]" = asyncio.Queue()
        for msg in script:
            self.incoming.put_nowait(msg)
        self.sent: List[str] = []
        self.pongs: List[bytes] = []
        self.closed = False

    async def receive(self) -> Msg:
        return await self.incoming.get()

    async def send_str(self, data: str) -> None:
        self.sent.append(data)

    async def pong(self, data: bytes = b"") -> None:
        self.pongs.append(data)

    async def close(self) -> None:
        self.closed = True


class FakeWsSession:
    def __init__(self, *scripts: List[Msg]):
        self.scripts = list(scripts)
        self.sockets: List[FakeSocket] = []
        self.urls: List[str] = []
        self.closed = False

    async def ws_connect(self, url: str, autoping: bool = True) -> FakeSocket:
        assert autoping is False
        self.urls.append(url)
        if not self.scripts:
            raise aiohttp.ClientConnectionError("no more scripted sockets")
        socket = FakeSocket(self.scripts.pop(0))
        self.sockets.append(socket)
        return socket

    async def close(self) -> None:
        self.closed = True


def _config(**changes) -> WsConfig:
    values = dict(connect_cooldown=0, refresh_after=3600, message_timeout=5, reconnection_wait=0)
    values.update(changes)
    return WsConfig(**values)


def binance_connection(session: FakeWsSession, **config) -> WsConnection:
    options = BinanceOptions(
        ws_url=BinanceWsUrl.FUTURES_USDM,
        ws_config=_config(**config),
        ws_topics={"btcusdt@trade"},
    )
    return WsConnection.try_new("/ws", options.ws_handler(), session=session)


# ============================================
# Handshake
# ============================================

class TestHandshake:
    """Tests for the first connection"""

    def test_try_new_does_not_connect(self):
        session = FakeWsSession([])
        conn = binance_connection(session)

        assert conn.url == "wss://fstream.binance.com/ws"
        assert conn.state == WsState.DISCONNECTED
        assert session.urls == []

    @pytest.mark.asyncio
    async def test_first_next_connects_and_subscribes(self):
        session = FakeWsSession([text({"result": None, "id": 1}), trade("1")])
        conn = binance_connection(session)

        async with conn:
            event = await conn.next()

            assert isinstance(event, ContentEvent)
            assert event.data["p"] == "1"
            assert session.urls == ["wss://fstream.binance.com/ws"]
            assert session.sockets[0].sent == ['{"method":"SUBSCRIBE","params":["btcusdt@trade"],"id":1}']
            assert conn.state == WsState.SUBSCRIBED

        assert session.sockets[0].closed
        assert session.closed is False

    @pytest.mark.asyncio
    async def test_auth_then_subscribe(self):
        session = FakeWsSession([
            text({"success": True, "op": "auth", "ret_msg": "", "conn_id": "1"}),
            text({"topic": "order", "type": "snapshot", "ts": 1700000000000, "data": []}),
        ])
        options = BybitOptions(
            pubkey="key", secret="secret", ws_auth=True, ws_topics={"order"}, ws_config=_config(),
        )
        conn = WsConnection.try_new("/v5/private", options.ws_handler(), session=session)

        async with conn:
            event = await conn.next()

            sent = [json.loads(f) for f in session.sockets[0].sent]
            assert [f["op"] for f in sent] == ["auth", "subscribe"]
            assert sent[1]["args"] == ["order"]
            assert event.topic == "order"
            assert conn.state == WsState.SUBSCRIBED

    @pytest.mark.asyncio
    async def test_auth_rejected(self):
        session = FakeWsSession([text({"success": False, "op": "auth", "ret_msg": "bad key"})])
        options = BybitOptions(pubkey="key", secret="secret", ws_auth=True, ws_config=_config())
        conn = WsConnection.try_new("/v5/private", options.ws_handler(), session=session)

        async with conn:
            with pytest.raises(WsAuthError):
                await conn.next()

    @pytest.mark.asyncio
    async def test_connect_failure(self):
        conn = binance_connection(FakeWsSession())

        with pytest.raises(WsTransportError):
            await conn.next()
        await conn.close()


# ============================================
# Frames
# ============================================

class TestFrames:
    """Tests for control and data frames"""

    @pytest.mark.asyncio
    async def test_ping_is_answered(self):
        session = FakeWsSession([Msg(WSMsgType.PING, b"hb", None), trade("1")])
        conn = binance_connection(session)

        async with conn:
            await conn.next()
            assert session.sockets[0].pongs == [b"hb"]

    @pytest.mark.asyncio
    async def test_pong_and_binary_are_dropped(self):
        session = FakeWsSession([
            Msg(WSMsgType.PONG, b"", None),
            Msg(WSMsgType.BINARY, b"\x00\x01", None),
            trade("2"),
        ])
        conn = binance_connection(session)

        async with conn:
            event = await conn.next()
            assert event.data["p"] == "2"

    @pytest.mark.asyncio
    async def test_async_iteration_stops_after_close(self):
        session = FakeWsSession([trade("1"), trade("2")])
        conn = binance_connection(session)
        seen = []

        async for event in conn:
            seen.append(event.data["p"])
            if len(seen) == 2:
                await conn.close()

        assert seen == ["1", "2"]
        with pytest.raises(WsClosedError):
            await conn.next()

    @pytest.mark.asyncio
    async def test_subscribe_on_live_socket(self):
        session = FakeWsSession([trade("1")])
        conn = binance_connection(session)

        async with conn:
            await conn.next()
            await conn.subscribe(["ethusdt@trade", "btcusdt@trade"])

            assert session.sockets[0].sent[-1] == '{"method":"SUBSCRIBE","params":["ethusdt@trade"],"id":2}'
            assert conn.config.topics == {"btcusdt@trade", "ethusdt@trade"}


# ============================================
# Reconnection
# ============================================

class TestReconnection:
    """Tests for socket replacement"""

    @pytest.mark.asyncio
    async def test_close_frame_triggers_reconnect(self):
        session = FakeWsSession([trade("1"), CLOSE], [trade("2")])
        conn = binance_connection(session)

        async with conn:
            first = await conn.next()
            second = await conn.next()

            assert [first.data["p"], second.data["p"]] == ["1", "2"]
            assert len(session.sockets) == 2
            assert session.sockets[1].sent == ['{"method":"SUBSCRIBE","params":["btcusdt@trade"],"id":2}']

            await asyncio.sleep(0.05)
            assert session.sockets[0].closed
            assert not conn.is_reconnecting

    @pytest.mark.asyncio
    async def test_silence_triggers_reconnect(self):
        session = FakeWsSession([], [trade("3")])
        conn = binance_connection(session, message_timeout=0.05)

        async with conn:
            event = await conn.next()

            assert event.data["p"] == "3"
            assert len(session.sockets) == 2

    @pytest.mark.asyncio
    async def test_request_reconnect_before_connecting(self):
        conn = binance_connection(FakeWsSession([]))
        assert conn.request_reconnect() is False


class TestOverlapWindow:
    """Tests for frames read while both sockets are open"""

    BITFLYER_AUTH_ACK = text({"jsonrpc": "2.0", "id": "auth", "result": True})
    BYBIT_AUTH_ACK = text({"success": True, "op": "auth", "ret_msg": "", "conn_id": "1"})

    @staticmethod
    def bitflyer_message(n: int) -> Msg:
        return text({
            "jsonrpc": "2.0",
            "method": "channelMessage",
            "params": {"channel": "child_order_events", "message": {"n": n}},
        })

    @pytest.mark.asyncio
    async def test_auth_ack_on_new_socket_resubscribes(self):
        session = FakeWsSession(
            [self.BITFLYER_AUTH_ACK, self.bitflyer_message(1), CLOSE],
            [self.BITFLYER_AUTH_ACK, self.bitflyer_message(2)],
        )
        options = BitflyerOptions(
            pubkey="key", secret="secret", ws_auth=True,
            ws_topics={"child_order_events"}, ws_config=_config(reconnection_wait=0.3),
        )
        conn = WsConnection.try_new("", options.ws_handler(), session=session)

        async with conn:
            first = await conn.next()
            second = await conn.next()

            assert [first.data["n"], second.data["n"]] == [1, 2]
            methods = [json.loads(f)["method"] for f in session.sockets[1].sent]
            assert methods == ["auth", "subscribe"]

    @pytest.mark.asyncio
    async def test_message_repeated_by_new_socket_is_delivered_once(self):
        session = FakeWsSession([trade("1"), CLOSE], [trade("1"), trade("2")])
        conn = binance_connection(session, reconnection_wait=0.3)

        async with conn:
            first = await conn.next()
            second = await conn.next()

            assert [first.data["p"], second.data["p"]] == ["1", "2"]

    @pytest.mark.asyncio
    async def test_runtime_topics_survive_authenticated_reconnect(self):
        session = FakeWsSession(
            [self.BYBIT_AUTH_ACK, text({"topic": "order", "type": "snapshot", "ts": 1, "data": []})],
            [self.BYBIT_AUTH_ACK, text({"topic": "wallet", "type": "snapshot", "ts": 2, "data": []})],
        )
        options = BybitOptions(
            pubkey="key", secret="secret", ws_auth=True, ws_topics={"order"}, ws_config=_config(),
        )
        conn = WsConnection.try_new("/v5/private", options.ws_handler(), session=session)

        async with conn:
            await conn.next()
            await conn.subscribe(["wallet"])
            assert conn.request_reconnect() is True

            event = await conn.next()

            assert event.topic == "wallet"
            sent = [json.loads(f) for f in session.sockets[1].sent]
            assert sent[1] == {"op": "subscribe", "args": ["order", "wallet"]}


class TestDeduplication:
    """Tests for WsConnection._is_duplicate"""

    def test_frames_repeated_on_one_socket_are_kept(self):
        conn = binance_connection(FakeWsSession())

        assert conn._is_duplicate("frame", True) is False
        assert conn._is_duplicate("frame", True) is False

    def test_frame_seen_on_other_socket_is_dropped(self):
        conn = binance_connection(FakeWsSession())

        assert conn._is_duplicate("frame", True) is False
        assert conn._is_duplicate("frame", False) is True
        assert conn._is_duplicate("frame", False) is False

    def test_ignore_all_repeats_while_reconnecting(self):
        conn = binance_connection(FakeWsSession())
        conn.config.ignore_duplicate_during_reconnection = True
        conn._reconnecting = True

        assert conn._is_duplicate("frame", True) is False
        assert conn._is_duplicate("frame", True) is True

    def test_capacity_evicts_oldest(self):
        conn = binance_connection(FakeWsSession(), dedup_capacity=2)

        for frame in ("a", "b", "c"):
            conn._is_duplicate(frame, True)

        assert list(conn._dedup) == ["b", "c"]


# ============================================
# Session ownership
# ============================================

@pytest_asyncio.fixture
async def owned_session():
    """A session the connection creates itself, replaced by a mock"""
    session = MagicMock()
    session.closed = False
    session.close = AsyncMock()
    session.ws_connect = AsyncMock(return_value=FakeSocket([trade("7")]))

    with patch("core.ws.aiohttp.ClientSession", return_value=session):
        yield session


class TestSessionOwnership:
    """Tests for the session a connection opens on its own"""

    @pytest.mark.asyncio
    async def test_owned_session_is_closed(self, owned_session):
        options = BinanceOptions(
            ws_url=BinanceWsUrl.FUTURES_USDM, ws_config=_config(), ws_topics={"btcusdt@trade"},
        )
        conn = WsConnection.try_new("/ws", options.ws_handler())

        event = await conn.next()
        await conn.close()

        assert event.data["p"] == "7"
        owned_session.ws_connect.assert_awaited_once_with("wss://fstream.binance.com/ws", autoping=False)
        owned_session.close.assert_awaited_once()
