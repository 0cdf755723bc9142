"""
Shared fixtures for unit tests.

FakeSession stands in for aiohttp.ClientSession: responses are scripted per
URL path and every request is recorded, so tests can check the exact wire
request (URL, raw query, headers, body) a handler produced.
"""

import json
from typing import Any, Dict, List, Optional

import pytest

from core.client import Client


class FakeResponse:
    """Mimics the aiohttp response used as `async with session.request(...)`."""

    def __init__(self, status: int, body: bytes, headers: Optional[Dict[str, str]] = None):
        self.status = status
        self.headers = headers or {}
        self._body = body

    async def read(self) -> bytes:
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False


class RecordedCall:
    def __init__(self, method: str, url: Any, headers: Dict[str, str], data: Optional[bytes]):
        self.method = method
        self.url = url
        self.headers = headers
        self.data = data

    @property
    def path(self) -> str:
        return self.url.path

    @property
    def raw_query(self) -> str:
        return self.url.raw_query_string

    @property
    def query(self) -> Dict[str, str]:
        return dict(self.url.query)

    @property
    def body(self) -> Optional[str]:
        return self.data.decode("utf-8") if self.data is not None else None


class FakeSession:
    """
    Scripted replacement for aiohttp.ClientSession.

    add() registers a response for a path. A list of responses is served in
    order; an exception instance is raised instead of responding.
    """

    def __init__(self):
        self.routes: Dict[str, List[Any]] = {}
        self.calls: List[RecordedCall] = []
        self.closed = False

    def add(
        self,
        path: str,
        payload: Any = None,
        status: int = 200,
        headers: Optional[Dict[str, str]] = None,
        repeat: bool = True,
    ) -> None:
        if isinstance(payload, BaseException):
            entry: Any = payload
        else:
            body = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")
            entry = (status, body, headers or {})
        self.routes.setdefault(path, []).append((entry, repeat))

    def request(self, method, url, headers=None, data=None, timeout=None):
        self.calls.append(RecordedCall(method, url, dict(headers or {}), data))
        queue = self.routes.get(url.path)
        if not queue:
            raise AssertionError(f"Unexpected request: {method} {url}")

        entry, repeat = queue[0]
        if not repeat or len(queue) > 1:
            queue.pop(0)
        if isinstance(entry, BaseException):
            raise entry
        status, body, response_headers = entry
        return FakeResponse(status, body, response_headers)

    def last(self, path: Optional[str] = None) -> RecordedCall:
        calls = [c for c in self.calls if path is None or c.path == path]
        assert calls, f"No request to {path}"
        return calls[-1]

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def client(fake_session) -> Client:
    """Client whose transport is the fake session"""
    return Client(session=fake_session)
