"""
HTTP Dispatch Core

This module contains everything exchange-agnostic about an HTTP call:

- RequestConfig: retry policy and timeouts, carried inside every option bag
- PreparedRequest: the mutable request a handler signs in build_request()
- RawResponse: status, headers and body bytes handed to handle_response()
- RequestHandler: the per-exchange strategy (base URL, signing, decoding)
- send_request(): the attempt loop that ties them together

Usage:
    handler = options.request_handler(response_type=List[list])
    klines = await send_request(session, handler, "GET", "/fapi/v1/klines",
                                query={"symbol": "BTCUSDT", "interval": "1m"})

Key Features:
    - Only transport timeouts are retried; every other failure is raised at once
    - Rate-limit responses are surfaced as IpTimeoutError, never retried here
    - Successful testnet responses can be cached on disk to spare testnet quotas
    - Signed queries are sent pre-encoded so the signature covers the wire bytes

Notes:
    The shared concurrency cap lives in core.client.Client, which holds a
    semaphore permit around send_request().
"""

import asyncio
import hashlib
import json
import time
from abc import ABC, abstractmethod
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union
from urllib.parse import quote, urlencode, urlparse

import aiohttp
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from yarl import URL

from core.config import settings
from core.errors import (
    BuildError,
    BuildRequestError,
    HandleError,
    HandleResponseError,
    OtherRequestError,
    ParseError,
    ReceiveResponseError,
    RequestUrlError,
    SendRequestError,
    SerializationError,
    UrlError,
)
from core.logging import get_logger, log_api_request, log_api_response

logger = get_logger(__name__)

QueryLike = Union[None, Mapping[str, Any], Iterable[Tuple[str, Any]], BaseModel]
BodyLike = Union[None, str, Mapping[str, Any], BaseModel, List[Any]]

TRUNCATE_BODY_AT = 500


# ============================================
# Request Configuration
# ============================================

def _default_cache_ttl() -> Optional[float]:
    return float(settings.testnet_cache_ttl) if settings.testnet_cache_enabled else None


class RequestConfig(BaseModel):
    """
    Retry policy and timeouts for HTTP requests.

    Attributes:
        max_tries: Attempts per request, at least 1
        retry_cooldown: Seconds to sleep after a timed-out attempt
        timeout: Per-attempt timeout in seconds
        cache_testnet_calls: Lifetime of cached testnet responses in seconds, None disables
    """

    model_config = ConfigDict(frozen=True)

    max_tries: int = Field(default_factory=lambda: settings.request_max_tries, ge=1)
    retry_cooldown: float = Field(default_factory=lambda: settings.retry_cooldown, ge=0)
    timeout: float = Field(default_factory=lambda: settings.request_timeout, gt=0)
    cache_testnet_calls: Optional[float] = Field(default_factory=_default_cache_ttl)


# ============================================
# Encoding Helpers
# ============================================

def _query_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (list, tuple, dict)):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


def encode_query(query: QueryLike) -> List[Tuple[str, str]]:
    """
    Turn a query mapping, pair list or pydantic model into ordered string pairs.

    None values are dropped, booleans become "true"/"false" and lists are
    written as compact JSON.

    Example:
        >>> encode_query({"symbol": "BTCUSDT", "limit": 2, "startTime": None})
        [('symbol', 'BTCUSDT'), ('limit', '2')]
    """
    if query is None:
        return []
    if isinstance(query, BaseModel):
        query = query.model_dump(by_alias=True, exclude_none=True)
    items = query.items() if isinstance(query, Mapping) else query
    return [(str(key), _query_value(value)) for key, value in items if value is not None]


def _as_plain(body: Any) -> Any:
    if isinstance(body, BaseModel):
        return body.model_dump(by_alias=True, exclude_none=True, mode="json")
    return body


def encode_json_body(body: BodyLike) -> Optional[str]:
    """
    Serialize a body as compact JSON. Strings are taken as already serialized.

    Raises:
        SerializationError: The body is not JSON serializable
    """
    if body is None:
        return None
    if isinstance(body, str):
        return body
    try:
        return json.dumps(_as_plain(body), separators=(",", ":"))
    except (TypeError, ValueError) as e:
        raise SerializationError("json", str(e)) from e


def encode_form_body(body: BodyLike) -> Optional[str]:
    """
    Serialize a body as application/x-www-form-urlencoded.

    Raises:
        SerializationError: The body is not a flat mapping
    """
    if body is None:
        return None
    if isinstance(body, str):
        return body
    plain = _as_plain(body)
    if not isinstance(plain, Mapping):
        raise SerializationError("url", f"expected a mapping, got {type(plain).__name__}")
    return urlencode(encode_query(plain))


# ============================================
# Request / Response Envelopes
# ============================================

class PreparedRequest:
    """
    A request being assembled by a handler.

    Handlers append to `query`, set `headers` and `body`. The wire URL is
    `url?urlencode(query)` and is sent without re-encoding.

    Attributes:
        method: Upper-case HTTP verb
        url: Base URL joined with the call path
        query: Ordered (key, value) string pairs
        headers: Header map
        body: Serialized body text or None
        timeout: Per-attempt timeout in seconds
    """

    def __init__(self, method: str, url: str, query: QueryLike = None, timeout: float = 3.0):
        self.method = method.upper()
        self.url = url
        self.query: List[Tuple[str, str]] = encode_query(query)
        self.headers: Dict[str, str] = {}
        self.body: Optional[str] = None
        self.timeout = timeout

    @property
    def path(self) -> str:
        return urlparse(self.url).path

    def query_string(self) -> str:
        return urlencode(self.query)

    def path_with_query(self) -> str:
        qs = self.query_string()
        return f"{self.path}?{qs}" if qs else self.path

    def full_url(self) -> str:
        qs = self.query_string()
        return f"{self.url}?{qs}" if qs else self.url

    def __repr__(self) -> str:
        return f"PreparedRequest({self.method} {self.url}, query={len(self.query)} params)"


class RawResponse:
    """Status, headers and body bytes of a received response."""

    def __init__(self, status: int, headers: Optional[Mapping[str, str]] = None, body: bytes = b""):
        self.status = status
        # case-insensitive lookup
        self.headers: Dict[str, str] = {k.lower(): v for k, v in (headers or {}).items()}
        self.body = body

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name.lower())

    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def truncated(self, limit: int = TRUNCATE_BODY_AT) -> str:
        text = self.text()
        return text if len(text) <= limit else text[:limit] + "..."

    def json(self) -> Any:
        """
        Decode the body as JSON.

        Raises:
            ParseError: The body is not JSON (carries the truncated body)
        """
        try:
            return json.loads(self.body)
        except ValueError as e:
            logger.debug(f"Failed to decode response body (status {self.status}): {self.truncated()}")
            raise ParseError(str(e), self.truncated()) from e


@lru_cache(maxsize=256)
def _type_adapter(response_type: Any) -> TypeAdapter:
    return TypeAdapter(response_type)


# ============================================
# Request Handler
# ============================================

class RequestHandler(ABC):
    """
    Per-exchange strategy used by send_request().

    A handler is built per call from a merged option bag and owns a snapshot
    of it. Subclasses implement base URL selection, request signing and
    response decoding.

    Attributes:
        exchange: Exchange name used in log lines
        options: Merged option bag for this call
        response_type: Optional type the success payload is validated into
    """

    exchange: str = ""

    def __init__(self, options: Any, response_type: Any = None):
        self.options = options
        self.response_type = response_type

    @property
    def config(self) -> RequestConfig:
        return self.options.request_config

    @property
    def is_test(self) -> bool:
        return bool(self.options.testnet)

    def base_url(self, is_test: bool) -> str:
        """
        Select the base URL from the bag's HTTP descriptor.

        Raises:
            MissingTestnetError: is_test is set and the descriptor has no testnet
        """
        return self.options.http_url.url(is_test)

    @abstractmethod
    def build_request(self, request: PreparedRequest, body: BodyLike, attempt: int) -> PreparedRequest:
        """
        Serialize the body and apply authentication.

        Args:
            request: Fresh request for this attempt
            body: Caller body (mapping, pydantic model, pre-serialized string or None)
            attempt: 1-based attempt counter

        Returns:
            The wire-ready request (usually `request` itself)

        Raises:
            BuildError: Serialization or credential failure
        """

    @abstractmethod
    def handle_response(self, response: RawResponse) -> Any:
        """
        Decode a response or translate it into the error taxonomy.

        Raises:
            HandleError: API error, parse error or other decoding failure
        """

    def decode(self, payload: Any, response: RawResponse) -> Any:
        """
        Validate a decoded JSON payload into `response_type`.

        Raises:
            ParseError: The payload does not match the expected type
        """
        if self.response_type is None:
            return payload
        try:
            return _type_adapter(self.response_type).validate_python(payload)
        except ValidationError as e:
            logger.debug(f"{self.exchange}: response does not match {self.response_type}: {response.truncated()}")
            raise ParseError(str(e), response.truncated()) from e


# ============================================
# Testnet Response Cache
# ============================================

class TestnetCache:
    """
    On-disk cache of successful testnet responses keyed by unsigned URL.

    Args:
        directory: Cache directory, created on first write
        ttl: Lifetime of an entry in seconds
    """

    __test__ = False  # not a pytest class

    def __init__(self, directory: Union[str, Path], ttl: float):
        self.directory = Path(directory)
        self.ttl = ttl

    def _path(self, key: str) -> Path:
        name = quote(key, safe="")
        if len(name) > 200:
            name = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self.directory / name

    def read(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        if not path.is_file():
            return None
        age = time.time() - path.stat().st_mtime
        if age >= self.ttl:
            return None
        logger.debug(f"Serving cached testnet response for {key} (age {age:.0f}s)")
        return path.read_bytes()

    def write(self, key: str, body: bytes) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        self._path(key).write_bytes(body)


# ============================================
# Dispatch
# ============================================

async def send_request(
    session: aiohttp.ClientSession,
    handler: RequestHandler,
    method: str,
    path: str,
    query: QueryLike = None,
    body: BodyLike = None,
    cache_dir: Optional[Union[str, Path]] = None,
) -> Any:
    """
    Build, send, retry and decode one request through a handler.

    Args:
        session: aiohttp session used as transport
        handler: Per-exchange handler holding the merged options
        method: HTTP verb
        path: Path appended verbatim to the handler's base URL
        query: Optional query parameters
        body: Optional body, serialized by the handler
        cache_dir: Testnet cache directory (defaults to settings.test_calls_dir)

    Returns:
        Whatever handler.handle_response() returns for the final response

    Raises:
        RequestUrlError: Base URL could not be resolved (no network activity happened)
        BuildRequestError: The handler could not build or sign the request
        SendRequestError: Transport failure, or timeouts on every attempt
        ReceiveResponseError: The body could not be read
        HandleResponseError: The handler rejected the response
    """
    config = handler.config
    if config.max_tries < 1:
        raise OtherRequestError("max_tries must be at least 1")

    is_test = handler.is_test
    try:
        base = handler.base_url(is_test)
    except UrlError as e:
        raise RequestUrlError(e) from e
    url = base + path

    cache: Optional[TestnetCache] = None
    if is_test and config.cache_testnet_calls is not None:
        cache = TestnetCache(cache_dir or settings.test_calls_dir, config.cache_testnet_calls)

    for attempt in range(1, config.max_tries + 1):
        request = PreparedRequest(method, url, query, config.timeout)
        cache_key = request.full_url()

        if cache is not None:
            cached = cache.read(cache_key)
            if cached is not None:
                return _handle(handler, RawResponse(200, {}, cached), url)

        log_api_request(handler.exchange, request.method, url, dict(request.query) or None)

        try:
            request = handler.build_request(request, body, attempt)
        except BuildError as e:
            raise BuildRequestError(e) from e

        started = time.monotonic()
        try:
            async with session.request(
                request.method,
                URL(request.full_url(), encoded=True),
                headers=request.headers,
                data=request.body.encode("utf-8") if request.body is not None else None,
                timeout=aiohttp.ClientTimeout(total=request.timeout),
            ) as resp:
                try:
                    raw_body = await resp.read()
                except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                    raise ReceiveResponseError(f"Failed to read response body from {url}: {e}") from e
                response = RawResponse(resp.status, resp.headers, raw_body)
        except asyncio.TimeoutError as e:
            if attempt < config.max_tries:
                logger.info(
                    f"Retrying sending request to {url} after timeout "
                    f"(attempt {attempt}/{config.max_tries})"
                )
                await asyncio.sleep(config.retry_cooldown)
                continue
            raise SendRequestError(f"Request to {url} timed out after {attempt} attempt(s)") from e
        except aiohttp.ClientError as e:
            logger.error(f"Failed to send request to {url}: {e}")
            raise SendRequestError(f"Failed to send request to {url}: {e}") from e

        log_api_response(handler.exchange, url, response.status, time.monotonic() - started)

        result = _handle(handler, response, url)
        if cache is not None:
            cache.write(cache_key, response.body)
        return result

    # range() above always runs at least once and every branch returns, raises or continues
    raise OtherRequestError(f"No attempt was made for {url}")


def _handle(handler: RequestHandler, response: RawResponse, url: str) -> Any:
    try:
        return handler.handle_response(response)
    except HandleError as e:
        logger.debug(f"Failed to handle response from {url} (status {response.status}): {e}")
        raise HandleResponseError(e) from e
