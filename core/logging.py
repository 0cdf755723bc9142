"""
Unified Logging Configuration

This module sets up the logging used by every part of the client: the HTTP
dispatch loop, the per-exchange request handlers and the WebSocket
connection manager. Library modules never print; they log through loggers
obtained from this module.

Usage:
    from core.logging import get_logger

    logger = get_logger(__name__)
    logger.info("Retrying request")

Log Levels used by the client:
    DEBUG    - Truncated bodies of responses that failed to decode, signing input sizes
    INFO     - Retries after transport timeouts, WebSocket (re)connections
    WARNING  - Unknown exchange error codes, unsupported settings, dropped klines
    ERROR    - Transport failures and failed reconnection attempts

Configuration:
    Importing the package installs no handlers: the "unifex" logger only gets a
    NullHandler and propagates to whatever the application configured.
    Applications that want the default console output call setup_logging(),
    whose level defaults to the LOG_LEVEL setting (.env or environment).
    Secrets are wrapped in pydantic.SecretStr and render as '**********'.
"""

import logging
import sys
from typing import Any, Dict, Optional

from core.config import settings

ROOT_LOGGER_NAME = "unifex"


def setup_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    include_timestamp: bool = True,
    include_module: bool = True
) -> logging.Logger:
    """
    Configure and return the root "unifex" logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL), LOG_LEVEL setting when None
        log_format: Custom log format string (uses default if None)
        include_timestamp: Include timestamp in log messages
        include_module: Include logger name in log messages

    Returns:
        logging.Logger: Configured logger instance

    Example:
        >>> logger = setup_logging(log_level="DEBUG")
        >>> logger.info("Client ready")
        2024-01-01 12:00:00 [INFO] unifex: Client ready
    """
    if log_format is None:
        format_parts = []

        if include_timestamp:
            format_parts.append("%(asctime)s")

        format_parts.append("[%(levelname)s]")

        if include_module:
            format_parts.append("%(name)s:")

        format_parts.append("%(message)s")

        log_format = " ".join(format_parts)

    if log_level is None:
        log_level = settings.log_level
    level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format=log_format,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        force=True
    )

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level)

    return root


# ============================================
# Library Logger
# ============================================

# handlers are the application's business; setup_logging() is opt-in
logger = logging.getLogger(ROOT_LOGGER_NAME)
logger.addHandler(logging.NullHandler())


# ============================================
# Convenience Functions
# ============================================

def get_logger(name: str) -> logging.Logger:
    """
    Get a child logger of "unifex" for a module.

    Args:
        name: Name for the logger (typically __name__)

    Returns:
        logging.Logger: Logger named "unifex.<name>"

    Example:
        # In exchanges/binance/api_client.py:
        logger = get_logger(__name__)  # "unifex.exchanges.binance.api_client"
    """
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def set_log_level(level: str) -> None:
    """
    Change the log level at runtime.

    Args:
        level: New log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    resolved = getattr(logging, level.upper(), logging.INFO)
    logger.setLevel(resolved)


# ============================================
# Log Helper Functions
# ============================================

def log_api_request(
    exchange: str,
    method: str,
    url: str,
    params: Optional[Dict[str, Any]] = None
) -> None:
    """
    Log an outgoing HTTP request at debug level.

    Args:
        exchange: Exchange name (e.g., "binance")
        method: HTTP verb
        url: Absolute URL without query string
        params: Query parameters (optional, never contains signatures)

    Example:
        >>> log_api_request("binance", "GET", "https://fapi.binance.com/fapi/v1/klines", {"symbol": "BTCUSDT"})
        [DEBUG] unifex: API Request: binance GET https://fapi.binance.com/fapi/v1/klines | Params: {'symbol': 'BTCUSDT'}
    """
    if params:
        logger.debug(f"API Request: {exchange} {method} {url} | Params: {params}")
    else:
        logger.debug(f"API Request: {exchange} {method} {url}")


def log_api_response(
    exchange: str,
    url: str,
    status: int,
    response_time: Optional[float] = None
) -> None:
    """
    Log an HTTP response status and timing at debug level.

    Args:
        exchange: Exchange name
        url: Absolute URL
        status: HTTP status code
        response_time: Response time in seconds (optional)
    """
    time_str = f" | Time: {response_time:.3f}s" if response_time is not None else ""
    logger.debug(f"API Response: {exchange} {url} | Status: {status}{time_str}")


def log_websocket_event(
    exchange: str,
    event: str,
    topic: Optional[str] = None,
    details: Optional[str] = None
) -> None:
    """
    Log a WebSocket lifecycle event.

    Events named "error" are logged at ERROR, everything else at INFO.

    Args:
        exchange: Exchange name or connection URL
        event: Event type (e.g., "connected", "reconnecting", "closed", "error")
        topic: Subscription topic (optional)
        details: Additional details (optional)

    Example:
        >>> log_websocket_event("bybit", "connected", details="generation=True")
        [INFO] unifex: WebSocket: bybit connected | generation=True
    """
    topic_str = f" | Topic: {topic}" if topic else ""
    details_str = f" | {details}" if details else ""

    level = logging.ERROR if event == "error" else logging.INFO
    logger.log(level, f"WebSocket: {exchange} {event}{topic_str}{details_str}")


logger.debug("Logging system initialized")
