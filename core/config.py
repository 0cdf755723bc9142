"""
Configuration Management Module

This module loads the defaults used by the client from environment variables
(.env file): request timeouts and retry policy, the concurrency cap, WebSocket
connection timings and optional per-exchange credentials.

Uses Pydantic Settings for automatic validation and type conversion.

Key Features:
- Loads configuration from .env file
- Every value has a working default, so no .env is required for public endpoints
- Credentials are kept as pydantic.SecretStr and never rendered in logs
- credentials_for() gives Exchange.from_settings() a uniform lookup

Usage:
    from core.config import settings

    print(settings.request_timeout)
    creds = settings.credentials_for("binance")  # None when not configured
"""

from typing import Optional, Tuple
from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Client Settings

    Values are automatically loaded from environment variables or .env file.

    Attributes:
        environment: Current environment (development, production)
        log_level: Logging level for the "unifex" logger
        max_simultaneous_requests: Capacity of the shared request semaphore
        request_timeout: Per-attempt HTTP timeout in seconds
        request_max_tries: Attempts per request (retries only on transport timeouts)
        retry_cooldown: Sleep between attempts in seconds
        testnet_cache_ttl: Lifetime of cached testnet responses in seconds (0 disables)
        test_calls_dir: Directory holding cached testnet responses
        ws_connect_cooldown: Minimum gap between WebSocket connection attempts
        ws_refresh_after: Forced WebSocket reconnect interval
        ws_message_timeout: Dead-connection detector for WebSocket streams
        ws_reconnection_wait: Overlap window while switching sockets
        kline_close_threshold: Fraction of a timeframe after which a Binance kline counts as closed
    """

    # ============================================
    # Application Configuration
    # ============================================

    environment: str = Field(
        default="development",
        description="Application environment (development, production)"
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    # ============================================
    # HTTP Dispatch
    # ============================================

    max_simultaneous_requests: int = Field(
        default=100,
        description="Maximum in-flight HTTP requests per client"
    )

    request_timeout: float = Field(
        default=3.0,
        description="HTTP request timeout in seconds"
    )

    request_max_tries: int = Field(
        default=1,
        description="Attempts per HTTP request"
    )

    retry_cooldown: float = Field(
        default=0.5,
        description="Delay between attempts after a transport timeout (seconds)"
    )

    testnet_cache_ttl: int = Field(
        default=30 * 24 * 60 * 60,
        description="Lifetime of cached testnet responses in seconds (0 = no cache)"
    )

    test_calls_dir: str = Field(
        default=".test_calls",
        description="Directory where cached testnet responses are written"
    )

    # ============================================
    # WebSocket Connections
    # ============================================

    ws_connect_cooldown: float = Field(
        default=3.0,
        description="Minimum gap between WebSocket connection attempts (seconds)"
    )

    ws_refresh_after: float = Field(
        default=12 * 60 * 60,
        description="Forced reconnect interval (seconds)"
    )

    ws_message_timeout: float = Field(
        default=16 * 60,
        description="Reconnect when no frame arrives within this many seconds"
    )

    ws_reconnection_wait: float = Field(
        default=0.3,
        description="Overlap window between old and new socket (seconds)"
    )

    # ============================================
    # Market Data
    # ============================================

    kline_close_threshold: float = Field(
        default=0.99,
        description="Binance klines younger than this fraction of their timeframe are dropped"
    )

    # ============================================
    # Exchange Credentials (all optional)
    # ============================================

    binance_api_key: SecretStr = Field(default=SecretStr(""))
    binance_secret_key: SecretStr = Field(default=SecretStr(""))

    bybit_api_key: SecretStr = Field(default=SecretStr(""))
    bybit_secret_key: SecretStr = Field(default=SecretStr(""))

    kucoin_api_key: SecretStr = Field(default=SecretStr(""))
    kucoin_secret_key: SecretStr = Field(default=SecretStr(""))
    kucoin_passphrase: SecretStr = Field(default=SecretStr(""))

    mexc_api_key: SecretStr = Field(default=SecretStr(""))
    mexc_secret_key: SecretStr = Field(default=SecretStr(""))

    bitflyer_api_key: SecretStr = Field(default=SecretStr(""))
    bitflyer_secret_key: SecretStr = Field(default=SecretStr(""))

    coincheck_api_key: SecretStr = Field(default=SecretStr(""))
    coincheck_secret_key: SecretStr = Field(default=SecretStr(""))

    bitmex_api_key: SecretStr = Field(default=SecretStr(""))
    bitmex_secret_key: SecretStr = Field(default=SecretStr(""))

    # ============================================
    # Pydantic Settings Configuration
    # ============================================

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=False
    )

    # ============================================
    # Helpers
    # ============================================

    @property
    def testnet_cache_enabled(self) -> bool:
        """True when cached testnet responses should be read and written."""
        return self.testnet_cache_ttl > 0

    def credentials_for(self, exchange: str) -> Optional[Tuple[str, str]]:
        """
        Look up the (pubkey, secret) pair configured for an exchange.

        Args:
            exchange: Lowercase exchange name, e.g. "binance"

        Returns:
            (pubkey, secret) when both are set, otherwise None
        """
        key = getattr(self, f"{exchange}_api_key", None)
        secret = getattr(self, f"{exchange}_secret_key", None)
        if key is None or secret is None:
            return None

        key_value = key.get_secret_value()
        secret_value = secret.get_secret_value()
        if not key_value or not secret_value:
            return None
        return key_value, secret_value


# ============================================
# Global Settings Instance
# ============================================

settings = Settings()


# ============================================
# Configuration Validation
# ============================================

def validate_configuration() -> None:
    """
    Validate client settings.

    Raises:
        ValueError: If a setting is out of its valid range
    """
    # Import here: logging.py imports config.py
    from core.logging import logger

    valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    if settings.log_level.upper() not in valid_log_levels:
        raise ValueError(
            f"Invalid LOG_LEVEL: '{settings.log_level}'. "
            f"Must be one of: {', '.join(valid_log_levels)}"
        )

    if settings.max_simultaneous_requests < 1:
        raise ValueError(
            f"MAX_SIMULTANEOUS_REQUESTS must be at least 1, got {settings.max_simultaneous_requests}"
        )

    if settings.request_max_tries < 1:
        raise ValueError(f"REQUEST_MAX_TRIES must be at least 1, got {settings.request_max_tries}")

    if settings.request_timeout <= 0:
        raise ValueError(f"REQUEST_TIMEOUT must be positive, got {settings.request_timeout}")

    if not (0.0 < settings.kline_close_threshold <= 1.0):
        raise ValueError(
            f"KLINE_CLOSE_THRESHOLD must be in (0, 1], got {settings.kline_close_threshold}"
        )

    logger.info("Configuration validated successfully")
    logger.info(f"Max simultaneous requests: {settings.max_simultaneous_requests}")
    logger.info(f"Request timeout: {settings.request_timeout}s, tries: {settings.request_max_tries}")
    logger.info(f"Log level: {settings.log_level.upper()}")
