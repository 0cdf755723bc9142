"""
Unit Tests for Configuration Module

These tests verify that the configuration system works correctly:
- Every setting has a working default
- Environment variables override defaults
- Credentials are looked up per exchange and stay redacted
- Validation catches out-of-range values

Run with:
    pytest tests/unit/test_config.py -v
"""

import pytest

from core.config import Settings, settings, validate_configuration


class TestDefaults:
    """Test the values used when nothing is configured"""

    def test_http_defaults(self):
        """Verify dispatch defaults are usable without a .env file"""
        fresh = Settings(_env_file=None)

        assert fresh.max_simultaneous_requests == 100
        assert fresh.request_timeout == 3.0
        assert fresh.request_max_tries == 1
        assert fresh.testnet_cache_enabled is True

    def test_websocket_defaults(self):
        fresh = Settings(_env_file=None)

        assert fresh.ws_connect_cooldown == 3.0
        assert fresh.ws_refresh_after == 12 * 60 * 60
        assert fresh.ws_message_timeout == 16 * 60
        assert fresh.ws_reconnection_wait == 0.3

    def test_kline_close_threshold_default(self):
        assert Settings(_env_file=None).kline_close_threshold == 0.99


class TestEnvironmentVariables:
    """Test that environment variables override defaults"""

    def test_numeric_override(self, monkeypatch):
        monkeypatch.setenv("REQUEST_TIMEOUT", "7.5")
        monkeypatch.setenv("MAX_SIMULTANEOUS_REQUESTS", "4")

        fresh = Settings(_env_file=None)

        assert fresh.request_timeout == 7.5
        assert fresh.max_simultaneous_requests == 4

    def test_zero_ttl_disables_cache(self, monkeypatch):
        monkeypatch.setenv("TESTNET_CACHE_TTL", "0")
        assert Settings(_env_file=None).testnet_cache_enabled is False


class TestCredentials:
    """Test credentials_for()"""

    def test_configured_exchange(self, monkeypatch):
        monkeypatch.setenv("BYBIT_API_KEY", "key")
        monkeypatch.setenv("BYBIT_SECRET_KEY", "secret")

        assert Settings(_env_file=None).credentials_for("bybit") == ("key", "secret")

    def test_half_configured_exchange(self, monkeypatch):
        """Verify a key without its secret counts as not configured"""
        monkeypatch.setenv("MEXC_API_KEY", "key")
        monkeypatch.delenv("MEXC_SECRET_KEY", raising=False)

        assert Settings(_env_file=None).credentials_for("mexc") is None

    def test_unknown_exchange(self):
        assert Settings(_env_file=None).credentials_for("nowhere") is None

    def test_secrets_are_redacted(self, monkeypatch):
        monkeypatch.setenv("BINANCE_SECRET_KEY", "very-secret")
        fresh = Settings(_env_file=None)

        assert "very-secret" not in repr(fresh)
        assert fresh.binance_secret_key.get_secret_value() == "very-secret"


class TestConfigurationValidation:
    """Test configuration validation function"""

    def test_validate_configuration_succeeds(self):
        """Verify validation passes with default configuration"""
        try:
            validate_configuration()
        except ValueError as e:
            pytest.fail(f"Configuration validation failed: {e}")

    @pytest.mark.parametrize("field,value,message", [
        ("log_level", "LOUD", "LOG_LEVEL"),
        ("max_simultaneous_requests", 0, "MAX_SIMULTANEOUS_REQUESTS"),
        ("request_max_tries", 0, "REQUEST_MAX_TRIES"),
        ("request_timeout", 0, "REQUEST_TIMEOUT"),
        ("kline_close_threshold", 1.5, "KLINE_CLOSE_THRESHOLD"),
    ])
    def test_out_of_range_values(self, monkeypatch, field, value, message):
        monkeypatch.setattr(settings, field, value)

        with pytest.raises(ValueError, match=message):
            validate_configuration()
