"""
Unit Tests for the Exchange Base Class

These tests verify that:
- Operations a venue does not implement raise MethodNotSupportedError
- Credentials, recv_window and retry settings land in the client defaults
- from_settings() authenticates only when both keys are configured
- The default asset_balance() picks the asset out of balances()

Run with:
    pytest tests/unit/test_exchange_interface.py -v
"""

from typing import Optional

import pytest
from pydantic import SecretStr

from core.config import settings
from core.errors import (
    MethodNotSupportedError,
    MissingPubkeyError,
    MissingSecretError,
    UnsupportedTimeframeError,
)
from core.exchange_interface import Exchange
from core.schemas import (
    AssetBalance,
    Balances,
    ExchangeName,
    Instrument,
    Pair,
    RequestRange,
    Symbol,
    Timeframe,
)
from exchanges.binance.options import BinanceOption, BinanceOptions


class DummyExchange(Exchange):
    """Implements balances() only, on top of the Binance option bag"""

    name = ExchangeName.BINANCE
    option_class = BinanceOption
    capabilities = {**Exchange.capabilities, "balances": True, "asset_balance": True}

    async def balances(self, instrument: Instrument, recv_window: Optional[int] = None) -> Balances:
        return Balances.from_balances([
            AssetBalance(asset="USDT", underlying=10.0, usd=10.0),
            AssetBalance(asset="BTC", underlying=0.5, usd=None),
        ])


@pytest.fixture
def exchange(client):
    return DummyExchange(client)


# ============================================
# Capabilities
# ============================================

class TestCapabilities:
    """Tests for supports() and the unsupported defaults"""

    def test_supports(self, exchange):
        assert exchange.supports("balances") is True
        assert exchange.supports("klines") is False
        assert exchange.supports("teleport") is False

    @pytest.mark.asyncio
    async def test_klines_not_supported(self, exchange, fake_session):
        with pytest.raises(MethodNotSupportedError) as exc:
            await exchange.klines(Symbol.parse("BTC-USDT.P"), Timeframe.parse("1h"), RequestRange(limit=10))

        assert exc.value.exchange == "binance"
        assert exc.value.instrument == "perp"
        assert exc.value.method == "klines"
        assert fake_session.calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("call", [
        lambda ex: ex.price(Symbol.parse("BTC-USDT")),
        lambda ex: ex.prices(None, Instrument.SPOT),
        lambda ex: ex.open_interest(Symbol.parse("BTC-USDT.P"), Timeframe.parse("5m"), RequestRange(limit=1)),
        lambda ex: ex.exchange_info(Instrument.SPOT),
    ])
    async def test_market_data_defaults(self, exchange, call):
        with pytest.raises(MethodNotSupportedError):
            await call(exchange)

    def test_unsupported_message(self, exchange):
        assert str(exchange.unsupported("prices", Instrument.MARGIN)) == (
            "binance does not support prices for instrument margin"
        )
        assert str(exchange.unsupported("prices")) == "binance does not support prices"


class TestFormatTimeframe:
    """Tests for Exchange.format_timeframe"""

    ALLOWED = {Timeframe.parse("1m"): "1min", Timeframe.parse("1h"): "1hour"}

    def test_known_timeframe(self):
        assert Exchange.format_timeframe(Timeframe.parse("60m"), self.ALLOWED) == "1hour"

    def test_unknown_timeframe(self):
        with pytest.raises(UnsupportedTimeframeError) as exc:
            Exchange.format_timeframe(Timeframe.parse("3m"), self.ALLOWED)

        assert exc.value.provided == "3m"
        assert exc.value.allowed == ["1m", "1h"]


# ============================================
# Configuration
# ============================================

class TestConfiguration:
    """Tests for the setters writing into the client defaults"""

    def test_auth(self, exchange):
        assert not exchange.is_authenticated()

        exchange.auth("key", "secret")

        assert exchange.is_authenticated()
        assert exchange.options.pubkey == "key"
        assert exchange.options.secret.get_secret_value() == "secret"
        assert isinstance(exchange.options, BinanceOptions)

    def test_require_auth(self, exchange):
        with pytest.raises(MissingPubkeyError):
            exchange.require_auth()

        exchange.client.update_default_option(BinanceOption.pubkey("key"))
        with pytest.raises(MissingSecretError):
            exchange.require_auth()

        exchange.client.update_default_option(BinanceOption.secret("secret"))
        exchange.require_auth()

    def test_set_recv_window(self, exchange):
        exchange.set_recv_window(2500)
        assert exchange.options.recv_window == 2500

    def test_retry_settings_keep_each_other(self, exchange):
        exchange.set_max_tries(3)
        exchange.set_timeout(9.5)

        config = exchange.options.request_config
        assert config.max_tries == 3
        assert config.timeout == 9.5

    def test_exchanges_sharing_a_client_share_defaults(self, client):
        first = DummyExchange(client)
        second = DummyExchange(client)

        first.auth("key", "secret")

        assert second.is_authenticated()


class TestFromSettings:
    """Tests for Exchange.from_settings"""

    def test_authenticates_from_settings(self, client, monkeypatch, caplog):
        monkeypatch.setattr(settings, "binance_api_key", SecretStr("env-key"))
        monkeypatch.setattr(settings, "binance_secret_key", SecretStr("env-secret"))

        with caplog.at_level("INFO", logger="unifex"):
            exchange = DummyExchange.from_settings(client)

        assert exchange.options.pubkey == "env-key"
        assert "authenticated from settings" in caplog.text
        assert "env-secret" not in caplog.text

    def test_stays_public_without_credentials(self, client, monkeypatch):
        monkeypatch.setattr(settings, "binance_api_key", SecretStr("env-key"))
        monkeypatch.setattr(settings, "binance_secret_key", SecretStr(""))

        exchange = DummyExchange.from_settings(client)

        assert not exchange.is_authenticated()


# ============================================
# Lifecycle and defaults
# ============================================

class TestAssetBalance:
    """Tests for the default asset_balance()"""

    @pytest.mark.asyncio
    async def test_asset_is_picked_case_insensitively(self, exchange):
        balance = await exchange.asset_balance("btc", Instrument.SPOT)
        assert balance.underlying == 0.5

    @pytest.mark.asyncio
    async def test_missing_asset_is_zero(self, exchange):
        balance = await exchange.asset_balance("eth", Instrument.SPOT)
        assert balance == AssetBalance(asset="ETH", underlying=0.0, usd=0.0)

    def test_total_counts_known_values_only(self):
        balances = Balances.from_balances([
            AssetBalance(asset="USDT", underlying=10.0, usd=10.0),
            AssetBalance(asset="XYZ", underlying=3.0, usd=None),
        ])
        assert balances.total_usd == 10.0


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_context_manager_leaves_injected_session_open(self, client, fake_session):
        async with DummyExchange(client) as exchange:
            assert exchange.client is client

        assert fake_session.closed is False


def test_pair_keys_are_hashable():
    """Prices are keyed by Pair, so equal pairs must collide"""
    assert {Pair.parse("btc-usdt"): 1.0}[Pair.parse("BTC/USDT")] == 1.0
