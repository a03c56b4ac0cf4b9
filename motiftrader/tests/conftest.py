"""
Shared test fixtures for MotifTrader tests.

This module provides common fixtures used across multiple test files
to reduce code duplication and ensure consistent test data.
"""

import random
import tempfile
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import numpy as np
import pytest

from motiftrader.src.data.indicator_library import IndicatorValues
from motiftrader.src.data.market_data import MarketData
from motiftrader.src.execution.exchange_client import OrderResult


# =============================================================================
# Configuration Fixtures
# =============================================================================

@pytest.fixture
def temp_config_dir():
    """Create a temporary config directory with standard test config files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir)

        (config_path / "risk.yaml").write_text("""
risk:
  initial_balance: 10000
  limits:
    max_position_risk: 0.01
    max_total_risk: 0.10
    max_position_value_pct: 0.02
    max_position_notional_pct: 0.10
    quantity_decimals: 2
  stops:
    atr_multiplier: 1.5
    trailing_atr_multiplier: 1.2
    min_risk_reward: 1.5
    default_risk_reward: 2.5
""")

        (config_path / "strategy.yaml").write_text("""
strategy:
  max_history_length: 200
  candle_interval: 15m
  motif_weights:
    trend: 0.35
    momentum: 0.25
    volatility: 0.20
    sentiment: 0.20
  thresholds:
    strong_long: 0.58
    strong_short: 0.42
""")

        (config_path / "learning.yaml").write_text("""
learning:
  seed: 42
  q_learning:
    learning_rate: 0.1
    discount_factor: 0.95
    epsilon: 0.1
""")

        (config_path / "exchange.yaml").write_text("""
trading_mode: demo
exchange:
  id: binance
  api_key: ${TEST_BINANCE_KEY:-}
  timeout_seconds: 10
demo:
  base_prices:
    ETH/USDT: 3200
""")

        (config_path / "bot.yaml").write_text("""
single:
  symbol: ETH/USDT
  check_interval_seconds: 60
multi:
  check_interval_seconds: 60
  max_concurrent_positions: 5
""")

        (config_path / "rotation.yaml").write_text("""
markets:
  - BTC/USDT
  - ETH/USDT
rotation:
  max_allocation: 0.2
""")

        yield config_path


# =============================================================================
# Random Source Fixtures
# =============================================================================

@pytest.fixture
def rng() -> random.Random:
    """Seeded random source."""
    return random.Random(42)


@pytest.fixture
def np_rng() -> np.random.Generator:
    """Seeded numpy generator."""
    return np.random.default_rng(42)


# =============================================================================
# Market Data Fixtures
# =============================================================================

@pytest.fixture
def bullish_indicators() -> IndicatorValues:
    """Indicators for a clean uptrend at price 100."""
    return IndicatorValues(
        ema20=99.0,
        ema50=97.0,
        macd_line=1.2,
        macd_signal=0.8,
        macd_histogram=0.4,
        rsi14=65.0,
        bollinger_upper=104.0,
        bollinger_middle=100.0,
        bollinger_lower=96.0,
        atr14=2.0,
        stochastic_k=80.0,
        stochastic_d=75.0,
    )


@pytest.fixture
def bearish_indicators() -> IndicatorValues:
    """Indicators for a clean downtrend at price 100."""
    return IndicatorValues(
        ema20=101.0,
        ema50=103.0,
        macd_line=-1.2,
        macd_signal=-0.8,
        macd_histogram=-0.4,
        rsi14=25.0,
        bollinger_upper=104.0,
        bollinger_middle=100.0,
        bollinger_lower=96.0,
        atr14=2.0,
        stochastic_k=15.0,
        stochastic_d=20.0,
    )


def make_market_data(
    symbol: str = "ETH/USDT",
    price: float = 100.0,
    indicators: IndicatorValues | None = None,
    closes: list | None = None,
) -> MarketData:
    """Build a MarketData snapshot ending at price."""
    closes = closes or [price * (1 + (i - 30) * 0.001) for i in range(30)] + [price]
    return MarketData(
        symbol=symbol,
        current_price=price,
        closes=closes,
        highs=[c * 1.01 for c in closes],
        lows=[c * 0.99 for c in closes],
        volumes=[100.0] * len(closes),
        indicators=indicators or IndicatorValues(),
    )


@pytest.fixture
def market_data_factory():
    """Factory for MarketData snapshots."""
    return make_market_data


# =============================================================================
# Exchange Fixtures
# =============================================================================

def make_order(symbol: str = "ETH/USDT", side: str = "buy", quantity: float = 1.0) -> OrderResult:
    """Filled order result."""
    return OrderResult(
        order_id="order-1",
        symbol=symbol,
        side=side,
        quantity=quantity,
        price=100.0,
        status="filled",
        simulated=True,
    )


@pytest.fixture
def mock_exchange_client():
    """Exchange client whose orders always fill."""
    client = MagicMock()

    async def place_order(symbol, side, quantity, price=None):
        return make_order(symbol, side, quantity)

    client.place_order = AsyncMock(side_effect=place_order)
    client.fetch_price = AsyncMock(return_value=100.0)
    client.fetch_candles = AsyncMock(return_value=[])
    client.fetch_ticker_stats = AsyncMock()
    client.close = AsyncMock()
    client.is_demo = True
    return client


@pytest.fixture
def mock_trade_store():
    """Trade store recording inserts."""
    store = MagicMock()
    store.insert_trade = AsyncMock()
    store.get_trades = AsyncMock(return_value=[])
    return store
