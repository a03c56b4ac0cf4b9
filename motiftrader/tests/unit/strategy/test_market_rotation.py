"""
Unit tests for the Market Rotation Engine.

Tests validate:
- Liquidity scoring and volatility percentiles
- Failed symbols keep their previous entry
- Capped, normalised allocations
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from motiftrader.src.execution.exchange_client import ExchangeError, TickerStats
from motiftrader.src.strategy.market_rotation import MarketRotationEngine


# =============================================================================
# Test Fixtures
# =============================================================================

STATS = {
    "BTC/USDT": TickerStats("BTC/USDT", 100.0, 102.0, 98.0, 2e9, 1.5),
    "ETH/USDT": TickerStats("ETH/USDT", 100.0, 105.0, 95.0, 5e8, -2.0),
    "SOL/USDT": TickerStats("SOL/USDT", 10.0, 10.1, 9.9, 1e8, 0.5),
}


@pytest.fixture
def exchange_client():
    client = MagicMock()

    async def fetch_ticker_stats(symbol):
        return STATS[symbol]

    client.fetch_ticker_stats = AsyncMock(side_effect=fetch_ticker_stats)
    return client


@pytest.fixture
def rotation(exchange_client) -> MarketRotationEngine:
    return MarketRotationEngine(exchange_client, list(STATS), {'max_allocation': 0.2})


# =============================================================================
# Fetch Tests
# =============================================================================

class TestFetchMarketData:
    """Test refreshing rotation statistics."""

    @pytest.mark.asyncio
    async def test_fetch_all(self, rotation):
        refreshed = await rotation.fetch_market_data()

        assert [d.symbol for d in refreshed] == list(STATS)
        btc = rotation.get_market_data("BTC/USDT")
        assert btc.volatility == pytest.approx(0.04)
        assert btc.liquidity_score == pytest.approx(0.88)
        assert btc.last_price == 100.0
        assert btc.price_change_24h == 1.5

    @pytest.mark.asyncio
    async def test_percentiles(self, rotation):
        await rotation.fetch_market_data()

        assert rotation.get_market_data("SOL/USDT").volatility_percentile == pytest.approx(0.0)
        assert rotation.get_market_data("BTC/USDT").volatility_percentile == pytest.approx(100 / 3)
        assert rotation.get_market_data("ETH/USDT").volatility_percentile == pytest.approx(200 / 3)

    @pytest.mark.asyncio
    async def test_failed_symbol_keeps_previous_entry(self, rotation, exchange_client):
        await rotation.fetch_market_data()
        previous = rotation.get_market_data("ETH/USDT")

        async def flaky(symbol):
            if symbol == "ETH/USDT":
                raise ExchangeError("timeout")
            return STATS[symbol]

        exchange_client.fetch_ticker_stats.side_effect = flaky
        refreshed = await rotation.fetch_market_data()

        assert {d.symbol for d in refreshed} == {"BTC/USDT", "SOL/USDT"}
        assert rotation.get_market_data("ETH/USDT") is previous
        assert len(rotation.get_all_market_data()) == 3


# =============================================================================
# Scoring Tests
# =============================================================================

class TestScoring:
    """Test liquidity and percentile helpers."""

    def test_liquidity_bounds(self, rotation):
        assert rotation.calculate_liquidity(5e9, 0.0) == pytest.approx(1.0)
        assert rotation.calculate_liquidity(0.0, 0.2) == pytest.approx(0.0)

    def test_percentile_empty_universe(self):
        assert MarketRotationEngine.get_percentile(0.1, []) == 0.0


# =============================================================================
# Allocation Tests
# =============================================================================

class TestAllocations:
    """Test rebalancing and ranking."""

    def test_empty(self, rotation):
        assert rotation.rebalance_allocations() == []

    @pytest.mark.asyncio
    async def test_allocations_sum_to_one(self, rotation):
        await rotation.fetch_market_data()
        data = rotation.rebalance_allocations()

        assert [d.symbol for d in data] == ["BTC/USDT", "ETH/USDT", "SOL/USDT"]
        assert sum(d.allocation_weight for d in data) == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_rankings(self, rotation):
        await rotation.fetch_market_data()

        assert [d.symbol for d in rotation.get_top_coins(2)] == ["BTC/USDT", "ETH/USDT"]
        assert rotation.get_volatility_ranked_coins()[0].symbol == "ETH/USDT"
