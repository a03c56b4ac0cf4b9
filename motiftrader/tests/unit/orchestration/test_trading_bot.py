"""
Unit tests for the single-symbol TradingBot.

Tests validate:
- Cycle flow: sentiment -> decision -> supervision -> gate -> weights
- Pending order confirm, abort on failure and on cancellation
- Reversal closes with a closing order and persistence
- Close-on-stop through the full lifecycle
- Settings validation and status reports
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from motiftrader.src.execution.exchange_client import ExchangeError
from motiftrader.src.execution.market_intelligence import MarketIntelligence
from motiftrader.src.learning.engine import AdaptiveLearningEngine
from motiftrader.src.motifs.ensemble import EnsembleResult
from motiftrader.src.motifs.motifs import MotifType
from motiftrader.src.orchestration.trading_bot import TradingBot
from motiftrader.src.risk.risk_manager import PositionSide, RiskManager
from motiftrader.src.strategy.strategy_engine import (
    StrategyEngine,
    StrategyExecution,
    TradeAction,
    TradeDecision,
)


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def snapshot(market_data_factory, bullish_indicators):
    return market_data_factory(indicators=bullish_indicators)


@pytest.fixture
def decision(snapshot) -> TradeDecision:
    return TradeDecision(
        symbol="ETH/USDT",
        signal=0.7,
        confidence=0.8,
        action=TradeAction.LONG,
        reasoning="test",
        dominant_motif=MotifType.TREND,
        market_data=snapshot,
    )


@pytest.fixture
def execution() -> StrategyExecution:
    return StrategyExecution(
        decision_id="decision-1",
        symbol="ETH/USDT",
        side=PositionSide.LONG,
        entry_price=100.0,
        quantity=2.0,
        stop_loss=97.0,
        take_profit=107.5,
        position_id="position-1",
    )


@pytest.fixture
def mock_engine(decision, execution):
    """Strategy engine double returning a LONG decision."""
    engine = MagicMock()
    engine.candle_interval = '15m'
    engine.analyze_and_decide = AsyncMock(return_value=decision)
    engine.supervise_positions.return_value = []
    engine.should_execute.return_value = True
    engine.execute_decision.return_value = execution
    engine.get_open_positions.return_value = []
    return engine


@pytest.fixture
def bot(mock_engine, mock_exchange_client) -> TradingBot:
    return TradingBot(mock_engine, mock_exchange_client, {'symbol': 'ETH/USDT'})


@pytest.fixture
def real_engine(snapshot):
    """Strategy engine with real risk and learning and a LONG-voting ensemble."""
    fetcher = MagicMock()
    fetcher.fetch_market_data = AsyncMock(return_value=snapshot)
    fetcher.get_cached_data = MagicMock(return_value=None)

    ensemble = MagicMock()
    ensemble.analyze = MagicMock(return_value=EnsembleResult(signal=0.7, confidence=0.8))
    ensemble.dominant_motif = MagicMock(return_value=MotifType.TREND)
    ensemble.update_weights = MagicMock(return_value={m: 0.25 for m in MotifType})

    return StrategyEngine(
        fetcher,
        RiskManager(initial_balance=10000),
        ensemble,
        AdaptiveLearningEngine({'seed': 1}),
    )


# =============================================================================
# Cycle Tests
# =============================================================================

class TestCycle:
    """Test the cycle with an engine double."""

    @pytest.mark.asyncio
    async def test_opens_position(self, bot, mock_engine, mock_exchange_client, execution, snapshot, decision):
        result = await bot.run_cycle()

        assert result is decision
        mock_engine.execute_decision.assert_called_once_with(decision, snapshot, 1.0)
        mock_exchange_client.place_order.assert_awaited_once_with("ETH/USDT", "buy", 2.0)
        mock_engine.confirm_execution.assert_called_once()
        mock_engine.update_motif_weights.assert_called_once()
        assert bot.get_status()['stats']['trades'] == 1
        assert bot.get_status()['stats']['decisions'] == 1

    @pytest.mark.asyncio
    async def test_no_decision(self, bot, mock_engine):
        mock_engine.analyze_and_decide.return_value = None

        assert await bot.run_cycle() is None
        mock_engine.supervise_positions.assert_not_called()
        assert bot.get_status()['stats']['decisions'] == 0

    @pytest.mark.asyncio
    async def test_gate_closed(self, bot, mock_engine, mock_exchange_client):
        mock_engine.should_execute.return_value = False

        await bot.run_cycle()

        mock_engine.execute_decision.assert_not_called()
        mock_exchange_client.place_order.assert_not_awaited()
        mock_engine.update_motif_weights.assert_called_once()

    @pytest.mark.asyncio
    async def test_sentiment_feeds_engine(self, mock_engine, mock_exchange_client, decision, snapshot):
        intelligence = MagicMock()
        intelligence.get_market_intelligence = AsyncMock(
            return_value=MarketIntelligence(fear_greed_index=10.0, btc_dominance=50.0)
        )
        bot = TradingBot(mock_engine, mock_exchange_client, market_intelligence=intelligence)

        await bot.run_cycle()

        symbol, score = mock_engine.set_external_sentiment.call_args.args
        assert symbol == "ETH/USDT"
        assert score == pytest.approx(0.5 + (-0.8 * 0.6 * 0.3) * 0.5)
        mock_engine.execute_decision.assert_called_once_with(decision, snapshot, 1.2)
        assert bot.last_sentiment.fear_greed_index == 10.0

    @pytest.mark.asyncio
    async def test_missing_intelligence_keeps_neutral(self, mock_engine, mock_exchange_client):
        intelligence = MagicMock()
        intelligence.get_market_intelligence = AsyncMock(return_value=None)
        bot = TradingBot(mock_engine, mock_exchange_client, market_intelligence=intelligence)

        await bot.run_cycle()

        mock_engine.set_external_sentiment.assert_not_called()
        assert bot.last_sentiment.risk_adjustment == 1.0


# =============================================================================
# Order Tests
# =============================================================================

class TestEntryOrders:
    """Test confirm and rollback of pending executions."""

    @pytest.mark.asyncio
    async def test_failed_order_aborts(self, bot, mock_engine, mock_exchange_client, execution):
        mock_exchange_client.place_order.side_effect = None
        mock_exchange_client.place_order.return_value = None

        assert await bot._place_entry_order(execution) is False
        mock_engine.abort_execution.assert_called_once_with(execution, "order placement failed")
        assert bot._trades_count == 0

    @pytest.mark.asyncio
    async def test_order_error_aborts(self, bot, mock_engine, mock_exchange_client, execution):
        mock_exchange_client.place_order.side_effect = ExchangeError("rejected")

        assert await bot._place_entry_order(execution) is False
        mock_engine.abort_execution.assert_called_once()
        mock_engine.confirm_execution.assert_not_called()

    @pytest.mark.asyncio
    async def test_cancellation_aborts_and_propagates(self, bot, mock_engine, mock_exchange_client, execution):
        mock_exchange_client.place_order.side_effect = asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await bot._place_entry_order(execution)
        mock_engine.abort_execution.assert_called_once()


# =============================================================================
# Integration Tests
# =============================================================================

class TestWithStrategyEngine:
    """Test the bot against a real strategy engine."""

    @pytest.mark.asyncio
    async def test_cycle_opens_confirmed_position(self, real_engine, mock_exchange_client):
        bot = TradingBot(real_engine, mock_exchange_client)

        await bot.run_cycle()

        positions = real_engine.get_open_positions()
        assert len(positions) == 1
        assert positions[0].is_open
        assert positions[0].order_id == "order-1"
        mock_exchange_client.place_order.assert_awaited_once_with("ETH/USDT", "buy", 2.0)

    @pytest.mark.asyncio
    async def test_rejected_order_leaves_no_position(self, real_engine, mock_exchange_client):
        mock_exchange_client.place_order.side_effect = None
        mock_exchange_client.place_order.return_value = None
        bot = TradingBot(real_engine, mock_exchange_client)

        await bot.run_cycle()

        assert real_engine.risk_manager.get_open_positions(include_pending=True) == []
        assert real_engine.risk_manager.get_account_balance() == 10000

    @pytest.mark.asyncio
    async def test_reversal_closes_and_persists(self, real_engine, mock_exchange_client, mock_trade_store):
        short = real_engine.risk_manager.open_position("ETH/USDT", 100.0, 1.0, 102.0, 95.0, 0.3)
        bot = TradingBot(real_engine, mock_exchange_client, trade_store=mock_trade_store)

        decision = await bot.run_cycle()
        await asyncio.gather(*list(bot._pending_writes))

        assert decision.action == TradeAction.CLOSE_POSITION
        assert real_engine.risk_manager.get_position(short.id) is None
        mock_exchange_client.place_order.assert_awaited_once_with("ETH/USDT", "buy", 1.0)
        record = mock_trade_store.insert_trade.call_args.args[0]
        assert record['reason'] == "reversal"
        assert real_engine.learning_engine.outcomes_recorded == 1

    @pytest.mark.asyncio
    async def test_stop_closes_positions(self, real_engine, mock_exchange_client, mock_trade_store):
        bot = TradingBot(
            real_engine, mock_exchange_client, {'check_interval_seconds': 60}, trade_store=mock_trade_store
        )

        await bot.start()
        await asyncio.sleep(0.05)
        await bot.stop()

        assert real_engine.get_open_positions() == []
        sides = [c.args[1] for c in mock_exchange_client.place_order.await_args_list]
        assert sides == ["buy", "sell"]
        record = mock_trade_store.insert_trade.call_args.args[0]
        assert record['reason'] == "bot_stop"

    @pytest.mark.asyncio
    async def test_close_without_price_leaves_position(self, real_engine, mock_exchange_client):
        real_engine.risk_manager.open_position("ETH/USDT", 100.0, 1.0, 98.0, 105.0, 0.7)
        mock_exchange_client.fetch_price.side_effect = ExchangeError("down")
        bot = TradingBot(real_engine, mock_exchange_client)

        assert await bot.close_all_positions() == []
        assert len(real_engine.get_open_positions()) == 1


# =============================================================================
# Settings Tests
# =============================================================================

class TestSettings:
    """Test settings and reports."""

    @pytest.mark.parametrize("symbol", ["", "ETHUSDT"])
    def test_invalid_symbol(self, bot, symbol):
        with pytest.raises(ValueError):
            bot.set_symbol(symbol)
        assert bot.symbol == "ETH/USDT"

    def test_interval(self, bot, mock_engine):
        with pytest.raises(ValueError):
            bot.set_interval("7m")

        bot.set_interval("1h")
        assert mock_engine.candle_interval == "1h"

    def test_status(self, bot):
        status = bot.get_status()

        assert status['is_running'] is False
        assert status['symbol'] == "ETH/USDT"
        assert status['last_check_time'] is None
        assert set(status['stats']) == {'cycles', 'decisions', 'trades', 'closed_trades', 'win_rate'}

    def test_statistics_use_string_keys(self, real_engine, mock_exchange_client):
        bot = TradingBot(real_engine, mock_exchange_client)
        real_engine.ensemble.get_weights = MagicMock(return_value={MotifType.TREND: 1.0})

        stats = bot.get_statistics()

        assert stats['motif_weights'] == {'trend': 1.0}
        assert stats['account']['balance'] == 10000
