"""
Unit tests for the Strategy Engine.

Tests validate:
- Skipped cycles leave every piece of state unchanged
- Action classification and the execution gate
- Reversal override scoped to the analysed symbol
- Pending execution confirm/abort
- Profit tiers, trailing stops and forced closes
- Learning feedback on full closes only
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from motiftrader.src.data.indicator_library import IndicatorValues
from motiftrader.src.execution.exchange_client import OrderResult
from motiftrader.src.learning.engine import AdaptiveLearningEngine
from motiftrader.src.learning.markov import PriceState
from motiftrader.src.learning.q_learning import QAction
from motiftrader.src.motifs.ensemble import EnsembleResult, MotifEnsemble
from motiftrader.src.motifs.motifs import MotifType
from motiftrader.src.risk.risk_manager import PositionSide, RiskManager
from motiftrader.src.strategy.strategy_engine import (
    ExecutionStatus,
    StrategyEngine,
    TradeAction,
    TradeDecision,
)


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def snapshot(market_data_factory, bullish_indicators):
    """ETH/USDT at 100 with ATR 2 (volatility score 0.4)."""
    return market_data_factory(indicators=bullish_indicators)


@pytest.fixture
def fetcher(snapshot):
    """Market data fetcher returning the snapshot."""
    mock = MagicMock()
    mock.fetch_market_data = AsyncMock(return_value=snapshot)
    mock.get_cached_data = MagicMock(return_value=None)
    return mock


@pytest.fixture
def stub_ensemble():
    """Ensemble with a controllable result."""
    ensemble = MagicMock()
    ensemble.analyze = MagicMock(return_value=EnsembleResult(signal=0.7, confidence=0.8))
    ensemble.dominant_motif = MagicMock(return_value=MotifType.TREND)
    ensemble.get_weights = MagicMock(return_value={m: 0.25 for m in MotifType})
    return ensemble


@pytest.fixture
def learning_engine() -> AdaptiveLearningEngine:
    return AdaptiveLearningEngine(
        {'q_learning': {'learning_rate': 0.1, 'epsilon': 0.0},
         'monte_carlo': {'robustness_scenarios': 50},
         'seed': 7}
    )


@pytest.fixture
def risk_manager() -> RiskManager:
    return RiskManager(initial_balance=10000)


@pytest.fixture
def engine(fetcher, risk_manager, stub_ensemble, learning_engine) -> StrategyEngine:
    return StrategyEngine(fetcher, risk_manager, stub_ensemble, learning_engine)


@pytest.fixture
def long_decision() -> TradeDecision:
    return TradeDecision(
        symbol="ETH/USDT",
        signal=0.7,
        confidence=0.8,
        action=TradeAction.LONG,
        reasoning="test",
        dominant_motif=MotifType.TREND,
    )


@pytest.fixture
def order() -> OrderResult:
    return OrderResult(
        order_id="order-1", symbol="ETH/USDT", side="buy", quantity=2.0,
        price=100.0, status="filled", simulated=True,
    )


@pytest.fixture
def open_long(engine, long_decision, snapshot, order):
    """Confirmed LONG 2 @ 100, stop 97, take-profit 107.5."""
    execution = engine.execute_decision(long_decision, snapshot)
    return engine.confirm_execution(execution, order)


# =============================================================================
# Analysis Tests
# =============================================================================

class TestAnalyzeAndDecide:
    """Test the analysis cycle."""

    @pytest.mark.asyncio
    async def test_long_decision(self, engine, fetcher, snapshot):
        decision = await engine.analyze_and_decide("ETH/USDT")

        assert decision.action == TradeAction.LONG
        assert decision.market_data is snapshot
        assert decision.dominant_motif == MotifType.TREND
        assert "Strong LONG" in decision.reasoning
        fetcher.fetch_market_data.assert_awaited_once_with("ETH/USDT", '15m', 100)
        assert engine.get_price_history("ETH/USDT") == [100.0]
        assert engine.get_recent_decisions() == [decision]

    @pytest.mark.asyncio
    async def test_unavailable_data_changes_nothing(self, fetcher, risk_manager, learning_engine):
        ensemble = MotifEnsemble()
        engine = StrategyEngine(fetcher, risk_manager, ensemble, learning_engine)
        risk_manager.open_position("ETH/USDT", 100.0, 1.0, 98.0, 105.0, 0.7)

        positions_before = [p.to_dict() for p in risk_manager.get_open_positions()]
        weights_before = ensemble.get_weights()
        q_before = learning_engine.q_learning.get_q_values()
        balance_before = risk_manager.get_account_balance()

        fetcher.fetch_market_data.return_value = None
        assert await engine.analyze_and_decide("ETH/USDT") is None

        assert [p.to_dict() for p in risk_manager.get_open_positions()] == positions_before
        assert ensemble.get_weights() == weights_before
        assert learning_engine.q_learning.get_q_values() == q_before
        assert risk_manager.get_account_balance() == balance_before
        assert engine.get_price_history("ETH/USDT") == []
        assert engine.get_recent_decisions() == []

    @pytest.mark.asyncio
    async def test_history_is_bounded(self, fetcher, risk_manager, stub_ensemble, learning_engine):
        engine = StrategyEngine(
            fetcher, risk_manager, stub_ensemble, learning_engine,
            config={'max_history_length': 3},
        )
        for _ in range(5):
            await engine.analyze_and_decide("ETH/USDT")

        assert len(engine.get_price_history("ETH/USDT")) == 3

    @pytest.mark.asyncio
    async def test_analysis_error_returns_none(self, engine, stub_ensemble):
        stub_ensemble.analyze.side_effect = RuntimeError("boom")
        assert await engine.analyze_and_decide("ETH/USDT") is None

    @pytest.mark.asyncio
    async def test_reversal_closes_opposite_position(self, engine, risk_manager):
        short = risk_manager.open_position("ETH/USDT", 100.0, 1.0, 102.0, 95.0, 0.3)

        decision = await engine.analyze_and_decide("ETH/USDT")

        assert decision.action == TradeAction.CLOSE_POSITION
        assert decision.position_id == short.id
        assert decision.reasoning == "Reversal signal: closing SHORT position on LONG signal"

    @pytest.mark.asyncio
    async def test_reversal_scoped_to_symbol(self, engine, risk_manager):
        risk_manager.open_position("BTC/USDT", 100.0, 1.0, 102.0, 95.0, 0.3)

        decision = await engine.analyze_and_decide("ETH/USDT")
        assert decision.action == TradeAction.LONG

    @pytest.mark.asyncio
    async def test_same_side_position_is_not_reversed(self, engine, risk_manager):
        risk_manager.open_position("ETH/USDT", 100.0, 1.0, 98.0, 105.0, 0.7)

        decision = await engine.analyze_and_decide("ETH/USDT")
        assert decision.action == TradeAction.LONG


class TestClassification:
    """Test thresholds and the execution gate."""

    @pytest.mark.parametrize("signal,confidence,expected", [
        (0.6, 0.5, TradeAction.LONG),
        (0.6, 0.3, TradeAction.NEUTRAL),
        (0.58, 0.9, TradeAction.LONG),
        (0.55, 0.1, TradeAction.LONG),
        (0.52, 0.9, TradeAction.NEUTRAL),
        (0.5, 0.9, TradeAction.NEUTRAL),
        (0.45, 0.1, TradeAction.SHORT),
        (0.42, 0.9, TradeAction.SHORT),
        (0.4, 0.5, TradeAction.SHORT),
    ])
    def test_classify_action(self, engine, signal, confidence, expected):
        assert engine.classify_action(signal, confidence) == expected

    @pytest.mark.parametrize("action,signal,confidence,expected", [
        (TradeAction.NEUTRAL, 0.5, 0.9, False),
        (TradeAction.LONG, 0.7, 0.6, False),
        (TradeAction.LONG, 0.55, 0.9, False),
        (TradeAction.LONG, 0.56, 0.9, True),
        (TradeAction.SHORT, 0.45, 0.9, False),
        (TradeAction.SHORT, 0.44, 0.9, True),
        (TradeAction.CLOSE_POSITION, 0.7, 0.7, True),
    ])
    def test_should_execute(self, engine, action, signal, confidence, expected):
        decision = TradeDecision("ETH/USDT", signal, confidence, action, "test")
        assert engine.should_execute(decision) is expected


# =============================================================================
# Execution Tests
# =============================================================================

class TestExecution:
    """Test pending executions."""

    def test_execute_opens_pending(self, engine, long_decision, snapshot, risk_manager):
        execution = engine.execute_decision(long_decision, snapshot)

        assert execution.status == ExecutionStatus.PENDING
        assert execution.side == PositionSide.LONG
        assert execution.order_side == 'buy'
        assert execution.stop_loss == pytest.approx(97.0)
        assert execution.take_profit == pytest.approx(107.5)
        assert execution.quantity == pytest.approx(2.0)
        assert risk_manager.get_position(execution.position_id).is_pending
        assert engine.get_trades() == [execution]

    def test_sentiment_scales_quantity(self, engine, long_decision, snapshot):
        execution = engine.execute_decision(long_decision, snapshot, sentiment_risk_adjustment=0.05)
        assert execution.quantity < 2.0

    def test_neutral_does_nothing(self, engine, snapshot, risk_manager):
        decision = TradeDecision("ETH/USDT", 0.5, 0.9, TradeAction.NEUTRAL, "test")
        assert engine.execute_decision(decision, snapshot) is None
        assert risk_manager.get_open_positions(include_pending=True) == []

    def test_confirm(self, engine, long_decision, snapshot, order, risk_manager):
        execution = engine.execute_decision(long_decision, snapshot)
        position = engine.confirm_execution(execution, order)

        assert position.is_open
        assert execution.status == ExecutionStatus.CONFIRMED
        assert execution.order_id == "order-1"

    def test_abort_rolls_back(self, engine, long_decision, snapshot, risk_manager):
        execution = engine.execute_decision(long_decision, snapshot)

        assert engine.abort_execution(execution, "order rejected") is True
        assert execution.status == ExecutionStatus.ABORTED
        assert risk_manager.get_open_positions(include_pending=True) == []
        assert risk_manager.get_account_balance() == 10000

    def test_reversal_close(self, engine, snapshot, risk_manager, learning_engine):
        short = risk_manager.open_position("ETH/USDT", 100.0, 1.0, 102.0, 95.0, 0.3)
        decision = TradeDecision(
            "ETH/USDT", 0.7, 0.8, TradeAction.CLOSE_POSITION, "reversal", position_id=short.id
        )

        assert engine.execute_decision(decision, snapshot) is None
        assert risk_manager.get_position(short.id) is None
        assert risk_manager.get_trade_history()[-1].reason == "reversal"
        assert learning_engine.outcomes_recorded == 1


# =============================================================================
# Outcome Tests
# =============================================================================

class TestOutcomes:
    """Test closes and learning feedback."""

    def test_full_close_feeds_learning(self, engine, open_long, learning_engine):
        result = engine.record_trade_outcome(open_long.id, 103.0)

        assert result.fully_closed
        assert result.pnl == pytest.approx(6.0)
        assert learning_engine.outcomes_recorded == 1
        assert learning_engine.bayesian.estimate_success_rate(MotifType.TREND) == pytest.approx(2 / 3)
        assert learning_engine.q_learning.get_q_value(
            PriceState.UPTREND, QAction.LONG
        ) == pytest.approx(0.3)

    def test_partial_close_does_not_feed_learning(self, engine, open_long, learning_engine):
        result = engine.record_trade_outcome(open_long.id, 103.0, quantity=1.0)

        assert not result.fully_closed
        assert learning_engine.outcomes_recorded == 0

    def test_losing_close_is_failure(self, engine, open_long, learning_engine):
        engine.record_trade_outcome(open_long.id, 98.0, motif_type=MotifType.MOMENTUM)
        assert learning_engine.bayesian.estimate_success_rate(MotifType.MOMENTUM) == pytest.approx(1 / 3)

    def test_unknown_position(self, engine):
        assert engine.record_trade_outcome("missing", 100.0) is None

    def test_motif_weights_untouched_without_outcomes(self, engine, stub_ensemble):
        engine.update_motif_weights()
        stub_ensemble.update_weights.assert_not_called()

    def test_motif_weights_follow_outcomes(self, fetcher, risk_manager, learning_engine,
                                           long_decision, snapshot, order):
        ensemble = MotifEnsemble()
        engine = StrategyEngine(fetcher, risk_manager, ensemble, learning_engine)
        execution = engine.execute_decision(long_decision, snapshot)
        engine.confirm_execution(execution, order)
        engine.record_trade_outcome(execution.position_id, 103.0)

        weights = engine.update_motif_weights()

        assert sum(weights.values()) == pytest.approx(1.0)
        assert weights[MotifType.TREND] == max(weights.values())


# =============================================================================
# Supervision Tests
# =============================================================================

class TestSupervision:
    """Test profit tiers, trailing and forced closes."""

    def test_partial_tier_then_trailing(self, engine, open_long, market_data_factory, bullish_indicators):
        results = engine.supervise_positions(
            "ETH/USDT", market_data_factory(price=100.6, indicators=bullish_indicators)
        )

        assert len(results) == 1
        assert results[0].closed_quantity == pytest.approx(1.0)
        assert results[0].reason == "profit_target_0.5%"
        assert open_long.quantity == pytest.approx(1.0)
        assert open_long.stop_loss == pytest.approx(98.2)

    def test_full_tier_closes(self, engine, open_long, market_data_factory,
                              bullish_indicators, learning_engine):
        results = engine.supervise_positions(
            "ETH/USDT", market_data_factory(price=101.5, indicators=bullish_indicators)
        )

        assert results[0].fully_closed
        assert results[0].reason == "profit_target_1%"
        assert learning_engine.outcomes_recorded == 1

    def test_partial_tier_below_lot_size_closes_all(self, engine, risk_manager, market_data_factory,
                                                    bullish_indicators, learning_engine):
        position = risk_manager.open_position("ETH/USDT", 100.0, 0.01, 97.0, 107.5, 0.7)

        results = engine.supervise_positions(
            "ETH/USDT", market_data_factory(price=100.6, indicators=bullish_indicators)
        )

        assert results[0].reason == "profit_target_0.5%"
        assert results[0].fully_closed
        assert results[0].closed_quantity == pytest.approx(0.01)
        assert risk_manager.get_position(position.id) is None
        assert learning_engine.outcomes_recorded == 1

    def test_stop_hit(self, engine, open_long, market_data_factory,
                      bullish_indicators, learning_engine):
        results = engine.supervise_positions(
            "ETH/USDT", market_data_factory(price=96.0, indicators=bullish_indicators)
        )

        assert results[0].reason == "stop_loss"
        assert results[0].pnl < 0
        assert learning_engine.outcomes_recorded == 1

    def test_other_symbol_untouched(self, engine, open_long, market_data_factory, bullish_indicators):
        results = engine.supervise_positions(
            "BTC/USDT", market_data_factory(symbol="BTC/USDT", price=50.0, indicators=bullish_indicators)
        )
        assert results == []
        assert open_long.is_open

    def test_refresh_dynamic_stops_tightens_only(self, engine, open_long, market_data_factory):
        tight = IndicatorValues(atr14=1.0, bollinger_upper=104.0, bollinger_lower=96.0)
        engine.refresh_dynamic_stops({"ETH/USDT": market_data_factory(indicators=tight)})
        assert open_long.stop_loss == pytest.approx(98.5)

        wide = IndicatorValues(atr14=4.0, bollinger_upper=104.0, bollinger_lower=96.0)
        engine.refresh_dynamic_stops({"ETH/USDT": market_data_factory(indicators=wide)})
        assert open_long.stop_loss == pytest.approx(98.5)


# =============================================================================
# Query Tests
# =============================================================================

class TestQueries:
    """Test delegating queries."""

    def test_sentiment_forwarded(self, engine, stub_ensemble):
        engine.set_external_sentiment("ETH/USDT", 0.8)
        stub_ensemble.set_sentiment_score.assert_called_once_with("ETH/USDT", 0.8)

    def test_robustness_needs_cached_data(self, engine):
        assert engine.get_system_robustness("ETH/USDT") is None

    def test_robustness_from_cache(self, engine, fetcher, snapshot):
        fetcher.get_cached_data.return_value = snapshot
        summary = engine.get_system_robustness("ETH/USDT")
        assert len(summary.scenarios) == 50

    def test_account_state(self, engine, open_long):
        state = engine.get_account_state()
        assert state.open_positions_count == 1
        assert engine.get_open_positions("ETH/USDT") == [open_long]
