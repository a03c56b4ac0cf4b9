"""
Strategy Engine - Single-symbol decision pipeline and learning feedback.

Cycle:
    FETCH -> UPDATE_HISTORY -> ENSEMBLE_ANALYZE -> CLASSIFY_ACTION
          -> (EXECUTE | SKIP) -> UPDATE_LEARNING

Features:
- Bounded FIFO price history per symbol
- Threshold action classification with reversal override
- Pending position opening with explicit confirm/abort
- Profit tiers, trailing stops and forced closes through the risk manager
- Realised outcomes fed back into the adaptive learning engine
"""

import logging
import math
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, TYPE_CHECKING

from ..data.indicator_library import calculate_volatility_score
from ..learning.engine import AdaptiveLearningEngine
from ..learning.monte_carlo import SimulationSummary
from ..learning.q_learning import QAction
from ..motifs.ensemble import MotifEnsemble
from ..motifs.motifs import MotifSignal, MotifType
from ..risk.risk_manager import (
    AccountState,
    CloseResult,
    Position,
    PositionSide,
    RiskManager,
    RiskMetrics,
)

if TYPE_CHECKING:
    from ..data.market_data import MarketData, MarketDataFetcher
    from ..execution.exchange_client import OrderResult

logger = logging.getLogger(__name__)


class TradeAction(Enum):
    """Engine decision."""
    LONG = "LONG"
    SHORT = "SHORT"
    NEUTRAL = "NEUTRAL"
    CLOSE_POSITION = "CLOSE_POSITION"


class ExecutionStatus(Enum):
    """Order state of a strategy execution."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ABORTED = "aborted"


@dataclass
class TradeDecision:
    """Output of one analysis cycle."""
    symbol: str
    signal: float
    confidence: float
    action: TradeAction
    reasoning: str
    motifs: list[MotifSignal] = field(default_factory=list)
    decision_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    position_id: Optional[str] = None
    dominant_motif: Optional[MotifType] = None
    market_data: Optional['MarketData'] = None

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return {
            'decision_id': self.decision_id,
            'symbol': self.symbol,
            'signal': round(self.signal, 4),
            'confidence': round(self.confidence, 4),
            'action': self.action.value,
            'reasoning': self.reasoning,
            'motifs': [m.to_dict() for m in self.motifs],
            'timestamp': self.timestamp.isoformat(),
            'position_id': self.position_id,
            'dominant_motif': self.dominant_motif.value if self.dominant_motif else None,
        }


@dataclass
class StrategyExecution:
    """A pending or committed trade created from a decision."""
    decision_id: str
    symbol: str
    side: PositionSide
    entry_price: float
    quantity: float
    stop_loss: float
    take_profit: float
    position_id: str
    execution_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    executed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    order_id: Optional[str] = None
    status: ExecutionStatus = ExecutionStatus.PENDING

    @property
    def order_side(self) -> str:
        return 'buy' if self.side == PositionSide.LONG else 'sell'

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return {
            'execution_id': self.execution_id,
            'decision_id': self.decision_id,
            'symbol': self.symbol,
            'side': self.side.value,
            'entry_price': self.entry_price,
            'quantity': self.quantity,
            'stop_loss': self.stop_loss,
            'take_profit': self.take_profit,
            'position_id': self.position_id,
            'executed_at': self.executed_at.isoformat(),
            'order_id': self.order_id,
            'status': self.status.value,
        }


@dataclass
class _EntryContext:
    signal: float
    volatility: float
    dominant_motif: MotifType


class StrategyEngine:
    """
    Orchestrates motifs, risk and learning for single-symbol trading.

    All collaborators are explicit instances; nothing is shared through
    module globals.
    """

    def __init__(
        self,
        market_data: 'MarketDataFetcher',
        risk_manager: Optional[RiskManager] = None,
        ensemble: Optional[MotifEnsemble] = None,
        learning_engine: Optional[AdaptiveLearningEngine] = None,
        config: Optional[dict] = None,
    ):
        """
        Initialize StrategyEngine.

        Args:
            market_data: Market data fetcher
            risk_manager: Position book owner
            ensemble: Motif ensemble
            learning_engine: Adaptive learning engine
            config: Strategy configuration (strategy section of strategy.yaml)
        """
        self.config = config or {}
        self.market_data = market_data
        self.risk_manager = risk_manager or RiskManager()
        self.ensemble = ensemble or MotifEnsemble(self.config.get('motif_weights'))
        self.learning_engine = learning_engine or AdaptiveLearningEngine()

        self.max_history_length = self.config.get('max_history_length', 200)
        max_log_length = self.config.get('max_log_length', 1000)
        self.candle_interval = self.config.get('candle_interval', '15m')
        self.candle_limit = self.config.get('candle_limit', 100)
        self.risk_reward_ratio = self.config.get('risk_reward_ratio', 2.5)

        thresholds = self.config.get('thresholds', {})
        self.strong_long = thresholds.get('strong_long', 0.58)
        self.strong_short = thresholds.get('strong_short', 0.42)
        self.weak_long = thresholds.get('weak_long', 0.52)
        self.weak_short = thresholds.get('weak_short', 0.48)
        self.min_confidence = thresholds.get('min_confidence', 0.4)

        gate = self.config.get('execution_gate', {})
        self.gate_min_confidence = gate.get('min_confidence', 0.60)
        self.gate_long_signal = gate.get('long_signal', 0.55)
        self.gate_short_signal = gate.get('short_signal', 0.45)

        self._price_history: dict[str, deque[float]] = {}
        self._decisions: deque[TradeDecision] = deque(maxlen=max_log_length)
        self._executions: deque[StrategyExecution] = deque(maxlen=max_log_length)
        self._entry_context: dict[str, _EntryContext] = {}
        self._last_signal: dict[str, tuple[float, float]] = {}

    # -------------------------------------------------------------------------
    # Decision
    # -------------------------------------------------------------------------

    async def analyze_and_decide(self, symbol: str) -> Optional[TradeDecision]:
        """
        Run one analysis cycle for a symbol.

        Returns:
            TradeDecision, or None when data is unavailable or analysis failed
            (nothing is mutated when data is unavailable)
        """
        try:
            market_data = await self.market_data.fetch_market_data(
                symbol, self.candle_interval, self.candle_limit
            )
            if market_data is None:
                logger.warning(f"Unable to fetch market data for {symbol}, skipping cycle")
                return None

            history = self._price_history.setdefault(
                symbol, deque(maxlen=self.max_history_length)
            )
            history.append(market_data.current_price)

            result = self.ensemble.analyze(
                market_data.indicators,
                market_data.current_price,
                symbol,
                market_data.order_book,
                list(history),
            )

            action = self.classify_action(result.signal, result.confidence)
            reasoning = self._describe(action, result.signal, result.confidence)
            position_id = None

            if action in (TradeAction.LONG, TradeAction.SHORT):
                opposite = PositionSide.SHORT if action == TradeAction.LONG else PositionSide.LONG
                for position in self.risk_manager.get_open_positions(symbol):
                    if position.side == opposite:
                        reasoning = (
                            f"Reversal signal: closing {position.side.value} position "
                            f"on {action.value} signal"
                        )
                        action = TradeAction.CLOSE_POSITION
                        position_id = position.id
                        break

            self._last_signal[symbol] = (result.signal, market_data.volatility_score)

            decision = TradeDecision(
                symbol=symbol,
                signal=result.signal,
                confidence=result.confidence,
                action=action,
                reasoning=reasoning,
                motifs=result.motifs,
                position_id=position_id,
                dominant_motif=self.ensemble.dominant_motif(result),
                market_data=market_data,
            )
            self._decisions.append(decision)

            logger.info(
                f"{symbol}: {action.value} (signal: {result.signal:.3f}, "
                f"confidence: {result.confidence:.3f})"
            )
            return decision

        except Exception as e:
            logger.exception(f"Error analyzing {symbol}: {e}")
            return None

    def classify_action(self, signal: float, confidence: float) -> TradeAction:
        """Map ensemble signal and confidence to an action."""
        if signal > self.strong_long and confidence > self.min_confidence:
            return TradeAction.LONG
        if signal < self.strong_short and confidence > self.min_confidence:
            return TradeAction.SHORT
        if self.weak_long < signal <= self.strong_long:
            return TradeAction.LONG
        if self.strong_short <= signal < self.weak_short:
            return TradeAction.SHORT
        return TradeAction.NEUTRAL

    def should_execute(self, decision: TradeDecision) -> bool:
        """
        Execution gate layered above classification.

        Requires confidence above the gate and, for entries, a clearer
        signal separation from neutral.
        """
        if decision.action == TradeAction.NEUTRAL:
            return False
        if decision.confidence <= self.gate_min_confidence:
            return False
        if decision.action == TradeAction.LONG:
            return decision.signal > self.gate_long_signal
        if decision.action == TradeAction.SHORT:
            return decision.signal < self.gate_short_signal
        return True

    def _describe(self, action: TradeAction, signal: float, confidence: float) -> str:
        strong = confidence > self.min_confidence
        if action == TradeAction.LONG and strong and signal > self.strong_long:
            return (
                f"Strong LONG signal ({signal * 100:.1f}%) with good confidence "
                f"({confidence * 100:.1f}%)"
            )
        if action == TradeAction.SHORT and strong and signal < self.strong_short:
            return (
                f"Strong SHORT signal ({(1 - signal) * 100:.1f}%) with good confidence "
                f"({confidence * 100:.1f}%)"
            )
        if action == TradeAction.LONG:
            return f"Weak LONG signal ({signal * 100:.1f}%), considering confidence"
        if action == TradeAction.SHORT:
            return f"Weak SHORT signal ({(1 - signal) * 100:.1f}%), considering confidence"
        return f"Neutral market condition (signal: {signal:.3f})"

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def execute_decision(
        self,
        decision: TradeDecision,
        market_data: 'MarketData',
        sentiment_risk_adjustment: float = 1.0,
    ) -> Optional[StrategyExecution]:
        """
        Act on a decision.

        NEUTRAL does nothing. CLOSE_POSITION closes the reversal target.
        LONG/SHORT opens a PENDING position that the caller must confirm or
        abort once the order outcome is known.

        Returns:
            StrategyExecution for a new pending position, else None
        """
        try:
            if decision.action == TradeAction.NEUTRAL:
                return None

            if decision.action == TradeAction.CLOSE_POSITION:
                if decision.position_id:
                    self.record_trade_outcome(
                        decision.position_id,
                        market_data.current_price,
                        reason="reversal",
                    )
                return None

            price = market_data.current_price
            stop_loss = self.risk_manager.calculate_stop_loss(
                price, decision.signal, market_data.atr_ratio, market_data.atr
            )
            take_profit = self.risk_manager.calculate_take_profit(
                price, stop_loss, self.risk_reward_ratio
            )
            quantity = self.risk_manager.calculate_position_size(
                price,
                stop_loss,
                decision.signal,
                decision.confidence,
                volatility=market_data.volatility_score,
                sentiment_risk_adjustment=sentiment_risk_adjustment,
            )

            if quantity <= 0:
                logger.warning(f"Calculated quantity is 0 for {decision.symbol}")
                return None

            position = self.risk_manager.open_position(
                decision.symbol, price, quantity, stop_loss, take_profit,
                decision.signal, pending=True,
            )
            if position is None:
                logger.warning(f"Failed to open position for {decision.symbol}")
                return None

            self._entry_context[position.id] = _EntryContext(
                signal=decision.signal,
                volatility=market_data.volatility_score,
                dominant_motif=decision.dominant_motif or MotifType.TREND,
            )

            execution = StrategyExecution(
                decision_id=decision.decision_id,
                symbol=decision.symbol,
                side=position.side,
                entry_price=price,
                quantity=quantity,
                stop_loss=stop_loss,
                take_profit=take_profit,
                position_id=position.id,
            )
            self._executions.append(execution)
            logger.info(f"Trade prepared: {execution.to_dict()}")
            return execution

        except Exception as e:
            logger.exception(f"Error executing decision for {decision.symbol}: {e}")
            return None

    def confirm_execution(
        self,
        execution: StrategyExecution,
        order: 'OrderResult',
    ) -> Optional[Position]:
        """Commit the pending position after the order was accepted."""
        position = self.risk_manager.confirm_position(execution.position_id, order.order_id)
        if position is not None:
            execution.order_id = order.order_id
            execution.status = ExecutionStatus.CONFIRMED
        return position

    def abort_execution(self, execution: StrategyExecution, reason: str) -> bool:
        """Roll back the pending position after an order failure."""
        cancelled = self.risk_manager.cancel_pending_position(execution.position_id)
        self._entry_context.pop(execution.position_id, None)
        execution.status = ExecutionStatus.ABORTED
        logger.warning(f"Execution {execution.execution_id} aborted: {reason}")
        return cancelled

    # -------------------------------------------------------------------------
    # Outcomes
    # -------------------------------------------------------------------------

    def record_trade_outcome(
        self,
        position_id: str,
        exit_price: float,
        motif_type: Optional[MotifType] = None,
        quantity: Optional[float] = None,
        reason: str = "manual",
    ) -> Optional[CloseResult]:
        """
        Close (part of) a position and feed a full close into learning.

        Args:
            position_id: Position to close
            exit_price: Exit price
            motif_type: Motif credited (defaults to the dominant motif at entry)
            quantity: Quantity to close (None closes everything)
            reason: Close reason for the trade record

        Returns:
            CloseResult, or None if the position is not open
        """
        position = self.risk_manager.get_position(position_id)
        if position is None or not position.is_open:
            logger.warning(f"No open position {position_id} to close")
            return None

        result = self.risk_manager.close_position(position_id, exit_price, quantity, reason)
        if result is None:
            return None

        logger.debug(f"Outcome for {position.symbol}: PnL {result.pnl:.4f} ({reason})")
        if result.fully_closed:
            self._feed_learning(position, result, motif_type)
        return result

    def _feed_learning(
        self,
        position: Position,
        result: CloseResult,
        motif_type: Optional[MotifType],
    ) -> None:
        context = self._entry_context.pop(position.id, None)
        entry_signal = context.signal if context else position.initial_signal
        entry_volatility = context.volatility if context else 0.5
        if motif_type is None:
            motif_type = context.dominant_motif if context else MotifType.TREND

        exit_signal, exit_volatility = self._last_signal.get(
            position.symbol, (entry_signal, entry_volatility)
        )
        from_state = self.learning_engine.get_price_state(entry_signal, entry_volatility)
        to_state = self.learning_engine.get_price_state(exit_signal, exit_volatility)

        total_pnl = result.total_realized_pnl
        reward = total_pnl / (position.entry_price * position.original_quantity) * 100
        action = QAction.LONG if position.side == PositionSide.LONG else QAction.SHORT

        self.learning_engine.record_trade_outcome(
            motif_type,
            total_pnl > 0,
            from_state,
            to_state,
            reward,
            action,
        )

    def supervise_positions(self, symbol: str, market_data: 'MarketData') -> list[CloseResult]:
        """
        Check profit tiers, trail stops and trigger SL/TP for a symbol.

        Returns:
            Close results produced during this pass
        """
        results = []
        price = market_data.current_price

        for position in self.risk_manager.get_open_positions(symbol):
            target = self.risk_manager.check_profit_targets(position.id, price)
            if target.should_close:
                logger.info(f"Profit target {target.level} hit on {symbol} ({position.id})")
                # A partial tier that floors to zero quantity closes the whole position
                quantity = None
                if target.close_fraction < 1.0:
                    factor = 10 ** self.risk_manager.quantity_decimals
                    partial = math.floor(position.quantity * target.close_fraction * factor) / factor
                    if 0 < partial < position.quantity:
                        quantity = partial

                result = self.record_trade_outcome(
                    position.id, price, quantity=quantity,
                    reason=f"profit_target_{target.level}",
                )
                if result is not None:
                    results.append(result)
                    if result.fully_closed:
                        continue

            update = self.risk_manager.update_position(position.id, price, market_data.atr)
            if update is not None and update.close_result is not None:
                self._feed_learning(position, update.close_result, None)
                results.append(update.close_result)

        return results

    def refresh_dynamic_stops(self, market_data_by_symbol: dict[str, 'MarketData']) -> list[Position]:
        """
        Recompute ATR stops from each position's initial signal.

        Stops only tighten. Returns the positions that were evaluated.
        """
        updated = []
        for position in self.risk_manager.get_open_positions():
            market_data = market_data_by_symbol.get(position.symbol)
            if market_data is None:
                continue

            atr = market_data.atr
            volatility = calculate_volatility_score(
                atr, position.entry_price, market_data.indicators.bollinger_width
            )
            new_stop = self.risk_manager.calculate_stop_loss(
                position.entry_price, position.initial_signal, volatility, atr
            )
            result = self.risk_manager.update_position_stop(position.id, new_stop, atr)
            if result is not None:
                updated.append(result)
        return updated

    def update_motif_weights(self) -> dict[MotifType, float]:
        """
        Push Bayesian posterior weights into the ensemble.

        No-op until at least one outcome has been recorded.
        """
        if self.learning_engine.outcomes_recorded == 0:
            return self.ensemble.get_weights()

        weights = self.learning_engine.get_updated_weights()
        new_weights = self.ensemble.update_weights(weights)
        logger.info(
            "Motif weights updated: "
            + ", ".join(f"{k.value}={v:.3f}" for k, v in new_weights.items())
        )
        return new_weights

    def set_external_sentiment(self, symbol: str, score: float) -> None:
        """Feed an external [0, 1] sentiment score to the sentiment motif."""
        self.ensemble.set_sentiment_score(symbol, score)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_account_state(self) -> AccountState:
        return self.risk_manager.get_account_state()

    def get_open_positions(self, symbol: Optional[str] = None) -> list[Position]:
        return self.risk_manager.get_open_positions(symbol)

    def get_metrics(self) -> RiskMetrics:
        return self.risk_manager.calculate_metrics()

    def get_recent_decisions(self, limit: int = 10) -> list[TradeDecision]:
        return list(self._decisions)[-limit:]

    def get_trades(self, limit: int = 50) -> list[StrategyExecution]:
        return list(self._executions)[-limit:]

    def get_learning_stats(self) -> dict:
        return self.learning_engine.get_stats()

    def get_motif_weights(self) -> dict[MotifType, float]:
        return self.ensemble.get_weights()

    def get_price_history(self, symbol: str) -> list[float]:
        return list(self._price_history.get(symbol, ()))

    def get_system_robustness(self, symbol: str) -> Optional[SimulationSummary]:
        """Monte Carlo robustness from the last cached price and ATR ratio."""
        market_data = self.market_data.get_cached_data(symbol)
        if market_data is None:
            return None
        return self.learning_engine.get_system_robustness(
            market_data.current_price, market_data.atr_ratio
        )
