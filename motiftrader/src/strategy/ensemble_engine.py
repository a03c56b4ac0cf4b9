"""
Ensemble Strategy Engine - Multi-symbol strategy voting.

Each symbol carries its own strategy weights, Bayesian success
probability and mutable motif patterns:
- analyze_trend: EMA12 - EMA26 sign
- analyze_volatility: RSI extremes
- analyze_monte_carlo: simulated mean vs current price
- make_ensemble_decision: weighted BUY/SELL vote with a threshold

An RLAgent with (state, action) keys learns from realised outcomes.
"""

import logging
import random
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

import numpy as np

logger = logging.getLogger(__name__)


class StrategyType(Enum):
    """Strategy taxonomy."""
    TREND = "TREND"
    VOLATILITY = "VOLATILITY"
    EVENT_DRIVEN = "EVENT_DRIVEN"
    ML_PREDICTION = "ML_PREDICTION"


class Signal(Enum):
    """Strategy action."""
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


@dataclass
class StrategySignal:
    """Vote from one strategy."""
    symbol: str
    action: Signal
    confidence: float
    strategy: StrategyType
    price: float
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            'symbol': self.symbol,
            'action': self.action.value,
            'confidence': round(self.confidence, 4),
            'strategy': self.strategy.value,
            'price': self.price,
            'timestamp': self.timestamp.isoformat(),
        }


@dataclass
class MotifPattern:
    """Per-coin pattern whose performance drives weight boosts."""
    symbol: str
    strategy: StrategyType
    pattern: str
    performance: float = 0.5
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    last_updated: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    mutations: int = 0

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'symbol': self.symbol,
            'strategy': self.strategy.value,
            'pattern': self.pattern,
            'performance': round(self.performance, 4),
            'last_updated': self.last_updated.isoformat(),
            'mutations': self.mutations,
        }


@dataclass
class CoinMetrics:
    """Descriptive metrics for one coin."""
    symbol: str
    volatility: float
    trend: str  # UP, DOWN or SIDEWAYS
    volume_24h: float
    momentum: float
    rsi: float
    macd_value: float = 0.0
    macd_signal: float = 0.0


def calculate_return_volatility(prices: list[float]) -> float:
    """Population standard deviation of simple returns."""
    if len(prices) < 2:
        return 0.0
    closes = np.asarray(prices, dtype=float)
    returns = np.diff(closes) / closes[:-1]
    return float(np.std(returns))


class BayesianUpdater:
    """Single-probability Bayes update, P(A|B) = P(B|A) P(A) / P(B)."""

    def __init__(self, prior: float = 0.5):
        self.prior = prior

    def update(self, likelihood: float, evidence: float) -> float:
        posterior = likelihood * self.prior / evidence
        self.prior = min(max(posterior, 0.0), 1.0)
        return self.prior

    @property
    def probability(self) -> float:
        return self.prior


class RLAgent:
    """Tabular Q-learning keyed by (state, action)."""

    def __init__(
        self,
        learning_rate: float = 0.1,
        discount_factor: float = 0.9,
        epsilon: float = 0.1,
        rng: Optional[random.Random] = None,
    ):
        self.learning_rate = learning_rate
        self.discount_factor = discount_factor
        self.epsilon = epsilon
        self._rng = rng or random.Random()
        self._q_table: dict[tuple[str, Signal], float] = {}

    def get_q_value(self, state: str, action: Signal) -> float:
        return self._q_table.get((state, action), 0.0)

    def choose_action(self, state: str, available_actions: list[Signal]) -> Signal:
        """Epsilon-greedy; ties keep the first listed action."""
        if self._rng.random() < self.epsilon:
            return self._rng.choice(available_actions)

        best_action = available_actions[0]
        best_value = self.get_q_value(state, best_action)
        for action in available_actions[1:]:
            value = self.get_q_value(state, action)
            if value > best_value:
                best_action, best_value = action, value
        return best_action

    def update_q_value(
        self,
        state: str,
        action: Signal,
        reward: float,
        next_state: str,
        next_actions: list[Signal],
    ) -> float:
        current = self.get_q_value(state, action)
        max_next = max((self.get_q_value(next_state, a) for a in next_actions), default=0.0)
        new_q = current + self.learning_rate * (reward + self.discount_factor * max_next - current)
        self._q_table[(state, action)] = new_q
        return new_q

    def get_q_values(self) -> dict[tuple[str, Signal], float]:
        return dict(self._q_table)


class EnsembleStrategyEngine:
    """
    Multi-symbol ensemble of strategy votes.

    Random sources are injected: a random.Random for mutation and the RL
    agent, a numpy Generator for Monte Carlo.
    """

    def __init__(
        self,
        markets: list[str],
        config: Optional[dict] = None,
        rng: Optional[random.Random] = None,
        np_rng: Optional[np.random.Generator] = None,
    ):
        """
        Initialize EnsembleStrategyEngine.

        Args:
            markets: Symbols to initialise weights for
            config: ensemble section of rotation.yaml
            rng: Random source for mutations and exploration
            np_rng: numpy Generator for Monte Carlo
        """
        self.config = config or {}
        self.markets = list(markets)
        self._rng = rng or random.Random()
        self._np_rng = np_rng or np.random.default_rng(self._rng.getrandbits(32))

        self.monte_carlo_simulations = self.config.get('monte_carlo_simulations', 1000)
        self.monte_carlo_periods = self.config.get('monte_carlo_periods', 5)
        self.decision_threshold = self.config.get('decision_threshold', 0.4)
        self.mutation_rate = self.config.get('mutation_rate', 0.05)
        self.boost_threshold = self.config.get('boost_threshold', 0.7)
        self.boost_factor = self.config.get('boost_factor', 1.1)

        self.rl_agent = RLAgent(rng=self._rng)
        self._weights: dict[str, dict[StrategyType, float]] = {}
        self._bayesian: dict[str, BayesianUpdater] = {}
        self._coin_metrics: dict[str, CoinMetrics] = {}
        self._motifs: list[MotifPattern] = []

        for market in self.markets:
            self._ensure_market(market)

    def _ensure_market(self, symbol: str) -> None:
        if symbol not in self._weights:
            self._weights[symbol] = {s: 0.25 for s in StrategyType}
            self._bayesian[symbol] = BayesianUpdater()

    # -------------------------------------------------------------------------
    # Strategies
    # -------------------------------------------------------------------------

    def analyze_trend(self, symbol: str, prices: list[float]) -> Optional[StrategySignal]:
        """EMA12 - EMA26 sign. Needs 20 prices."""
        if len(prices) < 20:
            return None

        macd = self._ema(prices, 12) - self._ema(prices, 26)
        price = prices[-1]
        return StrategySignal(
            symbol=symbol,
            action=Signal.BUY if macd > 0 else Signal.SELL,
            confidence=abs(macd) / price if price else 0.0,
            strategy=StrategyType.TREND,
            price=price,
        )

    def analyze_volatility(self, symbol: str, prices: list[float]) -> Optional[StrategySignal]:
        """RSI below 30 buys, above 70 sells. Needs 14 prices."""
        if len(prices) < 14:
            return None

        rsi = self._rsi(prices)
        if rsi < 30:
            action = Signal.BUY
        elif rsi > 70:
            action = Signal.SELL
        else:
            action = Signal.HOLD

        return StrategySignal(
            symbol=symbol,
            action=action,
            confidence=abs(rsi - 50) / 50,
            strategy=StrategyType.VOLATILITY,
            price=prices[-1],
        )

    def analyze_monte_carlo(
        self,
        symbol: str,
        current_price: float,
        volatility: float,
    ) -> Optional[StrategySignal]:
        """Compare the simulated mean price with the current price (+-1%)."""
        if current_price <= 0:
            return None

        shocks = (self._np_rng.random(
            (self.monte_carlo_simulations, self.monte_carlo_periods)
        ) - 0.5) * volatility
        finals = current_price * np.prod(1 + shocks, axis=1)
        mean = float(np.mean(finals))

        if mean > current_price * 1.01:
            action = Signal.BUY
        elif mean < current_price * 0.99:
            action = Signal.SELL
        else:
            action = Signal.HOLD

        return StrategySignal(
            symbol=symbol,
            action=action,
            confidence=min(abs(mean - current_price) / current_price, 1.0),
            strategy=StrategyType.ML_PREDICTION,
            price=current_price,
        )

    def make_ensemble_decision(
        self,
        symbol: str,
        signals: list[StrategySignal],
    ) -> Optional[StrategySignal]:
        """
        Weighted vote over strategy signals.

        BUY (SELL) wins when its weighted probability beats the other side
        and exceeds the decision threshold; otherwise HOLD.
        """
        if not signals:
            return None

        self._ensure_market(symbol)
        weights = self._weights[symbol]
        buy_score = 0.0
        sell_score = 0.0

        for signal in signals:
            weight = weights[signal.strategy]
            if signal.action == Signal.BUY:
                buy_score += weight * signal.confidence
            elif signal.action == Signal.SELL:
                sell_score += weight * signal.confidence

        total_weight = sum(weights.values())
        buy_prob = buy_score / total_weight
        sell_prob = sell_score / total_weight

        action = Signal.HOLD
        if buy_prob > sell_prob and buy_prob > self.decision_threshold:
            action = Signal.BUY
        elif sell_prob > buy_prob and sell_prob > self.decision_threshold:
            action = Signal.SELL

        return StrategySignal(
            symbol=symbol,
            action=action,
            confidence=max(buy_prob, sell_prob),
            strategy=StrategyType.TREND,
            price=signals[0].price,
        )

    # -------------------------------------------------------------------------
    # Learning
    # -------------------------------------------------------------------------

    def update_bayesian(self, symbol: str, success: bool) -> float:
        """Bayes step with likelihood 0.8/0.2 and evidence 0.5."""
        self._ensure_market(symbol)
        likelihood = 0.8 if success else 0.2
        return self._bayesian[symbol].update(likelihood, 0.5)

    def get_success_probability(self, symbol: str) -> float:
        self._ensure_market(symbol)
        return self._bayesian[symbol].probability

    def mutate_motifs_for_coin(self, symbol: str) -> dict[StrategyType, float]:
        """
        Perturb each pattern's performance by (1 + rate * u), boost the
        weight of strategies whose pattern performs above the threshold,
        then renormalise the symbol's weights.
        """
        self._ensure_market(symbol)
        weights = self._weights[symbol]

        for motif in self._motifs:
            if motif.symbol != symbol:
                continue
            motif.mutations += 1
            motif.performance *= 1 + self.mutation_rate * self._rng.random()
            motif.last_updated = datetime.now(timezone.utc)

            if motif.performance > self.boost_threshold:
                weights[motif.strategy] *= self.boost_factor

        total = sum(weights.values())
        for strategy in weights:
            weights[strategy] /= total
        return dict(weights)

    def record_strategy_outcome(
        self,
        symbol: str,
        strategy: StrategyType,
        success: bool,
    ) -> MotifPattern:
        """
        Move the (symbol, strategy) pattern performance toward the outcome.

        Creates the pattern on first use.
        """
        pattern = next(
            (m for m in self._motifs if m.symbol == symbol and m.strategy == strategy),
            None,
        )
        if pattern is None:
            pattern = MotifPattern(
                symbol=symbol,
                strategy=strategy,
                pattern=f"{strategy.value.lower()}_{symbol}",
            )
            self._motifs.append(pattern)

        target = 1.0 if success else 0.0
        pattern.performance = min(max(pattern.performance * 0.9 + target * 0.1, 0.0), 1.0)
        pattern.last_updated = datetime.now(timezone.utc)
        return pattern

    def add_motif(self, motif: MotifPattern) -> None:
        self._motifs.append(motif)

    def get_motifs(self, symbol: Optional[str] = None) -> list[MotifPattern]:
        if symbol is None:
            return list(self._motifs)
        return [m for m in self._motifs if m.symbol == symbol]

    def get_ensemble_weights(self, symbol: Optional[str] = None) -> dict:
        """Copy of all weights, or of one symbol's weights."""
        if symbol is not None:
            self._ensure_market(symbol)
            return dict(self._weights[symbol])
        return {s: dict(w) for s, w in self._weights.items()}

    def get_coin_metrics(self, symbol: str) -> Optional[CoinMetrics]:
        return self._coin_metrics.get(symbol)

    def set_coin_metrics(self, symbol: str, metrics: CoinMetrics) -> None:
        self._coin_metrics[symbol] = metrics

    # -------------------------------------------------------------------------
    # Indicators
    # -------------------------------------------------------------------------

    @staticmethod
    def _ema(prices: list[float], period: int) -> float:
        multiplier = 2 / (period + 1)
        ema = prices[0]
        for price in prices[1:]:
            ema = price * multiplier + ema * (1 - multiplier)
        return ema

    @staticmethod
    def _rsi(prices: list[float]) -> float:
        # Only the first 14 changes are used.
        gains = 0.0
        losses = 0.0
        for i in range(1, min(15, len(prices))):
            change = prices[i] - prices[i - 1]
            if change > 0:
                gains += change
            else:
                losses += abs(change)

        avg_gain = gains / 14
        avg_loss = losses / 14
        rs = avg_gain / avg_loss if avg_loss != 0 else 1.0
        return 100 - 100 / (1 + rs)
