"""
Adaptive Learning Engine - Single feedback entry point for trade outcomes.

Owns the four learning models:
- BayesianLearning: motif success rates -> candidate ensemble weights
- MarkovChain: price-state transitions
- QLearning: action values over price states
- MonteCarloSimulation: robustness statistics

Random sources are injected (or derived from a seed) so runs can be
reproduced exactly.
"""

import logging
import random
from typing import Optional

import numpy as np

from ..motifs.motifs import MotifType
from .bayesian import BayesianLearning
from .markov import MarkovChain, PriceState
from .monte_carlo import MonteCarloSimulation, SimulationSummary
from .q_learning import QAction, QLearning

logger = logging.getLogger(__name__)


def default_action(success: bool, reward: float) -> QAction:
    """Action attributed to an outcome when the traded side is unknown."""
    if success:
        return QAction.LONG if reward > 0 else QAction.SHORT
    return QAction.REDUCE_POSITION


class AdaptiveLearningEngine:
    """
    Orchestrates the learning models.

    The strategy engine calls record_trade_outcome() once per fully
    closed position.
    """

    def __init__(
        self,
        config: Optional[dict] = None,
        rng: Optional[random.Random] = None,
        np_rng: Optional[np.random.Generator] = None,
    ):
        """
        Initialize AdaptiveLearningEngine.

        Args:
            config: Learning configuration (learning section of learning.yaml)
            rng: Random source for Markov sampling and exploration
            np_rng: numpy Generator for Monte Carlo
        """
        self.config = config or {}

        seed = self.config.get('seed')
        if seed == '':
            seed = None
        if rng is None:
            rng = random.Random(seed)
        if np_rng is None:
            np_rng = np.random.default_rng(seed)

        q_config = self.config.get('q_learning', {})
        mc_config = self.config.get('monte_carlo', {})

        self.bayesian = BayesianLearning()
        self.markov = MarkovChain(rng=rng)
        self.q_learning = QLearning(
            learning_rate=q_config.get('learning_rate', 0.1),
            discount_factor=q_config.get('discount_factor', 0.95),
            epsilon=q_config.get('epsilon', 0.1),
            rng=rng,
        )
        self.monte_carlo = MonteCarloSimulation(
            rng=np_rng,
            time_steps=mc_config.get('time_steps', 100),
            drift=mc_config.get('drift', 0.0001),
        )
        self.robustness_scenarios = mc_config.get('robustness_scenarios', 500)
        self._outcomes_recorded = 0

    def record_trade_outcome(
        self,
        motif_type: MotifType,
        success: bool,
        from_state: PriceState,
        to_state: PriceState,
        reward: float,
        action: Optional[QAction] = None,
    ) -> None:
        """
        Fan a realised outcome out to the Bayesian, Markov and Q models.

        Args:
            motif_type: Motif credited with the trade
            success: Whether the trade made money
            from_state: Price state at entry
            to_state: Price state at exit
            reward: Realised PnL percent
            action: Side actually traded (derived from the outcome if None)
        """
        if action is None:
            action = default_action(success, reward)

        self.bayesian.record_outcome(motif_type, success)
        self.markov.record_transition(from_state, to_state)
        new_q = self.q_learning.record_reward(from_state, action, reward, to_state)
        self._outcomes_recorded += 1

        logger.info(
            f"Learning update: motif={motif_type.value} success={success} "
            f"{from_state.value}->{to_state.value} action={action.value} "
            f"reward={reward:.4f} Q={new_q:.4f}"
        )

    @property
    def outcomes_recorded(self) -> int:
        return self._outcomes_recorded

    def get_updated_weights(self) -> dict[MotifType, float]:
        """Candidate ensemble weights from the Bayesian model."""
        return self.bayesian.update_weights()

    def get_price_state(self, signal: float, volatility: float) -> PriceState:
        return self.markov.get_price_state(signal, volatility)

    def get_next_price_state(self, signal: float, volatility: float) -> PriceState:
        """Predict the next state from the current signal (introspection helper)."""
        current = self.markov.get_price_state(signal, volatility)
        return self.markov.predict_next_state(current)

    def suggest_action(self, signal: float, volatility: float) -> QAction:
        """Q-learning action for the current state (introspection helper)."""
        return self.q_learning.select_action(self.markov.get_price_state(signal, volatility))

    def get_system_robustness(self, base_price: float, volatility: float) -> SimulationSummary:
        """Monte Carlo robustness statistics."""
        return self.monte_carlo.simulate_scenarios(
            base_price,
            volatility,
            scenarios=self.robustness_scenarios,
        )

    def get_stats(self) -> dict:
        """Learning statistics with string keys."""
        return {
            'outcomes_recorded': self._outcomes_recorded,
            'bayesian': self.bayesian.get_stats(),
            'markov': {
                from_state.value: {to_state.value: p for to_state, p in row.items()}
                for from_state, row in self.markov.get_transition_matrix().items()
            },
            'q_learning': {
                f"{state.value}:{action.value}": q
                for (state, action), q in self.q_learning.get_q_values().items()
            },
        }
