"""
Q-Learning - Tabular reinforcement learning over price states.

Q-values are keyed by (PriceState, QAction) pairs and updated with the
temporal-difference rule:

    Q <- Q + alpha * (reward + gamma * max_a Q(next, a) - Q)
"""

import logging
import random
from enum import Enum
from typing import Optional

from .markov import PriceState

logger = logging.getLogger(__name__)


class QAction(Enum):
    """Discrete action set."""
    LONG = "LONG"
    SHORT = "SHORT"
    NEUTRAL = "NEUTRAL"
    REDUCE_POSITION = "REDUCE_POSITION"


# Greedy ties resolve to the earliest action in this order
_GREEDY_ORDER = [QAction.LONG, QAction.SHORT, QAction.NEUTRAL, QAction.REDUCE_POSITION]


class QLearning:
    """Epsilon-greedy tabular Q-learning agent."""

    def __init__(
        self,
        learning_rate: float = 0.1,
        discount_factor: float = 0.95,
        epsilon: float = 0.1,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize QLearning.

        Args:
            learning_rate: Alpha, in (0, 1]
            discount_factor: Gamma, in [0, 1]
            epsilon: Exploration rate, in [0, 1]
            rng: Random source for exploration
        """
        if not 0 <= discount_factor <= 1:
            raise ValueError(f"Discount factor must be in [0, 1], got {discount_factor}")

        self.learning_rate = 0.1
        self.epsilon = 0.1
        self.discount_factor = discount_factor
        self.set_learning_rate(learning_rate)
        self.set_epsilon(epsilon)

        self._rng = rng or random.Random()
        self._q_values: dict[tuple[PriceState, QAction], float] = {}

    def get_q_value(self, state: PriceState, action: QAction) -> float:
        return self._q_values.get((state, action), 0.0)

    def record_reward(
        self,
        state: PriceState,
        action: QAction,
        reward: float,
        next_state: PriceState,
    ) -> float:
        """
        Apply one temporal-difference update.

        Returns:
            The new Q-value
        """
        current_q = self.get_q_value(state, action)
        max_next_q = self._max_q_value(next_state)

        new_q = current_q + self.learning_rate * (
            reward + self.discount_factor * max_next_q - current_q
        )
        self._q_values[(state, action)] = new_q
        return new_q

    def select_action(self, state: PriceState) -> QAction:
        """Epsilon-greedy action choice."""
        if self._rng.random() < self.epsilon:
            return self._rng.choice(list(QAction))

        best_action = _GREEDY_ORDER[0]
        best_q = self.get_q_value(state, best_action)
        for action in _GREEDY_ORDER[1:]:
            q = self.get_q_value(state, action)
            if q > best_q:
                best_q = q
                best_action = action
        return best_action

    def get_q_values(self) -> dict[tuple[PriceState, QAction], float]:
        """Copy of the Q-table."""
        return dict(self._q_values)

    def set_learning_rate(self, rate: float) -> None:
        """Set alpha. Raises ValueError outside (0, 1]; prior value kept."""
        if not 0 < rate <= 1:
            raise ValueError(f"Learning rate must be in (0, 1], got {rate}")
        self.learning_rate = rate

    def set_epsilon(self, epsilon: float) -> None:
        """Set the exploration rate. Raises ValueError outside [0, 1]; prior value kept."""
        if not 0 <= epsilon <= 1:
            raise ValueError(f"Epsilon must be in [0, 1], got {epsilon}")
        self.epsilon = epsilon

    def _max_q_value(self, state: PriceState) -> float:
        return max(self.get_q_value(state, action) for action in QAction)
