"""
Markov Chain - Discrete price-state transition model.

States are derived from the ensemble signal. Observed transitions are
counted in a two-level map and normalised on demand.
"""

import logging
import random
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class PriceState(Enum):
    """Discretised market state."""
    UPTREND_STRONG = "UPTREND_STRONG"
    UPTREND = "UPTREND"
    NEUTRAL = "NEUTRAL"
    DOWNTREND = "DOWNTREND"
    DOWNTREND_STRONG = "DOWNTREND_STRONG"


class MarkovChain:
    """
    Counts state transitions and samples the next state.

    Args:
        rng: Random source for predict_next_state
    """

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()
        self._transitions: dict[PriceState, dict[PriceState, int]] = {}
        self._states: set[PriceState] = set()

    @staticmethod
    def get_price_state(signal: float, volatility: float) -> PriceState:
        """
        Bucket a signal into a price state.

        Volatility only gates the strong-uptrend bucket, and the
        strong-downtrend bucket is shadowed by the downtrend check.
        """
        if signal > 0.8 and volatility < 0.5:
            return PriceState.UPTREND_STRONG
        if signal > 0.65:
            return PriceState.UPTREND
        if 0.35 < signal < 0.65:
            return PriceState.NEUTRAL
        if signal < 0.35:
            return PriceState.DOWNTREND
        if signal < 0.2:
            return PriceState.DOWNTREND_STRONG
        return PriceState.NEUTRAL

    def record_transition(self, from_state: PriceState, to_state: PriceState) -> None:
        """Count one observed transition."""
        row = self._transitions.setdefault(from_state, {})
        row[to_state] = row.get(to_state, 0) + 1
        self._states.add(from_state)
        self._states.add(to_state)

    def get_transition_counts(self) -> dict[PriceState, dict[PriceState, int]]:
        """Copy of the raw count table."""
        return {k: dict(v) for k, v in self._transitions.items()}

    def get_transition_matrix(self) -> dict[PriceState, dict[PriceState, float]]:
        """
        Row-normalised transition probabilities.

        Each observed from-state row covers every state seen so far.
        """
        ordered_states = [s for s in PriceState if s in self._states]
        matrix = {}
        for from_state, row in self._transitions.items():
            total = sum(row.values())
            matrix[from_state] = {
                to_state: (row.get(to_state, 0) / total if total > 0 else 0.0)
                for to_state in ordered_states
            }
        return matrix

    def predict_next_state(self, current_state: PriceState) -> PriceState:
        """
        Sample the next state proportionally to observed transitions.

        Returns the current state when it has no recorded transitions.
        """
        row = self._transitions.get(current_state)
        if not row:
            return current_state

        total = sum(row.values())
        draw = self._rng.random()
        for to_state, count in row.items():
            probability = count / total
            if draw < probability:
                return to_state
            draw -= probability

        return current_state
