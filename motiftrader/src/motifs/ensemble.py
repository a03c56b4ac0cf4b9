"""
Motif Ensemble - Weighted aggregation of the four motif scorers.

The ensemble exclusively owns the motif weights. Weights are always
non-negative and sum to 1; update_weights() is the only mutation path.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, TYPE_CHECKING

from ..data.indicator_library import IndicatorValues
from .motifs import (
    MotifSignal,
    MotifType,
    MomentumMotif,
    SentimentMotif,
    TrendMotif,
    VolatilityMotif,
)

if TYPE_CHECKING:
    from ..execution.exchange_client import OrderBook

logger = logging.getLogger(__name__)

DEFAULT_WEIGHTS = {
    MotifType.TREND: 0.35,
    MotifType.MOMENTUM: 0.25,
    MotifType.VOLATILITY: 0.20,
    MotifType.SENTIMENT: 0.20,
}


@dataclass
class EnsembleResult:
    """Aggregated ensemble output."""
    signal: float
    confidence: float
    motifs: list[MotifSignal] = field(default_factory=list)

    def get_motif(self, motif_type: MotifType) -> Optional[MotifSignal]:
        for motif in self.motifs:
            if motif.motif_type == motif_type:
                return motif
        return None

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return {
            'signal': round(self.signal, 4),
            'confidence': round(self.confidence, 4),
            'motifs': [m.to_dict() for m in self.motifs],
        }


def _parse_weights(weights: dict) -> dict[MotifType, float]:
    """Accept MotifType or string keys."""
    parsed = {}
    for key, value in weights.items():
        motif_type = key if isinstance(key, MotifType) else MotifType(str(key).lower())
        parsed[motif_type] = float(value)
    return parsed


class MotifEnsemble:
    """
    Combines the four motifs into one weighted signal and confidence.
    """

    def __init__(self, initial_weights: Optional[dict] = None):
        """
        Initialize MotifEnsemble.

        Args:
            initial_weights: Optional weights keyed by MotifType or name;
                missing motifs take the defaults before normalisation

        Raises:
            ValueError: On negative weights or an all-zero sum
        """
        self.trend_motif = TrendMotif()
        self.momentum_motif = MomentumMotif()
        self.volatility_motif = VolatilityMotif()
        self.sentiment_motif = SentimentMotif()

        self._weights: dict[MotifType, float] = dict(DEFAULT_WEIGHTS)
        if initial_weights:
            self.update_weights(initial_weights)

    def analyze(
        self,
        indicators: IndicatorValues,
        price: float,
        symbol: str,
        order_book: Optional['OrderBook'],
        price_history: list[float],
    ) -> EnsembleResult:
        """
        Run all motifs and aggregate them.

        Returns:
            EnsembleResult with signal clamped to [0, 1]
        """
        motifs = [
            self.trend_motif.analyze(indicators, price),
            self.momentum_motif.analyze(indicators),
            self.volatility_motif.analyze(indicators, price, order_book),
            self.sentiment_motif.analyze(symbol, price_history),
        ]

        weighted_signal = sum(m.signal * self._weights[m.motif_type] for m in motifs)
        weighted_confidence = sum(m.confidence * self._weights[m.motif_type] for m in motifs)

        return EnsembleResult(
            signal=min(max(weighted_signal, 0.0), 1.0),
            confidence=min(max(weighted_confidence, 0.0), 1.0),
            motifs=motifs,
        )

    def update_weights(self, updates: dict) -> dict[MotifType, float]:
        """
        Merge partial weights into the current weights and renormalise.

        Args:
            updates: Weights keyed by MotifType or motif name

        Returns:
            The new weights

        Raises:
            ValueError: On a negative weight or when the merged sum is zero;
                current weights are left unchanged
        """
        parsed = _parse_weights(updates)

        negative = {k.value: v for k, v in parsed.items() if v < 0}
        if negative:
            raise ValueError(f"Motif weights must be non-negative: {negative}")

        merged = {**self._weights, **parsed}
        total = sum(merged.values())
        if total <= 0:
            raise ValueError("Motif weights must not sum to zero")

        self._weights = {k: v / total for k, v in merged.items()}
        logger.debug(
            "Motif weights updated: "
            + ", ".join(f"{k.value}={v:.3f}" for k, v in self._weights.items())
        )
        return self.get_weights()

    def get_weights(self) -> dict[MotifType, float]:
        """Return a copy of the current weights."""
        return dict(self._weights)

    def set_sentiment_score(self, symbol: str, score: float) -> None:
        """Forward an external sentiment score to the sentiment motif."""
        self.sentiment_motif.set_sentiment_score(symbol, score)

    def dominant_motif(self, result: EnsembleResult) -> MotifType:
        """Motif contributing the largest weighted deviation from neutral."""
        best = max(
            result.motifs,
            key=lambda m: self._weights[m.motif_type] * abs(m.signal - 0.5),
        )
        return best.motif_type
