"""
Market Sentiment Analyzer - Fear & greed driven sentiment and risk multiplier.

Turns a MarketIntelligence snapshot into:
- signal in [-1, 1] (extreme fear to extreme greed), heavily dampened
- confidence, higher when fear & greed is extreme
- risk_adjustment, a position-size multiplier in [0.5, 1.2]
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from ..execution.market_intelligence import (
    MarketIntelligence,
    NEUTRAL_BTC_DOMINANCE,
    NEUTRAL_FEAR_GREED,
)

logger = logging.getLogger(__name__)


@dataclass
class SentimentSignal:
    """Market-wide sentiment reading."""
    signal: float = 0.0
    confidence: float = 0.3
    fear_greed_index: float = NEUTRAL_FEAR_GREED
    risk_adjustment: float = 1.0
    details: dict = field(default_factory=dict)

    @property
    def motif_score(self) -> float:
        """Signal mapped onto the motif [0, 1] scale."""
        return 0.5 + self.signal * 0.5

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return {
            'signal': self.signal,
            'confidence': self.confidence,
            'fear_greed_index': self.fear_greed_index,
            'risk_adjustment': self.risk_adjustment,
            'details': self.details,
        }


def neutral_sentiment() -> SentimentSignal:
    """Sentiment used when no market intelligence is available."""
    return SentimentSignal(
        details={
            'trend': 'neutral',
            'btc_dominance': NEUTRAL_BTC_DOMINANCE,
            'market_cap': 0.0,
        },
    )


class MarketSentimentAnalyzer:
    """Derives sentiment and sizing adjustments from market intelligence."""

    def analyze(self, intelligence: Optional[MarketIntelligence]) -> SentimentSignal:
        """
        Analyze a market intelligence snapshot.

        Args:
            intelligence: Snapshot, or None when unavailable

        Returns:
            SentimentSignal (neutral when intelligence is None)
        """
        if intelligence is None:
            return neutral_sentiment()

        index = intelligence.fear_greed_index
        fear_greed_signal = (index - 50) / 50
        dominance_factor = (intelligence.btc_dominance - 50) / 20

        signal = (fear_greed_signal * 0.6 + dominance_factor * 0.4) * 0.3
        confidence = min(0.95, 0.5 + (abs(index - 50) / 100) * 0.5)
        risk_adjustment = self.risk_adjustment(index)

        return SentimentSignal(
            signal=max(-1.0, min(1.0, signal)),
            confidence=max(0.0, min(1.0, confidence)),
            fear_greed_index=index,
            risk_adjustment=risk_adjustment,
            details={
                'trend': intelligence.fear_greed_trend,
                'btc_dominance': intelligence.btc_dominance,
                'market_cap': intelligence.global_market_cap,
            },
        )

    @staticmethod
    def risk_adjustment(fear_greed_index: float) -> float:
        """
        Position-size multiplier for a fear & greed reading.

        Extreme fear sizes up (buy the dip), greed sizes down.
        """
        if fear_greed_index <= 20:
            return 1.2
        if fear_greed_index <= 40:
            return 0.9
        if fear_greed_index >= 90:
            return 0.5
        if fear_greed_index >= 80:
            return 0.7
        return 1.0
