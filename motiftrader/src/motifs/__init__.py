"""
Motifs module - Heuristic signal generators and their weighted ensemble.

Components:
- TrendMotif, MomentumMotif, VolatilityMotif, SentimentMotif
- MotifEnsemble: owns the normalised motif weights
- MarketSentimentAnalyzer: fear & greed risk multiplier
"""

from .motifs import (
    MotifType,
    MotifSignal,
    TrendMotif,
    MomentumMotif,
    VolatilityMotif,
    SentimentMotif,
)
from .ensemble import (
    MotifEnsemble,
    EnsembleResult,
    DEFAULT_WEIGHTS,
)
from .market_sentiment import (
    MarketSentimentAnalyzer,
    SentimentSignal,
    neutral_sentiment,
)

__all__ = [
    'MotifType',
    'MotifSignal',
    'TrendMotif',
    'MomentumMotif',
    'VolatilityMotif',
    'SentimentMotif',
    'MotifEnsemble',
    'EnsembleResult',
    'DEFAULT_WEIGHTS',
    'MarketSentimentAnalyzer',
    'SentimentSignal',
    'neutral_sentiment',
]
