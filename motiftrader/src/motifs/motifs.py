"""
Motif Scorers - Heuristic signal generators for the motif ensemble.

Each motif maps indicator/price inputs to:
- signal: 0 = strong short, 0.5 = neutral, 1 = strong long
- confidence: 0-1, grows with the amount of input available

Motifs:
- TrendMotif: EMA20/EMA50 alignment with MACD confirmation
- MomentumMotif: RSI buckets blended with the stochastic oscillator
- VolatilityMotif: ATR volatility score dampened around neutral
- SentimentMotif: price-change sentiment blended with an external score
"""

import logging
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, TYPE_CHECKING

from ..data.indicator_library import (
    IndicatorValues,
    calculate_volatility_score,
    calculate_liquidity_density,
)

if TYPE_CHECKING:
    from ..execution.exchange_client import OrderBook

logger = logging.getLogger(__name__)


class MotifType(Enum):
    """Motif taxonomy."""
    TREND = "trend"
    MOMENTUM = "momentum"
    VOLATILITY = "volatility"
    SENTIMENT = "sentiment"


@dataclass
class MotifSignal:
    """Output of one motif for one analysis call."""
    motif_id: str
    motif_type: MotifType
    signal: float
    confidence: float
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return {
            'motif_id': self.motif_id,
            'motif_type': self.motif_type.value,
            'signal': round(self.signal, 4),
            'confidence': round(self.confidence, 4),
            'details': self.details,
            'timestamp': self.timestamp.isoformat(),
        }


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return min(max(value, low), high)


class TrendMotif:
    """EMA alignment trend detector."""

    def __init__(self):
        self.motif_id = str(uuid.uuid4())

    def analyze(self, indicators: IndicatorValues, price: float) -> MotifSignal:
        return MotifSignal(
            motif_id=self.motif_id,
            motif_type=MotifType.TREND,
            signal=self._calculate_signal(indicators, price),
            confidence=self._calculate_confidence(indicators),
            details={
                'ema20': indicators.ema20,
                'ema50': indicators.ema50,
                'macd_histogram': indicators.macd_histogram,
            },
        )

    def _calculate_signal(self, indicators: IndicatorValues, price: float) -> float:
        if not indicators.ema20 or not indicators.ema50:
            return 0.5

        ema20_above = indicators.ema20 > indicators.ema50
        price_above_ema = price > indicators.ema20

        if ema20_above and price_above_ema:
            signal = 0.8 + (0.2 if indicators.ema20 > price else 0.0)
        elif not ema20_above and not price_above_ema:
            signal = 0.2 - (0.2 if indicators.ema20 < price else 0.0)
        elif ema20_above:
            signal = 0.6
        else:
            signal = 0.4

        histogram = indicators.macd_histogram
        if histogram is not None:
            if histogram > 0 and signal > 0.5:
                signal += 0.05
            if histogram < 0 and signal < 0.5:
                signal -= 0.05

        return _clamp(signal)

    def _calculate_confidence(self, indicators: IndicatorValues) -> float:
        confidence = 0.5
        if indicators.ema20 and indicators.ema50:
            confidence += 0.3
        if indicators.macd_histogram is not None:
            confidence += 0.2
        return min(confidence, 1.0)


class MomentumMotif:
    """RSI and stochastic momentum detector."""

    # (lower bound exclusive, signal), checked top-down
    RSI_BUCKETS = [(70, 0.7), (60, 0.65), (50, 0.55), (40, 0.45), (30, 0.35)]

    def __init__(self):
        self.motif_id = str(uuid.uuid4())

    def analyze(self, indicators: IndicatorValues) -> MotifSignal:
        return MotifSignal(
            motif_id=self.motif_id,
            motif_type=MotifType.MOMENTUM,
            signal=self._calculate_signal(indicators),
            confidence=self._calculate_confidence(indicators),
            details={
                'rsi14': indicators.rsi14,
                'stochastic_k': indicators.stochastic_k,
                'stochastic_d': indicators.stochastic_d,
            },
        )

    def _calculate_signal(self, indicators: IndicatorValues) -> float:
        signal = 0.5

        if indicators.rsi14 is not None:
            signal = 0.3
            for bound, bucket_signal in self.RSI_BUCKETS:
                if indicators.rsi14 > bound:
                    signal = bucket_signal
                    break

        if indicators.stochastic_k is not None and indicators.stochastic_d is not None:
            stochastic_avg = (indicators.stochastic_k + indicators.stochastic_d) / 200
            signal = signal * 0.7 + stochastic_avg * 0.3

        return _clamp(signal)

    def _calculate_confidence(self, indicators: IndicatorValues) -> float:
        confidence = 0.3
        if indicators.rsi14 is not None:
            confidence += 0.4
        if indicators.stochastic_k is not None:
            confidence += 0.2
        return min(confidence, 1.0)


class VolatilityMotif:
    """
    ATR volatility motif.

    Volatility carries no direction, so the score is squeezed towards 0.5.
    """

    def __init__(self):
        self.motif_id = str(uuid.uuid4())

    def analyze(
        self,
        indicators: IndicatorValues,
        price: float,
        order_book: Optional['OrderBook'] = None,
    ) -> MotifSignal:
        signal = self._calculate_signal(indicators, price)

        details = {
            'atr14': indicators.atr14,
            'bollinger_width': indicators.bollinger_width,
            'volatility_level': 'low' if signal < 0.4 else 'medium' if signal < 0.7 else 'high',
        }
        if order_book is not None:
            details['liquidity_density'] = calculate_liquidity_density(order_book.bids, order_book.asks)

        return MotifSignal(
            motif_id=self.motif_id,
            motif_type=MotifType.VOLATILITY,
            signal=signal,
            confidence=self._calculate_confidence(indicators),
            details=details,
        )

    def _calculate_signal(self, indicators: IndicatorValues, price: float) -> float:
        if not indicators.atr14:
            return 0.5

        score = calculate_volatility_score(indicators.atr14, price, indicators.bollinger_width)
        return _clamp(0.5 + (score - 0.5) * 0.3)

    def _calculate_confidence(self, indicators: IndicatorValues) -> float:
        confidence = 0.4
        if indicators.atr14:
            confidence += 0.3
        if indicators.bollinger_upper:
            confidence += 0.3
        return min(confidence, 1.0)


class SentimentMotif:
    """
    Price-change sentiment blended with an externally supplied score.

    The external score cache is the only state; it is written through
    set_sentiment_score() and defaults to neutral (0.5).
    """

    def __init__(self):
        self.motif_id = str(uuid.uuid4())
        self._sentiment_cache: dict[str, float] = {}

    def analyze(self, symbol: str, price_history: list[float]) -> MotifSignal:
        if len(price_history) > 1 and price_history[0]:
            change_percent = (price_history[-1] - price_history[0]) / price_history[0] * 100
        else:
            change_percent = 0.0

        return MotifSignal(
            motif_id=self.motif_id,
            motif_type=MotifType.SENTIMENT,
            signal=self._calculate_signal(symbol, price_history),
            confidence=self._calculate_confidence(price_history),
            details={
                'price_change_percent': change_percent,
                'momentum': self._price_momentum(price_history),
                'external_score': self._sentiment_cache.get(symbol, 0.5),
            },
        )

    def set_sentiment_score(self, symbol: str, score: float) -> None:
        """Inject an external sentiment score, clamped to [0, 1]."""
        self._sentiment_cache[symbol] = _clamp(score)

    def get_sentiment_score(self, symbol: str) -> float:
        return self._sentiment_cache.get(symbol, 0.5)

    def _calculate_signal(self, symbol: str, price_history: list[float]) -> float:
        if len(price_history) < 2 or not price_history[0]:
            return 0.5

        price_change = (price_history[-1] - price_history[0]) / price_history[0]
        score = 0.5 + math.tanh(price_change * 10) * 0.3
        score = score * 0.6 + self._sentiment_cache.get(symbol, 0.5) * 0.4
        return _clamp(score)

    def _calculate_confidence(self, price_history: list[float]) -> float:
        return min(0.3 + (len(price_history) / 100) * 0.3, 0.7)

    def _price_momentum(self, price_history: list[float]) -> float:
        # Change over the last 10 prices
        if len(price_history) < 2:
            return 0.0
        reference = price_history[max(0, len(price_history) - 10)]
        if not reference:
            return 0.0
        return (price_history[-1] - reference) / reference
