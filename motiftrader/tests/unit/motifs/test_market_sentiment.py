"""
Unit tests for the Market Sentiment Analyzer.

Tests validate:
- Signal and confidence from fear & greed and BTC dominance
- Position-size risk adjustment table
- Neutral result without market intelligence
"""

import pytest

from motiftrader.src.execution.market_intelligence import MarketIntelligence
from motiftrader.src.motifs.market_sentiment import MarketSentimentAnalyzer, neutral_sentiment


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def analyzer() -> MarketSentimentAnalyzer:
    return MarketSentimentAnalyzer()


# =============================================================================
# Analysis Tests
# =============================================================================

class TestAnalyze:
    """Test sentiment derivation."""

    def test_extreme_fear(self, analyzer):
        intel = MarketIntelligence(fear_greed_index=20, btc_dominance=42.0,
                                   fear_greed_trend="extreme_fear")
        result = analyzer.analyze(intel)

        assert result.signal == pytest.approx((-0.6 * 0.6 + -0.4 * 0.4) * 0.3)
        assert result.confidence == pytest.approx(0.65)
        assert result.risk_adjustment == 1.2
        assert result.details['trend'] == "extreme_fear"
        assert result.motif_score == pytest.approx(0.5 + result.signal * 0.5)

    def test_neutral_dominance_and_index(self, analyzer):
        result = analyzer.analyze(MarketIntelligence(fear_greed_index=50, btc_dominance=50.0))

        assert result.signal == pytest.approx(0.0)
        assert result.confidence == pytest.approx(0.5)
        assert result.risk_adjustment == 1.0

    def test_none_is_neutral(self, analyzer):
        result = analyzer.analyze(None)

        assert result.signal == 0.0
        assert result.risk_adjustment == 1.0
        assert result.to_dict() == neutral_sentiment().to_dict()


# =============================================================================
# Risk Adjustment Tests
# =============================================================================

class TestRiskAdjustment:
    """Test the fear & greed sizing multiplier."""

    @pytest.mark.parametrize("index,expected", [
        (5, 1.2),
        (20, 1.2),
        (21, 0.9),
        (40, 0.9),
        (60, 1.0),
        (80, 0.7),
        (89, 0.7),
        (90, 0.5),
        (100, 0.5),
    ])
    def test_table(self, index, expected):
        assert MarketSentimentAnalyzer.risk_adjustment(index) == expected
