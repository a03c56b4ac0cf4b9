"""
Unit tests for the Motif Ensemble.

Tests validate:
- Weighted signal and confidence aggregation
- Weights non-negative and summing to 1 after every update
- Invalid updates rejected with prior weights kept
- Dominant motif selection and sentiment forwarding
"""

import pytest

from motiftrader.src.data.indicator_library import IndicatorValues
from motiftrader.src.motifs.ensemble import DEFAULT_WEIGHTS, MotifEnsemble
from motiftrader.src.motifs.motifs import MotifType


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def ensemble() -> MotifEnsemble:
    return MotifEnsemble()


# =============================================================================
# Aggregation Tests
# =============================================================================

class TestAnalyze:
    """Test weighted aggregation."""

    def test_bullish_snapshot(self, ensemble, bullish_indicators):
        result = ensemble.analyze(bullish_indicators, 100.0, "ETH/USDT", None, [100.0])

        momentum = 0.65 * 0.7 + 0.775 * 0.3
        expected = 0.35 * 0.85 + 0.25 * momentum + 0.20 * 0.47 + 0.20 * 0.5
        assert result.signal == pytest.approx(expected)
        assert result.confidence == pytest.approx(0.35 + 0.25 * 0.9 + 0.20 + 0.20 * 0.303)
        assert len(result.motifs) == 4

    def test_empty_indicators_are_neutral(self, ensemble):
        result = ensemble.analyze(IndicatorValues(), 100.0, "ETH/USDT", None, [])
        assert result.signal == pytest.approx(0.5)

    def test_get_motif(self, ensemble, bullish_indicators):
        result = ensemble.analyze(bullish_indicators, 100.0, "ETH/USDT", None, [100.0])

        assert result.get_motif(MotifType.TREND).signal == pytest.approx(0.85)
        assert result.to_dict()['motifs'][0]['motif_type'] == "trend"

    def test_dominant_motif(self, ensemble, bullish_indicators):
        result = ensemble.analyze(bullish_indicators, 100.0, "ETH/USDT", None, [100.0])
        assert ensemble.dominant_motif(result) == MotifType.TREND

    def test_sentiment_score_forwarded(self, ensemble):
        ensemble.set_sentiment_score("ETH/USDT", 1.0)
        result = ensemble.analyze(IndicatorValues(), 100.0, "ETH/USDT", None, [100.0, 100.0])

        assert result.get_motif(MotifType.SENTIMENT).signal == pytest.approx(0.7)


# =============================================================================
# Weight Tests
# =============================================================================

class TestWeights:
    """Test weight ownership and normalisation."""

    def test_defaults(self, ensemble):
        assert ensemble.get_weights() == DEFAULT_WEIGHTS

    def test_initial_weights_with_string_keys(self):
        ensemble = MotifEnsemble({'trend': 1, 'momentum': 1, 'volatility': 1, 'sentiment': 1})
        assert all(w == pytest.approx(0.25) for w in ensemble.get_weights().values())

    def test_partial_update_is_merged_and_normalised(self, ensemble):
        weights = ensemble.update_weights({MotifType.TREND: 0.5})

        assert weights[MotifType.TREND] == pytest.approx(0.5 / 1.15)
        assert weights[MotifType.MOMENTUM] == pytest.approx(0.25 / 1.15)
        assert sum(weights.values()) == pytest.approx(1.0)

    def test_weights_always_valid(self, ensemble):
        for update in ({'trend': 3.0}, {'sentiment': 0.0}, {'momentum': 0.01, 'volatility': 7}):
            weights = ensemble.update_weights(update)
            assert all(w >= 0 for w in weights.values())
            assert sum(weights.values()) == pytest.approx(1.0)

    def test_negative_weight_rejected(self, ensemble):
        before = ensemble.get_weights()
        with pytest.raises(ValueError):
            ensemble.update_weights({MotifType.TREND: -0.1})
        assert ensemble.get_weights() == before

    def test_zero_sum_rejected(self, ensemble):
        before = ensemble.get_weights()
        with pytest.raises(ValueError):
            ensemble.update_weights({m: 0.0 for m in MotifType})
        assert ensemble.get_weights() == before

    def test_unknown_motif_rejected(self, ensemble):
        with pytest.raises(ValueError):
            ensemble.update_weights({'orderflow': 0.3})

    def test_get_weights_returns_copy(self, ensemble):
        weights = ensemble.get_weights()
        weights[MotifType.TREND] = 5.0
        assert ensemble.get_weights()[MotifType.TREND] == pytest.approx(0.35)
