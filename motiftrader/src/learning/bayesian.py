"""
Bayesian Learning - Beta-Binomial success-rate estimation per motif.

Each motif type starts from a uniform Beta(1, 1) prior. Posterior means are
combined with equal priors (0.25) into candidate ensemble weights.
"""

import logging

from ..motifs.motifs import MotifType

logger = logging.getLogger(__name__)


class BayesianLearning:
    """Tracks success/failure counts per motif type."""

    def __init__(self):
        self._success_counts: dict[MotifType, int] = {m: 0 for m in MotifType}
        self._failure_counts: dict[MotifType, int] = {m: 0 for m in MotifType}
        self._priors: dict[MotifType, float] = {m: 1.0 / len(MotifType) for m in MotifType}

    def record_outcome(self, motif_type: MotifType, success: bool) -> None:
        """Count one realised trade outcome for a motif."""
        if success:
            self._success_counts[motif_type] += 1
        else:
            self._failure_counts[motif_type] += 1

    def estimate_success_rate(self, motif_type: MotifType) -> float:
        """Posterior mean (1 + s) / (2 + s + f)."""
        alpha = 1 + self._success_counts[motif_type]
        beta = 1 + self._failure_counts[motif_type]
        return alpha / (alpha + beta)

    def update_weights(self) -> dict[MotifType, float]:
        """
        Compute normalised posterior weights prior * success rate.

        Returns:
            Weights summing to 1
        """
        likelihoods = {
            m: self._priors[m] * self.estimate_success_rate(m)
            for m in MotifType
        }
        total = sum(likelihoods.values())
        if total <= 0:
            return dict(self._priors)
        return {m: v / total for m, v in likelihoods.items()}

    def get_stats(self) -> dict:
        """Counts and success rates keyed by motif name."""
        return {
            'success_counts': {m.value: c for m, c in self._success_counts.items()},
            'failure_counts': {m.value: c for m, c in self._failure_counts.items()},
            'success_rates': {m.value: self.estimate_success_rate(m) for m in MotifType},
        }
