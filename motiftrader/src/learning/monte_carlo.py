"""
Monte Carlo Simulation - Random-walk price scenarios for robustness stats.

Each scenario is a multiplicative walk:

    price *= 1 + drift + (u - 0.5) * volatility,   u ~ U[0, 1)

Used for robustness reporting, not for position sizing.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

logger = logging.getLogger(__name__)


@dataclass
class SimulationSummary:
    """Distribution of simulated final prices."""
    mean: float
    median: float
    stddev: float
    min: float
    max: float
    percentile_05: float
    percentile_95: float
    scenarios: list[float] = field(default_factory=list)

    def to_dict(self, include_scenarios: bool = False) -> dict:
        """Serialize to dictionary."""
        result = {
            'mean': self.mean,
            'median': self.median,
            'stddev': self.stddev,
            'min': self.min,
            'max': self.max,
            'percentile_05': self.percentile_05,
            'percentile_95': self.percentile_95,
            'scenario_count': len(self.scenarios),
        }
        if include_scenarios:
            result['scenarios'] = list(self.scenarios)
        return result


class MonteCarloSimulation:
    """
    Simulates independent price paths.

    Args:
        rng: numpy Generator (seed it for reproducible results)
        time_steps: Steps per path
        drift: Per-step drift
    """

    def __init__(
        self,
        rng: Optional[np.random.Generator] = None,
        time_steps: int = 100,
        drift: float = 0.0001,
    ):
        self._rng = rng if rng is not None else np.random.default_rng()
        self.time_steps = time_steps
        self.drift = drift

    def simulate_scenarios(
        self,
        base_price: float,
        volatility: float,
        scenarios: int = 1000,
        time_steps: Optional[int] = None,
        drift: Optional[float] = None,
    ) -> SimulationSummary:
        """
        Run the simulation.

        Args:
            base_price: Starting price
            volatility: Per-step shock amplitude
            scenarios: Number of paths
            time_steps: Override steps per path
            drift: Override per-step drift

        Returns:
            SimulationSummary of final prices
        """
        if scenarios <= 0:
            raise ValueError(f"Scenario count must be positive, got {scenarios}")

        steps = self.time_steps if time_steps is None else time_steps
        step_drift = self.drift if drift is None else drift

        shocks = self._rng.random((scenarios, steps))
        factors = 1.0 + step_drift + (shocks - 0.5) * volatility
        finals = base_price * np.prod(factors, axis=1)

        ordered = np.sort(finals)
        n = len(ordered)

        return SimulationSummary(
            mean=float(np.mean(ordered)),
            median=float(ordered[n // 2]),
            stddev=float(np.std(ordered)),
            min=float(ordered[0]),
            max=float(ordered[-1]),
            percentile_05=float(ordered[int(n * 0.05)]),
            percentile_95=float(ordered[min(int(n * 0.95), n - 1)]),
            scenarios=ordered.tolist(),
        )
