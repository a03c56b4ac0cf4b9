"""
Learning module - Adaptive models fed by realised trade outcomes.

Components:
- BayesianLearning: Beta-Binomial motif success rates
- MarkovChain: price-state transitions
- QLearning: tabular action values
- MonteCarloSimulation: price-path robustness statistics
- AdaptiveLearningEngine: orchestrator
"""

from .bayesian import BayesianLearning
from .markov import MarkovChain, PriceState
from .q_learning import QLearning, QAction
from .monte_carlo import MonteCarloSimulation, SimulationSummary
from .engine import AdaptiveLearningEngine, default_action

__all__ = [
    'BayesianLearning',
    'MarkovChain',
    'PriceState',
    'QLearning',
    'QAction',
    'MonteCarloSimulation',
    'SimulationSummary',
    'AdaptiveLearningEngine',
    'default_action',
]
