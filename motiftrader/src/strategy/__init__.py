"""
MotifTrader Strategy Module.

Contains the decision engines:
- StrategyEngine: single-symbol motif ensemble pipeline
- EnsembleStrategyEngine: multi-symbol strategy voting
- MarketRotationEngine: liquidity ranking and allocation
"""

from .strategy_engine import (
    StrategyEngine,
    TradeAction,
    TradeDecision,
    StrategyExecution,
    ExecutionStatus,
)
from .ensemble_engine import (
    EnsembleStrategyEngine,
    StrategyType,
    Signal,
    StrategySignal,
    MotifPattern,
    CoinMetrics,
    RLAgent,
    BayesianUpdater,
    calculate_return_volatility,
)
from .market_rotation import (
    MarketRotationEngine,
    MarketRotationData,
)

__all__ = [
    'StrategyEngine',
    'TradeAction',
    'TradeDecision',
    'StrategyExecution',
    'ExecutionStatus',
    'EnsembleStrategyEngine',
    'StrategyType',
    'Signal',
    'StrategySignal',
    'MotifPattern',
    'CoinMetrics',
    'RLAgent',
    'BayesianUpdater',
    'calculate_return_volatility',
    'MarketRotationEngine',
    'MarketRotationData',
]
