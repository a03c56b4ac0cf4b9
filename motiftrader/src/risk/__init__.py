"""
MotifTrader Risk Management Module.

Contains rule-based risk management:
- RiskManager: position book, sizing, stops, profit tiers, metrics
- DynamicRiskManager: volatility-scaled per-symbol risk parameters
"""

from .risk_manager import (
    RiskManager,
    RiskConfigurationError,
    Position,
    PositionSide,
    PositionStatus,
    ClosedTrade,
    TradeValidation,
    ProfitTarget,
    CloseResult,
    PositionUpdate,
    RiskMetrics,
    AccountState,
)
from .dynamic_risk import (
    DynamicRiskManager,
    DynamicRiskConfig,
    PortfolioExposure,
)

__all__ = [
    'RiskManager',
    'RiskConfigurationError',
    'Position',
    'PositionSide',
    'PositionStatus',
    'ClosedTrade',
    'TradeValidation',
    'ProfitTarget',
    'CloseResult',
    'PositionUpdate',
    'RiskMetrics',
    'AccountState',
    'DynamicRiskManager',
    'DynamicRiskConfig',
    'PortfolioExposure',
]
