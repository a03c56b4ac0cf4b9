"""
Dynamic Risk Manager - Volatility-scaled risk parameters per symbol.

Higher volatility gives a smaller position, a wider (capped) stop and a
modestly wider take-profit. Portfolio risk is the root sum of squared
position risks.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

from .risk_manager import PositionSide

logger = logging.getLogger(__name__)


@dataclass
class DynamicRiskConfig:
    """Risk parameters for one symbol."""
    symbol: str
    volatility: float
    max_position_size: float
    stop_loss_percentage: float
    take_profit_percentage: float
    allocation: float
    max_position_value: float = 0.0

    def stop_price(self, entry_price: float, side: PositionSide) -> float:
        """Stop on the loss side of entry."""
        return round(entry_price * (1 - side.direction * self.stop_loss_percentage), 8)

    def take_profit_price(self, entry_price: float, side: PositionSide) -> float:
        """Take-profit on the profit side of entry."""
        return round(entry_price * (1 + side.direction * self.take_profit_percentage), 8)

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return {
            'symbol': self.symbol,
            'volatility': self.volatility,
            'max_position_size': self.max_position_size,
            'stop_loss_percentage': self.stop_loss_percentage,
            'take_profit_percentage': self.take_profit_percentage,
            'allocation': self.allocation,
            'max_position_value': self.max_position_value,
        }


@dataclass
class PortfolioExposure:
    """Position input for portfolio risk calculations."""
    symbol: str
    volatility: float
    size: float

    @property
    def risk(self) -> float:
        return self.volatility * self.size


class DynamicRiskManager:
    """Scales per-symbol risk to volatility."""

    def __init__(self, config: Optional[dict] = None):
        """
        Initialize DynamicRiskManager.

        Args:
            config: dynamic_risk section of rotation.yaml
        """
        self.config = config or {}
        self.base_max_position = self.config.get('base_max_position', 0.10)
        self.base_stop_loss = self.config.get('base_stop_loss', 0.05)
        self.base_take_profit = self.config.get('base_take_profit', 0.10)
        self.max_stop_loss = self.config.get('max_stop_loss', 0.15)
        self.reference_volatility = self.config.get('reference_volatility', 0.10)

    def calculate_dynamic_risk(
        self,
        symbol: str,
        volatility: float,
        portfolio_size: float,
    ) -> DynamicRiskConfig:
        """
        Derive risk parameters from volatility.

        Args:
            symbol: Trading pair
            volatility: Return volatility (about 0.1 is the reference level)
            portfolio_size: Account balance used for max_position_value

        Returns:
            DynamicRiskConfig
        """
        ratio = min(max(volatility, 0.0) / self.reference_volatility, 2.0)

        max_position = self.base_max_position * (1 / (1 + ratio))
        stop_loss = min(self.base_stop_loss * (1 + ratio), self.max_stop_loss)
        take_profit = self.base_take_profit * (1 + ratio * 0.5)

        return DynamicRiskConfig(
            symbol=symbol,
            volatility=volatility,
            max_position_size=max_position,
            stop_loss_percentage=stop_loss,
            take_profit_percentage=take_profit,
            allocation=max_position,
            max_position_value=portfolio_size * max_position,
        )

    @staticmethod
    def adjust_allocation_for_portfolio_risk(current_risk: float, target_risk: float) -> float:
        """Allocation multiplier: 0.5 above target, 1.5 under half the target, else 1."""
        if current_risk > target_risk:
            return 0.5
        if current_risk < target_risk * 0.5:
            return 1.5
        return 1.0

    @staticmethod
    def calculate_portfolio_risk(positions: list[PortfolioExposure]) -> float:
        """Root sum of squared position risks."""
        if not positions:
            return 0.0
        return math.sqrt(sum(p.risk ** 2 for p in positions))

    def get_reduce_positions_recommendation(
        self,
        positions: list[PortfolioExposure],
        risk_threshold: float,
    ) -> list[str]:
        """
        Symbols to reduce, largest risk contributors first.

        Adds symbols until the remaining portfolio risk is within the
        threshold. Empty when already within it.
        """
        remaining = sorted(positions, key=lambda p: p.risk ** 2, reverse=True)
        recommendations = []

        while remaining and self.calculate_portfolio_risk(remaining) > risk_threshold:
            largest = remaining.pop(0)
            recommendations.append(largest.symbol)

        if recommendations:
            logger.info(f"Portfolio risk above {risk_threshold}: reduce {recommendations}")
        return recommendations
