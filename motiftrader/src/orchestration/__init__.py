"""
MotifTrader Orchestration Module.

Contains the trading loops:
- TradingBot: single-symbol motif ensemble bot
- MultiStrategyTradingBot: multi-symbol rotation bot
"""

from .base_bot import BaseBot
from .trading_bot import TradingBot
from .multi_strategy_bot import MultiStrategyTradingBot

__all__ = [
    'BaseBot',
    'TradingBot',
    'MultiStrategyTradingBot',
]
