"""
Data module - Market data, indicators and trade persistence.

Components:
- IndicatorLibrary: EMA/RSI/MACD/Bollinger/ATR/Stochastic (numpy)
- MarketDataFetcher: cached candle + indicator + order book fetch
- TradeStore: in-memory and PostgreSQL trade persistence
"""

from .indicator_library import (
    IndicatorLibrary,
    IndicatorValues,
    calculate_volatility_score,
    calculate_liquidity_density,
)
from .market_data import (
    MarketData,
    MarketDataFetcher,
    DataUnavailableError,
)
from .trade_store import (
    TradeStore,
    InMemoryTradeStore,
    PostgresTradeStore,
)

__all__ = [
    'IndicatorLibrary',
    'IndicatorValues',
    'calculate_volatility_score',
    'calculate_liquidity_density',
    'MarketData',
    'MarketDataFetcher',
    'DataUnavailableError',
    'TradeStore',
    'InMemoryTradeStore',
    'PostgresTradeStore',
]
