"""
Execution module - Exchange access and trading mode control.

Components:
- ExchangeClient: ccxt adapter with demo-mode fallback
- TradingMode: Demo vs Live mode resolution
- MarketIntelligenceClient: fear & greed / global market metrics
"""

from .trading_mode import (
    TradingMode,
    TradingModeError,
    get_trading_mode,
    validate_trading_mode_on_startup,
    is_demo_mode,
)
from .exchange_client import (
    ExchangeClient,
    ExchangeError,
    ExchangeTimeoutError,
    ExchangeAuthError,
    ExchangeUnavailableError,
    Candle,
    OrderBook,
    OrderResult,
    TickerStats,
)
from .market_intelligence import (
    MarketIntelligence,
    MarketIntelligenceClient,
    fear_greed_trend,
)

__all__ = [
    # Trading Mode
    'TradingMode',
    'TradingModeError',
    'get_trading_mode',
    'validate_trading_mode_on_startup',
    'is_demo_mode',
    # Exchange
    'ExchangeClient',
    'ExchangeError',
    'ExchangeTimeoutError',
    'ExchangeAuthError',
    'ExchangeUnavailableError',
    'Candle',
    'OrderBook',
    'OrderResult',
    'TickerStats',
    # Market Intelligence
    'MarketIntelligence',
    'MarketIntelligenceClient',
    'fear_greed_trend',
]
