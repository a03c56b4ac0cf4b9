"""
Market Data Fetcher - Candle/indicator cache in front of the exchange client.

This module provides:
- MarketData: price series, indicators and order book for one symbol
- MarketDataFetcher: cached, poll-interval aware fetch per symbol
- DataUnavailableError, converted to None at the public boundary
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, TYPE_CHECKING

from ..execution.exchange_client import ExchangeError
from .indicator_library import IndicatorLibrary, IndicatorValues, calculate_volatility_score

if TYPE_CHECKING:
    from ..execution.exchange_client import ExchangeClient, OrderBook

logger = logging.getLogger(__name__)


class DataUnavailableError(Exception):
    """Market data or indicators could not be produced."""
    pass


@dataclass
class MarketData:
    """Market data for one symbol at one point in time."""
    symbol: str
    current_price: float
    closes: list[float]
    highs: list[float]
    lows: list[float]
    volumes: list[float]
    indicators: IndicatorValues = field(default_factory=IndicatorValues)
    order_book: Optional['OrderBook'] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def atr(self) -> Optional[float]:
        """Latest ATR(14), if available."""
        return self.indicators.atr14

    @property
    def volatility_score(self) -> float:
        """0-1 volatility score derived from ATR."""
        return calculate_volatility_score(
            self.indicators.atr14,
            self.current_price,
            self.indicators.bollinger_width,
        )

    @property
    def atr_ratio(self) -> float:
        """ATR relative to price, 0.02 when ATR is unavailable."""
        if self.indicators.atr14 and self.current_price > 0:
            return self.indicators.atr14 / self.current_price
        return 0.02

    def to_dict(self) -> dict:
        """Serialize a compact summary."""
        return {
            'symbol': self.symbol,
            'current_price': self.current_price,
            'candles': len(self.closes),
            'indicators': self.indicators.to_dict(),
            'has_order_book': self.order_book is not None,
            'timestamp': self.timestamp.isoformat(),
        }


class MarketDataFetcher:
    """
    Fetches candles through the exchange client and derives indicators.

    Results are cached per symbol for update_interval seconds.
    """

    def __init__(
        self,
        exchange_client: 'ExchangeClient',
        indicator_library: Optional[IndicatorLibrary] = None,
        config: Optional[dict] = None,
    ):
        """
        Initialize MarketDataFetcher.

        Args:
            exchange_client: Exchange adapter
            indicator_library: Indicator calculator
            config: Optional settings (update_interval_seconds, min_candles,
                include_order_book)
        """
        self.exchange_client = exchange_client
        self.indicator_library = indicator_library or IndicatorLibrary()
        self.config = config or {}
        self.update_interval = float(self.config.get('update_interval_seconds', 30))
        self.min_candles = int(self.config.get('min_candles', 20))
        self.include_order_book = self.config.get('include_order_book', True)

        self._cache: dict[str, tuple[MarketData, float]] = {}

    async def fetch_market_data(
        self,
        symbol: str,
        interval: str = '15m',
        limit: int = 100,
    ) -> Optional[MarketData]:
        """
        Fetch market data for a symbol.

        Returns:
            MarketData, or None when data is unavailable (caller skips)
        """
        cached = self._cache.get(symbol)
        if cached and time.monotonic() - cached[1] < self.update_interval:
            return cached[0]

        try:
            data = await self._build_market_data(symbol, interval, limit)
        except DataUnavailableError as e:
            logger.warning(f"Market data unavailable for {symbol}: {e}")
            return None

        self._cache[symbol] = (data, time.monotonic())
        return data

    async def fetch_multiple_symbols(
        self,
        symbols: list[str],
        interval: str = '15m',
        limit: int = 100,
    ) -> dict[str, MarketData]:
        """Fetch several symbols concurrently, omitting unavailable ones."""
        results = await asyncio.gather(
            *(self.fetch_market_data(symbol, interval, limit) for symbol in symbols)
        )
        return {
            symbol: data
            for symbol, data in zip(symbols, results)
            if data is not None
        }

    def get_cached_data(self, symbol: str) -> Optional[MarketData]:
        """Return the last cached data for a symbol, ignoring age."""
        cached = self._cache.get(symbol)
        return cached[0] if cached else None

    def clear_cache(self, symbol: Optional[str] = None) -> None:
        """Clear the cache for one symbol or all symbols."""
        if symbol is None:
            self._cache.clear()
        else:
            self._cache.pop(symbol, None)

    def set_update_interval(self, seconds: float) -> None:
        """Set the cache lifetime in seconds."""
        if seconds <= 0:
            raise ValueError(f"Update interval must be positive, got {seconds}")
        self.update_interval = float(seconds)

    async def _build_market_data(self, symbol: str, interval: str, limit: int) -> MarketData:
        try:
            candles = await self.exchange_client.fetch_candles(symbol, interval, limit)
        except ExchangeError as e:
            raise DataUnavailableError(f"candle fetch failed: {e}") from e

        if len(candles) < self.min_candles:
            raise DataUnavailableError(
                f"only {len(candles)} candles, need {self.min_candles}"
            )

        closes = [c.close for c in candles]
        highs = [c.high for c in candles]
        lows = [c.low for c in candles]
        volumes = [c.volume for c in candles]

        current_price = closes[-1]
        if current_price <= 0:
            raise DataUnavailableError(f"invalid price {current_price}")

        order_book = None
        if self.include_order_book:
            try:
                order_book = await self.exchange_client.fetch_order_book(symbol)
            except ExchangeError as e:
                logger.debug(f"Order book unavailable for {symbol}: {e}")

        indicators = self.indicator_library.compute(closes, highs, lows)

        return MarketData(
            symbol=symbol,
            current_price=current_price,
            closes=closes,
            highs=highs,
            lows=lows,
            volumes=volumes,
            indicators=indicators,
            order_book=order_book,
        )
