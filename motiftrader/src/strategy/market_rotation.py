"""
Market Rotation Engine - Liquidity ranking and allocation across symbols.

Refreshes 24h ticker statistics, scores liquidity from volume and
volatility, ranks volatility as a percentile of the refreshed universe
and produces capped allocation weights.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from ..execution.exchange_client import ExchangeClient, TickerStats

logger = logging.getLogger(__name__)


@dataclass
class MarketRotationData:
    """Rotation statistics for one symbol."""
    symbol: str
    volume_24h: float
    volatility: float
    volatility_percentile: float
    price_change_24h: float
    liquidity_score: float
    last_price: float = 0.0
    allocation_weight: float = 0.0

    def to_dict(self) -> dict:
        return {
            'symbol': self.symbol,
            'volume_24h': self.volume_24h,
            'volatility': round(self.volatility, 6),
            'volatility_percentile': round(self.volatility_percentile, 2),
            'price_change_24h': self.price_change_24h,
            'liquidity_score': round(self.liquidity_score, 4),
            'last_price': self.last_price,
            'allocation_weight': round(self.allocation_weight, 4),
        }


class MarketRotationEngine:
    """Ranks a symbol universe by liquidity."""

    def __init__(
        self,
        exchange_client: 'ExchangeClient',
        symbols: list[str],
        config: Optional[dict] = None,
    ):
        """
        Initialize MarketRotationEngine.

        Args:
            exchange_client: Source of 24h ticker statistics
            symbols: Symbol universe
            config: rotation section of rotation.yaml
        """
        self.config = config or {}
        self.exchange_client = exchange_client
        self.symbols = list(symbols)

        self.volume_normalizer = self.config.get('volume_normalizer', 1e9)
        self.volume_weight = self.config.get('volume_weight', 0.7)
        self.volatility_weight = self.config.get('volatility_weight', 0.3)
        self.max_allocation = self.config.get('max_allocation', 0.2)

        self._market_data: dict[str, MarketRotationData] = {}

    async def fetch_market_data(self) -> list[MarketRotationData]:
        """
        Refresh statistics for every symbol.

        A symbol whose fetch fails keeps its previous entry (if any).

        Returns:
            Entries refreshed in this call
        """
        results = await asyncio.gather(
            *(self.exchange_client.fetch_ticker_stats(s) for s in self.symbols),
            return_exceptions=True,
        )

        stats: list['TickerStats'] = []
        for symbol, result in zip(self.symbols, results):
            if isinstance(result, Exception):
                logger.warning(f"Rotation stats unavailable for {symbol}: {result}")
                continue
            stats.append(result)

        volatilities = sorted(s.volatility for s in stats)
        refreshed = []
        for s in stats:
            data = MarketRotationData(
                symbol=s.symbol,
                volume_24h=s.quote_volume,
                volatility=s.volatility,
                volatility_percentile=self.get_percentile(s.volatility, volatilities),
                price_change_24h=s.change_percent,
                liquidity_score=self.calculate_liquidity(s.quote_volume, s.volatility),
                last_price=s.last_price,
            )
            self._market_data[s.symbol] = data
            refreshed.append(data)

        logger.debug(f"Rotation refreshed {len(refreshed)}/{len(self.symbols)} symbols")
        return refreshed

    @staticmethod
    def get_percentile(volatility: float, universe: list[float]) -> float:
        """Rank of volatility within the sorted universe, as a percentage."""
        if not universe:
            return 0.0
        return universe.index(volatility) / len(universe) * 100

    def calculate_liquidity(self, volume_24h: float, volatility: float) -> float:
        """High volume and manageable volatility score high."""
        volume_score = min(volume_24h / self.volume_normalizer, 1.0)
        volatility_score = max(1 - volatility * 10, 0.0)
        return volume_score * self.volume_weight + volatility_score * self.volatility_weight

    def rebalance_allocations(self) -> list[MarketRotationData]:
        """
        80% liquidity-weighted plus 20% equal allocation, capped per coin,
        then renormalised to 1.

        Returns:
            Entries sorted by liquidity score, best first
        """
        data = sorted(self._market_data.values(), key=lambda d: d.liquidity_score, reverse=True)
        if not data:
            return []

        total_liquidity = sum(d.liquidity_score for d in data)
        for d in data:
            if total_liquidity > 0:
                weight = d.liquidity_score / total_liquidity * 0.8
            else:
                weight = 0.8 / len(data)
            weight += 0.2 / len(data)
            d.allocation_weight = min(weight, self.max_allocation)

        total_weight = sum(d.allocation_weight for d in data)
        for d in data:
            d.allocation_weight /= total_weight

        return data

    def get_top_coins(self, count: int = 3) -> list[MarketRotationData]:
        return sorted(
            self._market_data.values(), key=lambda d: d.liquidity_score, reverse=True
        )[:count]

    def get_volatility_ranked_coins(self) -> list[MarketRotationData]:
        return sorted(self._market_data.values(), key=lambda d: d.volatility, reverse=True)

    def get_all_market_data(self) -> list[MarketRotationData]:
        return list(self._market_data.values())

    def get_market_data(self, symbol: str) -> Optional[MarketRotationData]:
        return self._market_data.get(symbol)
