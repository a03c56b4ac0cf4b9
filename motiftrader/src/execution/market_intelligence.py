"""
Market Intelligence Client - Fear & greed and global market metrics.

Sources:
- alternative.me Fear & Greed index (no key required)
- CoinMarketCap global metrics (BTC dominance, total market cap) when an
  API key is configured

Results are cached (default 5 minutes). Missing values fall back to
neutral defaults (fear & greed 50, BTC dominance 42).
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

import aiohttp

logger = logging.getLogger(__name__)

FEAR_GREED_URL = "https://api.alternative.me/fng/?limit=1"
CMC_GLOBAL_METRICS_URL = "https://pro-api.coinmarketcap.com/v1/global-metrics/quotes/latest"

NEUTRAL_FEAR_GREED = 50
NEUTRAL_BTC_DOMINANCE = 42.0


def fear_greed_trend(index: float) -> str:
    """Classify a fear & greed index value."""
    if index <= 25:
        return "extreme_fear"
    if index <= 45:
        return "fear"
    if index <= 55:
        return "neutral"
    if index <= 75:
        return "greed"
    return "extreme_greed"


@dataclass
class MarketIntelligence:
    """Market-wide sentiment snapshot."""
    fear_greed_index: float = NEUTRAL_FEAR_GREED
    btc_dominance: float = NEUTRAL_BTC_DOMINANCE
    global_market_cap: float = 0.0
    fear_greed_trend: str = "neutral"
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return {
            'fear_greed_index': self.fear_greed_index,
            'btc_dominance': self.btc_dominance,
            'global_market_cap': self.global_market_cap,
            'fear_greed_trend': self.fear_greed_trend,
            'timestamp': self.timestamp.isoformat(),
        }


class MarketIntelligenceClient:
    """
    Fetches and caches market-wide sentiment data.

    get_market_intelligence() never raises; it returns None only when no
    source answered and nothing is cached.
    """

    def __init__(self, config: Optional[dict] = None):
        """
        Initialize MarketIntelligenceClient.

        Args:
            config: market_intelligence section of exchange.yaml
        """
        self.config = config or {}
        self.api_key = self.config.get('coinmarketcap_api_key') or None
        self.cache_seconds = float(self.config.get('cache_seconds', 300))
        self.timeout = aiohttp.ClientTimeout(total=self.config.get('timeout_seconds', 5))

        self._cached: Optional[MarketIntelligence] = None
        self._cached_at: float = 0.0

    async def get_market_intelligence(self) -> Optional[MarketIntelligence]:
        """
        Get the current market intelligence snapshot.

        Returns:
            MarketIntelligence or None if unavailable
        """
        if self._cached and time.monotonic() - self._cached_at < self.cache_seconds:
            return self._cached

        async with aiohttp.ClientSession(timeout=self.timeout) as session:
            fear_greed = await self._fetch_fear_greed(session)
            global_metrics = await self._fetch_global_metrics(session) if self.api_key else None

        if fear_greed is None and global_metrics is None:
            logger.warning("Market intelligence unavailable, no source answered")
            return self._cached

        index = fear_greed if fear_greed is not None else NEUTRAL_FEAR_GREED
        dominance, market_cap = global_metrics or (NEUTRAL_BTC_DOMINANCE, 0.0)

        intelligence = MarketIntelligence(
            fear_greed_index=index,
            btc_dominance=dominance,
            global_market_cap=market_cap,
            fear_greed_trend=fear_greed_trend(index),
        )
        self._cached = intelligence
        self._cached_at = time.monotonic()
        logger.debug(f"Market intelligence refreshed: {intelligence.to_dict()}")
        return intelligence

    def clear_cache(self) -> None:
        """Drop the cached snapshot."""
        self._cached = None
        self._cached_at = 0.0

    async def _fetch_fear_greed(self, session: aiohttp.ClientSession) -> Optional[float]:
        try:
            async with session.get(FEAR_GREED_URL) as response:
                if response.status != 200:
                    logger.warning(f"Fear & greed API error: {response.status}")
                    return None
                payload = await response.json(content_type=None)
                return float(payload['data'][0]['value'])
        except (aiohttp.ClientError, asyncio.TimeoutError, KeyError, IndexError, TypeError, ValueError) as e:
            logger.warning(f"Fear & greed fetch failed: {e}")
            return None

    async def _fetch_global_metrics(
        self,
        session: aiohttp.ClientSession,
    ) -> Optional[tuple[float, float]]:
        headers = {'X-CMC_PRO_API_KEY': self.api_key, 'Accept': 'application/json'}
        try:
            async with session.get(CMC_GLOBAL_METRICS_URL, headers=headers) as response:
                if response.status != 200:
                    logger.warning(f"CoinMarketCap API error: {response.status}")
                    return None
                payload = await response.json(content_type=None)
                data = payload['data']
                return (
                    float(data['btc_dominance']),
                    float(data['quote']['USD']['total_market_cap']),
                )
        except (aiohttp.ClientError, asyncio.TimeoutError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"CoinMarketCap fetch failed: {e}")
            return None
