"""
Exchange Client - ccxt-backed exchange adapter with demo-mode fallback.

Features:
- Candles, order book, price and 24h ticker stats
- Market/limit order placement and cancellation
- Balance queries
- Per-call timeouts surfaced as ExchangeTimeoutError
- Permanent switch to demo mode on authentication/permission errors
- Demo mode: random-walk candles, synthetic order books, simulated fills
"""

import asyncio
import logging
import random
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

import ccxt.async_support as ccxt

from .trading_mode import TradingMode

logger = logging.getLogger(__name__)


class ExchangeError(Exception):
    """Base class for exchange failures."""
    pass


class ExchangeTimeoutError(ExchangeError):
    """Exchange call exceeded its timeout."""
    pass


class ExchangeAuthError(ExchangeError):
    """Exchange rejected the credentials or permissions."""
    pass


class ExchangeUnavailableError(ExchangeError):
    """Exchange could not be reached or is in maintenance."""
    pass


INTERVAL_SECONDS = {
    '1m': 60,
    '5m': 300,
    '15m': 900,
    '30m': 1800,
    '1h': 3600,
    '4h': 14400,
    '1d': 86400,
}


@dataclass
class Candle:
    """OHLCV candle."""
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float

    @classmethod
    def from_ohlcv(cls, row: list) -> 'Candle':
        """Build from a ccxt [ms, o, h, l, c, v] row."""
        return cls(
            timestamp=datetime.fromtimestamp(row[0] / 1000, tz=timezone.utc),
            open=float(row[1]),
            high=float(row[2]),
            low=float(row[3]),
            close=float(row[4]),
            volume=float(row[5] or 0),
        )


@dataclass
class OrderBook:
    """Order book snapshot. Levels are [price, volume], best first."""
    symbol: str
    bids: list[list[float]] = field(default_factory=list)
    asks: list[list[float]] = field(default_factory=list)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def best_bid(self) -> Optional[float]:
        return self.bids[0][0] if self.bids else None

    @property
    def best_ask(self) -> Optional[float]:
        return self.asks[0][0] if self.asks else None


@dataclass
class TickerStats:
    """24h ticker statistics."""
    symbol: str
    last_price: float
    high: float
    low: float
    quote_volume: float
    change_percent: float

    @property
    def volatility(self) -> float:
        """24h range relative to last price."""
        if self.last_price <= 0:
            return 0.0
        return (self.high - self.low) / self.last_price


@dataclass
class OrderResult:
    """Result of an order placement."""
    order_id: str
    symbol: str
    side: str
    quantity: float
    price: Optional[float]
    status: str
    simulated: bool = False
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return {
            'order_id': self.order_id,
            'symbol': self.symbol,
            'side': self.side,
            'quantity': self.quantity,
            'price': self.price,
            'status': self.status,
            'simulated': self.simulated,
            'timestamp': self.timestamp.isoformat(),
        }


class ExchangeClient:
    """
    Async exchange adapter.

    In DEMO mode no request reaches the exchange: market data is a random walk
    seeded from configured base prices and orders fill immediately. In LIVE
    mode calls go through ccxt; an authentication or permission error flips
    the client to DEMO for the rest of the process lifetime.
    """

    def __init__(
        self,
        config: Optional[dict] = None,
        mode: TradingMode = TradingMode.DEMO,
        exchange: Any = None,
        rng: Optional[random.Random] = None,
    ):
        """
        Initialize ExchangeClient.

        Args:
            config: Exchange configuration (contents of exchange.yaml)
            mode: Resolved trading mode
            exchange: Pre-built ccxt exchange (mainly for tests)
            rng: Random source for demo data
        """
        self.config = config or {}
        exchange_config = self.config.get('exchange', {})
        demo_config = self.config.get('demo', {})

        self.exchange_id = exchange_config.get('id', 'binance')
        self.timeout = float(exchange_config.get('timeout_seconds', 10))
        self.order_book_depth = int(exchange_config.get('order_book_depth', 20))

        self._base_prices: dict[str, float] = {
            symbol: float(price)
            for symbol, price in (demo_config.get('base_prices') or {}).items()
        }
        self._default_price = float(demo_config.get('default_price', 100))
        self._demo_volatility = float(demo_config.get('volatility', 0.01))
        self._demo_prices: dict[str, float] = {}
        self._rng = rng or random.Random()

        self._demo_mode = mode != TradingMode.LIVE
        self._exchange = exchange

        if not self._demo_mode and self._exchange is None:
            exchange_class = getattr(ccxt, self.exchange_id)
            self._exchange = exchange_class({
                'apiKey': exchange_config.get('api_key') or '',
                'secret': exchange_config.get('api_secret') or '',
                'enableRateLimit': True,
                'timeout': int(self.timeout * 1000),
            })

        logger.info(
            f"ExchangeClient initialized: {self.exchange_id} "
            f"({'demo' if self._demo_mode else 'live'} mode)"
        )

    @property
    def is_demo(self) -> bool:
        """True when orders fill against the simulator."""
        return self._demo_mode

    def enable_demo_mode(self, reason: str) -> None:
        """Switch permanently to demo mode."""
        if not self._demo_mode:
            logger.warning(f"Switching exchange client to demo mode: {reason}")
        self._demo_mode = True

    async def _call(self, method: str, *args, **kwargs) -> Any:
        """
        Invoke a ccxt method with a timeout and typed errors.

        Raises:
            ExchangeTimeoutError, ExchangeAuthError,
            ExchangeUnavailableError, ExchangeError
        """
        func = getattr(self._exchange, method)
        try:
            return await asyncio.wait_for(func(*args, **kwargs), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise ExchangeTimeoutError(f"{method} timed out after {self.timeout}s") from e
        except ccxt.RequestTimeout as e:
            raise ExchangeTimeoutError(f"{method} timed out: {e}") from e
        except (ccxt.AuthenticationError, ccxt.PermissionDenied) as e:
            self.enable_demo_mode(f"{type(e).__name__}: {e}")
            raise ExchangeAuthError(str(e)) from e
        except (ccxt.ExchangeNotAvailable, ccxt.NetworkError) as e:
            raise ExchangeUnavailableError(str(e)) from e
        except ccxt.BaseError as e:
            raise ExchangeError(str(e)) from e

    # -------------------------------------------------------------------------
    # Market data
    # -------------------------------------------------------------------------

    async def fetch_candles(self, symbol: str, interval: str = '15m', limit: int = 100) -> list[Candle]:
        """
        Fetch OHLCV candles, oldest first.

        Falls back to demo candles if credentials are rejected.
        """
        if not self._demo_mode:
            try:
                rows = await self._call('fetch_ohlcv', symbol, interval, limit=limit)
                return [Candle.from_ohlcv(row) for row in rows]
            except ExchangeAuthError:
                pass
        return self._demo_candles(symbol, interval, limit)

    async def fetch_order_book(self, symbol: str, depth: Optional[int] = None) -> OrderBook:
        """Fetch the order book."""
        depth = depth or self.order_book_depth
        if not self._demo_mode:
            try:
                book = await self._call('fetch_order_book', symbol, depth)
                return OrderBook(
                    symbol=symbol,
                    bids=[[float(p), float(v)] for p, v, *_ in book.get('bids', [])],
                    asks=[[float(p), float(v)] for p, v, *_ in book.get('asks', [])],
                )
            except ExchangeAuthError:
                pass
        return self._demo_order_book(symbol, depth)

    async def fetch_price(self, symbol: str) -> float:
        """Fetch the last traded price."""
        if not self._demo_mode:
            try:
                ticker = await self._call('fetch_ticker', symbol)
                return float(ticker['last'])
            except ExchangeAuthError:
                pass
        return self._next_demo_price(symbol)

    async def fetch_ticker_stats(self, symbol: str) -> TickerStats:
        """Fetch 24h ticker statistics."""
        if not self._demo_mode:
            try:
                ticker = await self._call('fetch_ticker', symbol)
                last = float(ticker.get('last') or 0)
                return TickerStats(
                    symbol=symbol,
                    last_price=last,
                    high=float(ticker.get('high') or last),
                    low=float(ticker.get('low') or last),
                    quote_volume=float(ticker.get('quoteVolume') or 0),
                    change_percent=float(ticker.get('percentage') or 0),
                )
            except ExchangeAuthError:
                pass
        return self._demo_ticker_stats(symbol)

    # -------------------------------------------------------------------------
    # Trading
    # -------------------------------------------------------------------------

    async def place_order(
        self,
        symbol: str,
        side: str,
        quantity: float,
        price: Optional[float] = None,
    ) -> Optional[OrderResult]:
        """
        Place a market order, or a limit order when price is given.

        Never raises: any failure is logged and returned as None.

        Args:
            symbol: Trading pair
            side: 'buy' or 'sell'
            quantity: Base asset quantity
            price: Limit price (None for market)

        Returns:
            OrderResult or None on failure
        """
        side = side.lower()
        if side not in ('buy', 'sell') or quantity <= 0:
            logger.warning(f"Rejected order request: {side} {quantity} {symbol}")
            return None

        if not self._demo_mode:
            order_type = 'limit' if price is not None else 'market'
            try:
                order = await self._call('create_order', symbol, order_type, side, quantity, price)
                result = OrderResult(
                    order_id=str(order.get('id')),
                    symbol=symbol,
                    side=side,
                    quantity=float(order.get('amount') or quantity),
                    price=float(order['price']) if order.get('price') else price,
                    status=order.get('status') or 'open',
                )
                logger.info(f"Order placed: {side} {quantity} {symbol} -> {result.order_id}")
                return result
            except ExchangeAuthError:
                logger.warning(f"Order for {symbol} rejected for credentials, simulating fill")
            except ExchangeError as e:
                logger.error(f"Order failed for {symbol}: {e}")
                return None

        return self._simulate_fill(symbol, side, quantity, price)

    async def cancel_order(self, order_id: str, symbol: str) -> bool:
        """Cancel an order. Returns True on success."""
        if self._demo_mode:
            logger.info(f"Demo cancel for order {order_id}")
            return True
        try:
            await self._call('cancel_order', order_id, symbol)
            return True
        except ExchangeError as e:
            logger.error(f"Cancel failed for {order_id}: {e}")
            return False

    async def fetch_balances(self) -> dict[str, float]:
        """Fetch free balances keyed by asset."""
        if not self._demo_mode:
            try:
                balance = await self._call('fetch_balance')
                return {
                    asset: float(amount)
                    for asset, amount in (balance.get('free') or {}).items()
                    if amount
                }
            except ExchangeAuthError:
                pass
        return {'USDT': 10000.0}

    async def close(self) -> None:
        """Release the underlying ccxt session."""
        if self._exchange is not None:
            await self._exchange.close()
            logger.info("Exchange client closed")

    # -------------------------------------------------------------------------
    # Demo simulation
    # -------------------------------------------------------------------------

    def _base_price(self, symbol: str) -> float:
        return self._base_prices.get(symbol, self._default_price)

    def _next_demo_price(self, symbol: str) -> float:
        price = self._demo_prices.get(symbol, self._base_price(symbol))
        price *= 1 + (self._rng.random() - 0.5) * self._demo_volatility
        self._demo_prices[symbol] = price
        return price

    def _demo_candles(self, symbol: str, interval: str, limit: int) -> list[Candle]:
        step = INTERVAL_SECONDS.get(interval, 900)
        now = time.time()
        price = self._demo_prices.get(symbol, self._base_price(symbol))
        candles = []

        for i in range(limit):
            open_price = price
            price *= 1 + (self._rng.random() - 0.5) * self._demo_volatility * 2
            spread = abs(price - open_price) + open_price * self._demo_volatility * self._rng.random() * 0.5
            candles.append(Candle(
                timestamp=datetime.fromtimestamp(now - (limit - i) * step, tz=timezone.utc),
                open=open_price,
                high=max(open_price, price) + spread / 2,
                low=min(open_price, price) - spread / 2,
                close=price,
                volume=self._rng.uniform(100, 1000),
            ))

        self._demo_prices[symbol] = price
        return candles

    def _demo_order_book(self, symbol: str, depth: int) -> OrderBook:
        mid = self._demo_prices.get(symbol, self._base_price(symbol))
        tick = mid * 0.0001
        bids = [[mid - tick * (i + 1), self._rng.uniform(0.1, 50)] for i in range(depth)]
        asks = [[mid + tick * (i + 1), self._rng.uniform(0.1, 50)] for i in range(depth)]
        return OrderBook(symbol=symbol, bids=bids, asks=asks)

    def _demo_ticker_stats(self, symbol: str) -> TickerStats:
        last = self._next_demo_price(symbol)
        swing = self._rng.uniform(0.01, 0.08)
        return TickerStats(
            symbol=symbol,
            last_price=last,
            high=last * (1 + swing / 2),
            low=last * (1 - swing / 2),
            quote_volume=self._rng.uniform(1e7, 2e9),
            change_percent=self._rng.uniform(-5, 5),
        )

    def _simulate_fill(
        self,
        symbol: str,
        side: str,
        quantity: float,
        price: Optional[float],
    ) -> OrderResult:
        fill_price = price if price is not None else self._demo_prices.get(symbol, self._base_price(symbol))
        result = OrderResult(
            order_id=f"demo-{uuid.uuid4()}",
            symbol=symbol,
            side=side,
            quantity=quantity,
            price=fill_price,
            status='filled',
            simulated=True,
        )
        logger.info(f"Demo fill: {side} {quantity} {symbol} @ {fill_price}")
        return result
