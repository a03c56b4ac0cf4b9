"""
Indicator Library - Technical indicator calculations for MotifTrader.

This module provides the indicator values consumed by the motif scorers.
All calculations use numpy for performance.

Warmup Periods:
    Values before the warmup period are NaN and are reported as None.

    | Indicator  | First Valid Index | Notes                       |
    |------------|-------------------|-----------------------------|
    | EMA        | period - 1        | Starts with SMA seed        |
    | RSI        | period            | Needs period+1 price changes|
    | ATR        | period            | Needs period true ranges    |
    | MACD       | slow + signal - 2 | Depends on slow EMA + signal|
    | Bollinger  | period - 1        | Same as SMA                 |
    | Stochastic | period + d - 2    | %D is SMA of %K             |
"""

import logging
from dataclasses import dataclass, asdict
from typing import Optional

import numpy as np

logger = logging.getLogger(__name__)


@dataclass
class IndicatorValues:
    """Latest indicator readings for one symbol. None means unavailable."""
    ema20: Optional[float] = None
    ema50: Optional[float] = None
    macd_line: Optional[float] = None
    macd_signal: Optional[float] = None
    macd_histogram: Optional[float] = None
    rsi14: Optional[float] = None
    bollinger_upper: Optional[float] = None
    bollinger_middle: Optional[float] = None
    bollinger_lower: Optional[float] = None
    atr14: Optional[float] = None
    stochastic_k: Optional[float] = None
    stochastic_d: Optional[float] = None

    @property
    def bollinger_width(self) -> Optional[float]:
        """Distance between the upper and lower band."""
        if self.bollinger_upper is None or self.bollinger_lower is None:
            return None
        return self.bollinger_upper - self.bollinger_lower

    def is_empty(self) -> bool:
        """True when no indicator could be computed."""
        return all(v is None for v in asdict(self).values())

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return asdict(self)


def _last(values: np.ndarray) -> Optional[float]:
    if len(values) == 0 or np.isnan(values[-1]):
        return None
    return float(values[-1])


class IndicatorLibrary:
    """
    Computes the indicator set used by the motifs from OHLC series.

    Periods are configurable; defaults are EMA 20/50, MACD 12/26/9, RSI 14,
    Bollinger 20/2.0, ATR 14 and Stochastic 14/3.
    """

    def __init__(self, config: Optional[dict] = None):
        """
        Initialize IndicatorLibrary.

        Args:
            config: Indicator configuration dictionary
        """
        self.config = config or {}
        self.min_closes = self.config.get('min_closes', 50)

        self.ema_fast = self.config.get('ema_fast', 20)
        self.ema_slow = self.config.get('ema_slow', 50)

        macd_config = self.config.get('macd', {})
        self.macd_fast = macd_config.get('fast_period', 12)
        self.macd_slow = macd_config.get('slow_period', 26)
        self.macd_signal = macd_config.get('signal_period', 9)

        self.rsi_period = self.config.get('rsi_period', 14)
        self.atr_period = self.config.get('atr_period', 14)

        bb_config = self.config.get('bollinger_bands', {})
        self.bb_period = bb_config.get('period', 20)
        self.bb_std_dev = bb_config.get('std_dev', 2.0)

        stoch_config = self.config.get('stochastic', {})
        self.stoch_period = stoch_config.get('period', 14)
        self.stoch_signal = stoch_config.get('signal_period', 3)

    def compute(self, closes: list, highs: list, lows: list) -> IndicatorValues:
        """
        Compute the latest indicator values.

        Args:
            closes: Closing prices (oldest first)
            highs: High prices
            lows: Low prices

        Returns:
            IndicatorValues; all fields None when fewer than min_closes closes
        """
        result = IndicatorValues()

        if len(closes) < self.min_closes:
            logger.debug(f"Only {len(closes)} closes, need {self.min_closes} for indicators")
            return result

        try:
            result.ema20 = _last(self.calculate_ema(closes, self.ema_fast))
            result.ema50 = _last(self.calculate_ema(closes, self.ema_slow))

            macd = self.calculate_macd(closes, self.macd_fast, self.macd_slow, self.macd_signal)
            result.macd_line = _last(macd['line'])
            result.macd_signal = _last(macd['signal'])
            result.macd_histogram = _last(macd['histogram'])

            result.rsi14 = _last(self.calculate_rsi(closes, self.rsi_period))

            bb = self.calculate_bollinger_bands(closes, self.bb_period, self.bb_std_dev)
            result.bollinger_upper = _last(bb['upper'])
            result.bollinger_middle = _last(bb['middle'])
            result.bollinger_lower = _last(bb['lower'])

            if len(highs) == len(closes) and len(lows) == len(closes):
                result.atr14 = _last(self.calculate_atr(highs, lows, closes, self.atr_period))

                stoch = self.calculate_stochastic(
                    highs, lows, closes, self.stoch_period, self.stoch_signal
                )
                result.stochastic_k = _last(stoch['k'])
                result.stochastic_d = _last(stoch['d'])
            else:
                logger.warning(
                    f"High/low series length mismatch ({len(highs)}/{len(lows)} vs "
                    f"{len(closes)}), skipping ATR and stochastic"
                )
        except (ValueError, FloatingPointError) as e:
            logger.error(f"Error calculating technical indicators: {e}")

        return result

    def calculate_ema(self, closes: list, period: int) -> np.ndarray:
        """
        Calculate Exponential Moving Average.

        Args:
            closes: List of closing prices
            period: EMA period

        Returns:
            numpy array of EMA values
        """
        if len(closes) == 0:
            raise ValueError("Input data cannot be empty")
        if period <= 0:
            raise ValueError("Period must be positive")

        closes = np.array(closes, dtype=float)
        n = len(closes)

        if n < period:
            return np.full(n, np.nan)

        result = np.full(n, np.nan)
        multiplier = 2.0 / (period + 1)

        result[period - 1] = np.mean(closes[:period])

        for i in range(period, n):
            result[i] = (closes[i] - result[i - 1]) * multiplier + result[i - 1]

        return result

    def calculate_sma(self, values: list, period: int) -> np.ndarray:
        """
        Calculate Simple Moving Average.

        Args:
            values: Input series
            period: SMA period

        Returns:
            numpy array of SMA values
        """
        if len(values) == 0:
            raise ValueError("Input data cannot be empty")
        if period <= 0:
            raise ValueError("Period must be positive")

        values = np.array(values, dtype=float)
        n = len(values)
        result = np.full(n, np.nan)

        for i in range(period - 1, n):
            window = values[i - period + 1:i + 1]
            if not np.isnan(window).any():
                result[i] = np.mean(window)

        return result

    def calculate_rsi(self, closes: list, period: int) -> np.ndarray:
        """
        Calculate Relative Strength Index (Wilder smoothing).

        Args:
            closes: List of closing prices
            period: RSI period

        Returns:
            numpy array of RSI values (0-100)
        """
        if len(closes) == 0:
            raise ValueError("Input data cannot be empty")
        if period <= 0:
            raise ValueError("Period must be positive")

        closes = np.array(closes, dtype=float)
        n = len(closes)

        if n < period + 1:
            return np.full(n, np.nan)

        result = np.full(n, np.nan)

        deltas = np.diff(closes)
        gains = np.where(deltas > 0, deltas, 0)
        losses = np.where(deltas < 0, -deltas, 0)

        avg_gain = np.mean(gains[:period])
        avg_loss = np.mean(losses[:period])

        if avg_loss == 0:
            result[period] = 100.0
        else:
            rs = avg_gain / avg_loss
            result[period] = 100.0 - (100.0 / (1.0 + rs))

        for i in range(period, n - 1):
            avg_gain = (avg_gain * (period - 1) + gains[i]) / period
            avg_loss = (avg_loss * (period - 1) + losses[i]) / period

            if avg_loss == 0:
                result[i + 1] = 100.0
            else:
                rs = avg_gain / avg_loss
                result[i + 1] = 100.0 - (100.0 / (1.0 + rs))

        return result

    def calculate_macd(self, closes: list, fast: int, slow: int, signal: int) -> dict:
        """
        Calculate MACD (Moving Average Convergence Divergence).

        Returns:
            Dictionary with 'line', 'signal', and 'histogram' arrays
        """
        if len(closes) == 0:
            raise ValueError("Input data cannot be empty")

        closes = np.array(closes, dtype=float)
        n = len(closes)

        fast_ema = self.calculate_ema(closes.tolist(), fast)
        slow_ema = self.calculate_ema(closes.tolist(), slow)
        macd_line = fast_ema - slow_ema

        signal_line = np.full(n, np.nan)

        first_valid = slow - 1
        if first_valid + signal <= n:
            signal_ema_start = first_valid + signal - 1
            multiplier = 2.0 / (signal + 1)

            signal_line[signal_ema_start] = np.nanmean(macd_line[first_valid:first_valid + signal])

            for i in range(signal_ema_start + 1, n):
                signal_line[i] = (macd_line[i] - signal_line[i - 1]) * multiplier + signal_line[i - 1]

        return {
            'line': macd_line,
            'signal': signal_line,
            'histogram': macd_line - signal_line,
        }

    def calculate_atr(self, highs: list, lows: list, closes: list, period: int) -> np.ndarray:
        """
        Calculate Average True Range.

        Returns:
            numpy array of ATR values
        """
        if len(closes) == 0:
            raise ValueError("Input data cannot be empty")
        if period <= 0:
            raise ValueError("Period must be positive")

        highs = np.array(highs, dtype=float)
        lows = np.array(lows, dtype=float)
        closes = np.array(closes, dtype=float)
        n = len(closes)

        if n < period + 1:
            return np.full(n, np.nan)

        result = np.full(n, np.nan)

        tr = np.zeros(n)
        tr[0] = highs[0] - lows[0]
        for i in range(1, n):
            tr[i] = max(
                highs[i] - lows[i],
                abs(highs[i] - closes[i - 1]),
                abs(lows[i] - closes[i - 1]),
            )

        result[period] = np.mean(tr[1:period + 1])
        for i in range(period + 1, n):
            result[i] = (result[i - 1] * (period - 1) + tr[i]) / period

        return result

    def calculate_bollinger_bands(self, closes: list, period: int, std_dev: float) -> dict:
        """
        Calculate Bollinger Bands.

        Returns:
            Dictionary with 'upper', 'middle', 'lower'
        """
        if len(closes) == 0:
            raise ValueError("Input data cannot be empty")
        if period <= 0:
            raise ValueError("Period must be positive")

        closes = np.array(closes, dtype=float)
        n = len(closes)

        middle = self.calculate_sma(closes.tolist(), period)
        upper = np.full(n, np.nan)
        lower = np.full(n, np.nan)

        for i in range(period - 1, n):
            std = np.std(closes[i - period + 1:i + 1], ddof=0)
            upper[i] = middle[i] + std_dev * std
            lower[i] = middle[i] - std_dev * std

        return {'upper': upper, 'middle': middle, 'lower': lower}

    def calculate_stochastic(
        self,
        highs: list,
        lows: list,
        closes: list,
        period: int,
        signal_period: int,
    ) -> dict:
        """
        Calculate the Stochastic Oscillator.

        %K = (close - lowest low) / (highest high - lowest low) * 100,
        %D = SMA(signal_period) of %K.

        Returns:
            Dictionary with 'k' and 'd' arrays (0-100)
        """
        if len(closes) == 0:
            raise ValueError("Input data cannot be empty")
        if period <= 0 or signal_period <= 0:
            raise ValueError("Period must be positive")

        highs = np.array(highs, dtype=float)
        lows = np.array(lows, dtype=float)
        closes = np.array(closes, dtype=float)
        n = len(closes)

        k = np.full(n, np.nan)
        for i in range(period - 1, n):
            highest = np.max(highs[i - period + 1:i + 1])
            lowest = np.min(lows[i - period + 1:i + 1])
            price_range = highest - lowest
            k[i] = 50.0 if price_range == 0 else (closes[i] - lowest) / price_range * 100

        d = self.calculate_sma(k.tolist(), signal_period)
        return {'k': k, 'd': d}


def calculate_volatility_score(
    atr: Optional[float],
    price: float,
    bollinger_width: Optional[float],
) -> float:
    """
    Map ATR into a 0-1 volatility score, 5% ATR being the maximum.

    Returns 0.5 (neutral) when ATR or the Bollinger width is unavailable.
    """
    if not atr or not bollinger_width or not price:
        return 0.5
    atr_percent = (atr / price) * 100
    return min(atr_percent / 5, 1.0)


def calculate_liquidity_density(bids: list, asks: list, top_levels: int = 5) -> float:
    """
    Score order-book depth from the top levels of each side.

    Args:
        bids: [price, volume] levels, best first
        asks: [price, volume] levels, best first
        top_levels: Number of levels per side to sum

    Returns:
        Liquidity score in [0, 1]
    """
    if not bids or not asks:
        return 0.0

    top_bid_volume = sum(float(level[1]) for level in bids[:top_levels])
    top_ask_volume = sum(float(level[1]) for level in asks[:top_levels])

    return min((top_bid_volume + top_ask_volume) / 1000, 1.0)
