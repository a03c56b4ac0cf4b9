"""
Multi-Strategy Trading Bot - Rotation across a symbol universe.

Each cycle:
1. Refresh rotation statistics and allocations
2. Supervise open positions against the latest prices and report portfolio risk
3. For the top coins by liquidity: strategy signals -> ensemble vote
4. Volatility-scaled risk parameters, pending open, order, confirm/rollback
5. Mutate the coin's motif patterns

Realised outcomes feed the RL agent, the per-coin Bayesian updater and
the motif pattern performance.
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Optional, TYPE_CHECKING

from ..data.indicator_library import IndicatorLibrary
from ..execution.exchange_client import Candle, ExchangeError
from ..risk.dynamic_risk import DynamicRiskConfig, DynamicRiskManager, PortfolioExposure
from ..risk.risk_manager import CloseResult, Position, PositionSide, RiskManager
from ..strategy.ensemble_engine import (
    EnsembleStrategyEngine,
    Signal,
    StrategySignal,
    StrategyType,
    calculate_return_volatility,
)
from ..strategy.market_rotation import MarketRotationData, MarketRotationEngine
from .base_bot import BaseBot

if TYPE_CHECKING:
    from ..data.trade_store import TradeStore
    from ..execution.exchange_client import ExchangeClient

logger = logging.getLogger(__name__)


@dataclass
class _EntryContext:
    state: str
    action: Signal
    strategies: list[StrategyType]


class MultiStrategyTradingBot(BaseBot):
    """Trades the most liquid symbols with an ensemble of strategies."""

    name = "MultiStrategyBot"

    def __init__(
        self,
        ensemble_engine: EnsembleStrategyEngine,
        rotation_engine: MarketRotationEngine,
        exchange_client: 'ExchangeClient',
        dynamic_risk: Optional[DynamicRiskManager] = None,
        risk_manager: Optional[RiskManager] = None,
        config: Optional[dict] = None,
        trade_store: Optional['TradeStore'] = None,
        indicators: Optional[IndicatorLibrary] = None,
    ):
        """
        Initialize MultiStrategyTradingBot.

        Args:
            ensemble_engine: Strategy voting engine
            rotation_engine: Liquidity ranking over the universe
            exchange_client: Candles, prices and orders
            dynamic_risk: Volatility-scaled risk parameters
            risk_manager: Position book (separate from the single-symbol bot)
            config: multi section of bot.yaml
            trade_store: Optional sink for closed trades
            indicators: ATR source for trailing stops
        """
        super().__init__(config, trade_store)
        self.ensemble = ensemble_engine
        self.rotation = rotation_engine
        self.exchange_client = exchange_client
        self.dynamic_risk = dynamic_risk or DynamicRiskManager()
        self.risk_manager = risk_manager or RiskManager()
        self.indicators = indicators or IndicatorLibrary()

        self.max_concurrent_positions = self.config.get('max_concurrent_positions', 5)
        self.candle_interval = self.config.get('candle_interval', '1h')
        self.candle_limit = self.config.get('candle_limit', 100)
        self.target_portfolio_risk = self.config.get('target_portfolio_risk', 0.01)
        self.max_portfolio_risk = self.config.get('max_portfolio_risk', 0.02)

        self._entry_context: dict[str, _EntryContext] = {}

    # -------------------------------------------------------------------------
    # Cycle
    # -------------------------------------------------------------------------

    async def _execute_cycle(self) -> list[StrategySignal]:
        logger.info(f"===== Multi-strategy cycle {self._cycles} =====")

        await self.rotation.fetch_market_data()
        self.rotation.rebalance_allocations()
        top_coins = self.rotation.get_top_coins(self.max_concurrent_positions)
        logger.info(f"Top coins by liquidity: {', '.join(c.symbol for c in top_coins)}")

        await self.supervise_positions()
        portfolio = self.assess_portfolio_risk()
        if portfolio['reduce']:
            logger.warning(
                f"Portfolio risk {portfolio['portfolio_risk']:.4f} above {self.max_portfolio_risk}, "
                f"consider reducing: {', '.join(portfolio['reduce'])}"
            )

        decisions = []
        for coin in top_coins:
            try:
                decision = await self._process_coin(coin)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(f"Error processing {coin.symbol}: {e}")
                continue
            if decision is not None:
                decisions.append(decision)

        if decisions and self._decisions_count % 5 == 0:
            logger.info(f"Ensemble weights: {self._weights_report()}")

        logger.info(
            f"Cycle complete. Open positions: "
            f"{len(self.risk_manager.get_open_positions(include_pending=True))}"
        )
        return decisions

    async def _process_coin(self, coin: MarketRotationData) -> Optional[StrategySignal]:
        symbol = coin.symbol
        prices = await self._fetch_closes(symbol)
        if not prices:
            return None

        signals = self.generate_signals(symbol, prices)
        decision = self.ensemble.make_ensemble_decision(symbol, signals)
        if decision is None or decision.action == Signal.HOLD:
            return None

        self._decisions_count += 1
        logger.info(f"{symbol}: {decision.action.value} (confidence: {decision.confidence * 100:.1f}%)")

        balance = self.risk_manager.get_account_balance()
        risk_config = self.dynamic_risk.calculate_dynamic_risk(symbol, coin.volatility, balance)
        logger.info(
            f"{symbol} risk: max position {risk_config.max_position_size * 100:.1f}%, "
            f"stop {risk_config.stop_loss_percentage * 100:.2f}%, "
            f"take profit {risk_config.take_profit_percentage * 100:.2f}%"
        )

        agreeing = [s.strategy for s in signals if s.action == decision.action]
        await self._open_position(decision, risk_config, agreeing)
        self.ensemble.mutate_motifs_for_coin(symbol)
        return decision

    async def _fetch_candles(self, symbol: str) -> list[Candle]:
        try:
            return await self.exchange_client.fetch_candles(
                symbol, self.candle_interval, self.candle_limit
            )
        except ExchangeError as e:
            logger.warning(f"Candles unavailable for {symbol}: {e}")
            return []

    async def _fetch_closes(self, symbol: str) -> list[float]:
        return [c.close for c in await self._fetch_candles(symbol)]

    async def _latest_atr(self, symbol: str) -> Optional[float]:
        candles = await self._fetch_candles(symbol)
        period = self.indicators.atr_period
        if len(candles) < period + 1:
            return None

        atr = self.indicators.calculate_atr(
            [c.high for c in candles], [c.low for c in candles], [c.close for c in candles], period
        )
        value = float(atr[-1])
        return None if math.isnan(value) else value

    def generate_signals(self, symbol: str, prices: list[float]) -> list[StrategySignal]:
        """Trend, volatility and Monte Carlo votes for a close series."""
        signals = []

        trend = self.ensemble.analyze_trend(symbol, prices)
        if trend is not None:
            signals.append(trend)

        volatility_signal = self.ensemble.analyze_volatility(symbol, prices)
        if volatility_signal is not None:
            signals.append(volatility_signal)

        monte_carlo = self.ensemble.analyze_monte_carlo(
            symbol, prices[-1], calculate_return_volatility(prices)
        )
        if monte_carlo is not None:
            signals.append(monte_carlo)

        return signals

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    async def _open_position(
        self,
        decision: StrategySignal,
        risk_config: DynamicRiskConfig,
        strategies: list[StrategyType],
    ) -> Optional[Position]:
        symbol = decision.symbol
        if self.risk_manager.get_open_positions(symbol, include_pending=True):
            logger.info(f"Position already open for {symbol}, skipping")
            return None
        if len(self.risk_manager.get_open_positions(include_pending=True)) >= self.max_concurrent_positions:
            logger.info(f"Max concurrent positions reached, skipping {symbol}")
            return None

        price = decision.price
        side = PositionSide.LONG if decision.action == Signal.BUY else PositionSide.SHORT
        factor = 10 ** self.risk_manager.quantity_decimals
        quantity = math.floor(
            risk_config.max_position_size * self.risk_manager.get_account_balance() / price * factor
        ) / factor
        if quantity <= 0:
            logger.warning(f"Position size rounds to 0 for {symbol} at {price}")
            return None

        signal = min(max(0.5 + side.direction * decision.confidence / 2, 0.0), 1.0)
        position = self.risk_manager.open_position(
            symbol,
            price,
            quantity,
            risk_config.stop_price(price, side),
            risk_config.take_profit_price(price, side),
            signal,
            pending=True,
        )
        if position is None:
            return None

        self._entry_context[position.id] = _EntryContext(
            state=f"{symbol}_{'HIGH' if decision.confidence > 0.7 else 'LOW'}",
            action=decision.action,
            strategies=strategies,
        )

        order_side = 'buy' if side == PositionSide.LONG else 'sell'
        try:
            order = await self.exchange_client.place_order(symbol, order_side, quantity)
        except asyncio.CancelledError:
            self._rollback(position, "cancelled during order placement")
            raise
        except Exception as e:
            logger.exception(f"Order placement raised for {symbol}: {e}")
            order = None

        if order is None:
            self._rollback(position, "order placement failed")
            return None

        self.risk_manager.confirm_position(position.id, order.order_id)
        self._trades_count += 1
        logger.info(f"Position opened: {side.value} {quantity} {symbol} @ {price}")
        return position

    def _rollback(self, position: Position, reason: str) -> None:
        self.risk_manager.cancel_pending_position(position.id)
        self._entry_context.pop(position.id, None)
        logger.warning(f"Pending position {position.id} on {position.symbol} rolled back: {reason}")

    # -------------------------------------------------------------------------
    # Supervision
    # -------------------------------------------------------------------------

    async def supervise_positions(self) -> list[CloseResult]:
        """
        Apply trailing stops and SL/TP to every open position.

        The stop trails by ATR from the latest candles; without enough
        candles only SL/TP are checked.
        """
        results = []
        for position in self.risk_manager.get_open_positions():
            price = await self._latest_price(position.symbol)
            if price is None:
                continue
            atr = await self._latest_atr(position.symbol)
            update = self.risk_manager.update_position(position.id, price, atr)
            if update is not None and update.close_result is not None:
                await self._on_position_closed(position, update.close_result)
                results.append(update.close_result)
        return results

    def assess_portfolio_risk(self) -> dict:
        """
        Portfolio risk of the open book.

        Each position is sized as its notional share of the balance and
        weighted by the symbol's rotation volatility.

        Returns:
            Dict with portfolio_risk, the allocation_multiplier against the
            target risk and the symbols to reduce above max_portfolio_risk
        """
        balance = self.risk_manager.get_account_balance()
        exposures = []
        if balance > 0:
            for position in self.risk_manager.get_open_positions():
                data = self.rotation.get_market_data(position.symbol)
                volatility = data.volatility if data is not None else self.dynamic_risk.reference_volatility
                exposures.append(PortfolioExposure(
                    position.symbol, volatility, position.entry_price * position.quantity / balance
                ))

        risk = self.dynamic_risk.calculate_portfolio_risk(exposures)
        return {
            'portfolio_risk': risk,
            'allocation_multiplier': self.dynamic_risk.adjust_allocation_for_portfolio_risk(
                risk, self.target_portfolio_risk
            ),
            'reduce': self.dynamic_risk.get_reduce_positions_recommendation(
                exposures, self.max_portfolio_risk
            ),
        }

    async def close_all_positions(self, reason: str = "manual") -> list[CloseResult]:
        """Close every open position at the latest known price."""
        results = []
        for position in self.risk_manager.get_open_positions():
            price = await self._latest_price(position.symbol)
            if price is None:
                logger.error(f"No price for {position.symbol}, position {position.id} left open")
                continue
            result = self.risk_manager.close_position(position.id, price, reason=reason)
            if result is not None:
                await self._on_position_closed(position, result)
                results.append(result)
        return results

    async def _latest_price(self, symbol: str) -> Optional[float]:
        try:
            return await self.exchange_client.fetch_price(symbol)
        except ExchangeError as e:
            logger.warning(f"Price unavailable for {symbol}: {e}")
        data = self.rotation.get_market_data(symbol)
        return data.last_price if data is not None and data.last_price > 0 else None

    async def _on_position_closed(self, position: Position, result: CloseResult) -> None:
        side = 'sell' if result.side == PositionSide.LONG else 'buy'
        order = await self.exchange_client.place_order(result.symbol, side, result.closed_quantity)
        if order is None:
            logger.error(f"Closing order failed for {result.symbol} ({result.position_id})")

        self._persist_trade(result.trade)
        if not result.fully_closed:
            return

        success = result.total_realized_pnl > 0
        reward = result.total_realized_pnl / (position.entry_price * position.original_quantity) * 100
        self.ensemble.update_bayesian(result.symbol, success)

        context = self._entry_context.pop(position.id, None)
        if context is not None:
            self.ensemble.rl_agent.update_q_value(
                context.state, context.action, reward, context.state, list(Signal)
            )
            for strategy in context.strategies:
                self.ensemble.record_strategy_outcome(result.symbol, strategy, success)

        logger.info(
            f"Position closed: {result.symbol} PnL {result.total_realized_pnl:.2f} "
            f"({reward:.2f}%), reason {result.reason}"
        )

    # -------------------------------------------------------------------------
    # Reports
    # -------------------------------------------------------------------------

    def _weights_report(self) -> dict:
        return {
            symbol: {s.value: round(w, 4) for s, w in weights.items()}
            for symbol, weights in self.ensemble.get_ensemble_weights().items()
        }

    def get_status(self) -> dict:
        """Short running status."""
        return {
            'is_running': self._is_running,
            'cycles': self._cycles,
            'decisions': self._decisions_count,
            'trades': self._trades_count,
            'open_positions': len(self.risk_manager.get_open_positions()),
            'active_markets': self.rotation.symbols,
            'last_check_time': self.last_check_time.isoformat() if self.last_check_time else None,
        }

    def get_open_positions(self) -> list[Position]:
        return self.risk_manager.get_open_positions()

    def get_statistics(self) -> dict:
        """Detailed report: allocations, weights, account and metrics."""
        return {
            'allocations': [d.to_dict() for d in self.rotation.get_all_market_data()],
            'ensemble_weights': self._weights_report(),
            'motifs': [m.to_dict() for m in self.ensemble.get_motifs()],
            'account': self.risk_manager.get_account_state().to_dict(),
            'metrics': self.risk_manager.calculate_metrics().to_dict(),
            'open_positions': [p.to_dict() for p in self.risk_manager.get_open_positions()],
            'portfolio_risk': self.assess_portfolio_risk(),
        }
