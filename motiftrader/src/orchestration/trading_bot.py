"""
Trading Bot - Single-symbol trading loop.

Each cycle:
1. Refresh market sentiment (fear & greed) into the sentiment motif
2. Ask the strategy engine for a decision
3. Supervise open positions (profit tiers, trailing stops, SL/TP)
4. Apply the execution gate and act on the decision
5. Push learned motif weights back into the ensemble

Loop lifecycle comes from BaseBot.
"""

import asyncio
import logging
from typing import Optional, TYPE_CHECKING

from ..execution.exchange_client import ExchangeError, INTERVAL_SECONDS
from ..motifs.market_sentiment import MarketSentimentAnalyzer, SentimentSignal, neutral_sentiment
from ..risk.risk_manager import CloseResult, PositionSide
from ..strategy.strategy_engine import (
    StrategyEngine,
    StrategyExecution,
    TradeAction,
    TradeDecision,
)
from .base_bot import BaseBot

if TYPE_CHECKING:
    from ..data.market_data import MarketData
    from ..data.trade_store import TradeStore
    from ..execution.exchange_client import ExchangeClient
    from ..execution.market_intelligence import MarketIntelligenceClient

logger = logging.getLogger(__name__)


class TradingBot(BaseBot):
    """
    Drives a StrategyEngine for one symbol on a fixed interval.

    Order placement follows pending -> confirm, with rollback of the
    pending position when the order fails or the task is cancelled.
    """

    name = "TradingBot"

    def __init__(
        self,
        strategy_engine: StrategyEngine,
        exchange_client: 'ExchangeClient',
        config: Optional[dict] = None,
        market_intelligence: Optional['MarketIntelligenceClient'] = None,
        sentiment_analyzer: Optional[MarketSentimentAnalyzer] = None,
        trade_store: Optional['TradeStore'] = None,
    ):
        """
        Initialize TradingBot.

        Args:
            strategy_engine: Decision engine (owns risk, motifs, learning)
            exchange_client: Order placement and price source
            config: single section of bot.yaml
            market_intelligence: Optional fear & greed source
            sentiment_analyzer: Converts intelligence into sentiment
            trade_store: Optional sink for closed trades
        """
        super().__init__(config, trade_store)
        self.engine = strategy_engine
        self.exchange_client = exchange_client
        self.market_intelligence = market_intelligence
        self.sentiment_analyzer = sentiment_analyzer or MarketSentimentAnalyzer()

        self.symbol = self.config.get('symbol', 'ETH/USDT')
        self.interval = self.config.get('interval', self.engine.candle_interval)
        self.engine.candle_interval = self.interval
        self.last_sentiment: SentimentSignal = neutral_sentiment()

    # -------------------------------------------------------------------------
    # Cycle
    # -------------------------------------------------------------------------

    async def _execute_cycle(self) -> Optional[TradeDecision]:
        logger.info(f"===== Cycle {self._cycles} ({self.symbol}) =====")

        sentiment = await self._refresh_sentiment()

        decision = await self.engine.analyze_and_decide(self.symbol)
        if decision is None:
            logger.warning(f"No decision for {self.symbol} this cycle")
            return None
        self._decisions_count += 1

        market_data = decision.market_data
        for result in self.engine.supervise_positions(self.symbol, market_data):
            await self._on_position_closed(result)

        if self.engine.should_execute(decision):
            await self._act_on_decision(decision, market_data, sentiment.risk_adjustment)
        else:
            logger.info(f"Decision below execution gate: {decision.reasoning}")

        self.engine.update_motif_weights()
        return decision

    async def _refresh_sentiment(self) -> SentimentSignal:
        if self.market_intelligence is None:
            return self.last_sentiment

        intelligence = await self.market_intelligence.get_market_intelligence()
        if intelligence is None:
            return self.last_sentiment

        sentiment = self.sentiment_analyzer.analyze(intelligence)
        self.engine.set_external_sentiment(self.symbol, sentiment.motif_score)
        self.last_sentiment = sentiment
        logger.debug(
            f"Sentiment: fear/greed {sentiment.fear_greed_index:.0f}, "
            f"risk adjustment {sentiment.risk_adjustment:.2f}"
        )
        return sentiment

    async def _act_on_decision(
        self,
        decision: TradeDecision,
        market_data: 'MarketData',
        risk_adjustment: float,
    ) -> None:
        if decision.action == TradeAction.CLOSE_POSITION:
            if decision.position_id is None:
                return
            result = self.engine.record_trade_outcome(
                decision.position_id, market_data.current_price, reason="reversal"
            )
            if result is not None:
                await self._on_position_closed(result)
            return

        execution = self.engine.execute_decision(decision, market_data, risk_adjustment)
        if execution is not None:
            await self._place_entry_order(execution)

    async def _place_entry_order(self, execution: StrategyExecution) -> bool:
        try:
            order = await self.exchange_client.place_order(
                execution.symbol, execution.order_side, execution.quantity
            )
        except asyncio.CancelledError:
            self.engine.abort_execution(execution, "cancelled during order placement")
            raise
        except Exception as e:
            logger.exception(f"Order placement raised for {execution.symbol}: {e}")
            self.engine.abort_execution(execution, str(e))
            return False

        if order is None:
            self.engine.abort_execution(execution, "order placement failed")
            return False

        self.engine.confirm_execution(execution, order)
        self._trades_count += 1
        logger.info(
            f"Position opened: {execution.side.value} {execution.quantity} {execution.symbol} "
            f"@ {execution.entry_price} (SL {execution.stop_loss}, TP {execution.take_profit})"
        )
        return True

    async def _on_position_closed(self, result: CloseResult) -> None:
        side = 'sell' if result.side == PositionSide.LONG else 'buy'
        order = await self.exchange_client.place_order(result.symbol, side, result.closed_quantity)
        if order is None:
            logger.error(
                f"Closing order failed for {result.symbol} ({result.position_id}), "
                f"book already records the close"
            )

        logger.info(
            f"Position {'closed' if result.fully_closed else 'reduced'}: {result.symbol} "
            f"{result.closed_quantity} @ {result.exit_price}, PnL {result.pnl:.2f} "
            f"({result.pnl_percent:.2f}%), reason {result.reason}"
        )
        self._persist_trade(result.trade)

    async def close_all_positions(self, reason: str = "manual") -> list[CloseResult]:
        """Close every open position at the latest known price."""
        results = []
        for position in self.engine.get_open_positions():
            price = await self._latest_price(position.symbol)
            if price is None:
                logger.error(f"No price for {position.symbol}, position {position.id} left open")
                continue

            result = self.engine.record_trade_outcome(position.id, price, reason=reason)
            if result is not None:
                await self._on_position_closed(result)
                results.append(result)

        if results:
            logger.info(f"Closed {len(results)} positions ({reason})")
        return results

    async def _latest_price(self, symbol: str) -> Optional[float]:
        cached = self.engine.market_data.get_cached_data(symbol)
        if cached is not None:
            return cached.current_price
        try:
            return await self.exchange_client.fetch_price(symbol)
        except ExchangeError as e:
            logger.warning(f"Price unavailable for {symbol}: {e}")
            return None

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    def set_symbol(self, symbol: str) -> None:
        if not symbol or '/' not in symbol:
            raise ValueError(f"Invalid symbol: {symbol!r}")
        self.symbol = symbol
        logger.info(f"Symbol set to {symbol}")

    def set_interval(self, interval: str) -> None:
        if interval not in INTERVAL_SECONDS:
            raise ValueError(f"Unsupported interval: {interval}")
        self.interval = interval
        self.engine.candle_interval = interval
        logger.info(f"Candle interval set to {interval}")

    # -------------------------------------------------------------------------
    # Reports
    # -------------------------------------------------------------------------

    def get_status(self) -> dict:
        """Short running status."""
        metrics = self.engine.get_metrics()
        return {
            'is_running': self._is_running,
            'symbol': self.symbol,
            'interval': self.interval,
            'check_interval_seconds': self.check_interval,
            'last_check_time': self.last_check_time.isoformat() if self.last_check_time else None,
            'stats': {
                'cycles': self._cycles,
                'decisions': self._decisions_count,
                'trades': self._trades_count,
                'closed_trades': metrics.total_trades,
                'win_rate': metrics.win_rate,
            },
        }

    def get_statistics(self) -> dict:
        """Detailed report: recent activity, account, metrics and learning."""
        return {
            'decisions': [d.to_dict() for d in self.engine.get_recent_decisions(10)],
            'trades': [t.to_dict() for t in self.engine.get_trades(20)],
            'open_positions': [p.to_dict() for p in self.engine.get_open_positions()],
            'account': self.engine.get_account_state().to_dict(),
            'metrics': self.engine.get_metrics().to_dict(),
            'sentiment': self.last_sentiment.to_dict(),
            'learning': self.engine.get_learning_stats(),
            'motif_weights': {k.value: v for k, v in self.engine.get_motif_weights().items()},
        }
