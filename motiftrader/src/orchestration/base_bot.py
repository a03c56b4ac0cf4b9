"""
Base Bot Class - Loop lifecycle shared by the trading bots.

Subclasses implement:
- _execute_cycle(): one trading cycle
- close_all_positions(): flatten the book on stop

Includes:
- Stop-event driven loop (cycles never overlap)
- In-flight guard on run_cycle()
- Bounded wait for the in-flight cycle on stop
- Fire-and-forget persistence of closed trades
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from ..data.trade_store import TradeStore
    from ..risk.risk_manager import ClosedTrade

logger = logging.getLogger(__name__)


class BaseBot(ABC):
    """Abstract base class for the trading loops."""

    name: str = "bot"

    def __init__(self, config: Optional[dict] = None, trade_store: Optional['TradeStore'] = None):
        self.config = config or {}
        self.trade_store = trade_store

        self.check_interval = float(self.config.get('check_interval_seconds', 60))
        self.close_positions_on_stop = self.config.get('close_positions_on_stop', True)
        self.stop_timeout = float(self.config.get('stop_timeout_seconds', 30))

        self.last_check_time: Optional[datetime] = None

        self._stop_event = asyncio.Event()
        self._loop_task: Optional[asyncio.Task] = None
        self._is_running = False
        self._cycle_in_flight = False
        self._pending_writes: set[asyncio.Task] = set()

        self._cycles = 0
        self._decisions_count = 0
        self._trades_count = 0

    @property
    def is_running(self) -> bool:
        return self._is_running

    @abstractmethod
    async def _execute_cycle(self) -> Any:
        """Run one trading cycle."""
        pass

    @abstractmethod
    async def close_all_positions(self, reason: str = "manual") -> list:
        """Close every open position."""
        pass

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Start the trading loop in a background task."""
        if self._is_running:
            logger.warning(f"{self.name} is already running")
            return

        self._stop_event.clear()
        self._is_running = True
        self._loop_task = asyncio.create_task(self._run_loop())
        logger.info(f"{self.name} started, checking every {self.check_interval:.0f}s")

    async def stop(self) -> None:
        """
        Stop the loop, waiting for an in-flight cycle up to the stop timeout.

        Closes all open positions afterwards when close_positions_on_stop
        is set, then flushes pending trade writes.
        """
        if not self._is_running:
            logger.warning(f"{self.name} is not running")
            return

        self._stop_event.set()
        if self._loop_task is not None:
            try:
                await asyncio.wait_for(asyncio.shield(self._loop_task), timeout=self.stop_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Cycle still running after {self.stop_timeout:.0f}s, cancelling")
                self._loop_task.cancel()
                try:
                    await self._loop_task
                except asyncio.CancelledError:
                    pass
            self._loop_task = None

        self._is_running = False

        if self.close_positions_on_stop:
            await self.close_all_positions(reason="bot_stop")

        if self._pending_writes:
            await asyncio.gather(*self._pending_writes, return_exceptions=True)

        logger.info(
            f"{self.name} stopped after {self._cycles} cycles, {self._trades_count} trades"
        )

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            await self.run_cycle()
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.check_interval)
            except asyncio.TimeoutError:
                pass

    async def run_cycle(self) -> Any:
        """
        Run one cycle unless another is in flight.

        Any exception other than cancellation is logged and the cycle
        returns None.
        """
        if self._cycle_in_flight:
            logger.warning(f"{self.name}: cycle already in flight, skipping")
            return None

        self._cycle_in_flight = True
        try:
            self._cycles += 1
            self.last_check_time = datetime.now(timezone.utc)
            return await self._execute_cycle()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"{self.name}: error in trading cycle: {e}")
            return None
        finally:
            self._cycle_in_flight = False

    def set_check_interval(self, seconds: float) -> None:
        if seconds <= 0:
            raise ValueError(f"Check interval must be positive, got {seconds}")
        self.check_interval = float(seconds)
        logger.info(f"{self.name}: check interval set to {seconds}s")

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def _persist_trade(self, trade: 'ClosedTrade') -> None:
        if self.trade_store is None:
            return
        task = asyncio.create_task(self._write_trade(trade.to_dict()))
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)

    async def _write_trade(self, record: dict) -> None:
        try:
            await self.trade_store.insert_trade(record)
        except Exception as e:
            logger.error(f"Failed to persist trade {record.get('id')}: {e}")
