"""
Risk Manager - Position book, sizing, stops and realised PnL.

NOT an ML component - purely rule-based position management.

Position lifecycle:
    PENDING -> OPEN -> (trailing / partial closes) -> CLOSED
    PENDING -> cancelled (rollback, no trace in balance or history)

Pending positions reserve risk budget while an order is in flight; they are
not supervised and cannot be closed until confirmed.

Features:
- Risk-based position sizing with confidence/signal/volatility/sentiment scaling
- ATR stop-loss with percentage fallback, risk/reward take-profit
- Trade validation against per-trade and portfolio caps
- Tighten-only trailing stops tracking high/low water marks
- Tiered profit targets and partial closes
- Realised PnL accounting (balance changes only at close)
- Win rate, profit factor and annualised Sharpe-like ratio
"""

import logging
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)

# Quantities below this are treated as zero
QUANTITY_EPSILON = 1e-12


class PositionSide(Enum):
    """Position side (direction)."""
    LONG = "LONG"
    SHORT = "SHORT"

    @classmethod
    def from_signal(cls, signal: float) -> 'PositionSide':
        """LONG above neutral, SHORT otherwise."""
        return cls.LONG if signal > 0.5 else cls.SHORT

    @property
    def direction(self) -> int:
        return 1 if self == PositionSide.LONG else -1


class PositionStatus(Enum):
    """Position status."""
    PENDING = "pending"
    OPEN = "open"
    CLOSED = "closed"


class RiskConfigurationError(ValueError):
    """Invalid risk parameter; the previous value is kept."""
    pass


@dataclass
class Position:
    """Position held in the risk manager's book."""
    id: str
    symbol: str
    side: PositionSide
    entry_price: float
    quantity: float
    stop_loss: float
    take_profit: float
    status: PositionStatus = PositionStatus.OPEN
    original_quantity: float = 0.0
    initial_stop_loss: float = 0.0
    risk_amount: float = 0.0
    potential_reward: float = 0.0
    risk_reward_ratio: float = 0.0
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    initial_signal: float = 0.5
    dynamic_stop: Optional[float] = None
    last_atr: Optional[float] = None
    trailing_stop_price: Optional[float] = None
    highest_price: Optional[float] = None
    lowest_price: Optional[float] = None
    partial_closed_quantity: float = 0.0
    realized_pnl: float = 0.0
    order_id: Optional[str] = None

    def __post_init__(self):
        if not self.original_quantity:
            self.original_quantity = self.quantity
        if not self.initial_stop_loss:
            self.initial_stop_loss = self.stop_loss
        if self.dynamic_stop is None:
            self.dynamic_stop = self.stop_loss
        if self.highest_price is None:
            self.highest_price = self.entry_price
        if self.lowest_price is None:
            self.lowest_price = self.entry_price
        self.refresh_exposure()

    @property
    def direction(self) -> int:
        return self.side.direction

    @property
    def is_open(self) -> bool:
        return self.status == PositionStatus.OPEN

    @property
    def is_pending(self) -> bool:
        return self.status == PositionStatus.PENDING

    def refresh_exposure(self) -> None:
        """Recompute risk and reward for the remaining quantity."""
        self.risk_amount = abs(self.entry_price - self.initial_stop_loss) * self.quantity
        self.potential_reward = abs(self.take_profit - self.entry_price) * self.quantity
        self.risk_reward_ratio = (
            self.potential_reward / self.risk_amount if self.risk_amount > 0 else 0.0
        )

    def price_change_percent(self, price: float) -> float:
        """Side-aware percent move from entry."""
        return self.direction * (price - self.entry_price) / self.entry_price * 100

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return {
            'id': self.id,
            'symbol': self.symbol,
            'side': self.side.value,
            'status': self.status.value,
            'entry_price': self.entry_price,
            'quantity': self.quantity,
            'original_quantity': self.original_quantity,
            'stop_loss': self.stop_loss,
            'initial_stop_loss': self.initial_stop_loss,
            'take_profit': self.take_profit,
            'risk_amount': self.risk_amount,
            'potential_reward': self.potential_reward,
            'risk_reward_ratio': self.risk_reward_ratio,
            'created_at': self.created_at.isoformat(),
            'initial_signal': self.initial_signal,
            'dynamic_stop': self.dynamic_stop,
            'last_atr': self.last_atr,
            'trailing_stop_price': self.trailing_stop_price,
            'highest_price': self.highest_price,
            'lowest_price': self.lowest_price,
            'partial_closed_quantity': self.partial_closed_quantity,
            'realized_pnl': self.realized_pnl,
            'order_id': self.order_id,
        }


@dataclass(frozen=True)
class ClosedTrade:
    """Immutable record of a full or partial close."""
    position_id: str
    symbol: str
    side: PositionSide
    entry_price: float
    exit_price: float
    closed_quantity: float
    original_quantity: float
    stop_loss: float
    take_profit: float
    initial_signal: float
    pnl: float
    pnl_percent: float
    created_at: datetime
    closed_at: datetime
    partial: bool = False
    reason: str = "manual"

    def to_dict(self) -> dict:
        """Serialize to dictionary (persistence record)."""
        return {
            'id': f"{self.position_id}:{self.closed_at.isoformat()}",
            'position_id': self.position_id,
            'symbol': self.symbol,
            'side': self.side.value,
            'entry_price': self.entry_price,
            'exit_price': self.exit_price,
            'closed_quantity': self.closed_quantity,
            'original_quantity': self.original_quantity,
            'stop_loss': self.stop_loss,
            'take_profit': self.take_profit,
            'initial_signal': self.initial_signal,
            'pnl': self.pnl,
            'pnl_percent': self.pnl_percent,
            'created_at': self.created_at.isoformat(),
            'closed_at': self.closed_at.isoformat(),
            'partial': self.partial,
            'reason': self.reason,
        }


@dataclass
class TradeValidation:
    """Result of trade validation. reason is set on every rejection."""
    valid: bool
    reason: Optional[str] = None


@dataclass
class ProfitTarget:
    """Profit tier reached by a position. The caller performs the close."""
    level: Optional[str] = None
    should_close: bool = False
    close_fraction: float = 0.0
    price_change_percent: float = 0.0


@dataclass
class CloseResult:
    """Outcome of a (partial) close."""
    position_id: str
    symbol: str
    side: PositionSide
    exit_price: float
    pnl: float
    pnl_percent: float
    closed_quantity: float
    remaining_quantity: float
    new_balance: float
    fully_closed: bool
    total_realized_pnl: float
    reason: str
    trade: ClosedTrade

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return {
            'position_id': self.position_id,
            'symbol': self.symbol,
            'side': self.side.value,
            'exit_price': self.exit_price,
            'pnl': self.pnl,
            'pnl_percent': self.pnl_percent,
            'closed_quantity': self.closed_quantity,
            'remaining_quantity': self.remaining_quantity,
            'new_balance': self.new_balance,
            'fully_closed': self.fully_closed,
            'total_realized_pnl': self.total_realized_pnl,
            'reason': self.reason,
        }


@dataclass
class PositionUpdate:
    """Result of one supervision tick."""
    position: Position
    close_result: Optional[CloseResult] = None
    trigger: Optional[str] = None


@dataclass
class RiskMetrics:
    """Performance metrics over the trade history."""
    max_drawdown: float = 0.0
    sharpe_ratio: float = 0.0
    win_rate: float = 0.0
    profit_factor: float = 0.0
    max_risk_per_trade: float = 0.0
    total_trades: int = 0
    total_pnl: float = 0.0

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return {
            'max_drawdown': self.max_drawdown,
            'sharpe_ratio': self.sharpe_ratio,
            'win_rate': self.win_rate,
            'profit_factor': self.profit_factor,
            'max_risk_per_trade': self.max_risk_per_trade,
            'total_trades': self.total_trades,
            'total_pnl': self.total_pnl,
        }


@dataclass
class AccountState:
    """Account summary."""
    balance: float
    open_positions_count: int
    pending_positions_count: int
    total_open_risk: float
    max_total_risk_amount: float

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return {
            'balance': self.balance,
            'open_positions_count': self.open_positions_count,
            'pending_positions_count': self.pending_positions_count,
            'total_open_risk': self.total_open_risk,
            'max_total_risk_amount': self.max_total_risk_amount,
        }


DEFAULT_PROFIT_TARGETS = [
    {'level_pct': 1.0, 'close_fraction': 1.0},
    {'level_pct': 0.5, 'close_fraction': 0.5},
]


class RiskManager:
    """
    Owns the position book and trade history.

    No other component mutates Position objects; all changes go through
    this class.
    """

    def __init__(self, config: Optional[dict] = None, initial_balance: Optional[float] = None):
        """
        Initialize RiskManager.

        Args:
            config: Risk configuration (risk section of risk.yaml)
            initial_balance: Overrides config initial_balance
        """
        self.config = config or {}
        limits = self.config.get('limits', {})
        stops = self.config.get('stops', {})
        sizing = self.config.get('sizing', {})

        self.max_position_risk = limits.get('max_position_risk', 0.01)
        self.max_total_risk = limits.get('max_total_risk', 0.10)
        self.max_position_value_pct = limits.get('max_position_value_pct', 0.02)
        self.max_position_notional_pct = limits.get('max_position_notional_pct', 0.10)
        self.quantity_decimals = limits.get('quantity_decimals', 2)

        self.atr_multiplier = stops.get('atr_multiplier', 1.5)
        self.trailing_atr_multiplier = stops.get('trailing_atr_multiplier', 1.2)
        self.min_risk_reward = stops.get('min_risk_reward', 1.5)
        self.default_risk_reward = stops.get('default_risk_reward', 2.5)
        self.fallback_stop_pct = stops.get('fallback_stop_pct', 0.02)
        self.volatility_stop_pct = stops.get('volatility_stop_pct', 0.03)

        self.confidence_floor = sizing.get('confidence_floor', 0.4)
        self.signal_strength_floor = sizing.get('signal_strength_floor', 0.6)
        self.max_volatility_reduction = sizing.get('max_volatility_reduction', 0.25)

        targets = self.config.get('profit_targets') or DEFAULT_PROFIT_TARGETS
        self.profit_targets = sorted(
            ({'level_pct': float(t['level_pct']), 'close_fraction': float(t['close_fraction'])}
             for t in targets),
            key=lambda t: t['level_pct'],
            reverse=True,
        )

        balance = initial_balance if initial_balance is not None else self.config.get('initial_balance', 10000)
        self._balance = float(balance)

        self._positions: dict[str, Position] = {}
        self._trade_history: list[ClosedTrade] = []
        self.last_validation: Optional[TradeValidation] = None

        logger.info(
            f"RiskManager initialized: balance={self._balance:.2f}, "
            f"max_position_risk={self.max_position_risk}, max_total_risk={self.max_total_risk}"
        )

    # -------------------------------------------------------------------------
    # Sizing and placement
    # -------------------------------------------------------------------------

    def calculate_position_size(
        self,
        entry_price: float,
        stop_loss: float,
        signal: float,
        confidence: float,
        volatility: float = 0.5,
        sentiment_risk_adjustment: float = 1.0,
    ) -> float:
        """
        Calculate position quantity from the per-trade risk budget.

        The base quantity risks max_position_risk of the balance between
        entry and stop. It is then scaled by confidence (40-100%), signal
        strength from neutral (60-100%), volatility (up to -25%) and the
        sentiment multiplier, capped by position notional and floored to
        quantity_decimals.

        Returns:
            Quantity, 0 when the stop distance or entry is zero
        """
        price_risk = abs(entry_price - stop_loss)
        if price_risk == 0 or entry_price <= 0:
            return 0.0

        quantity = (self._balance * self.max_position_risk) / price_risk

        confidence = min(max(confidence, 0.0), 1.0)
        quantity *= self.confidence_floor + (1 - self.confidence_floor) * confidence

        signal_strength = min(abs(signal - 0.5) * 2, 1.0)
        quantity *= self.signal_strength_floor + (1 - self.signal_strength_floor) * signal_strength

        volatility = min(max(volatility, 0.0), 1.0)
        quantity *= 1 - self.max_volatility_reduction * volatility

        quantity *= max(sentiment_risk_adjustment, 0.0)

        max_position_value = self._balance * self.max_position_value_pct
        if quantity * entry_price > max_position_value:
            quantity = max_position_value / entry_price

        factor = 10 ** self.quantity_decimals
        return math.floor(quantity * factor + 1e-9) / factor

    def calculate_stop_loss(
        self,
        entry_price: float,
        signal: float,
        volatility: float,
        atr: Optional[float] = None,
    ) -> float:
        """
        Place the stop on the loss side of the implied direction.

        ATR stop: entry -/+ atr * atr_multiplier. Without ATR the stop is
        a percentage of entry: fallback_stop_pct + volatility * volatility_stop_pct.
        """
        direction = PositionSide.from_signal(signal).direction

        if atr:
            stop_loss = entry_price - direction * atr * self.atr_multiplier
        else:
            stop_pct = self.fallback_stop_pct + volatility * self.volatility_stop_pct
            stop_loss = entry_price * (1 - direction * stop_pct)

        return round(stop_loss, 8)

    def calculate_take_profit(
        self,
        entry_price: float,
        stop_loss: float,
        risk_reward_ratio: Optional[float] = None,
    ) -> float:
        """Take-profit on the opposite side of the stop at ratio x risk."""
        if risk_reward_ratio is None:
            risk_reward_ratio = self.default_risk_reward

        reward = abs(entry_price - stop_loss) * risk_reward_ratio
        direction = 1 if entry_price > stop_loss else -1
        return round(entry_price + direction * reward, 8)

    def validate_trade(
        self,
        entry_price: float,
        stop_loss: float,
        take_profit: float,
        quantity: float,
        signal: float,
    ) -> TradeValidation:
        """
        Validate a proposed trade. Never raises.

        Returns:
            TradeValidation with a reason on rejection
        """
        if entry_price <= 0 or quantity <= 0:
            return TradeValidation(False, f"Invalid entry price {entry_price} or quantity {quantity}")

        position_value = entry_price * quantity
        max_value = self._balance * self.max_position_notional_pct
        if position_value > max_value:
            return TradeValidation(
                False,
                f"Position size {position_value:.2f} exceeds "
                f"{self.max_position_notional_pct:.0%} of balance {max_value:.2f}",
            )

        risk_per_unit = abs(entry_price - stop_loss)
        if risk_per_unit == 0:
            return TradeValidation(False, "Stop-loss equals entry price")

        side = PositionSide.from_signal(signal)
        if side == PositionSide.LONG:
            if stop_loss > entry_price:
                return TradeValidation(False, "LONG signal but stop-loss above entry")
            if take_profit <= entry_price:
                return TradeValidation(False, "LONG signal but take-profit below entry")
        else:
            if stop_loss < entry_price:
                return TradeValidation(False, "SHORT signal but stop-loss below entry")
            if take_profit >= entry_price:
                return TradeValidation(False, "SHORT signal but take-profit above entry")

        ratio = abs(take_profit - entry_price) / risk_per_unit
        if ratio < self.min_risk_reward:
            return TradeValidation(
                False,
                f"Risk/Reward ratio {ratio:.2f} below minimum {self.min_risk_reward}",
            )

        existing_risk = self.get_total_open_risk()
        new_risk = risk_per_unit * quantity
        risk_cap = self._balance * self.max_total_risk
        if existing_risk + new_risk > risk_cap:
            return TradeValidation(
                False,
                f"Total portfolio risk exceeded: {existing_risk:.2f} + {new_risk:.2f} > {risk_cap:.2f}",
            )

        return TradeValidation(True)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def open_position(
        self,
        symbol: str,
        entry_price: float,
        quantity: float,
        stop_loss: float,
        take_profit: float,
        signal: float,
        pending: bool = False,
    ) -> Optional[Position]:
        """
        Validate and add a position to the book.

        Args:
            pending: Create as PENDING until an order is confirmed

        Returns:
            The new Position, or None if validation failed (book unchanged)
        """
        validation = self.validate_trade(entry_price, stop_loss, take_profit, quantity, signal)
        self.last_validation = validation
        if not validation.valid:
            logger.warning(f"Trade validation failed for {symbol}: {validation.reason}")
            return None

        position = Position(
            id=str(uuid.uuid4()),
            symbol=symbol,
            side=PositionSide.from_signal(signal),
            entry_price=entry_price,
            quantity=quantity,
            stop_loss=stop_loss,
            take_profit=take_profit,
            status=PositionStatus.PENDING if pending else PositionStatus.OPEN,
            initial_signal=signal,
        )
        self._positions[position.id] = position

        logger.info(
            f"Position {position.status.value}: {position.side.value} {quantity} {symbol} "
            f"@ {entry_price} SL={stop_loss} TP={take_profit} (id={position.id})"
        )
        return position

    def confirm_position(self, position_id: str, order_id: Optional[str] = None) -> Optional[Position]:
        """Move a PENDING position to OPEN."""
        position = self._positions.get(position_id)
        if position is None or not position.is_pending:
            logger.warning(f"Cannot confirm position {position_id}: not pending")
            return None

        position.status = PositionStatus.OPEN
        position.order_id = order_id
        logger.info(f"Position confirmed: {position.symbol} {position_id} (order {order_id})")
        return position

    def cancel_pending_position(self, position_id: str) -> bool:
        """Remove a PENDING position. Balance and history are untouched."""
        position = self._positions.get(position_id)
        if position is None or not position.is_pending:
            logger.warning(f"Cannot cancel position {position_id}: not pending")
            return False

        del self._positions[position_id]
        logger.info(f"Pending position rolled back: {position.symbol} {position_id}")
        return True

    def update_position_stop(
        self,
        position_id: str,
        new_stop: float,
        atr: Optional[float] = None,
    ) -> Optional[Position]:
        """
        Move the stop if it tightens (up for LONG, down for SHORT).

        Returns:
            The position (changed or not), None if not open
        """
        position = self._positions.get(position_id)
        if position is None or not position.is_open:
            return None

        if position.direction * (new_stop - position.stop_loss) > 0:
            position.stop_loss = new_stop
            position.dynamic_stop = new_stop
            position.last_atr = atr
            logger.debug(f"Stop tightened for {position.symbol} {position_id}: {new_stop}")

        return position

    def update_trailing_stop(
        self,
        position_id: str,
        current_price: float,
        atr: Optional[float],
    ) -> Optional[Position]:
        """
        Trail the stop trailing_atr_multiplier x ATR behind the best price.

        The stop only tightens, so the original hard stop is its floor.
        """
        position = self._positions.get(position_id)
        if position is None or not position.is_open:
            return None

        position.highest_price = max(position.highest_price, current_price)
        position.lowest_price = min(position.lowest_price, current_price)

        if not atr or atr <= 0:
            return position

        distance = atr * self.trailing_atr_multiplier
        if position.side == PositionSide.LONG:
            candidate = round(position.highest_price - distance, 8)
        else:
            candidate = round(position.lowest_price + distance, 8)

        if position.direction * (candidate - position.stop_loss) > 0:
            position.stop_loss = candidate
            position.trailing_stop_price = candidate
            position.dynamic_stop = candidate
            position.last_atr = atr
            logger.debug(f"Trailing stop for {position.symbol} moved to {candidate}")

        return position

    def check_profit_targets(self, position_id: str, current_price: float) -> ProfitTarget:
        """
        Report the highest profit tier reached.

        Partial tiers fire only while no partial close has happened yet.
        Does not close anything.
        """
        position = self._positions.get(position_id)
        if position is None or not position.is_open:
            return ProfitTarget()

        change = position.price_change_percent(current_price)
        for target in self.profit_targets:
            if change < target['level_pct']:
                continue
            fraction = target['close_fraction']
            if fraction < 1.0 and position.partial_closed_quantity > 0:
                continue
            return ProfitTarget(
                level=f"{target['level_pct']:g}%",
                should_close=True,
                close_fraction=fraction,
                price_change_percent=change,
            )

        return ProfitTarget(price_change_percent=change)

    def close_position(
        self,
        position_id: str,
        exit_price: float,
        quantity_to_close: Optional[float] = None,
        reason: str = "manual",
    ) -> Optional[CloseResult]:
        """
        Close all or part of an OPEN position.

        PnL = (exit - entry) * closed_qty * direction, realised into the
        balance immediately.

        Returns:
            CloseResult, or None if the position is not open
        """
        position = self._positions.get(position_id)
        if position is None or not position.is_open:
            logger.warning(f"Cannot close position {position_id}: not open")
            return None

        if quantity_to_close is None or quantity_to_close >= position.quantity - QUANTITY_EPSILON:
            closed_quantity = position.quantity
        elif quantity_to_close <= 0:
            logger.warning(f"Invalid close quantity {quantity_to_close} for {position_id}")
            return None
        else:
            closed_quantity = round(quantity_to_close, self.quantity_decimals)
            if closed_quantity <= 0:
                logger.warning(f"Close quantity {quantity_to_close} rounds to 0 for {position_id}")
                return None

        pnl = (exit_price - position.entry_price) * closed_quantity * position.direction
        pnl_percent = pnl / (position.entry_price * closed_quantity) * 100
        fully_closed = closed_quantity >= position.quantity - QUANTITY_EPSILON
        now = datetime.now(timezone.utc)

        self._balance += pnl
        position.realized_pnl += pnl

        if fully_closed:
            position.status = PositionStatus.CLOSED
            remaining = 0.0
            del self._positions[position_id]
        else:
            position.quantity = round(position.quantity - closed_quantity, self.quantity_decimals)
            position.partial_closed_quantity = round(
                position.partial_closed_quantity + closed_quantity, self.quantity_decimals
            )
            position.refresh_exposure()
            remaining = position.quantity

        trade = ClosedTrade(
            position_id=position.id,
            symbol=position.symbol,
            side=position.side,
            entry_price=position.entry_price,
            exit_price=exit_price,
            closed_quantity=closed_quantity,
            original_quantity=position.original_quantity,
            stop_loss=position.stop_loss,
            take_profit=position.take_profit,
            initial_signal=position.initial_signal,
            pnl=pnl,
            pnl_percent=pnl_percent,
            created_at=position.created_at,
            closed_at=now,
            partial=not fully_closed,
            reason=reason,
        )
        self._trade_history.append(trade)

        logger.info(
            f"Position {'closed' if fully_closed else 'partially closed'} ({reason}): "
            f"{position.symbol} {closed_quantity} @ {exit_price} "
            f"PnL={pnl:.4f} ({pnl_percent:.2f}%) balance={self._balance:.2f}"
        )

        return CloseResult(
            position_id=position.id,
            symbol=position.symbol,
            side=position.side,
            exit_price=exit_price,
            pnl=pnl,
            pnl_percent=pnl_percent,
            closed_quantity=closed_quantity,
            remaining_quantity=remaining,
            new_balance=self._balance,
            fully_closed=fully_closed,
            total_realized_pnl=position.realized_pnl,
            reason=reason,
            trade=trade,
        )

    def update_position(
        self,
        position_id: str,
        current_price: float,
        atr: Optional[float] = None,
    ) -> Optional[PositionUpdate]:
        """
        Supervise one OPEN position for one price tick.

        Trails the stop when ATR is given, then force-closes at the stop or
        take-profit level if crossed.
        """
        position = self._positions.get(position_id)
        if position is None or not position.is_open:
            return None

        if atr:
            self.update_trailing_stop(position_id, current_price, atr)

        if position.side == PositionSide.LONG:
            stop_hit = current_price <= position.stop_loss
            target_hit = current_price >= position.take_profit
        else:
            stop_hit = current_price >= position.stop_loss
            target_hit = current_price <= position.take_profit

        if stop_hit:
            logger.info(f"Stop-loss hit on {position.symbol} at {current_price}")
            result = self.close_position(position_id, position.stop_loss, reason="stop_loss")
            return PositionUpdate(position, result, "stop_loss")
        if target_hit:
            logger.info(f"Take-profit hit on {position.symbol} at {current_price}")
            result = self.close_position(position_id, position.take_profit, reason="take_profit")
            return PositionUpdate(position, result, "take_profit")

        return PositionUpdate(position)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def calculate_metrics(self) -> RiskMetrics:
        """
        Metrics over every close record, partial ones included.

        Max drawdown is not tracked and is reported as 0.
        """
        trades = self._trade_history
        if not trades:
            return RiskMetrics(max_risk_per_trade=self.max_position_risk)

        wins = [t.pnl for t in trades if t.pnl > 0]
        losses = [t.pnl for t in trades if t.pnl < 0]

        win_rate = len(wins) / len(trades) * 100
        total_losses = abs(sum(losses))
        profit_factor = sum(wins) / total_losses if total_losses > 0 else 0.0

        returns = [t.pnl_percent for t in trades]
        mean_return = sum(returns) / len(returns)
        variance = sum((r - mean_return) ** 2 for r in returns) / len(returns)
        stddev = math.sqrt(variance)
        sharpe = (mean_return / stddev) * math.sqrt(252) if stddev > 0 else 0.0

        return RiskMetrics(
            max_drawdown=0.0,
            sharpe_ratio=sharpe,
            win_rate=win_rate,
            profit_factor=profit_factor,
            max_risk_per_trade=self.max_position_risk,
            total_trades=len(trades),
            total_pnl=sum(t.pnl for t in trades),
        )

    def get_total_open_risk(self) -> float:
        """Summed risk of OPEN and PENDING positions."""
        return sum(p.risk_amount for p in self._positions.values())

    def get_account_state(self) -> AccountState:
        return AccountState(
            balance=self._balance,
            open_positions_count=sum(1 for p in self._positions.values() if p.is_open),
            pending_positions_count=sum(1 for p in self._positions.values() if p.is_pending),
            total_open_risk=self.get_total_open_risk(),
            max_total_risk_amount=self._balance * self.max_total_risk,
        )

    def get_open_positions(
        self,
        symbol: Optional[str] = None,
        include_pending: bool = False,
    ) -> list[Position]:
        """Positions in the book, oldest first."""
        return [
            p for p in self._positions.values()
            if (p.is_open or (include_pending and p.is_pending))
            and (symbol is None or p.symbol == symbol)
        ]

    def get_position(self, position_id: str) -> Optional[Position]:
        return self._positions.get(position_id)

    def get_trade_history(self) -> list[ClosedTrade]:
        return list(self._trade_history)

    def get_account_balance(self) -> float:
        return self._balance

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    def set_max_risk_per_trade(self, risk: float) -> None:
        if risk <= 0 or risk > 1:
            raise RiskConfigurationError(f"max risk per trade must be in (0, 1], got {risk}")
        self.max_position_risk = risk

    def set_max_total_risk(self, risk: float) -> None:
        if risk <= 0 or risk > 1:
            raise RiskConfigurationError(f"max total risk must be in (0, 1], got {risk}")
        self.max_total_risk = risk

    def set_account_balance(self, balance: float) -> None:
        if balance <= 0:
            raise RiskConfigurationError(f"account balance must be positive, got {balance}")
        self._balance = float(balance)

    def set_atr_multiplier(self, multiplier: float) -> None:
        if multiplier <= 0:
            raise RiskConfigurationError(f"ATR multiplier must be positive, got {multiplier}")
        self.atr_multiplier = multiplier

    def get_atr_multiplier(self) -> float:
        return self.atr_multiplier
