"""Typed data contracts for single-symbol futures position accounting.

Flat exposure is represented by the absence of a `Position`; a position is
never stored with a zero size. All money and size values are `Decimal`, and all
timestamps are offset-aware UTC datetimes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Literal, Union

PositionSide = Literal["long", "short"]
OrderSide = Literal["buy", "sell"]
PositionChange = Literal["open", "close"]

DUST_THRESHOLD = Decimal("0.00000001")
MARKET_ORDER_TYPE = "mkt"
TRADE_UPDATE_REASON = "trade"


def position_side_for_order(side: OrderSide) -> PositionSide:
    """Return the position side opened by an order side.

    Args:
        side: Order side (`buy` or `sell`).

    Returns:
        PositionSide: `long` for buys, `short` for sells.

    Raises:
        ValueError: Raised when side is not a supported order side.
    """

    if side == "buy":
        return "long"
    if side == "sell":
        return "short"
    raise ValueError(f"unsupported order side={side}")


def position_direction_sign(side: PositionSide) -> Decimal:
    """Return the PnL sign multiplier for a position side."""

    return Decimal("1") if side == "long" else Decimal("-1")


@dataclass(frozen=True)
class Position:
    """Open exposure on the tracked symbol.

    Attributes:
        symbol: Tracked futures symbol.
        side: Position side (`long` or `short`).
        size: Open size in base units, always above the dust threshold.
        average_entry_price: Weighted-average entry price.
        unrealized_pnl: Unrealized PnL valued at the last clearing price.
    """

    symbol: str
    side: PositionSide
    size: Decimal
    average_entry_price: Decimal
    unrealized_pnl: Decimal = Decimal("0")


@dataclass(frozen=True)
class Fill:
    """One execution reported by the exchange.

    Attributes:
        order_id: Exchange order identifier.
        symbol: Instrument symbol.
        side: Fill side (`buy` or `sell`).
        size: Unsigned fill size.
        price: Fill price.
        fee: Fee charged for the fill.
        fill_time: Offset-aware fill timestamp.
        fill_id: Optional exchange fill identifier.
    """

    order_id: str
    symbol: str
    side: OrderSide
    size: Decimal
    price: Decimal
    fee: Decimal
    fill_time: datetime
    fill_id: str | None = None


@dataclass(frozen=True)
class NoTradeRequest:
    """Explicit hold instruction; the ledger is not touched."""

    reason: str = ""


@dataclass(frozen=True)
class MarketTradeRequest:
    """Market-order instruction applied at the current mark price.

    Attributes:
        symbol: Target symbol.
        side: Order side.
        size: Unsigned order size.
        order_type: Exchange order type, only `mkt` is accepted by the ledger.
        reason: Free-form rationale supplied by the decision source.
    """

    symbol: str
    side: OrderSide
    size: Decimal
    order_type: str = MARKET_ORDER_TYPE
    reason: str = ""


TradeRequest = Union[NoTradeRequest, MarketTradeRequest]


@dataclass(frozen=True)
class PositionUpdate:
    """Journal entry emitted once per applied execution that changes exposure.

    Attributes:
        timestamp: Execution timestamp.
        tradeable: Symbol the update applies to.
        update_reason: Update reason label, `trade` for ledger executions.
        position_change: `close` when exposure shrank, else `open`.
        realized_pnl: Realized PnL booked by the execution.
        old_side: Side held before the execution, None when flat.
        old_average_entry_price: Average entry price before the execution.
        execution_price: Clearing price of the execution.
        trade_id: Ledger trade sequence number.
        close_size: Portion of the request that closed existing exposure.
        new_side: Side held after the execution, None when flat.
        new_size: Size held after the execution.
        order_side: Side of the executed request.
        order_size: Size of the executed request.
    """

    entry_type = "position_update"

    timestamp: datetime
    tradeable: str
    update_reason: str
    position_change: PositionChange
    realized_pnl: Decimal
    old_side: PositionSide | None
    old_average_entry_price: Decimal
    execution_price: Decimal
    trade_id: int = 0
    close_size: Decimal = Decimal("0")
    new_side: PositionSide | None = None
    new_size: Decimal = Decimal("0")
    order_side: OrderSide | None = None
    order_size: Decimal = Decimal("0")

    @property
    def entry_timestamp(self) -> datetime:
        return self.timestamp


@dataclass(frozen=True)
class RealizedPnlEvent:
    """Realized PnL derived from a closing position update.

    Attributes:
        closed_time: Close timestamp, part of the dedupe key.
        pair: Symbol, part of the dedupe key.
        pnl: Realized PnL amount.
        side: Side of the closing order.
        size: Closed size.
        entry_price: Average entry price of the closed exposure.
        exit_price: Clearing price of the close.
    """

    entry_type = "realized_pnl"

    closed_time: datetime
    pair: str
    pnl: Decimal
    side: OrderSide
    size: Decimal
    entry_price: Decimal
    exit_price: Decimal

    @property
    def entry_timestamp(self) -> datetime:
        return self.closed_time

    @property
    def dedupe_key(self) -> tuple[datetime, str]:
        return (self.closed_time, self.pair)


@dataclass(frozen=True)
class BotAction:
    """External decision recorded alongside the accounting events.

    Attributes:
        timestamp: Decision timestamp.
        reason: Rationale supplied by the decision source.
        action: Normalized action payload (side/size or hold).
        market_snapshot: Market values observed when the decision was applied.
    """

    entry_type = "bot_action"

    timestamp: datetime
    reason: str
    action: dict[str, object]
    market_snapshot: dict[str, object]

    @property
    def entry_timestamp(self) -> datetime:
        return self.timestamp


JournalEntry = Union[PositionUpdate, RealizedPnlEvent, BotAction]


@dataclass(frozen=True)
class LedgerState:
    """Persistable snapshot of one tracked symbol's accounting state.

    Attributes:
        balance: Account balance including realized PnL.
        position: Open position, None when flat.
        last_trade_id: Last issued ledger trade sequence number.
        journal: Time-ordered journal entries.
        last_journal_cursor: Timestamp up to which position updates were converted to realized events.
    """

    balance: Decimal
    position: Position | None = None
    last_trade_id: int = 0
    journal: tuple[JournalEntry, ...] = field(default_factory=tuple)
    last_journal_cursor: datetime | None = None


@dataclass(frozen=True)
class AppliedTrade:
    """Outcome of one successful ledger execution.

    Attributes:
        trade_id: Ledger trade sequence number.
        execution_price: Clearing price used for the execution.
        realized_pnl: Realized PnL booked by the execution.
        close_size: Size that closed existing exposure.
        position: Resulting position, None when flat.
        unrealized_pnl: Unrealized PnL of the resulting position at the clearing price.
        balance: Balance after the execution.
        position_update: Journal entry emitted for the execution.
    """

    trade_id: int
    execution_price: Decimal
    realized_pnl: Decimal
    close_size: Decimal
    position: Position | None
    unrealized_pnl: Decimal
    balance: Decimal
    position_update: PositionUpdate


__all__ = [
    "AppliedTrade",
    "BotAction",
    "DUST_THRESHOLD",
    "Fill",
    "JournalEntry",
    "LedgerState",
    "MARKET_ORDER_TYPE",
    "MarketTradeRequest",
    "NoTradeRequest",
    "OrderSide",
    "Position",
    "PositionChange",
    "PositionSide",
    "PositionUpdate",
    "RealizedPnlEvent",
    "TRADE_UPDATE_REASON",
    "TradeRequest",
    "position_direction_sign",
    "position_side_for_order",
]
