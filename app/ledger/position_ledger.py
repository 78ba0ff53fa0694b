"""Weighted-average-cost position ledger for one tracked futures symbol."""
# pylint: disable=too-many-locals

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable

from .errors import InsufficientMarginError, UnsupportedOrderError
from .journal import Journal
from .models import (
    DUST_THRESHOLD,
    MARKET_ORDER_TYPE,
    TRADE_UPDATE_REASON,
    AppliedTrade,
    BotAction,
    LedgerState,
    MarketTradeRequest,
    Position,
    PositionUpdate,
    RealizedPnlEvent,
    position_direction_sign,
    position_side_for_order,
)

logger = logging.getLogger(__name__)


def ledger_default_state(initial_balance: Decimal) -> LedgerState:
    """Build the state of a fresh, flat ledger.

    Args:
        initial_balance: Starting account balance.

    Returns:
        LedgerState: Flat state with an empty journal.

    Raises:
        ValueError: Raised when initial balance is negative.
    """

    if initial_balance < Decimal("0"):
        raise ValueError("initial_balance must be >= 0")
    return LedgerState(balance=initial_balance)


def ledger_position_unrealized_pnl(position: Position | None, mark_price: Decimal) -> Decimal:
    """Value an open position at a mark price.

    Args:
        position: Open position or None when flat.
        mark_price: Reference price.

    Returns:
        Decimal: Unrealized PnL, zero when flat.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    if position is None:
        return Decimal("0")
    return position.size * (mark_price - position.average_entry_price) * position_direction_sign(position.side)


class PositionLedger:
    """Authoritative accounting state for one tracked symbol.

    One instance owns one `LedgerState`. The ledger is single-writer: callers
    must not invoke `ledger_apply_execution` concurrently on the same instance.
    """

    def __init__(
        self,
        symbol: str,
        state: LedgerState,
        clock: Callable[[], datetime] | None = None,
    ):
        """Initialize ledger for one symbol from an existing state snapshot.

        Args:
            symbol: Tracked symbol; requests for other symbols are rejected.
            state: Starting ledger state.
            clock: Optional provider of offset-aware UTC timestamps.

        Returns:
            None: Initializer does not return values.

        Raises:
            ValueError: Raised when symbol is blank or state is invalid.
        """

        normalized_symbol = symbol.strip()
        if not normalized_symbol:
            raise ValueError("symbol must not be blank")

        self._symbol = normalized_symbol
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._balance = Decimal("0")
        self._position: Position | None = None
        self._last_trade_id = 0
        self._last_journal_cursor: datetime | None = None
        self._journal = Journal()
        self.ledger_restore(state)

    @property
    def symbol(self) -> str:
        return self._symbol

    @property
    def balance(self) -> Decimal:
        return self._balance

    @property
    def position(self) -> Position | None:
        return self._position

    @property
    def journal(self) -> Journal:
        return self._journal

    def ledger_restore(self, state: LedgerState) -> None:
        """Replace in-memory state with a persisted snapshot.

        Args:
            state: Snapshot loaded from the state store.

        Returns:
            None: Ledger state is replaced as side effect.

        Raises:
            ValueError: Raised when the snapshot violates position invariants.
        """

        if state is None:
            raise ValueError("state must not be None")
        if state.position is not None:
            if state.position.symbol != self._symbol:
                raise ValueError(f"state position symbol={state.position.symbol} does not match ledger symbol")
            if state.position.size <= DUST_THRESHOLD:
                raise ValueError("state position size must be above the dust threshold")
        if state.last_trade_id < 0:
            raise ValueError("state.last_trade_id must be >= 0")

        journal = Journal(state.journal)
        self._balance = state.balance
        self._position = state.position
        self._last_trade_id = state.last_trade_id
        self._last_journal_cursor = state.last_journal_cursor
        self._journal = journal

    def ledger_snapshot(self) -> LedgerState:
        """Return the current state as an immutable snapshot."""

        return LedgerState(
            balance=self._balance,
            position=self._position,
            last_trade_id=self._last_trade_id,
            journal=self._journal.journal_all(),
            last_journal_cursor=self._last_journal_cursor,
        )

    def ledger_apply_execution(self, request: MarketTradeRequest, mark_price: Decimal) -> AppliedTrade:
        """Apply one market trade at the mark price using weighted-average-cost accounting.

        Validation runs before any mutation, so a rejected request leaves the
        ledger exactly as it was and writes no journal entry.

        Args:
            request: Market trade request for the tracked symbol.
            mark_price: Clearing price for the whole request.

        Returns:
            AppliedTrade: Execution outcome including the emitted position update.

        Raises:
            UnsupportedOrderError: Raised for another symbol, a non-market order, or a dust-sized request.
            InsufficientMarginError: Raised when notional exceeds the available balance.
            ValueError: Raised when mark price is not positive.
        """

        self._ledger_validate_request(request=request, mark_price=mark_price)

        current = self._position
        old_size = current.size if current is not None else Decimal("0")
        old_average = current.average_entry_price if current is not None else Decimal("0")
        old_side = current.side if current is not None else None
        request_side = position_side_for_order(request.side)

        close_size = Decimal("0")
        if current is not None and request_side != current.side:
            close_size = min(request.size, current.size)

        realized_pnl = Decimal("0")
        balance = self._balance
        if close_size > Decimal("0") and current is not None:
            realized_pnl = close_size * (mark_price - old_average) * position_direction_sign(current.side)
            balance += realized_pnl
            remaining_size = current.size - close_size
            if remaining_size <= DUST_THRESHOLD:
                current = None
            else:
                current = Position(
                    symbol=self._symbol,
                    side=current.side,
                    size=remaining_size,
                    average_entry_price=current.average_entry_price,
                )

        remainder = request.size - close_size
        if remainder > DUST_THRESHOLD:
            if current is not None:
                combined_size = current.size + remainder
                current = Position(
                    symbol=self._symbol,
                    side=current.side,
                    size=combined_size,
                    average_entry_price=(
                        (current.size * current.average_entry_price) + (remainder * mark_price)
                    )
                    / combined_size,
                )
            else:
                current = Position(
                    symbol=self._symbol,
                    side=request_side,
                    size=remainder,
                    average_entry_price=mark_price,
                )

        unrealized_pnl = ledger_position_unrealized_pnl(current, mark_price)
        if current is not None:
            current = Position(
                symbol=current.symbol,
                side=current.side,
                size=current.size,
                average_entry_price=current.average_entry_price,
                unrealized_pnl=unrealized_pnl,
            )

        new_size = current.size if current is not None else Decimal("0")
        trade_id = self._last_trade_id + 1
        position_update = PositionUpdate(
            timestamp=self._ledger_now(),
            tradeable=self._symbol,
            update_reason=TRADE_UPDATE_REASON,
            position_change="close" if old_size > new_size else "open",
            realized_pnl=realized_pnl,
            old_side=old_side,
            old_average_entry_price=old_average,
            execution_price=mark_price,
            trade_id=trade_id,
            close_size=close_size,
            new_side=current.side if current is not None else None,
            new_size=new_size,
            order_side=request.side,
            order_size=request.size,
        )

        self._balance = balance
        self._position = current
        self._last_trade_id = trade_id
        self._journal.journal_append(position_update)

        logger.info(
            "ledger execution applied trade_id=%s side=%s size=%s price=%s realized_pnl=%s balance=%s position=%s",
            trade_id,
            request.side,
            request.size,
            mark_price,
            realized_pnl,
            balance,
            f"{current.side} {current.size}" if current is not None else "flat",
        )

        return AppliedTrade(
            trade_id=trade_id,
            execution_price=mark_price,
            realized_pnl=realized_pnl,
            close_size=close_size,
            position=current,
            unrealized_pnl=unrealized_pnl,
            balance=balance,
            position_update=position_update,
        )

    def ledger_validate_execution(self, request: MarketTradeRequest, mark_price: Decimal) -> None:
        """Check that a request would be accepted at a mark price without applying it.

        Live trading calls this before transmitting an order so the exchange
        never executes what the ledger would refuse to account.

        Args:
            request: Candidate market trade request.
            mark_price: Expected clearing price.

        Returns:
            None: Validation succeeds silently.

        Raises:
            UnsupportedOrderError: Raised for unsupported request shapes.
            InsufficientMarginError: Raised when notional exceeds balance.
            ValueError: Raised when mark price is not positive.
        """

        self._ledger_validate_request(request=request, mark_price=mark_price)

    def ledger_unrealized_pnl(self, mark_price: Decimal) -> Decimal:
        """Return unrealized PnL of the open position at a mark price."""

        return ledger_position_unrealized_pnl(self._position, mark_price)

    def ledger_realized_pnl_total(self) -> Decimal:
        """Return total realized PnL booked by journaled position updates.

        Returns:
            Decimal: Sum of `PositionUpdate.realized_pnl` across the journal.

        Raises:
            RuntimeError: This helper does not raise runtime errors.
        """

        return sum(
            (entry.realized_pnl for entry in self._journal.journal_filter_by_type(PositionUpdate.entry_type)),
            Decimal("0"),
        )

    def ledger_record_bot_action(
        self,
        reason: str,
        action: dict[str, object],
        market_snapshot: dict[str, object],
    ) -> BotAction:
        """Append one external decision to the journal.

        Args:
            reason: Rationale supplied by the decision source.
            action: Normalized action payload.
            market_snapshot: Market values observed for the decision.

        Returns:
            BotAction: Appended journal entry.

        Raises:
            ValueError: Raised when payloads are not dictionaries.
        """

        if not isinstance(action, dict):
            raise ValueError("action must be a dict")
        if not isinstance(market_snapshot, dict):
            raise ValueError("market_snapshot must be a dict")

        bot_action = BotAction(
            timestamp=self._ledger_now(),
            reason=reason or "",
            action=dict(action),
            market_snapshot=dict(market_snapshot),
        )
        self._journal.journal_append(bot_action)
        return bot_action

    def ledger_derive_realized_pnl_events(self) -> list[RealizedPnlEvent]:
        """Convert new closing position updates into deduplicated realized-PnL events.

        Position updates newer than the stored cursor are scanned. Any update
        that closed exposure yields one event keyed by `(closed_time, pair)`,
        so rescanning the same history never double counts.

        Returns:
            list[RealizedPnlEvent]: Events appended by this call.

        Raises:
            RuntimeError: This helper does not raise runtime errors.
        """

        appended_events: list[RealizedPnlEvent] = []
        cursor = self._last_journal_cursor
        for entry in self._journal.journal_since(self._last_journal_cursor):
            if not isinstance(entry, PositionUpdate):
                continue
            cursor = entry.timestamp
            if entry.close_size <= Decimal("0") or entry.old_side is None:
                continue

            realized_event = RealizedPnlEvent(
                closed_time=entry.timestamp,
                pair=entry.tradeable,
                pnl=entry.realized_pnl,
                side="sell" if entry.old_side == "long" else "buy",
                size=entry.close_size,
                entry_price=entry.old_average_entry_price,
                exit_price=entry.execution_price,
            )
            if self._journal.journal_append(realized_event):
                appended_events.append(realized_event)
                logger.info(
                    "realized pnl journaled pair=%s pnl=%s size=%s closed_time=%s",
                    realized_event.pair,
                    realized_event.pnl,
                    realized_event.size,
                    realized_event.closed_time.isoformat(),
                )
            else:
                logger.warning(
                    "realized pnl event dropped as duplicate pair=%s pnl=%s closed_time=%s",
                    realized_event.pair,
                    realized_event.pnl,
                    realized_event.closed_time.isoformat(),
                )

        self._last_journal_cursor = cursor
        return appended_events

    def _ledger_validate_request(self, request: MarketTradeRequest, mark_price: Decimal) -> None:
        """Reject requests the ledger cannot account without touching state.

        Args:
            request: Candidate market trade request.
            mark_price: Candidate clearing price.

        Returns:
            None: Validation succeeds silently.

        Raises:
            UnsupportedOrderError: Raised for unsupported request shapes.
            InsufficientMarginError: Raised when notional exceeds balance.
            ValueError: Raised when mark price is not positive.
        """

        if not isinstance(request, MarketTradeRequest):
            raise UnsupportedOrderError(f"unsupported trade request type={type(request).__name__}")
        if request.symbol != self._symbol:
            raise UnsupportedOrderError(f"unsupported symbol={request.symbol}, tracked symbol={self._symbol}")
        if request.order_type != MARKET_ORDER_TYPE:
            raise UnsupportedOrderError(f"unsupported order_type={request.order_type}")
        if request.side not in ("buy", "sell"):
            raise UnsupportedOrderError(f"unsupported side={request.side}")
        if request.size <= DUST_THRESHOLD:
            raise UnsupportedOrderError(f"request size must be > {DUST_THRESHOLD}")
        if mark_price is None or mark_price <= Decimal("0"):
            raise ValueError("mark_price must be > 0")

        notional = request.size * mark_price
        if notional > self._balance:
            raise InsufficientMarginError(
                f"insufficient margin: notional={notional} exceeds balance={self._balance}",
                notional=notional,
                balance=self._balance,
            )

    def _ledger_now(self) -> datetime:
        timestamp = self._clock()
        if timestamp.tzinfo is None or timestamp.utcoffset() is None:
            raise ValueError("ledger clock must return offset-aware timestamps")
        return timestamp


__all__ = ["PositionLedger", "ledger_default_state", "ledger_position_unrealized_pnl"]
