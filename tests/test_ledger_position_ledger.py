"""Tests for weighted-average-cost position ledger accounting.

These tests validate opening, scale-in, partial close, full close, reversal,
rejection and realized-PnL event derivation behavior.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from app.ledger import (
    InsufficientMarginError,
    LedgerState,
    MarketTradeRequest,
    Position,
    PositionLedger,
    PositionUpdate,
    RealizedPnlEvent,
    UnsupportedOrderError,
    ledger_default_state,
)

_SYMBOL = "PF_XBTUSD"


def _build_clock(start: datetime | None = None):
    """Build deterministic clock that advances one second per call.

    Args:
        start: Optional first timestamp.

    Returns:
        Callable[[], datetime]: Offset-aware clock function.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    state = {"current": start or datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc)}

    def _clock() -> datetime:
        value = state["current"]
        state["current"] = value + timedelta(seconds=1)
        return value

    return _clock


def _build_ledger(balance: str = "10000", state: LedgerState | None = None) -> PositionLedger:
    """Create ledger with deterministic clock for assertions.

    Args:
        balance: Starting balance when state is omitted.
        state: Optional starting state.

    Returns:
        PositionLedger: Ledger under test.

    Raises:
        ValueError: Raised by PositionLedger when state is invalid.
    """

    return PositionLedger(
        symbol=_SYMBOL,
        state=state or ledger_default_state(Decimal(balance)),
        clock=_build_clock(),
    )


def _market(side: str, size: str, symbol: str = _SYMBOL, order_type: str = "mkt") -> MarketTradeRequest:
    return MarketTradeRequest(symbol=symbol, side=side, size=Decimal(size), order_type=order_type)


def test_ledger_opening_trade_creates_position_at_execution_price() -> None:
    """Open a position from flat at the mark price.

    Returns:
        None: Assertions validate position fields.

    Raises:
        AssertionError: Raised when opening invariant is violated.
    """

    ledger = _build_ledger()

    applied_trade = ledger.ledger_apply_execution(_market("buy", "1.5"), mark_price=Decimal("100"))

    assert ledger.position == Position(
        symbol=_SYMBOL,
        side="long",
        size=Decimal("1.5"),
        average_entry_price=Decimal("100"),
        unrealized_pnl=Decimal("0"),
    )
    assert applied_trade.trade_id == 1
    assert applied_trade.realized_pnl == Decimal("0")
    assert ledger.balance == Decimal("10000")
    assert applied_trade.position_update.position_change == "open"
    assert applied_trade.position_update.old_side is None


def test_ledger_scale_in_uses_weighted_average_entry_price() -> None:
    """Scale into a long position and average the entry price.

    Returns:
        None: Assertions validate weighted average.

    Raises:
        AssertionError: Raised when average entry price is incorrect.
    """

    ledger = _build_ledger()

    ledger.ledger_apply_execution(_market("buy", "1.0"), mark_price=Decimal("100"))
    applied_trade = ledger.ledger_apply_execution(_market("buy", "1.0"), mark_price=Decimal("120"))

    assert ledger.position is not None
    assert ledger.position.side == "long"
    assert ledger.position.size == Decimal("2.0")
    assert ledger.position.average_entry_price == Decimal("110")
    assert applied_trade.close_size == Decimal("0")
    assert applied_trade.unrealized_pnl == Decimal("20")


def test_ledger_partial_close_books_realized_pnl_and_keeps_average() -> None:
    """Sell part of a long position and book PnL on the closed portion only.

    Returns:
        None: Assertions validate balance and remaining position.

    Raises:
        AssertionError: Raised when partial close accounting is incorrect.
    """

    ledger = _build_ledger()
    ledger.ledger_apply_execution(_market("buy", "2.0"), mark_price=Decimal("100"))

    applied_trade = ledger.ledger_apply_execution(_market("sell", "0.5"), mark_price=Decimal("110"))

    assert applied_trade.realized_pnl == Decimal("5")
    assert ledger.balance == Decimal("10005")
    assert ledger.position is not None
    assert ledger.position.side == "long"
    assert ledger.position.size == Decimal("1.5")
    assert ledger.position.average_entry_price == Decimal("100")
    assert applied_trade.position_update.position_change == "close"


def test_ledger_full_close_removes_position() -> None:
    """Close a long position exactly and leave the ledger flat.

    Returns:
        None: Assertions validate flat state and realized loss.

    Raises:
        AssertionError: Raised when full close leaves residual exposure.
    """

    ledger = _build_ledger()
    ledger.ledger_apply_execution(_market("buy", "1.0"), mark_price=Decimal("100"))

    applied_trade = ledger.ledger_apply_execution(_market("sell", "1.0"), mark_price=Decimal("90"))

    assert applied_trade.realized_pnl == Decimal("-10")
    assert ledger.position is None
    assert ledger.balance == Decimal("9990")
    assert applied_trade.position_update.new_side is None
    assert applied_trade.position_update.new_size == Decimal("0")


def test_ledger_reversal_closes_then_opens_opposite_side() -> None:
    """Sell more than the long size and reopen short with the remainder.

    Returns:
        None: Assertions validate reversal accounting.

    Raises:
        AssertionError: Raised when reversal position is incorrect.
    """

    ledger = _build_ledger()
    ledger.ledger_apply_execution(_market("buy", "1.0"), mark_price=Decimal("100"))

    applied_trade = ledger.ledger_apply_execution(_market("sell", "1.5"), mark_price=Decimal("110"))

    assert applied_trade.realized_pnl == Decimal("10")
    assert applied_trade.close_size == Decimal("1.0")
    assert ledger.position is not None
    assert ledger.position.side == "short"
    assert ledger.position.size == Decimal("0.5")
    assert ledger.position.average_entry_price == Decimal("110")
    assert applied_trade.position_update.old_side == "long"
    assert applied_trade.position_update.new_side == "short"
    assert applied_trade.position_update.position_change == "close"


def test_ledger_short_position_profits_when_price_falls() -> None:
    """Open short and cover lower for a positive realized PnL.

    Returns:
        None: Assertions validate short-side sign convention.

    Raises:
        AssertionError: Raised when short PnL sign is wrong.
    """

    ledger = _build_ledger()
    ledger.ledger_apply_execution(_market("sell", "2.0"), mark_price=Decimal("100"))

    assert ledger.ledger_unrealized_pnl(Decimal("95")) == Decimal("10")

    applied_trade = ledger.ledger_apply_execution(_market("buy", "2.0"), mark_price=Decimal("95"))

    assert applied_trade.realized_pnl == Decimal("10")
    assert ledger.position is None


def test_ledger_close_below_dust_threshold_snaps_to_flat() -> None:
    """Treat a sub-dust residue after a close as flat.

    Returns:
        None: Assertions validate dust handling.

    Raises:
        AssertionError: Raised when dust residue is kept as a position.
    """

    ledger = _build_ledger()
    ledger.ledger_apply_execution(_market("buy", "1.000000001"), mark_price=Decimal("100"))

    ledger.ledger_apply_execution(_market("sell", "1.0"), mark_price=Decimal("100"))

    assert ledger.position is None


@pytest.mark.parametrize(
    "request_value",
    [
        _market("buy", "1", symbol="PF_ETHUSD"),
        _market("buy", "1", order_type="lmt"),
        _market("buy", "0"),
        _market("buy", "0.000000001"),
    ],
)
def test_ledger_unsupported_request_leaves_state_unchanged(request_value: MarketTradeRequest) -> None:
    """Reject unsupported requests before any mutation.

    Args:
        request_value: Unsupported market request.

    Returns:
        None: Assertions validate rejection and unchanged snapshot.

    Raises:
        AssertionError: Raised when rejection mutates state.
    """

    ledger = _build_ledger()
    ledger.ledger_apply_execution(_market("buy", "1"), mark_price=Decimal("100"))
    snapshot_before = ledger.ledger_snapshot()

    with pytest.raises(UnsupportedOrderError):
        ledger.ledger_apply_execution(request_value, mark_price=Decimal("100"))

    assert ledger.ledger_snapshot() == snapshot_before


def test_ledger_insufficient_margin_leaves_state_unchanged() -> None:
    """Reject requests whose notional exceeds the balance.

    Returns:
        None: Assertions validate rejection payload and unchanged snapshot.

    Raises:
        AssertionError: Raised when margin rejection mutates state.
    """

    ledger = _build_ledger(balance="100")
    snapshot_before = ledger.ledger_snapshot()

    with pytest.raises(InsufficientMarginError) as error_info:
        ledger.ledger_apply_execution(_market("buy", "2"), mark_price=Decimal("60"))

    assert error_info.value.notional == Decimal("120")
    assert error_info.value.balance == Decimal("100")
    assert error_info.value.error_code == "LEDGER_INSUFFICIENT_MARGIN"
    assert ledger.ledger_snapshot() == snapshot_before
    assert len(ledger.journal) == 0


def test_ledger_validate_execution_does_not_mutate() -> None:
    """Validate a request without applying it.

    Returns:
        None: Assertions validate unchanged state.

    Raises:
        AssertionError: Raised when validation mutates state.
    """

    ledger = _build_ledger()

    ledger.ledger_validate_execution(_market("buy", "1"), mark_price=Decimal("100"))

    assert ledger.position is None
    assert ledger.ledger_snapshot().last_trade_id == 0


def test_ledger_never_holds_zero_or_negative_position() -> None:
    """Keep position absent or above dust across a mixed trade sequence.

    Returns:
        None: Assertions validate non-negativity after every step.

    Raises:
        AssertionError: Raised when a degenerate position appears.
    """

    ledger = _build_ledger(balance="1000000")
    sequence = [
        ("buy", "1.25", "100"),
        ("sell", "0.25", "105"),
        ("sell", "2.0", "98"),
        ("buy", "1.0", "97"),
        ("buy", "0.5", "101"),
        ("sell", "0.5", "99"),
        ("buy", "0.7", "103"),
    ]

    for side, size, price in sequence:
        ledger.ledger_apply_execution(_market(side, size), mark_price=Decimal(price))
        assert ledger.position is None or ledger.position.size > Decimal("0.00000001")


def test_ledger_derive_realized_events_is_idempotent() -> None:
    """Derive one realized event per closing update and never duplicate it.

    Returns:
        None: Assertions validate event fields and dedupe.

    Raises:
        AssertionError: Raised when events are missing or duplicated.
    """

    ledger = _build_ledger()
    ledger.ledger_apply_execution(_market("buy", "1.0"), mark_price=Decimal("100"))
    ledger.ledger_apply_execution(_market("sell", "1.5"), mark_price=Decimal("110"))

    first_events = ledger.ledger_derive_realized_pnl_events()
    second_events = ledger.ledger_derive_realized_pnl_events()

    assert len(first_events) == 1
    assert second_events == []
    realized_event = first_events[0]
    assert realized_event.pnl == Decimal("10")
    assert realized_event.side == "sell"
    assert realized_event.size == Decimal("1.0")
    assert realized_event.entry_price == Decimal("100")
    assert realized_event.exit_price == Decimal("110")
    assert len(ledger.journal.journal_filter_by_type(RealizedPnlEvent.entry_type)) == 1


def test_ledger_derive_realized_events_warns_on_same_timestamp_closes(caplog: pytest.LogCaptureFixture) -> None:
    """Log the second close sharing a timestamp that the dedupe key drops.

    Args:
        caplog: Pytest log capture fixture.

    Returns:
        None: Assertions validate kept event and warning.

    Raises:
        AssertionError: Raised when the dropped event is silent.
    """

    fixed_time = datetime(2026, 1, 5, 12, 0, tzinfo=timezone.utc)
    ledger = PositionLedger(symbol=_SYMBOL, state=ledger_default_state(Decimal("10000")), clock=lambda: fixed_time)
    ledger.ledger_apply_execution(_market("buy", "2.0"), mark_price=Decimal("100"))
    ledger.ledger_apply_execution(_market("sell", "1.0"), mark_price=Decimal("110"))
    ledger.ledger_apply_execution(_market("sell", "1.0"), mark_price=Decimal("120"))

    with caplog.at_level(logging.WARNING, logger="app.ledger.position_ledger"):
        derived_events = ledger.ledger_derive_realized_pnl_events()

    assert len(derived_events) == 1
    assert derived_events[0].pnl == Decimal("10")
    assert "dropped as duplicate" in caplog.text
    assert "pnl=20" in caplog.text


def test_ledger_restore_rejects_mismatched_position_symbol() -> None:
    """Reject snapshots whose position belongs to another symbol.

    Returns:
        None: Assertions validate restore guard.

    Raises:
        AssertionError: Raised when invalid snapshot is accepted.
    """

    ledger = _build_ledger()
    foreign_state = LedgerState(
        balance=Decimal("100"),
        position=Position(symbol="PF_ETHUSD", side="long", size=Decimal("1"), average_entry_price=Decimal("10")),
    )

    with pytest.raises(ValueError):
        ledger.ledger_restore(foreign_state)


def test_ledger_realized_total_and_bot_action_journal() -> None:
    """Sum realized PnL from updates and journal bot actions in time order.

    Returns:
        None: Assertions validate totals and ordering.

    Raises:
        AssertionError: Raised when totals or journal order are incorrect.
    """

    ledger = _build_ledger()
    ledger.ledger_apply_execution(_market("buy", "2.0"), mark_price=Decimal("100"))
    ledger.ledger_apply_execution(_market("sell", "0.5"), mark_price=Decimal("110"))
    ledger.ledger_apply_execution(_market("sell", "1.5"), mark_price=Decimal("90"))
    ledger.ledger_record_bot_action(reason="flatten", action={"type": "hold"}, market_snapshot={"mark_price": "90"})

    assert ledger.ledger_realized_pnl_total() == Decimal("-10")
    entries = ledger.journal.journal_all()
    assert [type(entry).__name__ for entry in entries] == [
        PositionUpdate.__name__,
        PositionUpdate.__name__,
        PositionUpdate.__name__,
        "BotAction",
    ]
