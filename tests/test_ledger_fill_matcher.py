"""Tests for FIFO fill matching over typed and raw exchange fills."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from app.ledger import Fill, FillMatchOpenLot, MalformedFillError, fill_matcher_compute_realized_pnl, fill_parse_raw

_BASE_TIME = datetime(2026, 2, 1, 9, 30, tzinfo=timezone.utc)


def _fill(side: str, size: str, price: str, offset_seconds: int) -> Fill:
    return Fill(
        order_id=f"order-{offset_seconds}",
        symbol="PF_XBTUSD",
        side=side,
        size=Decimal(size),
        price=Decimal(price),
        fee=Decimal("0"),
        fill_time=_BASE_TIME + timedelta(seconds=offset_seconds),
    )


def test_fill_matcher_long_round_trip_empties_queue() -> None:
    """Match one long lot against two sells and report close counters.

    Returns:
        None: Assertions validate realized PnL, counters and residual queue.

    Raises:
        AssertionError: Raised when FIFO matching result is incorrect.
    """

    result = fill_matcher_compute_realized_pnl(
        [
            _fill("buy", "1.0", "100", 0),
            _fill("sell", "0.4", "110", 1),
            _fill("sell", "0.6", "90", 2),
        ]
    )

    assert result.realized_pnl == Decimal("-2.0")
    assert result.total_closes == 2
    assert result.win_count == 1
    assert result.open_lots == ()
    assert result.skipped_fill_count == 0


def test_fill_matcher_processes_fills_in_time_order() -> None:
    """Sort fills by fill time before matching.

    Returns:
        None: Assertions validate order-independent matching.

    Raises:
        AssertionError: Raised when input order leaks into matching.
    """

    result = fill_matcher_compute_realized_pnl(
        [
            _fill("buy", "1.0", "95", 2),
            _fill("sell", "1.0", "100", 0),
        ]
    )

    assert result.realized_pnl == Decimal("5.0")
    assert result.total_closes == 1
    assert result.win_count == 1


def test_fill_matcher_consumes_oldest_lot_first_and_keeps_remainder() -> None:
    """Close the oldest lot first and leave the newer lot partially open.

    Returns:
        None: Assertions validate FIFO order and residual lot.

    Raises:
        AssertionError: Raised when lots are consumed out of order.
    """

    result = fill_matcher_compute_realized_pnl(
        [
            _fill("buy", "1.0", "100", 0),
            _fill("buy", "1.0", "120", 1),
            _fill("sell", "1.5", "130", 2),
        ]
    )

    assert result.realized_pnl == Decimal("35.0")
    assert result.total_closes == 2
    assert result.open_lots == (FillMatchOpenLot(side="buy", size=Decimal("0.5"), price=Decimal("120")),)


def test_fill_matcher_reversal_opens_opposite_lot() -> None:
    """Open a short lot with the part of a sell left after closing longs.

    Returns:
        None: Assertions validate reversal residual.

    Raises:
        AssertionError: Raised when reversal remainder is dropped.
    """

    result = fill_matcher_compute_realized_pnl(
        [
            _fill("buy", "1.0", "100", 0),
            _fill("sell", "1.5", "110", 1),
        ]
    )

    assert result.realized_pnl == Decimal("10.0")
    assert result.open_lots == (FillMatchOpenLot(side="sell", size=Decimal("0.5"), price=Decimal("110")),)


def test_fill_matcher_skips_malformed_and_zero_size_fills() -> None:
    """Skip raw fills with invalid fields and zero size without failing.

    Returns:
        None: Assertions validate skip counter.

    Raises:
        AssertionError: Raised when malformed fills abort matching.
    """

    result = fill_matcher_compute_realized_pnl(
        [
            {"side": "buy", "size": "1", "price": "100", "fillTime": "2026-02-01T09:30:00.000Z"},
            {"side": "hold", "size": "1", "price": "100", "fillTime": "2026-02-01T09:30:01.000Z"},
            {"side": "sell", "size": "abc", "price": "100", "fillTime": "2026-02-01T09:30:02.000Z"},
            {"side": "sell", "size": "0", "price": "100", "fillTime": "2026-02-01T09:30:03.000Z"},
            {"side": "sell", "size": "1", "price": "104", "fillTime": "2026-02-01T09:30:04.000Z"},
        ]
    )

    assert result.skipped_fill_count == 3
    assert result.realized_pnl == Decimal("4")
    assert result.total_closes == 1


def test_fill_matcher_empty_input_returns_zero_result() -> None:
    """Return zero totals for an empty fill list.

    Returns:
        None: Assertions validate empty result.

    Raises:
        AssertionError: Raised when empty input produces activity.
    """

    result = fill_matcher_compute_realized_pnl([])

    assert result.realized_pnl == Decimal("0")
    assert result.total_closes == 0
    assert result.open_lots == ()


def test_fill_parse_raw_accepts_kraken_fill_shape() -> None:
    """Parse a raw Kraken Futures fill mapping.

    Returns:
        None: Assertions validate parsed fields.

    Raises:
        AssertionError: Raised when camelCase keys are not mapped.
    """

    parsed_fill = fill_parse_raw(
        {
            "fill_id": "3d57ed09-fbd6-44f1-8e8b-b10e551c5e73",
            "symbol": "PF_XBTUSD",
            "side": "BUY",
            "order_id": "693af756-055e-47ef-99d5-bcf4c456ebc5",
            "size": 0.001,
            "price": 27937.5,
            "fillTime": "2026-02-01T09:30:00.000Z",
        }
    )

    assert parsed_fill.side == "buy"
    assert parsed_fill.size == Decimal("0.001")
    assert parsed_fill.price == Decimal("27937.5")
    assert parsed_fill.fill_time == _BASE_TIME
    assert parsed_fill.fee == Decimal("0")


def test_fill_parse_raw_rejects_missing_price() -> None:
    """Raise a typed error for fills without a price.

    Returns:
        None: Assertions validate error type.

    Raises:
        AssertionError: Raised when missing price is accepted.
    """

    with pytest.raises(MalformedFillError):
        fill_parse_raw({"side": "buy", "size": "1", "fillTime": "2026-02-01T09:30:00Z"})


def test_fill_matcher_deducts_fees_of_counted_fills() -> None:
    """Sum fees of matched fills and report realized PnL net of them.

    Returns:
        None: Assertions validate gross, fee and net totals.

    Raises:
        AssertionError: Raised when skipped fills leak fees or fees are ignored.
    """

    result = fill_matcher_compute_realized_pnl(
        [
            Fill(
                order_id="order-open",
                symbol="PF_XBTUSD",
                side="buy",
                size=Decimal("1"),
                price=Decimal("100"),
                fee=Decimal("0.05"),
                fill_time=_BASE_TIME,
            ),
            {"side": "sell", "size": "1", "price": "110", "fee": "0.055", "fillTime": "2026-02-01T09:30:05Z"},
            {"side": "sell", "size": "1", "fee": "9", "fillTime": "2026-02-01T09:30:06Z"},
            {"side": "buy", "size": "0", "price": "105", "fee": "1", "fillTime": "2026-02-01T09:30:07Z"},
        ]
    )

    assert result.realized_pnl == Decimal("10")
    assert result.total_fees == Decimal("0.105")
    assert result.net_realized_pnl == Decimal("9.895")
    assert result.skipped_fill_count == 2
