"""FIFO lot matching over raw exchange fills for realized-PnL reconciliation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Mapping, Sequence, Union

from .errors import MalformedFillError
from .models import Fill, OrderSide

logger = logging.getLogger(__name__)

RawFillInput = Union[Fill, Mapping[str, object]]


@dataclass(frozen=True)
class FillMatchOpenLot:
    """Residual lot left unmatched after processing all fills.

    Attributes:
        side: Side of the fill that opened the lot.
        size: Remaining unsigned lot size.
        price: Opening fill price.
    """

    side: OrderSide
    size: Decimal
    price: Decimal


@dataclass(frozen=True)
class FillMatchResult:
    """Output payload for FIFO fill matching.

    Attributes:
        realized_pnl: Realized PnL summed over all closing matches.
        win_count: Number of closing matches with positive PnL.
        total_closes: Number of closing matches.
        skipped_fill_count: Number of malformed or zero-size fills skipped.
        open_lots: Residual FIFO queue, oldest lot first.
        total_fees: Fees summed over every fill that was not skipped.
        net_realized_pnl: `realized_pnl - total_fees`.
    """

    realized_pnl: Decimal
    win_count: int
    total_closes: int
    skipped_fill_count: int
    open_lots: tuple[FillMatchOpenLot, ...]
    total_fees: Decimal = Decimal("0")
    net_realized_pnl: Decimal = Decimal("0")


@dataclass
class _OpenLot:
    """Mutable internal lot state used during FIFO processing."""

    side: OrderSide
    size: Decimal
    price: Decimal


def fill_matcher_compute_realized_pnl(fills: Sequence[RawFillInput]) -> FillMatchResult:
    """Recompute realized PnL from fills with FIFO lot matching.

    Fills are processed in ascending `fill_time`; fills sharing a timestamp
    keep their input order. An incoming fill closes lots at the queue head
    while their directions are opposite, and any remainder becomes a new lot
    at the tail. Match PnL is `(fill_price - lot_price) * match_size` for long
    lots and the negation for short lots. Fees of matched and
    unmatched fills are summed and deducted for the net figure. Malformed fills
    are skipped.

    Args:
        fills: Typed fills or raw exchange fill mappings.

    Returns:
        FillMatchResult: Realized totals, close counters and residual lots.

    Raises:
        ValueError: Raised when fills is None.
    """

    if fills is None:
        raise ValueError("fills must not be None")

    parsed_fills: list[Fill] = []
    skipped_fill_count = 0
    for raw_fill in fills:
        try:
            parsed_fill = raw_fill if isinstance(raw_fill, Fill) else fill_parse_raw(raw_fill)
            _fill_matcher_validate_fill(parsed_fill)
        except MalformedFillError as error:
            skipped_fill_count += 1
            logger.warning("skipping malformed fill: %s", error)
            continue
        if parsed_fill.size == Decimal("0"):
            skipped_fill_count += 1
            continue
        parsed_fills.append(parsed_fill)

    ordered_fills = sorted(parsed_fills, key=lambda fill: fill.fill_time)
    total_fees = sum((fill.fee for fill in parsed_fills), Decimal("0"))

    open_lots: list[_OpenLot] = []
    realized_pnl = Decimal("0")
    win_count = 0
    total_closes = 0

    for fill in ordered_fills:
        signed_quantity = fill.size if fill.side == "buy" else -fill.size

        while signed_quantity != Decimal("0") and open_lots:
            head_lot = open_lots[0]
            head_quantity = head_lot.size if head_lot.side == "buy" else -head_lot.size
            if (signed_quantity > 0) == (head_quantity > 0):
                break

            match_quantity = min(abs(signed_quantity), head_lot.size)
            if head_lot.side == "buy":
                match_pnl = (fill.price - head_lot.price) * match_quantity
            else:
                match_pnl = (head_lot.price - fill.price) * match_quantity

            realized_pnl += match_pnl
            total_closes += 1
            if match_pnl > Decimal("0"):
                win_count += 1

            head_lot.size -= match_quantity
            if head_lot.size == Decimal("0"):
                open_lots.pop(0)
            signed_quantity -= match_quantity if signed_quantity > 0 else -match_quantity

        if signed_quantity != Decimal("0"):
            open_lots.append(
                _OpenLot(
                    side="buy" if signed_quantity > 0 else "sell",
                    size=abs(signed_quantity),
                    price=fill.price,
                )
            )

    return FillMatchResult(
        realized_pnl=realized_pnl,
        win_count=win_count,
        total_closes=total_closes,
        skipped_fill_count=skipped_fill_count,
        open_lots=tuple(FillMatchOpenLot(side=lot.side, size=lot.size, price=lot.price) for lot in open_lots),
        total_fees=total_fees,
        net_realized_pnl=realized_pnl - total_fees,
    )


def fill_parse_raw(raw_fill: Mapping[str, object]) -> Fill:
    """Parse one raw exchange fill mapping into a typed `Fill`.

    Both snake_case and Kraken Futures camelCase keys are accepted
    (`fill_time`/`fillTime`, `order_id`/`orderId`, `fill_id`/`fillId`).

    Args:
        raw_fill: Raw fill mapping.

    Returns:
        Fill: Typed fill.

    Raises:
        MalformedFillError: Raised when side, size, price or fill time is missing or invalid.
    """

    if not isinstance(raw_fill, Mapping):
        raise MalformedFillError(f"fill must be a mapping, got {type(raw_fill).__name__}")

    side = str(raw_fill.get("side") or "").strip().lower()
    if side not in ("buy", "sell"):
        raise MalformedFillError(f"fill has unsupported side={raw_fill.get('side')!r}")

    size = _fill_parse_decimal(raw_fill.get("size"), field_name="size")
    price = _fill_parse_decimal(raw_fill.get("price"), field_name="price")
    fee_value = raw_fill.get("fee")
    fee = Decimal("0") if fee_value in (None, "") else _fill_parse_decimal(fee_value, field_name="fee")
    fill_time = _fill_parse_time(raw_fill.get("fill_time", raw_fill.get("fillTime")))

    order_id = raw_fill.get("order_id", raw_fill.get("orderId"))
    fill_id = raw_fill.get("fill_id", raw_fill.get("fillId"))
    return Fill(
        order_id="" if order_id is None else str(order_id),
        symbol=str(raw_fill.get("symbol") or ""),
        side=side,
        size=abs(size),
        price=price,
        fee=fee,
        fill_time=fill_time,
        fill_id=None if fill_id is None else str(fill_id),
    )


def _fill_matcher_validate_fill(fill: Fill) -> None:
    """Reject typed fills that cannot be matched.

    Args:
        fill: Candidate fill.

    Returns:
        None: Validation succeeds silently.

    Raises:
        MalformedFillError: Raised for unsupported side, negative size or non-positive price.
    """

    if fill.side not in ("buy", "sell"):
        raise MalformedFillError(f"fill has unsupported side={fill.side!r}")
    if fill.size < Decimal("0"):
        raise MalformedFillError("fill size must be >= 0")
    if fill.price <= Decimal("0"):
        raise MalformedFillError("fill price must be > 0")
    if fill.fill_time.tzinfo is None or fill.fill_time.utcoffset() is None:
        raise MalformedFillError("fill_time must be offset-aware")


def _fill_parse_decimal(value: object, field_name: str) -> Decimal:
    if value is None or isinstance(value, bool):
        raise MalformedFillError(f"fill is missing {field_name}")
    try:
        parsed_value = Decimal(str(value).strip())
    except InvalidOperation as error:
        raise MalformedFillError(f"fill has invalid {field_name}={value!r}") from error
    if not parsed_value.is_finite():
        raise MalformedFillError(f"fill has non-finite {field_name}={value!r}")
    return parsed_value


def _fill_parse_time(value: object) -> datetime:
    """Parse fill time from ISO-8601 text or epoch milliseconds.

    Args:
        value: Raw fill time value.

    Returns:
        datetime: Offset-aware UTC timestamp.

    Raises:
        MalformedFillError: Raised when the value is missing or unparseable.
    """

    if isinstance(value, datetime):
        parsed_time = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        parsed_time = datetime.fromtimestamp(float(value) / 1000.0, tz=timezone.utc)
    elif isinstance(value, str) and value.strip():
        normalized_value = value.strip()
        if normalized_value.endswith("Z"):
            normalized_value = f"{normalized_value[:-1]}+00:00"
        try:
            parsed_time = datetime.fromisoformat(normalized_value)
        except ValueError as error:
            raise MalformedFillError(f"fill has invalid fill_time={value!r}") from error
    else:
        raise MalformedFillError("fill is missing fill_time")

    if parsed_time.tzinfo is None or parsed_time.utcoffset() is None:
        return parsed_time.replace(tzinfo=timezone.utc)
    return parsed_time.astimezone(timezone.utc)


__all__ = [
    "FillMatchOpenLot",
    "FillMatchResult",
    "RawFillInput",
    "fill_matcher_compute_realized_pnl",
    "fill_parse_raw",
]
