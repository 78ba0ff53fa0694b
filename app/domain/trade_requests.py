"""Trade-plan boundary between the decision source and the ledger.

The decision source emits loosely-typed plans of the form
`{"reason": str, "action": {"side": "buy" | "sell" | None, "size": number}}`.
Everything that crosses into the ledger is a typed `TradeRequest`.
"""

from __future__ import annotations

from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation
from typing import Any, Mapping

from app.ledger.errors import UnsupportedOrderError
from app.ledger.models import MARKET_ORDER_TYPE, MarketTradeRequest, NoTradeRequest, TradeRequest

DOMAIN_DEFAULT_TICK_SIZE = Decimal("0.0001")
DOMAIN_TICK_TOLERANCE = Decimal("0.000000001")
DOMAIN_SIZE_QUANTUM = Decimal("0.00000001")


def domain_parse_trade_plan(
    plan: Mapping[str, Any] | None,
    symbol: str,
    tick_size: Decimal = DOMAIN_DEFAULT_TICK_SIZE,
) -> TradeRequest:
    """Convert one decision plan into a typed trade request.

    A missing plan, a missing action, a null side, or a zero size is a hold.

    Args:
        plan: Plan mapping emitted by the decision source.
        symbol: Tracked symbol the request targets.
        tick_size: Exchange contract size increment.

    Returns:
        TradeRequest: `NoTradeRequest` for holds, else `MarketTradeRequest`.

    Raises:
        UnsupportedOrderError: Raised when plan shape, side, or size is invalid.
    """

    if plan is None:
        return NoTradeRequest(reason="")
    if not isinstance(plan, Mapping):
        raise UnsupportedOrderError(f"trade plan must be a mapping, got {type(plan).__name__}")

    reason = str(plan.get("reason") or "")
    action = plan.get("action")
    if action is None:
        return NoTradeRequest(reason=reason)
    if not isinstance(action, Mapping):
        raise UnsupportedOrderError("trade plan action must be a mapping or null")

    raw_side = action.get("side")
    if raw_side is None:
        return NoTradeRequest(reason=reason)

    side = str(raw_side).strip().lower()
    if side not in ("buy", "sell"):
        raise UnsupportedOrderError(f"unsupported trade plan side={raw_side!r}")

    order_type = str(action.get("order_type") or action.get("orderType") or MARKET_ORDER_TYPE)
    if order_type != MARKET_ORDER_TYPE:
        raise UnsupportedOrderError(f"unsupported order_type={order_type}")

    size = domain_normalize_order_size(action.get("size"), tick_size=tick_size)
    if size == Decimal("0"):
        return NoTradeRequest(reason=reason)

    return MarketTradeRequest(
        symbol=symbol,
        side=side,
        size=size,
        order_type=MARKET_ORDER_TYPE,
        reason=reason,
    )


def domain_normalize_order_size(value: Any, tick_size: Decimal = DOMAIN_DEFAULT_TICK_SIZE) -> Decimal:
    """Validate an order size against the tick policy and normalize it to 8 decimals.

    A size is aligned when `|size / tick - round(size / tick)| < 1e-9`.

    Args:
        value: Raw size from the plan.
        tick_size: Exchange contract size increment.

    Returns:
        Decimal: Normalized non-negative size.

    Raises:
        UnsupportedOrderError: Raised when size is missing, negative, non-finite, or off-tick.
    """

    if tick_size is None or tick_size <= Decimal("0"):
        raise ValueError("tick_size must be > 0")
    if value is None or isinstance(value, bool):
        raise UnsupportedOrderError("trade plan size is missing")

    try:
        size = Decimal(str(value).strip())
    except InvalidOperation as error:
        raise UnsupportedOrderError(f"trade plan size is not numeric: {value!r}") from error

    if not size.is_finite():
        raise UnsupportedOrderError(f"trade plan size is not finite: {value!r}")
    if size < Decimal("0"):
        raise UnsupportedOrderError(f"trade plan size must be >= 0, got {size}")

    ticks = size / tick_size
    if abs(ticks - ticks.to_integral_value(rounding=ROUND_HALF_EVEN)) >= DOMAIN_TICK_TOLERANCE:
        raise UnsupportedOrderError(f"trade plan size={size} is not a multiple of tick_size={tick_size}")

    return size.quantize(DOMAIN_SIZE_QUANTUM, rounding=ROUND_HALF_EVEN)


def domain_describe_trade_request(request: TradeRequest) -> dict[str, object]:
    """Build the normalized action payload journaled with a bot action.

    Args:
        request: Typed trade request.

    Returns:
        dict[str, object]: JSON-compatible action description.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    if isinstance(request, MarketTradeRequest):
        return {
            "type": "market",
            "symbol": request.symbol,
            "side": request.side,
            "size": str(request.size),
            "order_type": request.order_type,
        }
    return {"type": "hold"}
