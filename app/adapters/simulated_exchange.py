"""Paper-trading exchange adapter that settles orders against the position ledger."""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from app.domain import domain_build_stage_event
from app.ledger import Fill, MarketTradeRequest, PositionLedger, PositionUpdate

from .exchange_errors import MarkPriceUnavailableError
from .interfaces import ExchangeAdapterPort, MarkPriceSourcePort, OrderPlacementResult

logger = logging.getLogger(__name__)


class SimulatedExchangeAdapter(ExchangeAdapterPort):
    """Simulated execution venue backed by a `PositionLedger`.

    Market data comes from any mark-price source (usually the live Kraken
    adapter's public endpoint). Orders clear at the last fetched mark price and
    are booked straight into the ledger. Fills are derived from the ledger's
    journaled position updates so they survive state reloads.
    """

    def __init__(self, ledger: PositionLedger, mark_price_source: MarkPriceSourcePort):
        """Initialize simulated adapter.

        Args:
            ledger: Ledger that books simulated executions.
            mark_price_source: Upstream mark-price provider.

        Returns:
            None: Initializer does not return a value.

        Raises:
            ValueError: Raised when dependencies are missing.
        """

        if ledger is None:
            raise ValueError("ledger must not be None")
        if mark_price_source is None:
            raise ValueError("mark_price_source must not be None")

        self._ledger = ledger
        self._mark_price_source = mark_price_source
        self._last_mark_prices: dict[str, Decimal] = {}

    def adapter_source_name(self) -> str:
        """Return stable adapter source label.

        Returns:
            str: Source identifier.

        Raises:
            RuntimeError: This implementation does not raise runtime errors.
        """

        return "simulated_exchange"

    def adapter_get_mark_price(self, symbol: str) -> Decimal:
        """Fetch and remember the mark price of one symbol.

        Args:
            symbol: Exchange symbol.

        Returns:
            Decimal: Positive mark price.

        Raises:
            ConnectionError: Raised when the upstream source is unreachable.
            TimeoutError: Raised when the upstream source times out.
            RuntimeError: Raised when the symbol has no mark price.
        """

        mark_price = self._mark_price_source.adapter_get_mark_price(symbol)
        self._last_mark_prices[symbol] = mark_price
        return mark_price

    def adapter_get_fills(self, since: datetime | None = None) -> list[Fill]:
        """Return synthetic fills for journaled executions newer than `since`.

        Args:
            since: Exclusive lower bound on fill time, None for all fills.

        Returns:
            list[Fill]: One fill per ledger execution in time order.

        Raises:
            RuntimeError: This implementation does not raise runtime errors.
        """

        fills: list[Fill] = []
        for entry in self._ledger.journal.journal_since(since):
            if not isinstance(entry, PositionUpdate) or entry.order_side is None:
                continue
            fills.append(
                Fill(
                    order_id=f"sim-{entry.trade_id}",
                    symbol=entry.tradeable,
                    side=entry.order_side,
                    size=entry.order_size,
                    price=entry.execution_price,
                    fee=Decimal("0"),
                    fill_time=entry.timestamp,
                    fill_id=f"sim-fill-{entry.trade_id}",
                )
            )
        return fills

    def adapter_place_order(self, request: MarketTradeRequest) -> OrderPlacementResult:
        """Execute one market order at the last fetched mark price.

        Args:
            request: Market trade request.

        Returns:
            OrderPlacementResult: Placement outcome carrying the applied ledger trade.

        Raises:
            RuntimeError: Raised when no mark price was fetched for the symbol.
            UnsupportedOrderError: Raised when the ledger rejects the request shape.
            InsufficientMarginError: Raised when notional exceeds the simulated balance.
        """

        if request is None:
            raise ValueError("request must not be None")

        mark_price = self._last_mark_prices.get(request.symbol)
        if mark_price is None:
            raise MarkPriceUnavailableError(
                f"no mark price fetched for symbol={request.symbol}; call adapter_get_mark_price first"
            )

        applied_trade = self._ledger.ledger_apply_execution(request=request, mark_price=mark_price)
        order_id = f"sim-{applied_trade.trade_id}"
        logger.info(
            "simulated order executed order_id=%s balance=%s position=%s",
            order_id,
            applied_trade.balance,
            "flat" if applied_trade.position is None else f"{applied_trade.position.side} {applied_trade.position.size}",
        )
        return OrderPlacementResult(
            order_id=order_id,
            status="placed",
            execution_price=mark_price,
            applied_trade=applied_trade,
            stage_timeline=[
                domain_build_stage_event(
                    stage="send_order",
                    status="completed",
                    details={"order_id": order_id, "execution_price": str(mark_price)},
                )
            ],
        )
