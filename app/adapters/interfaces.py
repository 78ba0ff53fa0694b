"""Typed interfaces for adapter-layer responsibilities."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol

from app.ledger import AppliedTrade, MarketTradeRequest
from app.ledger.fill_matcher import RawFillInput


@dataclass(frozen=True)
class OrderPlacementResult:
    """Result contract for one order placement.

    Attributes:
        order_id: Exchange or simulated order identifier.
        status: Upstream send status (`placed` on success).
        execution_price: Clearing price when known at placement time.
        applied_trade: Ledger outcome when the adapter already booked the execution.
        stage_timeline: Structured stage timeline entries captured by adapter.
    """

    order_id: str
    status: str
    execution_price: Decimal | None = None
    applied_trade: AppliedTrade | None = None
    stage_timeline: list[dict[str, Any]] = field(default_factory=list)


class MarkPriceSourcePort(Protocol):
    """Port definition for anything that can quote a mark price."""

    def adapter_get_mark_price(self, symbol: str) -> Decimal:
        """Return the current mark price for one symbol.

        Args:
            symbol: Exchange symbol.

        Returns:
            Decimal: Positive mark price.

        Raises:
            ConnectionError: Raised when upstream connection fails.
            TimeoutError: Raised when request exceeds timeout.
            RuntimeError: Raised when the symbol has no mark price.
        """


class ExchangeAdapterPort(MarkPriceSourcePort, Protocol):
    """Port definition for market data and order execution on one exchange."""

    def adapter_source_name(self) -> str:
        """Return adapter source identifier for diagnostics and telemetry.

        Returns:
            str: Human-readable upstream source identifier.

        Raises:
            RuntimeError: Raised when source metadata is unavailable.
        """

    def adapter_get_fills(self, since: datetime | None = None) -> list[RawFillInput]:
        """Return executed fills newer than `since`.

        Args:
            since: Exclusive lower bound on fill time, None for all available fills.

        Returns:
            list[RawFillInput]: Typed fills or raw exchange fill mappings.

        Raises:
            ConnectionError: Raised when upstream connection fails.
            TimeoutError: Raised when request exceeds timeout.
        """

    def adapter_place_order(self, request: MarketTradeRequest) -> OrderPlacementResult:
        """Place one market order.

        Args:
            request: Validated market trade request.

        Returns:
            OrderPlacementResult: Placement outcome.

        Raises:
            ConnectionError: Raised when upstream connection fails.
            TimeoutError: Raised when request exceeds timeout.
            ValueError: Raised when the order is rejected.
        """
