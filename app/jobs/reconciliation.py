"""Realized-PnL reconciliation between the position ledger and raw exchange fills."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from decimal import Decimal
from typing import Sequence

from app.ledger import Fill, PositionLedger, fill_matcher_compute_realized_pnl
from app.ledger.fill_matcher import RawFillInput

from .interfaces import ReconciliationReport

logger = logging.getLogger(__name__)


def job_reconcile_realized_pnl(
    ledger: PositionLedger,
    fills: Sequence[RawFillInput],
    tolerance: Decimal = Decimal("0.01"),
) -> ReconciliationReport:
    """Compare ledger realized PnL with FIFO realized PnL over the tracked symbol's fills.

    The ledger stays authoritative; the report is an audit. Both methods agree
    once the position has been flat since the first fill, and differ while
    a scaled-in position is partially closed.

    Args:
        ledger: Ledger whose journal holds the booked executions.
        fills: Typed fills or raw exchange fill mappings.
        tolerance: Absolute difference still reported as matched.

    Returns:
        ReconciliationReport: Both totals, their difference, fees and FIFO counters.

    Raises:
        ValueError: Raised when ledger or fills is None or tolerance is negative.
    """

    if ledger is None:
        raise ValueError("ledger must not be None")
    if fills is None:
        raise ValueError("fills must not be None")
    if tolerance < Decimal("0"):
        raise ValueError("tolerance must be >= 0")

    symbol_fills = [fill for fill in fills if _job_fill_matches_symbol(fill=fill, symbol=ledger.symbol)]
    match_result = fill_matcher_compute_realized_pnl(symbol_fills)
    ledger_realized_pnl = ledger.ledger_realized_pnl_total()
    difference = ledger_realized_pnl - match_result.realized_pnl
    matched = abs(difference) <= tolerance

    if not matched:
        logger.warning(
            "realized pnl mismatch symbol=%s ledger=%s fifo=%s difference=%s",
            ledger.symbol,
            ledger_realized_pnl,
            match_result.realized_pnl,
            difference,
        )

    return ReconciliationReport(
        symbol=ledger.symbol,
        ledger_realized_pnl=ledger_realized_pnl,
        fill_matcher_realized_pnl=match_result.realized_pnl,
        difference=difference,
        matched=matched,
        tolerance=tolerance,
        fill_count=len(symbol_fills),
        skipped_fill_count=match_result.skipped_fill_count,
        total_closes=match_result.total_closes,
        win_count=match_result.win_count,
        open_lot_count=len(match_result.open_lots),
        total_fees=match_result.total_fees,
        fill_matcher_net_realized_pnl=match_result.net_realized_pnl,
    )


def job_reconciliation_report_to_payload(report: ReconciliationReport) -> dict[str, object]:
    """Render a reconciliation report as a JSON-compatible payload."""

    return {
        "symbol": report.symbol,
        "ledger_realized_pnl": str(report.ledger_realized_pnl),
        "fill_matcher_realized_pnl": str(report.fill_matcher_realized_pnl),
        "difference": str(report.difference),
        "matched": report.matched,
        "tolerance": str(report.tolerance),
        "fill_count": report.fill_count,
        "skipped_fill_count": report.skipped_fill_count,
        "total_closes": report.total_closes,
        "win_count": report.win_count,
        "open_lot_count": report.open_lot_count,
        "total_fees": str(report.total_fees),
        "fill_matcher_net_realized_pnl": str(report.fill_matcher_net_realized_pnl),
    }


def _job_fill_matches_symbol(fill: RawFillInput, symbol: str) -> bool:
    # fills without a symbol are kept so the matcher can count them as malformed
    if isinstance(fill, Fill):
        return not fill.symbol or fill.symbol == symbol
    if isinstance(fill, Mapping):
        fill_symbol = fill.get("symbol")
        return not fill_symbol or str(fill_symbol).upper() == symbol.upper()
    return True
