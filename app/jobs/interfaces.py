"""Typed interfaces for job-layer orchestration responsibilities."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Mapping, Protocol


class CycleAlreadyActiveError(RuntimeError):
    """Raised when a cycle is rejected because another one holds the ledger."""


class LedgerDesyncError(RuntimeError):
    """Raised when the exchange executed an order that the ledger then refused to book."""


@dataclass(frozen=True)
class ReconciliationReport:
    """Audit of ledger realized PnL against FIFO realized PnL over raw fills.

    Attributes:
        symbol: Tracked symbol.
        ledger_realized_pnl: Realized PnL booked by the weighted-average-cost ledger.
        fill_matcher_realized_pnl: Realized PnL recomputed from fills with FIFO matching.
        difference: `ledger_realized_pnl - fill_matcher_realized_pnl`.
        matched: Whether the absolute difference is within tolerance.
        tolerance: Absolute tolerance used for `matched`.
        fill_count: Number of fills considered for the tracked symbol.
        skipped_fill_count: Malformed or zero-size fills skipped by the matcher.
        total_closes: Number of FIFO closing matches.
        win_count: Number of FIFO closing matches with positive PnL.
        open_lot_count: Residual FIFO lots after matching.
        total_fees: Fees summed over the matched fills.
        fill_matcher_net_realized_pnl: FIFO realized PnL after fees.
    """

    symbol: str
    ledger_realized_pnl: Decimal
    fill_matcher_realized_pnl: Decimal
    difference: Decimal
    matched: bool
    tolerance: Decimal
    fill_count: int
    skipped_fill_count: int
    total_closes: int
    win_count: int
    open_lot_count: int
    total_fees: Decimal = Decimal("0")
    fill_matcher_net_realized_pnl: Decimal = Decimal("0")


@dataclass(frozen=True)
class JobExecutionResult:
    """Result contract for one trading cycle execution.

    Attributes:
        job_name: Job identifier.
        status: Final execution state (`success`, `failed`).
        error_code: Deterministic failure code, None on success.
        order_outcome: `none`, `executed` or `rejected`.
        order_id: Exchange or simulated order id when an order executed.
        rejection_code: Deterministic rejection code when the order was rejected.
        realized_event_count: Realized-PnL events appended by the cycle.
        state_revision: Stored snapshot revision after the save.
        reconciliation: Optional fill reconciliation report.
        timeline: Structured stage timeline entries.
    """

    job_name: str
    status: str
    error_code: str | None = None
    order_outcome: str = "none"
    order_id: str | None = None
    rejection_code: str | None = None
    realized_event_count: int = 0
    state_revision: int | None = None
    reconciliation: ReconciliationReport | None = None
    timeline: list[dict[str, Any]] = field(default_factory=list)


class CycleOrchestratorPort(Protocol):
    """Port definition for running trading cycles against the ledger."""

    def job_supported_names(self) -> tuple[str, ...]:
        """Return the set of workflow names this orchestrator can execute.

        Returns:
            tuple[str, ...]: Deterministic list of supported job names.

        Raises:
            RuntimeError: Raised when supported job metadata is unavailable.
        """

    def job_execute(self, job_name: str, plan: Mapping[str, Any] | None = None) -> JobExecutionResult:
        """Execute one trading cycle for an optional decision plan.

        Args:
            job_name: Workflow name.
            plan: Decision plan, None for a hold cycle.

        Returns:
            JobExecutionResult: Final execution status payload.

        Raises:
            CycleAlreadyActiveError: Raised when another cycle is running.
        """

    def job_reconcile(self) -> ReconciliationReport:
        """Reconcile the stored ledger against exchange fills.

        Returns:
            ReconciliationReport: Audit report.

        Raises:
            CycleAlreadyActiveError: Raised when a cycle is running.
            ConnectionError: Raised when fills cannot be fetched.
        """
