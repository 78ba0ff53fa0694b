"""Job layer package for trading cycle orchestration boundaries."""

from .cycle_orchestrator import TradingCycleConfig, TradingCycleOrchestrator
from .interfaces import (
	CycleAlreadyActiveError,
	CycleOrchestratorPort,
	JobExecutionResult,
	LedgerDesyncError,
	ReconciliationReport,
)
from .reconciliation import job_reconcile_realized_pnl, job_reconciliation_report_to_payload

__all__ = [
	"CycleAlreadyActiveError",
	"CycleOrchestratorPort",
	"JobExecutionResult",
	"LedgerDesyncError",
	"ReconciliationReport",
	"TradingCycleConfig",
	"TradingCycleOrchestrator",
	"job_reconcile_realized_pnl",
	"job_reconciliation_report_to_payload",
]
