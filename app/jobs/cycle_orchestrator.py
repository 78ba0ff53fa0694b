"""Job-layer trading cycle orchestrator with deterministic stage timeline output."""
# pylint: disable=too-many-locals,too-many-statements

from __future__ import annotations

import logging
import threading
import traceback
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Mapping

from app.adapters import (
    ExchangeAdapterConnectionError,
    ExchangeAdapterPort,
    ExchangeAdapterTimeoutError,
    ExchangeCredentialsError,
    ExchangeOrderRejectedError,
    ExchangeRequestError,
    MarkPriceUnavailableError,
)
from app.db import LedgerStateStorePort, PersistenceFailureError
from app.domain import (
    DOMAIN_DEFAULT_TICK_SIZE,
    MarketSnapshot,
    domain_build_stage_event,
    domain_describe_trade_request,
    domain_parse_trade_plan,
)
from app.ledger import LedgerError, MarketTradeRequest, NoTradeRequest, PositionLedger, TradeRequest

from .interfaces import (
    CycleAlreadyActiveError,
    CycleOrchestratorPort,
    JobExecutionResult,
    LedgerDesyncError,
    ReconciliationReport,
)
from .reconciliation import job_reconcile_realized_pnl, job_reconciliation_report_to_payload

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TradingCycleConfig:
    """Configuration values for trading cycle execution.

    Attributes:
        symbol: Tracked futures symbol.
        state_key: Persistence key of the ledger snapshot.
        tick_size: Contract size increment for plan validation.
        reconcile_fills: Whether each cycle audits the ledger against exchange fills.
        reconciliation_tolerance: Absolute realized-PnL difference reported as matched.
    """

    symbol: str
    state_key: str
    tick_size: Decimal = DOMAIN_DEFAULT_TICK_SIZE
    reconcile_fills: bool = True
    reconciliation_tolerance: Decimal = Decimal("0.01")


class TradingCycleOrchestrator(CycleOrchestratorPort):
    """Concrete orchestrator for one load, decide, execute, journal and save cycle.

    Only one cycle runs at a time per orchestrator. A cycle that fails after
    mutating the in-memory ledger does not save; the next cycle reloads the
    stored snapshot, so the unsaved mutation never happened.
    """

    _CYCLE_JOB_NAME = "trading_cycle"

    def __init__(
        self,
        ledger: PositionLedger,
        exchange_adapter: ExchangeAdapterPort,
        state_store: LedgerStateStorePort,
        config: TradingCycleConfig,
    ):
        """Initialize trading cycle orchestrator dependencies.

        Args:
            ledger: Ledger instance restored from the store at the start of each cycle.
            exchange_adapter: Market data and execution adapter.
            state_store: Ledger snapshot persistence.
            config: Cycle configuration.

        Returns:
            None: Initializer does not return a value.

        Raises:
            ValueError: Raised when dependencies or config values are invalid.
        """

        if ledger is None:
            raise ValueError("ledger must not be None")
        if exchange_adapter is None:
            raise ValueError("exchange_adapter must not be None")
        if state_store is None:
            raise ValueError("state_store must not be None")
        if not config.symbol.strip():
            raise ValueError("config.symbol must not be blank")
        if not config.state_key.strip():
            raise ValueError("config.state_key must not be blank")
        if config.symbol.strip() != ledger.symbol:
            raise ValueError("config.symbol must match ledger symbol")
        if config.tick_size <= Decimal("0"):
            raise ValueError("config.tick_size must be > 0")
        if config.reconciliation_tolerance < Decimal("0"):
            raise ValueError("config.reconciliation_tolerance must be >= 0")

        self._ledger = ledger
        self._exchange_adapter = exchange_adapter
        self._state_store = state_store
        self._config = config
        self._cycle_lock = threading.Lock()

    def job_supported_names(self) -> tuple[str, ...]:
        """Return supported job names.

        Returns:
            tuple[str, ...]: Supported job names.

        Raises:
            RuntimeError: This implementation does not raise runtime errors.
        """

        return (self._CYCLE_JOB_NAME,)

    def job_execute(self, job_name: str, plan: Mapping[str, Any] | None = None) -> JobExecutionResult:
        """Execute one trading cycle with deterministic stage timeline output.

        Args:
            job_name: Name of job to execute.
            plan: Decision plan, None for a hold cycle.

        Returns:
            JobExecutionResult: Final execution status payload.

        Raises:
            ValueError: Raised when job name is unsupported.
            CycleAlreadyActiveError: Raised when another cycle is running.
        """

        normalized_job_name = job_name.strip()
        if normalized_job_name != self._CYCLE_JOB_NAME:
            raise ValueError(f"unsupported job_name={normalized_job_name}")

        if not self._cycle_lock.acquire(blocking=False):
            raise CycleAlreadyActiveError("a trading cycle is already active")
        try:
            return self._job_run_cycle(job_name=normalized_job_name, plan=plan)
        finally:
            self._cycle_lock.release()

    def job_reconcile(self) -> ReconciliationReport:
        """Reconcile the stored ledger snapshot against exchange fills.

        Returns:
            ReconciliationReport: Audit report.

        Raises:
            CycleAlreadyActiveError: Raised when a cycle is running.
            PersistenceFailureError: Raised when the snapshot cannot be loaded.
            ConnectionError: Raised when fills cannot be fetched.
            TimeoutError: Raised when the fills request times out.
        """

        if not self._cycle_lock.acquire(blocking=False):
            raise CycleAlreadyActiveError("a trading cycle is already active")
        try:
            self._ledger.ledger_restore(self._state_store.db_ledger_state_load(self._config.state_key))
            fills = self._exchange_adapter.adapter_get_fills(None)
            return job_reconcile_realized_pnl(
                ledger=self._ledger,
                fills=fills,
                tolerance=self._config.reconciliation_tolerance,
            )
        finally:
            self._cycle_lock.release()

    def _job_run_cycle(self, job_name: str, plan: Mapping[str, Any] | None) -> JobExecutionResult:
        """Run cycle stages and map failures to deterministic error codes.

        Args:
            job_name: Validated job name.
            plan: Decision plan, None for a hold cycle.

        Returns:
            JobExecutionResult: Final execution status payload.

        Raises:
            RuntimeError: This helper maps expected failures to a failed result.
        """

        timeline: list[dict[str, object]] = [domain_build_stage_event(stage="run", status="started")]
        order_outcome = "none"
        order_id: str | None = None
        rejection_code: str | None = None

        try:
            timeline.append(domain_build_stage_event(stage="load_state", status="started"))
            self._ledger.ledger_restore(self._state_store.db_ledger_state_load(self._config.state_key))
            timeline.append(
                domain_build_stage_event(
                    stage="load_state",
                    status="completed",
                    details={"balance": str(self._ledger.balance), "journal_entries": len(self._ledger.journal)},
                )
            )

            mark_price = self._exchange_adapter.adapter_get_mark_price(self._config.symbol)
            market_snapshot = MarketSnapshot(
                symbol=self._config.symbol,
                mark_price=str(mark_price),
                observed_at_utc=datetime.now(timezone.utc).isoformat(),
            )
            timeline.append(
                domain_build_stage_event(stage="mark_price", status="completed", details=market_snapshot.as_payload())
            )

            request, reason, rejection_code = self._job_parse_plan(plan=plan, timeline=timeline)
            if rejection_code is not None:
                order_outcome = "rejected"

            if isinstance(request, MarketTradeRequest):
                order_outcome, order_id, rejection_code = self._job_place_order(
                    request=request,
                    mark_price=mark_price,
                    timeline=timeline,
                )

            action_payload = domain_describe_trade_request(request)
            action_payload["outcome"] = order_outcome
            if order_id is not None:
                action_payload["order_id"] = order_id
            if rejection_code is not None:
                action_payload["rejection_code"] = rejection_code
            self._ledger.ledger_record_bot_action(
                reason=reason,
                action=action_payload,
                market_snapshot=market_snapshot.as_payload(),
            )

            realized_events = self._ledger.ledger_derive_realized_pnl_events()
            timeline.append(
                domain_build_stage_event(
                    stage="realized_pnl",
                    status="completed",
                    details={"appended_events": len(realized_events)},
                )
            )

            reconciliation = self._job_reconcile_in_cycle(timeline=timeline)

            timeline.append(domain_build_stage_event(stage="save_state", status="started"))
            state_revision = self._state_store.db_ledger_state_save(
                self._config.state_key,
                self._ledger.ledger_snapshot(),
            )
            timeline.append(
                domain_build_stage_event(stage="save_state", status="completed", details={"revision": state_revision})
            )

            timeline.append(domain_build_stage_event(stage="run", status="success"))
            logger.info(
                "trading cycle completed outcome=%s balance=%s realized_events=%s revision=%s",
                order_outcome,
                self._ledger.balance,
                len(realized_events),
                state_revision,
            )
            return JobExecutionResult(
                job_name=job_name,
                status="success",
                order_outcome=order_outcome,
                order_id=order_id,
                rejection_code=rejection_code,
                realized_event_count=len(realized_events),
                state_revision=state_revision,
                reconciliation=reconciliation,
                timeline=timeline,
            )
        except (TimeoutError, ConnectionError, ValueError, RuntimeError) as error:
            error_code = self._job_error_code_for_exception(error)
            logger.error("trading cycle failed error_code=%s error=%s", error_code, error)
            timeline.append(
                domain_build_stage_event(
                    stage="run",
                    status="failed",
                    details={
                        "error_code": error_code,
                        "error_type": type(error).__name__,
                        "error_message": str(error),
                        "traceback": traceback.format_exc(),
                    },
                )
            )
            return JobExecutionResult(
                job_name=job_name,
                status="failed",
                error_code=error_code,
                order_outcome=order_outcome,
                order_id=order_id,
                rejection_code=rejection_code,
                timeline=timeline,
            )

    def _job_parse_plan(
        self,
        plan: Mapping[str, Any] | None,
        timeline: list[dict[str, object]],
    ) -> tuple[TradeRequest, str, str | None]:
        """Validate the decision plan at the trade-plan boundary.

        Args:
            plan: Decision plan.
            timeline: Mutable stage timeline events.

        Returns:
            tuple[TradeRequest, str, str | None]: Request, reason text and optional rejection code.

        Raises:
            RuntimeError: This helper does not raise runtime errors.
        """

        reason = str(plan.get("reason") or "") if isinstance(plan, Mapping) else ""
        try:
            request = domain_parse_trade_plan(plan, symbol=self._config.symbol, tick_size=self._config.tick_size)
        except LedgerError as error:
            logger.warning("trade plan rejected error_code=%s error=%s", error.error_code, error)
            timeline.append(
                domain_build_stage_event(
                    stage="validate_plan",
                    status="rejected",
                    details={"error_code": error.error_code, "error_message": str(error)},
                )
            )
            return NoTradeRequest(reason=reason), reason, error.error_code

        timeline.append(
            domain_build_stage_event(
                stage="validate_plan",
                status="completed",
                details=domain_describe_trade_request(request),
            )
        )
        return request, reason, None

    def _job_place_order(
        self,
        request: MarketTradeRequest,
        mark_price: Decimal,
        timeline: list[dict[str, object]],
    ) -> tuple[str, str | None, str | None]:
        """Place at most one order and make sure the ledger books it.

        Args:
            request: Validated market trade request.
            mark_price: Mark price of the cycle.
            timeline: Mutable stage timeline events.

        Returns:
            tuple[str, str | None, str | None]: Outcome, order id and rejection code.

        Raises:
            LedgerDesyncError: Raised when the exchange executed an order the ledger refused.
            ConnectionError: Raised for exchange transport failures.
            TimeoutError: Raised for exchange timeouts.
        """

        timeline.append(domain_build_stage_event(stage="place_order", status="started"))
        try:
            self._ledger.ledger_validate_execution(request=request, mark_price=mark_price)
            placement = self._exchange_adapter.adapter_place_order(request)
        except LedgerError as error:
            return self._job_record_rejection(error_code=error.error_code, error=error, timeline=timeline)
        except ExchangeOrderRejectedError as error:
            error_code = f"EXCHANGE_ORDER_REJECTED:{error.error_code or 'UNKNOWN'}"
            return self._job_record_rejection(error_code=error_code, error=error, timeline=timeline)

        timeline.extend(placement.stage_timeline)
        applied_trade = placement.applied_trade
        if applied_trade is None:
            execution_price = placement.execution_price or mark_price
            try:
                applied_trade = self._ledger.ledger_apply_execution(request=request, mark_price=execution_price)
            except LedgerError as error:
                raise LedgerDesyncError(
                    f"exchange executed order_id={placement.order_id} but ledger rejected it: {error}"
                ) from error

        timeline.append(
            domain_build_stage_event(
                stage="place_order",
                status="completed",
                details={
                    "order_id": placement.order_id,
                    "trade_id": applied_trade.trade_id,
                    "execution_price": str(applied_trade.execution_price),
                    "realized_pnl": str(applied_trade.realized_pnl),
                    "balance": str(applied_trade.balance),
                },
            )
        )
        return "executed", placement.order_id, None

    def _job_record_rejection(
        self,
        error_code: str,
        error: Exception,
        timeline: list[dict[str, object]],
    ) -> tuple[str, None, str]:
        logger.warning("order rejected error_code=%s error=%s", error_code, error)
        timeline.append(
            domain_build_stage_event(
                stage="place_order",
                status="rejected",
                details={"error_code": error_code, "error_message": str(error)},
            )
        )
        return "rejected", None, error_code

    def _job_reconcile_in_cycle(self, timeline: list[dict[str, object]]) -> ReconciliationReport | None:
        """Run the optional fill audit without failing the cycle on fetch errors.

        Args:
            timeline: Mutable stage timeline events.

        Returns:
            ReconciliationReport | None: Report, or None when disabled or unavailable.

        Raises:
            RuntimeError: This helper does not raise runtime errors.
        """

        if not self._config.reconcile_fills:
            timeline.append(domain_build_stage_event(stage="reconcile", status="skipped"))
            return None

        try:
            fills = self._exchange_adapter.adapter_get_fills(None)
        except (TimeoutError, ConnectionError, ExchangeRequestError) as error:
            logger.warning("fill reconciliation skipped: %s", error)
            timeline.append(
                domain_build_stage_event(
                    stage="reconcile",
                    status="failed",
                    details={"error_type": type(error).__name__, "error_message": str(error)},
                )
            )
            return None

        report = job_reconcile_realized_pnl(
            ledger=self._ledger,
            fills=fills,
            tolerance=self._config.reconciliation_tolerance,
        )
        timeline.append(
            domain_build_stage_event(
                stage="reconcile",
                status="completed",
                details=job_reconciliation_report_to_payload(report),
            )
        )
        return report

    def _job_error_code_for_exception(self, error: Exception) -> str:
        """Map runtime exception type to deterministic cycle failure code.

        Args:
            error: Caught workflow exception.

        Returns:
            str: Deterministic error code.

        Raises:
            RuntimeError: This helper does not raise runtime errors.
        """

        if isinstance(error, PersistenceFailureError):
            return "CYCLE_PERSISTENCE_ERROR"
        if isinstance(error, LedgerDesyncError):
            return "CYCLE_LEDGER_DESYNC_ERROR"
        if isinstance(error, MarkPriceUnavailableError):
            return "CYCLE_MARK_PRICE_UNAVAILABLE_ERROR"
        if isinstance(error, ExchangeCredentialsError):
            return "CYCLE_EXCHANGE_CREDENTIALS_ERROR"
        if isinstance(error, ExchangeRequestError):
            return "CYCLE_EXCHANGE_REQUEST_ERROR"
        if isinstance(error, ExchangeAdapterTimeoutError):
            return "CYCLE_TIMEOUT_ERROR"
        if isinstance(error, ExchangeAdapterConnectionError):
            return "CYCLE_CONNECTION_ERROR"
        if isinstance(error, TimeoutError):
            return "CYCLE_TIMEOUT_ERROR"
        if isinstance(error, ConnectionError):
            return "CYCLE_CONNECTION_ERROR"
        if isinstance(error, ValueError):
            return "CYCLE_CONTRACT_ERROR"
        return "CYCLE_UNEXPECTED_ERROR"
