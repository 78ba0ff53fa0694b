"""Trading cycle API router composition for manual cycle triggers."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, status
from fastapi.responses import JSONResponse

from app.jobs import CycleAlreadyActiveError, CycleOrchestratorPort, job_reconciliation_report_to_payload


def api_create_cycle_router(cycle_orchestrator: CycleOrchestratorPort) -> APIRouter:
    """Create cycle router with the manual trigger endpoint.

    Args:
        cycle_orchestrator: Job orchestrator for trading cycle execution.

    Returns:
        APIRouter: Router exposing `/cycle/run`.

    Raises:
        ValueError: Raised when cycle_orchestrator is invalid.
    """

    if cycle_orchestrator is None:
        raise ValueError("cycle_orchestrator must not be None")

    router = APIRouter(prefix="/cycle", tags=["cycle"])

    @router.post("/run")
    def api_cycle_run_trigger(plan: dict[str, Any] | None = Body(default=None)) -> JSONResponse:
        """Run one trading cycle for an optional decision plan.

        Args:
            plan: Decision plan body, omitted for a hold cycle.

        Returns:
            JSONResponse: Cycle result payload, 409 when a cycle is already active.

        Raises:
            RuntimeError: Raised when execution fails unexpectedly.
        """

        try:
            execution_result = cycle_orchestrator.job_execute(job_name="trading_cycle", plan=plan)
        except CycleAlreadyActiveError:
            payload = {
                "status": "error",
                "message": "cycle already active",
            }
            return JSONResponse(content=payload, status_code=status.HTTP_409_CONFLICT)

        payload = {
            "job_name": execution_result.job_name,
            "status": execution_result.status,
            "error_code": execution_result.error_code,
            "order_outcome": execution_result.order_outcome,
            "order_id": execution_result.order_id,
            "rejection_code": execution_result.rejection_code,
            "realized_event_count": execution_result.realized_event_count,
            "state_revision": execution_result.state_revision,
            "reconciliation": None
            if execution_result.reconciliation is None
            else job_reconciliation_report_to_payload(execution_result.reconciliation),
            "timeline": execution_result.timeline,
        }
        return JSONResponse(content=payload, status_code=status.HTTP_200_OK)

    return router
