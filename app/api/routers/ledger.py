"""Ledger API router composition for state, journal and reconciliation endpoints."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Query, status
from fastapi.responses import JSONResponse

from app.config import AppSettings
from app.db import LedgerStateStorePort, PersistenceFailureError
from app.jobs import CycleAlreadyActiveError, CycleOrchestratorPort, job_reconciliation_report_to_payload
from app.ledger import (
    BotAction,
    Journal,
    LedgerState,
    PositionUpdate,
    RealizedPnlEvent,
    ledger_journal_entry_to_payload,
)

_API_JOURNAL_ENTRY_TYPES = frozenset(
    {PositionUpdate.entry_type, RealizedPnlEvent.entry_type, BotAction.entry_type}
)


def api_create_ledger_router(
    settings: AppSettings,
    state_store: LedgerStateStorePort,
    cycle_orchestrator: CycleOrchestratorPort,
) -> APIRouter:
    """Create ledger router with state, journal and reconciliation endpoints.

    Args:
        settings: Runtime settings used for state key and pagination defaults.
        state_store: DB-layer ledger snapshot store.
        cycle_orchestrator: Job orchestrator used for reconciliation under the cycle lock.

    Returns:
        APIRouter: Router exposing ledger APIs.

    Raises:
        ValueError: Raised when dependencies are invalid.
    """

    if settings is None:
        raise ValueError("settings must not be None")
    if state_store is None:
        raise ValueError("state_store must not be None")
    if cycle_orchestrator is None:
        raise ValueError("cycle_orchestrator must not be None")

    router = APIRouter(prefix="/ledger", tags=["ledger"])

    @router.get("/state")
    def api_ledger_state() -> JSONResponse:
        """Return the persisted balance, position and trade sequence.

        Returns:
            JSONResponse: Ledger state payload or 503 when the store is unavailable.

        Raises:
            RuntimeError: Raised when serialization fails unexpectedly.
        """

        try:
            ledger_state = state_store.db_ledger_state_load(settings.ledger_state_key)
        except PersistenceFailureError as error:
            return api_persistence_error_response(error)

        payload = api_serialize_ledger_state(ledger_state, symbol=settings.tracked_symbol)
        return JSONResponse(content=payload, status_code=status.HTTP_200_OK)

    @router.get("/journal")
    def api_ledger_journal(
        since: datetime | None = Query(default=None),
        entry_type: str | None = Query(default=None),
        limit: int = Query(default=settings.api_default_limit, ge=1),
        offset: int = Query(default=0, ge=0),
    ) -> JSONResponse:
        """Return journal entries in ascending time order.

        Args:
            since: Optional exclusive lower bound; naive values are read as UTC.
            entry_type: Optional entry type filter.
            limit: Max entries to return, capped by the configured maximum.
            offset: Entries to skip.

        Returns:
            JSONResponse: Journal page payload.

        Raises:
            RuntimeError: Raised when serialization fails unexpectedly.
        """

        normalized_entry_type = entry_type.strip() if entry_type is not None else None
        if normalized_entry_type is not None and normalized_entry_type not in _API_JOURNAL_ENTRY_TYPES:
            payload = {
                "status": "error",
                "code": "INVALID_ENTRY_TYPE",
                "message": f"unsupported entry_type={normalized_entry_type}",
            }
            return JSONResponse(content=payload, status_code=status.HTTP_400_BAD_REQUEST)

        normalized_since = since
        if normalized_since is not None and normalized_since.tzinfo is None:
            normalized_since = normalized_since.replace(tzinfo=timezone.utc)

        try:
            ledger_state = state_store.db_ledger_state_load(settings.ledger_state_key)
        except PersistenceFailureError as error:
            return api_persistence_error_response(error)

        entries = Journal(ledger_state.journal).journal_since(normalized_since)
        if normalized_entry_type is not None:
            entries = tuple(entry for entry in entries if entry.entry_type == normalized_entry_type)

        applied_limit = min(limit, settings.api_max_limit)
        page_entries = entries[offset : offset + applied_limit]
        payload = {
            "items": [ledger_journal_entry_to_payload(entry) for entry in page_entries],
            "page": {
                "limit": limit,
                "applied_limit": applied_limit,
                "offset": offset,
                "returned": len(page_entries),
                "total": len(entries),
            },
            "filters": {
                "since": None if normalized_since is None else normalized_since.isoformat(),
                "entry_type": normalized_entry_type,
            },
        }
        return JSONResponse(content=payload, status_code=status.HTTP_200_OK)

    @router.get("/reconciliation")
    def api_ledger_reconciliation() -> JSONResponse:
        """Return the FIFO audit of ledger realized PnL against exchange fills.

        Returns:
            JSONResponse: Reconciliation payload, 409 while a cycle runs, 503 on upstream failure.

        Raises:
            RuntimeError: Raised when reconciliation fails unexpectedly.
        """

        try:
            report = cycle_orchestrator.job_reconcile()
        except CycleAlreadyActiveError:
            payload = {
                "status": "error",
                "message": "cycle already active",
            }
            return JSONResponse(content=payload, status_code=status.HTTP_409_CONFLICT)
        except PersistenceFailureError as error:
            return api_persistence_error_response(error)
        except (ConnectionError, TimeoutError) as error:
            payload = {
                "status": "error",
                "code": "EXCHANGE_UNAVAILABLE",
                "message": str(error),
            }
            return JSONResponse(content=payload, status_code=status.HTTP_503_SERVICE_UNAVAILABLE)

        return JSONResponse(content=job_reconciliation_report_to_payload(report), status_code=status.HTTP_200_OK)

    return router


def api_serialize_ledger_state(ledger_state: LedgerState, symbol: str) -> dict[str, object]:
    """Serialize ledger state summary for API responses.

    Args:
        ledger_state: Persisted ledger snapshot.
        symbol: Tracked symbol.

    Returns:
        dict[str, object]: JSON-compatible state payload.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    position = ledger_state.position
    return {
        "symbol": symbol,
        "balance": str(ledger_state.balance),
        "position": None
        if position is None
        else {
            "side": position.side,
            "size": str(position.size),
            "average_entry_price": str(position.average_entry_price),
            "unrealized_pnl": str(position.unrealized_pnl),
        },
        "last_trade_id": ledger_state.last_trade_id,
        "journal_entries": len(ledger_state.journal),
        "last_journal_cursor": None
        if ledger_state.last_journal_cursor is None
        else ledger_state.last_journal_cursor.isoformat(),
    }


def api_persistence_error_response(error: PersistenceFailureError) -> JSONResponse:
    """Build the 503 payload returned when the ledger store is unavailable."""

    payload = {
        "status": "error",
        "code": "PERSISTENCE_FAILURE",
        "message": str(error),
    }
    return JSONResponse(content=payload, status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
