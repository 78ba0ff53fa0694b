"""FastAPI application factory for the position ledger service."""

from fastapi import FastAPI

from app.config import AppSettings
from app.db import DatabaseHealthPort, LedgerStateStorePort
from app.jobs import CycleOrchestratorPort

from .routers import api_create_cycle_router, api_create_health_router, api_create_ledger_router


def create_api_application(
    settings: AppSettings,
    db_health_service: DatabaseHealthPort,
    state_store: LedgerStateStorePort,
    cycle_orchestrator: CycleOrchestratorPort,
) -> FastAPI:
    """Create the FastAPI application instance for the service.

    Args:
        settings: Validated application settings used for runtime metadata.
        db_health_service: Database health service used by health endpoints.
        state_store: Ledger snapshot store for state and journal reads.
        cycle_orchestrator: Job orchestrator for cycle triggers and reconciliation.

    Returns:
        FastAPI: Framework application instance.

    Raises:
        RuntimeError: Raised if application initialization fails.
    """
    application = FastAPI(title="Futures Position Ledger")

    @application.get("/", tags=["foundation"])
    def foundation_index() -> dict[str, str]:
        """Return service identification for bootstrap verification.

        Returns:
            dict[str, str]: Service metadata.

        Raises:
            RuntimeError: Raised if route handler cannot produce a response.
        """

        return {
            "service": "futures-position-ledger",
            "status": "ready",
            "environment": settings.environment_name,
            "trading_mode": settings.trading_mode,
            "symbol": settings.tracked_symbol,
        }

    application.include_router(
        api_create_health_router(db_health_service=db_health_service, trading_mode=settings.trading_mode)
    )
    application.include_router(
        api_create_ledger_router(
            settings=settings,
            state_store=state_store,
            cycle_orchestrator=cycle_orchestrator,
        )
    )
    application.include_router(api_create_cycle_router(cycle_orchestrator=cycle_orchestrator))

    return application
