"""Application bootstrap wiring for startup validation and dependency assembly."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import FastAPI

from app.adapters import ExchangeAdapterPort, KrakenFuturesAdapter, SimulatedExchangeAdapter
from app.api import create_api_application
from app.config import AppSettings, config_load_settings
from app.db import SQLAlchemyLedgerStateStore, db_create_engine
from app.jobs import TradingCycleConfig, TradingCycleOrchestrator
from app.ledger import PositionLedger, ledger_default_state


@dataclass(frozen=True)
class BootstrapComponents:
    """Wired runtime components shared by HTTP and CLI surfaces.

    Attributes:
        settings: Validated runtime settings.
        state_store: Ledger snapshot store, also used for health checks.
        cycle_orchestrator: Trading cycle orchestrator.
    """

    settings: AppSettings
    state_store: SQLAlchemyLedgerStateStore
    cycle_orchestrator: TradingCycleOrchestrator


def bootstrap_create_components(settings: AppSettings | None = None) -> BootstrapComponents:
    """Wire ledger, exchange adapter, store and orchestrator from settings.

    `simulated` mode routes orders into the ledger through
    `SimulatedExchangeAdapter` and uses the public Kraken endpoint for mark
    prices; `live` mode sends orders to Kraken with credentials.

    Args:
        settings: Optional pre-loaded settings, loaded from environment when omitted.

    Returns:
        BootstrapComponents: Wired runtime components.

    Raises:
        SettingsLoadError: Raised when startup configuration validation fails.
    """

    resolved_settings = settings or config_load_settings()
    engine = db_create_engine(database_url=resolved_settings.database_url)
    state_store = SQLAlchemyLedgerStateStore(engine=engine, initial_balance=resolved_settings.initial_balance)
    ledger = PositionLedger(
        symbol=resolved_settings.tracked_symbol,
        state=ledger_default_state(resolved_settings.initial_balance),
    )
    kraken_adapter = KrakenFuturesAdapter(
        api_key=resolved_settings.kraken_api_key,
        api_secret=resolved_settings.kraken_api_secret,
        base_url=resolved_settings.kraken_base_url,
        request_timeout_seconds=resolved_settings.kraken_request_timeout_seconds,
    )

    exchange_adapter: ExchangeAdapterPort
    if resolved_settings.trading_mode == "live":
        exchange_adapter = kraken_adapter
    else:
        exchange_adapter = SimulatedExchangeAdapter(ledger=ledger, mark_price_source=kraken_adapter)

    cycle_orchestrator = TradingCycleOrchestrator(
        ledger=ledger,
        exchange_adapter=exchange_adapter,
        state_store=state_store,
        config=TradingCycleConfig(
            symbol=resolved_settings.tracked_symbol,
            state_key=resolved_settings.ledger_state_key,
            tick_size=resolved_settings.tick_size,
            reconcile_fills=True,
            reconciliation_tolerance=resolved_settings.reconciliation_tolerance,
        ),
    )
    return BootstrapComponents(
        settings=resolved_settings,
        state_store=state_store,
        cycle_orchestrator=cycle_orchestrator,
    )


def bootstrap_create_application(settings: AppSettings | None = None) -> FastAPI:
    """Assemble the runtime application after validating startup configuration.

    Args:
        settings: Optional pre-loaded settings.

    Returns:
        FastAPI: Fully initialized FastAPI application instance.

    Raises:
        SettingsLoadError: Raised when startup configuration validation fails.
    """

    components = bootstrap_create_components(settings=settings)
    return create_api_application(
        settings=components.settings,
        db_health_service=components.state_store,
        state_store=components.state_store,
        cycle_orchestrator=components.cycle_orchestrator,
    )


def bootstrap_create_cycle_orchestrator(settings: AppSettings | None = None) -> TradingCycleOrchestrator:
    """Build trading cycle orchestrator for non-HTTP trigger surfaces.

    Args:
        settings: Optional pre-loaded settings.

    Returns:
        TradingCycleOrchestrator: Fully wired orchestrator instance.

    Raises:
        SettingsLoadError: Raised when startup configuration validation fails.
    """

    return bootstrap_create_components(settings=settings).cycle_orchestrator
