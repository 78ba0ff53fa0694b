"""API router package for endpoint composition."""

from .cycle import api_create_cycle_router
from .health import api_create_health_router
from .ledger import api_create_ledger_router

__all__ = ["api_create_cycle_router", "api_create_health_router", "api_create_ledger_router"]
