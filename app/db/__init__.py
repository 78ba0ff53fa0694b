"""Database layer package for all SQL and persistence boundaries."""

from .interfaces import DatabaseHealthPort, LedgerStateStorePort, PersistenceFailureError
from .ledger_state_store import SQLAlchemyLedgerStateStore
from .session import db_create_engine

__all__ = [
	"DatabaseHealthPort",
	"LedgerStateStorePort",
	"PersistenceFailureError",
	"SQLAlchemyLedgerStateStore",
	"db_create_engine",
]
