"""Typed interfaces for database-layer services.

All SQL access must remain in the db package and its submodules.
"""

from typing import Protocol

from app.domain import HealthStatus
from app.ledger import LedgerState


class PersistenceFailureError(RuntimeError):
    """Raised when the ledger state store cannot read or write a snapshot."""


class DatabaseHealthPort(Protocol):
    """Port definition for database connectivity verification."""

    def db_connection_label(self) -> str:
        """Return a stable label for the active database connection target.

        Returns:
            str: Database target label for diagnostics.

        Raises:
            RuntimeError: Raised when connection metadata is unavailable.
        """

    def db_check_health(self) -> HealthStatus:
        """Check database connectivity and return deterministic health payload.

        Returns:
            HealthStatus: Database health status payload.

        Raises:
            ConnectionError: Raised when database cannot be reached.
        """


class LedgerStateStorePort(Protocol):
    """Port definition for key-value persistence of ledger state snapshots."""

    def db_ledger_state_load(self, state_key: str) -> LedgerState:
        """Load one ledger snapshot, or a fresh default state when none is stored.

        Args:
            state_key: Persistence key of the snapshot.

        Returns:
            LedgerState: Stored or default snapshot.

        Raises:
            PersistenceFailureError: Raised when the read fails or the stored payload is invalid.
        """

    def db_ledger_state_save(self, state_key: str, state: LedgerState) -> int:
        """Persist one ledger snapshot, replacing the previous one.

        Args:
            state_key: Persistence key of the snapshot.
            state: Snapshot to persist.

        Returns:
            int: Stored revision number after the write.

        Raises:
            PersistenceFailureError: Raised when the write fails.
        """
