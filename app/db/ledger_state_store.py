"""Database service for ledger state snapshot persistence."""

from __future__ import annotations

import json
import logging
from decimal import Decimal

from sqlalchemy import Engine, text
from sqlalchemy.exc import SQLAlchemyError

from app.domain import HealthStatus
from app.ledger import LedgerState, ledger_default_state, ledger_state_from_payload, ledger_state_to_payload

from .interfaces import DatabaseHealthPort, LedgerStateStorePort, PersistenceFailureError

logger = logging.getLogger(__name__)


class SQLAlchemyLedgerStateStore(LedgerStateStorePort, DatabaseHealthPort):
    """SQLAlchemy implementation of the ledger state store over the `ledger_state` table.

    Each key owns exactly one row holding the JSON snapshot and a revision
    counter that increments on every save.
    """

    def __init__(self, engine: Engine, initial_balance: Decimal):
        """Initialize ledger state store.

        Args:
            engine: SQLAlchemy engine used for persistence and reads.
            initial_balance: Balance of the default state returned for unknown keys.

        Returns:
            None: Initializer does not return values.

        Raises:
            ValueError: Raised when engine is invalid or initial balance is negative.
        """

        if engine is None:
            raise ValueError("engine must not be None")
        if initial_balance < Decimal("0"):
            raise ValueError("initial_balance must be >= 0")
        self._engine = engine
        self._initial_balance = initial_balance

    def db_connection_label(self) -> str:
        """Return the target database URL for diagnostics.

        Returns:
            str: Rendered engine URL string.

        Raises:
            RuntimeError: Raised if URL rendering fails.
        """

        return self._engine.url.render_as_string(hide_password=True)

    def db_check_health(self) -> HealthStatus:
        """Verify database connectivity using a deterministic lightweight query.

        Returns:
            HealthStatus: Health payload with status and diagnostic detail.

        Raises:
            ConnectionError: Raised when connectivity check fails.
        """

        try:
            with self._engine.connect() as connection:
                connection.execute(text("SELECT 1"))
            return HealthStatus(status="ok", detail="database connectivity verified")
        except SQLAlchemyError as error:
            raise ConnectionError("database connectivity check failed") from error

    def db_ledger_state_load(self, state_key: str) -> LedgerState:
        """Load one ledger snapshot, or a fresh default state when none is stored.

        Args:
            state_key: Persistence key of the snapshot.

        Returns:
            LedgerState: Stored or default snapshot.

        Raises:
            ValueError: Raised when state key is blank.
            PersistenceFailureError: Raised when the read fails or the stored payload is invalid.
        """

        normalized_state_key = self._db_ledger_state_validate_key(state_key)
        try:
            with self._engine.connect() as connection:
                row = connection.execute(
                    text("SELECT payload, revision FROM ledger_state WHERE state_key = :state_key"),
                    {"state_key": normalized_state_key},
                ).mappings().fetchone()
        except SQLAlchemyError as error:
            raise PersistenceFailureError(f"ledger state read failed for state_key={normalized_state_key}") from error

        if row is None:
            logger.info("no stored ledger state for state_key=%s, starting fresh", normalized_state_key)
            return ledger_default_state(self._initial_balance)

        try:
            return ledger_state_from_payload(json.loads(row["payload"]))
        except ValueError as error:
            raise PersistenceFailureError(
                f"stored ledger state is invalid for state_key={normalized_state_key}, revision={row['revision']}"
            ) from error

    def db_ledger_state_save(self, state_key: str, state: LedgerState) -> int:
        """Persist one ledger snapshot with a single-row upsert.

        Args:
            state_key: Persistence key of the snapshot.
            state: Snapshot to persist.

        Returns:
            int: Stored revision number after the write.

        Raises:
            ValueError: Raised when state key is blank or state is None.
            PersistenceFailureError: Raised when the write fails.
        """

        normalized_state_key = self._db_ledger_state_validate_key(state_key)
        if state is None:
            raise ValueError("state must not be None")

        serialized_payload = json.dumps(ledger_state_to_payload(state), sort_keys=True)
        try:
            with self._engine.begin() as connection:
                connection.execute(
                    text(
                        "INSERT INTO ledger_state (state_key, payload, revision, updated_at_utc) "
                        "VALUES (:state_key, :payload, 1, CURRENT_TIMESTAMP) "
                        "ON CONFLICT (state_key) DO UPDATE SET "
                        "payload = excluded.payload, "
                        "revision = ledger_state.revision + 1, "
                        "updated_at_utc = excluded.updated_at_utc"
                    ),
                    {
                        "state_key": normalized_state_key,
                        "payload": serialized_payload,
                    },
                )
                revision_row = connection.execute(
                    text("SELECT revision FROM ledger_state WHERE state_key = :state_key"),
                    {"state_key": normalized_state_key},
                ).mappings().fetchone()
        except SQLAlchemyError as error:
            raise PersistenceFailureError(f"ledger state write failed for state_key={normalized_state_key}") from error

        if revision_row is None:
            raise PersistenceFailureError(f"ledger state row missing after write for state_key={normalized_state_key}")
        return int(revision_row["revision"])

    def _db_ledger_state_validate_key(self, state_key: str) -> str:
        normalized_state_key = (state_key or "").strip()
        if not normalized_state_key:
            raise ValueError("state_key must not be blank")
        return normalized_state_key
