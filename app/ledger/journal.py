"""Append-only, time-ordered journal of ledger accounting events."""

from __future__ import annotations

from bisect import bisect_right
from datetime import datetime
from typing import Iterable

from .models import JournalEntry, RealizedPnlEvent


class Journal:
    """Timestamp-ordered journal with deduplicated realized-PnL events.

    Entries sharing a timestamp keep their insertion order. A `RealizedPnlEvent`
    whose `(closed_time, pair)` key is already present is dropped.
    """

    def __init__(self, entries: Iterable[JournalEntry] = ()):
        """Initialize journal from previously persisted entries.

        Args:
            entries: Existing entries in any order.

        Returns:
            None: Initializer does not return values.

        Raises:
            ValueError: Raised when an entry timestamp is offset-naive.
        """

        self._entries: list[JournalEntry] = []
        self._timestamps: list[datetime] = []
        self._realized_keys: set[tuple[datetime, str]] = set()
        for entry in entries:
            self.journal_append(entry)

    def journal_append(self, entry: JournalEntry) -> bool:
        """Insert one entry in timestamp order.

        Args:
            entry: Journal entry to insert.

        Returns:
            bool: False when the entry was a duplicate realized-PnL event, else True.

        Raises:
            ValueError: Raised when entry is None or its timestamp is offset-naive.
        """

        if entry is None:
            raise ValueError("entry must not be None")

        entry_timestamp = entry.entry_timestamp
        if entry_timestamp.tzinfo is None or entry_timestamp.utcoffset() is None:
            raise ValueError("journal entry timestamp must be offset-aware")

        if isinstance(entry, RealizedPnlEvent):
            if entry.dedupe_key in self._realized_keys:
                return False
            self._realized_keys.add(entry.dedupe_key)

        insert_index = bisect_right(self._timestamps, entry_timestamp)
        self._timestamps.insert(insert_index, entry_timestamp)
        self._entries.insert(insert_index, entry)
        return True

    def journal_since(self, timestamp: datetime | None) -> tuple[JournalEntry, ...]:
        """Return entries strictly newer than `timestamp` in ascending order.

        Args:
            timestamp: Exclusive lower bound, None returns the full history.

        Returns:
            tuple[JournalEntry, ...]: Matching entries.

        Raises:
            RuntimeError: This helper does not raise runtime errors.
        """

        if timestamp is None:
            return tuple(self._entries)
        start_index = bisect_right(self._timestamps, timestamp)
        return tuple(self._entries[start_index:])

    def journal_all(self) -> tuple[JournalEntry, ...]:
        """Return the full journal history in ascending order."""

        return tuple(self._entries)

    def journal_filter_by_type(self, entry_type: str) -> tuple[JournalEntry, ...]:
        """Return entries of one variant (`position_update`, `realized_pnl`, `bot_action`).

        Args:
            entry_type: Journal entry type label.

        Returns:
            tuple[JournalEntry, ...]: Matching entries in ascending order.

        Raises:
            RuntimeError: This helper does not raise runtime errors.
        """

        return tuple(entry for entry in self._entries if entry.entry_type == entry_type)

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["Journal"]
