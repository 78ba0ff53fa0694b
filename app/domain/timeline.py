"""Shared timeline event helper for trading cycle diagnostics."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any


def domain_build_stage_event(
    stage: str,
    status: str,
    details: dict[str, Any] | None = None,
    occurred_at: datetime | None = None,
) -> dict[str, object]:
    """Build one structured cycle timeline event payload.

    Args:
        stage: Cycle stage name (for example `load_state`, `place_order`).
        status: Stage status marker (`started`, `completed`, `skipped`, `failed`).
        details: Optional structured details object.
        occurred_at: Optional event timestamp, defaults to the current UTC time.

    Returns:
        dict[str, object]: Structured timeline event.

    Raises:
        RuntimeError: This helper does not raise runtime errors.
    """

    event_time = occurred_at if occurred_at is not None else datetime.now(timezone.utc)
    event_payload: dict[str, object] = {
        "stage": stage,
        "status": status,
        "at_utc": event_time.astimezone(timezone.utc).isoformat(),
    }
    if details:
        event_payload["details"] = details
    return event_payload
