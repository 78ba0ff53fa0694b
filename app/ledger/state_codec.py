"""JSON-compatible encoding of ledger state snapshots for key-value persistence.

Decimals are encoded as strings and timestamps as UTC ISO-8601 text so the
payload round-trips without floating-point drift.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from .models import BotAction, JournalEntry, LedgerState, Position, PositionUpdate, RealizedPnlEvent

LEDGER_STATE_PAYLOAD_VERSION = 1


def ledger_state_to_payload(state: LedgerState) -> dict[str, Any]:
    """Encode a ledger state snapshot into a JSON-compatible dictionary.

    Args:
        state: Ledger state snapshot.

    Returns:
        dict[str, Any]: JSON-compatible payload.

    Raises:
        ValueError: Raised when state is None or holds an unknown journal entry.
    """

    if state is None:
        raise ValueError("state must not be None")

    return {
        "version": LEDGER_STATE_PAYLOAD_VERSION,
        "balance": str(state.balance),
        "position": _codec_position_to_payload(state.position),
        "last_trade_id": state.last_trade_id,
        "last_journal_cursor": _codec_timestamp_to_text(state.last_journal_cursor),
        "journal": [_codec_journal_entry_to_payload(entry) for entry in state.journal],
    }


def ledger_state_from_payload(payload: dict[str, Any]) -> LedgerState:
    """Decode a persisted payload into a ledger state snapshot.

    Args:
        payload: Payload produced by `ledger_state_to_payload`.

    Returns:
        LedgerState: Decoded snapshot.

    Raises:
        ValueError: Raised when payload shape or values are invalid.
    """

    if not isinstance(payload, dict):
        raise ValueError("ledger state payload must be a dict")

    version = payload.get("version", LEDGER_STATE_PAYLOAD_VERSION)
    if version != LEDGER_STATE_PAYLOAD_VERSION:
        raise ValueError(f"unsupported ledger state payload version={version}")

    journal_payload = payload.get("journal") or []
    if not isinstance(journal_payload, list):
        raise ValueError("ledger state journal must be a list")

    return LedgerState(
        balance=_codec_decimal(payload.get("balance"), "balance"),
        position=_codec_position_from_payload(payload.get("position")),
        last_trade_id=int(payload.get("last_trade_id") or 0),
        journal=tuple(_codec_journal_entry_from_payload(entry) for entry in journal_payload),
        last_journal_cursor=_codec_timestamp_from_text(payload.get("last_journal_cursor")),
    )


def ledger_journal_entry_to_payload(entry: JournalEntry) -> dict[str, Any]:
    """Encode one journal entry for API and persistence payloads."""

    return _codec_journal_entry_to_payload(entry)


def _codec_position_to_payload(position: Position | None) -> dict[str, str] | None:
    if position is None:
        return None
    return {
        "symbol": position.symbol,
        "side": position.side,
        "size": str(position.size),
        "average_entry_price": str(position.average_entry_price),
        "unrealized_pnl": str(position.unrealized_pnl),
    }


def _codec_position_from_payload(payload: Any) -> Position | None:
    if payload is None:
        return None
    if not isinstance(payload, dict):
        raise ValueError("ledger state position must be a dict or null")

    side = str(payload.get("side") or "")
    if side not in ("long", "short"):
        raise ValueError(f"ledger state position has unsupported side={side}")
    return Position(
        symbol=str(payload.get("symbol") or ""),
        side=side,
        size=_codec_decimal(payload.get("size"), "position.size"),
        average_entry_price=_codec_decimal(payload.get("average_entry_price"), "position.average_entry_price"),
        unrealized_pnl=_codec_decimal(payload.get("unrealized_pnl", "0"), "position.unrealized_pnl"),
    )


def _codec_journal_entry_to_payload(entry: JournalEntry) -> dict[str, Any]:
    """Encode one journal entry as a type-tagged dictionary.

    Args:
        entry: Journal entry variant.

    Returns:
        dict[str, Any]: Tagged payload.

    Raises:
        ValueError: Raised for unknown entry variants.
    """

    if isinstance(entry, PositionUpdate):
        return {
            "entry_type": entry.entry_type,
            "timestamp": _codec_timestamp_to_text(entry.timestamp),
            "tradeable": entry.tradeable,
            "update_reason": entry.update_reason,
            "position_change": entry.position_change,
            "realized_pnl": str(entry.realized_pnl),
            "old_side": entry.old_side,
            "old_average_entry_price": str(entry.old_average_entry_price),
            "execution_price": str(entry.execution_price),
            "trade_id": entry.trade_id,
            "close_size": str(entry.close_size),
            "new_side": entry.new_side,
            "new_size": str(entry.new_size),
            "order_side": entry.order_side,
            "order_size": str(entry.order_size),
        }
    if isinstance(entry, RealizedPnlEvent):
        return {
            "entry_type": entry.entry_type,
            "closed_time": _codec_timestamp_to_text(entry.closed_time),
            "pair": entry.pair,
            "pnl": str(entry.pnl),
            "side": entry.side,
            "size": str(entry.size),
            "entry_price": str(entry.entry_price),
            "exit_price": str(entry.exit_price),
        }
    if isinstance(entry, BotAction):
        return {
            "entry_type": entry.entry_type,
            "timestamp": _codec_timestamp_to_text(entry.timestamp),
            "reason": entry.reason,
            "action": entry.action,
            "market_snapshot": entry.market_snapshot,
        }
    raise ValueError(f"unsupported journal entry type={type(entry).__name__}")


def _codec_journal_entry_from_payload(payload: Any) -> JournalEntry:
    """Decode one type-tagged journal entry payload.

    Args:
        payload: Tagged payload.

    Returns:
        JournalEntry: Decoded entry.

    Raises:
        ValueError: Raised for unknown tags or invalid values.
    """

    if not isinstance(payload, dict):
        raise ValueError("journal entry payload must be a dict")

    entry_type = payload.get("entry_type")
    if entry_type == PositionUpdate.entry_type:
        return PositionUpdate(
            timestamp=_codec_required_timestamp(payload.get("timestamp"), "timestamp"),
            tradeable=str(payload.get("tradeable") or ""),
            update_reason=str(payload.get("update_reason") or ""),
            position_change="close" if payload.get("position_change") == "close" else "open",
            realized_pnl=_codec_decimal(payload.get("realized_pnl"), "realized_pnl"),
            old_side=payload.get("old_side"),
            old_average_entry_price=_codec_decimal(payload.get("old_average_entry_price"), "old_average_entry_price"),
            execution_price=_codec_decimal(payload.get("execution_price"), "execution_price"),
            trade_id=int(payload.get("trade_id") or 0),
            close_size=_codec_decimal(payload.get("close_size", "0"), "close_size"),
            new_side=payload.get("new_side"),
            new_size=_codec_decimal(payload.get("new_size", "0"), "new_size"),
            order_side=payload.get("order_side"),
            order_size=_codec_decimal(payload.get("order_size", "0"), "order_size"),
        )
    if entry_type == RealizedPnlEvent.entry_type:
        return RealizedPnlEvent(
            closed_time=_codec_required_timestamp(payload.get("closed_time"), "closed_time"),
            pair=str(payload.get("pair") or ""),
            pnl=_codec_decimal(payload.get("pnl"), "pnl"),
            side="sell" if payload.get("side") == "sell" else "buy",
            size=_codec_decimal(payload.get("size"), "size"),
            entry_price=_codec_decimal(payload.get("entry_price"), "entry_price"),
            exit_price=_codec_decimal(payload.get("exit_price"), "exit_price"),
        )
    if entry_type == BotAction.entry_type:
        return BotAction(
            timestamp=_codec_required_timestamp(payload.get("timestamp"), "timestamp"),
            reason=str(payload.get("reason") or ""),
            action=dict(payload.get("action") or {}),
            market_snapshot=dict(payload.get("market_snapshot") or {}),
        )
    raise ValueError(f"unsupported journal entry_type={entry_type}")


def _codec_decimal(value: Any, field_name: str) -> Decimal:
    if value is None:
        raise ValueError(f"ledger state field {field_name} must not be null")
    try:
        return Decimal(str(value))
    except InvalidOperation as error:
        raise ValueError(f"ledger state field {field_name} is not a decimal: {value!r}") from error


def _codec_timestamp_to_text(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat()


def _codec_timestamp_from_text(value: Any) -> datetime | None:
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        raise ValueError("ledger state timestamp must be a non-empty string")
    try:
        parsed_value = datetime.fromisoformat(value)
    except ValueError as error:
        raise ValueError(f"invalid ledger state timestamp={value}") from error
    if parsed_value.tzinfo is None or parsed_value.utcoffset() is None:
        raise ValueError("ledger state timestamp must be offset-aware")
    return parsed_value


def _codec_required_timestamp(value: Any, field_name: str) -> datetime:
    parsed_value = _codec_timestamp_from_text(value)
    if parsed_value is None:
        raise ValueError(f"journal entry field {field_name} must not be null")
    return parsed_value


__all__ = [
    "LEDGER_STATE_PAYLOAD_VERSION",
    "ledger_journal_entry_to_payload",
    "ledger_state_from_payload",
    "ledger_state_to_payload",
]
