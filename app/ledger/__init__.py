"""Ledger layer package for position accounting, journaling and PnL audit."""

from .errors import InsufficientMarginError, LedgerError, MalformedFillError, UnsupportedOrderError
from .fill_matcher import (
	FillMatchOpenLot,
	FillMatchResult,
	fill_matcher_compute_realized_pnl,
	fill_parse_raw,
)
from .journal import Journal
from .models import (
	DUST_THRESHOLD,
	MARKET_ORDER_TYPE,
	AppliedTrade,
	BotAction,
	Fill,
	JournalEntry,
	LedgerState,
	MarketTradeRequest,
	NoTradeRequest,
	Position,
	PositionUpdate,
	RealizedPnlEvent,
	TradeRequest,
)
from .position_ledger import PositionLedger, ledger_default_state, ledger_position_unrealized_pnl
from .state_codec import ledger_journal_entry_to_payload, ledger_state_from_payload, ledger_state_to_payload

__all__ = [
	"AppliedTrade",
	"BotAction",
	"DUST_THRESHOLD",
	"Fill",
	"FillMatchOpenLot",
	"FillMatchResult",
	"InsufficientMarginError",
	"Journal",
	"JournalEntry",
	"LedgerError",
	"LedgerState",
	"MARKET_ORDER_TYPE",
	"MalformedFillError",
	"MarketTradeRequest",
	"NoTradeRequest",
	"Position",
	"PositionLedger",
	"PositionUpdate",
	"RealizedPnlEvent",
	"TradeRequest",
	"UnsupportedOrderError",
	"fill_matcher_compute_realized_pnl",
	"fill_parse_raw",
	"ledger_default_state",
	"ledger_journal_entry_to_payload",
	"ledger_position_unrealized_pnl",
	"ledger_state_from_payload",
	"ledger_state_to_payload",
]
