"""Project-native typed exceptions for ledger accounting failures."""

from __future__ import annotations

from decimal import Decimal


class LedgerError(Exception):
    """Base exception for rejected ledger operations.

    Attributes:
        error_code: Deterministic rejection code.
    """

    error_code = "LEDGER_ERROR"

    def __init__(self, message: str):
        super().__init__(message)


class UnsupportedOrderError(LedgerError, ValueError):
    """Request targets another symbol, is not a market order, or is not a valid trade instruction."""

    error_code = "LEDGER_UNSUPPORTED_ORDER"


class InsufficientMarginError(LedgerError, ValueError):
    """Request notional exceeds the available balance.

    Attributes:
        notional: Requested notional value.
        balance: Balance available at validation time.
    """

    error_code = "LEDGER_INSUFFICIENT_MARGIN"

    def __init__(self, message: str, notional: Decimal | None = None, balance: Decimal | None = None):
        super().__init__(message)
        self.notional = notional
        self.balance = balance


class MalformedFillError(ValueError):
    """Raw exchange fill is missing or carries an invalid side, size, or price."""
