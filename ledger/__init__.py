"""
Append-only rewards ledger.

This module provides:
- Immutable ledger entries in POINTS, USD_CASH and USD_CREDIT
- A running balance per user and currency, updated with every append
- Holds that reserve points for open redemption requests
- Reconciliation of running balances against the full entry history
"""

from .models import (
    CurrencyType,
    EntryType,
    LedgerEntry,
    NewLedgerEntry,
    UserBalance,
)
from .service import LedgerService, aggregate

__all__ = [
    "CurrencyType",
    "EntryType",
    "LedgerEntry",
    "NewLedgerEntry",
    "UserBalance",
    "LedgerService",
    "aggregate",
]
