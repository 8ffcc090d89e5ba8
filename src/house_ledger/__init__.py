"""House Ledger - Shared household expenses, balances and settlement."""

__version__ = "0.1.0"

from .balances import aggregate, monthly_summary
from .config import Settings, load_settings
from .db import Database
from .models import (
    BalanceView,
    CustomShare,
    CustomSplit,
    EqualSplit,
    Expense,
    Obligation,
    PaymentIntent,
    Settlement,
    SettlementState,
)
from .payments import PaymentGate, verify
from .service import LedgerService
from .settlement import settle, settle_stored_expense
from .splits import resolve, split_shares, validate_split
from .store import InMemoryLedgerStore

__all__ = [
    "Settings",
    "load_settings",
    "Database",
    "InMemoryLedgerStore",
    "BalanceView",
    "CustomShare",
    "CustomSplit",
    "EqualSplit",
    "Expense",
    "Obligation",
    "PaymentIntent",
    "Settlement",
    "SettlementState",
    "aggregate",
    "monthly_summary",
    "resolve",
    "split_shares",
    "validate_split",
    "settle",
    "settle_stored_expense",
    "verify",
    "PaymentGate",
    "LedgerService",
]
