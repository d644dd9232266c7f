"""SplitLedger - Track shared group expenses, balances and settlements."""

__version__ = "0.1.0"

from .config import Settings, load_settings
from .ledger.balances import compute_balances, format_balances, parse_amount
from .ledger.service import LedgerService
from .ledger.suggest import suggest_settlement
from .models import (
    BalanceSheet,
    Expense,
    Group,
    Settlement,
    SettlementSuggestion,
    Split,
)
from .storage import LedgerRepository, create_repository

__all__ = [
    "Settings",
    "load_settings",
    "compute_balances",
    "format_balances",
    "parse_amount",
    "LedgerService",
    "suggest_settlement",
    "BalanceSheet",
    "Expense",
    "Group",
    "Settlement",
    "SettlementSuggestion",
    "Split",
    "LedgerRepository",
    "create_repository",
]
