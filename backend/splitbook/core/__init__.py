"""Core balance and statistics logic for splitbook."""

from splitbook.errors import MalformedExpenseError, PrecisionDriftWarning
from .balance_engine import NetBalance, PairLedger, UserDirectory, compute_balances
from .statistics import Statistics, compute_statistics, relative_widths

__all__ = [
    "MalformedExpenseError",
    "PrecisionDriftWarning",
    "NetBalance",
    "PairLedger",
    "UserDirectory",
    "compute_balances",
    "Statistics",
    "compute_statistics",
    "relative_widths",
]
