# ledger/balance.py

"""
Balance Calculator

Pure functions over a student's ledger entries. Entries are ordered by
(entry_date, sequence); the balance after each entry is the sum of debits
minus the sum of credits up to and including it. No database access happens
here, so the same code verifies stored ledgers and in-memory sequences.
"""

from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Optional

from core.exceptions import InconsistentLedgerError
from ledger.utils import balance_type

DEBIT = 'DEBIT'
CREDIT = 'CREDIT'


@dataclass(frozen=True)
class BalanceSummary:
    total_debits: int
    total_credits: int
    current_balance: int
    entry_count: int
    last_entry_date: Optional[date] = None

    @property
    def balance_type(self):
        return balance_type(self.current_balance)

    @property
    def absolute_balance(self):
        return abs(self.current_balance)


def signed_amount(entry):
    """+amount for a debit, -amount for a credit."""
    if entry.entry_type == DEBIT:
        return entry.amount
    if entry.entry_type == CREDIT:
        return -entry.amount
    raise ValueError(f"Unknown entry type: {entry.entry_type!r}")


def order_entries(entries: Iterable) -> list:
    """Sort by entry date, then insertion sequence. The sort is stable."""
    return sorted(entries, key=lambda e: (e.entry_date, e.sequence or 0))


def running_balances(entries: Iterable) -> List[int]:
    """
    Running balance after each entry, in ledger order.

    Example:
        debit 1000, credit 500, debit 200, credit 800
        -> [1000, 500, 700, -100]
    """
    balances = []
    balance = 0
    for entry in order_entries(entries):
        balance += signed_amount(entry)
        balances.append(balance)
    return balances


def calculate_balance(entries: Iterable) -> int:
    """Final balance; zero for an empty ledger."""
    balances = running_balances(entries)
    return balances[-1] if balances else 0


def audit_entries(entries: Iterable, tolerance: int = 0) -> List[int]:
    """
    Recompute running totals and compare them with each recorded balance_after.

    Args:
        entries: LedgerEntry-like objects
        tolerance: Allowed difference in minor units

    Returns:
        list[int]: the recomputed running balances

    Raises:
        InconsistentLedgerError: At the first entry whose recorded balance
            differs from the recomputed one by more than tolerance
    """
    balances = []
    balance = 0
    for entry in order_entries(entries):
        balance += signed_amount(entry)
        if abs(entry.balance_after - balance) > tolerance:
            raise InconsistentLedgerError(entry, expected=balance, recorded=entry.balance_after)
        balances.append(balance)
    return balances


def summarize(entries: Iterable) -> BalanceSummary:
    """Totals, current balance and last entry date of a ledger."""
    ordered = order_entries(entries)
    total_debits = sum(e.amount for e in ordered if e.entry_type == DEBIT)
    total_credits = sum(e.amount for e in ordered if e.entry_type == CREDIT)
    return BalanceSummary(
        total_debits=total_debits,
        total_credits=total_credits,
        current_balance=total_debits - total_credits,
        entry_count=len(ordered),
        last_entry_date=ordered[-1].entry_date if ordered else None,
    )
