"""Folds over ledger entries shared by listing, export, reconciliation and analytics."""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence

from khata.models.ledger_entry import EntryKind

ZERO = Decimal("0.00")


@dataclass(frozen=True)
class LedgerTotals:
    total_debit: Decimal = ZERO
    total_credit: Decimal = ZERO
    last_activity_date: Optional[str] = None

    @property
    def total_balance(self) -> Decimal:
        return self.total_debit - self.total_credit


def signed_amount(kind, amount) -> Decimal:
    """+amount for sale/purchase/expense, -amount for payment."""
    return Decimal(str(amount)) * EntryKind(kind).sign


def fold_entries(entries: Iterable) -> LedgerTotals:
    """Sum non-deleted entries into fresh totals. Order does not matter."""
    debit = ZERO
    credit = ZERO
    last_date = None
    for entry in entries:
        if getattr(entry, "is_deleted", False):
            continue
        amount = Decimal(str(entry.amount))
        if EntryKind(entry.kind).is_debit:
            debit += amount
        else:
            credit += amount
        if entry.date and (last_date is None or entry.date > last_date):
            last_date = entry.date
    return LedgerTotals(total_debit=debit, total_credit=credit, last_activity_date=last_date)


def running_balances(current_balance, entries_newest_first: Sequence) -> List[Decimal]:
    """
    Walk a newest-first page backwards from the current aggregate.

    The newest row shows ``current_balance``; every older row is the row above
    it with that row's effect undone. If the aggregate has drifted, every value
    on the page is off by the same amount.
    """
    balance = Decimal(str(current_balance))
    balances = []
    for entry in entries_newest_first:
        balances.append(balance)
        balance -= signed_amount(entry.kind, entry.amount)
    return balances
