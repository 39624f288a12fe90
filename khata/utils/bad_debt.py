import calendar
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from khata.core.config import settings
from khata.models.ledger_entry import EntryKind

ZERO = Decimal("0.00")


@dataclass(frozen=True)
class BadDebtResult:
    has_bad_debt: bool
    bad_debt_amount: Decimal
    oldest_unpaid_date: Optional[str]


def subtract_months(day: str, months: int) -> str:
    """
    Civil month subtraction on a YYYY-MM-DD string.

    The day of month is kept when it exists in the target month, otherwise it
    is clamped to that month's last day (2024-08-31 minus 6 months is
    2024-02-29).
    """
    year, month, dom = (int(part) for part in day.split("-"))
    index = year * 12 + (month - 1) - months
    new_year, new_month = divmod(index, 12)
    new_month += 1
    last_day = calendar.monthrange(new_year, new_month)[1]
    return f"{new_year:04d}-{new_month:02d}-{min(dom, last_day):02d}"


def compute_bad_debt(
    entries: Iterable,
    today: Optional[str] = None,
    months: Optional[int] = None,
) -> BadDebtResult:
    """
    FIFO-age a customer's receivable.

    All lifetime payments form one pool that pays off sales oldest first.
    Whatever a sale still owes once the pool runs dry counts as bad debt when
    the sale is strictly older than ``today`` minus ``months`` months. Only
    aggregate exposure is reported; payments are not tied to specific sales.

    Args:
        entries: the full, unpaginated ledger (sales and payments mixed)
        today: YYYY-MM-DD, defaults to the current date
        months: aging threshold, defaults to settings.BAD_DEBT_MONTHS
    """
    entries = [e for e in entries if not getattr(e, "is_deleted", False)]
    if not entries:
        return BadDebtResult(has_bad_debt=False, bad_debt_amount=ZERO, oldest_unpaid_date=None)

    cutoff = subtract_months(today or date.today().isoformat(),
                             settings.BAD_DEBT_MONTHS if months is None else months)

    available = sum(
        (Decimal(str(e.amount)) for e in entries if e.kind == EntryKind.payment),
        ZERO,
    )
    # sorted() is stable, so same-day sales keep their input order
    sales = sorted((e for e in entries if e.kind == EntryKind.sale), key=lambda e: e.date)

    bad_debt = ZERO
    oldest_unpaid = None
    for sale in sales:
        amount = Decimal(str(sale.amount))
        if available >= amount:
            available -= amount
            continue

        unpaid = amount - available
        available = ZERO
        if sale.date < cutoff:
            bad_debt += unpaid
            if oldest_unpaid is None:
                oldest_unpaid = sale.date

    return BadDebtResult(
        has_bad_debt=bad_debt > 0,
        bad_debt_amount=bad_debt,
        oldest_unpaid_date=oldest_unpaid,
    )
