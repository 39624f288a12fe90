"""
Business overview figures computed straight from the ledgers.

Profit is reported per period in one of two modes, inferred from the data:
``itemized`` when at least one sale in the period has line items (profit is
the sum of entry profit, minus expenses), ``legacy`` otherwise (sales minus
purchases minus expenses). The two models do not agree, so a period holding
both kinds of sale is flagged with ``mixed_profit_mode`` instead of being
merged silently; legacy sales contribute no profit in itemized mode.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from khata.core.context import UserContext
from khata.core.exceptions import ValidationError
from khata.logger_config import logger
from khata.models.entity import Entity, EntityKind
from khata.models.ledger_entry import EntryKind, LedgerEntry
from khata.services.entry_builder import validate_date
from khata.utils.ledger_math import ZERO

LEGACY = "legacy"
ITEMIZED = "itemized"


@dataclass
class MonthBucket:
    month: str
    sales: Decimal = ZERO
    purchases: Decimal = ZERO
    expenses: Decimal = ZERO
    profit: Decimal = ZERO
    profit_mode: str = LEGACY
    mixed_profit_mode: bool = False


@dataclass
class TopEntity:
    entity_id: str
    name: str
    volume: Decimal


@dataclass
class AnalyticsSummary:
    date_from: Optional[str]
    date_to: Optional[str]
    sales: Decimal = ZERO
    collected: Decimal = ZERO
    purchases: Decimal = ZERO
    expenses: Decimal = ZERO
    receivables: Decimal = ZERO
    payables: Decimal = ZERO
    period_profit: Decimal = ZERO
    net_profit: Decimal = ZERO
    profit_mode: str = LEGACY
    mixed_profit_mode: bool = False
    monthly: List[MonthBucket] = field(default_factory=list)
    top_customers: List[TopEntity] = field(default_factory=list)


def _profit(sales: List[LedgerEntry], purchases: Decimal, expenses: Decimal):
    """(profit, mode, mixed) for one period's sales."""
    itemized = [s for s in sales if s.line_items]
    if not itemized:
        total_sales = sum((s.amount for s in sales), ZERO)
        return total_sales - purchases - expenses, LEGACY, False
    profit = sum((s.profit for s in itemized), ZERO)
    return profit - expenses, ITEMIZED, len(itemized) < len(sales)


def summarize(
    db: Session,
    ctx: UserContext,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
) -> AnalyticsSummary:
    if date_from is not None:
        validate_date(date_from)
    if date_to is not None:
        validate_date(date_to)
    if date_from and date_to and date_from > date_to:
        raise ValidationError("Start date must not be after end date")

    summary = AnalyticsSummary(date_from=date_from, date_to=date_to)
    try:
        rows = (db.query(LedgerEntry, Entity)
                .join(Entity, LedgerEntry.entity_id == Entity.id)
                .options(selectinload(LedgerEntry.line_items))
                .filter(
                    LedgerEntry.user_id == ctx.user_id,
                    LedgerEntry.is_deleted.is_(False),
                    Entity.is_deleted.is_(False),
                )
                .all())
    except SQLAlchemyError:
        logger.exception("Error while fetching analytics data")
        return summary

    def in_range(day: str) -> bool:
        return (not date_from or day >= date_from) and (not date_to or day <= date_to)

    all_sales = all_purchases = all_expenses = ZERO
    owed: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    period_sales: List[LedgerEntry] = []
    month_sales: Dict[str, List[LedgerEntry]] = defaultdict(list)
    buckets: Dict[str, MonthBucket] = {}
    customer_volume: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    names: Dict[str, str] = {}

    for entry, entity in rows:
        amount = entry.amount
        names[entity.id] = entity.name
        owed[entity.id] += amount if entry.kind.is_debit else -amount

        if entry.kind == EntryKind.sale:
            all_sales += amount
        elif entry.kind == EntryKind.purchase:
            all_purchases += amount
        elif entry.kind == EntryKind.expense:
            all_expenses += amount

        if not in_range(entry.date):
            continue

        month = entry.date[:7]
        bucket = buckets.setdefault(month, MonthBucket(month=month))
        if entry.kind == EntryKind.sale:
            summary.sales += amount
            bucket.sales += amount
            period_sales.append(entry)
            month_sales[month].append(entry)
            customer_volume[entity.id] += amount
        elif entry.kind == EntryKind.payment and entity.kind == EntityKind.customer:
            summary.collected += amount
        elif entry.kind == EntryKind.purchase:
            summary.purchases += amount
            bucket.purchases += amount
        elif entry.kind == EntryKind.expense:
            summary.expenses += amount
            bucket.expenses += amount

    kinds = {entity.id: entity.kind for _, entity in rows}
    receivables = sum((v for k, v in owed.items() if kinds[k] == EntityKind.customer), ZERO)
    payables = sum((v for k, v in owed.items() if kinds[k] == EntityKind.supplier), ZERO)
    summary.receivables = max(ZERO, receivables)
    summary.payables = max(ZERO, payables)
    summary.net_profit = all_sales - all_purchases - all_expenses

    summary.period_profit, summary.profit_mode, summary.mixed_profit_mode = _profit(
        period_sales, summary.purchases, summary.expenses
    )
    for month, bucket in buckets.items():
        bucket.profit, bucket.profit_mode, bucket.mixed_profit_mode = _profit(
            month_sales[month], bucket.purchases, bucket.expenses
        )
    summary.monthly = sorted(buckets.values(), key=lambda b: b.month)

    summary.top_customers = sorted(
        (TopEntity(entity_id=k, name=names.get(k, "Unknown"), volume=v) for k, v in customer_volume.items()),
        key=lambda t: t.volume,
        reverse=True,
    )[:5]

    if summary.mixed_profit_mode:
        logger.warning(f"Analytics {date_from}..{date_to}: itemized and manual sales mixed in one period")
    return summary
