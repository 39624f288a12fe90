# khata/services/ledger_service.py

from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from khata.core.atomic import run_atomic
from khata.core.config import settings
from khata.core.context import UserContext
from khata.core.exceptions import NotFoundError, ValidationError
from khata.logger_config import logger
from khata.models.entity import Entity
from khata.models.ledger_entry import LedgerEntry, LineItem
from khata.repositories import entity_store
from khata.services import balance_service, entry_builder, inventory_service
from khata.services.entry_builder import ItemizedDetail
from khata.services.live_updates import publish_aggregate
from khata.utils.bad_debt import BadDebtResult, compute_bad_debt
from khata.utils.ledger_math import ZERO, fold_entries, running_balances, signed_amount

NEWEST_FIRST = (LedgerEntry.date.desc(), LedgerEntry.created_at.desc(), LedgerEntry.id.desc())
OLDEST_FIRST = (LedgerEntry.date.asc(), LedgerEntry.created_at.asc(), LedgerEntry.id.asc())


@dataclass
class LedgerRow:
    entry: LedgerEntry
    running_balance: Decimal


@dataclass
class EntryPage:
    rows: List[LedgerRow]
    total: int
    page: int
    page_size: int
    has_more: bool


@dataclass
class LedgerExport:
    entity: Entity
    date_from: Optional[str]
    date_to: Optional[str]
    opening_balance: Decimal
    closing_balance: Decimal
    total_debit: Decimal
    total_credit: Decimal
    rows: List[LedgerRow]


# ==================== QUERIES ====================

def get_entry(db: Session, ctx: UserContext, entry_id: int) -> LedgerEntry:
    """Any entry of the user, deleted or not. NotFoundError once purged."""
    entry = (db.query(LedgerEntry)
             .filter(LedgerEntry.id == entry_id, LedgerEntry.user_id == ctx.user_id)
             .first())
    if not entry:
        logger.warning(f"Ledger entry not found: {entry_id}")
        raise NotFoundError(f"Entry {entry_id} not found")
    return entry


def _active_entries(db: Session, entity_id: str):
    return db.query(LedgerEntry).filter(
        LedgerEntry.entity_id == entity_id,
        LedgerEntry.is_deleted.is_(False),
    )


def active_entries(db: Session, entity_id: str) -> List[LedgerEntry]:
    """Full, unpaginated ledger of an entity in chronological order."""
    return (_active_entries(db, entity_id)
            .options(selectinload(LedgerEntry.line_items))
            .order_by(*OLDEST_FIRST)
            .all())


def _signed_sum_of_newest(db: Session, entity_id: str, count: int) -> Decimal:
    if count <= 0:
        return ZERO
    rows = (_active_entries(db, entity_id)
            .with_entities(LedgerEntry.kind, LedgerEntry.amount)
            .order_by(*NEWEST_FIRST)
            .limit(count)
            .all())
    return sum((signed_amount(row.kind, row.amount) for row in rows), ZERO)


def list_entries(
    db: Session,
    ctx: UserContext,
    entity_id: str,
    page: int = 1,
    page_size: int = 25,
    order: str = "desc",
) -> EntryPage:
    """
    One page of an entity's ledger, each row with its running balance.

    Balances are reconstructed backwards from the stored aggregate: the newest
    entry of the whole ledger shows ``total_balance`` and older rows undo the
    rows above them. Pages further down start from the aggregate minus
    everything newer than the page.
    """
    entity = entity_store.get_entity(db, ctx, entity_id, include_deleted=True)
    if page < 1 or page_size < 1:
        raise ValidationError("page and page_size must be positive")
    if order not in ("desc", "asc"):
        raise ValidationError("order must be 'asc' or 'desc'")

    try:
        query = _active_entries(db, entity.id).options(selectinload(LedgerEntry.line_items))
        total = query.count()
        offset = (page - 1) * page_size

        if order == "desc":
            entries = query.order_by(*NEWEST_FIRST).offset(offset).limit(page_size).all()
            newer = _signed_sum_of_newest(db, entity.id, offset)
            balances = running_balances(entity.total_balance - newer, entries)
        else:
            entries = query.order_by(*OLDEST_FIRST).offset(offset).limit(page_size).all()
            newer = _signed_sum_of_newest(db, entity.id, total - offset - len(entries))
            newest_first = list(reversed(entries))
            balances = list(reversed(running_balances(entity.total_balance - newer, newest_first)))

        logger.debug(f"Ledger page {page} of {entity.id}: {len(entries)} of {total} entries")
        return EntryPage(
            rows=[LedgerRow(entry=e, running_balance=b) for e, b in zip(entries, balances)],
            total=total,
            page=page,
            page_size=page_size,
            has_more=offset + len(entries) < total,
        )
    except SQLAlchemyError:
        logger.exception(f"Error fetching ledger for {entity_id}")
        return EntryPage(rows=[], total=0, page=page, page_size=page_size, has_more=False)


# ==================== CREATE / EDIT ====================

def _resolve_line_items(db: Session, ctx: UserContext, items) -> List[dict]:
    """Fill name and prices of cart lines from their products."""
    resolved = []
    for item in items:
        item = dict(item)
        product_id = item.get("product_id")
        if product_id:
            product = inventory_service.require_product(db, ctx, product_id)
            if not item.get("name"):
                item["name"] = product.name
            if item.get("unit_price") is None:
                item["unit_price"] = product.unit_price
            if item.get("unit_cost") is None:
                item["unit_cost"] = product.unit_cost
        resolved.append(item)
    return resolved


def _line_item_rows(drafts) -> List[LineItem]:
    return [
        LineItem(
            position=position,
            product_id=draft.product_id,
            name=draft.name,
            quantity=draft.quantity,
            unit_price=draft.unit_price,
            unit_cost=draft.unit_cost,
            line_total=draft.line_total,
        )
        for position, draft in enumerate(drafts)
    ]


def add_entry(
    db: Session,
    ctx: UserContext,
    entity_id: str,
    kind,
    date: Optional[str],
    amount=None,
    line_items=None,
    note: Optional[str] = None,
) -> LedgerEntry:
    """
    Record a transaction.

    The entry row, the increments on both copies of the owner and any stock
    decrement are committed as a single batch.
    """
    entity = entity_store.get_entity(db, ctx, entity_id)
    resolved = _resolve_line_items(db, ctx, line_items) if line_items else None
    draft = entry_builder.build_entry(
        entity.kind, kind, date, amount=amount, line_items=resolved, note=note
    )

    logger.info(f"Adding {draft.kind.value} of {draft.amount} on {draft.date} to {entity_id}")

    def work() -> LedgerEntry:
        entry = LedgerEntry(
            entity_id=entity.id,
            user_id=ctx.user_id,
            kind=draft.kind,
            amount=draft.amount,
            date=draft.date,
            note=draft.note,
            profit=draft.profit,
            parent_name=entity.name,
            is_deleted=False,
        )
        entry.line_items = _line_item_rows(draft.detail.line_items)
        db.add(entry)
        db.flush()

        balance_service.apply_entry(db, ctx, entity, entry)
        inventory_service.consume_stock(db, ctx, draft.detail.line_items)
        return entry

    entry = run_atomic(db, work, description=f"Add {draft.kind.value} to {entity_id}")
    db.refresh(entry)

    logger.info(f"Entry {entry.id} added to {entity_id}")
    publish_aggregate(db, entity_id)
    return entry


def edit_entry(
    db: Session,
    ctx: UserContext,
    entry_id: int,
    amount=None,
    date: Optional[str] = None,
    note: Optional[str] = None,
    line_items=None,
) -> LedgerEntry:
    """
    Change amount, date, note or cart of an entry. The kind never changes.

    Unless ADJUST_AGGREGATE_ON_EDIT is set, a changed amount is NOT pushed to
    the owner's aggregates; the stored balance drifts until the entity is
    recalculated.
    """
    entry = get_entry(db, ctx, entry_id)
    if entry.is_deleted:
        raise ValidationError("Restore the entry before editing it")
    entity = entity_store.get_entity(db, ctx, entry.entity_id, include_deleted=True)

    if date is not None:
        entry_builder.validate_date(date)

    new_detail = None
    if amount is not None or line_items is not None:
        if amount is not None and entry.is_itemized:
            raise ValidationError("This sale has line items; edit the items instead")
        resolved = _resolve_line_items(db, ctx, line_items) if line_items else None
        new_detail = entry_builder.build_detail(entry.kind, amount=amount, line_items=resolved)

    old_amount = entry.amount

    def work() -> LedgerEntry:
        target = get_entry(db, ctx, entry_id)
        if date is not None:
            target.date = date
        if note is not None:
            target.note = note

        if new_detail is not None:
            target.amount = new_detail.amount
            target.profit = new_detail.profit
            if isinstance(new_detail, ItemizedDetail):
                inventory_service.release_stock(db, ctx, list(target.line_items))
                target.line_items = _line_item_rows(new_detail.line_items)
                inventory_service.consume_stock(db, ctx, new_detail.line_items)
        db.flush()

        if new_detail is not None and new_detail.amount != old_amount:
            if settings.ADJUST_AGGREGATE_ON_EDIT:
                balance_service.adjust_for_edit(db, ctx, entity, target, old_amount)
            else:
                logger.warning(
                    f"Entry {entry_id} amount edited {old_amount} -> {new_detail.amount}; "
                    f"aggregates of {entity.id} not adjusted until recalculated"
                )
        if date is not None:
            entity_store.increment_aggregates(db, ctx, entity.id, {}, activity_date=date)
        return target

    entry = run_atomic(db, work, description=f"Edit entry {entry_id}")
    db.refresh(entry)

    logger.info(f"Entry {entry_id} updated")
    publish_aggregate(db, entity.id)
    return entry


# ==================== REPORTS ====================

def export_range(
    db: Session,
    ctx: UserContext,
    entity_id: str,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
) -> LedgerExport:
    """
    Rows and totals for a ledger statement between two dates (inclusive).

    The opening balance folds every entry dated before ``date_from``; rows
    carry their running balance from there, in chronological order.
    """
    entity = entity_store.get_entity(db, ctx, entity_id, include_deleted=True)
    if date_from is not None:
        entry_builder.validate_date(date_from)
    if date_to is not None:
        entry_builder.validate_date(date_to)
    if date_from and date_to and date_from > date_to:
        raise ValidationError("Start date must not be after end date")

    entries = active_entries(db, entity.id)
    before = [e for e in entries if date_from and e.date < date_from]
    in_range = [
        e for e in entries
        if (not date_from or e.date >= date_from) and (not date_to or e.date <= date_to)
    ]

    opening = fold_entries(before).total_balance
    balance = opening
    rows = []
    for entry in in_range:
        balance += signed_amount(entry.kind, entry.amount)
        rows.append(LedgerRow(entry=entry, running_balance=balance))

    totals = fold_entries(in_range)
    logger.info(f"Exported {len(rows)} rows of {entity_id} ({date_from} .. {date_to})")
    return LedgerExport(
        entity=entity,
        date_from=date_from,
        date_to=date_to,
        opening_balance=opening,
        closing_balance=balance,
        total_debit=totals.total_debit,
        total_credit=totals.total_credit,
        rows=rows,
    )


def bad_debt_for(
    db: Session,
    ctx: UserContext,
    entity_id: str,
    today: Optional[str] = None,
) -> BadDebtResult:
    """Bad-debt aging over the entity's full ledger, not its aggregate."""
    entity = entity_store.get_entity(db, ctx, entity_id, include_deleted=True)
    return compute_bad_debt(active_entries(db, entity.id), today=today)
