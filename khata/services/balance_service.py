# khata/services/balance_service.py

from decimal import Decimal
from typing import Dict

from sqlalchemy.orm import Session

from khata.core.context import UserContext
from khata.logger_config import logger
from khata.models.entity import Entity
from khata.models.ledger_entry import EntryKind, LedgerEntry
from khata.repositories import entity_store


def entry_delta(kind, amount) -> Dict[str, Decimal]:
    """
    Signed change an entry makes to its owner's aggregates.

    sale / purchase / expense: balance +amount, debit counter +amount
    payment:                   balance -amount, credit counter +amount
    """
    amount = Decimal(str(amount))
    if EntryKind(kind).is_debit:
        return {"total_balance": amount, "total_debit": amount}
    return {"total_balance": -amount, "total_credit": amount}


def negate(delta: Dict[str, Decimal]) -> Dict[str, Decimal]:
    return {field: -value for field, value in delta.items()}


def apply_entry(db: Session, ctx: UserContext, entity: Entity, entry: LedgerEntry) -> None:
    """Stage the entry's effect on both copies of its owner (create / restore)."""
    delta = entry_delta(entry.kind, entry.amount)
    entity_store.increment_aggregates(db, ctx, entity.id, delta, activity_date=entry.date)
    logger.debug(f"Applied {entry.kind.value} {entry.amount} to {entity.id}")


def reverse_entry(db: Session, ctx: UserContext, entity: Entity, entry: LedgerEntry) -> None:
    """Stage the exact opposite of apply_entry (soft delete)."""
    delta = negate(entry_delta(entry.kind, entry.amount))
    entity_store.increment_aggregates(db, ctx, entity.id, delta)
    logger.debug(f"Reversed {entry.kind.value} {entry.amount} on {entity.id}")


def adjust_for_edit(
    db: Session,
    ctx: UserContext,
    entity: Entity,
    entry: LedgerEntry,
    old_amount: Decimal,
) -> None:
    """Stage the difference between an edited amount and the one already applied."""
    difference = Decimal(str(entry.amount)) - Decimal(str(old_amount))
    if difference == 0:
        return
    entity_store.increment_aggregates(db, ctx, entity.id, entry_delta(entry.kind, difference))
    logger.info(f"Adjusted {entity.id} aggregates by {difference} for edited entry {entry.id}")
