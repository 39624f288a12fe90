# khata/services/recycle_bin_service.py

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from khata.core.atomic import run_atomic
from khata.core.config import settings
from khata.core.context import UserContext
from khata.core.exceptions import ValidationError
from khata.logger_config import logger
from khata.models.entity import Entity, EntityKind, UserEntity
from khata.models.ledger_entry import EntryKind, LedgerEntry
from khata.repositories import entity_store
from khata.services import balance_service, inventory_service
from khata.services.ledger_service import get_entry
from khata.services.live_updates import publish_aggregate

PARENT = "parent"
ENTRY = "entry"


@dataclass
class DeletedItem:
    id: str
    item_type: str
    entity_kind: EntityKind
    name: str
    parent_id: Optional[str] = None
    entry_kind: Optional[EntryKind] = None
    amount: Optional[Decimal] = None
    date: Optional[str] = None
    deleted_at: Optional[datetime] = None


@dataclass
class PurgeReport:
    entities: int = 0
    entries: int = 0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ==================== ENTRIES ====================

def delete_entry(db: Session, ctx: UserContext, entry_id: int, now: Optional[datetime] = None) -> LedgerEntry:
    """
    Move an entry to the recycle bin.

    In one batch: flag the row, undo its effect on both copies of the owner
    and put any sold quantities back in stock. The row itself is kept.
    """
    entry = get_entry(db, ctx, entry_id)
    if entry.is_deleted:
        raise ValidationError("Entry is already in the recycle bin")
    entity = entity_store.get_entity(db, ctx, entry.entity_id, include_deleted=True)
    stamp = now or _utcnow()

    def work() -> LedgerEntry:
        target = get_entry(db, ctx, entry_id)
        target.is_deleted = True
        target.deleted_at = stamp
        target.parent_name = entity.name
        db.flush()

        balance_service.reverse_entry(db, ctx, entity, target)
        inventory_service.release_stock(db, ctx, list(target.line_items))
        return target

    entry = run_atomic(db, work, description=f"Delete entry {entry_id}")
    logger.info(f"Entry {entry_id} moved to recycle bin")
    publish_aggregate(db, entity.id)
    return entry


def restore_entry(db: Session, ctx: UserContext, entry_id: int) -> LedgerEntry:
    """Bring a deleted entry back and re-apply its original effect."""
    entry = get_entry(db, ctx, entry_id)
    if not entry.is_deleted:
        raise ValidationError("Entry is not in the recycle bin")
    entity = entity_store.get_entity(db, ctx, entry.entity_id, include_deleted=True)
    if entity.is_deleted:
        raise ValidationError(f"Restore {entity.name} before restoring its entries")

    def work() -> LedgerEntry:
        target = get_entry(db, ctx, entry_id)
        target.is_deleted = False
        target.deleted_at = None
        db.flush()

        balance_service.apply_entry(db, ctx, entity, target)
        inventory_service.consume_stock(db, ctx, list(target.line_items))
        return target

    entry = run_atomic(db, work, description=f"Restore entry {entry_id}")
    db.refresh(entry)
    logger.info(f"Entry {entry_id} restored")
    publish_aggregate(db, entity.id)
    return entry


def purge_entry(db: Session, ctx: UserContext, entry_id: int) -> None:
    """Permanently remove a deleted entry. Its balance effect is already gone."""
    entry = get_entry(db, ctx, entry_id)
    if not entry.is_deleted:
        raise ValidationError("Only entries in the recycle bin can be deleted permanently")

    def work() -> None:
        db.delete(get_entry(db, ctx, entry_id))
        db.flush()

    run_atomic(db, work, description=f"Purge entry {entry_id}")
    logger.info(f"Entry {entry_id} permanently deleted")


# ==================== PARENTS ====================

def delete_entity(db: Session, ctx: UserContext, entity_id: str, now: Optional[datetime] = None) -> None:
    """Hide a customer / supplier / expense category in both copies."""
    entity_store.get_entity(db, ctx, entity_id)
    stamp = now or _utcnow()

    def work() -> None:
        entity_store.set_fields(db, ctx, entity_id, is_deleted=True, deleted_at=stamp)

    run_atomic(db, work, description=f"Delete entity {entity_id}")
    logger.info(f"Entity {entity_id} moved to recycle bin")


def restore_entity(db: Session, ctx: UserContext, entity_id: str) -> None:
    entity = entity_store.get_entity(db, ctx, entity_id, include_deleted=True)
    if not entity.is_deleted:
        raise ValidationError(f"{entity.name} is not in the recycle bin")

    def work() -> None:
        entity_store.set_fields(db, ctx, entity_id, is_deleted=False, deleted_at=None)

    run_atomic(db, work, description=f"Restore entity {entity_id}")
    logger.info(f"Entity {entity_id} restored")


def purge_entity(db: Session, ctx: UserContext, entity_id: str) -> PurgeReport:
    """Permanently remove a deleted entity, its entries and both copies."""
    entity = entity_store.get_entity(db, ctx, entity_id, include_deleted=True)
    if not entity.is_deleted:
        raise ValidationError("Only items in the recycle bin can be deleted permanently")
    return _purge(db, ctx, [entity_id], [], description=f"Purge entity {entity_id}")


# ==================== BIN ====================

def _purge(
    db: Session,
    ctx: UserContext,
    entity_ids: Sequence[str],
    entry_ids: Sequence[int],
    description: str,
) -> PurgeReport:
    def work() -> PurgeReport:
        report = PurgeReport()
        for entry_id in entry_ids:
            db.delete(get_entry(db, ctx, entry_id))
            report.entries += 1
        db.flush()
        for entity_id in entity_ids:
            report.entries += entity_store.delete_both(db, ctx, entity_id)
            report.entities += 1
        return report

    report = run_atomic(db, work, description=description)
    logger.info(f"{description}: removed {report.entities} entities, {report.entries} entries")
    return report


def _deleted_entity_ids(db: Session, ctx: UserContext, cutoff: Optional[datetime] = None) -> List[str]:
    query = db.query(Entity.id).filter(Entity.user_id == ctx.user_id, Entity.is_deleted.is_(True))
    if cutoff is not None:
        query = query.filter(Entity.deleted_at <= cutoff)
    return [row.id for row in query]


def _deleted_entry_ids(
    db: Session,
    ctx: UserContext,
    skip_entities: Sequence[str],
    cutoff: Optional[datetime] = None,
) -> List[int]:
    query = db.query(LedgerEntry.id).filter(
        LedgerEntry.user_id == ctx.user_id,
        LedgerEntry.is_deleted.is_(True),
    )
    if cutoff is not None:
        query = query.filter(LedgerEntry.deleted_at <= cutoff)
    if skip_entities:
        query = query.filter(LedgerEntry.entity_id.notin_(skip_entities))
    return [row.id for row in query]


def auto_purge(db: Session, ctx: UserContext, now: Optional[datetime] = None) -> PurgeReport:
    """Permanently remove everything that has sat in the bin for PURGE_AFTER_DAYS."""
    cutoff = (now or _utcnow()) - timedelta(days=settings.PURGE_AFTER_DAYS)
    entity_ids = _deleted_entity_ids(db, ctx, cutoff)
    entry_ids = _deleted_entry_ids(db, ctx, entity_ids, cutoff)
    if not entity_ids and not entry_ids:
        return PurgeReport()

    logger.info(f"Auto cleanup for user {ctx.user_id}: items deleted before {cutoff.isoformat()}")
    return _purge(db, ctx, entity_ids, entry_ids, description="Auto purge")


def empty_bin(db: Session, ctx: UserContext) -> PurgeReport:
    entity_ids = _deleted_entity_ids(db, ctx)
    entry_ids = _deleted_entry_ids(db, ctx, entity_ids)
    return _purge(db, ctx, entity_ids, entry_ids, description="Empty recycle bin")


def list_deleted(
    db: Session,
    ctx: UserContext,
    kind: Optional[EntityKind] = None,
    item_type: Optional[str] = None,
) -> List[DeletedItem]:
    """
    Deleted parents and deleted entries, newest deletion first.

    Entry rows carry their owner's name so they can be shown even when the
    owner is in the bin as well.
    """
    items: List[DeletedItem] = []

    if item_type in (None, PARENT):
        query = db.query(UserEntity).filter(
            UserEntity.user_id == ctx.user_id,
            UserEntity.is_deleted.is_(True),
        )
        if kind is not None:
            query = query.filter(UserEntity.kind == kind)
        items.extend(
            DeletedItem(
                id=row.entity_id,
                item_type=PARENT,
                entity_kind=row.kind,
                name=row.name,
                deleted_at=row.deleted_at,
            )
            for row in query
        )

    if item_type in (None, ENTRY):
        query = (db.query(LedgerEntry, Entity)
                 .join(Entity, LedgerEntry.entity_id == Entity.id)
                 .filter(LedgerEntry.user_id == ctx.user_id, LedgerEntry.is_deleted.is_(True)))
        if kind is not None:
            query = query.filter(Entity.kind == kind)
        items.extend(
            DeletedItem(
                id=str(entry.id),
                item_type=ENTRY,
                entity_kind=entity.kind,
                name=entry.parent_name or entity.name or "Unknown",
                parent_id=entry.entity_id,
                entry_kind=entry.kind,
                amount=entry.amount,
                date=entry.date,
                deleted_at=entry.deleted_at,
            )
            for entry, entity in query
        )

    items.sort(key=lambda item: item.deleted_at.isoformat() if item.deleted_at else "", reverse=True)
    return items
