"""
Every write to an entity goes through here so both physical copies move together.

The root copy (``entities``) owns the ledger; the user-scoped copy
(``user_entities``) backs the list screens. Nothing in this module commits:
callers stage writes and commit them as one batch with ``run_atomic``.
"""

from decimal import Decimal
from typing import Dict, Optional

from sqlalchemy import case, or_
from sqlalchemy.orm import Session

from khata.core.context import UserContext
from khata.core.exceptions import NotFoundError
from khata.logger_config import logger
from khata.models.entity import ID_PREFIX, Entity, EntityKind, UserEntity, generate_custom_id
from khata.models.ledger_entry import LedgerEntry, LineItem

AGGREGATE_FIELDS = ("total_balance", "total_debit", "total_credit")

# Fields copied verbatim between the two copies
MIRRORED_FIELDS = (
    "kind", "name", "phone", "total_balance", "total_debit", "total_credit",
    "last_activity_date", "is_deleted", "deleted_at", "reconciled_at",
)


def get_entity(
    db: Session,
    ctx: UserContext,
    entity_id: str,
    kind: Optional[EntityKind] = None,
    include_deleted: bool = False,
) -> Entity:
    """Root copy of an entity owned by the user; NotFoundError otherwise."""
    query = db.query(Entity).filter(Entity.id == entity_id, Entity.user_id == ctx.user_id)
    if kind is not None:
        query = query.filter(Entity.kind == kind)
    entity = query.first()

    if not entity or (entity.is_deleted and not include_deleted):
        logger.warning(f"Entity not found: {entity_id} (user {ctx.user_id})")
        raise NotFoundError(f"{kind.value if kind else 'Entity'} {entity_id} not found")
    return entity


def get_user_copy(db: Session, ctx: UserContext, entity_id: str) -> Optional[UserEntity]:
    return (db.query(UserEntity)
            .filter(UserEntity.user_id == ctx.user_id, UserEntity.entity_id == entity_id)
            .first())


def new_entity_id(db: Session, kind: EntityKind) -> str:
    entity_id = generate_custom_id(ID_PREFIX[kind])
    attempts = 0
    while db.query(Entity.id).filter(Entity.id == entity_id).first():
        entity_id = generate_custom_id(ID_PREFIX[kind])
        attempts += 1
        if attempts > 10:
            logger.error("Failed to generate unique entity ID after 10 attempts")
            raise ValueError("Failed to generate unique entity ID")
    return entity_id


def add_both(
    db: Session,
    ctx: UserContext,
    kind: EntityKind,
    name: str,
    phone: Optional[str] = None,
    entity_id: Optional[str] = None,
    **values,
) -> Entity:
    """Stage a new entity in both locations."""
    entity_id = entity_id or new_entity_id(db, kind)
    fields = {
        "kind": kind,
        "name": name,
        "phone": phone,
        "total_balance": Decimal("0.00"),
        "total_debit": Decimal("0.00"),
        "total_credit": Decimal("0.00"),
        "is_deleted": False,
    }
    fields.update(values)

    entity = Entity(id=entity_id, user_id=ctx.user_id, **fields)
    db.add(entity)
    db.add(UserEntity(user_id=ctx.user_id, entity_id=entity_id, **fields))
    db.flush()
    logger.debug(f"Staged entity {entity_id} ({kind.value}) in both copies")
    return entity


def _both_copies(db: Session, ctx: UserContext, entity_id: str):
    root = db.query(Entity).filter(Entity.id == entity_id, Entity.user_id == ctx.user_id)
    scoped = db.query(UserEntity).filter(
        UserEntity.user_id == ctx.user_id, UserEntity.entity_id == entity_id
    )
    return root, scoped


def _check_written(entity_id: str, root_rows: int, scoped_rows: int) -> None:
    if root_rows == 0:
        raise NotFoundError(f"Entity {entity_id} not found")
    if scoped_rows == 0:
        # Copies have diverged; recalculation recreates the missing one
        logger.warning(f"User-scoped copy missing for entity {entity_id}")


def set_fields(db: Session, ctx: UserContext, entity_id: str, **values) -> None:
    """Absolute (last-write-wins) update of plain fields on both copies."""
    root, scoped = _both_copies(db, ctx, entity_id)
    root_rows = root.update(values, synchronize_session=False)
    scoped_rows = scoped.update(values, synchronize_session=False)
    _check_written(entity_id, root_rows, scoped_rows)


def increment_aggregates(
    db: Session,
    ctx: UserContext,
    entity_id: str,
    deltas: Dict[str, Decimal],
    activity_date: Optional[str] = None,
) -> None:
    """
    Add signed deltas to the aggregate counters of both copies.

    Written as ``col = col + :delta`` so concurrent sessions merge
    additively instead of overwriting each other.
    """
    root, scoped = _both_copies(db, ctx, entity_id)
    for model, target in ((Entity, root), (UserEntity, scoped)):
        values = {
            getattr(model, field): getattr(model, field) + delta
            for field, delta in deltas.items()
            if field in AGGREGATE_FIELDS
        }
        if activity_date:
            column = model.last_activity_date
            values[column] = case(
                (or_(column.is_(None), column < activity_date), activity_date),
                else_=column,
            )
        if not values:
            continue
        rows = target.update(values, synchronize_session=False)
        if model is Entity and rows == 0:
            raise NotFoundError(f"Entity {entity_id} not found")
        if model is UserEntity and rows == 0:
            logger.warning(f"User-scoped copy missing for entity {entity_id}")

    logger.debug(f"Staged aggregate deltas for {entity_id}: {deltas}")


def overwrite_aggregates(
    db: Session,
    ctx: UserContext,
    entity_id: str,
    values: Dict[str, object],
) -> None:
    """
    Set (not increment) aggregates on both copies, recreating the user copy
    from the root when it has gone missing.
    """
    root, scoped = _both_copies(db, ctx, entity_id)
    root_rows = root.update(values, synchronize_session=False)
    if root_rows == 0:
        raise NotFoundError(f"Entity {entity_id} not found")

    if scoped.update(values, synchronize_session=False) == 0:
        entity = root.first()
        db.expire(entity)
        logger.warning(f"Recreating user-scoped copy of entity {entity_id}")
        db.add(UserEntity(
            user_id=ctx.user_id,
            entity_id=entity_id,
            **{field: getattr(entity, field) for field in MIRRORED_FIELDS},
        ))
        db.flush()


def delete_both(db: Session, ctx: UserContext, entity_id: str) -> int:
    """
    Physically remove an entity: child entries first, then the user copy,
    then the root, so a failure never leaves orphaned entries behind.
    Returns the number of entries removed.
    """
    entry_ids = [row.id for row in db.query(LedgerEntry.id).filter(LedgerEntry.entity_id == entity_id)]
    if entry_ids:
        db.query(LineItem).filter(LineItem.entry_id.in_(entry_ids)).delete(synchronize_session=False)
        db.query(LedgerEntry).filter(LedgerEntry.id.in_(entry_ids)).delete(synchronize_session=False)

    root, scoped = _both_copies(db, ctx, entity_id)
    scoped.delete(synchronize_session=False)
    if root.delete(synchronize_session=False) == 0:
        raise NotFoundError(f"Entity {entity_id} not found")

    logger.debug(f"Staged purge of entity {entity_id} with {len(entry_ids)} entries")
    return len(entry_ids)
