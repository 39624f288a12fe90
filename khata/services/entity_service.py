from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from khata.core.atomic import run_atomic
from khata.core.context import UserContext
from khata.core.exceptions import ValidationError
from khata.logger_config import logger
from khata.models.entity import Entity, EntityKind, UserEntity
from khata.repositories import entity_store


def get_entity(db: Session, ctx: UserContext, kind: EntityKind, entity_id: str) -> Entity:
    """Root copy of a live entity (the one the ledger screen reads)."""
    return entity_store.get_entity(db, ctx, entity_id, kind=kind)


def get_all_entities(
    db: Session,
    ctx: UserContext,
    kind: EntityKind,
    skip: int = 0,
    limit: int = 100,
    search: Optional[str] = None,
) -> tuple[List[UserEntity], int]:
    """List screen rows, read from the user-scoped copies."""
    query = db.query(UserEntity).filter(
        UserEntity.user_id == ctx.user_id,
        UserEntity.kind == kind,
        UserEntity.is_deleted.is_(False),
    )

    if search:
        search_term = f"%{search}%"
        query = query.filter(
            or_(
                UserEntity.name.ilike(search_term),
                UserEntity.phone.ilike(search_term),
                UserEntity.entity_id.ilike(search_term),
            )
        )
        logger.debug(f"Searching {kind.value} with term: {search}")

    try:
        total = query.count()
        rows = query.order_by(UserEntity.name).offset(skip).limit(limit).all()
    except SQLAlchemyError:
        logger.exception(f"Error fetching {kind.value} list for user {ctx.user_id}")
        return [], 0
    return rows, total


def create_entity(
    db: Session,
    ctx: UserContext,
    kind: EntityKind,
    name: str,
    phone: Optional[str] = None,
) -> Entity:
    """Create a customer, supplier or expense category in both locations."""
    name = (name or "").strip()
    if not name:
        raise ValidationError("Name is required")

    entity = run_atomic(
        db,
        lambda: entity_store.add_both(db, ctx, kind, name=name, phone=phone),
        description=f"Create {kind.value}",
    )
    db.refresh(entity)
    logger.info(f"{kind.value} {entity.id} created for user {ctx.user_id}")
    return entity


def update_entity(
    db: Session,
    ctx: UserContext,
    kind: EntityKind,
    entity_id: str,
    name: Optional[str] = None,
    phone: Optional[str] = None,
) -> Entity:
    """Rename / change phone on both copies. Aggregates are never touched here."""
    entity = entity_store.get_entity(db, ctx, entity_id, kind=kind)

    values = {}
    if name is not None:
        if not name.strip():
            raise ValidationError("Name is required")
        values["name"] = name.strip()
    if phone is not None:
        values["phone"] = phone
    if not values:
        return entity

    run_atomic(
        db,
        lambda: entity_store.set_fields(db, ctx, entity_id, **values),
        description=f"Update {kind.value} {entity_id}",
    )
    db.refresh(entity)
    logger.info(f"{kind.value} {entity_id} updated")
    return entity
