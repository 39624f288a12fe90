"""
Recalculation of entity aggregates from their ledgers.

This is the repair path for drift left by edits (which do not touch the
aggregates) and by failed writes. It overwrites absolute values, so it must
not run while someone is entering transactions for the same entity.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Iterable, List, Optional

from sqlalchemy.orm import Session

from khata.core.atomic import run_atomic
from khata.core.config import settings
from khata.core.context import UserContext
from khata.logger_config import logger
from khata.models.entity import Entity, EntityKind
from khata.models.ledger_entry import LedgerEntry
from khata.repositories import entity_store
from khata.services.live_updates import publish_aggregate
from khata.utils.ledger_math import fold_entries


@dataclass
class RecalculationResult:
    entity_id: str
    name: str
    total_balance: Decimal
    total_debit: Decimal
    total_credit: Decimal
    changed: bool


@dataclass
class BatchReport:
    processed: int = 0
    succeeded: List[RecalculationResult] = field(default_factory=list)
    failed: List[dict] = field(default_factory=list)


ProgressCallback = Callable[[int, int, Entity, Optional[RecalculationResult]], None]


def _drifted(stored, fresh: Decimal) -> bool:
    return abs(Decimal(str(stored or 0)) - fresh) > settings.DRIFT_TOLERANCE


def stage_recalculation(
    db: Session,
    ctx: UserContext,
    entity_id: str,
    log_drift: bool = True,
) -> RecalculationResult:
    """
    Fold an entity's non-deleted entries and stage the totals on both copies
    without committing. Callers own the transaction.
    """
    entity = entity_store.get_entity(db, ctx, entity_id, include_deleted=True)
    entries = (db.query(LedgerEntry)
               .filter(LedgerEntry.entity_id == entity_id, LedgerEntry.is_deleted.is_(False))
               .all())
    totals = fold_entries(entries)

    copies = [("root", entity)]
    user_copy = entity_store.get_user_copy(db, ctx, entity_id)
    if user_copy is not None:
        copies.append(("user", user_copy))

    changed = user_copy is None
    for label, copy in copies:
        for name, fresh in (
            ("total_balance", totals.total_balance),
            ("total_debit", totals.total_debit),
            ("total_credit", totals.total_credit),
        ):
            stored = getattr(copy, name)
            if _drifted(stored, fresh):
                changed = True
                if log_drift:
                    logger.warning(
                        f"Drift on {entity_id} ({label} copy) {name}: stored {stored}, ledger {fresh}"
                    )

    entity_store.overwrite_aggregates(db, ctx, entity_id, {
        "total_balance": totals.total_balance,
        "total_debit": totals.total_debit,
        "total_credit": totals.total_credit,
        "last_activity_date": totals.last_activity_date or entity.last_activity_date,
        "reconciled_at": datetime.now(timezone.utc),
    })

    return RecalculationResult(
        entity_id=entity_id,
        name=entity.name,
        total_balance=totals.total_balance,
        total_debit=totals.total_debit,
        total_credit=totals.total_credit,
        changed=changed,
    )


def recalculate(db: Session, ctx: UserContext, entity_id: str) -> RecalculationResult:
    """
    Rebuild an entity's totals from every non-deleted entry and overwrite them
    on both copies. Running it twice in a row gives the same result.
    """
    entity_store.get_entity(db, ctx, entity_id, include_deleted=True)

    result = run_atomic(
        db, lambda: stage_recalculation(db, ctx, entity_id), description=f"Recalculate {entity_id}"
    )
    logger.info(
        f"Recalculated {result.name} ({entity_id}): debit={result.total_debit}, "
        f"credit={result.total_credit}, balance={result.total_balance}"
    )
    publish_aggregate(db, entity_id)
    return result


def recalculate_all(
    db: Session,
    ctx: UserContext,
    kinds: Iterable[EntityKind] = (EntityKind.customer, EntityKind.supplier),
    progress: Optional[ProgressCallback] = None,
) -> BatchReport:
    """
    Recalculate every live entity of the given kinds, kind by kind.

    Each entity is its own transaction; a failure is logged and recorded in
    the report and the batch moves on to the next entity.
    """
    kinds = list(kinds)
    entities: List[Entity] = []
    for kind in kinds:
        entities.extend(
            db.query(Entity)
            .filter(Entity.user_id == ctx.user_id, Entity.kind == kind, Entity.is_deleted.is_(False))
            .order_by(Entity.name)
            .all()
        )

    total = len(entities)
    logger.info(f"Recalculating {total} entities ({', '.join(k.value for k in kinds)}) for user {ctx.user_id}")

    report = BatchReport()
    for entity in entities:
        entity_id, name = entity.id, entity.name
        result = None
        try:
            result = recalculate(db, ctx, entity_id)
            report.succeeded.append(result)
        except Exception as e:
            db.rollback()
            logger.exception(f"Recalculation failed for {name} ({entity_id})")
            report.failed.append({"entity_id": entity_id, "name": name, "error": str(e)})
        report.processed += 1
        if progress is not None:
            progress(report.processed, total, entity, result)

    logger.info(
        f"Recalculation finished: {len(report.succeeded)} ok, {len(report.failed)} failed of {total}"
    )
    return report
