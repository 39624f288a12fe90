from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import Session, selectinload

from khata.core.atomic import run_atomic
from khata.core.context import UserContext
from khata.core.exceptions import ValidationError
from khata.logger_config import logger
from khata.models.entity import Entity, EntityKind
from khata.models.ledger_entry import LedgerEntry, LineItem
from khata.models.product import Product
from khata.repositories import entity_store
from khata.services import entry_builder, reconciliation_service
from khata.services.live_updates import publish_aggregate

BACKUP_VERSION = 1

SECTIONS = {
    "customers": EntityKind.customer,
    "suppliers": EntityKind.supplier,
    "expenses": EntityKind.expense,
}


@dataclass
class ImportReport:
    entities: int = 0
    entries: int = 0
    products: int = 0
    recalculated: List[str] = field(default_factory=list)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_dt(value: Optional[str], label: str = "timestamp") -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        raise ValidationError(f"Backup {label} is not an ISO timestamp: {value}")


def _record_id(record, label: str) -> str:
    if not isinstance(record, dict) or not record.get("id"):
        raise ValidationError(f"Backup {label} is missing its id")
    return str(record["id"])


def _entry_to_dict(entry: LedgerEntry) -> dict:
    return {
        "id": entry.id,
        "kind": entry.kind.value,
        "amount": str(entry.amount),
        "date": entry.date,
        "note": entry.note,
        "profit": str(entry.profit),
        "is_deleted": entry.is_deleted,
        "deleted_at": _iso(entry.deleted_at),
        "created_at": _iso(entry.created_at),
        "line_items": [
            {
                "product_id": item.product_id,
                "name": item.name,
                "quantity": item.quantity,
                "unit_price": str(item.unit_price),
                "unit_cost": str(item.unit_cost),
            }
            for item in entry.line_items
        ],
    }


def export_backup(db: Session, ctx: UserContext) -> dict:
    """Everything the user owns, deleted rows included, as a JSON-ready dict."""
    document = {
        "version": BACKUP_VERSION,
        "exported_at": datetime.now(timezone.utc).isoformat(),
        "user_id": ctx.user_id,
        "products": [],
    }

    for section, kind in SECTIONS.items():
        entities = (db.query(Entity)
                    .options(selectinload(Entity.entries).selectinload(LedgerEntry.line_items))
                    .filter(Entity.user_id == ctx.user_id, Entity.kind == kind)
                    .order_by(Entity.name)
                    .all())
        document[section] = [
            {
                "id": entity.id,
                "data": {
                    "name": entity.name,
                    "phone": entity.phone,
                    "total_balance": str(entity.total_balance),
                    "total_debit": str(entity.total_debit),
                    "total_credit": str(entity.total_credit),
                    "last_activity_date": entity.last_activity_date,
                    "is_deleted": entity.is_deleted,
                    "deleted_at": _iso(entity.deleted_at),
                },
                "ledger": [_entry_to_dict(e) for e in sorted(entity.entries, key=lambda e: e.id)],
            }
            for entity in entities
        ]
        logger.info(f"Exported {len(entities)} {section}")

    products = db.query(Product).filter(Product.user_id == ctx.user_id).order_by(Product.name).all()
    document["products"] = [
        {
            "id": p.id,
            "name": p.name,
            "unit_price": str(p.unit_price),
            "unit_cost": str(p.unit_cost),
            "quantity_on_hand": p.quantity_on_hand,
        }
        for p in products
    ]
    return document


def _upsert_entity(db: Session, ctx: UserContext, kind: EntityKind, record: dict) -> str:
    entity_id = _record_id(record, kind.value)
    data = record.get("data") or {}
    if not isinstance(data, dict):
        raise ValidationError(f"Backup {kind.value} {entity_id} has malformed data")
    values = {
        "name": data.get("name") or "Unknown",
        "phone": data.get("phone"),
        "is_deleted": bool(data.get("is_deleted", False)),
        "deleted_at": _parse_dt(data.get("deleted_at"), f"{kind.value} {entity_id} deleted_at"),
    }
    last_activity = data.get("last_activity_date")
    if last_activity:
        entry_builder.validate_date(last_activity)

    owner = db.query(Entity.user_id, Entity.kind).filter(Entity.id == entity_id).first()
    if owner is None:
        name = values.pop("name")
        phone = values.pop("phone")
        entity_store.add_both(db, ctx, kind, name=name, phone=phone, entity_id=entity_id,
                              last_activity_date=last_activity, **values)
    elif owner.user_id != ctx.user_id or owner.kind != kind:
        raise ValidationError(f"Backup entity {entity_id} clashes with an existing record")
    else:
        entity_store.set_fields(db, ctx, entity_id, **values)
    return entity_id


def _upsert_entry(db: Session, ctx: UserContext, kind: EntityKind, entity_id: str, record: dict) -> None:
    if not isinstance(record, dict):
        raise ValidationError(f"Backup ledger of {entity_id} holds a malformed entry")
    entry_kind = entry_builder.validate_kind(kind, record.get("kind"))
    day = entry_builder.validate_date(record.get("date"))
    items = record.get("line_items") or []
    detail = entry_builder.build_detail(
        entry_kind,
        amount=None if items else record.get("amount"),
        line_items=items,
    )
    deleted_at = _parse_dt(record.get("deleted_at"), f"entry deleted_at in {entity_id}")

    entry = None
    if record.get("id") is not None:
        entry_id = entry_builder.to_whole_number(record["id"], f"Entry id in {entity_id}")
        entry = (db.query(LedgerEntry)
                 .filter(LedgerEntry.id == entry_id,
                         LedgerEntry.entity_id == entity_id,
                         LedgerEntry.user_id == ctx.user_id)
                 .first())
    if entry is None:
        # Ids are reassigned for entries this database has never seen
        entry = LedgerEntry(entity_id=entity_id, user_id=ctx.user_id, kind=entry_kind)
        db.add(entry)

    entry.amount = detail.amount
    entry.profit = detail.profit
    entry.date = day
    entry.note = record.get("note")
    entry.is_deleted = bool(record.get("is_deleted", False))
    entry.deleted_at = deleted_at
    entry.line_items = [
        LineItem(
            position=position,
            product_id=item.product_id,
            name=item.name,
            quantity=item.quantity,
            unit_price=item.unit_price,
            unit_cost=item.unit_cost,
            line_total=item.line_total,
        )
        for position, item in enumerate(detail.line_items)
    ]


def _upsert_product(db: Session, ctx: UserContext, record: dict) -> None:
    product_id = _record_id(record, "product")
    label = f"Product {product_id}"
    unit_price = entry_builder.to_decimal(record.get("unit_price") or 0, f"{label} unit price")
    unit_cost = entry_builder.to_decimal(record.get("unit_cost") or 0, f"{label} unit cost")
    on_hand = entry_builder.to_whole_number(record.get("quantity_on_hand") or 0, f"{label} quantity")

    product = db.query(Product).filter(Product.id == product_id).first()
    if product is None:
        product = Product(id=product_id, user_id=ctx.user_id)
        db.add(product)
    elif product.user_id != ctx.user_id:
        raise ValidationError(f"Backup product {product_id} clashes with an existing record")
    product.name = record.get("name") or "Unknown"
    product.unit_price = unit_price
    product.unit_cost = unit_cost
    product.quantity_on_hand = on_hand


def import_backup(db: Session, ctx: UserContext, document: dict) -> ImportReport:
    """
    Restore a backup made by export_backup.

    Entities, entries and products are upserted by id, and every imported
    entity's totals are rebuilt from its ledger, all in one batch. Stored
    totals in the file are ignored. Any malformed record rejects the whole
    import.
    """
    if not isinstance(document, dict):
        raise ValidationError("Backup must be a JSON object")
    if document.get("version") != BACKUP_VERSION:
        raise ValidationError(f"Unsupported backup version: {document.get('version')}")

    def work() -> ImportReport:
        report = ImportReport()
        for record in document.get("products") or []:
            _upsert_product(db, ctx, record)
            report.products += 1

        for section, kind in SECTIONS.items():
            for record in document.get(section) or []:
                entity_id = _upsert_entity(db, ctx, kind, record)
                db.flush()
                for entry_record in record.get("ledger") or []:
                    _upsert_entry(db, ctx, kind, entity_id, entry_record)
                    report.entries += 1
                report.entities += 1
                report.recalculated.append(entity_id)
        db.flush()

        for entity_id in report.recalculated:
            reconciliation_service.stage_recalculation(db, ctx, entity_id, log_drift=False)
        return report

    report = run_atomic(db, work, description="Import backup")
    logger.info(
        f"Imported {report.entities} entities, {report.entries} entries, {report.products} products"
    )

    for entity_id in report.recalculated:
        publish_aggregate(db, entity_id)
    return report
