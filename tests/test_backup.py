import json
from decimal import Decimal

import pytest

from khata.core.exceptions import ValidationError
from khata.models.entity import Entity, EntityKind
from khata.models.ledger_entry import EntryKind, LedgerEntry
from khata.services import (
    backup_service,
    inventory_service,
    ledger_service,
    reconciliation_service,
    recycle_bin_service,
)


def test_export_lists_everything_the_user_owns(db, ctx, other_ctx, make_entity, add):
    product = inventory_service.create_product(
        db, ctx, name="Cable", unit_price=Decimal("100"), unit_cost=Decimal("60"), quantity_on_hand=4
    )
    customer = make_entity(EntityKind.customer, "Ahmed")
    add(customer, EntryKind.sale, "2024-01-10", line_items=[{"product_id": product.id, "quantity": 1}])
    gone = add(customer, EntryKind.payment, "2024-01-11", amount=30)
    recycle_bin_service.delete_entry(db, ctx, gone.id)
    make_entity(EntityKind.customer, "Someone else", user=other_ctx)

    document = backup_service.export_backup(db, ctx)
    json.dumps(document)

    assert document["version"] == backup_service.BACKUP_VERSION
    assert [c["data"]["name"] for c in document["customers"]] == ["Ahmed"]
    ledger = document["customers"][0]["ledger"]
    assert [e["kind"] for e in ledger] == ["sale", "payment"]
    assert ledger[0]["line_items"][0]["product_id"] == product.id
    assert ledger[1]["is_deleted"] is True
    assert document["products"][0]["quantity_on_hand"] == 3


def test_import_into_empty_account_rebuilds_totals(db, ctx, other_ctx, make_entity, add):
    customer = make_entity(EntityKind.customer, "Ahmed")
    add(customer, EntryKind.sale, "2024-01-10", amount=500)
    add(customer, EntryKind.payment, "2024-01-11", amount=200)
    document = backup_service.export_backup(db, ctx)

    # Same document, different ids so nothing clashes with the source rows
    for record in document["customers"]:
        record["id"] = record["id"] + "X"
        record["data"]["total_balance"] = "99999"
        for entry in record["ledger"]:
            entry["id"] = None
    report = backup_service.import_backup(db, other_ctx, document)

    assert (report.entities, report.entries) == (1, 2)
    restored = db.query(Entity).filter(Entity.user_id == other_ctx.user_id).one()
    assert restored.total_balance == Decimal("300")
    assert restored.total_debit == Decimal("500")
    assert db.query(LedgerEntry).filter(LedgerEntry.user_id == other_ctx.user_id).count() == 2


def test_reimport_updates_existing_rows(db, ctx, make_entity, add):
    customer = make_entity(EntityKind.customer, "Ahmed")
    sale = add(customer, EntryKind.sale, "2024-01-10", amount=500)
    document = backup_service.export_backup(db, ctx)
    document["customers"][0]["data"]["name"] = "Ahmed & Sons"
    document["customers"][0]["ledger"][0]["amount"] = "650.00"

    backup_service.import_backup(db, ctx, document)

    db.refresh(customer)
    assert customer.name == "Ahmed & Sons"
    assert customer.total_balance == Decimal("650")
    assert ledger_service.get_entry(db, ctx, sale.id).amount == Decimal("650")
    assert db.query(LedgerEntry).count() == 1


def test_import_rejects_unknown_version(db, ctx):
    with pytest.raises(ValidationError):
        backup_service.import_backup(db, ctx, {"version": 99})


def test_import_is_all_or_nothing(db, ctx, other_ctx):
    document = {
        "version": backup_service.BACKUP_VERSION,
        "customers": [
            {"id": "CUS-GOOD0001", "data": {"name": "Good"}, "ledger": [
                {"kind": "sale", "date": "2024-01-01", "amount": "10"},
            ]},
            {"id": "CUS-BAD00001", "data": {"name": "Bad"}, "ledger": [
                {"kind": "sale", "date": "01/01/2024", "amount": "10"},
            ]},
        ],
    }
    with pytest.raises(ValidationError):
        backup_service.import_backup(db, other_ctx, document)
    assert db.query(Entity).count() == 0


def _document(*customers):
    return {"version": backup_service.BACKUP_VERSION, "customers": list(customers)}


def test_fractional_quantity_is_rejected(db, other_ctx):
    document = _document({"id": "CUS-FRAC0001", "data": {"name": "Frac"}, "ledger": [
        {"kind": "sale", "date": "2024-01-01",
         "line_items": [{"name": "Cable", "quantity": 1.5, "unit_price": "100"}]},
    ]})
    with pytest.raises(ValidationError, match="whole number"):
        backup_service.import_backup(db, other_ctx, document)
    assert db.query(Entity).count() == 0


@pytest.mark.parametrize("bad_record, message", [
    ({"kind": "sale", "date": "2024-01-01", "amount": "abc"}, "Amount must be a number"),
    ({"kind": "sale", "date": "2024-01-01",
      "line_items": [{"name": "Cable", "quantity": "two", "unit_price": "100"}]}, "quantity must be a number"),
    ({"kind": "sale", "date": "2024-01-01",
      "line_items": [{"name": "Cable", "quantity": 1, "unit_price": "cheap"}]}, "unit price must be a number"),
    ({"kind": "sale", "date": "2024-01-01", "amount": "10", "deleted_at": "yesterday"}, "ISO timestamp"),
])
def test_malformed_values_reject_whole_import(db, other_ctx, bad_record, message):
    document = _document(
        {"id": "CUS-GOOD0001", "data": {"name": "Good"}, "ledger": [
            {"kind": "sale", "date": "2024-01-01", "amount": "10"},
        ]},
        {"id": "CUS-BAD00001", "data": {"name": "Bad"}, "ledger": [bad_record]},
    )
    with pytest.raises(ValidationError, match=message):
        backup_service.import_backup(db, other_ctx, document)
    db.commit()
    assert db.query(Entity).count() == 0
    assert db.query(LedgerEntry).count() == 0


def test_record_without_id_is_rejected(db, other_ctx):
    document = _document({"data": {"name": "Nameless"}, "ledger": []})
    with pytest.raises(ValidationError, match="missing its id"):
        backup_service.import_backup(db, other_ctx, document)

    document = {"version": backup_service.BACKUP_VERSION, "products": [{"name": "Cable"}]}
    with pytest.raises(ValidationError, match="missing its id"):
        backup_service.import_backup(db, other_ctx, document)


def test_imported_totals_are_committed_with_the_ledger(db, other_ctx, monkeypatch):
    document = _document({"id": "CUS-TOTL0001", "data": {"name": "Totals", "total_balance": "0"}, "ledger": [
        {"kind": "sale", "date": "2024-01-01", "amount": "100"},
        {"kind": "payment", "date": "2024-01-02", "amount": "40"},
    ]})
    warnings = []
    monkeypatch.setattr(reconciliation_service.logger, "warning", warnings.append)
    backup_service.import_backup(db, other_ctx, document)

    db.expire_all()
    restored = db.query(Entity).filter(Entity.id == "CUS-TOTL0001").one()
    assert restored.total_balance == Decimal("60")
    assert restored.reconciled_at is not None
    assert warnings == []


def test_failed_total_rebuild_rolls_back_import(db, other_ctx, monkeypatch):
    real = reconciliation_service.stage_recalculation

    def failing(db, ctx, entity_id, log_drift=True):
        if entity_id == "CUS-SECN0002":
            raise RuntimeError("fold failed")
        return real(db, ctx, entity_id, log_drift=log_drift)

    monkeypatch.setattr(reconciliation_service, "stage_recalculation", failing)
    document = _document(
        {"id": "CUS-FRST0001", "data": {"name": "First"}, "ledger": [
            {"kind": "sale", "date": "2024-01-01", "amount": "10"},
        ]},
        {"id": "CUS-SECN0002", "data": {"name": "Second"}, "ledger": [
            {"kind": "sale", "date": "2024-01-01", "amount": "20"},
        ]},
    )
    with pytest.raises(RuntimeError):
        backup_service.import_backup(db, other_ctx, document)
    db.commit()
    assert db.query(Entity).count() == 0
    assert db.query(LedgerEntry).count() == 0
