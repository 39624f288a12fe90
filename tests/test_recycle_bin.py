from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from khata.core.exceptions import NotFoundError, ValidationError
from khata.models.entity import Entity, EntityKind, UserEntity
from khata.models.ledger_entry import EntryKind, LedgerEntry, LineItem
from khata.repositories import entity_store
from khata.services import inventory_service, ledger_service, recycle_bin_service
from khata.services.recycle_bin_service import ENTRY, PARENT


def balances(db, ctx, entity_id):
    root = db.query(Entity).filter(Entity.id == entity_id).one()
    db.refresh(root)
    user_copy = entity_store.get_user_copy(db, ctx, entity_id)
    db.refresh(user_copy)
    return root.total_balance, user_copy.total_balance


def test_delete_restore_round_trip(db, ctx, make_entity, add):
    customer = make_entity()
    add(customer, EntryKind.sale, "2024-01-01", amount=1000)
    payment = add(customer, EntryKind.payment, "2024-02-01", amount=400)
    assert balances(db, ctx, customer.id) == (Decimal("600"), Decimal("600"))

    recycle_bin_service.delete_entry(db, ctx, payment.id)
    assert balances(db, ctx, customer.id) == (Decimal("1000"), Decimal("1000"))
    assert ledger_service.list_entries(db, ctx, customer.id).total == 1

    recycle_bin_service.restore_entry(db, ctx, payment.id)
    assert balances(db, ctx, customer.id) == (Decimal("600"), Decimal("600"))
    db.refresh(customer)
    assert customer.total_credit == Decimal("400")


def test_delete_and_restore_move_stock(db, ctx, make_entity, add):
    product = inventory_service.create_product(
        db, ctx, name="Cable", unit_price=Decimal("10"), unit_cost=Decimal("6"), quantity_on_hand=5
    )
    customer = make_entity()
    sale = add(customer, EntryKind.sale, "2024-01-01", line_items=[{"product_id": product.id, "quantity": 3}])

    recycle_bin_service.delete_entry(db, ctx, sale.id)
    db.refresh(product)
    assert product.quantity_on_hand == 5

    recycle_bin_service.restore_entry(db, ctx, sale.id)
    db.refresh(product)
    assert product.quantity_on_hand == 2


def test_double_delete_rejected(db, ctx, make_entity, add):
    entry = add(make_entity(), EntryKind.sale, "2024-01-01", amount=10)
    recycle_bin_service.delete_entry(db, ctx, entry.id)
    with pytest.raises(ValidationError):
        recycle_bin_service.delete_entry(db, ctx, entry.id)


def test_restore_entry_of_deleted_parent_rejected(db, ctx, make_entity, add):
    customer = make_entity()
    entry = add(customer, EntryKind.sale, "2024-01-01", amount=10)
    recycle_bin_service.delete_entry(db, ctx, entry.id)
    recycle_bin_service.delete_entity(db, ctx, customer.id)
    with pytest.raises(ValidationError):
        recycle_bin_service.restore_entry(db, ctx, entry.id)


def test_deleted_entity_hidden_from_both_copies(db, ctx, make_entity):
    customer = make_entity()
    recycle_bin_service.delete_entity(db, ctx, customer.id)

    assert db.query(UserEntity).filter(UserEntity.entity_id == customer.id).one().is_deleted is True
    with pytest.raises(NotFoundError):
        entity_store.get_entity(db, ctx, customer.id)

    recycle_bin_service.restore_entity(db, ctx, customer.id)
    assert entity_store.get_entity(db, ctx, customer.id).is_deleted is False


def test_purge_entry_requires_bin(db, ctx, make_entity, add):
    entry = add(make_entity(), EntryKind.sale, "2024-01-01", amount=10)
    with pytest.raises(ValidationError):
        recycle_bin_service.purge_entry(db, ctx, entry.id)

    recycle_bin_service.delete_entry(db, ctx, entry.id)
    recycle_bin_service.purge_entry(db, ctx, entry.id)
    with pytest.raises(NotFoundError):
        ledger_service.get_entry(db, ctx, entry.id)


def test_purge_entity_cascades(db, ctx, make_entity, add):
    customer = make_entity()
    customer_id = customer.id
    add(customer, EntryKind.sale, "2024-01-01", line_items=[{"name": "Cable", "quantity": 1, "unit_price": 10}])
    add(customer, EntryKind.payment, "2024-01-02", amount=5)
    recycle_bin_service.delete_entity(db, ctx, customer_id)

    report = recycle_bin_service.purge_entity(db, ctx, customer_id)
    assert (report.entities, report.entries) == (1, 2)
    assert db.query(Entity).filter(Entity.id == customer_id).count() == 0
    assert db.query(UserEntity).filter(UserEntity.entity_id == customer_id).count() == 0
    assert db.query(LedgerEntry).filter(LedgerEntry.entity_id == customer_id).count() == 0
    assert db.query(LineItem).count() == 0


def test_auto_purge_threshold(db, ctx, make_entity, add):
    now = datetime(2024, 6, 20, 12, 0, tzinfo=timezone.utc)
    customer = make_entity()
    recent = add(customer, EntryKind.sale, "2024-01-01", amount=10)
    old = add(customer, EntryKind.sale, "2024-01-02", amount=20)
    recycle_bin_service.delete_entry(db, ctx, recent.id, now=now - timedelta(days=6))
    recycle_bin_service.delete_entry(db, ctx, old.id, now=now - timedelta(days=8))

    stale_parent = make_entity(EntityKind.supplier, "Old Supplier")
    recycle_bin_service.delete_entity(db, ctx, stale_parent.id, now=now - timedelta(days=8))

    report = recycle_bin_service.auto_purge(db, ctx, now=now)
    assert (report.entities, report.entries) == (1, 1)

    remaining = recycle_bin_service.list_deleted(db, ctx)
    assert [(item.item_type, item.id) for item in remaining] == [(ENTRY, str(recent.id))]


def test_list_deleted_newest_first_with_filters(db, ctx, make_entity, add):
    now = datetime(2024, 6, 20, tzinfo=timezone.utc)
    customer = make_entity(EntityKind.customer, "Zain")
    entry = add(customer, EntryKind.sale, "2024-01-01", amount=10)
    supplier = make_entity(EntityKind.supplier, "Kamal")
    recycle_bin_service.delete_entry(db, ctx, entry.id, now=now - timedelta(days=2))
    recycle_bin_service.delete_entity(db, ctx, supplier.id, now=now - timedelta(days=1))

    items = recycle_bin_service.list_deleted(db, ctx)
    assert [item.item_type for item in items] == [PARENT, ENTRY]
    assert items[1].name == "Zain"
    assert items[1].parent_id == customer.id

    only_customers = recycle_bin_service.list_deleted(db, ctx, kind=EntityKind.customer)
    assert [item.id for item in only_customers] == [str(entry.id)]
    assert recycle_bin_service.list_deleted(db, ctx, item_type=PARENT)[0].id == supplier.id


def test_empty_bin(db, ctx, make_entity, add):
    customer = make_entity()
    keep = add(customer, EntryKind.sale, "2024-01-01", amount=10)
    gone = add(customer, EntryKind.sale, "2024-01-02", amount=20)
    recycle_bin_service.delete_entry(db, ctx, gone.id)

    report = recycle_bin_service.empty_bin(db, ctx)
    assert report.entries == 1
    assert ledger_service.get_entry(db, ctx, keep.id).id == keep.id
    assert recycle_bin_service.list_deleted(db, ctx) == []
