from decimal import Decimal

import pytest

from khata.core.config import settings
from khata.core.exceptions import NotFoundError, ValidationError
from khata.models.entity import Entity, EntityKind
from khata.models.ledger_entry import EntryKind
from khata.repositories import entity_store
from khata.services import inventory_service, ledger_service


def totals(db, ctx, entity_id):
    root = db.query(Entity).filter(Entity.id == entity_id).one()
    db.refresh(root)
    user_copy = entity_store.get_user_copy(db, ctx, entity_id)
    db.refresh(user_copy)
    return (
        (root.total_balance, root.total_debit, root.total_credit),
        (user_copy.total_balance, user_copy.total_debit, user_copy.total_credit),
    )


@pytest.fixture
def customer_with_history(make_entity, add):
    customer = make_entity(EntityKind.customer, "Bilal Store")
    add(customer, EntryKind.sale, "2024-01-10", amount=1000)
    add(customer, EntryKind.payment, "2024-02-10", amount=300)
    add(customer, EntryKind.sale, "2024-03-10", amount=500)
    return customer


def test_add_entry_updates_both_copies(db, ctx, customer_with_history):
    root, user_copy = totals(db, ctx, customer_with_history.id)
    assert root == (Decimal("1200"), Decimal("1500"), Decimal("300"))
    assert user_copy == root


def test_last_activity_date_keeps_the_latest(db, ctx, make_entity, add):
    customer = make_entity()
    add(customer, EntryKind.sale, "2024-05-01", amount=10)
    add(customer, EntryKind.sale, "2024-03-01", amount=10)
    db.refresh(customer)
    assert customer.last_activity_date == "2024-05-01"


def test_validation_error_writes_nothing(db, ctx, make_entity, add):
    customer = make_entity()
    with pytest.raises(ValidationError):
        add(customer, EntryKind.sale, "2024-05-01", amount=0)
    with pytest.raises(ValidationError):
        add(customer, EntryKind.purchase, "2024-05-01", amount=10)
    assert ledger_service.list_entries(db, ctx, customer.id).total == 0
    assert totals(db, ctx, customer.id)[0] == (0, 0, 0)


def test_running_balance_newest_first(db, ctx, customer_with_history):
    page = ledger_service.list_entries(db, ctx, customer_with_history.id)
    assert [row.entry.date for row in page.rows] == ["2024-03-10", "2024-02-10", "2024-01-10"]
    assert [row.running_balance for row in page.rows] == [Decimal("1200"), Decimal("700"), Decimal("1000")]
    assert page.has_more is False


def test_running_balance_continues_across_pages(db, ctx, customer_with_history):
    first = ledger_service.list_entries(db, ctx, customer_with_history.id, page=1, page_size=2)
    second = ledger_service.list_entries(db, ctx, customer_with_history.id, page=2, page_size=2)
    assert first.has_more is True
    assert [row.running_balance for row in first.rows] == [Decimal("1200"), Decimal("700")]
    assert [row.running_balance for row in second.rows] == [Decimal("1000")]
    assert second.has_more is False


def test_running_balance_oldest_first(db, ctx, customer_with_history):
    page = ledger_service.list_entries(db, ctx, customer_with_history.id, order="asc", page_size=2)
    assert [row.entry.date for row in page.rows] == ["2024-01-10", "2024-02-10"]
    assert [row.running_balance for row in page.rows] == [Decimal("1000"), Decimal("700")]


def test_same_day_entries_ordered_by_creation(db, ctx, make_entity, add):
    customer = make_entity()
    first = add(customer, EntryKind.sale, "2024-05-01", amount=100)
    second = add(customer, EntryKind.payment, "2024-05-01", amount=40)
    page = ledger_service.list_entries(db, ctx, customer.id)
    assert [row.entry.id for row in page.rows] == [second.id, first.id]
    assert [row.running_balance for row in page.rows] == [Decimal("60"), Decimal("100")]


def test_list_entries_rejects_bad_order(db, ctx, customer_with_history):
    with pytest.raises(ValidationError):
        ledger_service.list_entries(db, ctx, customer_with_history.id, order="sideways")


def test_other_users_cannot_see_entity(db, other_ctx, customer_with_history):
    with pytest.raises(NotFoundError):
        ledger_service.list_entries(db, other_ctx, customer_with_history.id)


def test_itemized_sale_takes_prices_from_product_and_moves_stock(db, ctx, make_entity, add):
    product = inventory_service.create_product(
        db, ctx, name="Cable", unit_price=Decimal("100"), unit_cost=Decimal("60"), quantity_on_hand=10
    )
    customer = make_entity()
    entry = add(customer, EntryKind.sale, "2024-05-01", line_items=[
        {"product_id": product.id, "quantity": 2},
        {"name": "Plug", "quantity": 1, "unit_price": 50, "unit_cost": 50},
    ])
    assert entry.amount == Decimal("250")
    assert entry.profit == Decimal("80")
    assert [item.name for item in entry.line_items] == ["Cable", "Plug"]
    db.refresh(product)
    assert product.quantity_on_hand == 8


def test_unknown_product_rejected(db, ctx, make_entity, add):
    customer = make_entity()
    with pytest.raises(NotFoundError):
        add(customer, EntryKind.sale, "2024-05-01", line_items=[{"product_id": "PRD-MISSING", "quantity": 1}])


def test_edit_amount_leaves_aggregates_stale_by_default(db, ctx, customer_with_history):
    page = ledger_service.list_entries(db, ctx, customer_with_history.id)
    newest = page.rows[0].entry
    ledger_service.edit_entry(db, ctx, newest.id, amount=800)

    root, user_copy = totals(db, ctx, customer_with_history.id)
    assert root[0] == Decimal("1200")
    assert user_copy[0] == Decimal("1200")


def test_edit_amount_adjusts_aggregates_when_enabled(db, ctx, customer_with_history, monkeypatch):
    monkeypatch.setattr(settings, "ADJUST_AGGREGATE_ON_EDIT", True)
    page = ledger_service.list_entries(db, ctx, customer_with_history.id)
    payment = page.rows[1].entry
    ledger_service.edit_entry(db, ctx, payment.id, amount=100)

    root, user_copy = totals(db, ctx, customer_with_history.id)
    assert root == (Decimal("1400"), Decimal("1500"), Decimal("100"))
    assert user_copy == root


def test_edit_date_and_note(db, ctx, customer_with_history):
    entry = ledger_service.list_entries(db, ctx, customer_with_history.id).rows[-1].entry
    edited = ledger_service.edit_entry(db, ctx, entry.id, date="2024-06-01", note="moved")
    assert (edited.date, edited.note) == ("2024-06-01", "moved")
    db.refresh(customer_with_history)
    assert customer_with_history.last_activity_date == "2024-06-01"


def test_edit_manual_amount_on_itemized_sale_rejected(db, ctx, make_entity, add):
    customer = make_entity()
    entry = add(customer, EntryKind.sale, "2024-05-01",
                line_items=[{"name": "Cable", "quantity": 1, "unit_price": 10}])
    with pytest.raises(ValidationError):
        ledger_service.edit_entry(db, ctx, entry.id, amount=20)


def test_export_range_opening_and_closing_balance(db, ctx, customer_with_history):
    export = ledger_service.export_range(
        db, ctx, customer_with_history.id, date_from="2024-02-01", date_to="2024-02-28"
    )
    assert export.opening_balance == Decimal("1000")
    assert export.closing_balance == Decimal("700")
    assert export.total_debit == 0
    assert export.total_credit == Decimal("300")
    assert [row.entry.date for row in export.rows] == ["2024-02-10"]


def test_export_without_bounds_matches_aggregate(db, ctx, customer_with_history):
    export = ledger_service.export_range(db, ctx, customer_with_history.id)
    assert export.opening_balance == 0
    assert export.closing_balance == Decimal("1200")
    assert len(export.rows) == 3


def test_export_rejects_inverted_range(db, ctx, customer_with_history):
    with pytest.raises(ValidationError):
        ledger_service.export_range(db, ctx, customer_with_history.id, "2024-03-01", "2024-01-01")


def test_bad_debt_reads_full_ledger(db, ctx, make_entity, add):
    customer = make_entity()
    add(customer, EntryKind.sale, "2024-01-15", amount=1000)
    add(customer, EntryKind.sale, "2024-07-15", amount=500)
    add(customer, EntryKind.payment, "2024-08-15", amount=300)
    result = ledger_service.bad_debt_for(db, ctx, customer.id, today="2024-09-15")
    assert result.bad_debt_amount == Decimal("700")
