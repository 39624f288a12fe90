from decimal import Decimal

import pytest

from khata.core.exceptions import ValidationError
from khata.models.entity import EntityKind
from khata.models.ledger_entry import EntryKind
from khata.services.entry_builder import (
    ItemizedDetail,
    ManualDetail,
    build_detail,
    build_entry,
    validate_date,
)


def test_itemized_sale_profit_and_amount():
    draft = build_entry(
        EntityKind.customer,
        "sale",
        "2024-05-01",
        line_items=[
            {"name": "Cable", "quantity": 2, "unit_price": 100, "unit_cost": 60},
            {"name": "Plug", "quantity": 1, "unit_price": 50, "unit_cost": 50},
        ],
    )
    assert isinstance(draft.detail, ItemizedDetail)
    assert draft.amount == Decimal("250")
    assert draft.profit == Decimal("80")


def test_manual_sale_has_no_profit():
    draft = build_entry(EntityKind.customer, EntryKind.sale, "2024-05-01", amount="199.99")
    assert isinstance(draft.detail, ManualDetail)
    assert draft.amount == Decimal("199.99")
    assert draft.profit == 0


def test_missing_unit_cost_counts_as_zero():
    detail = build_detail(EntryKind.sale, line_items=[{"name": "Bag", "quantity": 3, "unit_price": 10}])
    assert detail.profit == Decimal("30")


@pytest.mark.parametrize("amount", [0, -5, "-0.01"])
def test_non_positive_amount_rejected(amount):
    with pytest.raises(ValidationError, match="greater than 0"):
        build_entry(EntityKind.customer, "payment", "2024-05-01", amount=amount)


@pytest.mark.parametrize("value", [None, "", "01-05-2024", "2024/05/01", "2024-5-1"])
def test_malformed_date_rejected(value):
    with pytest.raises(ValidationError):
        validate_date(value)


def test_amount_and_line_items_are_exclusive():
    with pytest.raises(ValidationError, match="not both"):
        build_detail(
            EntryKind.sale,
            amount=100,
            line_items=[{"name": "Cable", "quantity": 1, "unit_price": 100}],
        )


def test_only_sales_take_line_items():
    with pytest.raises(ValidationError, match="Only sales"):
        build_detail(EntryKind.payment, line_items=[{"name": "Cable", "quantity": 1, "unit_price": 100}])


def test_kind_must_match_entity():
    with pytest.raises(ValidationError):
        build_entry(EntityKind.supplier, "sale", "2024-05-01", amount=10)
    with pytest.raises(ValidationError, match="Unknown entry type"):
        build_entry(EntityKind.expense, "refund", "2024-05-01", amount=10)


def test_line_item_needs_positive_quantity():
    with pytest.raises(ValidationError, match="Line item 1: quantity"):
        build_detail(EntryKind.sale, line_items=[{"name": "Cable", "quantity": 0, "unit_price": 5}])


def test_fractional_quantity_rejected():
    with pytest.raises(ValidationError, match="Line item 1: quantity must be a whole number"):
        build_detail(EntryKind.sale, line_items=[{"name": "Cable", "quantity": 1.5, "unit_price": 100}])


def test_integral_quantity_given_as_text_is_accepted():
    detail = build_detail(EntryKind.sale, line_items=[{"name": "Cable", "quantity": "2", "unit_price": "75"}])
    assert detail.line_items[0].quantity == 2
    assert detail.amount == Decimal("150")


@pytest.mark.parametrize("item, message", [
    ({"name": "Cable", "quantity": "many", "unit_price": 5}, "Line item 1: quantity must be a number"),
    ({"name": "Cable", "quantity": 1, "unit_price": "five"}, "Line item 1: unit price must be a number"),
    ({"name": "Cable", "quantity": 1, "unit_price": 5, "unit_cost": [3]}, "Line item 1: unit cost must be a number"),
    ({"name": "Cable", "quantity": 1, "unit_price": "NaN"}, "Line item 1: unit price must be a number"),
])
def test_non_numeric_line_values_rejected(item, message):
    with pytest.raises(ValidationError, match=message):
        build_detail(EntryKind.sale, line_items=[item])


def test_non_numeric_amount_rejected():
    with pytest.raises(ValidationError, match="Amount must be a number"):
        build_entry(EntityKind.customer, "sale", "2024-05-01", amount="abc")
