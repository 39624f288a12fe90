"""
Validation and construction of ledger entry drafts.

A sale is either a single manual amount or a cart of line items; the two
shapes are told apart here, once, and amount / profit are fixed at creation
so no consumer has to branch on the legacy shape again.
"""

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional, Tuple, Union

from khata.core.exceptions import ValidationError
from khata.models.entity import EntityKind
from khata.models.ledger_entry import ALLOWED_KINDS, EntryKind

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
ZERO = Decimal("0.00")


@dataclass(frozen=True)
class LineItemDraft:
    name: str
    quantity: int
    unit_price: Decimal
    unit_cost: Decimal = ZERO
    product_id: Optional[str] = None

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    @property
    def profit(self) -> Decimal:
        return (self.unit_price - self.unit_cost) * self.quantity


@dataclass(frozen=True)
class ManualDetail:
    amount: Decimal
    line_items: Tuple[LineItemDraft, ...] = ()

    @property
    def profit(self) -> Decimal:
        return ZERO


@dataclass(frozen=True)
class ItemizedDetail:
    line_items: Tuple[LineItemDraft, ...]

    @property
    def amount(self) -> Decimal:
        return sum((item.line_total for item in self.line_items), ZERO)

    @property
    def profit(self) -> Decimal:
        return sum((item.profit for item in self.line_items), ZERO)


SaleDetail = Union[ManualDetail, ItemizedDetail]


@dataclass(frozen=True)
class EntryDraft:
    kind: EntryKind
    date: str
    detail: SaleDetail
    note: Optional[str] = None

    @property
    def amount(self) -> Decimal:
        return self.detail.amount

    @property
    def profit(self) -> Decimal:
        return self.detail.profit


def validate_date(value: Optional[str]) -> str:
    if not value or not DATE_PATTERN.match(value):
        raise ValidationError("Please enter date in yyyy-mm-dd format")
    return value


def validate_kind(entity_kind: EntityKind, kind) -> EntryKind:
    try:
        kind = EntryKind(kind)
    except ValueError:
        raise ValidationError(f"Unknown entry type: {kind}")
    if kind not in ALLOWED_KINDS[EntityKind(entity_kind)]:
        raise ValidationError(f"A {entity_kind.value} ledger cannot hold {kind.value} entries")
    return kind


def to_decimal(value, label: str) -> Decimal:
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"{label} must be a number")
    if not number.is_finite():
        raise ValidationError(f"{label} must be a number")
    return number


def to_whole_number(value, label: str) -> int:
    number = to_decimal(value, label)
    if number != number.to_integral_value():
        raise ValidationError(f"{label} must be a whole number")
    return int(number)


def build_line_items(items: Iterable[dict]) -> Tuple[LineItemDraft, ...]:
    drafts = []
    for idx, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            raise ValidationError(f"Line item {idx}: malformed line item")
        quantity = item.get("quantity")
        unit_price = item.get("unit_price")
        unit_cost = item.get("unit_cost")
        name = str(item.get("name") or "").strip()

        if not name:
            raise ValidationError(f"Line item {idx}: name is required")
        if quantity is None:
            raise ValidationError(f"Line item {idx}: quantity must be greater than 0")
        quantity = to_whole_number(quantity, f"Line item {idx}: quantity")
        if quantity <= 0:
            raise ValidationError(f"Line item {idx}: quantity must be greater than 0")
        if unit_price is None:
            raise ValidationError(f"Line item {idx}: unit price must be 0 or more")
        unit_price = to_decimal(unit_price, f"Line item {idx}: unit price")
        if unit_price < 0:
            raise ValidationError(f"Line item {idx}: unit price must be 0 or more")
        unit_cost = to_decimal(unit_cost, f"Line item {idx}: unit cost") if unit_cost is not None else ZERO
        if unit_cost < 0:
            raise ValidationError(f"Line item {idx}: unit cost must be 0 or more")

        drafts.append(LineItemDraft(
            name=name,
            quantity=quantity,
            unit_price=unit_price,
            unit_cost=unit_cost,
            product_id=item.get("product_id"),
        ))
    return tuple(drafts)


def build_detail(kind: EntryKind, amount=None, line_items=None) -> SaleDetail:
    """Exactly one of a positive amount or a non-empty cart."""
    if amount is not None and line_items:
        raise ValidationError("Give either an amount or line items, not both")

    if line_items:
        if kind is not EntryKind.sale:
            raise ValidationError("Only sales can have line items")
        detail = ItemizedDetail(line_items=build_line_items(line_items))
        if detail.amount <= 0:
            raise ValidationError("Line items must add up to more than 0")
        return detail

    if amount is None:
        raise ValidationError("Amount and date are required")
    amount = to_decimal(amount, "Amount")
    if amount <= 0:
        raise ValidationError("Amount must be greater than 0")
    return ManualDetail(amount=amount)


def build_entry(
    entity_kind: EntityKind,
    kind,
    date: Optional[str],
    amount=None,
    line_items=None,
    note: Optional[str] = None,
) -> EntryDraft:
    """Validate a new entry; nothing is written when this raises."""
    kind = validate_kind(entity_kind, kind)
    date = validate_date(date)
    detail = build_detail(kind, amount=amount, line_items=line_items)
    return EntryDraft(kind=kind, date=date, detail=detail, note=note)
