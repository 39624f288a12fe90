from decimal import Decimal
from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from khata.models.ledger_entry import EntryKind


class LineItemIn(BaseModel):
    """A cart line. Name and prices fall back to the product when product_id is given."""
    product_id: Optional[str] = None
    name: Optional[str] = Field(None, max_length=255)
    quantity: int = Field(..., gt=0)
    unit_price: Optional[Decimal] = Field(None, ge=0)
    unit_cost: Optional[Decimal] = Field(None, ge=0)


class LineItemOut(BaseModel):
    product_id: Optional[str] = None
    name: str
    quantity: int
    unit_price: Decimal
    unit_cost: Decimal
    line_total: Decimal

    class Config:
        from_attributes = True


class EntryCreate(BaseModel):
    """Either ``amount`` or ``line_items`` (sales only), never both."""
    kind: EntryKind
    date: str = Field(..., description="YYYY-MM-DD")
    amount: Optional[Decimal] = None
    line_items: Optional[List[LineItemIn]] = None
    note: Optional[str] = None


class EntryUpdate(BaseModel):
    amount: Optional[Decimal] = None
    date: Optional[str] = None
    note: Optional[str] = None
    line_items: Optional[List[LineItemIn]] = None


class EntryResponse(BaseModel):
    id: int
    entity_id: str
    kind: EntryKind
    amount: Decimal
    date: str
    note: Optional[str] = None
    profit: Decimal
    is_deleted: bool
    deleted_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    line_items: List[LineItemOut] = []
    running_balance: Optional[Decimal] = None

    class Config:
        from_attributes = True


class EntryPageResponse(BaseModel):
    total: int
    page: int
    page_size: int
    has_more: bool
    entries: List[EntryResponse]
