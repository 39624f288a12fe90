from decimal import Decimal
from pydantic import BaseModel
from typing import List, Optional
from khata.models.entity import EntityKind
from khata.schemas.entity import EntityResponse
from khata.schemas.ledger_entry import EntryResponse


class LedgerExportResponse(BaseModel):
    entity: EntityResponse
    date_from: Optional[str] = None
    date_to: Optional[str] = None
    opening_balance: Decimal
    closing_balance: Decimal
    total_debit: Decimal
    total_credit: Decimal
    entries: List[EntryResponse]


class BadDebtResponse(BaseModel):
    entity_id: str
    has_bad_debt: bool
    bad_debt_amount: Decimal
    oldest_unpaid_date: Optional[str] = None


class RecalculationResponse(BaseModel):
    entity_id: str
    name: str
    total_balance: Decimal
    total_debit: Decimal
    total_credit: Decimal
    changed: bool

    class Config:
        from_attributes = True


class RecalculateAllRequest(BaseModel):
    kinds: List[EntityKind] = [EntityKind.customer, EntityKind.supplier]


class FailedRecalculation(BaseModel):
    entity_id: str
    name: str
    error: str


class BatchReportResponse(BaseModel):
    processed: int
    succeeded: List[RecalculationResponse]
    failed: List[FailedRecalculation]

    class Config:
        from_attributes = True


class MonthBucketResponse(BaseModel):
    month: str
    sales: Decimal
    purchases: Decimal
    expenses: Decimal
    profit: Decimal
    profit_mode: str
    mixed_profit_mode: bool

    class Config:
        from_attributes = True


class TopEntityResponse(BaseModel):
    entity_id: str
    name: str
    volume: Decimal

    class Config:
        from_attributes = True


class AnalyticsResponse(BaseModel):
    date_from: Optional[str] = None
    date_to: Optional[str] = None
    sales: Decimal
    collected: Decimal
    purchases: Decimal
    expenses: Decimal
    receivables: Decimal
    payables: Decimal
    period_profit: Decimal
    net_profit: Decimal
    profit_mode: str
    mixed_profit_mode: bool
    monthly: List[MonthBucketResponse]
    top_customers: List[TopEntityResponse]

    class Config:
        from_attributes = True
