from decimal import Decimal
from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime
from khata.models.entity import EntityKind
from khata.models.ledger_entry import EntryKind


class DeletedItemResponse(BaseModel):
    id: str
    item_type: str
    entity_kind: EntityKind
    name: str
    parent_id: Optional[str] = None
    entry_kind: Optional[EntryKind] = None
    amount: Optional[Decimal] = None
    date: Optional[str] = None
    deleted_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RecycleBinResponse(BaseModel):
    total: int
    auto_purged: int
    items: List[DeletedItemResponse]


class PurgeResponse(BaseModel):
    entities: int
    entries: int

    class Config:
        from_attributes = True
