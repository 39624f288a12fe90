from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from decimal import Decimal
from khata.models.entity import EntityKind


class EntityBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    phone: Optional[str] = Field(None, max_length=20)


class EntityCreate(EntityBase):
    pass


class EntityUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    phone: Optional[str] = Field(None, max_length=20)


class EntityResponse(EntityBase):
    id: str
    kind: EntityKind
    total_balance: Decimal
    total_debit: Decimal
    total_credit: Decimal
    last_activity_date: Optional[str] = None
    is_deleted: bool = False
    deleted_at: Optional[datetime] = None
    reconciled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class EntityListResponse(BaseModel):
    total: int
    entities: list[EntityResponse]


class EntityDeleteResponse(BaseModel):
    message: str
