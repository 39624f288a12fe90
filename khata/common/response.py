# khata/common/response.py

from decimal import Decimal
from typing import Optional, Union

from khata.models.entity import Entity, UserEntity
from khata.models.ledger_entry import LedgerEntry
from khata.schemas.entity import EntityResponse
from khata.schemas.ledger_entry import EntryResponse, LineItemOut


def entity_response(entity: Union[Entity, UserEntity]) -> EntityResponse:
    """Same shape for either copy; the user-scoped copy keys on entity_id."""
    entity_id = entity.entity_id if isinstance(entity, UserEntity) else entity.id
    return EntityResponse(
        id=entity_id,
        kind=entity.kind,
        name=entity.name,
        phone=entity.phone,
        total_balance=entity.total_balance,
        total_debit=entity.total_debit,
        total_credit=entity.total_credit,
        last_activity_date=entity.last_activity_date,
        is_deleted=entity.is_deleted,
        deleted_at=entity.deleted_at,
        reconciled_at=entity.reconciled_at,
        created_at=entity.created_at,
    )


def entry_response(entry: LedgerEntry, running_balance: Optional[Decimal] = None) -> EntryResponse:
    return EntryResponse(
        id=entry.id,
        entity_id=entry.entity_id,
        kind=entry.kind,
        amount=entry.amount,
        date=entry.date,
        note=entry.note,
        profit=entry.profit,
        is_deleted=entry.is_deleted,
        deleted_at=entry.deleted_at,
        created_at=entry.created_at,
        line_items=[LineItemOut.model_validate(item) for item in entry.line_items],
        running_balance=running_balance,
    )
