from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from khata.core.context import UserContext
from khata.core.dependencies import get_db, get_user_context
from khata.services import ledger_service, recycle_bin_service
from khata.schemas.ledger_entry import EntryResponse, EntryUpdate
from khata.common.response import entry_response
from khata.logger_config import logger

router = APIRouter()


@router.get("/{entry_id}", response_model=EntryResponse)
def get_entry_route(
    entry_id: int,
    ctx: UserContext = Depends(get_user_context),
    db: Session = Depends(get_db)
):
    return entry_response(ledger_service.get_entry(db, ctx, entry_id))


@router.put("/{entry_id}", response_model=EntryResponse)
def update_entry_route(
    entry_id: int,
    entry_data: EntryUpdate,
    ctx: UserContext = Depends(get_user_context),
    db: Session = Depends(get_db)
):
    """
    Edit amount, date, note or line items. The kind cannot change.
    Totals only follow an amount change when ADJUST_AGGREGATE_ON_EDIT is on;
    otherwise recalculate the entity afterwards.
    """
    line_items = (
        [item.model_dump() for item in entry_data.line_items]
        if entry_data.line_items is not None else None
    )
    entry = ledger_service.edit_entry(
        db, ctx, entry_id,
        amount=entry_data.amount,
        date=entry_data.date,
        note=entry_data.note,
        line_items=line_items
    )
    return entry_response(entry)


@router.delete("/{entry_id}", response_model=EntryResponse)
def delete_entry_route(
    entry_id: int,
    ctx: UserContext = Depends(get_user_context),
    db: Session = Depends(get_db)
):
    """Move the entry to the recycle bin and take it out of the totals."""
    entry = recycle_bin_service.delete_entry(db, ctx, entry_id)
    return entry_response(entry)


@router.post("/{entry_id}/restore", response_model=EntryResponse)
def restore_entry_route(
    entry_id: int,
    ctx: UserContext = Depends(get_user_context),
    db: Session = Depends(get_db)
):
    entry = recycle_bin_service.restore_entry(db, ctx, entry_id)
    return entry_response(entry)


@router.delete("/{entry_id}/purge", status_code=status.HTTP_204_NO_CONTENT)
def purge_entry_route(
    entry_id: int,
    ctx: UserContext = Depends(get_user_context),
    db: Session = Depends(get_db)
):
    recycle_bin_service.purge_entry(db, ctx, entry_id)
    logger.info(f"Entry {entry_id} purged by user {ctx.user_id}")
    return None
