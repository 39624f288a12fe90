from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session
from typing import Optional
from khata.core.context import UserContext
from khata.core.dependencies import get_db, get_user_context
from khata.core.exceptions import LedgerError
from khata.models.entity import EntityKind
from khata.repositories import entity_store
from khata.services import ledger_service, reconciliation_service, recycle_bin_service
from khata.services.entity_service import (
    get_entity,
    get_all_entities,
    create_entity,
    update_entity,
)
from khata.schemas.entity import (
    EntityCreate,
    EntityUpdate,
    EntityResponse,
    EntityListResponse,
)
from khata.schemas.ledger_entry import EntryCreate, EntryResponse, EntryPageResponse
from khata.schemas.report import BadDebtResponse, LedgerExportResponse, RecalculationResponse
from khata.common.response import entity_response, entry_response
from khata.logger_config import logger

router = APIRouter()


@router.get("/{kind}", response_model=EntityListResponse)
def get_entities(
    kind: EntityKind,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=100),
    search: Optional[str] = Query(None),
    ctx: UserContext = Depends(get_user_context),
    db: Session = Depends(get_db)
):
    """
    List customers, suppliers or expense categories with their live totals.
    Reads the user-scoped copies.
    """
    try:
        rows, total = get_all_entities(db, ctx, kind, skip=skip, limit=limit, search=search)
        return EntityListResponse(
            total=total,
            entities=[entity_response(row) for row in rows]
        )
    except Exception as e:
        logger.error(f"Error fetching {kind.value} list: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to fetch {kind.value} list"
        )


@router.post("/{kind}", response_model=EntityResponse, status_code=status.HTTP_201_CREATED)
def create_entity_route(
    kind: EntityKind,
    entity_data: EntityCreate,
    ctx: UserContext = Depends(get_user_context),
    db: Session = Depends(get_db)
):
    try:
        entity = create_entity(db, ctx, kind, name=entity_data.name, phone=entity_data.phone)
        return entity_response(entity)
    except LedgerError:
        raise
    except Exception as e:
        logger.error(f"Error creating {kind.value}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to create {kind.value}"
        )


@router.get("/{kind}/{entity_id}", response_model=EntityResponse)
def get_entity_route(
    kind: EntityKind,
    entity_id: str,
    ctx: UserContext = Depends(get_user_context),
    db: Session = Depends(get_db)
):
    return entity_response(get_entity(db, ctx, kind, entity_id))


@router.put("/{kind}/{entity_id}", response_model=EntityResponse)
def update_entity_route(
    kind: EntityKind,
    entity_id: str,
    entity_data: EntityUpdate,
    ctx: UserContext = Depends(get_user_context),
    db: Session = Depends(get_db)
):
    try:
        entity = update_entity(
            db, ctx, kind, entity_id,
            name=entity_data.name,
            phone=entity_data.phone
        )
        return entity_response(entity)
    except LedgerError:
        raise
    except Exception as e:
        logger.error(f"Error updating {kind.value} {entity_id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to update {kind.value}"
        )


@router.delete("/{kind}/{entity_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_entity_route(
    kind: EntityKind,
    entity_id: str,
    ctx: UserContext = Depends(get_user_context),
    db: Session = Depends(get_db)
):
    """Move to the recycle bin. Entries and totals are left as they are."""
    get_entity(db, ctx, kind, entity_id)
    recycle_bin_service.delete_entity(db, ctx, entity_id)
    return None


@router.post("/{kind}/{entity_id}/restore", response_model=EntityResponse)
def restore_entity_route(
    kind: EntityKind,
    entity_id: str,
    ctx: UserContext = Depends(get_user_context),
    db: Session = Depends(get_db)
):
    entity_store.get_entity(db, ctx, entity_id, kind=kind, include_deleted=True)
    recycle_bin_service.restore_entity(db, ctx, entity_id)
    return entity_response(get_entity(db, ctx, kind, entity_id))


# ==================== LEDGER ====================

@router.get("/{kind}/{entity_id}/entries", response_model=EntryPageResponse)
def get_entries(
    kind: EntityKind,
    entity_id: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(25, ge=1, le=200),
    order: str = Query("desc", pattern="^(asc|desc)$"),
    ctx: UserContext = Depends(get_user_context),
    db: Session = Depends(get_db)
):
    """Ledger page with the running balance after each entry."""
    entity_store.get_entity(db, ctx, entity_id, kind=kind, include_deleted=True)
    result = ledger_service.list_entries(db, ctx, entity_id, page=page, page_size=page_size, order=order)
    return EntryPageResponse(
        total=result.total,
        page=result.page,
        page_size=result.page_size,
        has_more=result.has_more,
        entries=[entry_response(row.entry, row.running_balance) for row in result.rows]
    )


@router.post("/{kind}/{entity_id}/entries", response_model=EntryResponse, status_code=status.HTTP_201_CREATED)
def add_entry_route(
    kind: EntityKind,
    entity_id: str,
    entry_data: EntryCreate,
    ctx: UserContext = Depends(get_user_context),
    db: Session = Depends(get_db)
):
    get_entity(db, ctx, kind, entity_id)
    line_items = (
        [item.model_dump() for item in entry_data.line_items]
        if entry_data.line_items else None
    )
    entry = ledger_service.add_entry(
        db, ctx, entity_id,
        kind=entry_data.kind,
        date=entry_data.date,
        amount=entry_data.amount,
        line_items=line_items,
        note=entry_data.note
    )
    return entry_response(entry)


@router.get("/{kind}/{entity_id}/export", response_model=LedgerExportResponse)
def export_ledger(
    kind: EntityKind,
    entity_id: str,
    date_from: Optional[str] = Query(None, description="YYYY-MM-DD"),
    date_to: Optional[str] = Query(None, description="YYYY-MM-DD"),
    ctx: UserContext = Depends(get_user_context),
    db: Session = Depends(get_db)
):
    """Statement rows between two dates plus opening and closing balance."""
    entity_store.get_entity(db, ctx, entity_id, kind=kind, include_deleted=True)
    result = ledger_service.export_range(db, ctx, entity_id, date_from=date_from, date_to=date_to)
    return LedgerExportResponse(
        entity=entity_response(result.entity),
        date_from=result.date_from,
        date_to=result.date_to,
        opening_balance=result.opening_balance,
        closing_balance=result.closing_balance,
        total_debit=result.total_debit,
        total_credit=result.total_credit,
        entries=[entry_response(row.entry, row.running_balance) for row in result.rows]
    )


@router.get("/{kind}/{entity_id}/bad-debt", response_model=BadDebtResponse)
def get_bad_debt(
    kind: EntityKind,
    entity_id: str,
    today: Optional[str] = Query(None, description="YYYY-MM-DD, defaults to the server date"),
    ctx: UserContext = Depends(get_user_context),
    db: Session = Depends(get_db)
):
    if kind is not EntityKind.customer:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Bad debt is only tracked for customers"
        )
    entity_store.get_entity(db, ctx, entity_id, kind=kind, include_deleted=True)
    result = ledger_service.bad_debt_for(db, ctx, entity_id, today=today)
    return BadDebtResponse(
        entity_id=entity_id,
        has_bad_debt=result.has_bad_debt,
        bad_debt_amount=result.bad_debt_amount,
        oldest_unpaid_date=result.oldest_unpaid_date
    )


@router.post("/{kind}/{entity_id}/recalculate", response_model=RecalculationResponse)
def recalculate_entity(
    kind: EntityKind,
    entity_id: str,
    ctx: UserContext = Depends(get_user_context),
    db: Session = Depends(get_db)
):
    """Rebuild stored totals from the ledger."""
    entity_store.get_entity(db, ctx, entity_id, kind=kind, include_deleted=True)
    result = reconciliation_service.recalculate(db, ctx, entity_id)
    return RecalculationResponse.model_validate(result)
