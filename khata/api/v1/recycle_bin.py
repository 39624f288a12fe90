from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional
from khata.core.context import UserContext
from khata.core.dependencies import get_db, get_user_context
from khata.core.exceptions import PartialWriteError
from khata.models.entity import EntityKind
from khata.services import recycle_bin_service
from khata.services.recycle_bin_service import ENTRY, PARENT
from khata.schemas.recycle_bin import DeletedItemResponse, PurgeResponse, RecycleBinResponse
from khata.logger_config import logger

router = APIRouter()


@router.get("", response_model=RecycleBinResponse)
def get_recycle_bin(
    kind: Optional[EntityKind] = Query(None),
    item_type: Optional[str] = Query(None, pattern=f"^({PARENT}|{ENTRY})$"),
    ctx: UserContext = Depends(get_user_context),
    db: Session = Depends(get_db)
):
    """
    Deleted parents and entries, newest deletion first.
    Anything older than PURGE_AFTER_DAYS is purged before listing.
    """
    auto_purged = 0
    try:
        report = recycle_bin_service.auto_purge(db, ctx)
        auto_purged = report.entities + report.entries
    except PartialWriteError as e:
        # The bin is still listed; the next visit retries the cleanup
        logger.error(f"Auto purge failed for user {ctx.user_id}: {e.message}")

    items = recycle_bin_service.list_deleted(db, ctx, kind=kind, item_type=item_type)
    return RecycleBinResponse(
        total=len(items),
        auto_purged=auto_purged,
        items=[DeletedItemResponse.model_validate(item) for item in items]
    )


@router.delete("", response_model=PurgeResponse)
def empty_recycle_bin(
    ctx: UserContext = Depends(get_user_context),
    db: Session = Depends(get_db)
):
    """Permanently delete everything in the bin."""
    report = recycle_bin_service.empty_bin(db, ctx)
    return PurgeResponse.model_validate(report)


@router.delete("/entities/{entity_id}", response_model=PurgeResponse)
def purge_entity_route(
    entity_id: str,
    ctx: UserContext = Depends(get_user_context),
    db: Session = Depends(get_db)
):
    """Permanently delete a deleted parent together with all of its entries."""
    report = recycle_bin_service.purge_entity(db, ctx, entity_id)
    return PurgeResponse.model_validate(report)
