from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session
from khata.core.context import UserContext
from khata.core.dependencies import get_db, get_user_context
from khata.services import backup_service
from khata.schemas.backup import ImportReportResponse
from khata.logger_config import logger

router = APIRouter()


@router.get("")
def export_backup_route(
    ctx: UserContext = Depends(get_user_context),
    db: Session = Depends(get_db)
):
    """Full JSON backup of the user's entities, ledgers and products."""
    logger.info(f"Backup requested by user {ctx.user_id}")
    return backup_service.export_backup(db, ctx)


@router.post("", response_model=ImportReportResponse)
def import_backup_route(
    document: dict = Body(...),
    ctx: UserContext = Depends(get_user_context),
    db: Session = Depends(get_db)
):
    """Restore a backup. Totals are recalculated from the imported ledgers."""
    report = backup_service.import_backup(db, ctx, document)
    return ImportReportResponse.model_validate(report)
