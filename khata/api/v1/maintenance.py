from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import Optional
from khata.core.context import UserContext
from khata.core.dependencies import get_db, get_user_context
from khata.services import reconciliation_service
from khata.schemas.report import (
    BatchReportResponse,
    FailedRecalculation,
    RecalculateAllRequest,
    RecalculationResponse,
)

router = APIRouter()


@router.post("/recalculate", response_model=BatchReportResponse)
def recalculate_all_route(
    request: Optional[RecalculateAllRequest] = None,
    ctx: UserContext = Depends(get_user_context),
    db: Session = Depends(get_db)
):
    """
    Recalculate the totals of every live customer and supplier (or the kinds
    given). One entity failing does not stop the batch; failures are listed.
    """
    request = request or RecalculateAllRequest()
    report = reconciliation_service.recalculate_all(db, ctx, kinds=request.kinds)
    return BatchReportResponse(
        processed=report.processed,
        succeeded=[RecalculationResponse.model_validate(r) for r in report.succeeded],
        failed=[FailedRecalculation(**f) for f in report.failed]
    )
