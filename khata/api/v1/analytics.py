from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional
from khata.core.context import UserContext
from khata.core.dependencies import get_db, get_user_context
from khata.services import analytics_service
from khata.schemas.report import AnalyticsResponse

router = APIRouter()


@router.get("/summary", response_model=AnalyticsResponse)
def get_summary(
    date_from: Optional[str] = Query(None, description="YYYY-MM-DD"),
    date_to: Optional[str] = Query(None, description="YYYY-MM-DD"),
    ctx: UserContext = Depends(get_user_context),
    db: Session = Depends(get_db)
):
    """Sales, purchases, expenses and profit for a period, with monthly buckets."""
    summary = analytics_service.summarize(db, ctx, date_from=date_from, date_to=date_to)
    return AnalyticsResponse.model_validate(summary)
