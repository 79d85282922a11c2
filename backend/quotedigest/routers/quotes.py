from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
import logging

from quotedigest.core.auth import get_current_user_id
from quotedigest.database import get_db
from quotedigest.models import Quote
from quotedigest.schemas.quote import QuoteCreate, QuoteReanalyze, QuoteResponse
from quotedigest.services.quote_service import reanalyze_quote, submit_quote

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/quotes", tags=["quotes"])


@router.post("", response_model=QuoteResponse, status_code=status.HTTP_201_CREATED)
def create_quote(
    payload: QuoteCreate,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        return submit_quote(
            db,
            user_id=user_id,
            text=payload.text,
            author=payload.author,
            source=payload.source,
            analysis=payload.analysis.model_dump() if payload.analysis else None,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))


@router.post("/{quote_id}/reanalyze", response_model=QuoteResponse)
def reanalyze(
    quote_id: str,
    payload: QuoteReanalyze,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Re-run categorization for one of the caller's quotes."""
    owned = db.query(Quote.id).filter(Quote.id == quote_id, Quote.user_id == user_id).one_or_none()
    if owned is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Quote not found")
    return reanalyze_quote(db, quote_id, payload.analysis.model_dump() if payload.analysis else None)
