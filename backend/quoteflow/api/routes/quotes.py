from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from quoteflow import models
from quoteflow.api.deps import (
    commit_and_publish,
    get_cache,
    get_email_sender,
    get_request_context,
    require_permission,
    require_roles,
)
from quoteflow.database import get_db
from quoteflow.models.domain import QuoteStatus, UserRole
from quoteflow.schemas import PageParams, Pagination, QuoteCreate, QuoteDecision, QuoteRead, ok
from quoteflow.services import quotes as quote_service
from quoteflow.services.audit import RequestContext
from quoteflow.services.cache import Cache
from quoteflow.services.email import EmailSender

router = APIRouter(prefix="/quotes", tags=["quotes"])

_READER = Depends(require_permission("quotes", "read"))
_WRITER = Depends(require_permission("quotes", "write"))


def _get_visible(db: Session, quote_id: int, user: models.User) -> models.Quote:
    quote = db.get(models.Quote, quote_id)
    if not quote:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Quote not found")
    if user.role == UserRole.SALES and quote.inquiry.created_by_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return quote


@router.get("")
def list_quotes(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = Query(None, max_length=200),
    status_filter: Optional[QuoteStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    current_user: models.User = _READER,
):
    paging = PageParams(page=page, limit=limit)
    q = quote_service.list_quotes(
        db, actor=current_user, search=search, status_filter=status_filter
    )
    total = q.count()
    rows = q.offset(paging.offset).limit(paging.limit).all()
    return ok(
        [QuoteRead.model_validate(r) for r in rows],
        pagination=Pagination.build(page=page, limit=limit, total=total),
    )


@router.post("", status_code=status.HTTP_201_CREATED)
def create_quote(
    payload: QuoteCreate,
    db: Session = Depends(get_db),
    cache: Cache = Depends(get_cache),
    sender: EmailSender = Depends(get_email_sender),
    ctx: RequestContext = Depends(get_request_context),
    current_user: models.User = Depends(require_roles(UserRole.SALES, UserRole.ADMIN)),
):
    result = quote_service.create_quote(
        db,
        actor=current_user,
        inquiry_id=payload.inquiry_id,
        title=payload.title,
        valid_until=payload.valid_until,
        margin=payload.margin,
        description=payload.description,
        terms=payload.terms,
        notes=payload.notes,
        ctx=ctx,
    )
    quote_id = result.quote.id
    commit_and_publish(db, sender=sender, cache=cache, emails=result.emails)
    return ok(QuoteRead.model_validate(db.get(models.Quote, quote_id)), message="Quote created")


@router.get("/{quote_id}")
def get_quote(
    quote_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = _READER,
):
    return ok(QuoteRead.model_validate(_get_visible(db, quote_id, current_user)))


@router.post("/{quote_id}/send")
def send_quote(
    quote_id: int,
    db: Session = Depends(get_db),
    cache: Cache = Depends(get_cache),
    sender: EmailSender = Depends(get_email_sender),
    ctx: RequestContext = Depends(get_request_context),
    current_user: models.User = _WRITER,
):
    quote = _get_visible(db, quote_id, current_user)
    result = quote_service.send_quote(db, actor=current_user, quote=quote, ctx=ctx)
    commit_and_publish(db, sender=sender, cache=cache, emails=result.emails)
    return ok(QuoteRead.model_validate(db.get(models.Quote, quote_id)), message="Quote sent")


@router.post("/{quote_id}/decision")
def decide_quote(
    quote_id: int,
    payload: QuoteDecision,
    db: Session = Depends(get_db),
    cache: Cache = Depends(get_cache),
    sender: EmailSender = Depends(get_email_sender),
    ctx: RequestContext = Depends(get_request_context),
    current_user: models.User = _WRITER,
):
    quote = _get_visible(db, quote_id, current_user)
    result = quote_service.decide_quote(
        db, actor=current_user, quote=quote, decision=payload.decision, ctx=ctx
    )
    commit_and_publish(db, sender=sender, cache=cache, emails=result.emails)
    return ok(
        QuoteRead.model_validate(db.get(models.Quote, quote_id)),
        message=f"Quote {QuoteStatus(payload.decision).value.lower()}",
    )
