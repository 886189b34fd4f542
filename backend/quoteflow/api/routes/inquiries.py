from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session, joinedload, selectinload

from quoteflow import models
from quoteflow.api.deps import (
    commit_and_publish,
    get_cache,
    get_email_sender,
    get_request_context,
    require_permission,
)
from quoteflow.config import settings
from quoteflow.core.permissions import can_access_inquiry, can_modify_inquiry
from quoteflow.database import get_db
from quoteflow.models.domain import InquiryStatus, Priority
from quoteflow.schemas import (
    AttachmentCreate,
    AttachmentRead,
    InquiryCreate,
    InquiryRead,
    InquiryUpdate,
    PageParams,
    Pagination,
    ok,
)
from quoteflow.services import inquiries as inquiry_service
from quoteflow.services import quotes as quote_service
from quoteflow.services.audit import RequestContext
from quoteflow.services.cache import Cache, cache_key
from quoteflow.services.email import EmailSender

router = APIRouter(prefix="/inquiries", tags=["inquiries"])

_READER = Depends(require_permission("inquiries", "read"))
_WRITER = Depends(require_permission("inquiries", "write"))


def _with_details(q):
    return q.options(
        joinedload(models.Inquiry.customer),
        joinedload(models.Inquiry.created_by),
        selectinload(models.Inquiry.items).selectinload(models.InquiryItem.cost_calculation),
        selectinload(models.Inquiry.items).joinedload(models.InquiryItem.assigned_to),
    )


def _get_readable(db: Session, inquiry_id: int, user: models.User) -> models.Inquiry:
    inquiry = _with_details(db.query(models.Inquiry)).filter(models.Inquiry.id == inquiry_id).first()
    if not inquiry:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Inquiry not found")
    if not can_access_inquiry(user, inquiry):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return inquiry


@router.get("")
def list_inquiries(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status_filter: Optional[List[InquiryStatus]] = Query(None, alias="status"),
    priority: Optional[List[Priority]] = Query(None),
    assigned_to_id: Optional[int] = Query(None),
    customer_id: Optional[int] = Query(None),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    search: Optional[str] = Query(None, max_length=200),
    db: Session = Depends(get_db),
    cache: Cache = Depends(get_cache),
    current_user: models.User = _READER,
):
    filters = inquiry_service.InquiryFilters(
        status=status_filter,
        priority=priority,
        assigned_to_id=assigned_to_id,
        customer_id=customer_id,
        date_from=date_from,
        date_to=date_to,
        search=search,
    )
    paging = PageParams(page=page, limit=limit)
    key = cache_key("inquiries", current_user.id, {**filters.cache_params(), "page": page, "limit": limit})
    cached = cache.get(key)
    if cached is not None:
        return cached

    q = inquiry_service.filter_inquiries(
        inquiry_service.scope_inquiries(db.query(models.Inquiry), current_user), filters
    )
    total = q.count()
    rows = (
        _with_details(q)
        .order_by(models.Inquiry.created_at.desc(), models.Inquiry.id.desc())
        .offset(paging.offset)
        .limit(paging.limit)
        .all()
    )
    body = ok(
        [InquiryRead.model_validate(r) for r in rows],
        pagination=Pagination.build(page=page, limit=limit, total=total),
    )
    cache.set(key, body, settings.cache_ttl_inquiries_seconds)
    return body


@router.post("", status_code=status.HTTP_201_CREATED)
def create_inquiry(
    payload: InquiryCreate,
    db: Session = Depends(get_db),
    cache: Cache = Depends(get_cache),
    sender: EmailSender = Depends(get_email_sender),
    ctx: RequestContext = Depends(get_request_context),
    current_user: models.User = _WRITER,
):
    inquiry = inquiry_service.create_inquiry(
        db,
        actor=current_user,
        title=payload.title,
        customer_id=payload.customer_id,
        items=[i.model_dump() for i in payload.items],
        description=payload.description,
        priority=payload.priority,
        deadline=payload.deadline,
        ctx=ctx,
    )
    commit_and_publish(db, sender=sender, cache=cache)
    return ok(
        InquiryRead.model_validate(_get_readable(db, inquiry.id, current_user)),
        message="Inquiry created",
    )


@router.get("/{inquiry_id}")
def get_inquiry(
    inquiry_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = _READER,
):
    return ok(InquiryRead.model_validate(_get_readable(db, inquiry_id, current_user)))


@router.put("/{inquiry_id}")
def update_inquiry(
    inquiry_id: int,
    payload: InquiryUpdate,
    db: Session = Depends(get_db),
    cache: Cache = Depends(get_cache),
    sender: EmailSender = Depends(get_email_sender),
    ctx: RequestContext = Depends(get_request_context),
    current_user: models.User = _READER,
):
    inquiry = _get_readable(db, inquiry_id, current_user)
    inquiry_service.update_inquiry(
        db,
        actor=current_user,
        inquiry=inquiry,
        changes=payload.model_dump(exclude_unset=True),
        ctx=ctx,
    )
    commit_and_publish(db, sender=sender, cache=cache)
    return ok(
        InquiryRead.model_validate(_get_readable(db, inquiry_id, current_user)),
        message="Inquiry updated",
    )


@router.delete("/{inquiry_id}")
def delete_inquiry(
    inquiry_id: int,
    db: Session = Depends(get_db),
    cache: Cache = Depends(get_cache),
    sender: EmailSender = Depends(get_email_sender),
    ctx: RequestContext = Depends(get_request_context),
    current_user: models.User = _WRITER,
):
    inquiry = _get_readable(db, inquiry_id, current_user)
    inquiry_service.delete_inquiry(db, actor=current_user, inquiry=inquiry, ctx=ctx)
    commit_and_publish(db, sender=sender, cache=cache)
    return ok(None, message="Inquiry deleted")


@router.post("/{inquiry_id}/submit")
def submit_inquiry(
    inquiry_id: int,
    db: Session = Depends(get_db),
    cache: Cache = Depends(get_cache),
    sender: EmailSender = Depends(get_email_sender),
    ctx: RequestContext = Depends(get_request_context),
    current_user: models.User = _WRITER,
):
    inquiry = _get_readable(db, inquiry_id, current_user)
    inquiry_service.submit_inquiry(db, actor=current_user, inquiry=inquiry, ctx=ctx)
    commit_and_publish(db, sender=sender, cache=cache)
    return ok(
        InquiryRead.model_validate(_get_readable(db, inquiry_id, current_user)),
        message="Inquiry submitted",
    )


@router.post("/{inquiry_id}/convert")
def convert_inquiry(
    inquiry_id: int,
    db: Session = Depends(get_db),
    cache: Cache = Depends(get_cache),
    sender: EmailSender = Depends(get_email_sender),
    ctx: RequestContext = Depends(get_request_context),
    current_user: models.User = Depends(require_permission("quotes", "write")),
):
    inquiry = _get_readable(db, inquiry_id, current_user)
    quote_service.convert_inquiry(db, actor=current_user, inquiry=inquiry, ctx=ctx)
    commit_and_publish(db, sender=sender, cache=cache)
    return ok(
        InquiryRead.model_validate(_get_readable(db, inquiry_id, current_user)),
        message="Inquiry converted",
    )


@router.get("/{inquiry_id}/attachments")
def list_attachments(
    inquiry_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = _READER,
):
    inquiry = _get_readable(db, inquiry_id, current_user)
    rows = (
        db.query(models.Attachment)
        .filter(models.Attachment.inquiry_id == inquiry.id)
        .order_by(models.Attachment.id.asc())
        .all()
    )
    return ok([AttachmentRead.model_validate(r) for r in rows])


@router.post("/{inquiry_id}/attachments", status_code=status.HTTP_201_CREATED)
def add_attachment(
    inquiry_id: int,
    payload: AttachmentCreate,
    db: Session = Depends(get_db),
    current_user: models.User = _WRITER,
):
    inquiry = _get_readable(db, inquiry_id, current_user)
    if not can_modify_inquiry(current_user, inquiry):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    att = inquiry_service.add_attachment(
        db,
        actor=current_user,
        inquiry=inquiry,
        file_name=payload.file_name,
        url=payload.url,
        size=payload.size,
        mime_type=payload.mime_type,
    )
    db.commit()
    db.refresh(att)
    return ok(AttachmentRead.model_validate(att), message="Attachment added")
