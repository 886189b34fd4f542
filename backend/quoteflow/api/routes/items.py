from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session, joinedload

from quoteflow import models
from quoteflow.api.deps import (
    commit_and_publish,
    get_cache,
    get_current_user,
    get_email_sender,
    get_request_context,
    require_permission,
)
from quoteflow.config import settings
from quoteflow.core.permissions import can_access_item, has_permission
from quoteflow.database import get_db
from quoteflow.models.domain import ItemStatus, UserRole
from quoteflow.schemas import (
    AssignRequest,
    InquiryItemRead,
    ItemUpdate,
    PageParams,
    Pagination,
    UnassignRequest,
    UserBrief,
    ok,
)
from quoteflow.services import assignments as assignment_service
from quoteflow.services import inquiries as inquiry_service
from quoteflow.services.audit import RequestContext
from quoteflow.services.cache import Cache, cache_key
from quoteflow.services.email import EmailSender

router = APIRouter(prefix="/items", tags=["items"])

_ASSIGNER = Depends(require_permission("inquiry-items", "assign"))


def _with_details(q):
    return q.options(
        joinedload(models.InquiryItem.assigned_to),
        joinedload(models.InquiryItem.cost_calculation),
        joinedload(models.InquiryItem.inquiry),
    )


def _get_readable(db: Session, item_id: int, user: models.User) -> models.InquiryItem:
    item = _with_details(db.query(models.InquiryItem)).filter(models.InquiryItem.id == item_id).first()
    if not item:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Inquiry item not found")
    if not can_access_item(user, item):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return item


@router.get("")
def list_items(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status_filter: Optional[List[ItemStatus]] = Query(None, alias="status"),
    inquiry_id: Optional[int] = Query(None),
    assigned_to_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    cache: Cache = Depends(get_cache),
    current_user: models.User = Depends(get_current_user),
):
    if current_user.role != UserRole.SALES and not has_permission(
        current_user.role, "inquiry-items", "read"
    ):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")

    key = cache_key(
        "items",
        current_user.id,
        {
            "status": sorted(s.value for s in status_filter or []),
            "inquiry_id": inquiry_id,
            "assigned_to_id": assigned_to_id,
            "page": page,
            "limit": limit,
        },
    )
    cached = cache.get(key)
    if cached is not None:
        return cached

    paging = PageParams(page=page, limit=limit)
    q = inquiry_service.scope_items(db.query(models.InquiryItem), current_user)
    if status_filter:
        q = q.filter(models.InquiryItem.status.in_(status_filter))
    if inquiry_id is not None:
        q = q.filter(models.InquiryItem.inquiry_id == inquiry_id)
    if assigned_to_id is not None:
        q = q.filter(models.InquiryItem.assigned_to_id == assigned_to_id)

    total = q.count()
    rows = (
        _with_details(q)
        .order_by(models.InquiryItem.inquiry_id.desc(), models.InquiryItem.id.asc())
        .offset(paging.offset)
        .limit(paging.limit)
        .all()
    )
    body = ok(
        [InquiryItemRead.model_validate(r) for r in rows],
        pagination=Pagination.build(page=page, limit=limit, total=total),
    )
    cache.set(key, body, settings.cache_ttl_inquiries_seconds)
    return body


@router.post("/assign")
def assign_items(
    payload: AssignRequest,
    db: Session = Depends(get_db),
    cache: Cache = Depends(get_cache),
    sender: EmailSender = Depends(get_email_sender),
    ctx: RequestContext = Depends(get_request_context),
    current_user: models.User = _ASSIGNER,
):
    result = assignment_service.assign_items(
        db,
        actor=current_user,
        item_ids=payload.item_ids,
        assignee_id=payload.assignee_id,
        ctx=ctx,
    )
    item_ids = [i.id for i in result.items]
    assignee = UserBrief.model_validate(result.assignee)
    commit_and_publish(db, sender=sender, cache=cache, emails=result.emails)
    items = (
        _with_details(db.query(models.InquiryItem))
        .filter(models.InquiryItem.id.in_(item_ids))
        .order_by(models.InquiryItem.id.asc())
        .all()
    )
    return ok(
        {
            "items": [InquiryItemRead.model_validate(i) for i in items],
            "assignee": assignee,
            "inquiry_ids": result.inquiry_ids,
        },
        message=f"{len(items)} item(s) assigned to {assignee.name}",
    )


@router.post("/unassign")
def unassign_items(
    payload: UnassignRequest,
    db: Session = Depends(get_db),
    cache: Cache = Depends(get_cache),
    sender: EmailSender = Depends(get_email_sender),
    ctx: RequestContext = Depends(get_request_context),
    current_user: models.User = _ASSIGNER,
):
    result = assignment_service.unassign_items(
        db, actor=current_user, item_ids=payload.item_ids, ctx=ctx
    )
    item_ids = [i.id for i in result.items]
    commit_and_publish(db, sender=sender, cache=cache, emails=result.emails)
    items = (
        _with_details(db.query(models.InquiryItem))
        .filter(models.InquiryItem.id.in_(item_ids))
        .order_by(models.InquiryItem.id.asc())
        .all()
    )
    return ok(
        {"items": [InquiryItemRead.model_validate(i) for i in items]},
        message=f"{len(items)} item(s) unassigned",
    )


@router.get("/{item_id}")
def get_item(
    item_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    return ok(InquiryItemRead.model_validate(_get_readable(db, item_id, current_user)))


@router.put("/{item_id}")
def update_item(
    item_id: int,
    payload: ItemUpdate,
    db: Session = Depends(get_db),
    cache: Cache = Depends(get_cache),
    sender: EmailSender = Depends(get_email_sender),
    ctx: RequestContext = Depends(get_request_context),
    current_user: models.User = Depends(get_current_user),
):
    item = _get_readable(db, item_id, current_user)
    inquiry_service.update_item(
        db,
        actor=current_user,
        item=item,
        changes=payload.model_dump(exclude_unset=True),
        ctx=ctx,
    )
    commit_and_publish(db, sender=sender, cache=cache)
    return ok(
        InquiryItemRead.model_validate(_get_readable(db, item_id, current_user)),
        message="Item updated",
    )
