from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session, joinedload

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
from quoteflow.models.domain import ApprovalStatus, ApprovalType, UserRole
from quoteflow.schemas import ApprovalCreate, ApprovalRead, PageParams, Pagination, ok
from quoteflow.services import approvals as approval_service
from quoteflow.services.audit import RequestContext
from quoteflow.services.cache import Cache
from quoteflow.services.email import EmailSender

router = APIRouter(prefix="/approvals", tags=["approvals"])

_DECISION_MESSAGES = {
    ApprovalStatus.APPROVED: "Cost calculation approved",
    ApprovalStatus.REJECTED: "Cost calculation rejected",
    ApprovalStatus.PENDING: "Approval recorded as pending",
}


@router.get("")
def list_approvals(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status_filter: Optional[ApprovalStatus] = Query(None, alias="status"),
    type_filter: Optional[ApprovalType] = Query(None, alias="type"),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission("approvals", "read")),
):
    paging = PageParams(page=page, limit=limit)
    q = approval_service.list_approvals(
        db, actor=current_user, status_filter=status_filter, type_filter=type_filter
    )
    total = q.count()
    rows = (
        q.options(joinedload(models.Approval.approver))
        .offset(paging.offset)
        .limit(paging.limit)
        .all()
    )
    return ok(
        [ApprovalRead.model_validate(r) for r in rows],
        pagination=Pagination.build(page=page, limit=limit, total=total),
    )


@router.post("", status_code=status.HTTP_201_CREATED)
def create_approval(
    payload: ApprovalCreate,
    db: Session = Depends(get_db),
    cache: Cache = Depends(get_cache),
    sender: EmailSender = Depends(get_email_sender),
    ctx: RequestContext = Depends(get_request_context),
    current_user: models.User = Depends(require_roles(UserRole.MANAGER, UserRole.ADMIN)),
):
    result = approval_service.decide_cost_calculation(
        db,
        actor=current_user,
        cost_calculation_id=payload.cost_calculation_id,
        decision=payload.status,
        comments=payload.comments,
        ctx=ctx,
    )
    approval_id = result.approval.id
    ready = result.inquiry_ready_for_quote
    commit_and_publish(db, sender=sender, cache=cache, emails=result.emails)
    approval = db.get(models.Approval, approval_id)
    return ok(
        {
            "approval": ApprovalRead.model_validate(approval),
            "inquiry_ready_for_quote": ready,
        },
        message=_DECISION_MESSAGES[ApprovalStatus(payload.status)],
    )
