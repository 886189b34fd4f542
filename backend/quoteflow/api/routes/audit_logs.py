from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from quoteflow import models
from quoteflow.api.deps import require_permission
from quoteflow.database import get_db
from quoteflow.models.domain import AuditAction
from quoteflow.schemas import AuditLogRead, PageParams, Pagination, ok

router = APIRouter(prefix="/audit-logs", tags=["audit"])


@router.get("")
def list_audit_logs(
    entity: Optional[str] = Query(None),
    entity_id: Optional[int] = Query(None),
    inquiry_id: Optional[int] = Query(None),
    user_id: Optional[int] = Query(None),
    action: Optional[AuditAction] = Query(None),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission("audit-logs", "read")),
):
    paging = PageParams(page=page, limit=limit)
    q = db.query(models.AuditLog)
    if entity:
        q = q.filter(models.AuditLog.entity == entity)
    if entity_id is not None:
        q = q.filter(models.AuditLog.entity_id == entity_id)
    if inquiry_id is not None:
        q = q.filter(models.AuditLog.inquiry_id == inquiry_id)
    if user_id is not None:
        q = q.filter(models.AuditLog.user_id == user_id)
    if action is not None:
        q = q.filter(models.AuditLog.action == action)
    if date_from is not None:
        q = q.filter(models.AuditLog.created_at >= date_from)
    if date_to is not None:
        q = q.filter(models.AuditLog.created_at <= date_to)

    total = q.count()
    rows = (
        q.order_by(models.AuditLog.created_at.desc(), models.AuditLog.id.desc())
        .offset(paging.offset)
        .limit(paging.limit)
        .all()
    )
    return ok(
        [AuditLogRead.model_validate(r) for r in rows],
        pagination=Pagination.build(page=page, limit=limit, total=total),
    )
