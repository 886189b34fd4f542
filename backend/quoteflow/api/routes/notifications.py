from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from quoteflow import models
from quoteflow.api.deps import get_current_user
from quoteflow.database import get_db
from quoteflow.schemas import NotificationRead, PageParams, Pagination, ok
from quoteflow.services import notifications as notification_service

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("")
def list_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    unread: Optional[bool] = Query(None, description="Only unread (true) or only read (false)."),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    paging = PageParams(page=page, limit=limit)
    q = db.query(models.Notification).filter(models.Notification.user_id == current_user.id)
    if unread is not None:
        q = q.filter(models.Notification.is_read.is_(not unread))
    total = q.count()
    unread_count = (
        db.query(models.Notification)
        .filter(
            models.Notification.user_id == current_user.id,
            models.Notification.is_read.is_(False),
        )
        .count()
    )
    rows = (
        q.order_by(models.Notification.created_at.desc(), models.Notification.id.desc())
        .offset(paging.offset)
        .limit(paging.limit)
        .all()
    )
    body = ok(
        [NotificationRead.model_validate(r) for r in rows],
        pagination=Pagination.build(page=page, limit=limit, total=total),
    )
    body["unread_count"] = unread_count
    return body


# Declared before /{notification_id}/read so "read-all" is never taken for an id.
@router.put("/read-all")
def mark_all_notifications_read(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    count = notification_service.mark_all_read(db, current_user.id)
    db.commit()
    return ok({"updated": count}, message="All notifications marked as read")


@router.put("/{notification_id}/read")
def mark_notification_read(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    n = db.get(models.Notification, notification_id)
    # Other users' notifications are reported as missing.
    if not n or n.user_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    notification_service.mark_read(db, n)
    db.commit()
    db.refresh(n)
    return ok(NotificationRead.model_validate(n), message="Notification marked as read")
