"""In-app notifications and the e-mail outbox.

Both are written inside the caller's transaction. E-mail delivery happens after
commit via `dispatch_pending_emails`, so a mail failure never rolls back the
workflow change that caused it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from sqlalchemy.orm import Session

from quoteflow import models
from quoteflow.models.domain import NotificationType, OutboxStatus, UserRole
from quoteflow.services.email import EmailDeliveryError, EmailSender, UnknownTemplateError

logger = logging.getLogger("quoteflow.notifications")


@dataclass(frozen=True)
class DispatchSummary:
    sent: int
    failed: int
    pending: int


def active_users_with_role(db: Session, role: UserRole) -> list[models.User]:
    return (
        db.query(models.User)
        .filter(models.User.role == role, models.User.is_active.is_(True))
        .order_by(models.User.id.asc())
        .all()
    )


def notify(
    db: Session,
    *,
    user_id: int,
    type: NotificationType,
    title: str,
    message: str,
    data: Optional[dict[str, Any]] = None,
) -> models.Notification:
    n = models.Notification(
        type=type,
        title=title,
        message=message,
        user_id=int(user_id),
        data=data or None,
        is_read=False,
    )
    db.add(n)
    return n


def notify_users(
    db: Session,
    users: Iterable[models.User],
    *,
    type: NotificationType,
    title: str,
    message: str,
    data: Optional[dict[str, Any]] = None,
) -> list[models.Notification]:
    return [
        notify(db, user_id=u.id, type=type, title=title, message=message, data=data)
        for u in users
    ]


def enqueue_email(
    db: Session,
    template: str,
    recipients: Iterable[str],
    template_data: Optional[dict[str, Any]] = None,
) -> Optional[models.EmailOutbox]:
    to = [r for r in (str(x).strip() for x in recipients) if r]
    if not to:
        return None
    row = models.EmailOutbox(
        template=template,
        recipients=to,
        template_data=template_data or {},
        status=OutboxStatus.pending,
        attempts=0,
    )
    db.add(row)
    return row


def mark_read(db: Session, notification: models.Notification) -> models.Notification:
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = datetime.now(timezone.utc)
        db.add(notification)
    return notification


def mark_all_read(db: Session, user_id: int) -> int:
    return int(
        db.query(models.Notification)
        .filter(models.Notification.user_id == int(user_id), models.Notification.is_read.is_(False))
        .update(
            {"is_read": True, "read_at": datetime.now(timezone.utc)},
            synchronize_session=False,
        )
        or 0
    )


def _deliver(row: models.EmailOutbox, sender: EmailSender, max_attempts: int) -> bool:
    row.attempts = int(row.attempts or 0) + 1
    try:
        sender.send(row.template, list(row.recipients or []), dict(row.template_data or {}))
    except UnknownTemplateError as e:
        row.status = OutboxStatus.failed
        row.last_error = str(e)
        logger.error("email_dispatch_failed", extra={"outbox_id": row.id, "error": str(e)})
        return False
    except EmailDeliveryError as e:
        row.last_error = str(e)
        row.status = OutboxStatus.failed if row.attempts >= max_attempts else OutboxStatus.pending
        logger.warning(
            "email_dispatch_failed",
            extra={"outbox_id": row.id, "attempts": row.attempts, "error": str(e)},
        )
        return False

    row.status = OutboxStatus.sent
    row.sent_at = datetime.now(timezone.utc)
    row.last_error = None
    return True


def dispatch_pending_emails(
    db: Session,
    sender: EmailSender,
    *,
    max_attempts: int = 5,
    ids: Optional[Iterable[int]] = None,
    limit: int = 100,
) -> DispatchSummary:
    """Deliver pending outbox rows and commit the result of each attempt.

    `ids` restricts dispatch to rows written by the current request.
    """

    q = db.query(models.EmailOutbox).filter(models.EmailOutbox.status == OutboxStatus.pending)
    if ids is not None:
        id_list = [int(i) for i in ids if i is not None]
        if not id_list:
            return DispatchSummary(sent=0, failed=0, pending=0)
        q = q.filter(models.EmailOutbox.id.in_(id_list))
    rows = q.order_by(models.EmailOutbox.id.asc()).limit(limit).all()

    sent = failed = pending = 0
    for row in rows:
        if _deliver(row, sender, max_attempts):
            sent += 1
        elif row.status == OutboxStatus.failed:
            failed += 1
        else:
            pending += 1
        db.add(row)
        db.commit()

    if rows:
        logger.info(
            "email_dispatch_summary",
            extra={"sent": sent, "failed": failed, "pending": pending},
        )
    return DispatchSummary(sent=sent, failed=failed, pending=pending)


def outbox_ids(rows: Iterable[Optional[models.EmailOutbox]]) -> list[int]:
    return [r.id for r in rows if r is not None and r.id is not None]


def dispatch_after_commit(
    db: Session,
    sender: EmailSender,
    emails: Iterable[Optional[models.EmailOutbox]],
    *,
    max_attempts: int = 5,
) -> None:
    """Best-effort delivery of the outbox rows a request just committed.

    Rows that fail here stay pending for `python -m quoteflow.scripts.dispatch_outbox`.
    """

    ids = outbox_ids(emails)
    if not ids:
        return
    try:
        dispatch_pending_emails(db, sender, max_attempts=max_attempts, ids=ids)
    except Exception:
        db.rollback()
        logger.exception("email_dispatch_error", extra={"outbox_ids": ids})
