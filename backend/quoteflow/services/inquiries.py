from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Optional

from fastapi import HTTPException, status
from sqlalchemy import or_
from sqlalchemy.orm import Query, Session

from quoteflow import models
from quoteflow.core.permissions import can_modify_inquiry, can_modify_item
from quoteflow.models.domain import (
    AuditAction,
    InquiryStatus,
    ItemStatus,
    NotificationType,
    Priority,
    UserRole,
)
from quoteflow.services import inquiry_workflow
from quoteflow.services.audit import RequestContext, record_audit, snapshot
from quoteflow.services.document_numbering import next_inquiry_number
from quoteflow.services.notifications import active_users_with_role, notify_users

_SNAPSHOT_FIELDS = (
    "title",
    "description",
    "priority",
    "status",
    "deadline",
    "customer_id",
    "assigned_to_id",
)
_EDITABLE_FIELDS = ("title", "description", "priority", "deadline", "customer_id", "assigned_to_id")


@dataclass(frozen=True)
class InquiryFilters:
    status: Optional[list[InquiryStatus]] = None
    priority: Optional[list[Priority]] = None
    assigned_to_id: Optional[int] = None
    customer_id: Optional[int] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    search: Optional[str] = None

    def cache_params(self) -> dict[str, Any]:
        return {
            "status": sorted(s.value for s in self.status or []),
            "priority": sorted(p.value for p in self.priority or []),
            "assigned_to_id": self.assigned_to_id,
            "customer_id": self.customer_id,
            "date_from": self.date_from.isoformat() if self.date_from else None,
            "date_to": self.date_to.isoformat() if self.date_to else None,
            "search": (self.search or "").strip() or None,
        }


def scope_inquiries(q: Query, actor: models.User) -> Query:
    """Restrict an inquiry query to what `actor` may see."""

    role = actor.role
    if role == UserRole.SALES:
        return q.filter(models.Inquiry.created_by_id == actor.id)
    if role == UserRole.VPP:
        return q.filter(
            or_(
                models.Inquiry.assigned_to_id == actor.id,
                models.Inquiry.status == InquiryStatus.SUBMITTED,
            )
        )
    if role == UserRole.VP:
        return q.filter(models.Inquiry.items.any(models.InquiryItem.assigned_to_id == actor.id))
    return q


def scope_items(q: Query, actor: models.User) -> Query:
    """Restrict an item query: VP sees its own items, SALES the items of its inquiries."""

    if actor.role == UserRole.VP:
        return q.filter(models.InquiryItem.assigned_to_id == actor.id)
    if actor.role == UserRole.SALES:
        return q.filter(models.InquiryItem.inquiry.has(models.Inquiry.created_by_id == actor.id))
    return q


def filter_inquiries(q: Query, filters: InquiryFilters) -> Query:
    if filters.status:
        q = q.filter(models.Inquiry.status.in_(filters.status))
    if filters.priority:
        q = q.filter(models.Inquiry.priority.in_(filters.priority))
    if filters.assigned_to_id is not None:
        q = q.filter(models.Inquiry.assigned_to_id == int(filters.assigned_to_id))
    if filters.customer_id is not None:
        q = q.filter(models.Inquiry.customer_id == int(filters.customer_id))
    if filters.date_from is not None:
        q = q.filter(models.Inquiry.created_at >= filters.date_from)
    if filters.date_to is not None:
        q = q.filter(models.Inquiry.created_at <= filters.date_to)
    term = (filters.search or "").strip()
    if term:
        like = f"%{term}%"
        q = q.filter(
            or_(
                models.Inquiry.title.ilike(like),
                models.Inquiry.description.ilike(like),
                models.Inquiry.customer.has(models.Customer.name.ilike(like)),
            )
        )
    return q


def create_inquiry(
    db: Session,
    *,
    actor: models.User,
    title: str,
    customer_id: int,
    items: Iterable[dict[str, Any]],
    description: Optional[str] = None,
    priority: Priority = Priority.MEDIUM,
    deadline: Optional[datetime] = None,
    ctx: RequestContext | None = None,
) -> models.Inquiry:
    items = list(items)
    if not items:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="An inquiry needs at least one item"
        )
    customer = db.get(models.Customer, int(customer_id))
    if customer is None or not customer.is_active:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Customer not found")

    number = next_inquiry_number(db)
    inquiry = models.Inquiry(
        sequential_number=number.seq,
        title=title,
        description=description,
        priority=priority,
        deadline=deadline,
        status=InquiryStatus.DRAFT,
        customer_id=customer.id,
        created_by_id=actor.id,
    )
    db.add(inquiry)
    db.flush()

    # Flushed one by one so ids follow the submitted order.
    for data in items:
        db.add(
            models.InquiryItem(
                inquiry_id=inquiry.id,
                name=data["name"],
                description=data.get("description"),
                quantity=data.get("quantity", 1),
                unit=data.get("unit"),
                notes=data.get("notes"),
                requested_delivery=data.get("requested_delivery"),
                status=ItemStatus.PENDING,
            )
        )
        db.flush()

    record_audit(
        db,
        AuditAction.CREATE,
        "Inquiry",
        inquiry.id,
        user_id=actor.id,
        inquiry_id=inquiry.id,
        new_data={**snapshot(inquiry, *_SNAPSHOT_FIELDS), "item_count": len(items)},
        request_context=ctx,
    )
    db.flush()
    db.refresh(inquiry)
    return inquiry


def update_inquiry(
    db: Session,
    *,
    actor: models.User,
    inquiry: models.Inquiry,
    changes: dict[str, Any],
    ctx: RequestContext | None = None,
) -> models.Inquiry:
    if not can_modify_inquiry(actor, inquiry):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")

    old = snapshot(inquiry, *_SNAPSHOT_FIELDS)
    new_status = changes.pop("status", None)

    if "customer_id" in changes and changes["customer_id"] is not None:
        if db.get(models.Customer, int(changes["customer_id"])) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Customer not found")
    if changes.get("assigned_to_id") is not None:
        if db.get(models.User, int(changes["assigned_to_id"])) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Assignee not found")

    for field_name in _EDITABLE_FIELDS:
        if field_name in changes:
            setattr(inquiry, field_name, changes[field_name])
    db.add(inquiry)

    if new_status is not None and InquiryStatus(new_status) != InquiryStatus(inquiry.status):
        inquiry_workflow.transition_inquiry_status(db, inquiry, InquiryStatus(new_status))

    db.flush()
    record_audit(
        db,
        AuditAction.UPDATE,
        "Inquiry",
        inquiry.id,
        user_id=actor.id,
        inquiry_id=inquiry.id,
        old_data=old,
        new_data=snapshot(inquiry, *_SNAPSHOT_FIELDS),
        request_context=ctx,
    )
    return inquiry


def delete_inquiry(
    db: Session,
    *,
    actor: models.User,
    inquiry: models.Inquiry,
    ctx: RequestContext | None = None,
) -> None:
    if actor.role not in {UserRole.ADMIN, UserRole.SUPERUSER} and inquiry.created_by_id != actor.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")

    record_audit(
        db,
        AuditAction.DELETE,
        "Inquiry",
        inquiry.id,
        user_id=actor.id,
        inquiry_id=inquiry.id,
        old_data={**snapshot(inquiry, *_SNAPSHOT_FIELDS), "item_count": len(inquiry.items)},
        request_context=ctx,
    )
    db.delete(inquiry)
    db.flush()


def submit_inquiry(
    db: Session,
    *,
    actor: models.User,
    inquiry: models.Inquiry,
    ctx: RequestContext | None = None,
) -> models.Inquiry:
    if actor.role not in {UserRole.ADMIN, UserRole.SUPERUSER} and inquiry.created_by_id != actor.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    if not inquiry.items:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="An inquiry needs at least one item"
        )

    inquiry_workflow.transition_inquiry_status(db, inquiry, InquiryStatus.SUBMITTED)
    record_audit(
        db,
        AuditAction.SUBMIT,
        "Inquiry",
        inquiry.id,
        user_id=actor.id,
        inquiry_id=inquiry.id,
        old_data={"status": InquiryStatus.DRAFT},
        new_data={"status": InquiryStatus.SUBMITTED},
        request_context=ctx,
    )
    notify_users(
        db,
        active_users_with_role(db, UserRole.VPP),
        type=NotificationType.STATUS_UPDATE,
        title="New inquiry submitted",
        message=f'Inquiry "{inquiry.title}" with {len(inquiry.items)} items is ready for assignment',
        data={"inquiryId": inquiry.id},
    )
    db.flush()
    return inquiry


def add_attachment(
    db: Session,
    *,
    actor: models.User,
    inquiry: models.Inquiry,
    file_name: str,
    url: str,
    size: Optional[int] = None,
    mime_type: Optional[str] = None,
) -> models.Attachment:
    att = models.Attachment(
        inquiry_id=inquiry.id,
        file_name=file_name,
        url=url,
        size=size,
        mime_type=mime_type,
        uploaded_by_id=actor.id,
    )
    db.add(att)
    db.flush()
    return att


_ITEM_SNAPSHOT_FIELDS = ("name", "description", "quantity", "unit", "notes", "status", "requested_delivery")
_ITEM_EDITABLE_FIELDS = ("name", "description", "quantity", "unit", "notes", "requested_delivery")

# COSTED/APPROVED/QUOTED are reached through the cost, approval and quote flows.
MANUAL_ITEM_STATES = frozenset({ItemStatus.IN_PROGRESS, ItemStatus.ASSIGNED})


def update_item(
    db: Session,
    *,
    actor: models.User,
    item: models.InquiryItem,
    changes: dict[str, Any],
    ctx: RequestContext | None = None,
) -> models.InquiryItem:
    if not can_modify_item(actor, item):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")

    old = snapshot(item, *_ITEM_SNAPSHOT_FIELDS)
    new_status = changes.pop("status", None)

    for field_name in _ITEM_EDITABLE_FIELDS:
        if field_name in changes and changes[field_name] is not None:
            setattr(item, field_name, changes[field_name])
    db.add(item)

    if new_status is not None and ItemStatus(new_status) != ItemStatus(item.status):
        target = ItemStatus(new_status)
        if target not in MANUAL_ITEM_STATES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Item status {target.value} cannot be set directly",
            )
        inquiry_workflow.transition_item_status(db, item, target)
        inquiry_workflow.recompute_inquiry_status(db, item.inquiry_id)

    db.flush()
    record_audit(
        db,
        AuditAction.UPDATE,
        "InquiryItem",
        item.id,
        user_id=actor.id,
        inquiry_id=item.inquiry_id,
        old_data=old,
        new_data=snapshot(item, *_ITEM_SNAPSHOT_FIELDS),
        request_context=ctx,
    )
    return item
