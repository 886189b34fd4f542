from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from quoteflow import models
from quoteflow.models.domain import AuditAction, InquiryStatus, ItemStatus, NotificationType, UserRole
from quoteflow.services import inquiry_workflow
from quoteflow.services.audit import RequestContext, record_audit
from quoteflow.services.notifications import enqueue_email, notify

ASSIGNEE_ROLES = frozenset({UserRole.VP, UserRole.VPP})
ASSIGNABLE_ITEM_STATES = frozenset({ItemStatus.PENDING, ItemStatus.ASSIGNED})
ASSIGNABLE_INQUIRY_STATES = frozenset({InquiryStatus.SUBMITTED, InquiryStatus.ASSIGNED})


@dataclass
class AssignmentResult:
    items: list[models.InquiryItem]
    assignee: models.User | None = None
    inquiry_ids: list[int] = field(default_factory=list)
    emails: list[models.EmailOutbox] = field(default_factory=list)


def _load_items(db: Session, item_ids: Iterable[int]) -> list[models.InquiryItem]:
    ids = list(dict.fromkeys(int(i) for i in item_ids))
    if not ids:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No items given")
    items = (
        db.query(models.InquiryItem)
        .filter(models.InquiryItem.id.in_(ids))
        .order_by(models.InquiryItem.id.asc())
        .all()
    )
    if len(items) != len(ids):
        found = {i.id for i in items}
        missing = [i for i in ids if i not in found]
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Items not found: {', '.join(str(m) for m in missing)}",
        )
    return items


def _group_by_inquiry(items: list[models.InquiryItem]) -> dict[int, list[models.InquiryItem]]:
    groups: dict[int, list[models.InquiryItem]] = {}
    for item in items:
        groups.setdefault(item.inquiry_id, []).append(item)
    return groups


def assign_items(
    db: Session,
    *,
    actor: models.User,
    item_ids: Iterable[int],
    assignee_id: int,
    ctx: RequestContext | None = None,
) -> AssignmentResult:
    """Bulk-assign items to a VP/VPP. Validates everything before writing anything."""

    assignee = db.get(models.User, int(assignee_id))
    if assignee is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Assignee not found")
    if not assignee.is_active:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Assignee is inactive")
    if assignee.role not in ASSIGNEE_ROLES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Assignee must have role VP or VPP",
        )

    items = _load_items(db, item_ids)
    bad_items = [i.id for i in items if ItemStatus(i.status) not in ASSIGNABLE_ITEM_STATES]
    if bad_items:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Some items cannot be assigned in their current status",
        )
    if any(InquiryStatus(i.inquiry.status) not in ASSIGNABLE_INQUIRY_STATES for i in items):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Some items belong to inquiries that cannot be assigned",
        )

    result = AssignmentResult(items=items, assignee=assignee)
    groups = _group_by_inquiry(items)

    for inquiry_id, group in groups.items():
        inquiry = group[0].inquiry
        for item in group:
            old = {"assigned_to_id": item.assigned_to_id, "status": item.status}
            if ItemStatus(item.status) != ItemStatus.ASSIGNED:
                inquiry_workflow.transition_item_status(db, item, ItemStatus.ASSIGNED)
            item.assigned_to_id = assignee.id
            db.add(item)
            record_audit(
                db,
                AuditAction.ASSIGN,
                "InquiryItem",
                item.id,
                user_id=actor.id,
                inquiry_id=inquiry_id,
                old_data=old,
                new_data={
                    "assigned_to_id": assignee.id,
                    "assignee_name": assignee.name,
                    "status": ItemStatus.ASSIGNED,
                },
                request_context=ctx,
            )

        # The coordinating VPP keeps the inquiry in scope once it leaves SUBMITTED.
        if inquiry.assigned_to_id is None and actor.role == UserRole.VPP:
            inquiry.assigned_to_id = actor.id
            db.add(inquiry)
        if InquiryStatus(inquiry.status) == InquiryStatus.SUBMITTED:
            inquiry_workflow.transition_inquiry_status(db, inquiry, InquiryStatus.ASSIGNED)

        notify(
            db,
            user_id=assignee.id,
            type=NotificationType.COST_CALCULATION_REQUESTED,
            title="Items assigned for cost calculation",
            message=f'{len(group)} items from "{inquiry.title}" have been assigned to you for cost calculation',
            data={
                "inquiryId": inquiry.id,
                "itemIds": [i.id for i in group],
                "itemCount": len(group),
            },
        )
        result.emails.append(
            enqueue_email(
                db,
                "assignment",
                [assignee.email],
                {
                    "userName": assignee.name,
                    "itemName": group[0].name if len(group) == 1 else f"{len(group)} items",
                    "inquiryTitle": inquiry.title,
                    "customerName": inquiry.customer.name if inquiry.customer else "",
                    "dueDate": group[0].requested_delivery.isoformat()
                    if group[0].requested_delivery
                    else None,
                },
            )
        )
        result.inquiry_ids.append(inquiry_id)

    db.flush()
    return result


def unassign_items(
    db: Session,
    *,
    actor: models.User,
    item_ids: Iterable[int],
    ctx: RequestContext | None = None,
) -> AssignmentResult:
    items = _load_items(db, item_ids)
    for item in items:
        calc = item.cost_calculation
        if calc is not None and calc.is_approved:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Item {item.id} has an approved cost calculation",
            )
        if not inquiry_workflow.can_transition_item(item.status, ItemStatus.PENDING):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Item {item.id} cannot be unassigned in status {ItemStatus(item.status).value}",
            )

    for item in items:
        old = {"assigned_to_id": item.assigned_to_id, "status": item.status}
        inquiry_workflow.transition_item_status(db, item, ItemStatus.PENDING)
        item.assigned_to_id = None
        db.add(item)
        record_audit(
            db,
            AuditAction.UNASSIGN,
            "InquiryItem",
            item.id,
            user_id=actor.id,
            inquiry_id=item.inquiry_id,
            old_data=old,
            new_data={"assigned_to_id": None, "status": ItemStatus.PENDING},
            request_context=ctx,
        )

    db.flush()
    return AssignmentResult(items=items, inquiry_ids=sorted({i.inquiry_id for i in items}))
