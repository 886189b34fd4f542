from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from quoteflow import models
from quoteflow.models.domain import (
    ApprovalStatus,
    ApprovalType,
    AuditAction,
    InquiryStatus,
    ItemStatus,
    NotificationType,
    UserRole,
)
from quoteflow.services import inquiry_workflow
from quoteflow.services.audit import RequestContext, record_audit
from quoteflow.services.notifications import (
    active_users_with_role,
    enqueue_email,
    notify,
    notify_users,
)

ACTIVE_APPROVAL_STATES = frozenset({ApprovalStatus.PENDING, ApprovalStatus.APPROVED})


@dataclass
class ApprovalResult:
    approval: models.Approval
    inquiry_ready_for_quote: bool = False
    emails: list[models.EmailOutbox] = field(default_factory=list)


def active_approval(db: Session, cost_calculation_id: int) -> Optional[models.Approval]:
    return (
        db.query(models.Approval)
        .filter(
            models.Approval.cost_calculation_id == int(cost_calculation_id),
            models.Approval.status.in_(ACTIVE_APPROVAL_STATES),
        )
        .order_by(models.Approval.id.desc())
        .first()
    )


def _tell_calculator(
    db: Session,
    *,
    calc: models.CostCalculation,
    approver: models.User,
    decision: ApprovalStatus,
    comments: Optional[str],
) -> Optional[models.EmailOutbox]:
    """One STATUS_UPDATE notification plus one approval_status e-mail to whoever costed the item."""

    item = calc.inquiry_item
    calculator = calc.calculated_by
    if calculator is None:
        return None

    if decision == ApprovalStatus.APPROVED:
        title = "Cost calculation approved"
        message = f'Your cost calculation for "{item.name}" has been approved by {approver.name}'
    else:
        title = "Cost calculation rejected"
        message = f'Your cost calculation for "{item.name}" has been rejected. Please review and recalculate.'
        if comments:
            message = f"{message} Comments: {comments}"

    notify(
        db,
        user_id=calculator.id,
        type=NotificationType.STATUS_UPDATE,
        title=title,
        message=message,
        data={
            "costCalculationId": calc.id,
            "inquiryItemId": item.id,
            "inquiryId": item.inquiry_id,
            "status": decision.value,
            "comments": comments,
        },
    )
    return enqueue_email(
        db,
        "approval_status",
        [calculator.email],
        {
            "userName": calculator.name,
            "itemName": item.name,
            "status": decision.value.lower(),
            "comments": comments,
            "managerName": approver.name,
        },
    )


def _apply_approved(
    db: Session, calc: models.CostCalculation, now: datetime
) -> tuple[bool, list[Optional[models.EmailOutbox]]]:
    item = calc.inquiry_item
    calc.is_approved = True
    calc.approved_at = now
    db.add(calc)
    inquiry_workflow.transition_item_status(db, item, ItemStatus.APPROVED)

    inquiry = inquiry_workflow.lock_inquiry(db, item.inquiry_id)
    siblings = (
        db.query(models.InquiryItem)
        .filter(models.InquiryItem.inquiry_id == inquiry.id)
        .order_by(models.InquiryItem.id.asc())
        .all()
    )
    if not inquiry_workflow.all_items_approved(siblings):
        return False, []

    # Every item approved: the inquiry is ready for quoting.
    if InquiryStatus(inquiry.status) != InquiryStatus.COSTING:
        inquiry_workflow.transition_inquiry_status(
            db,
            inquiry,
            InquiryStatus.COSTING,
            allowed_from={InquiryStatus.SUBMITTED, InquiryStatus.ASSIGNED, InquiryStatus.COSTING},
        )

    sales = active_users_with_role(db, UserRole.SALES)
    notify_users(
        db,
        sales,
        type=NotificationType.QUOTE_GENERATED,
        title="Inquiry ready for quote generation",
        message=f'All cost calculations for "{inquiry.title}" have been approved. You can now generate a quote.',
        data={"inquiryId": inquiry.id},
    )
    email = None
    if sales:
        email = enqueue_email(
            db,
            "quote_ready",
            [u.email for u in sales],
            {
                "inquiryTitle": inquiry.title,
                "customerName": inquiry.customer.name if inquiry.customer else "",
                "itemCount": len(siblings),
            },
        )
    return True, [email]


def _apply_rejected(db: Session, calc: models.CostCalculation) -> None:
    item = calc.inquiry_item
    inquiry_workflow.transition_item_status(db, item, ItemStatus.ASSIGNED)
    inquiry = inquiry_workflow.lock_inquiry(db, item.inquiry_id)
    if inquiry is not None and InquiryStatus(inquiry.status) == InquiryStatus.COSTING:
        inquiry_workflow.transition_inquiry_status(db, inquiry, InquiryStatus.ASSIGNED)


def decide_cost_calculation(
    db: Session,
    *,
    actor: models.User,
    cost_calculation_id: int,
    decision: ApprovalStatus,
    comments: Optional[str] = None,
    ctx: RequestContext | None = None,
) -> ApprovalResult:
    """Record a manager's decision on a cost calculation and cascade it.

    PENDING records a review request without touching item or inquiry status.
    A later APPROVED/REJECTED decision resolves that pending row in place.
    """

    calc = db.get(models.CostCalculation, int(cost_calculation_id))
    if calc is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Cost calculation not found"
        )

    decision = ApprovalStatus(decision)
    pending = active_approval(db, calc.id)
    if pending is not None and (
        ApprovalStatus(pending.status) == ApprovalStatus.APPROVED or decision == ApprovalStatus.PENDING
    ):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cost calculation already has an active approval",
        )

    if decision != ApprovalStatus.PENDING and ItemStatus(calc.inquiry_item.status) != ItemStatus.COSTED:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Item in status {ItemStatus(calc.inquiry_item.status).value} cannot be approved or rejected",
        )

    now = datetime.now(timezone.utc)
    if pending is not None:
        approval = pending
        approval.status = decision
        approval.approver_id = actor.id
        approval.approved_at = now
        if comments is not None:
            approval.comments = comments
    else:
        approval = models.Approval(
            type=ApprovalType.COST_CALCULATION,
            status=decision,
            comments=comments,
            approver_id=actor.id,
            cost_calculation_id=calc.id,
            approved_at=now if decision != ApprovalStatus.PENDING else None,
        )
    db.add(approval)
    db.flush()

    result = ApprovalResult(approval=approval)
    if decision == ApprovalStatus.PENDING:
        return result

    if decision == ApprovalStatus.APPROVED:
        ready, emails = _apply_approved(db, calc, now)
        result.inquiry_ready_for_quote = ready
        result.emails.extend(e for e in emails if e is not None)
    else:
        _apply_rejected(db, calc)

    record_audit(
        db,
        AuditAction.APPROVE if decision == ApprovalStatus.APPROVED else AuditAction.REJECT,
        "CostCalculation",
        calc.id,
        user_id=actor.id,
        inquiry_id=calc.inquiry_item.inquiry_id,
        old_data={"is_approved": False},
        new_data={
            "is_approved": decision == ApprovalStatus.APPROVED,
            "approval_id": approval.id,
            "status": decision,
            "comments": comments,
        },
        request_context=ctx,
    )
    email = _tell_calculator(db, calc=calc, approver=actor, decision=decision, comments=comments)
    if email is not None:
        result.emails.append(email)

    db.flush()
    return result


def list_approvals(
    db: Session,
    *,
    actor: models.User,
    status_filter: Optional[ApprovalStatus] = None,
    type_filter: Optional[ApprovalType] = None,
):
    q = db.query(models.Approval)
    if actor.role == UserRole.MANAGER:
        q = q.filter(
            (models.Approval.approver_id == actor.id)
            | (models.Approval.status == ApprovalStatus.PENDING)
        )
    if status_filter is not None:
        q = q.filter(models.Approval.status == status_filter)
    if type_filter is not None:
        q = q.filter(models.Approval.type == type_filter)
    return q.order_by(models.Approval.created_at.desc(), models.Approval.id.desc())
