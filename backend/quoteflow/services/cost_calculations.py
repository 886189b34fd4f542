from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from quoteflow import models
from quoteflow.core.permissions import can_cost_item
from quoteflow.models.domain import AuditAction, ItemStatus, NotificationType, UserRole
from quoteflow.services import inquiry_workflow
from quoteflow.services.audit import RequestContext, record_audit, snapshot
from quoteflow.services.notifications import active_users_with_role, enqueue_email, notify_users

CENTS = Decimal("0.01")
COSTABLE_ITEM_STATES = frozenset({ItemStatus.ASSIGNED, ItemStatus.IN_PROGRESS})
_SNAPSHOT_FIELDS = ("material_cost", "labor_cost", "overhead_cost", "total_cost", "notes")


def to_money(value: Any) -> Decimal:
    try:
        d = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid amount")
    return d.quantize(CENTS, rounding=ROUND_HALF_UP)


def compute_total(material: Any, labor: Any, overhead: Any) -> Decimal:
    """total = material + labor + overhead; each >= 0 and the sum > 0."""

    parts = [to_money(material), to_money(labor), to_money(overhead)]
    if any(p < 0 for p in parts):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Costs must be non-negative"
        )
    total = sum(parts, Decimal("0.00"))
    if total <= 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Total cost must be greater than zero"
        )
    return total


@dataclass
class CostResult:
    calculation: models.CostCalculation
    created: bool
    inquiry_changed: bool
    emails: list[models.EmailOutbox] = field(default_factory=list)


def create_cost_calculation(
    db: Session,
    *,
    actor: models.User,
    inquiry_item_id: int,
    material_cost: Any,
    labor_cost: Any,
    overhead_cost: Any,
    notes: Optional[str] = None,
    ctx: RequestContext | None = None,
) -> CostResult:
    """Record (or rework) the cost of one item and move it to COSTED.

    An unapproved calculation is recalculated in place, which is how an item
    comes back after a manager rejected its costing.
    """

    item = db.get(models.InquiryItem, int(inquiry_item_id))
    if item is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Inquiry item not found")
    if not can_cost_item(actor, item):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only calculate costs for items assigned to you",
        )
    if ItemStatus(item.status) not in COSTABLE_ITEM_STATES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Item in status {ItemStatus(item.status).value} cannot be costed",
        )

    material = to_money(material_cost)
    labor = to_money(labor_cost)
    overhead = to_money(overhead_cost)
    total = compute_total(material, labor, overhead)

    calc = item.cost_calculation
    created = calc is None
    if calc is not None and calc.is_approved:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cost calculation already exists and is approved",
        )

    inquiry = item.inquiry
    if created:
        calc = models.CostCalculation(
            inquiry_item_id=item.id,
            material_cost=material,
            labor_cost=labor,
            overhead_cost=overhead,
            total_cost=total,
            calculated_by_id=actor.id,
            notes=notes,
            is_approved=False,
        )
        db.add(calc)
        db.flush()
        record_audit(
            db,
            AuditAction.CREATE,
            "CostCalculation",
            calc.id,
            user_id=actor.id,
            inquiry_id=inquiry.id,
            new_data={**snapshot(calc, *_SNAPSHOT_FIELDS), "inquiry_item_id": item.id},
            request_context=ctx,
        )
    else:
        old = snapshot(calc, *_SNAPSHOT_FIELDS)
        calc.material_cost = material
        calc.labor_cost = labor
        calc.overhead_cost = overhead
        calc.total_cost = total
        calc.notes = notes
        calc.calculated_by_id = actor.id
        calc.approved_at = None
        db.add(calc)
        db.flush()
        record_audit(
            db,
            AuditAction.UPDATE,
            "CostCalculation",
            calc.id,
            user_id=actor.id,
            inquiry_id=inquiry.id,
            old_data=old,
            new_data=snapshot(calc, *_SNAPSHOT_FIELDS),
            request_context=ctx,
        )

    inquiry_workflow.transition_item_status(db, item, ItemStatus.COSTED)
    inquiry_changed = inquiry_workflow.recompute_inquiry_status(db, inquiry.id)

    managers = active_users_with_role(db, UserRole.MANAGER)
    notify_users(
        db,
        managers,
        type=NotificationType.APPROVAL_REQUIRED,
        title="Cost calculation needs approval",
        message=f'Cost calculation for "{item.name}" in inquiry "{inquiry.title}" requires your approval',
        data={"costCalculationId": calc.id, "inquiryItemId": item.id, "inquiryId": inquiry.id},
    )
    emails = []
    if managers:
        emails.append(
            enqueue_email(
                db,
                "approval_required",
                [m.email for m in managers],
                {
                    "managerName": "Manager",
                    "itemName": item.name,
                    "inquiryTitle": inquiry.title,
                    "customerName": inquiry.customer.name if inquiry.customer else "",
                    "vpName": actor.name,
                    "totalCost": str(total),
                },
            )
        )

    db.flush()
    return CostResult(
        calculation=calc, created=created, inquiry_changed=inquiry_changed, emails=emails
    )


def list_cost_calculations(
    db: Session,
    *,
    actor: models.User,
    item_id: Optional[int] = None,
    calculated_by_id: Optional[int] = None,
    approved: Optional[bool] = None,
):
    q = db.query(models.CostCalculation)
    if actor.role == UserRole.VP:
        q = q.filter(models.CostCalculation.calculated_by_id == actor.id)
    if item_id is not None:
        q = q.filter(models.CostCalculation.inquiry_item_id == int(item_id))
    if calculated_by_id is not None:
        q = q.filter(models.CostCalculation.calculated_by_id == int(calculated_by_id))
    if approved is not None:
        q = q.filter(models.CostCalculation.is_approved.is_(bool(approved)))
    return q.order_by(models.CostCalculation.created_at.desc(), models.CostCalculation.id.desc())
