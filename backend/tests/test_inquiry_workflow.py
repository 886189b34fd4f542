from decimal import Decimal

import pytest
from fastapi import HTTPException

from quoteflow import models
from quoteflow.models.domain import InquiryStatus, ItemStatus, UserRole
from quoteflow.services import inquiry_workflow as wf


def _seed(db, *, item_statuses, inquiry_status=InquiryStatus.ASSIGNED):
    user = models.User(email="s@test.com", name="S", hashed_password="x", role=UserRole.SALES)
    customer = models.Customer(name="Acme")
    db.add_all([user, customer])
    db.flush()
    inquiry = models.Inquiry(
        sequential_number=1,
        title="Steel Beams",
        status=inquiry_status,
        customer_id=customer.id,
        created_by_id=user.id,
    )
    db.add(inquiry)
    db.flush()
    for i, st in enumerate(item_statuses):
        db.add(models.InquiryItem(inquiry_id=inquiry.id, name=f"item {i}", quantity=1, status=st))
    db.commit()
    return inquiry


@pytest.mark.parametrize(
    "src,dst,allowed",
    [
        (InquiryStatus.DRAFT, InquiryStatus.SUBMITTED, True),
        (InquiryStatus.DRAFT, InquiryStatus.COSTING, False),
        (InquiryStatus.SUBMITTED, InquiryStatus.ASSIGNED, True),
        (InquiryStatus.ASSIGNED, InquiryStatus.COSTING, True),
        (InquiryStatus.COSTING, InquiryStatus.ASSIGNED, True),
        (InquiryStatus.COSTING, InquiryStatus.QUOTED, True),
        (InquiryStatus.QUOTED, InquiryStatus.APPROVED, True),
        (InquiryStatus.APPROVED, InquiryStatus.CONVERTED, True),
        (InquiryStatus.CONVERTED, InquiryStatus.DRAFT, False),
    ],
)
def test_inquiry_transition_table(src, dst, allowed):
    assert wf.can_transition_inquiry(src, dst) is allowed


@pytest.mark.parametrize(
    "src,dst,allowed",
    [
        (ItemStatus.PENDING, ItemStatus.ASSIGNED, True),
        (ItemStatus.PENDING, ItemStatus.COSTED, False),
        (ItemStatus.ASSIGNED, ItemStatus.COSTED, True),
        (ItemStatus.COSTED, ItemStatus.APPROVED, True),
        (ItemStatus.COSTED, ItemStatus.ASSIGNED, True),
        (ItemStatus.APPROVED, ItemStatus.COSTED, False),
    ],
)
def test_item_transition_table(src, dst, allowed):
    assert wf.can_transition_item(src, dst) is allowed


def test_ensure_transition_raises_400():
    with pytest.raises(HTTPException) as exc:
        wf.ensure_inquiry_transition(InquiryStatus.DRAFT, InquiryStatus.QUOTED)
    assert exc.value.status_code == 400
    assert "DRAFT" in exc.value.detail and "QUOTED" in exc.value.detail


def test_recompute_waits_for_every_item(db_session):
    inquiry = _seed(db_session, item_statuses=[ItemStatus.COSTED, ItemStatus.ASSIGNED])

    assert wf.recompute_inquiry_status(db_session, inquiry.id) is False
    db_session.refresh(inquiry)
    assert inquiry.status == InquiryStatus.ASSIGNED


def test_recompute_moves_to_costing_once(db_session):
    inquiry = _seed(db_session, item_statuses=[ItemStatus.COSTED, ItemStatus.APPROVED])

    assert wf.recompute_inquiry_status(db_session, inquiry.id) is True
    db_session.commit()
    db_session.refresh(inquiry)
    assert inquiry.status == InquiryStatus.COSTING

    # Re-check is a no-op.
    assert wf.recompute_inquiry_status(db_session, inquiry.id) is False


def test_recompute_ignores_inquiries_outside_costing_flow(db_session):
    inquiry = _seed(
        db_session, item_statuses=[ItemStatus.QUOTED], inquiry_status=InquiryStatus.QUOTED
    )
    assert wf.recompute_inquiry_status(db_session, inquiry.id) is False


def test_atomic_transition_only_updates_from_allowed_states(db_session):
    inquiry = _seed(db_session, item_statuses=[ItemStatus.PENDING], inquiry_status=InquiryStatus.DRAFT)

    result = wf.atomic_transition_inquiry_status(
        db=db_session,
        inquiry_id=inquiry.id,
        to_status=InquiryStatus.ASSIGNED,
        allowed_from={InquiryStatus.SUBMITTED},
    )
    assert result.updated is False

    result = wf.atomic_transition_inquiry_status(
        db=db_session,
        inquiry_id=inquiry.id,
        to_status=InquiryStatus.SUBMITTED,
        allowed_from={InquiryStatus.DRAFT},
    )
    assert result.updated is True and result.rowcount == 1
    db_session.commit()


def test_stale_item_status_surfaces_as_400(db_session):
    inquiry = _seed(db_session, item_statuses=[ItemStatus.ASSIGNED])
    item = inquiry.items[0]

    # Another writer moves the row underneath us.
    db_session.query(models.InquiryItem).filter(models.InquiryItem.id == item.id).update(
        {"status": ItemStatus.COSTED}, synchronize_session=False
    )

    with pytest.raises(HTTPException) as exc:
        wf.transition_item_status(db_session, item, ItemStatus.IN_PROGRESS)
    assert exc.value.status_code == 400
    db_session.rollback()


def test_all_items_approved_uses_calculation_flag():
    approved = models.InquiryItem(name="a", status=ItemStatus.COSTED)
    approved.cost_calculation = models.CostCalculation(
        material_cost=Decimal("1"),
        labor_cost=Decimal("0"),
        overhead_cost=Decimal("0"),
        total_cost=Decimal("1"),
        is_approved=True,
    )
    pending = models.InquiryItem(name="b", status=ItemStatus.COSTED)

    assert wf.all_items_approved([approved]) is True
    assert wf.all_items_approved([approved, pending]) is False
    assert wf.all_items_approved([]) is False
