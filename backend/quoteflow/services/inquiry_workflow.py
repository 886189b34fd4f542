"""Inquiry / item status machine.

Transitions are guarded twice: by the tables below (caller intent) and by a
conditional UPDATE at write time (concurrent writers).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from quoteflow import models
from quoteflow.database import supports_row_locks
from quoteflow.models.domain import InquiryStatus, ItemStatus

INQUIRY_TRANSITIONS: dict[InquiryStatus, frozenset[InquiryStatus]] = {
    InquiryStatus.DRAFT: frozenset({InquiryStatus.SUBMITTED}),
    InquiryStatus.SUBMITTED: frozenset({InquiryStatus.ASSIGNED, InquiryStatus.DRAFT}),
    InquiryStatus.ASSIGNED: frozenset({InquiryStatus.COSTING, InquiryStatus.SUBMITTED}),
    InquiryStatus.COSTING: frozenset({InquiryStatus.QUOTED, InquiryStatus.ASSIGNED}),
    InquiryStatus.QUOTED: frozenset(
        {InquiryStatus.APPROVED, InquiryStatus.REJECTED, InquiryStatus.COSTING}
    ),
    InquiryStatus.APPROVED: frozenset({InquiryStatus.CONVERTED}),
    InquiryStatus.REJECTED: frozenset({InquiryStatus.COSTING}),
    InquiryStatus.CONVERTED: frozenset(),
}

ITEM_TRANSITIONS: dict[ItemStatus, frozenset[ItemStatus]] = {
    ItemStatus.PENDING: frozenset({ItemStatus.ASSIGNED}),
    ItemStatus.ASSIGNED: frozenset(
        {ItemStatus.IN_PROGRESS, ItemStatus.COSTED, ItemStatus.PENDING}
    ),
    ItemStatus.IN_PROGRESS: frozenset(
        {ItemStatus.COSTED, ItemStatus.ASSIGNED, ItemStatus.PENDING}
    ),
    ItemStatus.COSTED: frozenset({ItemStatus.APPROVED, ItemStatus.ASSIGNED}),
    ItemStatus.APPROVED: frozenset({ItemStatus.QUOTED, ItemStatus.ASSIGNED}),
    ItemStatus.QUOTED: frozenset({ItemStatus.APPROVED}),
    ItemStatus.REJECTED: frozenset({ItemStatus.ASSIGNED}),
}

# Item states that count as "costed" for the aggregate inquiry status.
COSTED_ITEM_STATES = frozenset({ItemStatus.COSTED, ItemStatus.APPROVED, ItemStatus.QUOTED})

# Inquiry states the aggregate recompute may advance from.
RECOMPUTE_FROM_STATES = frozenset({InquiryStatus.ASSIGNED, InquiryStatus.SUBMITTED})


@dataclass(frozen=True)
class TransitionResult:
    updated: bool
    rowcount: int


def can_transition_inquiry(from_status: InquiryStatus, to_status: InquiryStatus) -> bool:
    return to_status in INQUIRY_TRANSITIONS.get(InquiryStatus(from_status), frozenset())


def can_transition_item(from_status: ItemStatus, to_status: ItemStatus) -> bool:
    return to_status in ITEM_TRANSITIONS.get(ItemStatus(from_status), frozenset())


def ensure_inquiry_transition(from_status: InquiryStatus, to_status: InquiryStatus) -> None:
    if not can_transition_inquiry(from_status, to_status):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid status transition from {InquiryStatus(from_status).value} to {InquiryStatus(to_status).value}",
        )


def ensure_item_transition(from_status: ItemStatus, to_status: ItemStatus) -> None:
    if not can_transition_item(from_status, to_status):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid item status transition from {ItemStatus(from_status).value} to {ItemStatus(to_status).value}",
        )


def atomic_transition_inquiry_status(
    *,
    db: Session,
    inquiry_id: int,
    to_status: InquiryStatus,
    allowed_from: Iterable[InquiryStatus],
    updates: dict[str, Any] | None = None,
) -> TransitionResult:
    """Apply an inquiry status change with a single conditional UPDATE:

        UPDATE inquiries SET status = :to_status, ...
        WHERE id = :inquiry_id AND status IN (:allowed_from)

    Callers control commit/rollback. Include `to_status` in `allowed_from` to
    make a repeated call an idempotent no-op.
    """

    update_values: dict[str, Any] = {"status": to_status}
    if updates:
        update_values.update(updates)

    rowcount = (
        db.query(models.Inquiry)
        .filter(models.Inquiry.id == int(inquiry_id))
        .filter(models.Inquiry.status.in_(set(allowed_from)))
        .update(update_values, synchronize_session=False)
    )
    return TransitionResult(updated=rowcount > 0, rowcount=int(rowcount or 0))


def transition_inquiry_status(
    db: Session,
    inquiry: models.Inquiry,
    to_status: InquiryStatus,
    *,
    allowed_from: Iterable[InquiryStatus] | None = None,
) -> None:
    """Validate against INQUIRY_TRANSITIONS, then persist with the atomic guard.

    A concurrent writer that moved the row first surfaces as 400.
    """

    db.flush()
    current = InquiryStatus(inquiry.status)
    if allowed_from is None:
        ensure_inquiry_transition(current, to_status)
        allowed = {current}
    else:
        allowed = set(allowed_from)
        if current not in allowed:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Inquiry in status {current.value} cannot move to {InquiryStatus(to_status).value}",
            )

    result = atomic_transition_inquiry_status(
        db=db, inquiry_id=inquiry.id, to_status=to_status, allowed_from=allowed
    )
    if not result.updated:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Inquiry status changed concurrently; reload and retry",
        )
    db.refresh(inquiry)


def transition_item_status(db: Session, item: models.InquiryItem, to_status: ItemStatus) -> None:
    """Table-checked item status change; the conditional UPDATE guards concurrent writers."""

    db.flush()
    current = ItemStatus(item.status)
    ensure_item_transition(current, to_status)
    rowcount = (
        db.query(models.InquiryItem)
        .filter(models.InquiryItem.id == item.id)
        .filter(models.InquiryItem.status == current)
        .update({"status": to_status}, synchronize_session=False)
    )
    if not rowcount:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Item status changed concurrently; reload and retry",
        )
    db.refresh(item)


def lock_inquiry(db: Session, inquiry_id: int) -> models.Inquiry | None:
    db.flush()
    q = db.query(models.Inquiry).filter(models.Inquiry.id == int(inquiry_id))
    # SQLite doesn't support FOR UPDATE; other DBs serialize concurrent recomputes.
    if supports_row_locks(db):
        q = q.with_for_update()
    return q.populate_existing().first()


def recompute_inquiry_status(db: Session, inquiry_id: int) -> bool:
    """Move the inquiry to COSTING once every item is costed.

    Holds a row lock on the parent while reading item statuses so two item
    writers cannot both miss the final transition. Returns True only when the
    inquiry status actually changed; a re-check is a no-op.
    """

    inquiry = lock_inquiry(db, inquiry_id)
    if inquiry is None:
        return False

    item_statuses = [
        ItemStatus(s)
        for (s,) in db.query(models.InquiryItem.status)
        .filter(models.InquiryItem.inquiry_id == inquiry.id)
        .all()
    ]
    if not item_statuses:
        return False
    if not all(s in COSTED_ITEM_STATES for s in item_statuses):
        return False
    if InquiryStatus(inquiry.status) not in RECOMPUTE_FROM_STATES:
        return False

    result = atomic_transition_inquiry_status(
        db=db,
        inquiry_id=inquiry.id,
        to_status=InquiryStatus.COSTING,
        allowed_from=RECOMPUTE_FROM_STATES,
    )
    if result.updated:
        db.refresh(inquiry)
    return result.updated


def item_is_approved(item: models.InquiryItem) -> bool:
    calc = item.cost_calculation
    if calc is not None and calc.is_approved:
        return True
    return ItemStatus(item.status) in {ItemStatus.APPROVED, ItemStatus.QUOTED}


def all_items_approved(items: Iterable[models.InquiryItem]) -> bool:
    items = list(items)
    return bool(items) and all(item_is_approved(i) for i in items)
