from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from fastapi import HTTPException, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from quoteflow import models
from quoteflow.models.domain import (
    AuditAction,
    InquiryStatus,
    ItemStatus,
    NotificationType,
    QuoteStatus,
    UserRole,
)
from quoteflow.services import inquiry_workflow
from quoteflow.services.audit import RequestContext, record_audit, snapshot
from quoteflow.services.cost_calculations import CENTS, to_money
from quoteflow.services.document_numbering import next_quote_number
from quoteflow.services.notifications import enqueue_email, notify

_SNAPSHOT_FIELDS = ("quote_number", "status", "subtotal", "margin", "total", "valid_until")

QUOTE_DECISIONS = {
    QuoteStatus.ACCEPTED: InquiryStatus.APPROVED,
    QuoteStatus.REJECTED: InquiryStatus.REJECTED,
}


@dataclass
class QuoteResult:
    quote: models.Quote
    emails: list[models.EmailOutbox] = field(default_factory=list)


def _aware(dt: datetime) -> datetime:
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


def quote_totals(items: list[models.InquiryItem], margin: Any) -> tuple[Decimal, Decimal, Decimal]:
    """subtotal = sum(total_cost * quantity); total = subtotal * (1 + margin)."""

    m = Decimal(str(margin))
    if m < 0 or m > 1:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Margin must be between 0 and 1"
        )
    subtotal = Decimal("0.00")
    for item in items:
        calc = item.cost_calculation
        if calc is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Item {item.id} has no cost calculation",
            )
        subtotal += to_money(calc.total_cost) * int(item.quantity)
    subtotal = subtotal.quantize(CENTS)
    total = (subtotal * (Decimal("1") + m)).quantize(CENTS)
    return subtotal, m, total


def _ensure_owner(actor: models.User, inquiry: models.Inquiry) -> None:
    if actor.role == UserRole.SALES and inquiry.created_by_id != actor.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only quote inquiries you created",
        )


def create_quote(
    db: Session,
    *,
    actor: models.User,
    inquiry_id: int,
    title: Optional[str],
    valid_until: datetime,
    margin: Any = 0,
    description: Optional[str] = None,
    terms: Optional[str] = None,
    notes: Optional[str] = None,
    ctx: RequestContext | None = None,
) -> QuoteResult:
    inquiry = db.get(models.Inquiry, int(inquiry_id))
    if inquiry is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Inquiry not found")
    _ensure_owner(actor, inquiry)

    if InquiryStatus(inquiry.status) != InquiryStatus.COSTING:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Inquiry in status {InquiryStatus(inquiry.status).value} cannot be quoted",
        )
    items = list(inquiry.items)
    if not inquiry_workflow.all_items_approved(items):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="All items must have approved cost calculations",
        )
    if _aware(valid_until) <= datetime.now(timezone.utc):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="valid_until must be in the future"
        )

    subtotal, m, total = quote_totals(items, margin)
    number = next_quote_number(db)

    quote = models.Quote(
        quote_number=number.formatted,
        title=title or f"Quote for {inquiry.title}",
        description=description,
        inquiry_id=inquiry.id,
        subtotal=subtotal,
        margin=m,
        total=total,
        valid_until=valid_until,
        terms=terms,
        notes=notes,
        status=QuoteStatus.DRAFT,
        created_by_id=actor.id,
    )
    db.add(quote)
    db.flush()

    for item in items:
        if ItemStatus(item.status) != ItemStatus.QUOTED:
            inquiry_workflow.transition_item_status(db, item, ItemStatus.QUOTED)
    inquiry_workflow.transition_inquiry_status(db, inquiry, InquiryStatus.QUOTED)

    record_audit(
        db,
        AuditAction.CREATE,
        "Quote",
        quote.id,
        user_id=actor.id,
        inquiry_id=inquiry.id,
        new_data=snapshot(quote, *_SNAPSHOT_FIELDS),
        request_context=ctx,
    )
    db.flush()
    return QuoteResult(quote=quote)


def send_quote(
    db: Session,
    *,
    actor: models.User,
    quote: models.Quote,
    ctx: RequestContext | None = None,
) -> QuoteResult:
    _ensure_owner(actor, quote.inquiry)
    if QuoteStatus(quote.status) != QuoteStatus.DRAFT:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Only draft quotes can be sent"
        )

    old = snapshot(quote, *_SNAPSHOT_FIELDS)
    quote.status = QuoteStatus.SENT
    quote.sent_at = datetime.now(timezone.utc)
    db.add(quote)
    db.flush()

    inquiry = quote.inquiry
    result = QuoteResult(quote=quote)
    customer = inquiry.customer
    if customer is not None and customer.email:
        result.emails.append(
            enqueue_email(
                db,
                "quote_sent",
                [customer.email],
                {
                    "customerName": customer.name,
                    "quoteNumber": quote.quote_number,
                    "title": quote.title,
                    "total": str(quote.total),
                    "validUntil": quote.valid_until.date().isoformat() if quote.valid_until else None,
                    "terms": quote.terms,
                },
            )
        )
    notify(
        db,
        user_id=inquiry.created_by_id,
        type=NotificationType.QUOTE_GENERATED,
        title="Quote sent",
        message=f'Quote {quote.quote_number} for "{inquiry.title}" has been sent to the customer',
        data={"quoteId": quote.id, "inquiryId": inquiry.id},
    )
    record_audit(
        db,
        AuditAction.SEND,
        "Quote",
        quote.id,
        user_id=actor.id,
        inquiry_id=inquiry.id,
        old_data=old,
        new_data=snapshot(quote, *_SNAPSHOT_FIELDS),
        request_context=ctx,
    )
    result.emails = [e for e in result.emails if e is not None]
    return result


def decide_quote(
    db: Session,
    *,
    actor: models.User,
    quote: models.Quote,
    decision: QuoteStatus,
    ctx: RequestContext | None = None,
) -> QuoteResult:
    """Record the customer's answer: ACCEPTED -> inquiry APPROVED, REJECTED -> inquiry REJECTED."""

    _ensure_owner(actor, quote.inquiry)
    decision = QuoteStatus(decision)
    if decision not in QUOTE_DECISIONS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Decision must be ACCEPTED or REJECTED",
        )
    if QuoteStatus(quote.status) != QuoteStatus.SENT:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only sent quotes can be accepted or rejected",
        )

    old = snapshot(quote, *_SNAPSHOT_FIELDS)
    quote.status = decision
    db.add(quote)
    inquiry_workflow.transition_inquiry_status(db, quote.inquiry, QUOTE_DECISIONS[decision])

    record_audit(
        db,
        AuditAction.APPROVE if decision == QuoteStatus.ACCEPTED else AuditAction.REJECT,
        "Quote",
        quote.id,
        user_id=actor.id,
        inquiry_id=quote.inquiry_id,
        old_data=old,
        new_data=snapshot(quote, *_SNAPSHOT_FIELDS),
        request_context=ctx,
    )
    db.flush()
    return QuoteResult(quote=quote)


def convert_inquiry(
    db: Session,
    *,
    actor: models.User,
    inquiry: models.Inquiry,
    ctx: RequestContext | None = None,
) -> models.Inquiry:
    _ensure_owner(actor, inquiry)
    if InquiryStatus(inquiry.status) != InquiryStatus.APPROVED:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only approved inquiries can be converted",
        )
    inquiry_workflow.transition_inquiry_status(db, inquiry, InquiryStatus.CONVERTED)
    record_audit(
        db,
        AuditAction.CONVERT,
        "Inquiry",
        inquiry.id,
        user_id=actor.id,
        inquiry_id=inquiry.id,
        old_data={"status": InquiryStatus.APPROVED},
        new_data={"status": InquiryStatus.CONVERTED},
        request_context=ctx,
    )
    db.flush()
    return inquiry


def list_quotes(
    db: Session,
    *,
    actor: models.User,
    search: Optional[str] = None,
    status_filter: Optional[QuoteStatus] = None,
):
    q = db.query(models.Quote).join(models.Inquiry, models.Quote.inquiry_id == models.Inquiry.id)
    if actor.role == UserRole.SALES:
        q = q.filter(models.Inquiry.created_by_id == actor.id)
    if status_filter is not None:
        q = q.filter(models.Quote.status == status_filter)
    if search:
        term = f"%{search.strip()}%"
        q = q.filter(
            or_(
                models.Quote.quote_number.ilike(term),
                models.Quote.title.ilike(term),
                models.Inquiry.title.ilike(term),
            )
        )
    return q.order_by(models.Quote.created_at.desc(), models.Quote.id.desc())
