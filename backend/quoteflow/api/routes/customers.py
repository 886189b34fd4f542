from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from quoteflow import models
from quoteflow.api.deps import get_request_context, require_permission
from quoteflow.database import get_db
from quoteflow.models.domain import AuditAction
from quoteflow.schemas import (
    CustomerCreate,
    CustomerRead,
    CustomerUpdate,
    PageParams,
    Pagination,
    ok,
)
from quoteflow.services.audit import RequestContext, record_audit, snapshot

router = APIRouter(prefix="/customers", tags=["customers"])

_SNAPSHOT_FIELDS = ("name", "email", "phone", "address", "is_active")


def _get(db: Session, customer_id: int) -> models.Customer:
    customer = db.get(models.Customer, customer_id)
    if not customer:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Customer not found")
    return customer


@router.get("")
def list_customers(
    q: Optional[str] = Query(None, description="Quick search on name, e-mail and phone."),
    include_inactive: bool = Query(False),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission("customers", "read")),
):
    paging = PageParams(page=page, limit=limit)
    query = db.query(models.Customer)
    if not include_inactive:
        query = query.filter(models.Customer.is_active.is_(True))

    if q:
        term = q.strip()
        if term:
            like_any = f"%{term}%"
            query = query.filter(
                or_(
                    models.Customer.name.ilike(like_any),
                    models.Customer.email.ilike(like_any),
                    models.Customer.phone.ilike(like_any),
                )
            )

    total = query.count()
    rows = (
        query.order_by(models.Customer.name.asc(), models.Customer.id.asc())
        .offset(paging.offset)
        .limit(paging.limit)
        .all()
    )
    return ok(
        [CustomerRead.model_validate(r) for r in rows],
        pagination=Pagination.build(page=page, limit=limit, total=total),
    )


@router.post("", status_code=status.HTTP_201_CREATED)
def create_customer(
    payload: CustomerCreate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    current_user: models.User = Depends(require_permission("customers", "write")),
):
    if db.query(models.Customer).filter(models.Customer.name == payload.name).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Customer already exists"
        )
    cust = models.Customer(**payload.model_dump(exclude_unset=True), created_by_id=current_user.id)
    db.add(cust)
    db.flush()
    record_audit(
        db,
        AuditAction.CREATE,
        "Customer",
        cust.id,
        user_id=current_user.id,
        new_data=snapshot(cust, *_SNAPSHOT_FIELDS),
        request_context=ctx,
    )
    db.commit()
    db.refresh(cust)
    return ok(CustomerRead.model_validate(cust), message="Customer created")


@router.get("/{customer_id}")
def get_customer(
    customer_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission("customers", "read")),
):
    return ok(CustomerRead.model_validate(_get(db, customer_id)))


@router.put("/{customer_id}")
def update_customer(
    customer_id: int,
    payload: CustomerUpdate,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    current_user: models.User = Depends(require_permission("customers", "write")),
):
    customer = _get(db, customer_id)
    old = snapshot(customer, *_SNAPSHOT_FIELDS)

    data = payload.model_dump(exclude_unset=True)
    for field, value in data.items():
        setattr(customer, field, value)

    db.add(customer)
    db.flush()
    record_audit(
        db,
        AuditAction.UPDATE,
        "Customer",
        customer.id,
        user_id=current_user.id,
        old_data=old,
        new_data=snapshot(customer, *_SNAPSHOT_FIELDS),
        request_context=ctx,
    )
    db.commit()
    db.refresh(customer)
    return ok(CustomerRead.model_validate(customer), message="Customer updated")


@router.delete("/{customer_id}")
def delete_customer(
    customer_id: int,
    db: Session = Depends(get_db),
    ctx: RequestContext = Depends(get_request_context),
    current_user: models.User = Depends(require_permission("customers", "delete")),
):
    """Soft delete: inquiries keep pointing at the customer row."""

    customer = _get(db, customer_id)
    old = snapshot(customer, *_SNAPSHOT_FIELDS)
    customer.is_active = False
    db.add(customer)
    record_audit(
        db,
        AuditAction.DELETE,
        "Customer",
        customer.id,
        user_id=current_user.id,
        old_data=old,
        new_data={"is_active": False},
        request_context=ctx,
    )
    db.commit()
    return ok(None, message="Customer deleted")
