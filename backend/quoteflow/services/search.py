"""Multi-entity search with role gating.

Each searchable entity declares its text columns, filterable columns and a
sort whitelist; role scoping reuses the inquiry list rules.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from fastapi import HTTPException, status
from sqlalchemy import asc, desc, or_
from sqlalchemy.orm import Query, Session

from quoteflow import models
from quoteflow.core.permissions import SEARCHABLE_ENTITIES, can_search
from quoteflow.models.domain import InquiryStatus, ItemStatus, Priority, UserRole
from quoteflow.services.inquiries import scope_inquiries, scope_items

ENTITY_ORDER = ("inquiries", "items", "customers", "users")


@dataclass(frozen=True)
class SearchParams:
    q: Optional[str] = None
    status: Optional[list[str]] = None
    priority: Optional[list[str]] = None
    customer_id: Optional[int] = None
    assigned_to_id: Optional[int] = None
    role: Optional[str] = None
    page: int = 1
    limit: int = 20
    sort_by: Optional[str] = None
    sort_order: str = "desc"


@dataclass
class EntityResults:
    rows: list[Any]
    total: int


@dataclass
class SearchResult:
    results: dict[str, EntityResults] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(r.total for r in self.results.values())


def _members(enum_cls, values: Optional[list[str]]) -> Optional[list[Any]]:
    """Valid enum members among `values`; None when no filter was requested."""

    if not values:
        return None
    valid = {m.value for m in enum_cls}
    return [enum_cls(str(v).upper()) for v in values if str(v).upper() in valid]


def _inquiries(db: Session, actor: models.User, p: SearchParams) -> Query:
    q = scope_inquiries(db.query(models.Inquiry), actor)
    if p.q:
        like = f"%{p.q}%"
        q = q.filter(
            or_(
                models.Inquiry.title.ilike(like),
                models.Inquiry.description.ilike(like),
                models.Inquiry.customer.has(models.Customer.name.ilike(like)),
            )
        )
    statuses = _members(InquiryStatus, p.status)
    if statuses is not None:
        q = q.filter(models.Inquiry.status.in_(statuses))
    priorities = _members(Priority, p.priority)
    if priorities is not None:
        q = q.filter(models.Inquiry.priority.in_(priorities))
    if p.customer_id is not None:
        q = q.filter(models.Inquiry.customer_id == p.customer_id)
    if p.assigned_to_id is not None:
        q = q.filter(models.Inquiry.assigned_to_id == p.assigned_to_id)
    return q


def _items(db: Session, actor: models.User, p: SearchParams) -> Query:
    q = scope_items(db.query(models.InquiryItem), actor)
    if p.q:
        like = f"%{p.q}%"
        q = q.filter(
            or_(
                models.InquiryItem.name.ilike(like),
                models.InquiryItem.description.ilike(like),
                models.InquiryItem.notes.ilike(like),
            )
        )
    statuses = _members(ItemStatus, p.status)
    if statuses is not None:
        q = q.filter(models.InquiryItem.status.in_(statuses))
    if p.assigned_to_id is not None:
        q = q.filter(models.InquiryItem.assigned_to_id == p.assigned_to_id)
    return q


def _customers(db: Session, actor: models.User, p: SearchParams) -> Query:
    q = db.query(models.Customer).filter(models.Customer.is_active.is_(True))
    if p.q:
        like = f"%{p.q}%"
        q = q.filter(
            or_(
                models.Customer.name.ilike(like),
                models.Customer.email.ilike(like),
                models.Customer.phone.ilike(like),
            )
        )
    return q


def _users(db: Session, actor: models.User, p: SearchParams) -> Query:
    q = db.query(models.User).filter(models.User.is_active.is_(True))
    if p.q:
        like = f"%{p.q}%"
        q = q.filter(or_(models.User.name.ilike(like), models.User.email.ilike(like)))
    roles = _members(UserRole, [p.role] if p.role else None)
    if roles is not None:
        q = q.filter(models.User.role.in_(roles))
    return q


_BUILDERS: dict[str, tuple[Callable[[Session, models.User, SearchParams], Query], Any, dict[str, Any]]] = {
    "inquiries": (
        _inquiries,
        models.Inquiry,
        {
            "created_at": models.Inquiry.created_at,
            "title": models.Inquiry.title,
            "priority": models.Inquiry.priority,
            "status": models.Inquiry.status,
            "deadline": models.Inquiry.deadline,
        },
    ),
    "items": (
        _items,
        models.InquiryItem,
        {
            "created_at": models.InquiryItem.created_at,
            "name": models.InquiryItem.name,
            "status": models.InquiryItem.status,
            "quantity": models.InquiryItem.quantity,
        },
    ),
    "customers": (
        _customers,
        models.Customer,
        {"created_at": models.Customer.created_at, "name": models.Customer.name},
    ),
    "users": (
        _users,
        models.User,
        {
            "created_at": models.User.created_at,
            "name": models.User.name,
            "email": models.User.email,
        },
    ),
}


def search(
    db: Session,
    *,
    actor: models.User,
    entity_type: Optional[str],
    params: SearchParams,
) -> SearchResult:
    """Search one entity type (403 when the role may not) or every type the role may see."""

    if entity_type and entity_type != "all":
        if entity_type not in _BUILDERS:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Unknown search type: {entity_type}",
            )
        if not can_search(actor.role, entity_type):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Not allowed to search {entity_type}",
            )
        entities = [entity_type]
    else:
        allowed = SEARCHABLE_ENTITIES.get(actor.role, frozenset())
        entities = [e for e in ENTITY_ORDER if e in allowed]

    page = max(1, int(params.page))
    limit = max(1, min(100, int(params.limit)))
    direction = asc if str(params.sort_order).lower() == "asc" else desc

    result = SearchResult()
    for entity in entities:
        builder, model, sortable = _BUILDERS[entity]
        q = builder(db, actor, params)
        total = q.count()
        sort_col = sortable.get(params.sort_by or "created_at", sortable["created_at"])
        rows = (
            q.order_by(direction(sort_col), direction(model.id))
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        result.results[entity] = EntityResults(rows=rows, total=int(total))
    return result
