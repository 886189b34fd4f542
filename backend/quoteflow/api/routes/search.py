from dataclasses import asdict
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from quoteflow import models
from quoteflow.api.deps import get_cache, get_current_user
from quoteflow.config import settings
from quoteflow.database import get_db
from quoteflow.schemas import (
    CustomerRead,
    InquiryItemRead,
    InquiryRead,
    Pagination,
    SearchRequest,
    UserRead,
    ok,
)
from quoteflow.services import search as search_service
from quoteflow.services.cache import Cache, cache_key

router = APIRouter(prefix="/search", tags=["search"])

_SCHEMAS: dict[str, Any] = {
    "inquiries": InquiryRead,
    "items": InquiryItemRead,
    "customers": CustomerRead,
    "users": UserRead,
}


def _run(
    db: Session,
    cache: Cache,
    user: models.User,
    entity_type: Optional[str],
    params: search_service.SearchParams,
) -> dict:
    key = cache_key("search", user.id, {"type": entity_type or "all", **asdict(params)})
    cached = cache.get(key)
    if cached is not None:
        return cached

    result = search_service.search(db, actor=user, entity_type=entity_type, params=params)
    data = {
        entity: {
            "results": [_SCHEMAS[entity].model_validate(r) for r in res.rows],
            "total": res.total,
        }
        for entity, res in result.results.items()
    }
    page = max(1, params.page)
    limit = max(1, min(100, params.limit))
    body = ok(
        {"type": entity_type or "all", "query": params.q, "results": data, "total": result.total},
        pagination=Pagination.build(page=page, limit=limit, total=result.total),
    )
    cache.set(key, body, settings.cache_ttl_search_seconds)
    return body


@router.get("")
def search_get(
    entity_type: Optional[str] = Query(None, alias="type"),
    q: Optional[str] = Query(None, max_length=200),
    status_filter: Optional[List[str]] = Query(None, alias="status"),
    priority: Optional[List[str]] = Query(None),
    customer_id: Optional[int] = Query(None),
    assigned_to_id: Optional[int] = Query(None),
    role: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    sort_by: Optional[str] = Query(None),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    db: Session = Depends(get_db),
    cache: Cache = Depends(get_cache),
    current_user: models.User = Depends(get_current_user),
):
    params = search_service.SearchParams(
        q=(q or "").strip() or None,
        status=status_filter,
        priority=priority,
        customer_id=customer_id,
        assigned_to_id=assigned_to_id,
        role=role,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return _run(db, cache, current_user, entity_type, params)


@router.post("")
def search_post(
    payload: SearchRequest,
    db: Session = Depends(get_db),
    cache: Cache = Depends(get_cache),
    current_user: models.User = Depends(get_current_user),
):
    f = payload.filters
    params = search_service.SearchParams(
        q=(payload.q or "").strip() or None,
        status=f.status,
        priority=f.priority,
        customer_id=f.customer_id,
        assigned_to_id=f.assigned_to_id,
        role=f.role,
        page=payload.page,
        limit=payload.limit,
        sort_by=payload.sort_by,
        sort_order=payload.sort_order,
    )
    return _run(db, cache, current_user, payload.type, params)
