from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session, joinedload

from quoteflow import models
from quoteflow.api.deps import (
    commit_and_publish,
    get_cache,
    get_email_sender,
    get_request_context,
    require_permission,
    require_roles,
)
from quoteflow.database import get_db
from quoteflow.models.domain import UserRole
from quoteflow.schemas import CostCalculationCreate, CostCalculationRead, PageParams, Pagination, ok
from quoteflow.services import cost_calculations as cost_service
from quoteflow.services.audit import RequestContext
from quoteflow.services.cache import Cache
from quoteflow.services.email import EmailSender

router = APIRouter(prefix="/costs", tags=["costs"])


@router.get("")
def list_costs(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    item_id: Optional[int] = Query(None),
    calculated_by_id: Optional[int] = Query(None),
    approved: Optional[bool] = Query(None),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_permission("cost-calculations", "read")),
):
    paging = PageParams(page=page, limit=limit)
    q = cost_service.list_cost_calculations(
        db,
        actor=current_user,
        item_id=item_id,
        calculated_by_id=calculated_by_id,
        approved=approved,
    )
    total = q.count()
    rows = (
        q.options(joinedload(models.CostCalculation.calculated_by))
        .offset(paging.offset)
        .limit(paging.limit)
        .all()
    )
    return ok(
        [CostCalculationRead.model_validate(r) for r in rows],
        pagination=Pagination.build(page=page, limit=limit, total=total),
    )


@router.post("", status_code=status.HTTP_201_CREATED)
def create_cost(
    payload: CostCalculationCreate,
    db: Session = Depends(get_db),
    cache: Cache = Depends(get_cache),
    sender: EmailSender = Depends(get_email_sender),
    ctx: RequestContext = Depends(get_request_context),
    current_user: models.User = Depends(require_roles(UserRole.VP, UserRole.ADMIN)),
):
    result = cost_service.create_cost_calculation(
        db,
        actor=current_user,
        inquiry_item_id=payload.inquiry_item_id,
        material_cost=payload.material_cost,
        labor_cost=payload.labor_cost,
        overhead_cost=payload.overhead_cost,
        notes=payload.notes,
        ctx=ctx,
    )
    calc_id = result.calculation.id
    commit_and_publish(db, sender=sender, cache=cache, emails=result.emails)
    calc = db.get(models.CostCalculation, calc_id)
    return ok(
        CostCalculationRead.model_validate(calc),
        message="Cost calculation created" if result.created else "Cost calculation updated",
    )
