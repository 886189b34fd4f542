from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from quoteflow.models.domain import (
    ApprovalStatus,
    ApprovalType,
    AuditAction,
    NotificationType,
    QuoteStatus,
)
from quoteflow.schemas.users import UserBrief


class ApprovalCreate(BaseModel):
    cost_calculation_id: int = Field(..., gt=0)
    status: ApprovalStatus
    comments: Optional[str] = Field(None, max_length=4000)


class ApprovalRead(BaseModel):
    id: int
    type: ApprovalType
    status: ApprovalStatus
    comments: Optional[str] = None
    approver_id: int
    approver: Optional[UserBrief] = None
    cost_calculation_id: int
    approved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class QuoteCreate(BaseModel):
    inquiry_id: int = Field(..., gt=0)
    title: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    margin: Decimal = Field(Decimal("0"), ge=0, le=1)
    valid_until: datetime
    terms: Optional[str] = None
    notes: Optional[str] = None


class QuoteDecision(BaseModel):
    decision: QuoteStatus


class QuoteRead(BaseModel):
    id: int
    quote_number: str
    title: str
    description: Optional[str] = None
    inquiry_id: int
    subtotal: float
    margin: float
    total: float
    valid_until: datetime
    terms: Optional[str] = None
    notes: Optional[str] = None
    status: QuoteStatus
    created_by_id: int
    sent_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class NotificationRead(BaseModel):
    id: int
    type: NotificationType
    title: str
    message: str
    data: Optional[dict[str, Any]] = None
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class AuditLogRead(BaseModel):
    id: int
    action: AuditAction
    entity: str
    entity_id: Optional[int] = None
    old_data: Optional[dict[str, Any]] = None
    new_data: Optional[dict[str, Any]] = None
    user_id: Optional[int] = None
    inquiry_id: Optional[int] = None
    request_id: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class SearchFilters(BaseModel):
    status: Optional[list[str]] = None
    priority: Optional[list[str]] = None
    customer_id: Optional[int] = None
    assigned_to_id: Optional[int] = None
    role: Optional[str] = None


class SearchRequest(BaseModel):
    type: Optional[str] = None
    q: Optional[str] = Field(None, max_length=200)
    filters: SearchFilters = SearchFilters()
    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1, le=100)
    sort_by: Optional[str] = None
    sort_order: str = Field("desc", pattern="^(asc|desc)$")
