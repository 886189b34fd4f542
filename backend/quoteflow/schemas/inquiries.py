from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from quoteflow.models.domain import InquiryStatus, ItemStatus, Priority
from quoteflow.schemas.customers import CustomerBrief
from quoteflow.schemas.users import UserBrief


class InquiryItemCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    quantity: int = Field(1, ge=1)
    unit: Optional[str] = Field(None, max_length=32)
    notes: Optional[str] = None
    requested_delivery: Optional[datetime] = None

    @field_validator("name")
    @classmethod
    def clean_name(cls, v: str) -> str:
        vv = v.strip()
        if not vv:
            raise ValueError("name must not be blank")
        return vv


class InquiryCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    customer_id: int = Field(..., gt=0)
    priority: Priority = Priority.MEDIUM
    deadline: Optional[datetime] = None
    items: List[InquiryItemCreate] = Field(..., min_length=1)


class InquiryUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    customer_id: Optional[int] = Field(None, gt=0)
    priority: Optional[Priority] = None
    deadline: Optional[datetime] = None
    assigned_to_id: Optional[int] = None
    status: Optional[InquiryStatus] = None

    @field_validator("title", "customer_id", "priority", "status", mode="before")
    @classmethod
    def reject_null(cls, v, info):
        # Omit the field to leave it unchanged; these columns are NOT NULL.
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v


class CostCalculationBrief(BaseModel):
    id: int
    material_cost: float
    labor_cost: float
    overhead_cost: float
    total_cost: float
    is_approved: bool
    calculated_by_id: int

    model_config = ConfigDict(from_attributes=True)


class InquiryItemRead(BaseModel):
    id: int
    inquiry_id: int
    name: str
    description: Optional[str] = None
    quantity: int
    unit: Optional[str] = None
    notes: Optional[str] = None
    status: ItemStatus
    assigned_to_id: Optional[int] = None
    assigned_to: Optional[UserBrief] = None
    requested_delivery: Optional[datetime] = None
    cost_calculation: Optional[CostCalculationBrief] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class InquiryRead(BaseModel):
    id: int
    sequential_number: int
    title: str
    description: Optional[str] = None
    priority: Priority
    status: InquiryStatus
    deadline: Optional[datetime] = None
    customer_id: int
    customer: Optional[CustomerBrief] = None
    created_by_id: int
    created_by: Optional[UserBrief] = None
    assigned_to_id: Optional[int] = None
    items: List[InquiryItemRead] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class AttachmentCreate(BaseModel):
    file_name: str = Field(..., min_length=1, max_length=255)
    url: str = Field(..., min_length=1, max_length=1024)
    size: Optional[int] = Field(None, ge=0)
    mime_type: Optional[str] = Field(None, max_length=128)


class AttachmentRead(AttachmentCreate):
    id: int
    inquiry_id: int
    uploaded_by_id: int
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ItemUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    quantity: Optional[int] = Field(None, ge=1)
    unit: Optional[str] = Field(None, max_length=32)
    notes: Optional[str] = None
    requested_delivery: Optional[datetime] = None
    status: Optional[ItemStatus] = None


class AssignRequest(BaseModel):
    item_ids: List[int] = Field(..., min_length=1)
    assignee_id: int = Field(..., gt=0)


class UnassignRequest(BaseModel):
    item_ids: List[int] = Field(..., min_length=1)


class CostCalculationCreate(BaseModel):
    inquiry_item_id: int = Field(..., gt=0)
    material_cost: Decimal = Field(..., ge=0, max_digits=14, decimal_places=2)
    labor_cost: Decimal = Field(..., ge=0, max_digits=14, decimal_places=2)
    overhead_cost: Decimal = Field(..., ge=0, max_digits=14, decimal_places=2)
    notes: Optional[str] = None


class CostCalculationRead(CostCalculationBrief):
    inquiry_item_id: int
    approved_at: Optional[datetime] = None
    notes: Optional[str] = None
    calculated_by: Optional[UserBrief] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
