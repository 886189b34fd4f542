from quoteflow.schemas.auth import Token
from quoteflow.schemas.common import PageParams, Pagination, ok
from quoteflow.schemas.customers import CustomerBrief, CustomerCreate, CustomerRead, CustomerUpdate
from quoteflow.schemas.inquiries import (
    AssignRequest,
    AttachmentCreate,
    AttachmentRead,
    CostCalculationCreate,
    CostCalculationRead,
    InquiryCreate,
    InquiryItemCreate,
    InquiryItemRead,
    InquiryRead,
    InquiryUpdate,
    ItemUpdate,
    UnassignRequest,
)
from quoteflow.schemas.users import LanguageUpdate, UserBrief, UserCreate, UserRead, UserUpdate
from quoteflow.schemas.workflow import (
    ApprovalCreate,
    ApprovalRead,
    AuditLogRead,
    NotificationRead,
    QuoteCreate,
    QuoteDecision,
    QuoteRead,
    SearchFilters,
    SearchRequest,
)

__all__ = [
    "ApprovalCreate",
    "ApprovalRead",
    "AssignRequest",
    "AttachmentCreate",
    "AttachmentRead",
    "AuditLogRead",
    "CostCalculationCreate",
    "CostCalculationRead",
    "CustomerBrief",
    "CustomerCreate",
    "CustomerRead",
    "CustomerUpdate",
    "InquiryCreate",
    "InquiryItemCreate",
    "InquiryItemRead",
    "InquiryRead",
    "InquiryUpdate",
    "ItemUpdate",
    "LanguageUpdate",
    "NotificationRead",
    "PageParams",
    "Pagination",
    "QuoteCreate",
    "QuoteDecision",
    "QuoteRead",
    "SearchFilters",
    "SearchRequest",
    "Token",
    "UnassignRequest",
    "UserBrief",
    "UserCreate",
    "UserRead",
    "UserUpdate",
    "ok",
]
