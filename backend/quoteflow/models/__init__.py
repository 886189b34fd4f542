from quoteflow.models.domain import (  # noqa: F401
    Approval,
    ApprovalStatus,
    ApprovalType,
    Attachment,
    AuditAction,
    AuditLog,
    CostCalculation,
    Customer,
    DocumentSequence,
    EmailOutbox,
    Inquiry,
    InquiryItem,
    InquiryStatus,
    ItemStatus,
    Language,
    Notification,
    NotificationType,
    OutboxStatus,
    Priority,
    Quote,
    QuoteStatus,
    User,
    UserRole,
)
