# ruff: noqa: E501
from datetime import datetime
from decimal import Decimal
from enum import Enum as PyEnum

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    event,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from quoteflow.database import Base


class UserRole(str, PyEnum):
    SUPERUSER = "SUPERUSER"
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    SALES = "SALES"
    VPP = "VPP"  # VP planner: distributes items to VPs
    VP = "VP"  # costs the items assigned to them
    TECH = "TECH"


class Language(str, PyEnum):
    en = "en"
    bs = "bs"
    de = "de"
    hr = "hr"


class Priority(str, PyEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class InquiryStatus(str, PyEnum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    ASSIGNED = "ASSIGNED"
    COSTING = "COSTING"
    QUOTED = "QUOTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CONVERTED = "CONVERTED"


class ItemStatus(str, PyEnum):
    PENDING = "PENDING"
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    COSTED = "COSTED"
    APPROVED = "APPROVED"
    QUOTED = "QUOTED"
    REJECTED = "REJECTED"


class ApprovalType(str, PyEnum):
    COST_CALCULATION = "COST_CALCULATION"


class ApprovalStatus(str, PyEnum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class QuoteStatus(str, PyEnum):
    DRAFT = "DRAFT"
    SENT = "SENT"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"


class NotificationType(str, PyEnum):
    INQUIRY_ASSIGNED = "INQUIRY_ASSIGNED"
    COST_CALCULATION_REQUESTED = "COST_CALCULATION_REQUESTED"
    APPROVAL_REQUIRED = "APPROVAL_REQUIRED"
    QUOTE_GENERATED = "QUOTE_GENERATED"
    PRODUCTION_ORDER_CREATED = "PRODUCTION_ORDER_CREATED"
    DEADLINE_REMINDER = "DEADLINE_REMINDER"
    STATUS_UPDATE = "STATUS_UPDATE"


class OutboxStatus(str, PyEnum):
    pending = "pending"
    sent = "sent"
    failed = "failed"


class AuditAction(str, PyEnum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    SUBMIT = "SUBMIT"
    ASSIGN = "ASSIGN"
    UNASSIGN = "UNASSIGN"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    SEND = "SEND"
    CONVERT = "CONVERT"


MONEY = Numeric(14, 2)


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # Legacy local login; accounts provisioned elsewhere still carry a random hash.
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, native_enum=False), nullable=False, default=UserRole.SALES, index=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    preferred_language: Mapped[Language] = mapped_column(
        Enum(Language, native_enum=False), nullable=False, default=Language.en
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"


class Customer(Base):
    __tablename__ = "customers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    email: Mapped[str | None] = mapped_column(String(255))
    phone: Mapped[str | None] = mapped_column(String(64))
    address: Mapped[str | None] = mapped_column(Text)
    created_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    created_by = relationship("User")
    inquiries = relationship("Inquiry", back_populates="customer")


class Inquiry(Base):
    __tablename__ = "inquiries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sequential_number: Mapped[int] = mapped_column(Integer, unique=True, nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    priority: Mapped[Priority] = mapped_column(
        Enum(Priority, native_enum=False), nullable=False, default=Priority.MEDIUM
    )
    status: Mapped[InquiryStatus] = mapped_column(
        Enum(InquiryStatus, native_enum=False),
        nullable=False,
        default=InquiryStatus.DRAFT,
        index=True,
    )
    deadline: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    customer_id: Mapped[int] = mapped_column(ForeignKey("customers.id"), nullable=False, index=True)
    created_by_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    assigned_to_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    customer = relationship("Customer", back_populates="inquiries")
    created_by = relationship("User", foreign_keys=[created_by_id])
    assigned_to = relationship("User", foreign_keys=[assigned_to_id])
    items = relationship(
        "InquiryItem",
        back_populates="inquiry",
        cascade="all, delete-orphan",
        order_by="InquiryItem.id",
    )
    quotes = relationship("Quote", back_populates="inquiry", cascade="all, delete-orphan")
    attachments = relationship(
        "Attachment", back_populates="inquiry", cascade="all, delete-orphan"
    )


class InquiryItem(Base):
    __tablename__ = "inquiry_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    inquiry_id: Mapped[int] = mapped_column(
        ForeignKey("inquiries.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    unit: Mapped[str | None] = mapped_column(String(32))
    notes: Mapped[str | None] = mapped_column(Text)
    status: Mapped[ItemStatus] = mapped_column(
        Enum(ItemStatus, native_enum=False), nullable=False, default=ItemStatus.PENDING, index=True
    )
    assigned_to_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True, index=True)
    requested_delivery: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    inquiry = relationship("Inquiry", back_populates="items")
    assigned_to = relationship("User")
    cost_calculation = relationship(
        "CostCalculation",
        back_populates="inquiry_item",
        uselist=False,
        cascade="all, delete-orphan",
    )

    @validates("quantity")
    def _validate_quantity(self, _key, value):
        if value is None or int(value) < 1:
            raise ValueError("quantity must be >= 1")
        return int(value)


class CostCalculation(Base):
    __tablename__ = "cost_calculations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    inquiry_item_id: Mapped[int] = mapped_column(
        ForeignKey("inquiry_items.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    material_cost: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    labor_cost: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    overhead_cost: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=Decimal("0"))
    total_cost: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    calculated_by_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    is_approved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    inquiry_item = relationship("InquiryItem", back_populates="cost_calculation")
    calculated_by = relationship("User")
    approvals = relationship(
        "Approval",
        back_populates="cost_calculation",
        cascade="all, delete-orphan",
        order_by="Approval.id",
    )

    def _validate_invariants(self) -> None:
        parts = (self.material_cost, self.labor_cost, self.overhead_cost)
        if any(p is None or Decimal(p) < 0 for p in parts):
            raise ValueError("cost components must be non-negative")
        if Decimal(self.total_cost) != sum((Decimal(p) for p in parts), Decimal("0")):
            raise ValueError("total_cost must equal material + labor + overhead")


@event.listens_for(CostCalculation, "before_insert")
def _cost_calculation_before_insert(_mapper, _connection, target: CostCalculation):
    target._validate_invariants()


@event.listens_for(CostCalculation, "before_update")
def _cost_calculation_before_update(_mapper, _connection, target: CostCalculation):
    target._validate_invariants()


class Approval(Base):
    __tablename__ = "approvals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    type: Mapped[ApprovalType] = mapped_column(
        Enum(ApprovalType, native_enum=False), nullable=False, default=ApprovalType.COST_CALCULATION
    )
    status: Mapped[ApprovalStatus] = mapped_column(
        Enum(ApprovalStatus, native_enum=False), nullable=False, default=ApprovalStatus.PENDING, index=True
    )
    comments: Mapped[str | None] = mapped_column(Text)
    approver_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    cost_calculation_id: Mapped[int] = mapped_column(
        ForeignKey("cost_calculations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    cost_calculation = relationship("CostCalculation", back_populates="approvals")
    approver = relationship("User")


class Quote(Base):
    __tablename__ = "quotes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    quote_number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    inquiry_id: Mapped[int] = mapped_column(
        ForeignKey("inquiries.id", ondelete="CASCADE"), nullable=False, index=True
    )
    subtotal: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    margin: Mapped[Decimal] = mapped_column(Numeric(5, 4), nullable=False, default=Decimal("0"))
    total: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    valid_until: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    terms: Mapped[str | None] = mapped_column(Text)
    notes: Mapped[str | None] = mapped_column(Text)
    status: Mapped[QuoteStatus] = mapped_column(
        Enum(QuoteStatus, native_enum=False), nullable=False, default=QuoteStatus.DRAFT, index=True
    )
    created_by_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    inquiry = relationship("Inquiry", back_populates="quotes")
    created_by = relationship("User")


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    type: Mapped[NotificationType] = mapped_column(
        Enum(NotificationType, native_enum=False), nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), index=True)

    user = relationship("User")


class EmailOutbox(Base):
    __tablename__ = "email_outbox"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    template: Mapped[str] = mapped_column(String(64), nullable=False)
    recipients: Mapped[list] = mapped_column(JSON, nullable=False)
    template_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    status: Mapped[OutboxStatus] = mapped_column(
        Enum(OutboxStatus, native_enum=False), nullable=False, default=OutboxStatus.pending, index=True
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    action: Mapped[AuditAction] = mapped_column(
        Enum(AuditAction, native_enum=False), nullable=False, index=True
    )
    entity: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    entity_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    old_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    new_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True, index=True)
    # No FK: audit rows outlive the inquiry they describe.
    inquiry_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)

    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    ip: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(256), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), index=True)

    user = relationship("User", lazy="joined")


@event.listens_for(AuditLog, "before_update")
def _audit_log_before_update(_mapper, _connection, target: AuditLog):
    raise ValueError("audit_logs is append-only")


@event.listens_for(AuditLog, "before_delete")
def _audit_log_before_delete(_mapper, _connection, target: AuditLog):
    raise ValueError("audit_logs is append-only")


class Attachment(Base):
    __tablename__ = "attachments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    inquiry_id: Mapped[int] = mapped_column(
        ForeignKey("inquiries.id", ondelete="CASCADE"), nullable=False, index=True
    )
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    url: Mapped[str] = mapped_column(String(1024), nullable=False)
    size: Mapped[int | None] = mapped_column(Integer)
    mime_type: Mapped[str | None] = mapped_column(String(128))
    uploaded_by_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    inquiry = relationship("Inquiry", back_populates="attachments")
    uploaded_by = relationship("User")


class DocumentSequence(Base):
    __tablename__ = "document_sequences"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # e.g. "inquiry" or "quote:2026"
    doc_type: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    last_seq: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
