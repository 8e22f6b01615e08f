"""
SQLAlchemy ORM models for the Welin membership platform.
Defines User (admins, vendors, agents), Member, MemberProduct, LoanCover, Payment,
Premium and WelinIdCounter.

Conventions:
- A single users table holds every back-office identity; `role` is a plain string and
  agents point at their vendor through `vendor_id`.
- Members own their product references (member_products) by value; the referenced
  product rows (loan_covers) live independently.
- Payment.expires_at is maintained by mapper events: set while pending, cleared once terminal.
"""

from datetime import datetime, timedelta, timezone
import enum

from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Float,
    Boolean,
    Date,
    ForeignKey,
    Enum,
    Index,
    JSON,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import relationship, backref, declarative_base

from src.api import config

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, the representation stored in every DateTime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# --- ENUMs ---

class RoleEnum(str, enum.Enum):
    superadmin = "superadmin"
    admin = "admin"
    vendor = "vendor"
    agent = "agent"
    user = "user"

class GenderEnum(str, enum.Enum):
    male = "male"
    female = "female"
    other = "other"

class ProductType(str, enum.Enum):
    # "loneCover" is the persisted tag used by existing clients
    loan_cover = "loneCover"
    health_cover = "healthCover"

class LoanCoverStatusEnum(str, enum.Enum):
    active = "active"
    expired = "expired"
    cancelled = "cancelled"

class CoverPaymentStatusEnum(str, enum.Enum):
    pending = "pending"
    paid = "paid"

class PaymentMethodEnum(str, enum.Enum):
    credit_card = "credit_card"
    debit_card = "debit_card"
    net_banking = "net_banking"
    upi = "upi"
    wallet = "wallet"
    qr_code = "qr_code"
    payment_link = "payment_link"

class PaymentStatusEnum(str, enum.Enum):
    pending = "pending"
    completed = "completed"
    failed = "failed"
    refunded = "refunded"


TERMINAL_PAYMENT_STATUSES = {
    PaymentStatusEnum.completed,
    PaymentStatusEnum.failed,
    PaymentStatusEnum.refunded,
}

# --- MODELS ---

class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True)
    name = Column(String(128), nullable=False)
    email = Column(String(128), unique=True, index=True, nullable=False)
    mobile = Column(String(10), unique=True, index=True, nullable=False)
    hashed_password = Column(String(256), nullable=False)
    role = Column(String(16), nullable=False, default=RoleEnum.user.value, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    last_login = Column(DateTime, default=utcnow)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    # Parent vendor for agents
    vendor_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), index=True)
    agents = relationship("User", backref=backref("vendor", remote_side=[id]))

    members = relationship("Member", back_populates="vendor", foreign_keys="Member.vendor_id")
    payments = relationship("Payment", back_populates="user")


class Member(Base):
    __tablename__ = "members"
    id = Column(Integer, primary_key=True)
    vendor_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    agent_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), index=True)
    org_id = Column(String(64))
    welin_id = Column(String(32), unique=True, nullable=False, index=True)
    member_name = Column(String(128), nullable=False)
    contact_no = Column(String(10), unique=True, nullable=False, index=True)
    email = Column(String(128), unique=True, index=True)
    hashed_password = Column(String(256), nullable=False)
    dob = Column(Date, nullable=False)
    age = Column(Integer, nullable=False)
    gender = Column(Enum(GenderEnum), nullable=False)
    street = Column(String(256))
    city = Column(String(64))
    state = Column(String(64))
    pincode = Column(String(6))
    occupation = Column(String(128))
    documents = Column(JSON, default=list)
    nominee_name = Column(String(128))
    nominee_relation = Column(String(64))
    nominee_contact_no = Column(String(10))
    loan_flag = Column(Boolean, default=False)
    role = Column(String(16), default=RoleEnum.user.value)
    is_active = Column(Boolean, default=True, nullable=False)
    last_login = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    vendor = relationship("User", back_populates="members", foreign_keys=[vendor_id])
    agent = relationship("User", foreign_keys=[agent_id])
    products = relationship(
        "MemberProduct",
        back_populates="member",
        cascade="all, delete-orphan",
        order_by="MemberProduct.id",
    )


class MemberProduct(Base):
    """A product reference held by a member: (type, product id, paid flag)."""
    __tablename__ = "member_products"
    id = Column(Integer, primary_key=True)
    member_id = Column(Integer, ForeignKey("members.id", ondelete="CASCADE"), nullable=False, index=True)
    product_type = Column(Enum(ProductType, values_callable=lambda e: [m.value for m in e]), nullable=False)
    product_id = Column(Integer, nullable=False)
    payment_status = Column(Boolean, default=False, nullable=False)

    member = relationship("Member", back_populates="products")

    __table_args__ = (
        Index("ix_member_products_type_product", "product_type", "product_id"),
    )


class LoanCover(Base):
    __tablename__ = "loan_covers"
    id = Column(Integer, primary_key=True)
    member_id = Column(Integer, ForeignKey("members.id", ondelete="CASCADE"), nullable=False)
    vendor_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    loan_amount = Column(Float, nullable=False)
    coverage_start_date = Column(Date, nullable=False)
    coverage_end_date = Column(Date, nullable=False)
    base_premium = Column(Float, nullable=False)
    gst = Column(Float, nullable=False)
    total_premium = Column(Float, nullable=False)
    payment_status = Column(Enum(CoverPaymentStatusEnum), nullable=False, default=CoverPaymentStatusEnum.pending)
    payment_date = Column(DateTime)
    payment_transaction_id = Column(String(64))
    status = Column(Enum(LoanCoverStatusEnum), nullable=False, default=LoanCoverStatusEnum.active)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    member = relationship("Member")
    vendor = relationship("User")

    __table_args__ = (
        Index("ix_loan_covers_member_id_status", "member_id", "status"),
        Index("ix_loan_covers_vendor_id_status", "vendor_id", "status"),
    )

    @property
    def term(self) -> int:
        """Coverage term in whole years."""
        return round((self.coverage_end_date - self.coverage_start_date).days / 365)


class Payment(Base):
    __tablename__ = "payments"
    id = Column(Integer, primary_key=True)
    amount = Column(Float, nullable=False)
    currency = Column(String(8), nullable=False, default="INR")
    payment_method = Column(Enum(PaymentMethodEnum), nullable=False)
    status = Column(Enum(PaymentStatusEnum), nullable=False, default=PaymentStatusEnum.pending, index=True)
    transaction_id = Column(String(64), unique=True, index=True)
    description = Column(String(256))

    # QR code intent
    qr_code_data = Column(String)
    qr_code_url = Column(String(512))
    qr_code_expires_at = Column(DateTime)

    # Payment link intent
    payment_link_url = Column(String(512))
    payment_link_short_url = Column(String(512))
    payment_link_expires_at = Column(DateTime)

    payment_metadata = Column(JSON)

    # Back-reference to the product being paid for
    product_type = Column(Enum(ProductType, values_callable=lambda e: [m.value for m in e]))
    product_id = Column(Integer)

    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), index=True)
    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow)
    expires_at = Column(DateTime, index=True)

    user = relationship("User", back_populates="payments")


class Premium(Base):
    __tablename__ = "premiums"
    id = Column(Integer, primary_key=True)
    loan_amount = Column(Float, nullable=False)
    year = Column(Integer, nullable=False)
    premium_amount = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("loan_amount", "year", name="uq_premium_loan_amount_year"),
        Index("ix_premiums_year_loan_amount", "year", "loan_amount"),
    )


class WelinIdCounter(Base):
    __tablename__ = "welin_id_counters"
    id = Column(Integer, primary_key=True)
    year = Column(String(4), unique=True, nullable=False)
    prefix = Column(String(16), nullable=False, default=config.WELIN_ID_PREFIX)
    last_id = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow)


# --- Payment expiry marker ---

@event.listens_for(Payment, "before_insert")
@event.listens_for(Payment, "before_update")
def _stamp_payment_expiry(mapper, connection, target):
    now = utcnow()
    target.updated_at = now
    if target.status in (None, PaymentStatusEnum.pending, PaymentStatusEnum.pending.value):
        target.expires_at = now + timedelta(minutes=config.PENDING_PAYMENT_TTL_MINUTES)
    else:
        target.expires_at = None
