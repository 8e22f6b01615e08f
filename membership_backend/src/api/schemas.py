"""
Pydantic schemas for the core entities (User, Member, LoanCover, Payment, Premium)
used for FastAPI request validation and responses.

Update schemas are explicit allow-lists: only the fields declared here can be patched.
"""

from typing import Any, Dict, List, Optional
from datetime import date, datetime
from pydantic import BaseModel, ConfigDict, Field, EmailStr, constr, field_validator

from src.api.models import (
    RoleEnum,
    GenderEnum,
    ProductType,
    LoanCoverStatusEnum,
    CoverPaymentStatusEnum,
    PaymentMethodEnum,
    PaymentStatusEnum,
)

Mobile = constr(pattern=r"^[0-9]{10}$")
Pincode = constr(pattern=r"^[0-9]{6}$")
Password = constr(min_length=6)

# --- USERS ---

# PUBLIC_INTERFACE
class UserBase(BaseModel):
    name: constr(strip_whitespace=True, min_length=1)
    email: EmailStr
    mobile: Mobile

class RegisterRequest(UserBase):
    password: Password
    role: RoleEnum = RoleEnum.user

    @field_validator("role")
    @classmethod
    def self_service_role(cls, value):
        if value not in (RoleEnum.admin, RoleEnum.vendor, RoleEnum.user):
            raise ValueError("role must be one of admin, vendor, user")
        return value

class UserCreate(UserBase):
    password: Password
    role: RoleEnum = RoleEnum.user
    vendor_id: Optional[int] = None

class UserUpdate(BaseModel):
    name: Optional[constr(strip_whitespace=True, min_length=1)] = None
    email: Optional[EmailStr] = None
    mobile: Optional[Mobile] = None
    role: Optional[RoleEnum] = None
    is_active: Optional[bool] = None

class AgentCreate(UserBase):
    password: Optional[Password] = None

# PUBLIC_INTERFACE
class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    mobile: str
    role: str
    vendor_id: Optional[int] = None
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None

class CountsOut(BaseModel):
    active_users: int
    active_vendors: int
    active_members: int

# --- MEMBERS ---

class Address(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[Pincode] = None

class Nominee(BaseModel):
    name: Optional[str] = None
    relation: Optional[str] = None
    contact_no: Optional[Mobile] = None

class MemberDocument(BaseModel):
    type: str
    url: str
    uploaded_at: Optional[datetime] = None

class LoanTerms(BaseModel):
    """Loan cover terms supplied while onboarding a member."""
    amount: float = Field(..., ge=0, description="Loan amount")
    start_date: date
    end_date: date
    base_premium: float = Field(..., ge=0)
    gst: float = Field(..., ge=0)
    total_premium: float = Field(..., ge=0)

# PUBLIC_INTERFACE
class MemberCreate(BaseModel):
    member_name: constr(strip_whitespace=True, min_length=1)
    contact_no: Mobile
    email: Optional[EmailStr] = None
    password: Optional[Password] = None
    dob: date
    age: Optional[int] = Field(None, ge=0)
    gender: GenderEnum
    org_id: Optional[str] = None
    address: Optional[Address] = None
    occupation: Optional[str] = None
    documents: List[MemberDocument] = Field(default_factory=list)
    nominee: Optional[Nominee] = None
    loan_flag: bool = False
    loan: Optional[LoanTerms] = None

class MemberUpdate(BaseModel):
    member_name: Optional[constr(strip_whitespace=True, min_length=1)] = None
    contact_no: Optional[Mobile] = None
    email: Optional[EmailStr] = None
    password: Optional[Password] = None
    dob: Optional[date] = None
    age: Optional[int] = Field(None, ge=0)
    gender: Optional[GenderEnum] = None
    org_id: Optional[str] = None
    address: Optional[Address] = None
    occupation: Optional[str] = None
    documents: Optional[List[MemberDocument]] = None
    nominee: Optional[Nominee] = None
    loan_flag: Optional[bool] = None
    vendor_id: Optional[int] = None
    welin_id: Optional[str] = None

class MemberProductOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_type: ProductType
    product_id: int
    payment_status: bool

# PUBLIC_INTERFACE
class MemberOut(BaseModel):
    id: int
    welin_id: str
    vendor_id: int
    agent_id: Optional[int] = None
    org_id: Optional[str] = None
    member_name: str
    contact_no: str
    email: Optional[str] = None
    dob: date
    age: int
    gender: GenderEnum
    address: Address
    occupation: Optional[str] = None
    documents: List[MemberDocument] = Field(default_factory=list)
    nominee: Nominee
    loan_flag: bool
    role: str
    is_active: bool
    products: List[MemberProductOut] = Field(default_factory=list)
    created_at: Optional[datetime] = None

# --- LOAN COVERS ---

# PUBLIC_INTERFACE
class LoanCoverCreate(BaseModel):
    member_id: int
    vendor_id: Optional[int] = Field(None, description="Defaults to the member's vendor")
    loan_amount: float = Field(..., ge=0)
    coverage_start_date: date
    coverage_end_date: date
    base_premium: float = Field(..., ge=0)
    gst: float = Field(..., ge=0)
    total_premium: float = Field(..., ge=0)

class LoanCoverPaymentUpdate(BaseModel):
    status: CoverPaymentStatusEnum
    date: Optional[datetime] = None
    transaction_id: Optional[str] = None

# PUBLIC_INTERFACE
class LoanCoverOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    member_id: int
    vendor_id: Optional[int] = None
    loan_amount: float
    coverage_start_date: date
    coverage_end_date: date
    term: int
    base_premium: float
    gst: float
    total_premium: float
    payment_status: CoverPaymentStatusEnum
    payment_date: Optional[datetime] = None
    payment_transaction_id: Optional[str] = None
    status: LoanCoverStatusEnum
    created_at: Optional[datetime] = None

class MemberProductDetail(BaseModel):
    type: ProductType
    product_id: int
    payment_status: bool
    details: Optional[Any] = None

# --- PAYMENTS ---

class ProductRef(BaseModel):
    type: ProductType
    product_id: int

# PUBLIC_INTERFACE
class PaymentCreate(BaseModel):
    amount: float = Field(..., gt=0)
    currency: constr(min_length=3, max_length=8) = "INR"
    payment_method: PaymentMethodEnum
    description: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None
    product: Optional[ProductRef] = None

class PaymentUpdate(BaseModel):
    amount: Optional[float] = Field(None, gt=0)
    currency: Optional[constr(min_length=3, max_length=8)] = None
    description: Optional[str] = None
    metadata: Optional[Dict[str, str]] = None
    status: Optional[PaymentStatusEnum] = None

# PUBLIC_INTERFACE
class PaymentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    amount: float
    currency: str
    payment_method: PaymentMethodEnum
    status: PaymentStatusEnum
    transaction_id: str
    description: Optional[str] = None
    qr_code_data: Optional[str] = None
    qr_code_url: Optional[str] = None
    qr_code_expires_at: Optional[datetime] = None
    payment_link_url: Optional[str] = None
    payment_link_short_url: Optional[str] = None
    payment_link_expires_at: Optional[datetime] = None
    payment_metadata: Optional[Dict[str, str]] = None
    product_type: Optional[ProductType] = None
    product_id: Optional[int] = None
    user_id: Optional[int] = None
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    qr_code_error: Optional[str] = None

class GatewayOrderCreate(BaseModel):
    amount: float = Field(..., gt=0)
    currency: str = "INR"
    customer_name: str
    customer_email: EmailStr
    customer_phone: Mobile
    product: Optional[ProductRef] = None

class GatewayOrderOut(BaseModel):
    order_id: str
    payment_session_id: Optional[str] = None
    order_status: Optional[str] = None
    order_amount: float
    order_currency: str
    environment: str

class PaymentConfirmation(BaseModel):
    transaction_id: constr(min_length=1)
    amount: float = Field(..., gt=0)
    currency: str = "INR"
    payment_method: PaymentMethodEnum = PaymentMethodEnum.upi
    description: Optional[str] = None
    product: Optional[ProductRef] = None

# --- PREMIUMS ---

class PremiumQuote(BaseModel):
    requested_loan_amount: float
    actual_loan_amount: float
    year: int
    premium_amount: int
    is_exact_match: bool

class PremiumImportResult(BaseModel):
    modified: int
    upserted: int
    total: int
    existing: int
    new: int
