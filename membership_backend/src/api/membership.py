"""
Member onboarding and management endpoints.

Includes:
- Member CRUD (create by vendors/agents, allow-listed updates, hard delete)
- Welin ID allocation (per-year atomic counter)
- Lookups by vendor, agent and Welin ID
- Member product listing (product references resolved by type)
- Member self-service profile

OpenAPI tagged and response schemas set for Swagger.
"""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, status
from loguru import logger
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.api import config
from src.api.auth import get_db, get_current_user, get_current_member, hash_password, ensure_identity_available
from src.api.errors import DuplicateKeyError, ForbiddenError, InvalidInputError, NotFoundError
from src.api.loan_covers import create_loan_cover, resolve_member_products, validate_terms
from src.api.models import Member, User, RoleEnum, WelinIdCounter, utcnow
from src.api.openapi_schemas import APIResponse, ErrorResponse
from src.api.schemas import (
    Address,
    LoanCoverOut,
    MemberCreate,
    MemberDocument,
    MemberOut,
    MemberProductOut,
    MemberUpdate,
    Nominee,
)

router = APIRouter(prefix="/api/member", tags=["Members"])

DEFAULT_MEMBER_PASSWORD = "password"

# ---------- HELPERS ----------

# PUBLIC_INTERFACE
def next_welin_id(db: Session, year: Optional[int] = None) -> str:
    """
    Allocate the next Welin ID for `year` (default: current year), e.g. WELIN-2026-00042.

    The increment is a single UPDATE ... RETURNING so concurrent allocations never
    observe the same value. The year row is created on first use.
    """
    year = str(year or utcnow().year)
    stmt = (
        update(WelinIdCounter)
        .where(WelinIdCounter.year == year)
        .values(last_id=WelinIdCounter.last_id + 1)
        .returning(WelinIdCounter.last_id, WelinIdCounter.prefix)
        .execution_options(synchronize_session=False)
    )
    row = db.execute(stmt).first()
    if row is None:
        try:
            with db.begin_nested():
                db.add(WelinIdCounter(year=year, prefix=config.WELIN_ID_PREFIX, last_id=0))
        except IntegrityError:
            # Another request created the year row first.
            pass
        row = db.execute(stmt).first()
    last_id, prefix = row
    return f"{prefix}-{year}-{last_id:05d}"


def calculate_age(dob: date, today: Optional[date] = None) -> int:
    today = today or date.today()
    age = today.year - dob.year
    if (today.month, today.day) < (dob.month, dob.day):
        age -= 1
    return age


def member_to_out(member: Member) -> MemberOut:
    return MemberOut(
        id=member.id,
        welin_id=member.welin_id,
        vendor_id=member.vendor_id,
        agent_id=member.agent_id,
        org_id=member.org_id,
        member_name=member.member_name,
        contact_no=member.contact_no,
        email=member.email,
        dob=member.dob,
        age=member.age,
        gender=member.gender,
        address=Address(street=member.street, city=member.city, state=member.state, pincode=member.pincode),
        occupation=member.occupation,
        documents=[MemberDocument(**d) for d in (member.documents or [])],
        nominee=Nominee(
            name=member.nominee_name,
            relation=member.nominee_relation,
            contact_no=member.nominee_contact_no,
        ),
        loan_flag=bool(member.loan_flag),
        role=member.role,
        is_active=member.is_active,
        products=[MemberProductOut.model_validate(p) for p in member.products],
        created_at=member.created_at,
    )


def _apply_address(member: Member, address: Optional[Address]):
    if address is None:
        return
    member.street = address.street
    member.city = address.city
    member.state = address.state
    member.pincode = address.pincode


def _apply_nominee(member: Member, nominee: Optional[Nominee]):
    if nominee is None:
        return
    member.nominee_name = nominee.name
    member.nominee_relation = nominee.relation
    member.nominee_contact_no = nominee.contact_no


def _serialize_documents(documents) -> list:
    return [
        {
            "type": d.type,
            "url": d.url,
            "uploaded_at": (d.uploaded_at or utcnow()).isoformat(),
        }
        for d in documents
    ]


def _get_vendor(db: Session, vendor_id: int) -> Optional[User]:
    vendor = db.get(User, vendor_id)
    if not vendor or vendor.role != RoleEnum.vendor.value:
        return None
    return vendor


def _get_member_or_404(db: Session, member_id: int) -> Member:
    member = db.get(Member, member_id)
    if not member:
        raise NotFoundError("Member not found")
    return member

# ---------- MEMBER CRUD ----------

# PUBLIC_INTERFACE
@router.get("", response_model=APIResponse, summary="List members")
def list_members(
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    members = db.query(Member).order_by(Member.id).offset(skip).limit(limit).all()
    return APIResponse(success=True, data=[member_to_out(m) for m in members])

# PUBLIC_INTERFACE
@router.post("", response_model=APIResponse, status_code=status.HTTP_201_CREATED, responses={400: {"model": ErrorResponse}, 403: {"model": ErrorResponse}}, summary="Create member")
def create_member(
    member_in: MemberCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Onboard a member under the caller's vendor (vendors directly, agents through
    their parent vendor). An optional `loan` creates the member's loan cover.
    """
    if current_user.role == RoleEnum.agent.value:
        vendor_id = current_user.vendor_id
    elif current_user.role == RoleEnum.vendor.value:
        vendor_id = current_user.id
    else:
        raise ForbiddenError("Only vendors and agents can create members")

    if vendor_id is None or _get_vendor(db, vendor_id) is None:
        raise InvalidInputError("Invalid vendor ID")

    ensure_identity_available(db, email=member_in.email, mobile=member_in.contact_no)
    if member_in.loan:
        validate_terms(
            member_in.loan.base_premium, member_in.loan.gst, member_in.loan.total_premium,
            member_in.loan.start_date, member_in.loan.end_date,
        )

    welin_id = next_welin_id(db)
    member = Member(
        vendor_id=vendor_id,
        agent_id=current_user.id,
        org_id=member_in.org_id,
        welin_id=welin_id,
        member_name=member_in.member_name,
        contact_no=member_in.contact_no,
        email=member_in.email.lower() if member_in.email else None,
        hashed_password=hash_password(member_in.password or DEFAULT_MEMBER_PASSWORD),
        dob=member_in.dob,
        age=member_in.age if member_in.age is not None else calculate_age(member_in.dob),
        gender=member_in.gender,
        occupation=member_in.occupation,
        documents=_serialize_documents(member_in.documents),
        loan_flag=member_in.loan_flag,
        role=RoleEnum.user.value,
        is_active=True,
    )
    _apply_address(member, member_in.address)
    _apply_nominee(member, member_in.nominee)
    db.add(member)
    db.commit()
    db.refresh(member)
    logger.info("Member {} onboarded under vendor {} by {}", member.welin_id, vendor_id, current_user.id)

    loan_cover = None
    if member_in.loan:
        loan = member_in.loan
        cover, _ = create_loan_cover(
            db,
            member,
            vendor_id=vendor_id,
            loan_amount=loan.amount,
            coverage_start_date=loan.start_date,
            coverage_end_date=loan.end_date,
            base_premium=loan.base_premium,
            gst=loan.gst,
            total_premium=loan.total_premium,
        )
        db.refresh(member)
        loan_cover = LoanCoverOut.model_validate(cover)

    data = member_to_out(member).model_dump(mode="json")
    data["loan_cover"] = loan_cover.model_dump(mode="json") if loan_cover else None
    return APIResponse(success=True, message="Member created successfully", data=data)

# PUBLIC_INTERFACE
@router.get("/me", response_model=APIResponse, summary="Current member profile")
def get_my_profile(
    db: Session = Depends(get_db),
    member: Member = Depends(get_current_member),
):
    """Profile and resolved products of the member holding the token."""
    data = member_to_out(member).model_dump(mode="json")
    data["product_details"] = [p.model_dump(mode="json") for p in resolve_member_products(db, member)]
    return APIResponse(success=True, data=data)

# PUBLIC_INTERFACE
@router.get("/vendor/{vendor_id}", response_model=APIResponse, summary="Members of a vendor")
def list_vendor_members(
    vendor_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if _get_vendor(db, vendor_id) is None:
        raise NotFoundError("Vendor not found")
    members = db.query(Member).filter(Member.vendor_id == vendor_id).order_by(Member.id).all()
    return APIResponse(success=True, data=[member_to_out(m) for m in members])

# PUBLIC_INTERFACE
@router.get("/welin/{welin_id}", response_model=APIResponse, summary="Member by Welin ID")
def get_member_by_welin_id(
    welin_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    member = db.query(Member).filter(Member.welin_id == welin_id).first()
    if not member:
        raise NotFoundError("Member not found")
    return APIResponse(success=True, data=member_to_out(member))

# PUBLIC_INTERFACE
@router.get("/agent/{agent_id}", response_model=APIResponse, summary="Members onboarded by an agent")
def list_agent_members(
    agent_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    agent = db.get(User, agent_id)
    if not agent or agent.role != RoleEnum.agent.value:
        raise NotFoundError("Agent not found")
    members = db.query(Member).filter(Member.agent_id == agent_id).order_by(Member.id).all()
    data = []
    for m in members:
        item = member_to_out(m).model_dump(mode="json")
        item["product_details"] = [p.model_dump(mode="json") for p in resolve_member_products(db, m)]
        data.append(item)
    return APIResponse(success=True, data=data)

# PUBLIC_INTERFACE
@router.put("/{member_id}", response_model=APIResponse, responses={400: {"model": ErrorResponse}}, summary="Update member")
def update_member(
    member_id: int,
    member_in: MemberUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Partial update restricted to the fields of MemberUpdate."""
    member = _get_member_or_404(db, member_id)
    update_data = member_in.model_dump(exclude_unset=True)

    if "vendor_id" in update_data and update_data["vendor_id"] != member.vendor_id:
        if update_data["vendor_id"] is None or _get_vendor(db, update_data["vendor_id"]) is None:
            raise InvalidInputError("Invalid vendor ID")
    if "welin_id" in update_data and update_data["welin_id"] != member.welin_id:
        if not update_data["welin_id"]:
            raise InvalidInputError("Welin ID cannot be empty")
        if db.query(Member).filter(Member.welin_id == update_data["welin_id"]).first():
            raise DuplicateKeyError("Member with this Welin ID already exists")
    ensure_identity_available(
        db,
        email=update_data.get("email"),
        mobile=update_data.get("contact_no"),
        exclude_member_id=member.id,
    )

    for k, v in update_data.items():
        if k == "password":
            if v:
                member.hashed_password = hash_password(v)
        elif k == "address":
            _apply_address(member, member_in.address)
        elif k == "nominee":
            _apply_nominee(member, member_in.nominee)
        elif k == "documents":
            member.documents = _serialize_documents(member_in.documents or [])
        elif k == "email":
            member.email = v.lower() if v else None
        elif v is not None or k in ("org_id", "occupation"):
            setattr(member, k, v)
    db.commit()
    db.refresh(member)
    return APIResponse(success=True, message="Member updated successfully", data=member_to_out(member))

# PUBLIC_INTERFACE
@router.delete("/{member_id}", response_model=APIResponse, summary="Delete member")
def delete_member(
    member_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Hard delete."""
    member = _get_member_or_404(db, member_id)
    db.delete(member)
    db.commit()
    logger.info("Member {} deleted by {}", member_id, current_user.id)
    return APIResponse(success=True, message="Member deleted successfully")

# PUBLIC_INTERFACE
@router.get("/{member_id}/products", response_model=APIResponse, summary="Member products")
def get_member_products(
    member_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Each product reference of the member with its resolved product details."""
    member = _get_member_or_404(db, member_id)
    return APIResponse(success=True, data=resolve_member_products(db, member))
