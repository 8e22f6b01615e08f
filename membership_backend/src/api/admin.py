"""
Admin endpoints for the Welin membership platform (role: admin or above).

Includes APIs for:
- Create users of any role
- List users, vendors and a vendor's members
- Platform counts (active users, vendors, members)
- Update, activate and deactivate users (soft delete)
- Mobile number availability check
"""

import re

from fastapi import APIRouter, Depends, status
from loguru import logger
from sqlalchemy.orm import Session

from src.api.auth import get_db, role_required, hash_password, ensure_identity_available
from src.api.errors import InvalidInputError, NotFoundError
from src.api.membership import member_to_out
from src.api.models import Member, RoleEnum, User
from src.api.openapi_schemas import APIResponse, ErrorResponse
from src.api.schemas import CountsOut, UserCreate, UserOut, UserUpdate

router = APIRouter(prefix="/api/admin", tags=["Admin"])

MOBILE_RE = re.compile(r"^[0-9]{10}$")


def _get_user_or_404(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def _set_active(db: Session, user_id: int, active: bool) -> User:
    user = _get_user_or_404(db, user_id)
    user.is_active = active
    db.commit()
    db.refresh(user)
    logger.info("User {} {}", user.id, "activated" if active else "deactivated")
    return user

# PUBLIC_INTERFACE
@router.post("/user", response_model=APIResponse, status_code=status.HTTP_201_CREATED, responses={400: {"model": ErrorResponse}}, summary="Create user")
def create_user(
    user_in: UserCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("admin")),
):
    """Create a user with any role. Agents must name the vendor they belong to."""
    ensure_identity_available(db, email=user_in.email, mobile=user_in.mobile)
    vendor_id = None
    if user_in.role == RoleEnum.agent:
        vendor = db.get(User, user_in.vendor_id) if user_in.vendor_id else None
        if not vendor or vendor.role != RoleEnum.vendor.value:
            raise InvalidInputError("Agents must belong to an existing vendor")
        vendor_id = vendor.id
    user = User(
        name=user_in.name,
        email=user_in.email.lower(),
        mobile=user_in.mobile,
        hashed_password=hash_password(user_in.password),
        role=user_in.role.value,
        vendor_id=vendor_id,
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Admin {} created {} {}", current_user.id, user.role, user.email)
    return APIResponse(success=True, message="User created successfully", data=UserOut.model_validate(user))

# PUBLIC_INTERFACE
@router.get("/users", response_model=APIResponse, summary="List users")
def list_users(db: Session = Depends(get_db), current_user: User = Depends(role_required("admin"))):
    """All users except agents and admins."""
    users = (
        db.query(User)
        .filter(User.role.notin_([RoleEnum.agent.value, RoleEnum.admin.value]))
        .order_by(User.id)
        .all()
    )
    return APIResponse(success=True, data=[UserOut.model_validate(u) for u in users])

# PUBLIC_INTERFACE
@router.get("/vendor", response_model=APIResponse, summary="List vendors")
def list_vendors(db: Session = Depends(get_db), current_user: User = Depends(role_required("admin"))):
    vendors = db.query(User).filter(User.role == RoleEnum.vendor.value).order_by(User.id).all()
    return APIResponse(success=True, data=[UserOut.model_validate(v) for v in vendors])

# PUBLIC_INTERFACE
@router.get("/vendor/{vendor_id}/members", response_model=APIResponse, summary="Members of a vendor")
def list_vendor_members(
    vendor_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("admin")),
):
    members = db.query(Member).filter(Member.vendor_id == vendor_id).order_by(Member.id).all()
    return APIResponse(success=True, data=[member_to_out(m) for m in members])

# PUBLIC_INTERFACE
@router.get("/counts", response_model=APIResponse, summary="Platform counts")
def get_counts(db: Session = Depends(get_db), current_user: User = Depends(role_required("admin"))):
    counts = CountsOut(
        active_users=db.query(User).filter(User.is_active.is_(True)).count(),
        active_vendors=db.query(User).filter(User.role == RoleEnum.vendor.value, User.is_active.is_(True)).count(),
        active_members=db.query(Member).filter(Member.is_active.is_(True)).count(),
    )
    return APIResponse(success=True, data=counts)

# PUBLIC_INTERFACE
@router.put("/user/{user_id}", response_model=APIResponse, responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}}, summary="Update user")
def update_user(
    user_id: int,
    user_in: UserUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("admin")),
):
    """Update name, email, mobile, role or active flag of a user."""
    user = _get_user_or_404(db, user_id)
    changes = user_in.model_dump(exclude_unset=True, exclude_none=True)
    if "email" in changes:
        changes["email"] = changes["email"].lower()
    ensure_identity_available(
        db,
        email=changes.get("email") if changes.get("email") != user.email else None,
        mobile=changes.get("mobile") if changes.get("mobile") != user.mobile else None,
        exclude_user_id=user.id,
    )
    if "role" in changes:
        changes["role"] = changes["role"].value
    for field, value in changes.items():
        setattr(user, field, value)
    db.commit()
    db.refresh(user)
    return APIResponse(success=True, message="User updated successfully", data=UserOut.model_validate(user))

# PUBLIC_INTERFACE
@router.patch("/user/{user_id}/activate", response_model=APIResponse, responses={404: {"model": ErrorResponse}}, summary="Activate user")
def activate_user(user_id: int, db: Session = Depends(get_db), current_user: User = Depends(role_required("admin"))):
    user = _set_active(db, user_id, True)
    return APIResponse(success=True, message="User activated successfully", data=UserOut.model_validate(user))

# PUBLIC_INTERFACE
@router.patch("/user/{user_id}/deactivate", response_model=APIResponse, responses={404: {"model": ErrorResponse}}, summary="Deactivate user")
def deactivate_user(user_id: int, db: Session = Depends(get_db), current_user: User = Depends(role_required("admin"))):
    user = _set_active(db, user_id, False)
    return APIResponse(success=True, message="User deactivated successfully", data=UserOut.model_validate(user))

# PUBLIC_INTERFACE
@router.get("/user/check-mobile/{mobile}", response_model=APIResponse, responses={400: {"model": ErrorResponse}}, summary="Check mobile availability")
def check_mobile(mobile: str, db: Session = Depends(get_db), current_user: User = Depends(role_required("admin"))):
    if not MOBILE_RE.match(mobile):
        raise InvalidInputError("Please enter a valid 10-digit mobile number")
    exists = (
        db.query(User).filter(User.mobile == mobile).first() is not None
        or db.query(Member).filter(Member.contact_no == mobile).first() is not None
    )
    return APIResponse(
        success=True,
        message="Mobile number already exists" if exists else "Mobile number is available",
        data={"exists": exists},
    )
