"""
Loan-cover product ledger.

Includes:
- Create a loan cover for a member (premium arithmetic check, one active cover per member)
- Fetch covers by id, member or vendor
- Record the payment state of a cover
- Product-type dispatch used to resolve a member's product references
"""
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from fastapi import APIRouter, Depends, Response, status
from loguru import logger
from sqlalchemy.orm import Session

from src.api.auth import get_db, get_current_user, role_required
from src.api.errors import InvalidInputError, InvalidPremiumError, NotFoundError
from src.api.models import (
    CoverPaymentStatusEnum,
    LoanCover,
    LoanCoverStatusEnum,
    Member,
    MemberProduct,
    ProductType,
    User,
    utcnow,
)
from src.api.openapi_schemas import APIResponse, ErrorResponse
from src.api.schemas import (
    LoanCoverCreate,
    LoanCoverOut,
    LoanCoverPaymentUpdate,
    MemberProductDetail,
)

router = APIRouter(prefix="/api/loan-cover", tags=["Loan Covers"])

# =============================
# Ledger operations
# =============================

def validate_premium(base_premium: float, gst: float, total_premium: float):
    """Total premium must equal base premium plus GST (to the paisa)."""
    if round(base_premium + gst, 2) != round(total_premium, 2):
        raise InvalidPremiumError()


def validate_terms(base_premium: float, gst: float, total_premium: float,
                   coverage_start_date: date, coverage_end_date: date):
    validate_premium(base_premium, gst, total_premium)
    if coverage_end_date <= coverage_start_date:
        raise InvalidInputError("Coverage end date must be after the start date")


def find_active_cover(db: Session, member_id: int) -> Optional[LoanCover]:
    return (
        db.query(LoanCover)
        .filter(LoanCover.member_id == member_id, LoanCover.status == LoanCoverStatusEnum.active)
        .first()
    )


# PUBLIC_INTERFACE
def create_loan_cover(
    db: Session,
    member: Member,
    vendor_id: Optional[int],
    loan_amount: float,
    coverage_start_date: date,
    coverage_end_date: date,
    base_premium: float,
    gst: float,
    total_premium: float,
) -> Tuple[LoanCover, bool]:
    """
    Create an active loan cover for `member` and append a product reference to it.

    If the member already holds an active cover, that cover is returned unchanged.
    Returns (cover, created).
    """
    validate_terms(base_premium, gst, total_premium, coverage_start_date, coverage_end_date)

    existing = find_active_cover(db, member.id)
    if existing:
        return existing, False

    cover = LoanCover(
        member_id=member.id,
        vendor_id=vendor_id or member.vendor_id,
        loan_amount=loan_amount,
        coverage_start_date=coverage_start_date,
        coverage_end_date=coverage_end_date,
        base_premium=base_premium,
        gst=gst,
        total_premium=total_premium,
        payment_status=CoverPaymentStatusEnum.pending,
        status=LoanCoverStatusEnum.active,
    )
    db.add(cover)
    db.flush()
    member.products.append(
        MemberProduct(product_type=ProductType.loan_cover, product_id=cover.id, payment_status=False)
    )
    db.commit()
    db.refresh(cover)
    logger.info("Created loan cover {} for member {}", cover.id, member.id)
    return cover, True


def apply_cover_payment(
    db: Session,
    cover: LoanCover,
    payment_status: CoverPaymentStatusEnum,
    paid_at: Optional[datetime] = None,
    transaction_id: Optional[str] = None,
):
    """
    Set a cover's payment sub-state and mirror it onto the member's product reference.
    Does not commit; callers own the transaction.
    """
    cover.payment_status = payment_status
    cover.payment_date = paid_at
    cover.payment_transaction_id = transaction_id
    paid = payment_status == CoverPaymentStatusEnum.paid
    refs = (
        db.query(MemberProduct)
        .filter(
            MemberProduct.member_id == cover.member_id,
            MemberProduct.product_type == ProductType.loan_cover,
            MemberProduct.product_id == cover.id,
        )
        .all()
    )
    for ref in refs:
        ref.payment_status = paid

# =============================
# Product type dispatch
# =============================

ProductResolver = Callable[[Session, int], Optional[Any]]
PRODUCT_RESOLVERS: Dict[ProductType, ProductResolver] = {}


def product_resolver(kind: ProductType):
    """Register the resolver for one product kind."""
    def register(func: ProductResolver) -> ProductResolver:
        PRODUCT_RESOLVERS[kind] = func
        return func
    return register


@product_resolver(ProductType.loan_cover)
def _resolve_loan_cover(db: Session, product_id: int) -> Optional[LoanCoverOut]:
    cover = db.get(LoanCover, product_id)
    return LoanCoverOut.model_validate(cover) if cover else None


@product_resolver(ProductType.health_cover)
def _resolve_health_cover(db: Session, product_id: int) -> None:
    # Health covers are not issued yet.
    return None


# PUBLIC_INTERFACE
def resolve_member_products(db: Session, member: Member) -> List[MemberProductDetail]:
    """Resolve each product reference of a member to its underlying product."""
    return [
        MemberProductDetail(
            type=ref.product_type,
            product_id=ref.product_id,
            payment_status=ref.payment_status,
            details=PRODUCT_RESOLVERS[ref.product_type](db, ref.product_id),
        )
        for ref in member.products
    ]

# =============================
# ENDPOINTS
# =============================

# PUBLIC_INTERFACE
@router.post("", response_model=APIResponse, status_code=status.HTTP_201_CREATED, responses={400: {"model": ErrorResponse}}, summary="Create loan cover", description="Creates a loan cover, or returns the member's existing active cover (HTTP 200).")
def create_loan_cover_endpoint(
    cover_in: LoanCoverCreate,
    response: Response,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("vendor")),
):
    member = db.get(Member, cover_in.member_id)
    if not member:
        raise NotFoundError("Member not found")
    cover, created = create_loan_cover(
        db,
        member,
        vendor_id=cover_in.vendor_id,
        loan_amount=cover_in.loan_amount,
        coverage_start_date=cover_in.coverage_start_date,
        coverage_end_date=cover_in.coverage_end_date,
        base_premium=cover_in.base_premium,
        gst=cover_in.gst,
        total_premium=cover_in.total_premium,
    )
    if not created:
        response.status_code = status.HTTP_200_OK
    return APIResponse(
        success=True,
        message="Loan cover created" if created else "Active loan cover already exists",
        data=LoanCoverOut.model_validate(cover),
    )

# PUBLIC_INTERFACE
@router.get("/member/{member_id}", response_model=APIResponse, summary="Loan covers of a member")
def get_member_loan_covers(
    member_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    covers = db.query(LoanCover).filter(LoanCover.member_id == member_id).order_by(LoanCover.id).all()
    return APIResponse(success=True, data=[LoanCoverOut.model_validate(c) for c in covers])

# PUBLIC_INTERFACE
@router.get("/vendor/{vendor_id}", response_model=APIResponse, summary="Loan covers of a vendor")
def get_vendor_loan_covers(
    vendor_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    covers = db.query(LoanCover).filter(LoanCover.vendor_id == vendor_id).order_by(LoanCover.id).all()
    return APIResponse(success=True, data=[LoanCoverOut.model_validate(c) for c in covers])

# PUBLIC_INTERFACE
@router.get("/{cover_id}", response_model=APIResponse, summary="Get loan cover")
def get_loan_cover(
    cover_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    cover = db.get(LoanCover, cover_id)
    if not cover:
        raise NotFoundError("Loan cover not found")
    return APIResponse(success=True, data=LoanCoverOut.model_validate(cover))

# PUBLIC_INTERFACE
@router.patch("/{cover_id}/payment", response_model=APIResponse, summary="Update loan cover payment")
def update_loan_cover_payment(
    cover_id: int,
    payment_in: LoanCoverPaymentUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(role_required("vendor")),
):
    """Record the payment state of a cover (manual reconciliation)."""
    cover = db.get(LoanCover, cover_id)
    if not cover:
        raise NotFoundError("Loan cover not found")
    paid_at = payment_in.date
    if payment_in.status == CoverPaymentStatusEnum.paid and paid_at is None:
        paid_at = utcnow()
    apply_cover_payment(db, cover, payment_in.status, paid_at, payment_in.transaction_id)
    db.commit()
    db.refresh(cover)
    return APIResponse(success=True, message="Loan cover payment updated", data=LoanCoverOut.model_validate(cover))
