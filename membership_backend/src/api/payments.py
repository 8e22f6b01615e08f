"""
Payment endpoints for the Welin membership platform.

Includes APIs for:
- Create a payment intent (QR code, payment link or plain pending payment)
- List / get / update / delete payments
- Verify a QR code payment
- Create a payment-gateway order and record a confirmed gateway payment,
  marking the paid product in the same transaction
"""

import secrets
import time
from datetime import timedelta
from typing import List

from fastapi import APIRouter, Depends, status
from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.api import config
from src.api.auth import get_db, get_current_user
from src.api.errors import (
    AlreadyProcessedError,
    DuplicateTransactionError,
    ExpiredError,
    NotFoundError,
    WrongMethodError,
)
from src.api.gateway import CashfreeGateway, get_gateway
from src.api.loan_covers import apply_cover_payment
from src.api.models import (
    CoverPaymentStatusEnum,
    LoanCover,
    Payment,
    PaymentMethodEnum,
    PaymentStatusEnum,
    ProductType,
    TERMINAL_PAYMENT_STATUSES,
    User,
    utcnow,
)
from src.api.openapi_schemas import APIResponse, ErrorResponse
from src.api.qrcodes import payment_qr_text, render_qr_data_url
from src.api.schemas import (
    GatewayOrderCreate,
    GatewayOrderOut,
    PaymentConfirmation,
    PaymentCreate,
    PaymentOut,
    PaymentUpdate,
)

router = APIRouter(prefix="/api/payments", tags=["Payments"])

QR_CODE_ERROR = "Failed to generate QR code"


def generate_transaction_id() -> str:
    """PAY_<epoch millis>_<8 hex chars>"""
    return f"PAY_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


def payment_link_url(transaction_id: str) -> str:
    return f"{config.PAYMENT_LINK_BASE_URL.rstrip('/')}/{transaction_id}"


# PUBLIC_INTERFACE
def transition_payment(payment: Payment, new_status: PaymentStatusEnum):
    """
    Move a payment along pending -> {completed, failed, refunded}.
    Terminal payments never change status.
    """
    if new_status == payment.status:
        return
    if payment.status in TERMINAL_PAYMENT_STATUSES:
        raise AlreadyProcessedError()
    payment.status = new_status


def _get_payment_or_404(db: Session, payment_id: int) -> Payment:
    payment = db.get(Payment, payment_id)
    if not payment:
        raise NotFoundError("Payment not found")
    return payment

# =============================
# ENDPOINTS: Payment intents
# =============================

# PUBLIC_INTERFACE
@router.post("", response_model=PaymentOut, status_code=status.HTTP_201_CREATED, responses={400: {"model": ErrorResponse}}, summary="Create payment", description="Creates a pending payment; QR code and payment link methods also get their artifact (valid 24 hours).")
def create_payment(
    payment_in: PaymentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    transaction_id = generate_transaction_id()
    payment = Payment(
        amount=payment_in.amount,
        currency=payment_in.currency,
        payment_method=payment_in.payment_method,
        status=PaymentStatusEnum.pending,
        transaction_id=transaction_id,
        description=payment_in.description,
        payment_metadata=payment_in.metadata,
        product_type=payment_in.product.type if payment_in.product else None,
        product_id=payment_in.product.product_id if payment_in.product else None,
        user_id=current_user.id,
    )
    intent_expiry = utcnow() + timedelta(hours=config.INTENT_EXPIRY_HOURS)
    qr_code_error = None

    if payment_in.payment_method == PaymentMethodEnum.qr_code:
        qr_text = payment_qr_text(transaction_id, payment_in.amount, payment_in.currency, payment_in.description)
        try:
            payment.qr_code_data = render_qr_data_url(qr_text)
            payment.qr_code_url = qr_text
            payment.qr_code_expires_at = intent_expiry
        except Exception:
            logger.exception("Error generating QR code for {}", transaction_id)
            qr_code_error = QR_CODE_ERROR
    elif payment_in.payment_method == PaymentMethodEnum.payment_link:
        url = payment_link_url(transaction_id)
        payment.payment_link_url = url
        payment.payment_link_short_url = url
        payment.payment_link_expires_at = intent_expiry

    db.add(payment)
    db.commit()
    db.refresh(payment)
    logger.info("Created {} payment {} for user {}", payment.payment_method.value, transaction_id, current_user.id)
    out = PaymentOut.model_validate(payment)
    out.qr_code_error = qr_code_error
    return out

# PUBLIC_INTERFACE
@router.get("", response_model=List[PaymentOut], summary="List payments")
def list_payments(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    """All payments, newest first."""
    payments = db.query(Payment).order_by(Payment.created_at.desc(), Payment.id.desc()).all()
    return [PaymentOut.model_validate(p) for p in payments]

# PUBLIC_INTERFACE
@router.get("/{payment_id}", response_model=PaymentOut, responses={404: {"model": ErrorResponse}}, summary="Get payment")
def get_payment(payment_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return PaymentOut.model_validate(_get_payment_or_404(db, payment_id))

# PUBLIC_INTERFACE
@router.put("/{payment_id}", response_model=PaymentOut, responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}}, summary="Update payment")
def update_payment(
    payment_id: int,
    payment_in: PaymentUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Patch amount, currency, description, metadata or status.
    Status changes follow pending -> completed | failed | refunded.
    """
    payment = _get_payment_or_404(db, payment_id)
    changes = payment_in.model_dump(exclude_unset=True, exclude_none=True)
    new_status = changes.pop("status", None)
    if new_status is not None:
        transition_payment(payment, new_status)
    if "metadata" in changes:
        payment.payment_metadata = changes.pop("metadata")
    for field, value in changes.items():
        setattr(payment, field, value)
    db.commit()
    db.refresh(payment)
    return PaymentOut.model_validate(payment)

# PUBLIC_INTERFACE
@router.delete("/{payment_id}", response_model=APIResponse, responses={404: {"model": ErrorResponse}}, summary="Delete payment")
def delete_payment(payment_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    payment = _get_payment_or_404(db, payment_id)
    db.delete(payment)
    db.commit()
    return APIResponse(success=True, message="Payment deleted successfully")

# PUBLIC_INTERFACE
@router.post("/verify-qr/{transaction_id}", response_model=APIResponse, responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}}, summary="Verify QR payment", description="Marks a pending, unexpired QR code payment as completed.")
def verify_qr_payment(
    transaction_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    payment = db.query(Payment).filter(Payment.transaction_id == transaction_id).first()
    if not payment:
        raise NotFoundError("Payment not found")
    if payment.payment_method != PaymentMethodEnum.qr_code:
        raise WrongMethodError()
    if payment.qr_code_expires_at is not None and payment.qr_code_expires_at < utcnow():
        raise ExpiredError()
    if payment.status != PaymentStatusEnum.pending:
        raise AlreadyProcessedError()

    # No gateway behind QR codes yet; verification is simulated.
    transition_payment(payment, PaymentStatusEnum.completed)
    db.commit()
    db.refresh(payment)
    logger.info("QR payment {} verified by user {}", transaction_id, current_user.id)
    return APIResponse(
        success=True,
        message="Payment verified successfully",
        data={
            "id": payment.id,
            "amount": payment.amount,
            "currency": payment.currency,
            "status": payment.status.value,
        },
    )

# =============================
# ENDPOINTS: Payment gateway
# =============================

# PUBLIC_INTERFACE
@router.post("/gateway/order", response_model=APIResponse, responses={502: {"model": ErrorResponse}}, summary="Create gateway order", description="Creates a payment-gateway order and returns its payment session id. Nothing is stored locally.")
def create_gateway_order(
    order_in: GatewayOrderCreate,
    current_user: User = Depends(get_current_user),
    gateway: CashfreeGateway = Depends(get_gateway),
):
    order_id = generate_transaction_id()
    note = None
    if order_in.product:
        note = f"{order_in.product.type.value}:{order_in.product.product_id}"
    order = gateway.create_order(
        order_id=order_id,
        amount=order_in.amount,
        currency=order_in.currency,
        customer_id=f"user_{current_user.id}",
        customer_name=order_in.customer_name,
        customer_email=order_in.customer_email,
        customer_phone=order_in.customer_phone,
        return_url=config.PAYMENT_RETURN_URL,
        note=note,
    )
    return APIResponse(
        success=True,
        message="Order created",
        data=GatewayOrderOut(
            order_id=order.get("order_id", order_id),
            payment_session_id=order.get("payment_session_id"),
            order_status=order.get("order_status"),
            order_amount=order.get("order_amount", order_in.amount),
            order_currency=order.get("order_currency", order_in.currency),
            environment=gateway.environment,
        ),
    )

# PUBLIC_INTERFACE
@router.post("/gateway/success", response_model=APIResponse, status_code=status.HTTP_201_CREATED, responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}}, summary="Record gateway payment", description="Records a completed gateway payment and marks the paid product, atomically.")
def record_gateway_payment(
    confirmation: PaymentConfirmation,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Inserts the completed payment and, for a loan cover, marks the cover paid and
    flips the member's product reference. Either everything commits or nothing does.
    """
    tid = confirmation.transaction_id
    if db.query(Payment).filter(Payment.transaction_id == tid).first():
        raise DuplicateTransactionError()

    product = confirmation.product
    try:
        payment = Payment(
            amount=confirmation.amount,
            currency=confirmation.currency,
            payment_method=confirmation.payment_method,
            status=PaymentStatusEnum.completed,
            transaction_id=tid,
            description=confirmation.description,
            product_type=product.type if product else None,
            product_id=product.product_id if product else None,
            user_id=current_user.id,
        )
        db.add(payment)
        if product and product.type == ProductType.loan_cover:
            cover = db.get(LoanCover, product.product_id)
            if not cover:
                raise NotFoundError("Loan cover not found")
            apply_cover_payment(db, cover, CoverPaymentStatusEnum.paid, utcnow(), tid)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise DuplicateTransactionError()
    except Exception:
        db.rollback()
        logger.warning("Rolled back gateway payment {}", tid)
        raise

    db.refresh(payment)
    logger.info("Recorded gateway payment {} ({} {})", tid, payment.amount, payment.currency)
    return APIResponse(success=True, message="Payment recorded", data=PaymentOut.model_validate(payment))
