"""
QR code rendering for payment intents.

- Render a payment description as a PNG QR image (base64 data URL)
- Download the QR of an existing QR-code payment as PNG
"""
from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session
import qrcode
from qrcode.constants import ERROR_CORRECT_H
import io
import base64

from src.api.errors import NotFoundError, WrongMethodError
from src.api.models import Payment, PaymentMethodEnum, User
from src.api.auth import get_db, get_current_user

router = APIRouter(prefix="/api/qrcodes", tags=["Payments"])


def payment_qr_text(transaction_id: str, amount: float, currency: str, description: str = None) -> str:
    """Human-readable payload encoded in payment QR codes."""
    shown = int(amount) if float(amount).is_integer() else amount
    return f"Payment ID: {transaction_id}\nAmount: {shown} {currency}\nDescription: {description or 'Payment'}"


def render_qr_png(qr_data: str) -> bytes:
    qr = qrcode.QRCode(version=None, error_correction=ERROR_CORRECT_H, box_size=10, border=1)
    qr.add_data(qr_data)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


# PUBLIC_INTERFACE
def render_qr_data_url(qr_data: str) -> str:
    """Returns the QR code for `qr_data` as a data:image/png;base64 URL."""
    encoded_png = base64.b64encode(render_qr_png(qr_data)).decode("utf-8")
    return f"data:image/png;base64,{encoded_png}"


# PUBLIC_INTERFACE
@router.get("/payment/{transaction_id}/download", summary="Download payment QR code (PNG)")
def download_payment_qr(
    transaction_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Downloads the QR code of a QR-code payment as PNG.
    """
    payment = db.query(Payment).filter(Payment.transaction_id == transaction_id).first()
    if not payment:
        raise NotFoundError("Payment not found")
    if payment.payment_method != PaymentMethodEnum.qr_code or not payment.qr_code_url:
        raise WrongMethodError()
    png = render_qr_png(payment.qr_code_url)
    return Response(content=png, media_type="image/png", headers={
        "Content-Disposition": f'attachment; filename="{payment.transaction_id}.png"'
    })
