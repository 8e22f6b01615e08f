"""
Background payment cleanup.

Every PAYMENT_CLEANUP_INTERVAL_SECONDS the app removes pending payments older than
PENDING_PAYMENT_TTL_MINUTES and purges rows whose expires_at marker has passed.
"""
import asyncio
from datetime import datetime, timedelta
from typing import Optional

from loguru import logger
from sqlalchemy.orm import Session

from src.api import config
from src.api.auth import SessionLocal
from src.api.models import Payment, PaymentStatusEnum, utcnow


def cleanup_unpaid_payments(db: Session, now: Optional[datetime] = None) -> int:
    """Delete pending payments created before now - TTL. Returns the count deleted."""
    cutoff = (now or utcnow()) - timedelta(minutes=config.PENDING_PAYMENT_TTL_MINUTES)
    deleted = (
        db.query(Payment)
        .filter(Payment.status == PaymentStatusEnum.pending, Payment.created_at < cutoff)
        .delete(synchronize_session=False)
    )
    db.commit()
    return deleted


def purge_expired_payments(db: Session, now: Optional[datetime] = None) -> int:
    deleted = (
        db.query(Payment)
        .filter(Payment.expires_at.isnot(None), Payment.expires_at < (now or utcnow()))
        .delete(synchronize_session=False)
    )
    db.commit()
    return deleted


# PUBLIC_INTERFACE
def run_payment_cleanup():
    """One sweep with its own session."""
    db = SessionLocal()
    try:
        unpaid = cleanup_unpaid_payments(db)
        expired = purge_expired_payments(db)
    finally:
        db.close()
    if unpaid:
        logger.info("Cleaned up {} unpaid payments older than {} minutes", unpaid, config.PENDING_PAYMENT_TTL_MINUTES)
    if expired:
        logger.info("Purged {} expired payments", expired)
    return unpaid, expired


async def payment_cleanup_loop(interval: int = config.PAYMENT_CLEANUP_INTERVAL_SECONDS):
    """Run the sweep forever; failures are logged and the loop keeps going."""
    while True:
        await asyncio.sleep(interval)
        try:
            await asyncio.to_thread(run_payment_cleanup)
        except Exception:
            logger.exception("Payment cleanup failed")
