"""
Purchase ledger queries. Inserts happen inside the webhook pipeline's transaction.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.errors import Conflict
from app.models.purchase import Purchase


def find_by_session(db: Session, session_id: str) -> Optional[Purchase]:
    return db.query(Purchase).filter(Purchase.provider_session_id == session_id).first()


def record_purchase(db: Session, **fields) -> Purchase:
    """
    Insert and flush a purchase row without committing.
    Raises Conflict when the provider session was already recorded.
    """
    session_id = fields["provider_session_id"]
    if find_by_session(db, session_id) is not None:
        raise Conflict(f"Purchase for session {session_id} already recorded")

    purchase = Purchase(**fields)
    db.add(purchase)
    try:
        db.flush()
    except IntegrityError as e:
        db.rollback()
        raise Conflict(f"Purchase for session {session_id} already recorded") from e
    return purchase


def mark_refunded(db: Session, payment_id: str) -> int:
    """Flip completed purchases for a payment to refunded. Grants are left alone."""
    rows = (
        db.query(Purchase)
        .filter(Purchase.provider_payment_id == payment_id, Purchase.status == "completed")
        .all()
    )
    for purchase in rows:
        purchase.status = "refunded"
        purchase.refunded_at = datetime.utcnow()
    db.commit()
    return len(rows)


def completed_for_email(db: Session, email: str, license_key: Optional[str] = None) -> List[Purchase]:
    query = db.query(Purchase).filter(Purchase.email == email, Purchase.status == "completed")
    if license_key:
        # Receipts show the checkout session id; older purchases carry a license key
        query = query.filter(or_(Purchase.license_key == license_key, Purchase.provider_session_id == license_key))
    return query.order_by(Purchase.created_at.desc()).all()


def list_recent(db: Session, limit: int = 500) -> List[Purchase]:
    return db.query(Purchase).order_by(Purchase.created_at.desc()).limit(limit).all()


def serialize(purchase: Purchase) -> dict:
    amount = purchase.amount_paid
    return {
        "id": purchase.id,
        "email": purchase.email,
        "productId": purchase.product_id,
        "productName": purchase.product_name,
        "tier": purchase.tier,
        "bundleId": purchase.bundle_id,
        "amountPaid": float(amount) if isinstance(amount, Decimal) else amount,
        "currency": purchase.currency,
        "status": purchase.status,
        "mode": purchase.mode,
        "providerSessionId": purchase.provider_session_id,
        "createdAt": purchase.created_at.isoformat() if purchase.created_at else None,
        "refundedAt": purchase.refunded_at.isoformat() if purchase.refunded_at else None,
    }
