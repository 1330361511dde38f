from sqlalchemy import Column, Integer, String, DateTime, Numeric
from datetime import datetime
from app.db.base import Base


class Purchase(Base):
    """
    One row per completed checkout, written by the payment webhook.

    provider_session_id is the idempotency key: the unique constraint is what
    makes replayed deliveries a no-op. Rows are never deleted; a refund only
    flips status.
    """

    __tablename__ = "purchases"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, nullable=False, index=True)

    # Provider identifiers
    provider = Column(String, nullable=False, default="stripe")
    provider_session_id = Column(String, nullable=False, unique=True, index=True)
    provider_payment_id = Column(String, nullable=True, index=True)
    provider_event_id = Column(String, nullable=True)
    mode = Column(String, nullable=False, default="live")  # live | test

    # What was bought: a single family/tier or a bundle
    product_id = Column(String, nullable=False)
    product_name = Column(String, nullable=True)
    tier = Column(String, nullable=True)
    bundle_id = Column(String, nullable=True)

    amount_paid = Column(Numeric(12, 2), nullable=True)
    currency = Column(String, nullable=True)
    status = Column(String, nullable=False, default="completed")  # completed | refunded
    license_key = Column(String, nullable=True, index=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    refunded_at = Column(DateTime, nullable=True)
