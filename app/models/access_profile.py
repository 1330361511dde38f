from sqlalchemy import Column, String, Boolean, DateTime
from datetime import datetime
from app.db.base import Base


class AccessProfile(Base):
    """Per-email tool access flags read by the activation page."""

    __tablename__ = "user_profiles"

    email = Column(String, primary_key=True)

    access_hunter_pro = Column(Boolean, nullable=False, default=False)
    access_content_standard = Column(Boolean, nullable=False, default=False)
    access_content_full_fix = Column(Boolean, nullable=False, default=False)
    access_assassin_standard = Column(Boolean, nullable=False, default=False)
    access_assassin_premium = Column(Boolean, nullable=False, default=False)
    access_recompete = Column(Boolean, nullable=False, default=False)
    access_contractor_db = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
