from sqlalchemy import Column, Integer, String, DateTime, Boolean, Numeric
from sqlalchemy.orm import declarative_base
from datetime import datetime, timezone

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp; all DateTime columns store UTC without tzinfo."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class KycStatus:
    not_submitted = "NOT_SUBMITTED"
    pending = "PENDING"
    approved = "APPROVED"
    rejected = "REJECTED"


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    role = Column(String, default="user", nullable=False)
    balance = Column(Numeric(14, 2), default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    kyc_status = Column(String, default=KycStatus.not_submitted, nullable=False)
    # Account risk tier used for daily limits (LOW/MEDIUM/HIGH)
    risk_level = Column(String, default="LOW", nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
