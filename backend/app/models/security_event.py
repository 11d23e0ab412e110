from sqlalchemy import Column, Integer, String, DateTime, JSON
from app.models.user import Base, utcnow


class SecurityEvent(Base):
    """Append-only record of security-relevant activity (blocked transfers, settings changes)."""
    __tablename__ = "security_events"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, index=True, nullable=True)
    event_type = Column(String, nullable=False)
    description = Column(String, nullable=True)
    ip_address = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    risk_level = Column(String, nullable=True)
    meta = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
