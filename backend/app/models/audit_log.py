from sqlalchemy import Column, Integer, String, DateTime
from app.models.user import Base, utcnow


class AuditLog(Base):
    __tablename__ = "audit_logs"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=True)
    action = Column(String, nullable=False)
    details = Column(String, nullable=True)
    timestamp = Column(DateTime, default=utcnow, nullable=False)
