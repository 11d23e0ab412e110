from sqlalchemy import Column, Integer, String, DateTime, Numeric, ForeignKey, JSON
from app.models.user import Base, utcnow
import enum


class TransactionType(enum.Enum):
    credit = "CREDIT"
    debit = "DEBIT"


class TransactionStatus(enum.Enum):
    pending = "PENDING"
    processing = "PROCESSING"
    completed = "COMPLETED"
    rejected = "REJECTED"
    failed = "FAILED"


class TransferType(enum.Enum):
    checking = "checking"
    savings = "savings"
    external_bank = "external_bank"


class Transaction(Base):
    __tablename__ = "transactions"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    type = Column(String, default=TransactionType.debit.value, nullable=False)
    amount = Column(Numeric(14, 2), nullable=False)
    description = Column(String, nullable=True)
    status = Column(String, default=TransactionStatus.pending.value, index=True, nullable=False)
    transfer_type = Column(String, nullable=True)
    bank_name = Column(String, nullable=True)
    # "metadata" is reserved on declarative classes, hence the attribute name
    meta = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
