from app.models.user import Base, User, KycStatus
from app.models.transaction import Transaction, TransactionStatus, TransactionType, TransferType
from app.models.audit_log import AuditLog
from app.models.security_event import SecurityEvent

__all__ = [
    "Base",
    "User",
    "KycStatus",
    "Transaction",
    "TransactionStatus",
    "TransactionType",
    "TransferType",
    "AuditLog",
    "SecurityEvent",
]
