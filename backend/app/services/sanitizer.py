import re
from typing import Any, Dict, Optional

from app.models.transaction import Transaction
from app.models.user import User

# Keys that must never leave the service even if a legacy row carries them
_SENSITIVE_KEYS = {"full_account_info", "account_number", "routing_number", "raw_recipient"}


def mask_recipient(recipient_info: str, external: bool) -> str:
    """
    "Account ending in XXXX" from the last four digits of the input.

    External recipients are always masked. Internal ones are masked only when
    the value carries at least four digits; otherwise it is kept as entered.
    """
    digits = re.sub(r"\D", "", recipient_info or "")
    if external:
        return f"Account ending in {digits[-4:] if digits else '****'}"
    if len(digits) >= 4:
        return f"Account ending in {digits[-4:]}"
    return recipient_info


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _clean_metadata(meta: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not meta:
        return {}
    return {k: v for k, v in meta.items() if k not in _SENSITIVE_KEYS}


def serialize_transaction(txn: Transaction) -> Dict[str, Any]:
    return {
        "id": txn.id,
        "userId": txn.user_id,
        "type": txn.type,
        "amount": float(txn.amount) if txn.amount is not None else 0.0,
        "currency": "USD",
        "status": txn.status,
        "transferType": txn.transfer_type,
        "bankName": txn.bank_name,
        "description": txn.description,
        "metadata": _clean_metadata(txn.meta),
        "createdAt": _iso(txn.created_at),
        "updatedAt": _iso(txn.updated_at),
    }


def serialize_with_user(txn: Transaction, user: User) -> Dict[str, Any]:
    data = serialize_transaction(txn)
    data["user"] = {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "balance": float(user.balance or 0),
        "kycStatus": user.kyc_status,
        "riskLevel": user.risk_level,
    }
    return data
