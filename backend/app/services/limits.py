from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

from app.models.user import KycStatus

# KYC-unapproved accounts cannot send more than this in a single transfer
KYC_SINGLE_TRANSFER_CEILING = Decimal("10000")


@dataclass(frozen=True)
class DailyLimits:
    amount: Decimal
    count: int


APPROVED_TIERS = {
    "LOW": DailyLimits(Decimal("25000"), 10),
    "MEDIUM": DailyLimits(Decimal("15000"), 8),
    "HIGH": DailyLimits(Decimal("5000"), 5),
}
APPROVED_DEFAULT = DailyLimits(Decimal("10000"), 5)
UNVERIFIED_LIMITS = DailyLimits(Decimal("2500"), 3)


@dataclass(frozen=True)
class DailyUsage:
    amount: Decimal
    count: int


@dataclass(frozen=True)
class LimitViolation:
    code: str
    message: str
    context: Dict[str, Any]


def daily_limits_for(kyc_status: Optional[str], risk_level: Optional[str]) -> DailyLimits:
    if kyc_status != KycStatus.approved:
        return UNVERIFIED_LIMITS
    return APPROVED_TIERS.get((risk_level or "").upper(), APPROVED_DEFAULT)


def check_kyc_gate(kyc_status: Optional[str], amount: Decimal) -> Optional[LimitViolation]:
    if amount > KYC_SINGLE_TRANSFER_CEILING and kyc_status != KycStatus.approved:
        return LimitViolation(
            code="KYC_REQUIRED",
            message=f"KYC verification required for transfers over ${KYC_SINGLE_TRANSFER_CEILING:,.0f}",
            context={"limit": float(KYC_SINGLE_TRANSFER_CEILING)},
        )
    return None


def check_daily_limits(usage: DailyUsage, amount: Decimal, limits: DailyLimits) -> Optional[LimitViolation]:
    """Amount ceiling includes the new transfer; count ceiling is on transfers already made today."""
    if usage.amount + amount > limits.amount:
        return LimitViolation(
            code="DAILY_LIMIT_EXCEEDED",
            message=f"Daily transfer limit of ${limits.amount:,.0f} exceeded",
            context={"currentAmount": float(usage.amount), "limit": float(limits.amount)},
        )
    if usage.count >= limits.count:
        return LimitViolation(
            code="DAILY_COUNT_EXCEEDED",
            message=f"Daily transfer count limit of {limits.count} exceeded",
            context={"currentCount": usage.count, "limit": limits.count},
        )
    return None
