"""
Transfer risk scoring.

Scores are a plain sum over independent rules. Every rule that fires adds
its weight and its label; no rule suppresses another. The score maps to a
level (LOW/MEDIUM/HIGH/CRITICAL) and a manual-review flag.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from app.services import ledger
from app.services.business_time import as_utc, local_hour, to_db_time

logger = logging.getLogger(__name__)

CRITICAL_THRESHOLD = 8
HIGH_THRESHOLD = 5
MEDIUM_THRESHOLD = 3
# Manual review kicks in one point above MEDIUM, before HIGH is reached
MANUAL_REVIEW_SCORE = 4

FREQUENCY_WINDOW = timedelta(hours=24)
HISTORY_WINDOW = timedelta(days=30)

DEGRADED_FACTOR = "risk engine unavailable"


class RiskLevel:
    low = "LOW"
    medium = "MEDIUM"
    high = "HIGH"
    critical = "CRITICAL"


@dataclass(frozen=True)
class TransferFacts:
    amount: Decimal
    transfer_type: str
    bank_name: Optional[str]
    hour: int


@dataclass(frozen=True)
class RiskHistory:
    recent_debit_count: int
    prior_bank_transfers: int
    avg_debit_amount: Decimal
    max_debit_amount: Decimal


@dataclass(frozen=True)
class RiskRule:
    name: str
    weight: int
    label: str
    predicate: Callable[[TransferFacts, RiskHistory], bool]

    def applies(self, facts: TransferFacts, history: RiskHistory) -> bool:
        return bool(self.predicate(facts, history))


@dataclass(frozen=True)
class RiskAssessment:
    risk_score: int
    risk_level: str
    risk_factors: List[str] = field(default_factory=list)
    requires_manual_review: bool = False
    degraded: bool = False

    def to_response(self) -> Dict[str, Any]:
        return {
            "riskScore": self.risk_score,
            "riskLevel": self.risk_level,
            "riskFactors": list(self.risk_factors),
            "requiresManualReview": self.requires_manual_review,
        }


def _new_recipient_bank(facts: TransferFacts, history: RiskHistory) -> bool:
    return (
        facts.transfer_type == "external_bank"
        and bool(facts.bank_name)
        and history.prior_bank_transfers == 0
    )


default_rules: List[RiskRule] = [
    RiskRule("very_high_amount", 5, "Very high amount",
             lambda f, h: f.amount > 25000),
    RiskRule("high_amount", 3, "High amount",
             lambda f, h: 10000 < f.amount <= 25000),
    RiskRule("moderate_amount", 1, "Moderate amount",
             lambda f, h: 5000 < f.amount <= 10000),
    RiskRule("high_frequency", 3, "High transaction frequency",
             lambda f, h: h.recent_debit_count > 10),
    RiskRule("new_recipient_bank", 2, "New recipient bank", _new_recipient_bank),
    RiskRule("above_average_amount", 2, "Amount significantly higher than average",
             lambda f, h: f.amount > h.avg_debit_amount * 5),
    RiskRule("above_recent_maximum", 1, "Amount exceeds recent maximum",
             lambda f, h: f.amount > h.max_debit_amount * Decimal("1.5")),
    # hour > 23 never holds for a 0-23 clock
    RiskRule("unusual_hour", 1, "Transfer at unusual hour",
             lambda f, h: f.hour < 6 or f.hour > 23),
]


def risk_level_for(score: int) -> str:
    if score >= CRITICAL_THRESHOLD:
        return RiskLevel.critical
    if score >= HIGH_THRESHOLD:
        return RiskLevel.high
    if score >= MEDIUM_THRESHOLD:
        return RiskLevel.medium
    return RiskLevel.low


def requires_manual_review(level: str, score: int) -> bool:
    return level == RiskLevel.high or score >= MANUAL_REVIEW_SCORE


def score_transfer(facts: TransferFacts, history: RiskHistory, rules: Optional[List[RiskRule]] = None) -> RiskAssessment:
    if rules is None:
        rules = default_rules
    score = 0
    factors: List[str] = []
    for rule in rules:
        if rule.applies(facts, history):
            score += rule.weight
            factors.append(rule.label)
    level = risk_level_for(score)
    return RiskAssessment(
        risk_score=score,
        risk_level=level,
        risk_factors=factors,
        requires_manual_review=requires_manual_review(level, score),
    )


def degraded_assessment() -> RiskAssessment:
    """Fixed MEDIUM assessment used when history cannot be read. Fails open."""
    return RiskAssessment(
        risk_score=MEDIUM_THRESHOLD,
        risk_level=RiskLevel.medium,
        risk_factors=[DEGRADED_FACTOR],
        requires_manual_review=False,
        degraded=True,
    )


async def load_risk_history(db, user_id: int, bank_name: Optional[str], now: datetime) -> RiskHistory:
    db_now = to_db_time(now)
    recent_count = await ledger.debit_count_since(db, user_id, db_now - FREQUENCY_WINDOW)
    avg_amount, max_amount = await ledger.debit_amount_stats_since(db, user_id, db_now - HISTORY_WINDOW)
    prior_bank = 0
    if bank_name:
        prior_bank = await ledger.prior_bank_transfer_count(db, user_id, bank_name)
    return RiskHistory(
        recent_debit_count=recent_count,
        prior_bank_transfers=prior_bank,
        avg_debit_amount=avg_amount,
        max_debit_amount=max_amount,
    )


async def assess_transfer(
    db,
    user_id: int,
    amount: Decimal,
    transfer_type: str,
    bank_name: Optional[str] = None,
    now: Optional[datetime] = None,
    rules: Optional[List[RiskRule]] = None,
) -> RiskAssessment:
    now = as_utc(now)
    try:
        history = await load_risk_history(db, user_id, bank_name, now)
    except Exception:
        logger.exception("Risk history lookup failed for user %s; using degraded assessment", user_id)
        try:
            await db.rollback()
        except Exception:
            logger.warning("Rollback after risk history failure also failed for user %s", user_id)
        return degraded_assessment()
    facts = TransferFacts(
        amount=Decimal(amount),
        transfer_type=transfer_type,
        bank_name=bank_name,
        hour=local_hour(now),
    )
    return score_transfer(facts, history, rules)


def describe_rules(rules: Optional[List[RiskRule]] = None) -> List[Dict[str, Any]]:
    return [{"rule": r.name, "weight": r.weight, "label": r.label} for r in (rules or default_rules)]
