"""
Transfer decisions and admin review.

A submission runs through a fixed sequence of checks, stopping at the
first failure: input validation, account state, KYC gate, bank
recognition, risk assessment, daily limits and balance. Accepted external
transfers are stored PENDING and wait for an admin; internal ones are
debited and completed in the same commit.

Decisions for one user are serialized by a per-user lock so that two
concurrent submissions cannot both pass a daily limit that only one of
them fits under. Balance changes additionally go through conditional
UPDATEs, so a second process still cannot overdraw an account.
"""
import asyncio
import logging
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from app.models.transaction import Transaction, TransactionStatus, TransactionType
from app.schemas.errors import format_validation_errors
from app.schemas.transaction import TransferRequest
from app.schemas.transfer_metadata import (
    CompletedTransferMetadata,
    PendingTransferMetadata,
    approved_from,
    dump_metadata,
    failed_from,
    load_metadata,
    rejected_from,
)
from app.services import audit_log_service, ledger
from app.services.business_time import as_utc, start_of_business_day, to_db_time
from app.services.limits import DailyUsage, check_daily_limits, check_kyc_gate, daily_limits_for
from app.services.notifications import ConnectionRegistry
from app.services.risk_engine import RiskAssessment, RiskLevel, RiskRule, assess_transfer
from app.services.sanitizer import mask_recipient, serialize_transaction

logger = logging.getLogger(__name__)

DEFAULT_VALID_BANKS = [
    "Chase Bank",
    "Bank of America",
    "Wells Fargo",
    "Citibank",
    "U.S. Bank",
    "PNC Bank",
    "Goldman Sachs Bank",
    "Capital One",
    "TD Bank",
    "Truist Bank",
]


def _banks_from_env() -> List[str]:
    raw = os.getenv("VALID_BANKS")
    if not raw:
        return list(DEFAULT_VALID_BANKS)
    return [b.strip() for b in raw.split(",") if b.strip()]


VALID_BANKS = _banks_from_env()


class RejectionCode:
    validation_error = "VALIDATION_ERROR"
    account_inactive = "ACCOUNT_INACTIVE"
    kyc_required = "KYC_REQUIRED"
    invalid_bank = "INVALID_BANK"
    high_risk_blocked = "HIGH_RISK_BLOCKED"
    daily_limit_exceeded = "DAILY_LIMIT_EXCEEDED"
    daily_count_exceeded = "DAILY_COUNT_EXCEEDED"
    insufficient_funds = "INSUFFICIENT_FUNDS"
    transfer_failed = "TRANSFER_FAILED"
    transfer_not_found = "TRANSFER_NOT_FOUND"
    invalid_transfer_status = "INVALID_TRANSFER_STATUS"
    insufficient_user_balance = "INSUFFICIENT_USER_BALANCE"


class TransferOutcome:
    completed = "completed"
    pending_approval = "pending_approval"
    rejected = "rejected"
    blocked = "blocked"
    failed = "failed"


@dataclass(frozen=True)
class ClientInfo:
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass(frozen=True)
class AccountSnapshot:
    """Account fields read once per decision; ORM rows may expire on rollback."""
    id: int
    balance: Decimal
    is_active: bool
    kyc_status: str
    risk_level: str

    @classmethod
    def from_user(cls, user) -> "AccountSnapshot":
        return cls(
            id=user.id,
            balance=Decimal(str(user.balance or 0)),
            is_active=bool(user.is_active),
            kyc_status=user.kyc_status,
            risk_level=user.risk_level,
        )


@dataclass
class TransferDecision:
    outcome: str
    message: str = ""
    code: Optional[str] = None
    assessment: Optional[RiskAssessment] = None
    transaction: Optional[Transaction] = None
    context: Dict[str, Any] = field(default_factory=dict)
    errors: List[Dict[str, str]] = field(default_factory=list)

    @property
    def accepted(self) -> bool:
        return self.outcome in (TransferOutcome.completed, TransferOutcome.pending_approval)


@dataclass
class ReviewResult:
    ok: bool
    message: str
    code: Optional[str] = None
    transaction: Optional[Transaction] = None
    context: Dict[str, Any] = field(default_factory=dict)


def is_recognized_bank(bank_name: Optional[str], banks: Optional[List[str]] = None) -> bool:
    if not bank_name:
        return False
    name = bank_name.strip().lower()
    if not name:
        return False
    for bank in banks if banks is not None else VALID_BANKS:
        known = bank.lower()
        if known in name or name in known:
            return True
    return False


def _rejected(code: str, message: str, **context) -> TransferDecision:
    return TransferDecision(outcome=TransferOutcome.rejected, code=code, message=message, context=context)


class TransferService:
    def __init__(
        self,
        notifier: ConnectionRegistry,
        valid_banks: Optional[List[str]] = None,
        rules: Optional[List[RiskRule]] = None,
    ):
        self.notifier = notifier
        self.valid_banks = valid_banks if valid_banks is not None else VALID_BANKS
        self.rules = rules
        self._user_locks: Dict[int, asyncio.Lock] = {}
        self._lock_holders: Dict[int, int] = {}

    @asynccontextmanager
    async def _user_lock(self, user_id: int):
        """Serialize work for one user; the lock is dropped once nobody holds or awaits it."""
        lock = self._user_locks.get(user_id)
        if lock is None:
            lock = self._user_locks[user_id] = asyncio.Lock()
        self._lock_holders[user_id] = self._lock_holders.get(user_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_holders[user_id] -= 1
            if self._lock_holders[user_id] == 0:
                del self._lock_holders[user_id]
                del self._user_locks[user_id]

    @staticmethod
    def parse_request(payload: Union[TransferRequest, Dict[str, Any]]):
        """Validated request, or a VALIDATION_ERROR decision."""
        if isinstance(payload, TransferRequest):
            return payload, None
        try:
            return TransferRequest.model_validate(payload), None
        except ValidationError as e:
            decision = _rejected(RejectionCode.validation_error, "Invalid transfer request")
            decision.errors = format_validation_errors(e.errors())
            return None, decision

    async def validate_and_score_transfer(
        self,
        db,
        account: AccountSnapshot,
        request: TransferRequest,
        client: Optional[ClientInfo] = None,
        now: Optional[datetime] = None,
    ) -> TransferDecision:
        now = as_utc(now)
        client = client or ClientInfo()
        amount = request.amount

        kyc_violation = check_kyc_gate(account.kyc_status, amount)
        if kyc_violation:
            return _rejected(kyc_violation.code, kyc_violation.message, **kyc_violation.context)

        if request.is_external and not is_recognized_bank(request.bank_name, self.valid_banks):
            return _rejected(
                RejectionCode.invalid_bank,
                "Bank not recognized. Please verify the bank name.",
                bankName=request.bank_name,
            )

        assessment = await assess_transfer(
            db, account.id, amount, request.transfer_type, request.bank_name, now=now, rules=self.rules
        )
        if assessment.risk_level == RiskLevel.critical:
            await audit_log_service.log_security_event(
                db,
                account.id,
                "SUSPICIOUS_ACTIVITY",
                f"High-risk transfer blocked: ${amount:,.2f}",
                assessment.risk_level,
                ip_address=client.ip_address,
                user_agent=client.user_agent,
                metadata={
                    "amount": float(amount),
                    "transferType": request.transfer_type,
                    "bankName": request.bank_name,
                    "riskScore": assessment.risk_score,
                    "riskFactors": list(assessment.risk_factors),
                },
            )
            logger.warning(
                "Blocked transfer for user %s: score %s factors %s",
                account.id, assessment.risk_score, assessment.risk_factors,
            )
            decision = _rejected(
                RejectionCode.high_risk_blocked,
                "Transfer blocked due to high risk. Please contact support.",
                contactSupport=True,
                riskFactors=list(assessment.risk_factors),
            )
            decision.outcome = TransferOutcome.blocked
            decision.assessment = assessment
            return decision

        used_amount, used_count = await ledger.daily_debit_usage(db, account.id, start_of_business_day(now))
        limit_violation = check_daily_limits(
            DailyUsage(used_amount, used_count),
            amount,
            daily_limits_for(account.kyc_status, account.risk_level),
        )
        if limit_violation:
            decision = _rejected(limit_violation.code, limit_violation.message, **limit_violation.context)
            decision.assessment = assessment
            return decision

        available = account.balance
        if request.is_external:
            available = account.balance - await ledger.pending_external_total(db, account.id)
        if available < amount:
            decision = _rejected(
                RejectionCode.insufficient_funds,
                "Insufficient funds for this transfer",
                availableBalance=float(available),
                requestedAmount=float(amount),
            )
            decision.assessment = assessment
            return decision

        if request.is_external:
            return TransferDecision(
                outcome=TransferOutcome.pending_approval,
                message="External transfer submitted for admin approval",
                assessment=assessment,
            )
        return TransferDecision(
            outcome=TransferOutcome.completed,
            message="Transfer completed successfully",
            assessment=assessment,
        )

    async def submit_transfer(
        self,
        db,
        user_id: int,
        payload: Union[TransferRequest, Dict[str, Any]],
        client: Optional[ClientInfo] = None,
        now: Optional[datetime] = None,
    ) -> TransferDecision:
        request, invalid = self.parse_request(payload)
        if invalid is not None:
            return invalid

        async with self._user_lock(user_id):
            user = await ledger.get_user(db, user_id)
            if user is None or not user.is_active:
                return _rejected(RejectionCode.account_inactive, "Account is not active or not found")
            account = AccountSnapshot.from_user(user)

            decision = await self.validate_and_score_transfer(db, account, request, client, now)
            if not decision.accepted:
                return decision
            decision = await self._persist(db, account, request, decision, as_utc(now))

        if decision.outcome == TransferOutcome.pending_approval and decision.transaction is not None:
            await self.notifier.notify_transfer_pending(user_id, serialize_transaction(decision.transaction))
        return decision

    def _build_metadata(self, request: TransferRequest, assessment: RiskAssessment, submitted_at: datetime):
        model = PendingTransferMetadata if request.is_external else CompletedTransferMetadata
        return model(
            transfer_type=request.transfer_type,
            recipient_info=mask_recipient(request.recipient_info, request.is_external),
            bank_name=request.bank_name,
            risk_score=assessment.risk_score,
            risk_level=assessment.risk_level,
            risk_factors=list(assessment.risk_factors),
            requires_manual_review=assessment.requires_manual_review,
            requires_approval=request.is_external,
            submitted_at=submitted_at,
        )

    @staticmethod
    def _describe(request: TransferRequest) -> str:
        if request.description:
            return request.description
        if request.is_external:
            return f"External bank transfer to {request.bank_name}"
        return f"Internal transfer to {request.transfer_type} account"

    async def _persist(
        self,
        db,
        account: AccountSnapshot,
        request: TransferRequest,
        decision: TransferDecision,
        now: datetime,
    ) -> TransferDecision:
        db_now = to_db_time(now)
        meta = self._build_metadata(request, decision.assessment, db_now)
        status = TransactionStatus.pending if request.is_external else TransactionStatus.completed
        txn = Transaction(
            user_id=account.id,
            type=TransactionType.debit.value,
            amount=request.amount,
            description=self._describe(request),
            status=status.value,
            transfer_type=request.transfer_type,
            bank_name=request.bank_name,
            meta=dump_metadata(meta),
            created_at=db_now,
            updated_at=db_now,
        )
        try:
            if not request.is_external:
                debited = await ledger.debit_balance_if_sufficient(db, account.id, request.amount)
                if not debited:
                    await db.rollback()
                    return _rejected(RejectionCode.insufficient_funds, "Insufficient funds for this transfer")
            db.add(txn)
            await db.commit()
            await db.refresh(txn)
        except SQLAlchemyError:
            logger.exception("Failed to record transfer for user %s", account.id)
            await db.rollback()
            failed = await self._record_failure(db, account.id, request, meta, db_now)
            return TransferDecision(
                outcome=TransferOutcome.failed,
                code=RejectionCode.transfer_failed,
                message="Transfer could not be processed",
                assessment=decision.assessment,
                transaction=failed,
            )

        await audit_log_service.log_transaction(
            db,
            account.id,
            txn.id,
            "pending" if request.is_external else "completed",
            f"{request.transfer_type} ${request.amount:,.2f}; risk {decision.assessment.risk_level}",
        )
        logger.info("Transfer %s for user %s recorded as %s", txn.id, account.id, status.value)
        decision.transaction = txn
        return decision

    async def _record_failure(self, db, user_id: int, request: TransferRequest, meta, at: datetime) -> Optional[Transaction]:
        failed = Transaction(
            user_id=user_id,
            type=TransactionType.debit.value,
            amount=request.amount,
            description=self._describe(request),
            status=TransactionStatus.failed.value,
            transfer_type=request.transfer_type,
            bank_name=request.bank_name,
            meta=dump_metadata(failed_from(meta, at, "Transfer could not be recorded")),
            created_at=at,
            updated_at=at,
        )
        try:
            db.add(failed)
            await db.commit()
            await db.refresh(failed)
        except SQLAlchemyError:
            logger.exception("Could not record failed transfer for user %s", user_id)
            await db.rollback()
            return None
        return failed

    async def review_transfer(
        self,
        db,
        transfer_id: int,
        admin_id: int,
        action: str,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ReviewResult:
        if action not in ("approve", "reject"):
            return ReviewResult(False, "Action must be approve or reject", RejectionCode.validation_error)
        reason = reason.strip() if reason else None
        if action == "reject" and not reason:
            return ReviewResult(False, "Reason is required when rejecting a transfer", RejectionCode.validation_error)

        transfer = await ledger.get_transaction(db, transfer_id)
        if transfer is None:
            return ReviewResult(False, "Transfer not found", RejectionCode.transfer_not_found)
        owner_id = transfer.user_id
        amount = Decimal(str(transfer.amount))
        current_status = transfer.status
        try:
            meta = load_metadata(transfer.meta)
        except ValidationError:
            logger.warning("Transfer %s has unreadable metadata", transfer_id)
            meta = None

        if current_status != TransactionStatus.pending.value or not isinstance(meta, PendingTransferMetadata):
            return ReviewResult(
                False,
                "Transfer is not pending",
                RejectionCode.invalid_transfer_status,
                context={"currentStatus": current_status},
            )

        at = to_db_time(now)
        async with self._user_lock(owner_id):
            if action == "approve":
                owner = await ledger.get_user(db, owner_id)
                balance = Decimal(str(owner.balance or 0)) if owner is not None else Decimal("0")
                if balance < amount:
                    return ReviewResult(
                        False,
                        "User has insufficient balance for this transfer",
                        RejectionCode.insufficient_user_balance,
                        context={"userBalance": float(balance), "transferAmount": float(amount)},
                    )
                new_meta = approved_from(meta, admin_id, at, reason or "External bank transfer approved and processed")
                new_status = TransactionStatus.processing.value
            else:
                new_meta = rejected_from(meta, admin_id, at, reason)
                new_status = TransactionStatus.rejected.value

            try:
                moved = await ledger.transition_status(
                    db, transfer_id, TransactionStatus.pending.value, new_status, dump_metadata(new_meta)
                )
                if not moved:
                    await db.rollback()
                    return ReviewResult(
                        False,
                        "Transfer is not pending",
                        RejectionCode.invalid_transfer_status,
                        context={"currentStatus": current_status},
                    )
                if action == "approve":
                    debited = await ledger.debit_balance_if_sufficient(db, owner_id, amount)
                    if not debited:
                        await db.rollback()
                        return ReviewResult(
                            False,
                            "User has insufficient balance for this transfer",
                            RejectionCode.insufficient_user_balance,
                            context={"transferAmount": float(amount)},
                        )
                await db.commit()
            except SQLAlchemyError:
                logger.exception("Review of transfer %s failed", transfer_id)
                await db.rollback()
                return ReviewResult(False, "Transfer review could not be processed", RejectionCode.transfer_failed)

        await db.refresh(transfer)
        resolved = "approved" if action == "approve" else "rejected"
        await audit_log_service.log_admin_action(
            db,
            admin_id,
            f"review_transfer_{action}",
            f"Transfer {transfer_id} for user {owner_id} ${amount:,.2f} {resolved}"
            + (f". Reason: {reason}" if reason else ""),
        )
        logger.info("Admin %s %s transfer %s", admin_id, resolved, transfer_id)
        await self.notifier.notify_transfer_resolved(owner_id, serialize_transaction(transfer), resolved, reason)
        return ReviewResult(True, f"Transfer {resolved} successfully", transaction=transfer)

    async def transfer_updates(self, db, user_id: int, since: Optional[datetime] = None, limit: int = 20) -> List[Transaction]:
        return await ledger.external_transfers_for_user(
            db, user_id, to_db_time(since) if since is not None else None, limit
        )

    async def pending_transfers(self, db, user_id: int) -> List[Transaction]:
        return await ledger.pending_transfers_for_user(db, user_id)
