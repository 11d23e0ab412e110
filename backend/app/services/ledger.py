"""
Read and conditional-write queries over users and transactions.

All aggregates are computed from rows, never from cached values. The two
write helpers are compare-and-set UPDATEs; callers commit or roll back.
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple, Dict, Any

from sqlalchemy import func, select, update

from app.models.user import User, utcnow
from app.models.transaction import Transaction, TransactionStatus, TransactionType, TransferType

# Statuses that consume daily allowance
COUNTED_STATUSES = (
    TransactionStatus.pending.value,
    TransactionStatus.completed.value,
)

DEBIT = TransactionType.debit.value
EXTERNAL = TransferType.external_bank.value


def _to_decimal(value) -> Decimal:
    if value is None:
        return Decimal("0")
    return Decimal(str(value))


async def get_user(db, user_id: int) -> Optional[User]:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalars().first()


async def get_transaction(db, transaction_id: int) -> Optional[Transaction]:
    result = await db.execute(select(Transaction).where(Transaction.id == transaction_id))
    return result.scalars().first()


async def daily_debit_usage(db, user_id: int, since: datetime) -> Tuple[Decimal, int]:
    stmt = select(func.coalesce(func.sum(Transaction.amount), 0), func.count(Transaction.id)).where(
        Transaction.user_id == user_id,
        Transaction.type == DEBIT,
        Transaction.status.in_(COUNTED_STATUSES),
        Transaction.created_at >= since,
    )
    total, count = (await db.execute(stmt)).one()
    return _to_decimal(total), int(count or 0)


async def debit_count_since(db, user_id: int, since: datetime) -> int:
    stmt = select(func.count(Transaction.id)).where(
        Transaction.user_id == user_id,
        Transaction.type == DEBIT,
        Transaction.created_at >= since,
    )
    return int((await db.execute(stmt)).scalar() or 0)


async def debit_amount_stats_since(db, user_id: int, since: datetime) -> Tuple[Decimal, Decimal]:
    """Average and maximum debit amount since ``since``; zeros with no history."""
    stmt = select(func.avg(Transaction.amount), func.max(Transaction.amount)).where(
        Transaction.user_id == user_id,
        Transaction.type == DEBIT,
        Transaction.created_at >= since,
    )
    avg_amount, max_amount = (await db.execute(stmt)).one()
    return _to_decimal(avg_amount), _to_decimal(max_amount)


async def prior_bank_transfer_count(db, user_id: int, bank_name: str) -> int:
    stmt = select(func.count(Transaction.id)).where(
        Transaction.user_id == user_id,
        Transaction.type == DEBIT,
        Transaction.transfer_type == EXTERNAL,
        func.lower(Transaction.bank_name) == bank_name.strip().lower(),
    )
    return int((await db.execute(stmt)).scalar() or 0)


async def pending_external_total(db, user_id: int) -> Decimal:
    stmt = select(func.coalesce(func.sum(Transaction.amount), 0)).where(
        Transaction.user_id == user_id,
        Transaction.type == DEBIT,
        Transaction.transfer_type == EXTERNAL,
        Transaction.status == TransactionStatus.pending.value,
    )
    return _to_decimal((await db.execute(stmt)).scalar())


async def debit_balance_if_sufficient(db, user_id: int, amount: Decimal) -> bool:
    stmt = (
        update(User)
        .where(User.id == user_id, User.balance >= amount)
        .values({User.balance: User.balance - amount})
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    return result.rowcount == 1


async def transition_status(db, transaction_id: int, expected: str, new_status: str, meta: Dict[str, Any]) -> bool:
    """Move a transaction from ``expected`` to ``new_status``; False if it was no longer ``expected``."""
    stmt = (
        update(Transaction)
        .where(Transaction.id == transaction_id, Transaction.status == expected)
        .values({
            Transaction.status: new_status,
            Transaction.meta: meta,
            Transaction.updated_at: utcnow(),
        })
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    return result.rowcount == 1


async def external_transfers_for_user(db, user_id: int, since: Optional[datetime] = None, limit: int = 20) -> List[Transaction]:
    stmt = select(Transaction).where(
        Transaction.user_id == user_id,
        Transaction.type == DEBIT,
        Transaction.transfer_type == EXTERNAL,
    )
    if since is not None:
        stmt = stmt.where(Transaction.updated_at >= since)
    stmt = stmt.order_by(Transaction.updated_at.desc(), Transaction.id.desc()).limit(limit)
    return list((await db.execute(stmt)).scalars().all())


async def pending_transfers_for_user(db, user_id: int) -> List[Transaction]:
    stmt = (
        select(Transaction)
        .where(
            Transaction.user_id == user_id,
            Transaction.transfer_type == EXTERNAL,
            Transaction.status == TransactionStatus.pending.value,
        )
        .order_by(Transaction.created_at.desc())
    )
    return list((await db.execute(stmt)).scalars().all())


async def pending_review_queue(db, offset: int = 0, limit: int = 20) -> Tuple[List[Tuple[Transaction, User]], int]:
    condition = (
        (Transaction.transfer_type == EXTERNAL)
        & (Transaction.status == TransactionStatus.pending.value)
    )
    total = (await db.execute(select(func.count(Transaction.id)).where(condition))).scalar() or 0
    stmt = (
        select(Transaction, User)
        .join(User, User.id == Transaction.user_id)
        .where(condition)
        .order_by(Transaction.created_at.asc())
        .offset(offset)
        .limit(limit)
    )
    rows = [(row[0], row[1]) for row in (await db.execute(stmt)).all()]
    return rows, int(total)


async def transfer_status_totals(db) -> Dict[str, Dict[str, Any]]:
    stmt = (
        select(Transaction.status, func.count(Transaction.id), func.coalesce(func.sum(Transaction.amount), 0))
        .where(Transaction.type == DEBIT, Transaction.transfer_type == EXTERNAL)
        .group_by(Transaction.status)
    )
    totals = {}
    for status, count, amount in (await db.execute(stmt)).all():
        totals[status] = {"count": int(count), "amount": _to_decimal(amount)}
    return totals
