from typing import Optional

from fastapi import APIRouter, Body, Depends, Query, Request

from app.api.deps import get_registry, get_transfer_service, rejection_error, require_db
from app.middlewares.rbac import require_roles
from app.schemas.admin import (
    ConnectionSnapshotResponse,
    PaginationInfo,
    PendingTransfersResponse,
    RiskRulesResponse,
    TransferStatsResponse,
    TransferStatusStats,
)
from app.schemas.transaction import AdminApproveRequest, AdminRejectRequest, AdminReviewRequest
from app.services import ledger
from app.services.notifications import ConnectionRegistry
from app.services.rate_limit import limiter, ADMIN_REVIEW_RATE_LIMIT
from app.services.risk_engine import describe_rules
from app.services.sanitizer import serialize_transaction, serialize_with_user
from app.services.transfer_service import TransferService

router = APIRouter(prefix="/admin", tags=["admin"])


def get_admin_claims(claims: dict = Depends(require_roles("admin"))):
    return claims


@router.get("/pending-transfers", response_model=PendingTransfersResponse)
async def pending_transfers(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db=Depends(require_db),
    _admin=Depends(get_admin_claims),
):
    rows, total = await ledger.pending_review_queue(db, offset=(page - 1) * limit, limit=limit)
    total_pages = (total + limit - 1) // limit
    return PendingTransfersResponse(
        transfers=[serialize_with_user(txn, user) for txn, user in rows],
        pagination=PaginationInfo(
            page=page,
            limit=limit,
            total=total,
            totalPages=total_pages,
            hasNext=page < total_pages,
            hasPrev=page > 1,
        ),
    )


async def _review(db, service: TransferService, transfer_id: int, admin_id: int, action: str, reason: Optional[str]):
    result = await service.review_transfer(db, transfer_id, admin_id, action, reason)
    if not result.ok:
        raise rejection_error(result.code, result.message, result.context)
    return {
        "success": True,
        "message": result.message,
        "transaction": serialize_transaction(result.transaction),
    }


@router.post("/transfers/{transfer_id}/review")
@limiter.limit(ADMIN_REVIEW_RATE_LIMIT)
async def review_transfer(
    request: Request,
    transfer_id: int,
    data: AdminReviewRequest,
    db=Depends(require_db),
    claims: dict = Depends(get_admin_claims),
    service: TransferService = Depends(get_transfer_service),
):
    return await _review(db, service, transfer_id, int(claims["user_id"]), data.action, data.reason)


@router.post("/transfers/{transfer_id}/approve")
@limiter.limit(ADMIN_REVIEW_RATE_LIMIT)
async def approve_transfer(
    request: Request,
    transfer_id: int,
    data: Optional[AdminApproveRequest] = Body(None),
    db=Depends(require_db),
    claims: dict = Depends(get_admin_claims),
    service: TransferService = Depends(get_transfer_service),
):
    reason = data.reason if data is not None else None
    return await _review(db, service, transfer_id, int(claims["user_id"]), "approve", reason)


@router.post("/transfers/{transfer_id}/reject")
@limiter.limit(ADMIN_REVIEW_RATE_LIMIT)
async def reject_transfer(
    request: Request,
    transfer_id: int,
    data: AdminRejectRequest,
    db=Depends(require_db),
    claims: dict = Depends(get_admin_claims),
    service: TransferService = Depends(get_transfer_service),
):
    return await _review(db, service, transfer_id, int(claims["user_id"]), "reject", data.reason)


@router.get("/transfer-stats", response_model=TransferStatsResponse)
async def transfer_stats(db=Depends(require_db), _admin=Depends(get_admin_claims)):
    totals = await ledger.transfer_status_totals(db)
    stats = {
        status: TransferStatusStats(count=v["count"], volume=float(v["amount"]))
        for status, v in totals.items()
    }
    return TransferStatsResponse(
        stats=stats,
        total_count=sum(s.count for s in stats.values()),
        total_volume=sum(s.volume for s in stats.values()),
    )


@router.get("/connections", response_model=ConnectionSnapshotResponse)
async def connections(
    registry: ConnectionRegistry = Depends(get_registry),
    _admin=Depends(get_admin_claims),
):
    return registry.snapshot()


@router.get("/risk-rules", response_model=RiskRulesResponse)
async def risk_rules(_admin=Depends(get_admin_claims)):
    return {"rules": describe_rules()}
