from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query, Request, status

from app.api.deps import get_client_info, get_transfer_service, rejection_error, require_db
from app.middlewares.rbac import get_current_user
from app.services.rate_limit import limiter, TRANSFER_RATE_LIMIT
from app.services.sanitizer import serialize_transaction
from app.services.transfer_service import ClientInfo, TransferOutcome, TransferService

router = APIRouter(prefix="/transfers", tags=["transfers"])


@router.post("", status_code=status.HTTP_201_CREATED)
@limiter.limit(TRANSFER_RATE_LIMIT)
async def create_transfer(
    request: Request,
    payload: Dict[str, Any] = Body(...),
    db=Depends(require_db),
    user=Depends(get_current_user),
    service: TransferService = Depends(get_transfer_service),
    client: ClientInfo = Depends(get_client_info),
):
    user_id = user.id
    decision = await service.submit_transfer(db, user_id, payload, client=client)

    if decision.outcome == TransferOutcome.failed:
        context = {"transactionId": decision.transaction.id} if decision.transaction is not None else {}
        raise rejection_error(decision.code, decision.message, context)
    if not decision.accepted:
        raise rejection_error(decision.code, decision.message, decision.context, decision.errors)

    return {
        "success": True,
        "message": decision.message,
        "transaction": serialize_transaction(decision.transaction),
        "riskAssessment": decision.assessment.to_response(),
        "requiresApproval": decision.outcome == TransferOutcome.pending_approval,
    }


@router.get("/updates")
async def transfer_updates(
    since: Optional[datetime] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    db=Depends(require_db),
    user=Depends(get_current_user),
    service: TransferService = Depends(get_transfer_service),
):
    """Polling fallback for clients without a live socket."""
    transfers = await service.transfer_updates(db, user.id, since=since, limit=limit)
    return {
        "transfers": [serialize_transaction(t) for t in transfers],
        "count": len(transfers),
        "serverTime": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/pending")
async def pending_transfers(
    db=Depends(require_db),
    user=Depends(get_current_user),
    service: TransferService = Depends(get_transfer_service),
):
    transfers = await service.pending_transfers(db, user.id)
    return {"transfers": [serialize_transaction(t) for t in transfers], "count": len(transfers)}
