from fastapi import Depends, HTTPException, Request, status

from app.database import get_db
from app.services.notifications import ConnectionRegistry
from app.services.transfer_service import ClientInfo, TransferService


async def require_db(db=Depends(get_db)):
    if db is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"message": "Database not configured", "code": "DB_UNAVAILABLE"},
        )
    return db


def get_registry(request: Request) -> ConnectionRegistry:
    return request.app.state.connection_registry


def get_transfer_service(request: Request) -> TransferService:
    return request.app.state.transfer_service


def extract_client_ip(request: Request) -> str:
    headers = request.headers
    # Cloudflare
    ip = headers.get("cf-connecting-ip")
    if ip:
        return ip
    # Standard reverse proxy header (may contain a list)
    xff = headers.get("x-forwarded-for")
    if xff:
        return xff.split(",")[0].strip()
    ip = headers.get("x-real-ip")
    if ip:
        return ip
    return (request.client and request.client.host) or "unknown"


def get_client_info(request: Request) -> ClientInfo:
    return ClientInfo(ip_address=extract_client_ip(request), user_agent=request.headers.get("user-agent"))


# Rejection codes that do not map to 400
_STATUS_FOR_CODE = {
    "ACCOUNT_INACTIVE": status.HTTP_403_FORBIDDEN,
    "KYC_REQUIRED": status.HTTP_403_FORBIDDEN,
    "HIGH_RISK_BLOCKED": status.HTTP_403_FORBIDDEN,
    "TRANSFER_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "INVALID_TRANSFER_STATUS": status.HTTP_409_CONFLICT,
    "TRANSFER_FAILED": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def rejection_error(code: str, message: str, context: dict | None = None, errors: list | None = None) -> HTTPException:
    detail = {"message": message, "code": code, **(context or {})}
    if errors:
        detail["errors"] = errors
    return HTTPException(status_code=_STATUS_FOR_CODE.get(code, status.HTTP_400_BAD_REQUEST), detail=detail)
