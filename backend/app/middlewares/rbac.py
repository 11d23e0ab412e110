from fastapi import Depends, HTTPException, status, Request

from app.api.deps import require_db
from app.services import ledger
from app.services.token_service import claimed_user_id, verify_access_token


def _extract_bearer_token(request: Request) -> str | None:
    auth = request.headers.get("Authorization")
    if auth and auth.startswith("Bearer "):
        return auth.split(" ", 1)[1]
    return None


# Dependency to extract full JWT claims
def get_current_claims(request: Request) -> dict:
    token = _extract_bearer_token(request)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing or invalid token.")
    payload = verify_access_token(token)
    user_id = claimed_user_id(payload)
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token.")
    payload["user_id"] = user_id
    return payload


# Dependency to require specific roles; returns claims for downstream usage
def require_roles(*roles: str):
    def dependency(claims: dict = Depends(get_current_claims)):
        role = claims.get("role", "user")
        if role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions.")
        return claims
    return dependency


async def get_current_user(claims: dict = Depends(get_current_claims), db=Depends(require_db)):
    """The caller's user row; rejects unknown or deactivated accounts."""
    user = await ledger.get_user(db, claims["user_id"])
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"message": "Account is not active or not found", "code": "ACCOUNT_INACTIVE"},
        )
    return user
