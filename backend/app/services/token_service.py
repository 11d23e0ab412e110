import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt, JWTError
from dotenv import load_dotenv

load_dotenv(dotenv_path=os.path.join(os.path.dirname(__file__), '../../.env'))

logger = logging.getLogger(__name__)

JWT_SECRET = os.getenv("JWT_SECRET", "fallback-secret-key-for-development-only")
JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_TTL_SECONDS = int(os.getenv("ACCESS_TOKEN_TTL_SECONDS", "900"))

if JWT_SECRET == "fallback-secret-key-for-development-only":
    logger.warning("Using fallback JWT secret. Set JWT_SECRET environment variable for production.")


def _create_token(data: dict, expires_in_seconds: int, scope: Optional[str] = None) -> str:
    to_encode = data.copy()
    if scope:
        to_encode["scope"] = scope
    expire = datetime.now(timezone.utc) + timedelta(seconds=expires_in_seconds)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, JWT_SECRET, algorithm=JWT_ALGORITHM)


def create_access_token(data: dict, expires_in_seconds: int = ACCESS_TOKEN_TTL_SECONDS) -> str:
    """Create a short-lived access token (15 minutes default)."""
    return _create_token(data, expires_in_seconds=expires_in_seconds, scope="access")


def create_token_for_user(user, expires_in_seconds: int = ACCESS_TOKEN_TTL_SECONDS) -> str:
    return create_access_token({"user_id": user.id, "role": user.role}, expires_in_seconds)


def verify_access_token(token: Optional[str]) -> Optional[dict]:
    """Decoded claims for a valid access token, else None."""
    if not token:
        return None
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except JWTError as e:
        logger.info("Invalid or expired token: %s", e)
        return None
    if payload.get("scope") != "access":
        return None
    return payload


def claimed_user_id(claims: Optional[dict]) -> Optional[int]:
    """Integer ``user_id`` claim, or None when absent or not numeric."""
    if not claims:
        return None
    try:
        return int(claims["user_id"])
    except (KeyError, TypeError, ValueError):
        return None
