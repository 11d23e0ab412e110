import os

from dotenv import load_dotenv
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from fastapi.responses import JSONResponse
from fastapi import Request

load_dotenv()

RATE_LIMIT_ENABLED = os.getenv("RATE_LIMIT_ENABLED", "true").lower() in ("1", "true", "yes")
TRANSFER_RATE_LIMIT = os.getenv("TRANSFER_RATE_LIMIT", "10 per 15 minutes")
ADMIN_REVIEW_RATE_LIMIT = os.getenv("ADMIN_REVIEW_RATE_LIMIT", "50 per 5 minutes")

# Global limiter instance for the app
limiter = Limiter(key_func=get_remote_address, default_limits=[], enabled=RATE_LIMIT_ENABLED)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=429,
        content={
            "detail": {
                "message": "Too many requests, please slow down.",
                "code": "RATE_LIMITED",
                "limit": str(exc.detail),
            }
        },
    )
