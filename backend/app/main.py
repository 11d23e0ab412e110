import os
import logging
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from fastapi.exception_handlers import RequestValidationError
from fastapi.exceptions import HTTPException
from dotenv import load_dotenv
from slowapi.middleware import SlowAPIMiddleware
from slowapi.errors import RateLimitExceeded

# Load environment variables before modules read them at import time
load_dotenv(dotenv_path=os.path.join(os.path.dirname(__file__), '../.env'))

from app.database import AsyncSessionLocal, create_all_tables
from app.api import admin, transfers, ws
from app.schemas.errors import format_validation_errors
from app.security import security_config, validate_environment
from app.services.notifications import ConnectionRegistry
from app.services.rate_limit import limiter, rate_limit_exceeded_handler
from app.services.transfer_service import TransferService

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

validate_environment()

app = FastAPI(title="TransferGuard Backend", version="0.1.0")

app.state.connection_registry = ConnectionRegistry()
app.state.transfer_service = TransferService(app.state.connection_registry)


# JSON error responses
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail if exc.detail else str(exc)})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={"detail": {
            "message": "Invalid request",
            "code": "VALIDATION_ERROR",
            "errors": format_validation_errors(exc.errors()),
        }},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": {"message": "Internal server error", "code": "INTERNAL_ERROR"}})


# Security and rate limiting
security_config.apply_security_middleware(app)
app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


@app.get("/")
def root():
    return {"message": "TransferGuard API is running.", "status": "healthy"}


@app.head("/")
def root_head():
    return Response(status_code=200)


@app.get("/health")
def health_check():
    return {
        "status": "ok",
        "postgres": "connected" if AsyncSessionLocal else "not configured",
        "websocket_connections": app.state.connection_registry.snapshot()["total_connections"],
    }


# Routers
app.include_router(transfers.router, prefix="/api")
app.include_router(admin.router, prefix="/api")
app.include_router(ws.router)


@app.on_event("startup")
async def on_startup():
    if os.getenv("AUTO_CREATE_TABLES", "false").lower() == "true":
        try:
            await create_all_tables()
        except Exception as e:
            logger.error("Table creation failed: %s", e)


@app.on_event("shutdown")
async def on_shutdown():
    await app.state.connection_registry.close_all()
    logger.info("Closed all transfer sockets")
