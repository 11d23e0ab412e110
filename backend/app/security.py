"""
Security Configuration Module

CORS, trusted hosts, compression and response security headers for the
transfer backend, plus a startup check of required environment variables.
"""

import os
import logging
from typing import List

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.middleware.gzip import GZipMiddleware

logger = logging.getLogger(__name__)

KNOWN_ENVIRONMENTS = ["development", "staging", "production", "test"]


class SecurityConfig:
    """Security configuration class"""

    def __init__(self):
        self.environment = os.getenv("ENVIRONMENT", "development").lower()
        self.allowed_hosts = self._get_allowed_hosts()
        self.cors_origins = self._get_cors_origins()

    def _get_allowed_hosts(self) -> List[str]:
        """Get allowed hosts based on environment"""
        if self.environment == "production":
            hosts = os.getenv("ALLOWED_HOSTS", "")
            return [h.strip() for h in hosts.split(",") if h.strip()] or ["localhost"]
        return ["*"]

    def _get_cors_origins(self) -> List[str]:
        """Get CORS origins based on environment"""
        configured = [o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()]
        if self.environment == "production":
            return configured
        return configured + [
            "http://127.0.0.1:3000",
            "http://localhost:3000",
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ]

    def apply_security_middleware(self, app: FastAPI) -> None:
        """Apply all security middleware to the FastAPI app."""

        app.add_middleware(
            TrustedHostMiddleware,
            allowed_hosts=self.allowed_hosts,
        )

        app.add_middleware(GZipMiddleware, minimum_size=1000)

        app.add_middleware(SecurityHeadersMiddleware)

        # CORS outermost so even error responses include CORS headers
        app.add_middleware(
            CORSMiddleware,
            allow_origins=self.cors_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=[
                "Accept",
                "Content-Type",
                "Authorization",
                "X-Requested-With",
                "Origin",
            ],
            max_age=86400,
        )

        logger.info("Security middleware applied for environment: %s", self.environment)


class SecurityHeadersMiddleware:
    """Add security headers to all HTTP responses; WebSocket traffic passes through."""

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope.get("type") != "http":
            return await self.app(scope, receive, send)

        async def send_with_headers(message):
            if message.get("type") == "http.response.start":
                headers = list(message.get("headers", []))
                headers.extend([
                    (b"X-Content-Type-Options", b"nosniff"),
                    (b"X-Frame-Options", b"DENY"),
                    (b"Referrer-Policy", b"strict-origin-when-cross-origin"),
                    (b"Content-Security-Policy", b"default-src 'none'; frame-ancestors 'none';"),
                ])
                message["headers"] = headers
            await send(message)

        return await self.app(scope, receive, send_with_headers)


def validate_environment() -> None:
    """Validate environment configuration"""
    required_vars = [
        "JWT_SECRET",
        "POSTGRES_URI",
    ]

    missing_vars = [var for var in required_vars if not os.getenv(var)]
    if missing_vars:
        logger.warning(f"Missing environment variables: {missing_vars}")

    jwt_secret = os.getenv("JWT_SECRET", "")
    if len(jwt_secret) < 32:
        logger.warning("JWT_SECRET should be at least 32 characters long")

    env = os.getenv("ENVIRONMENT", "development")
    if env not in KNOWN_ENVIRONMENTS:
        logger.warning(f"Invalid ENVIRONMENT value: {env}")


# Create global security config instance
security_config = SecurityConfig()
