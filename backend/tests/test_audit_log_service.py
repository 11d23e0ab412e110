"""
Tests for audit log service functionality.
"""
import pytest
from unittest.mock import MagicMock
from sqlalchemy.exc import OperationalError

from app.services.audit_log_service import (
    log_admin_action,
    log_audit_event,
    log_security_event,
    log_transaction,
)


class TestAuditLogService:
    """Test cases for audit log service."""

    @pytest.mark.asyncio
    async def test_log_audit_event_success(self, test_db_session):
        """Test successful audit event logging."""
        result = await log_audit_event(
            db=test_db_session,
            user_id=1,
            action="transfer_viewed",
            details="User opened transfer history",
        )

        assert result is not None
        assert result.id is not None
        assert result.user_id == 1  # type: ignore
        assert result.action == "transfer_viewed"  # type: ignore
        assert result.details == "User opened transfer history"  # type: ignore

    @pytest.mark.asyncio
    async def test_log_audit_event_without_details(self, test_db_session):
        """Test audit event logging without details."""
        result = await log_audit_event(db=test_db_session, user_id=2, action="kyc_submitted")

        assert result is not None
        assert result.details is None  # type: ignore

    @pytest.mark.asyncio
    async def test_log_transaction(self, db):
        """Async sessions are awaited the same way."""
        result = await log_transaction(db, user_id=1, transaction_id=99, action="pending", details="external_bank $10.00")

        assert result.action == "transaction_pending"  # type: ignore
        assert result.details.startswith("Transaction ID: 99.")  # type: ignore

    @pytest.mark.asyncio
    async def test_log_admin_action(self, test_db_session):
        result = await log_admin_action(test_db_session, user_id=5, action="review_transfer_reject", details="Transfer 3")

        assert result.action == "admin_review_transfer_reject"  # type: ignore

    @pytest.mark.asyncio
    async def test_log_security_event(self, test_db_session):
        event = await log_security_event(
            test_db_session,
            user_id=4,
            event_type="SUSPICIOUS_ACTIVITY",
            description="High-risk transfer blocked",
            risk_level="CRITICAL",
            ip_address="10.0.0.1",
            metadata={"riskScore": 9},
        )

        assert event.id is not None
        assert event.meta == {"riskScore": 9}  # type: ignore

    @pytest.mark.asyncio
    async def test_failed_commit_is_swallowed(self):
        """An audit write that cannot commit is rolled back and reported as None."""
        session = MagicMock()
        session.commit.side_effect = OperationalError("INSERT", {}, Exception("disk full"))

        result = await log_admin_action(session, user_id=1, action="review_transfer_approve")

        assert result is None
        session.rollback.assert_called_once()
