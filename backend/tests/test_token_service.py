"""Test JWT token functionality."""
from datetime import datetime, timezone

from jose import jwt

from app.services.token_service import (
    JWT_ALGORITHM,
    JWT_SECRET,
    claimed_user_id,
    create_access_token,
    verify_access_token,
)


def test_access_token_round_trip_claims():
    token = create_access_token({"user_id": 1, "role": "admin"})
    payload = verify_access_token(token)

    assert payload["user_id"] == 1
    assert payload["role"] == "admin"
    assert payload["scope"] == "access"
    assert payload["exp"] > datetime.now(timezone.utc).timestamp()


def test_expired_token_rejected():
    token = create_access_token({"user_id": 1}, expires_in_seconds=-1)

    assert verify_access_token(token) is None


def test_wrong_scope_rejected():
    token = jwt.encode({"user_id": 1, "scope": "refresh"}, JWT_SECRET, algorithm=JWT_ALGORITHM)

    assert verify_access_token(token) is None


def test_foreign_signature_rejected():
    token = jwt.encode({"user_id": 1, "scope": "access"}, "another-secret", algorithm=JWT_ALGORITHM)

    assert verify_access_token(token) is None


def test_empty_token():
    assert verify_access_token("") is None
    assert verify_access_token(None) is None


def test_claimed_user_id():
    assert claimed_user_id({"user_id": 7}) == 7
    assert claimed_user_id({"user_id": "7"}) == 7
    assert claimed_user_id({"user_id": "abc"}) is None
    assert claimed_user_id({"role": "user"}) is None
    assert claimed_user_id(None) is None
