"""
Tests for JWT handling and the authentication dependencies.

Tests cover:
- JWT token creation, verification, and expiry
- user id extraction from the sub claim
- Cookie and Bearer header authentication on order endpoints
- Role checks
"""
import pytest
from datetime import datetime, timedelta, timezone

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from auth.jwt_handler import (
    create_access_token,
    verify_token,
    user_id_from_token,
    ACCESS_TOKEN_EXPIRE_HOURS,
)


# ============================================================================
# JWT Token Unit Tests
# ============================================================================

class TestCreateAccessToken:
    """Tests for JWT token creation."""

    def test_creates_valid_token(self):
        """Token should be decodable and contain payload."""
        payload = {"sub": "123", "email": "test@example.com", "role": "STUDENT"}
        token = create_access_token(payload)

        decoded = verify_token(token)
        assert decoded is not None
        assert decoded["sub"] == "123"
        assert decoded["email"] == "test@example.com"
        assert decoded["role"] == "STUDENT"

    def test_token_has_expiry(self):
        """Token should have exp and iat claims set."""
        decoded = verify_token(create_access_token({"sub": "123"}))
        assert "exp" in decoded
        assert "iat" in decoded

    def test_default_expiry(self):
        """Token should default to ACCESS_TOKEN_EXPIRE_HOURS."""
        decoded = verify_token(create_access_token({"sub": "123"}))
        remaining = decoded["exp"] - datetime.now(timezone.utc).timestamp()
        expected_seconds = ACCESS_TOKEN_EXPIRE_HOURS * 3600
        # Allow 60 seconds tolerance for test execution time
        assert expected_seconds - 60 < remaining <= expected_seconds

    def test_does_not_mutate_input(self):
        payload = {"sub": "123"}
        create_access_token(payload)
        assert payload == {"sub": "123"}


class TestVerifyToken:
    """Tests for JWT token verification."""

    def test_expired_token_returns_none(self):
        """Expired token should return None."""
        token = create_access_token({"sub": "123"}, expires_delta=timedelta(hours=-1))
        assert verify_token(token) is None

    def test_invalid_token_returns_none(self):
        """Invalid/tampered token should return None."""
        assert verify_token("invalid.token.here") is None

    def test_malformed_token_returns_none(self):
        """Malformed token should return None."""
        assert verify_token("not-even-close") is None


class TestUserIdFromToken:
    """Tests for reading the user id claim."""

    def test_numeric_sub(self):
        assert user_id_from_token(create_access_token({"sub": "42"})) == 42

    @pytest.mark.parametrize("payload", [{}, {"sub": "abc"}])
    def test_bad_sub_returns_none(self, payload):
        assert user_id_from_token(create_access_token(payload)) is None

    def test_bad_token_returns_none(self):
        assert user_id_from_token("not-even-close") is None


# ============================================================================
# Dependency Integration Tests
# ============================================================================

class TestOrderEndpointsRequireAuth:
    """Order endpoints should reject unauthenticated requests."""

    @pytest.mark.parametrize("method,path", [
        ("get", "/api/orders/student"),
        ("get", "/api/orders/teacher"),
        ("get", "/api/orders/admin/all"),
        ("get", "/api/orders/1"),
        ("post", "/api/orders/1/cancel"),
    ])
    def test_returns_401_without_token(self, client, method, path):
        response = getattr(client, method)(path)
        assert response.status_code == 401
        assert response.json()["message"] == "Not authenticated"

    def test_returns_401_with_invalid_token(self, client):
        client.cookies.set("access_token", "invalid.token.here")
        response = client.get("/api/orders/student")
        assert response.status_code == 401
        assert response.json()["message"] == "Invalid or expired token"

    def test_returns_401_with_expired_token(self, client, student):
        token = create_access_token(
            {"sub": str(student.user_id)},
            expires_delta=timedelta(hours=-1)
        )
        client.cookies.set("access_token", token)
        assert client.get("/api/orders/student").status_code == 401

    def test_returns_401_for_unknown_user(self, client, db_session):
        client.cookies.set("access_token", create_access_token({"sub": "9999"}))
        response = client.get("/api/orders/student")
        assert response.status_code == 401
        assert response.json()["message"] == "User not found"


class TestBearerHeader:
    """Authorization header is accepted when no cookie is present."""

    def test_bearer_token_authenticates(self, client, student):
        token = create_access_token({"sub": str(student.user_id)})
        response = client.get(
            "/api/orders/student",
            headers={"Authorization": f"Bearer {token}"},
        )
        assert response.status_code == 200

    def test_other_scheme_ignored(self, client, student):
        token = create_access_token({"sub": str(student.user_id)})
        response = client.get(
            "/api/orders/student",
            headers={"Authorization": f"Basic {token}"},
        )
        assert response.status_code == 401


class TestRoleBasedAccess:
    """Tests for role-based access control."""

    def test_teacher_listing_rejects_student(self, login, student):
        response = login(student.user).get("/api/orders/teacher")
        assert response.status_code == 403
        assert response.json()["message"] == "Access denied. Required roles: TEACHER"

    def test_student_listing_rejects_admin(self, login, admin_user):
        response = login(admin_user).get("/api/orders/student")
        assert response.status_code == 403

    def test_student_role_without_profile(self, login, db_session):
        from models import User
        user = User(email="ghost@example.com", role="STUDENT", full_name="No Profile")
        db_session.add(user)
        db_session.commit()

        response = login(user).get("/api/orders/student")
        assert response.status_code == 404
        assert response.json()["message"] == "Student profile not found"
