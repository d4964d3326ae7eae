"""
Authentication module for the tutoring orders backend.

Provides:
- JWT token creation and validation
- FastAPI dependencies for route protection
"""

from .jwt_handler import create_access_token, verify_token, user_id_from_token
from .dependencies import get_current_user, require_role, require_admin

__all__ = [
    "create_access_token",
    "verify_token",
    "user_id_from_token",
    "get_current_user",
    "require_role",
    "require_admin",
]
