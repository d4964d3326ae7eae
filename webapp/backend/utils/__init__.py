"""
Shared utility functions for the backend.
"""
from .response_builders import build_order_response, build_order_detail_response, build_pagination
from .query_helpers import order_with_parties, order_with_thread
from .rate_limiter import check_user_rate_limit, RATE_LIMITS, clear_rate_limits

__all__ = [
    "build_order_response",
    "build_order_detail_response",
    "build_pagination",
    "order_with_parties",
    "order_with_thread",
    "check_user_rate_limit",
    "RATE_LIMITS",
    "clear_rate_limits",
]
