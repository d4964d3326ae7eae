"""
Per-user rate limiting with configurable limits per operation.
Uses in-memory sliding window algorithm.
"""
import time
from collections import defaultdict
from typing import Dict, List
from fastapi import HTTPException, status


# Storage: {"{user_id}:{operation}": [timestamp, timestamp, ...]}
_user_request_counts: Dict[str, List[float]] = defaultdict(list)

# Configurable rate limits by operation type
RATE_LIMITS = {
    # Order writes
    "order_create": {"limit": 10, "window": 60},         # 10 orders/min
    "order_update": {"limit": 30, "window": 60},         # 30 edits/min
    "order_status_update": {"limit": 30, "window": 60},  # 30 transitions/min
    "order_respond": {"limit": 30, "window": 60},
    "order_cancel": {"limit": 10, "window": 60},

    # Messaging
    "order_message_create": {"limit": 20, "window": 60},  # 20 msgs/min

    # Default fallback
    "default": {"limit": 100, "window": 60},
}


def check_user_rate_limit(user_id: int, operation: str) -> None:
    """
    Check rate limit for a specific user and operation.
    Raises HTTPException 429 if rate limit exceeded.

    Args:
        user_id: The authenticated user's ID
        operation: The operation key (e.g., "order_create")
    """
    config = RATE_LIMITS.get(operation, RATE_LIMITS["default"])
    limit = config["limit"]
    window = config["window"]

    key = f"{user_id}:{operation}"
    now = time.time()

    # Clean old entries outside the window
    _user_request_counts[key] = [
        t for t in _user_request_counts[key] if now - t < window
    ]

    if len(_user_request_counts[key]) >= limit:
        retry_after = int(window - (now - _user_request_counts[key][0]))
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Rate limit exceeded. Try again in {retry_after} seconds.",
            headers={"Retry-After": str(retry_after)}
        )

    _user_request_counts[key].append(now)


def clear_rate_limits() -> None:
    """Clear all rate limit data. Useful for testing."""
    _user_request_counts.clear()
