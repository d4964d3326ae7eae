"""
Shared constants for the backend.

Centralizes order enums, the order status transition table and other
constants used across services and routers.
"""
from enum import Enum
from typing import Dict, FrozenSet


class UserRole(str, Enum):
    """Account roles. Using str + Enum allows direct comparison with stored values."""
    STUDENT = 'STUDENT'
    TEACHER = 'TEACHER'
    ADMIN = 'ADMIN'


class OrderStatus(str, Enum):
    """All valid order statuses."""
    PENDING = 'PENDING'
    CONFIRMED = 'CONFIRMED'
    IN_PROGRESS = 'IN_PROGRESS'
    COMPLETED = 'COMPLETED'
    CANCELLED = 'CANCELLED'
    REJECTED = 'REJECTED'


class OrderPriority(str, Enum):
    """Informational priority; has no effect on transitions."""
    LOW = 'LOW'
    MEDIUM = 'MEDIUM'
    HIGH = 'HIGH'
    URGENT = 'URGENT'


class Grade(str, Enum):
    GRADE1 = 'GRADE1'
    GRADE2 = 'GRADE2'
    GRADE3 = 'GRADE3'
    GRADE4 = 'GRADE4'
    GRADE5 = 'GRADE5'
    GRADE6 = 'GRADE6'
    GRADE7 = 'GRADE7'
    GRADE8 = 'GRADE8'
    GRADE9 = 'GRADE9'
    GRADE10 = 'GRADE10'
    GRADE11 = 'GRADE11'
    GRADE12 = 'GRADE12'


class Curriculum(str, Enum):
    IB_SYSTEM = 'IB_SYSTEM'
    AMERICAN_SYSTEM = 'AMERICAN_SYSTEM'
    BRITISH_SYSTEM = 'BRITISH_SYSTEM'
    FRENCH_SYSTEM = 'FRENCH_SYSTEM'
    NATIONAL_SYSTEM = 'NATIONAL_SYSTEM'
    OTHER = 'OTHER'


class SessionType(str, Enum):
    ONLINE = 'ONLINE_SESSIONS'
    OFFLINE = 'OFFLINE_SESSIONS'


class PreferredTime(str, Enum):
    WEEKEND = 'WEEKEND'
    WEEKDAYS = 'WEEKDAYS'


class OrderActor(str, Enum):
    """
    How a user relates to a specific order.

    Also used as the stored sender_role of order messages.
    """
    STUDENT = 'STUDENT'
    TEACHER = 'TEACHER'
    ADMIN = 'ADMIN'


class TeacherResponse(str, Enum):
    ACCEPT = 'ACCEPT'
    REJECT = 'REJECT'
    NEGOTIATE = 'NEGOTIATE'


# Permitted status changes, keyed by current status
ORDER_STATUS_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({
        OrderStatus.CONFIRMED,
        OrderStatus.REJECTED,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.CONFIRMED: frozenset({
        OrderStatus.IN_PROGRESS,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.IN_PROGRESS: frozenset({
        OrderStatus.COMPLETED,
        OrderStatus.CANCELLED,
    }),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.REJECTED: frozenset(),
}

# Statuses with no outgoing transitions
TERMINAL_ORDER_STATUSES = frozenset(
    status for status, targets in ORDER_STATUS_TRANSITIONS.items() if not targets
)

# Statuses in which the owning student may still cancel
STUDENT_CANCELLABLE_STATUSES = frozenset({
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
})


def allowed_transitions(current: OrderStatus) -> FrozenSet[OrderStatus]:
    """Statuses reachable in one step from ``current``."""
    return ORDER_STATUS_TRANSITIONS.get(OrderStatus(current), frozenset())


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return OrderStatus(target) in allowed_transitions(current)


# Teacher response -> resulting status
TEACHER_RESPONSE_STATUS = {
    TeacherResponse.ACCEPT: OrderStatus.CONFIRMED,
    TeacherResponse.REJECT: OrderStatus.REJECTED,
    TeacherResponse.NEGOTIATE: OrderStatus.PENDING,
}

# History reasons
REASON_ORDER_CREATED = 'Order created'
REASON_CANCELLED_BY_STUDENT = 'Cancelled by student'
REASON_COUNTER_RATE = 'Teacher proposed a counter rate'

# Order field limits
SESSION_DURATION_DEFAULT = 60
SESSIONS_PER_WEEK_DEFAULT = 1
MESSAGE_MAX_LENGTH = 2000

# Pagination
DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100

# Tries per status change when the version check detects a concurrent writer
STATUS_CHANGE_ATTEMPTS = 2
