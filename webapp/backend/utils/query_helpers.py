"""
Shared query helper functions.

Centralizes common SQLAlchemy loader options for order queries
to reduce duplication across the service and routers.
"""
from sqlalchemy.orm import joinedload, selectinload
from models import Order, Student, Teacher


def order_with_parties():
    """
    Standard joinedload options for order queries.

    Loads student and teacher profiles together with their user accounts,
    which is everything the response builders need.

    Usage:
        query.options(*order_with_parties())
    """
    return [
        joinedload(Order.student).joinedload(Student.user),
        joinedload(Order.teacher).joinedload(Teacher.user),
    ]


def order_with_thread():
    """
    Loader options for the order detail view.

    Parties plus the audit history and message thread (each collection in
    its own SELECT so the row count does not multiply).

    Usage:
        query.options(*order_with_thread())
    """
    return [
        *order_with_parties(),
        selectinload(Order.history),
        selectinload(Order.messages),
    ]
