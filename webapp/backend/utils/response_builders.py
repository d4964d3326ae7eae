"""
Shared response builder functions.

Centralizes the common patterns for building API response objects
from SQLAlchemy models with loaded relationships.
"""
from math import ceil

from models import Order
from schemas import (
    OrderDetailResponse,
    OrderHistoryResponse,
    OrderMessageResponse,
    OrderResponse,
    PaginationInfo,
)


def build_order_response(order: Order) -> OrderResponse:
    """
    Build an OrderResponse from an Order with student/teacher data.

    Args:
        order: Order with student, teacher and their users loaded

    Returns:
        OrderResponse with the party display fields populated
    """
    data = OrderResponse.model_validate(order)
    student = order.student
    teacher = order.teacher
    data.student_name = student.full_name if student else None
    data.student_email = student.user.email if student and student.user else None
    data.teacher_name = teacher.full_name if teacher else None
    data.teacher_email = teacher.user.email if teacher and teacher.user else None
    data.teacher_profile_photo = teacher.profile_photo if teacher else None
    return data


def build_order_detail_response(order: Order) -> OrderDetailResponse:
    """
    Build an OrderDetailResponse, adding history (newest first) and
    messages (oldest first) in relationship order.
    """
    base = build_order_response(order)
    return OrderDetailResponse(
        **base.model_dump(),
        history=[OrderHistoryResponse.model_validate(h) for h in order.history],
        messages=[OrderMessageResponse.model_validate(m) for m in order.messages],
    )


def build_pagination(page: int, page_size: int, total: int) -> PaginationInfo:
    """Pagination block for list envelopes. Pages are 1-indexed."""
    total_pages = ceil(total / page_size) if page_size else 0
    return PaginationInfo(
        current_page=page,
        total_pages=total_pages,
        total_items=total,
        items_per_page=page_size,
        has_next_page=page < total_pages,
        has_prev_page=page > 1,
    )
