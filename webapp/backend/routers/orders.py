"""
Orders API endpoints.

Students place, edit and cancel orders; the assigned teacher responds and
moves the order along; admins can see and move everything. All business
rules live in services.order_service; this module binds them to HTTP,
resolves the caller's profile and wraps results in the response envelope.
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from auth.dependencies import get_current_user, require_admin, require_role
from constants import (
    Curriculum,
    Grade,
    OrderPriority,
    OrderStatus,
    SessionType,
    TeacherResponse,
    UserRole,
    DEFAULT_PAGE_SIZE,
)
from database import get_db
from models import Student, Teacher, User
from schemas import (
    OrderCancel,
    OrderCreate,
    OrderDetailEnvelope,
    OrderEnvelope,
    OrderFilter,
    OrderListEnvelope,
    OrderMessageCreate,
    OrderMessageEnvelope,
    OrderMessageResponse,
    OrderStatusUpdate,
    OrderUpdate,
    TeacherOrderResponse,
)
from services.directory import get_student_by_user_id, get_teacher_by_user_id
from services import order_service
from services.order_service import OrderScope
from utils.rate_limiter import check_user_rate_limit
from utils.response_builders import build_order_detail_response, build_order_response

router = APIRouter()

_RESPONSE_MESSAGES = {
    TeacherResponse.ACCEPT: "Order accepted successfully",
    TeacherResponse.REJECT: "Order rejected successfully",
    TeacherResponse.NEGOTIATE: "Counter offer sent successfully",
}


def get_current_student(
    current_user: User = Depends(require_role(UserRole.STUDENT)),
    db: Session = Depends(get_db),
) -> Student:
    """Student profile of the authenticated user."""
    student = get_student_by_user_id(db, current_user.id)
    if not student:
        raise HTTPException(status_code=404, detail="Student profile not found")
    return student


def get_current_teacher(
    current_user: User = Depends(require_role(UserRole.TEACHER)),
    db: Session = Depends(get_db),
) -> Teacher:
    """Teacher profile of the authenticated user."""
    teacher = get_teacher_by_user_id(db, current_user.id)
    if not teacher:
        raise HTTPException(status_code=404, detail="Teacher profile not found")
    return teacher


def order_filters(
    status: Optional[OrderStatus] = Query(None),
    priority: Optional[OrderPriority] = Query(None),
    grade: Optional[Grade] = Query(None),
    curriculum: Optional[Curriculum] = Query(None),
    session_type: Optional[SessionType] = Query(None),
    subject: Optional[str] = Query(None, max_length=100),
    created_from: Optional[datetime] = Query(None),
    created_to: Optional[datetime] = Query(None),
    min_rate: Optional[Decimal] = Query(None, gt=0),
    max_rate: Optional[Decimal] = Query(None, gt=0),
) -> OrderFilter:
    """Listing filters from the query string."""
    return OrderFilter(
        status=status,
        priority=priority,
        grade=grade,
        curriculum=curriculum,
        session_type=session_type,
        subject=subject,
        created_from=created_from,
        created_to=created_to,
        min_rate=min_rate,
        max_rate=max_rate,
    )


def _list_envelope(db: Session, filters: OrderFilter, scope: OrderScope, page: int, limit: int):
    orders, pagination = order_service.list_orders(db, filters, scope, page, limit)
    return OrderListEnvelope(
        success=True,
        message="Orders retrieved successfully",
        data=[build_order_response(o) for o in orders],
        pagination=pagination,
    )


# ============================================
# Listings (declared before /orders/{order_id})
# ============================================

@router.get("/orders/student", response_model=OrderListEnvelope)
async def list_student_orders(
    page: int = Query(1),
    limit: int = Query(DEFAULT_PAGE_SIZE),
    filters: OrderFilter = Depends(order_filters),
    student: Student = Depends(get_current_student),
    db: Session = Depends(get_db),
):
    """Orders placed by the authenticated student, newest first."""
    return _list_envelope(db, filters, OrderScope.for_student(student.id), page, limit)


@router.get("/orders/teacher", response_model=OrderListEnvelope)
async def list_teacher_orders(
    page: int = Query(1),
    limit: int = Query(DEFAULT_PAGE_SIZE),
    filters: OrderFilter = Depends(order_filters),
    teacher: Teacher = Depends(get_current_teacher),
    db: Session = Depends(get_db),
):
    """Orders addressed to the authenticated teacher, newest first."""
    return _list_envelope(db, filters, OrderScope.for_teacher(teacher.id), page, limit)


@router.get("/orders/admin/all", response_model=OrderListEnvelope)
async def list_all_orders(
    page: int = Query(1),
    limit: int = Query(DEFAULT_PAGE_SIZE),
    filters: OrderFilter = Depends(order_filters),
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Every order on the platform. Admin only."""
    return _list_envelope(db, filters, OrderScope.everything(), page, limit)


# ============================================
# Single order
# ============================================

@router.post("/orders", response_model=OrderEnvelope, status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: OrderCreate,
    student: Student = Depends(get_current_student),
    db: Session = Depends(get_db),
):
    """Place a new order with an approved teacher."""
    check_user_rate_limit(student.user_id, "order_create")
    order = order_service.create_order(db, student.id, payload)
    return OrderEnvelope(
        success=True,
        message="Order created successfully",
        data=build_order_response(order),
    )


@router.get("/orders/{order_id}", response_model=OrderDetailEnvelope)
async def get_order(
    order_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Order with its history and message thread."""
    order = order_service.get_order_by_id(db, order_id, current_user.id)
    return OrderDetailEnvelope(
        success=True,
        message="Order retrieved successfully",
        data=build_order_detail_response(order),
    )


@router.put("/orders/{order_id}", response_model=OrderEnvelope)
async def update_order(
    order_id: int,
    patch: OrderUpdate,
    student: Student = Depends(get_current_student),
    db: Session = Depends(get_db),
):
    """Edit a PENDING order. Owning student only."""
    check_user_rate_limit(student.user_id, "order_update")
    order = order_service.update_order(db, order_id, student.id, patch)
    return OrderEnvelope(
        success=True,
        message="Order updated successfully",
        data=build_order_response(order),
    )


@router.put("/orders/{order_id}/status", response_model=OrderEnvelope)
async def update_order_status(
    order_id: int,
    status_patch: OrderStatusUpdate,
    current_user: User = Depends(require_role(UserRole.TEACHER, UserRole.ADMIN)),
    db: Session = Depends(get_db),
):
    """Move an order to a new status. Assigned teacher or admin."""
    check_user_rate_limit(current_user.id, "order_status_update")
    order = order_service.update_order_status(db, order_id, current_user.id, status_patch)
    return OrderEnvelope(
        success=True,
        message="Order status updated successfully",
        data=build_order_response(order),
    )


@router.post("/orders/{order_id}/respond", response_model=OrderEnvelope)
async def respond_to_order(
    order_id: int,
    payload: TeacherOrderResponse,
    teacher: Teacher = Depends(get_current_teacher),
    db: Session = Depends(get_db),
):
    """Accept, reject or counter an order. Assigned teacher only."""
    check_user_rate_limit(teacher.user_id, "order_respond")
    order = order_service.teacher_respond(
        db,
        order_id,
        teacher.user_id,
        payload.response,
        message=payload.message,
        counter_rate=payload.counter_rate,
        available_start_date=payload.available_start_date,
    )
    return OrderEnvelope(
        success=True,
        message=_RESPONSE_MESSAGES[TeacherResponse(payload.response)],
        data=build_order_response(order),
    )


@router.post("/orders/{order_id}/cancel", response_model=OrderEnvelope)
async def cancel_order(
    order_id: int,
    payload: Optional[OrderCancel] = None,
    student: Student = Depends(get_current_student),
    db: Session = Depends(get_db),
):
    """Cancel a PENDING or CONFIRMED order. Owning student only."""
    check_user_rate_limit(student.user_id, "order_cancel")
    reason = payload.reason if payload else None
    order = order_service.cancel_order(db, order_id, student.id, reason)
    return OrderEnvelope(
        success=True,
        message="Order cancelled successfully",
        data=build_order_response(order),
    )


@router.post(
    "/orders/{order_id}/messages",
    response_model=OrderMessageEnvelope,
    status_code=status.HTTP_201_CREATED,
)
async def add_order_message(
    order_id: int,
    payload: OrderMessageCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Post to the order's message thread."""
    check_user_rate_limit(current_user.id, "order_message_create")
    order_message = order_service.add_order_message(
        db, order_id, current_user.id, payload.message, payload.attachments
    )
    return OrderMessageEnvelope(
        success=True,
        message="Message added successfully",
        data=OrderMessageResponse.model_validate(order_message),
    )
