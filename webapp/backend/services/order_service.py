"""
Order lifecycle service.

Owns order creation, student edits, cancellation, status transitions and
the message thread. Every function takes the caller's SQLAlchemy session,
validates before it writes, and raises a typed OrderError on any business
rule failure. A status change and its OrderHistory row are committed in the
same transaction.

Usage:
    from services.order_service import create_order, update_order_status
    order = create_order(db, student.id, payload)
"""
import logging
from contextlib import contextmanager
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from constants import (
    OrderActor,
    OrderStatus,
    SessionType,
    TeacherResponse,
    STUDENT_CANCELLABLE_STATUSES,
    TEACHER_RESPONSE_STATUS,
    REASON_CANCELLED_BY_STUDENT,
    REASON_COUNTER_RATE,
    REASON_ORDER_CREATED,
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    MESSAGE_MAX_LENGTH,
    STATUS_CHANGE_ATTEMPTS,
    can_transition,
)
from models import Order, OrderHistory, OrderMessage
from schemas import OrderCreate, OrderFilter, OrderStatusUpdate, OrderUpdate, PaginationInfo
from services.directory import find_student, find_teacher, is_admin, resolve_order_actor
from services.order_errors import (
    ForbiddenError,
    InternalError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    OrderError,
    OrderValidationError,
    PreconditionFailedError,
)
from utils.html_sanitizer import sanitize_order_message, strip_html_tags
from utils.query_helpers import order_with_parties, order_with_thread
from utils.response_builders import build_pagination

logger = logging.getLogger(__name__)

_CENTS = Decimal("0.01")

# Fields a status payload may carry alongside the new status
_STATUS_PAYLOAD_FIELDS = (
    "teacher_notes",
    "admin_notes",
    "agreed_rate",
    "actual_start_date",
    "estimated_end_date",
)

_AMOUNT_INPUTS = ("proposed_rate", "total_sessions", "session_duration")

_RESPONSE_REASONS = {
    TeacherResponse.ACCEPT: "Teacher accepted the order",
    TeacherResponse.REJECT: "Teacher rejected the order",
    TeacherResponse.NEGOTIATE: REASON_COUNTER_RATE,
}


class OrderScope(BaseModel):
    """Which orders a listing may see: one student's, one teacher's, or all."""
    student_id: Optional[int] = None
    teacher_id: Optional[int] = None

    @classmethod
    def for_student(cls, student_id: int) -> "OrderScope":
        return cls(student_id=student_id)

    @classmethod
    def for_teacher(cls, teacher_id: int) -> "OrderScope":
        return cls(teacher_id=teacher_id)

    @classmethod
    def everything(cls) -> "OrderScope":
        return cls()


# ============================================================================
# Pure helpers
# ============================================================================

def compute_total_amount(
    rate: Optional[Decimal],
    total_sessions: Optional[int],
    session_duration: Optional[int],
) -> Optional[Decimal]:
    """
    Total price of an order: hourly rate x hours per session x sessions.

    Returns None unless all three inputs are present.

    Examples:
        compute_total_amount(Decimal("50"), 10, 60) -> Decimal("500.00")
        compute_total_amount(Decimal("50"), 10, 90) -> Decimal("750.00")
    """
    if rate is None or total_sessions is None or session_duration is None:
        return None
    hours = Decimal(session_duration) / Decimal(60)
    amount = Decimal(str(rate)) * hours * Decimal(total_sessions)
    return amount.quantize(_CENTS, rounding=ROUND_HALF_UP)


@contextmanager
def _transaction(db: Session, failure_message: str):
    """
    Roll back on any failure; storage errors become InternalError.

    OrderErrors pass through unchanged so callers see the business reason.
    """
    try:
        yield
    except OrderError:
        db.rollback()
        raise
    except SQLAlchemyError:
        db.rollback()
        logger.exception(failure_message)
        raise InternalError(failure_message)


def _get_order(db: Session, order_id: int, *options) -> Order:
    order = (
        db.query(Order)
        .options(*options)
        .populate_existing()
        .filter(Order.id == order_id)
        .first()
    )
    if not order:
        raise NotFoundError("Order not found")
    return order


def _lock_order(db: Session, order_id: int) -> Order:
    """
    Re-read the order row under a write lock.

    populate_existing() refreshes an instance already in the identity map,
    so the status checked below is the one committed in the database.
    """
    order = (
        db.query(Order)
        .filter(Order.id == order_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if not order:
        raise NotFoundError("Order not found")
    return order


def _reload(db: Session, order_id: int) -> Order:
    return (
        db.query(Order)
        .options(*order_with_thread())
        .populate_existing()
        .filter(Order.id == order_id)
        .one()
    )


def _change_status(
    db: Session,
    order_id: int,
    target: OrderStatus,
    changed_by: int,
    reason: Optional[str],
    prepare: Callable[[Order], None],
) -> None:
    """
    Lock the order, validate and stage the change, then commit the new
    status together with its history row.

    ``prepare`` checks permissions and the transition against the locked
    row (raising an OrderError) and sets any extra fields. When the version
    check fails at commit, another writer changed the order after it was
    read: the change is rolled back, validated again against the fresh row
    and re-applied if it is still allowed.
    """
    for _ in range(STATUS_CHANGE_ATTEMPTS):
        order = _lock_order(db, order_id)
        prepare(order)

        previous = order.status
        order.status = target.value
        db.add(OrderHistory(
            order_id=order_id,
            previous_status=previous,
            new_status=target.value,
            changed_by=changed_by,
            change_reason=reason,
        ))
        try:
            db.commit()
        except StaleDataError:
            db.rollback()
            logger.warning(
                "Order %s changed concurrently while moving to %s, re-validating",
                order_id, target.value,
            )
            continue

        logger.info(
            "Order %s status %s -> %s by user %s", order_id, previous, target.value, changed_by
        )
        return

    current = db.query(Order.status).filter(Order.id == order_id).scalar()
    raise InvalidTransitionError(
        f"Order was modified concurrently; current status is {current}"
    )


# ============================================================================
# Operations
# ============================================================================

def create_order(db: Session, student_id: int, payload: OrderCreate) -> Order:
    """
    Create a PENDING order for a student with a teacher.

    The student must exist and have completed the intake form; the teacher
    must exist and be approved. The creation history row is written in the
    same transaction.

    Raises:
        NotFoundError, PreconditionFailedError, InternalError
    """
    with _transaction(db, "Failed to create order"):
        student = find_student(db, student_id)
        if not student.exists:
            raise NotFoundError("Student not found")
        if not student.form_completed:
            raise PreconditionFailedError(
                "Please complete your profile form before creating orders"
            )

        teacher = find_teacher(db, payload.teacher_id)
        if not teacher.exists:
            raise NotFoundError("Teacher not found")
        if not teacher.approved:
            raise PreconditionFailedError("Selected teacher is not approved yet")

        fields = payload.model_dump(exclude={"teacher_id"})
        order = Order(
            student_id=student_id,
            teacher_id=payload.teacher_id,
            status=OrderStatus.PENDING.value,
            total_amount=compute_total_amount(
                payload.proposed_rate, payload.total_sessions, payload.session_duration
            ),
            **fields,
        )
        db.add(order)
        db.flush()

        db.add(OrderHistory(
            order_id=order.id,
            previous_status=None,
            new_status=OrderStatus.PENDING.value,
            changed_by=student.user_id,
            change_reason=REASON_ORDER_CREATED,
        ))
        db.commit()

        logger.info(
            "Order %s created by student %s for teacher %s",
            order.id, student_id, payload.teacher_id,
        )
        return _reload(db, order.id)


def get_order_by_id(db: Session, order_id: int, requesting_user_id: int) -> Order:
    """
    Fetch an order with its history and messages.

    NotFound is reported before any permission check. Only the order's
    student, its teacher, or an admin may read it.
    """
    with _transaction(db, "Failed to get order"):
        order = _get_order(db, order_id, *order_with_thread())
        if resolve_order_actor(db, order, requesting_user_id) is None:
            raise ForbiddenError("Access denied")
        return order


def list_orders(
    db: Session,
    filters: Optional[OrderFilter],
    scope: OrderScope,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> Tuple[List[Order], PaginationInfo]:
    """
    One page of orders visible in ``scope``, newest first.

    Args:
        db: Database session
        filters: Optional conjunctive filters
        scope: Student, teacher or all-orders scope
        page: 1-indexed page number (values below 1 read as 1)
        page_size: Clamped to [1, MAX_PAGE_SIZE]

    Returns:
        (orders, pagination)
    """
    page = max(page, 1)
    page_size = min(max(page_size, 1), MAX_PAGE_SIZE)
    filters = filters or OrderFilter()

    with _transaction(db, "Failed to get orders"):
        query = db.query(Order)

        if scope.student_id is not None:
            query = query.filter(Order.student_id == scope.student_id)
        if scope.teacher_id is not None:
            query = query.filter(Order.teacher_id == scope.teacher_id)

        if filters.status:
            query = query.filter(Order.status == filters.status)
        if filters.priority:
            query = query.filter(Order.priority == filters.priority)
        if filters.grade:
            query = query.filter(Order.grade == filters.grade)
        if filters.curriculum:
            query = query.filter(Order.curriculum == filters.curriculum)
        if filters.session_type:
            query = query.filter(Order.session_type == filters.session_type)
        if filters.subject:
            query = query.filter(
                func.lower(Order.subject).contains(filters.subject.lower(), autoescape=True)
            )
        if filters.created_from:
            query = query.filter(Order.created_at >= filters.created_from)
        if filters.created_to:
            query = query.filter(Order.created_at <= filters.created_to)
        if filters.min_rate is not None:
            query = query.filter(Order.proposed_rate >= filters.min_rate)
        if filters.max_rate is not None:
            query = query.filter(Order.proposed_rate <= filters.max_rate)

        total = query.order_by(None).count()
        orders = (
            query.options(*order_with_parties())
            .order_by(Order.created_at.desc(), Order.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )

    return orders, build_pagination(page, page_size, total)


def update_order(db: Session, order_id: int, student_id: int, patch: OrderUpdate) -> Order:
    """
    Apply a student's edits to their own PENDING order.

    total_amount is recomputed from the merged values whenever the patch
    touches the rate, session count or duration, and only if all three are
    then known. No history row is written: the status does not change.
    """
    with _transaction(db, "Failed to update order"):
        order = _lock_order(db, order_id)
        if order.student_id != student_id:
            raise ForbiddenError("Access denied")
        if order.status != OrderStatus.PENDING.value:
            raise InvalidStateError("Order can only be updated when status is PENDING")

        changes: Dict[str, Any] = patch.model_dump(exclude_unset=True)
        merged = {
            name: changes.get(name, getattr(order, name))
            for name in ("session_type", "location", "address", *_AMOUNT_INPUTS)
        }

        if merged["session_type"] == SessionType.OFFLINE.value:
            missing = [
                f"{name.capitalize()} is required for offline sessions"
                for name in ("location", "address")
                if not merged[name]
            ]
            if missing:
                raise OrderValidationError("Validation failed", missing)

        for name, value in changes.items():
            setattr(order, name, value)

        if any(name in changes for name in _AMOUNT_INPUTS):
            amount = compute_total_amount(
                merged["proposed_rate"], merged["total_sessions"], merged["session_duration"]
            )
            if amount is not None:
                order.total_amount = amount

        try:
            db.commit()
        except StaleDataError:
            db.rollback()
            raise InvalidStateError("Order was modified concurrently, please retry")
        logger.info("Order %s updated by student %s: %s", order_id, student_id, sorted(changes))
        return _reload(db, order_id)


def update_order_status(
    db: Session,
    order_id: int,
    acting_user_id: int,
    status_patch: OrderStatusUpdate,
) -> Order:
    """
    Move an order to a new status on behalf of its teacher or an admin.

    The target must be reachable per ORDER_STATUS_TRANSITIONS. Provided
    notes/rate/date fields are written with the status; total_amount is
    left alone.

    Raises:
        NotFoundError, ForbiddenError, InvalidTransitionError, InternalError
    """
    target = OrderStatus(status_patch.status)

    def prepare(order: Order) -> None:
        is_teacher = order.teacher is not None and order.teacher.user_id == acting_user_id
        if not is_teacher and not is_admin(db, acting_user_id):
            raise ForbiddenError("Access denied")

        if not can_transition(order.status, target):
            raise InvalidTransitionError(
                f"Cannot change status from {order.status} to {target.value}"
            )

        for name in _STATUS_PAYLOAD_FIELDS:
            value = getattr(status_patch, name)
            if value is not None:
                setattr(order, name, value)

    with _transaction(db, "Failed to update order status"):
        _change_status(
            db, order_id, target, acting_user_id, status_patch.change_reason, prepare
        )
        return _reload(db, order_id)


def teacher_respond(
    db: Session,
    order_id: int,
    teacher_user_id: int,
    response: TeacherResponse,
    message: Optional[str] = None,
    counter_rate: Optional[Decimal] = None,
    available_start_date=None,
) -> Order:
    """
    Assigned teacher accepts, rejects or counters a PENDING order.

    ACCEPT -> CONFIRMED (available_start_date becomes actual_start_date),
    REJECT -> REJECTED, NEGOTIATE keeps PENDING and records counter_rate as
    agreed_rate. A supplied message is saved as teacher_notes and, after the
    status commit, posted to the thread. Posting is fire-and-forget: a
    failure is logged and does not undo or fail the response.
    """
    response = TeacherResponse(response)
    if response == TeacherResponse.NEGOTIATE and counter_rate is None:
        raise OrderValidationError(
            "Validation failed", ["Counter rate is required when negotiating"]
        )

    target = TEACHER_RESPONSE_STATUS[response]

    def prepare(order: Order) -> None:
        if order.teacher is None or order.teacher.user_id != teacher_user_id:
            raise ForbiddenError("Only the assigned teacher can respond to this order")

        if response == TeacherResponse.NEGOTIATE:
            # Counter offers keep the order PENDING; only valid while it still is
            if order.status != OrderStatus.PENDING.value:
                raise InvalidTransitionError(
                    f"Cannot negotiate an order in status {order.status}"
                )
            order.agreed_rate = counter_rate
        elif not can_transition(order.status, target):
            raise InvalidTransitionError(
                f"Cannot change status from {order.status} to {target.value}"
            )

        if response == TeacherResponse.ACCEPT and available_start_date is not None:
            order.actual_start_date = available_start_date
        if message:
            order.teacher_notes = message

    with _transaction(db, "Failed to respond to order"):
        _change_status(
            db, order_id, target, teacher_user_id, _RESPONSE_REASONS[response], prepare
        )

    if message:
        try:
            add_order_message(db, order_id, teacher_user_id, message)
        except OrderError as exc:
            logger.warning(
                "Order %s: teacher response saved but message %r was not posted: %s",
                order_id, strip_html_tags(message)[:80], exc.message,
            )

    return _reload(db, order_id)


def cancel_order(
    db: Session,
    order_id: int,
    student_id: int,
    reason: Optional[str] = None,
) -> Order:
    """
    Owning student cancels a PENDING or CONFIRMED order.
    """
    def prepare(order: Order) -> None:
        if order.student_id != student_id:
            raise ForbiddenError("Access denied")
        if OrderStatus(order.status) not in STUDENT_CANCELLABLE_STATUSES:
            raise InvalidStateError("Order cannot be cancelled in current status")

    with _transaction(db, "Failed to cancel order"):
        _change_status(
            db,
            order_id,
            OrderStatus.CANCELLED,
            find_student(db, student_id).user_id,
            reason or REASON_CANCELLED_BY_STUDENT,
            prepare,
        )
        return _reload(db, order_id)


def add_order_message(
    db: Session,
    order_id: int,
    sender_id: int,
    message: str,
    attachments: Optional[List[str]] = None,
) -> OrderMessage:
    """
    Post to an order's thread as its student, its teacher, or an admin.

    sender_role is derived from the sender's relationship to the order and
    is never taken from the caller.
    """
    with _transaction(db, "Failed to add message"):
        order = _get_order(db, order_id, *order_with_parties())
        actor: Optional[OrderActor] = resolve_order_actor(db, order, sender_id)
        if actor is None:
            raise ForbiddenError("Access denied")

        # The limit applies to what the sender typed, not the escaped result
        if len(message or "") > MESSAGE_MAX_LENGTH:
            raise OrderValidationError(
                "Validation failed",
                [f"Message cannot exceed {MESSAGE_MAX_LENGTH} characters"],
            )
        body = sanitize_order_message(message or "")
        if not body:
            raise OrderValidationError("Validation failed", ["Message cannot be empty"])

        order_message = OrderMessage(
            order_id=order.id,
            sender_id=sender_id,
            sender_role=actor.value,
            message=body,
            attachments=list(attachments) if attachments else None,
        )
        db.add(order_message)
        db.commit()
        db.refresh(order_message)
        return order_message
