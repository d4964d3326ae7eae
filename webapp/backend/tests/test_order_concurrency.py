"""
Tests for concurrent writers on the same order.

A second session commits a change after the service has read the order but
before it commits. The version check must catch it: the late writer either
re-validates against the new status and applies cleanly, or fails, and the
history never holds two rows branching from the same previous status.
"""
import pytest
from decimal import Decimal

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from constants import STATUS_CHANGE_ATTEMPTS, can_transition
from models import Order, OrderHistory
from schemas import OrderStatusUpdate, OrderUpdate
from services import order_service
from services.order_errors import InvalidStateError, InvalidTransitionError
from services.order_service import (
    teacher_respond,
    update_order,
    update_order_status,
)


def _history(db, order_id):
    db.expire_all()
    return [
        (row.previous_status, row.new_status)
        for row in db.query(OrderHistory)
        .filter(OrderHistory.order_id == order_id)
        .order_by(OrderHistory.id)
    ]


@pytest.fixture
def commit_elsewhere(session_factory):
    """Return a function that changes the order from a second session and commits."""
    def _commit(order_id, changed_by, **fields):
        other = session_factory()
        try:
            order = other.get(Order, order_id)
            if "status" in fields:
                other.add(OrderHistory(
                    order_id=order_id,
                    previous_status=order.status,
                    new_status=fields["status"],
                    changed_by=changed_by,
                    change_reason="Changed by another request",
                ))
            for name, value in fields.items():
                setattr(order, name, value)
            other.commit()
        finally:
            other.close()
    return _commit


@pytest.fixture
def race(monkeypatch):
    """
    Run ``change`` while the service is between reading and committing.

    The hook sits on a service helper called after the order is loaded;
    ``times`` limits how many attempts are interfered with.
    """
    def _install(helper_name, real, change, times=1):
        remaining = {"count": times}

        def racing(*args, **kwargs):
            if remaining["count"]:
                remaining["count"] -= 1
                change()
            return real(*args, **kwargs)

        monkeypatch.setattr(order_service, helper_name, racing)
    return _install


# ============================================================================
# Status changes
# ============================================================================

class TestConcurrentStatusChange:
    """Version conflicts on status-changing operations."""

    def test_late_writer_revalidates_and_applies(
        self, db_session, pending_order, teacher, admin_user, race, commit_elsewhere
    ):
        race("can_transition", can_transition,
             lambda: commit_elsewhere(pending_order.id, teacher.user_id, status="CONFIRMED"))

        order = update_order_status(
            db_session, pending_order.id, admin_user.id, OrderStatusUpdate(status="CANCELLED")
        )

        assert order.status == "CANCELLED"
        assert _history(db_session, pending_order.id) == [
            (None, "PENDING"),
            ("PENDING", "CONFIRMED"),
            ("CONFIRMED", "CANCELLED"),
        ]

    def test_late_writer_fails_when_no_longer_allowed(
        self, db_session, pending_order, teacher, admin_user, race, commit_elsewhere
    ):
        race("can_transition", can_transition,
             lambda: commit_elsewhere(pending_order.id, teacher.user_id, status="CONFIRMED"))

        with pytest.raises(InvalidTransitionError, match="from CONFIRMED to REJECTED"):
            update_order_status(
                db_session, pending_order.id, admin_user.id,
                OrderStatusUpdate(status="REJECTED", admin_notes="Not a fit"),
            )

        order = db_session.get(Order, pending_order.id)
        assert order.status == "CONFIRMED"
        assert order.admin_notes is None
        assert _history(db_session, pending_order.id) == [
            (None, "PENDING"),
            ("PENDING", "CONFIRMED"),
        ]

    def test_accept_loses_to_student_cancel(
        self, db_session, pending_order, student, teacher, race, commit_elsewhere
    ):
        race("can_transition", can_transition,
             lambda: commit_elsewhere(pending_order.id, student.user_id, status="CANCELLED"))

        with pytest.raises(InvalidTransitionError):
            teacher_respond(db_session, pending_order.id, teacher.user_id, "ACCEPT")

        assert db_session.get(Order, pending_order.id).status == "CANCELLED"
        assert _history(db_session, pending_order.id) == [
            (None, "PENDING"),
            ("PENDING", "CANCELLED"),
        ]

    def test_gives_up_after_repeated_conflicts(
        self, db_session, pending_order, admin_user, race, commit_elsewhere
    ):
        notes = iter(f"edit {n}" for n in range(STATUS_CHANGE_ATTEMPTS))
        race("can_transition", can_transition,
             lambda: commit_elsewhere(pending_order.id, admin_user.id, admin_notes=next(notes)),
             times=STATUS_CHANGE_ATTEMPTS)

        with pytest.raises(InvalidTransitionError, match="modified concurrently; current status is PENDING"):
            update_order_status(
                db_session, pending_order.id, admin_user.id, OrderStatusUpdate(status="CONFIRMED")
            )

        assert _history(db_session, pending_order.id) == [(None, "PENDING")]


# ============================================================================
# Student edits
# ============================================================================

class TestConcurrentEdit:
    """Version conflicts on update_order."""

    def test_edit_fails_after_concurrent_confirm(
        self, db_session, pending_order, student, teacher, race, commit_elsewhere
    ):
        race("compute_total_amount", order_service.compute_total_amount,
             lambda: commit_elsewhere(pending_order.id, teacher.user_id, status="CONFIRMED"))

        with pytest.raises(InvalidStateError, match="modified concurrently"):
            update_order(db_session, pending_order.id, student.id, OrderUpdate(session_duration=90))

        order = db_session.get(Order, pending_order.id)
        assert order.status == "CONFIRMED"
        assert order.session_duration == 60
        assert order.total_amount == Decimal("500.00")
