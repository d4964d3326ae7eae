"""
Student/teacher directory lookups used by the order service.

These are the only questions the order lifecycle asks about accounts:
does the party exist, is it ready to trade, and is a user an admin.
"""
from pydantic import BaseModel, ConfigDict
from typing import Optional

from sqlalchemy.orm import Session

from constants import OrderActor, UserRole
from models import Order, Student, Teacher, User


class StudentLookup(BaseModel):
    exists: bool
    form_completed: bool = False
    user_id: Optional[int] = None

    model_config = ConfigDict(frozen=True)


class TeacherLookup(BaseModel):
    exists: bool
    approved: bool = False
    user_id: Optional[int] = None

    model_config = ConfigDict(frozen=True)


def find_student(db: Session, student_id: int) -> StudentLookup:
    student = db.query(Student).filter(Student.id == student_id).first()
    if not student:
        return StudentLookup(exists=False)
    return StudentLookup(
        exists=True,
        form_completed=bool(student.is_form_completed),
        user_id=student.user_id,
    )


def find_teacher(db: Session, teacher_id: int) -> TeacherLookup:
    teacher = db.query(Teacher).filter(Teacher.id == teacher_id).first()
    if not teacher:
        return TeacherLookup(exists=False)
    return TeacherLookup(
        exists=True,
        approved=bool(teacher.is_approved),
        user_id=teacher.user_id,
    )


def is_admin(db: Session, user_id: int) -> bool:
    role = db.query(User.role).filter(User.id == user_id).scalar()
    return role == UserRole.ADMIN.value


def get_student_by_user_id(db: Session, user_id: int) -> Optional[Student]:
    return db.query(Student).filter(Student.user_id == user_id).first()


def get_teacher_by_user_id(db: Session, user_id: int) -> Optional[Teacher]:
    return db.query(Teacher).filter(Teacher.user_id == user_id).first()


def resolve_order_actor(db: Session, order: Order, user_id: int) -> Optional[OrderActor]:
    """
    Work out how ``user_id`` relates to ``order``.

    Party membership wins over admin privilege, so an admin who is also the
    order's student posts as STUDENT. Returns None for outsiders.

    Args:
        db: Database session
        order: Order with student and teacher relationships loadable
        user_id: The acting user's id

    Returns:
        OrderActor or None
    """
    if order.student is not None and order.student.user_id == user_id:
        return OrderActor.STUDENT
    if order.teacher is not None and order.teacher.user_id == user_id:
        return OrderActor.TEACHER
    if is_admin(db, user_id):
        return OrderActor.ADMIN
    return None
