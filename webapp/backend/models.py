"""
SQLAlchemy models for the tutoring orders database.
Users/students/teachers back the directory; orders carry the lifecycle.
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey, DECIMAL, Boolean, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from database import Base


class User(Base):
    """
    Account table.
    Role decides which side of an order the user can act on.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), nullable=False, unique=True)
    full_name = Column(String(255))
    role = Column(String(20), nullable=False, comment='STUDENT, TEACHER or ADMIN')
    created_at = Column(DateTime, default=func.now())

    # Relationships
    student = relationship("Student", back_populates="user", uselist=False)
    teacher = relationship("Teacher", back_populates="user", uselist=False)


class Student(Base):
    """
    Student profile.
    Orders can only be placed once the intake form is completed.
    """
    __tablename__ = "students"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    full_name = Column(String(255), nullable=False)
    is_form_completed = Column(Boolean, nullable=False, default=False)

    # Relationships
    user = relationship("User", back_populates="student")
    orders = relationship("Order", back_populates="student")


class Teacher(Base):
    """
    Teacher profile.
    Only approved teachers can receive orders.
    """
    __tablename__ = "teachers"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    full_name = Column(String(255), nullable=False)
    profile_photo = Column(String(500))
    is_approved = Column(Boolean, nullable=False, default=False)

    # Relationships
    user = relationship("User", back_populates="teacher")
    orders = relationship("Order", back_populates="teacher")


class Order(Base):
    """
    A student's request to a teacher for tutoring sessions.
    Status only moves along ORDER_STATUS_TRANSITIONS; every move is logged to order_history.
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False, index=True)
    teacher_id = Column(Integer, ForeignKey("teachers.id"), nullable=False, index=True)

    # Request details
    title = Column(String(200), nullable=False)
    description = Column(Text)
    subject = Column(String(100), nullable=False)
    grade = Column(String(20), nullable=False)
    curriculum = Column(String(30), nullable=False)
    session_type = Column(String(30), nullable=False)
    preferred_time = Column(String(20), nullable=False)
    sessions_per_week = Column(Integer, nullable=False, default=1)
    session_duration = Column(Integer, nullable=False, default=60, comment='Minutes per session')
    total_sessions = Column(Integer)
    location = Column(String(100))
    address = Column(String(500))

    # Commercial
    proposed_rate = Column(DECIMAL(10, 2), comment='Hourly rate offered by the student')
    agreed_rate = Column(DECIMAL(10, 2), comment='Hourly rate proposed/agreed by the teacher')
    total_amount = Column(DECIMAL(12, 2), comment='proposed_rate x hours x total_sessions, NULL if any input missing')

    # Lifecycle
    status = Column(String(20), nullable=False, default='PENDING', index=True)
    priority = Column(String(10), nullable=False, default='MEDIUM')

    # Notes
    requirements = Column(Text)
    special_needs = Column(Text)
    student_notes = Column(Text)
    teacher_notes = Column(Text)
    admin_notes = Column(Text)

    # Dates
    preferred_start_date = Column(DateTime)
    actual_start_date = Column(DateTime)
    estimated_end_date = Column(DateTime)

    # Metadata
    created_at = Column(DateTime, default=func.now(), index=True)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    student = relationship("Student", back_populates="orders")
    teacher = relationship("Teacher", back_populates="orders")
    history = relationship(
        "OrderHistory",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by=lambda: [OrderHistory.created_at.desc(), OrderHistory.id.desc()],
    )
    messages = relationship(
        "OrderMessage",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by=lambda: [OrderMessage.created_at.asc(), OrderMessage.id.asc()],
    )


class OrderHistory(Base):
    """
    Append-only audit log of order status changes.
    previous_status is NULL only for the creation entry.
    """
    __tablename__ = "order_history"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    previous_status = Column(String(20))
    new_status = Column(String(20), nullable=False)
    changed_by = Column(Integer, nullable=False, comment='User id of the actor')
    change_reason = Column(String(500))
    created_at = Column(DateTime, default=func.now())

    order = relationship("Order", back_populates="history")


class OrderMessage(Base):
    """
    Message thread attached to an order.
    sender_role is derived from the sender's relationship to the order.
    """
    __tablename__ = "order_messages"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    sender_id = Column(Integer, nullable=False)
    sender_role = Column(String(10), nullable=False)
    message = Column(Text, nullable=False)
    attachments = Column(JSON, comment='List of file references')
    created_at = Column(DateTime, default=func.now())

    order = relationship("Order", back_populates="messages")
