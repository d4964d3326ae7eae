"""
Pytest fixtures for backend tests.

Usage:
    pytest tests/ --cov=. --cov-report=html
"""
import os
import sys
import pytest
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Generator

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

# Set test environment before importing app modules
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-testing-only")
os.environ.setdefault("DATABASE_URL", "sqlite://")
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from database import Base, get_db
from main import app
from auth.jwt_handler import create_access_token
from models import Order, Student, Teacher, User
from schemas import OrderCreate
from services.order_service import create_order
from utils.rate_limiter import clear_rate_limits


# In-memory SQLite for fast tests (no external DB dependency)
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"

test_engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """
    Create a fresh database session for each test.
    Tables are created before and dropped after each test.
    """
    Base.metadata.create_all(bind=test_engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def session_factory(db_session: Session) -> sessionmaker:
    """Factory for extra sessions on the same test database, e.g. a second writer."""
    return TestingSessionLocal


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """
    FastAPI test client with overridden database dependency.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def reset_rate_limits():
    clear_rate_limits()
    yield
    clear_rate_limits()


@pytest.fixture
def login(client: TestClient) -> Callable[[User], TestClient]:
    """Return a function that authenticates ``client`` as the given user."""
    def _login(user: User) -> TestClient:
        token = create_access_token({"sub": str(user.id), "email": user.email, "role": user.role})
        client.cookies.set("access_token", token)
        return client
    return _login


# ============================================================================
# Directory Fixtures
# ============================================================================

def _add_user(db: Session, email: str, role: str, full_name: str) -> User:
    user = User(email=email, role=role, full_name=full_name)
    db.add(user)
    db.flush()
    return user


def _add_student(db: Session, email: str, full_name: str, form_completed: bool = True) -> Student:
    user = _add_user(db, email, "STUDENT", full_name)
    student = Student(user_id=user.id, full_name=full_name, is_form_completed=form_completed)
    db.add(student)
    db.commit()
    return student


def _add_teacher(db: Session, email: str, full_name: str, approved: bool = True) -> Teacher:
    user = _add_user(db, email, "TEACHER", full_name)
    teacher = Teacher(
        user_id=user.id,
        full_name=full_name,
        is_approved=approved,
        profile_photo="https://example.com/photo.jpg",
    )
    db.add(teacher)
    db.commit()
    return teacher


@pytest.fixture
def student(db_session: Session) -> Student:
    """Student with a completed intake form."""
    return _add_student(db_session, "student@example.com", "Sam Student")


@pytest.fixture
def other_student(db_session: Session) -> Student:
    return _add_student(db_session, "other.student@example.com", "Olive Other")


@pytest.fixture
def incomplete_student(db_session: Session) -> Student:
    return _add_student(db_session, "new.student@example.com", "Nia New", form_completed=False)


@pytest.fixture
def teacher(db_session: Session) -> Teacher:
    """Approved teacher."""
    return _add_teacher(db_session, "teacher@example.com", "Tara Teacher")


@pytest.fixture
def other_teacher(db_session: Session) -> Teacher:
    return _add_teacher(db_session, "other.teacher@example.com", "Theo Other")


@pytest.fixture
def unapproved_teacher(db_session: Session) -> Teacher:
    return _add_teacher(db_session, "pending.teacher@example.com", "Pat Pending", approved=False)


@pytest.fixture
def admin_user(db_session: Session) -> User:
    user = _add_user(db_session, "admin@example.com", "ADMIN", "Ada Admin")
    db_session.commit()
    return user


# ============================================================================
# Order Fixtures
# ============================================================================

@pytest.fixture
def order_payload(teacher: Teacher) -> dict:
    """Valid online order: 10 x 60 min at 50/hour."""
    return {
        "teacher_id": teacher.id,
        "title": "Algebra tutoring",
        "description": "Help with quadratic equations",
        "subject": "Mathematics",
        "grade": "GRADE10",
        "curriculum": "IB_SYSTEM",
        "session_type": "ONLINE_SESSIONS",
        "preferred_time": "WEEKDAYS",
        "sessions_per_week": 2,
        "session_duration": 60,
        "total_sessions": 10,
        "proposed_rate": Decimal("50.00"),
        "preferred_start_date": datetime.now() + timedelta(days=7),
    }


@pytest.fixture
def pending_order(db_session: Session, student: Student, order_payload: dict) -> Order:
    """Order freshly created by ``student`` for ``teacher``."""
    return create_order(db_session, student.id, OrderCreate(**order_payload))
