"""
Pydantic schemas for API request/response validation.
These define the structure of data sent to and from the API.
"""
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Optional, List
from datetime import datetime, timezone
from decimal import Decimal

from constants import (
    Curriculum,
    Grade,
    OrderPriority,
    OrderStatus,
    PreferredTime,
    SessionType,
    TeacherResponse,
    MESSAGE_MAX_LENGTH,
    SESSION_DURATION_DEFAULT,
    SESSIONS_PER_WEEK_DEFAULT,
)


def _reject_past(value: Optional[datetime], label: str) -> Optional[datetime]:
    """Dates chosen by a user must not lie in the past."""
    if value is None:
        return value
    now = datetime.now(timezone.utc) if value.tzinfo else datetime.now()
    if value < now:
        raise ValueError(f"{label} cannot be in the past")
    return value


# ============================================
# Order Request Schemas
# ============================================

class OrderCreate(BaseModel):
    """Student places an order with a teacher"""
    teacher_id: int = Field(..., gt=0)
    title: str = Field(..., min_length=5, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    subject: str = Field(..., min_length=2, max_length=100)
    grade: Grade
    curriculum: Curriculum
    session_type: SessionType
    preferred_time: PreferredTime
    sessions_per_week: int = Field(SESSIONS_PER_WEEK_DEFAULT, ge=1, le=7)
    session_duration: int = Field(SESSION_DURATION_DEFAULT, ge=30, le=180)
    total_sessions: Optional[int] = Field(None, ge=1)
    location: Optional[str] = Field(None, max_length=100)
    address: Optional[str] = Field(None, max_length=500)
    proposed_rate: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)
    priority: OrderPriority = OrderPriority.MEDIUM.value
    preferred_start_date: Optional[datetime] = None
    requirements: Optional[str] = Field(None, max_length=1000)
    special_needs: Optional[str] = Field(None, max_length=500)
    student_notes: Optional[str] = Field(None, max_length=1000)

    model_config = ConfigDict(use_enum_values=True)

    @field_validator("preferred_start_date")
    @classmethod
    def start_date_not_in_past(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _reject_past(v, "Preferred start date")

    @model_validator(mode="after")
    def offline_needs_location(self) -> "OrderCreate":
        if self.session_type == SessionType.OFFLINE.value:
            if not self.location:
                raise ValueError("Location is required for offline sessions")
            if not self.address:
                raise ValueError("Address is required for offline sessions")
        return self


class OrderUpdate(BaseModel):
    """Partial update by the owning student while the order is PENDING"""
    title: Optional[str] = Field(None, min_length=5, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    subject: Optional[str] = Field(None, min_length=2, max_length=100)
    grade: Optional[Grade] = None
    curriculum: Optional[Curriculum] = None
    session_type: Optional[SessionType] = None
    preferred_time: Optional[PreferredTime] = None
    sessions_per_week: Optional[int] = Field(None, ge=1, le=7)
    session_duration: Optional[int] = Field(None, ge=30, le=180)
    total_sessions: Optional[int] = Field(None, ge=1)
    location: Optional[str] = Field(None, max_length=100)
    address: Optional[str] = Field(None, max_length=500)
    proposed_rate: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)
    priority: Optional[OrderPriority] = None
    preferred_start_date: Optional[datetime] = None
    requirements: Optional[str] = Field(None, max_length=1000)
    special_needs: Optional[str] = Field(None, max_length=500)
    student_notes: Optional[str] = Field(None, max_length=1000)

    model_config = ConfigDict(use_enum_values=True)

    @field_validator("preferred_start_date")
    @classmethod
    def start_date_not_in_past(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _reject_past(v, "Preferred start date")

    @model_validator(mode="after")
    def no_explicit_nulls(self) -> "OrderUpdate":
        # Omitting a field keeps the stored value; null is not a way to clear it
        nulls = sorted(name for name in self.model_fields_set if getattr(self, name) is None)
        if nulls:
            raise ValueError(f"Fields cannot be null: {', '.join(nulls)}")
        return self


class OrderStatusUpdate(BaseModel):
    """Teacher/admin moves an order along the status table"""
    status: OrderStatus
    change_reason: Optional[str] = Field(None, max_length=500)
    teacher_notes: Optional[str] = Field(None, max_length=1000)
    admin_notes: Optional[str] = Field(None, max_length=1000)
    agreed_rate: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)
    actual_start_date: Optional[datetime] = None
    estimated_end_date: Optional[datetime] = None

    model_config = ConfigDict(use_enum_values=True)


class TeacherOrderResponse(BaseModel):
    """Teacher accepts, rejects or counters an order"""
    response: TeacherResponse
    message: Optional[str] = Field(None, max_length=1000)
    counter_rate: Optional[Decimal] = Field(None, gt=0, max_digits=10, decimal_places=2)
    available_start_date: Optional[datetime] = None

    model_config = ConfigDict(use_enum_values=True)

    @field_validator("available_start_date")
    @classmethod
    def available_date_not_in_past(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _reject_past(v, "Available start date")


class OrderCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class OrderMessageCreate(BaseModel):
    message: str = Field(..., min_length=1, max_length=MESSAGE_MAX_LENGTH)
    attachments: Optional[List[str]] = None


class OrderFilter(BaseModel):
    """Conjunctive filters for order listings; every field is optional"""
    status: Optional[OrderStatus] = None
    priority: Optional[OrderPriority] = None
    grade: Optional[Grade] = None
    curriculum: Optional[Curriculum] = None
    session_type: Optional[SessionType] = None
    subject: Optional[str] = Field(None, max_length=100)
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None
    min_rate: Optional[Decimal] = Field(None, gt=0)
    max_rate: Optional[Decimal] = Field(None, gt=0)

    model_config = ConfigDict(use_enum_values=True)


# ============================================
# Order Response Schemas
# ============================================

class OrderHistoryResponse(BaseModel):
    """One audit entry"""
    id: int
    order_id: int
    previous_status: Optional[str] = None
    new_status: str
    changed_by: int
    change_reason: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class OrderMessageResponse(BaseModel):
    id: int
    order_id: int
    sender_id: int
    sender_role: str
    message: str
    attachments: Optional[List[str]] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class OrderResponse(BaseModel):
    """Order with student/teacher display fields"""
    id: int
    student_id: int
    teacher_id: int
    title: str
    description: Optional[str] = None
    subject: str
    grade: str
    curriculum: str
    session_type: str
    preferred_time: str
    sessions_per_week: int
    session_duration: int
    total_sessions: Optional[int] = None
    location: Optional[str] = None
    address: Optional[str] = None
    proposed_rate: Optional[Decimal] = None
    agreed_rate: Optional[Decimal] = None
    total_amount: Optional[Decimal] = None
    status: str
    priority: str
    requirements: Optional[str] = None
    special_needs: Optional[str] = None
    student_notes: Optional[str] = None
    teacher_notes: Optional[str] = None
    admin_notes: Optional[str] = None
    preferred_start_date: Optional[datetime] = None
    actual_start_date: Optional[datetime] = None
    estimated_end_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # Joined party fields
    student_name: Optional[str] = None
    student_email: Optional[str] = None
    teacher_name: Optional[str] = None
    teacher_email: Optional[str] = None
    teacher_profile_photo: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class OrderDetailResponse(OrderResponse):
    """Order with its full audit trail and message thread"""
    history: List[OrderHistoryResponse] = []
    messages: List[OrderMessageResponse] = []


class PaginationInfo(BaseModel):
    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int
    has_next_page: bool
    has_prev_page: bool


# ============================================
# Envelopes
# ============================================

class ApiResponse(BaseModel):
    """Uniform response envelope"""
    success: bool
    message: str
    errors: Optional[List[str]] = None


class OrderEnvelope(ApiResponse):
    data: Optional[OrderResponse] = None


class OrderDetailEnvelope(ApiResponse):
    data: Optional[OrderDetailResponse] = None


class OrderMessageEnvelope(ApiResponse):
    data: Optional[OrderMessageResponse] = None


class OrderListEnvelope(ApiResponse):
    data: List[OrderResponse] = []
    pagination: PaginationInfo
