"""Recurring group classes, their concrete sessions, and user enrollments."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from gym_management.models.payment_models import PaymentStatus
from gym_management.utils.date_utils import utc_now
from gym_management.utils.identifiers import new_id


class EnrollmentStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TimeOfDay(BaseModel):
    hour: int = Field(..., ge=0, le=23)
    minute: int = Field(default=0, ge=0, le=59)


class RecurrenceRule(BaseModel):
    """One weekly slot: `day_of_week` follows Python's `weekday()` (Monday is 0)."""

    day_of_week: int = Field(..., ge=0, le=6)
    start_time: TimeOfDay
    end_time: TimeOfDay
    room_id: Optional[str] = None


class GymClass(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=new_id, alias="_id")
    name: str
    start_date: datetime
    end_date: datetime
    price: int = Field(..., ge=0)
    capacity: int = Field(default=20, gt=0)
    trainers: List[str] = Field(default_factory=list)
    recurrence: List[RecurrenceRule] = Field(default_factory=list)
    location_id: Optional[str] = None
    destroyed: bool = False


class ClassSession(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=new_id, alias="_id")
    class_id: str
    room_id: Optional[str] = None
    start_time: datetime
    end_time: datetime
    hours: float = 0
    title: str = ""
    trainers: List[str] = Field(default_factory=list)
    users: List[str] = Field(default_factory=list)
    destroyed: bool = False


class ClassEnrollment(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=new_id, alias="_id")
    class_id: str
    user_id: str
    status: EnrollmentStatus = EnrollmentStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.UNPAID
    price: int = 0
    enrolled_at: datetime = Field(default_factory=utc_now)
    cancelled_at: Optional[datetime] = None

    def to_document(self) -> dict:
        doc = self.model_dump(by_alias=True)
        doc["status"] = self.status.value
        doc["payment_status"] = self.payment_status.value
        return doc


class ConflictingSession(BaseModel):
    session_id: str
    start_time: datetime
    end_time: datetime
    title: str = ""


class ConflictingBooking(BaseModel):
    booking_id: str
    schedule_id: str
    trainer_id: str
    start_time: datetime
    end_time: datetime


class ClassScheduleConflict(BaseModel):
    """First (session, booking) pair found overlapping when a user considers enrolling in a class."""

    has_conflict: bool = True
    conflict_type: str = "TRAINER_BOOKING_OVERLAP"
    message: str
    class_session: ConflictingSession
    existing_booking: ConflictingBooking
