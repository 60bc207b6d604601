"""Trainer schedules (bookable slots) and one-to-one bookings of those slots."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from gym_management.utils.date_utils import utc_now
from gym_management.utils.identifiers import new_id


class BookingStatus(str, Enum):
    PENDING = "pending"
    BOOKING = "booking"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Schedule(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=new_id, alias="_id")
    trainer_id: str
    start_time: datetime
    end_time: datetime
    title: str = ""
    destroyed: bool = False
    created_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def check_window(self):
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        return self


class Booking(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=new_id, alias="_id")
    user_id: str
    schedule_id: str
    location_id: Optional[str] = None
    status: BookingStatus = BookingStatus.PENDING
    price: int = Field(..., ge=0)
    title: str = ""
    note: str = ""
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: Optional[datetime] = None

    def to_document(self) -> dict:
        doc = self.model_dump(by_alias=True)
        doc["status"] = self.status.value
        return doc


class CreateScheduleRequest(BaseModel):
    trainer_id: str
    start_time: datetime
    end_time: datetime
    title: str = ""


class CreateBookingRequest(BaseModel):
    user_id: str
    schedule_id: str
    price: int = Field(..., ge=0)
    location_id: Optional[str] = None
    title: str = ""
    note: str = ""


class ScheduleConflict(BaseModel):
    """An existing trainer schedule overlapping a proposed window."""

    schedule_id: str
    trainer_id: str
    start_time: datetime
    end_time: datetime
    message: str = "Trainer already has a schedule in this time window"
