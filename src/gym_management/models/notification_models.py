"""In-app notifications produced by the reminder jobs and lifecycle cascades."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from gym_management.utils.date_utils import utc_now
from gym_management.utils.identifiers import new_id


class NotificationType(str, Enum):
    USER_MEMBERSHIP_EXPIRING = "USER_MEMBERSHIP_EXPIRING"
    USER_MEMBERSHIP_EXPIRED = "USER_MEMBERSHIP_EXPIRED"
    USER_UPCOMING_CLASS_SESSION = "USER_UPCOMING_CLASS_SESSION"
    USER_UPCOMING_BOOKING = "USER_UPCOMING_BOOKING"
    TRAINER_UPCOMING_CLASS_SESSION = "TRAINER_UPCOMING_CLASS_SESSION"
    TRAINER_UPCOMING_BOOKING = "TRAINER_UPCOMING_BOOKING"


class NotificationReferenceType(str, Enum):
    BOOKING = "BOOKING"
    CLASS = "CLASS"
    MEMBERSHIP = "MEMBERSHIP"


class Notification(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=new_id, alias="_id")
    user_id: str
    type: NotificationType
    title: str
    content: str
    reference_id: Optional[str] = None
    reference_type: Optional[NotificationReferenceType] = None
    scheduled_at: Optional[datetime] = None
    is_read: bool = False
    destroyed: bool = False
    created_at: datetime = Field(default_factory=utc_now)

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True, mode="python") | {
            "type": self.type.value,
            "reference_type": self.reference_type.value if self.reference_type else None,
        }
