"""
Membership and subscription models.

A subscription is created unpaid with no dates, and only gains a validity window once the payment
reconciler confirms the gateway payment. `remaining_sessions` is the whole number of days left
before `end_date`.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from gym_management.models.payment_models import PaymentStatus
from gym_management.utils.date_utils import utc_now
from gym_management.utils.identifiers import new_id


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"


class Membership(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=new_id, alias="_id")
    name: str
    duration_month: int = Field(..., gt=0)
    price: int = Field(..., ge=0, description="Price in VND")
    discount: float = Field(default=0, ge=0, le=100, description="Discount percentage")
    description: str = ""
    destroyed: bool = False


class Subscription(BaseModel):
    """Stored subscription document."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=new_id, alias="_id")
    user_id: str
    membership_id: str
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    status: SubscriptionStatus = SubscriptionStatus.EXPIRED
    payment_status: PaymentStatus = PaymentStatus.UNPAID
    remaining_sessions: int = 0
    transaction_ref: Optional[str] = None
    expire_at: Optional[datetime] = None
    destroyed: bool = False
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: Optional[datetime] = None

    def to_document(self) -> dict:
        doc = self.model_dump(by_alias=True, mode="python")
        doc["status"] = self.status.value
        doc["payment_status"] = self.payment_status.value
        for optional in ("expire_at", "transaction_ref"):
            if doc.get(optional) is None:
                doc.pop(optional, None)
        return doc


class SubscribeRequest(BaseModel):
    user_id: str
    membership_id: str


class CurrentSubscription(BaseModel):
    """
    What the UI renders for a user's membership.

    When the user has no subscription every field is empty and `remaining_sessions` is 0, so the
    "no membership" state is rendered the same way as any other.
    """

    id: str = ""
    user_id: str = ""
    membership_id: str = ""
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    status: str = ""
    payment_status: str = ""
    remaining_sessions: int = 0

    @classmethod
    def placeholder(cls, user_id: str = "") -> "CurrentSubscription":
        return cls(user_id=user_id)

    @classmethod
    def from_document(cls, doc: dict) -> "CurrentSubscription":
        return cls(
            id=str(doc["_id"]),
            user_id=doc.get("user_id", ""),
            membership_id=doc.get("membership_id", ""),
            start_date=doc.get("start_date"),
            end_date=doc.get("end_date"),
            status=doc.get("status", ""),
            payment_status=doc.get("payment_status", ""),
            remaining_sessions=doc.get("remaining_sessions", 0),
        )
