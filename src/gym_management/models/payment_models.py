"""
Payment Models for the VNPay integration.

A `Payment` is an append-only ledger row that points at exactly one business record. The pointer
is modelled as a tagged union on `payment_type`:

    Reference = SubscriptionReference | BookingReference | EnrollmentReference

and flattened to `reference_id` + `payment_type` when stored.

A `PaymentIntent` is the short-lived record kept in Redis between creating a gateway URL and the
gateway redirecting back. It is also a tagged union on `payment_type`, carrying what the reconciler
needs to finish (or undo) the operation.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from gym_management.utils.date_utils import utc_now
from gym_management.utils.identifiers import new_id


class PaymentType(str, Enum):
    MEMBERSHIP = "membership"
    BOOKING = "booking"
    CLASS = "class"


class PaymentMethod(str, Enum):
    CASH = "cash"
    BANK = "bank"
    MOMO = "momo"
    VNPAY = "vnpay"


class PaymentStatus(str, Enum):
    PAID = "paid"
    UNPAID = "unpaid"
    REFUNDED = "refunded"


# --- Ledger references ---


class SubscriptionReference(BaseModel):
    payment_type: Literal["membership"] = "membership"
    subscription_id: str

    @property
    def reference_id(self) -> str:
        return self.subscription_id


class BookingReference(BaseModel):
    payment_type: Literal["booking"] = "booking"
    booking_id: str

    @property
    def reference_id(self) -> str:
        return self.booking_id


class EnrollmentReference(BaseModel):
    payment_type: Literal["class"] = "class"
    enrollment_id: str

    @property
    def reference_id(self) -> str:
        return self.enrollment_id


Reference = Annotated[
    Union[SubscriptionReference, BookingReference, EnrollmentReference],
    Field(discriminator="payment_type"),
]

_REFERENCE_FIELDS = {
    PaymentType.MEMBERSHIP: "subscription_id",
    PaymentType.BOOKING: "booking_id",
    PaymentType.CLASS: "enrollment_id",
}
_reference_adapter = TypeAdapter(Reference)


def payment_reference_from_document(doc: Dict[str, Any]) -> Reference:
    """Rebuild the typed reference from a stored `reference_id` + `payment_type` pair."""
    payment_type = PaymentType(doc["payment_type"])
    return _reference_adapter.validate_python(
        {"payment_type": payment_type.value, _REFERENCE_FIELDS[payment_type]: doc["reference_id"]}
    )


class Payment(BaseModel):
    """Ledger row written once per successful transaction."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=new_id, alias="_id")
    user_id: str
    reference: Reference
    amount: int = Field(..., ge=0)
    payment_method: PaymentMethod = PaymentMethod.VNPAY
    payment_status: PaymentStatus = PaymentStatus.PAID
    payment_date: datetime = Field(default_factory=utc_now)
    description: str = ""
    refund_amount: int = 0
    refund_date: Optional[datetime] = None

    def to_document(self) -> Dict[str, Any]:
        return {
            "_id": self.id,
            "user_id": self.user_id,
            "reference_id": self.reference.reference_id,
            "payment_type": self.reference.payment_type,
            "amount": self.amount,
            "payment_method": self.payment_method.value,
            "payment_status": self.payment_status.value,
            "payment_date": self.payment_date,
            "description": self.description,
            "refund_amount": self.refund_amount,
            "refund_date": self.refund_date,
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Payment":
        return cls(
            _id=doc["_id"],
            user_id=doc["user_id"],
            reference=payment_reference_from_document(doc),
            amount=doc["amount"],
            payment_method=doc.get("payment_method", PaymentMethod.VNPAY),
            payment_status=doc.get("payment_status", PaymentStatus.PAID),
            payment_date=doc["payment_date"],
            description=doc.get("description", ""),
            refund_amount=doc.get("refund_amount", 0),
            refund_date=doc.get("refund_date"),
        )


# --- Temporary payment intents ---


class _IntentBase(BaseModel):
    transaction_ref: str
    payment_url: str = ""
    expire_at: datetime
    created_at: datetime = Field(default_factory=utc_now)


class MembershipIntent(_IntentBase):
    payment_type: Literal["membership"] = "membership"
    subscription_id: str
    user_id: str
    membership_id: str


class BookingIntent(_IntentBase):
    payment_type: Literal["booking"] = "booking"
    booking_ids: List[str]
    user_id: str
    total_price: int
    title: str = ""


class ClassIntent(_IntentBase):
    payment_type: Literal["class"] = "class"
    user_id: str
    class_id: str
    price: int
    title: str = ""


PaymentIntent = Annotated[
    Union[MembershipIntent, BookingIntent, ClassIntent],
    Field(discriminator="payment_type"),
]
payment_intent_adapter = TypeAdapter(PaymentIntent)


# --- API models ---


class CreateBookingPaymentItem(BaseModel):
    user_id: str
    schedule_id: str
    price: int = Field(..., gt=0)
    title: str = ""
    note: str = ""


class CreateMembershipPaymentRequest(BaseModel):
    user_id: str
    membership_id: str


class CreateClassPaymentRequest(BaseModel):
    user_id: str
    class_id: str


class PaymentUrlResponse(BaseModel):
    payment_url: str
    transaction_ref: str
    expire_at: datetime
    booking_ids: List[str] = Field(default_factory=list)
