"""
Class enrollment and the class-versus-booking conflict detector.

Before a user pays for a class, every upcoming session of that class is compared with every
upcoming trainer booking of the user. A pair conflicts when
`session.start < booking.end AND session.end > booking.start`; sessions that end exactly when a
booking starts (or the reverse) do not conflict.

An enrollment can be cancelled, and is refunded, only while it is not already cancelled and the
class has not started yet. The cancel write is guarded on the enrollment's current status, so of two
concurrent cancellations only the one that actually flips the status issues the refund.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from gym_management.managers.logging_manager import get_logger
from gym_management.models.class_models import (
    ClassEnrollment,
    ClassScheduleConflict,
    ConflictingBooking,
    ConflictingSession,
    EnrollmentStatus,
)
from gym_management.models.lifecycle import EnrollmentEvent, IllegalTransitionError, transition_enrollment
from gym_management.models.payment_models import EnrollmentReference, PaymentStatus
from gym_management.models.result_models import OperationResult
from gym_management.utils.date_utils import ensure_aware, overlaps, utc_now

logger = get_logger(prefix="[ClassEnrollmentService]")


class ClassEnrollmentService:
    def __init__(self, db, class_session_service, booking_service, payment_ledger):
        self.db = db
        self.class_session_service = class_session_service
        self.booking_service = booking_service
        self.payment_ledger = payment_ledger
        self.collection_name = "class_enrollments"

    @property
    def collection(self):
        return self.db.get_collection(self.collection_name)

    async def get_enrollment(self, enrollment_id: str) -> Optional[Dict[str, Any]]:
        return await self.collection.find_one({"_id": enrollment_id})

    async def check_schedule_conflict(
        self, user_id: str, class_id: str, now: Optional[datetime] = None
    ) -> Optional[ClassScheduleConflict]:
        """First upcoming (session, booking) overlap for this user and class, or `None`."""
        now = now or utc_now()
        sessions = await self.class_session_service.get_upcoming_sessions(class_id, now)
        if not sessions:
            return None
        bookings = await self.booking_service.get_user_future_bookings(user_id, now)

        for session in sessions:
            for booking in bookings:
                schedule = booking["schedule"]
                if overlaps(session["start_time"], session["end_time"], schedule["start_time"], schedule["end_time"]):
                    return ClassScheduleConflict(
                        message="Class session overlaps an existing personal training booking",
                        class_session=ConflictingSession(
                            session_id=session["_id"],
                            start_time=session["start_time"],
                            end_time=session["end_time"],
                            title=session.get("title", ""),
                        ),
                        existing_booking=ConflictingBooking(
                            booking_id=booking["_id"],
                            schedule_id=schedule["_id"],
                            trainer_id=schedule["trainer_id"],
                            start_time=schedule["start_time"],
                            end_time=schedule["end_time"],
                        ),
                    )
        return None

    async def create_paid_enrollment(self, user_id: str, class_id: str, price: int) -> Dict[str, Any]:
        enrollment = ClassEnrollment(class_id=class_id, user_id=user_id, price=price)
        enrollment.status = transition_enrollment(enrollment.status.value, EnrollmentEvent.PAYMENT_CONFIRMED)
        enrollment.payment_status = PaymentStatus.PAID
        doc = enrollment.to_document()
        await self.collection.insert_one(doc)
        logger.info(f"User {user_id} enrolled in class {class_id} ({enrollment.id})")
        return doc

    async def has_active_enrollment(self, user_id: str, class_id: str) -> bool:
        enrollment = await self.collection.find_one(
            {
                "user_id": user_id,
                "class_id": class_id,
                "status": EnrollmentStatus.ACTIVE.value,
                "payment_status": PaymentStatus.PAID.value,
            }
        )
        return enrollment is not None

    async def _can_cancel(self, enrollment: Dict[str, Any], now: datetime) -> bool:
        if enrollment["status"] == EnrollmentStatus.CANCELLED.value:
            return False
        gym_class = await self.class_session_service.get_class(enrollment["class_id"])
        if gym_class is None:
            return False
        return now < ensure_aware(gym_class["start_date"])

    async def can_cancel_enrollment(self, enrollment_id: str, now: Optional[datetime] = None) -> bool:
        """True iff the enrollment is not cancelled and its class has not started."""
        enrollment = await self.get_enrollment(enrollment_id)
        if enrollment is None:
            return False
        return await self._can_cancel(enrollment, ensure_aware(now or utc_now()))

    async def cancel_enrollment(self, enrollment_id: str, now: Optional[datetime] = None) -> OperationResult:
        now = ensure_aware(now or utc_now())
        enrollment = await self.get_enrollment(enrollment_id)
        if enrollment is None:
            return OperationResult.not_found("Enrollment not found")

        refundable = await self._can_cancel(enrollment, now)
        try:
            new_status = transition_enrollment(enrollment["status"], EnrollmentEvent.CANCEL)
        except IllegalTransitionError as e:
            return OperationResult.fail(str(e))

        result = await self.collection.update_one(
            {"_id": enrollment_id, "status": enrollment["status"]},
            {"$set": {"status": new_status.value, "cancelled_at": now}},
        )
        if result.modified_count == 0:
            return OperationResult.fail("Enrollment was changed concurrently", reason="CONFLICT")

        await self.class_session_service.remove_user_from_sessions(enrollment["user_id"], enrollment["class_id"], now)

        refunded = False
        if refundable and enrollment.get("payment_status") == PaymentStatus.PAID.value:
            refunded = await self.refund_enrollment(enrollment_id)
        logger.info(f"Cancelled enrollment {enrollment_id} (refunded: {refunded})")
        return OperationResult.ok("Enrollment cancelled", data={"enrollment_id": enrollment_id, "refunded": refunded})

    async def refund_enrollment(self, enrollment_id: str) -> bool:
        refunded = await self.payment_ledger.mark_refunded(EnrollmentReference(enrollment_id=enrollment_id))
        if refunded:
            await self.collection.update_one(
                {"_id": enrollment_id},
                {"$set": {"payment_status": PaymentStatus.REFUNDED.value}},
            )
        return refunded
