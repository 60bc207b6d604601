"""
Booking Service.

One-to-one trainer bookings. A booking is created `pending` before payment, promoted to `booking`
by the payment reconciler, rolled forward to `completed` by the status job once its slot has ended,
and may be cancelled while more than an hour remains before the slot starts. Status changes go
through `booking_machine`.

Bookings do not store times: they are joined to their schedule with `$lookup` whenever a time window
matters.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from gym_management.managers.logging_manager import get_logger
from gym_management.models.booking_models import Booking, BookingStatus, CreateBookingRequest
from gym_management.models.lifecycle import BookingEvent, booking_machine, transition_booking
from gym_management.models.notification_models import NotificationReferenceType
from gym_management.models.payment_models import BookingReference
from gym_management.models.result_models import OperationResult
from gym_management.utils.date_utils import can_cancel_booking_at, ensure_aware, overlaps, utc_now

logger = get_logger(prefix="[BookingService]")

ACTIVE_STATUSES = [BookingStatus.PENDING.value, BookingStatus.BOOKING.value]


def _with_schedule(match: Dict[str, Any], schedule_match: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
    pipeline: List[Dict[str, Any]] = [
        {"$match": match},
        {"$lookup": {"from": "schedules", "localField": "schedule_id", "foreignField": "_id", "as": "schedule"}},
        {"$unwind": "$schedule"},
    ]
    if schedule_match:
        pipeline.append({"$match": schedule_match})
    pipeline.append({"$sort": {"schedule.start_time": 1}})
    return pipeline


class BookingService:
    def __init__(self, db, schedule_service, user_service, notification_service, payment_ledger):
        self.db = db
        self.schedule_service = schedule_service
        self.user_service = user_service
        self.notification_service = notification_service
        self.payment_ledger = payment_ledger
        self.collection_name = "bookings"

    @property
    def collection(self):
        return self.db.get_collection(self.collection_name)

    async def get_booking(self, booking_id: str) -> Optional[Dict[str, Any]]:
        return await self.collection.find_one({"_id": booking_id})

    async def get_user_future_bookings(self, user_id: str, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """The user's non-cancelled bookings whose slot starts at or after `now`, with `schedule` joined."""
        now = now or utc_now()
        pipeline = _with_schedule(
            {"user_id": user_id, "status": {"$ne": BookingStatus.CANCELLED.value}},
            {"schedule.start_time": {"$gte": now}},
        )
        return await self.collection.aggregate(pipeline).to_list(length=None)

    async def create_booking(self, request: CreateBookingRequest, now: Optional[datetime] = None) -> OperationResult:
        now = now or utc_now()
        if await self.user_service.get_user(request.user_id) is None:
            return OperationResult.not_found("User not found")

        schedule = await self.schedule_service.get_schedule(request.schedule_id)
        if schedule is None:
            return OperationResult.not_found("Schedule not found")
        if ensure_aware(schedule["start_time"]) <= now:
            return OperationResult.fail("Schedule has already started")

        held = await self.collection.find_one({"schedule_id": request.schedule_id, "status": {"$in": ACTIVE_STATUSES}})
        if held is not None:
            return OperationResult.fail("This slot is already booked", reason="CONFLICT")

        for existing in await self.get_user_future_bookings(request.user_id, now):
            other = existing["schedule"]
            if overlaps(schedule["start_time"], schedule["end_time"], other["start_time"], other["end_time"]):
                return OperationResult.fail(
                    "You already have a booking in this time window",
                    reason="CONFLICT",
                    data={"booking_id": existing["_id"], "schedule_id": other["_id"]},
                )

        booking = Booking(
            user_id=request.user_id,
            schedule_id=request.schedule_id,
            location_id=request.location_id,
            price=request.price,
            title=request.title or schedule.get("title", ""),
            note=request.note,
        )
        await self.collection.insert_one(booking.to_document())
        logger.info(f"Created pending booking {booking.id} for user {booking.user_id}")
        return OperationResult.ok("Booking created", data={"booking_id": booking.id})

    async def confirm_booking(self, booking_id: str) -> Optional[Dict[str, Any]]:
        """Promote a pending booking after payment; returns the updated document."""
        booking = await self.get_booking(booking_id)
        if booking is None:
            logger.warning(f"Cannot confirm missing booking {booking_id}")
            return None

        new_status = transition_booking(booking["status"], BookingEvent.PAYMENT_CONFIRMED)
        updated_at = utc_now()
        await self.collection.update_one(
            {"_id": booking_id, "status": booking["status"]},
            {"$set": {"status": new_status.value, "updated_at": updated_at}},
        )
        return {**booking, "status": new_status.value, "updated_at": updated_at}

    async def delete_pending_bookings(self, booking_ids: List[str]) -> int:
        if not booking_ids:
            return 0
        result = await self.collection.delete_many(
            {"_id": {"$in": booking_ids}, "status": BookingStatus.PENDING.value}
        )
        logger.info(f"Deleted {result.deleted_count} pending bookings")
        return result.deleted_count

    async def cancel_booking(self, booking_id: str, now: Optional[datetime] = None) -> OperationResult:
        booking = await self.get_booking(booking_id)
        if booking is None:
            return OperationResult.not_found("Booking not found")

        status = BookingStatus(booking["status"])
        if not booking_machine.can(status, BookingEvent.CANCEL):
            return OperationResult.fail(f"Cannot cancel a {status.value} booking")

        schedule = await self.schedule_service.get_schedule(booking["schedule_id"])
        if schedule is not None and not can_cancel_booking_at(schedule["start_time"], now):
            return OperationResult.fail("Bookings can only be cancelled more than 1 hour before they start")

        new_status = transition_booking(status.value, BookingEvent.CANCEL)
        await self.collection.update_one(
            {"_id": booking_id, "status": status.value},
            {"$set": {"status": new_status.value, "updated_at": utc_now()}},
        )
        await self.notification_service.delete_by_reference(booking_id, NotificationReferenceType.BOOKING)

        refunded = False
        if status == BookingStatus.BOOKING:
            refunded = await self.payment_ledger.mark_refunded(BookingReference(booking_id=booking_id))
        logger.info(f"Cancelled booking {booking_id} (refunded: {refunded})")
        return OperationResult.ok("Booking cancelled", data={"booking_id": booking_id, "refunded": refunded})

    async def get_bookings_to_complete(self, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Confirmed bookings whose slot has already ended."""
        now = now or utc_now()
        pipeline = _with_schedule({"status": BookingStatus.BOOKING.value}, {"schedule.end_time": {"$lt": now}})
        return await self.collection.aggregate(pipeline).to_list(length=None)

    async def complete_bookings(self, booking_ids: List[str]) -> int:
        if not booking_ids:
            return 0
        completed = transition_booking(BookingStatus.BOOKING.value, BookingEvent.SESSION_FINISHED)
        result = await self.collection.update_many(
            {"_id": {"$in": booking_ids}, "status": BookingStatus.BOOKING.value},
            {"$set": {"status": completed.value, "updated_at": utc_now()}},
        )
        return result.modified_count

    async def get_upcoming_bookings_for_reminder(
        self, minutes: int, now: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """Confirmed bookings starting within the next `minutes` minutes."""
        now = now or utc_now()
        pipeline = _with_schedule(
            {"status": BookingStatus.BOOKING.value},
            {"schedule.start_time": {"$gt": now, "$lte": now + timedelta(minutes=minutes)}},
        )
        return await self.collection.aggregate(pipeline).to_list(length=None)
