"""
Trainer schedules.

A schedule is a trainer's bookable slot. New slots are checked against the trainer's existing
slots with the half-open overlap predicate `existing.start < new_end AND existing.end > new_start`,
expressed directly as a MongoDB query.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from gym_management.managers.logging_manager import get_logger
from gym_management.models.booking_models import BookingStatus, CreateScheduleRequest, Schedule, ScheduleConflict
from gym_management.models.result_models import OperationResult
from gym_management.utils.date_utils import ensure_aware, utc_now

logger = get_logger(prefix="[ScheduleService]")


class ScheduleService:
    def __init__(self, db):
        self.db = db
        self.collection_name = "schedules"

    @property
    def collection(self):
        return self.db.get_collection(self.collection_name)

    async def get_schedule(self, schedule_id: str) -> Optional[Dict[str, Any]]:
        return await self.collection.find_one({"_id": schedule_id, "destroyed": False})

    async def check_conflict(
        self,
        trainer_id: str,
        start_time: datetime,
        end_time: datetime,
        exclude_schedule_id: Optional[str] = None,
    ) -> Optional[ScheduleConflict]:
        """
        First schedule of `trainer_id` overlapping [start_time, end_time), or `None`.

        Raises:
            ValueError: If the window is empty or inverted.
        """
        start_time, end_time = ensure_aware(start_time), ensure_aware(end_time)
        if start_time >= end_time:
            raise ValueError("start_time must be before end_time")

        query: Dict[str, Any] = {
            "trainer_id": trainer_id,
            "destroyed": False,
            "start_time": {"$lt": end_time},
            "end_time": {"$gt": start_time},
        }
        if exclude_schedule_id:
            query["_id"] = {"$ne": exclude_schedule_id}

        existing = await self.collection.find_one(query)
        if existing is None:
            return None
        return ScheduleConflict(
            schedule_id=existing["_id"],
            trainer_id=existing["trainer_id"],
            start_time=existing["start_time"],
            end_time=existing["end_time"],
        )

    async def create_schedule(self, request: CreateScheduleRequest) -> OperationResult:
        schedule = Schedule(
            trainer_id=request.trainer_id,
            start_time=ensure_aware(request.start_time),
            end_time=ensure_aware(request.end_time),
            title=request.title,
        )
        conflict = await self.check_conflict(schedule.trainer_id, schedule.start_time, schedule.end_time)
        if conflict is not None:
            return OperationResult.fail(conflict.message, reason="CONFLICT", data=conflict.model_dump(mode="json"))

        await self.collection.insert_one(schedule.model_dump(by_alias=True))
        logger.info(f"Created schedule {schedule.id} for trainer {schedule.trainer_id}")
        return OperationResult.ok("Schedule created", data={"schedule_id": schedule.id})

    async def delete_schedule(self, schedule_id: str) -> OperationResult:
        """Soft-delete a slot unless a pending or confirmed booking holds it."""
        schedule = await self.get_schedule(schedule_id)
        if schedule is None:
            return OperationResult.not_found("Schedule not found")

        bookings = self.db.get_collection("bookings")
        held = await bookings.find_one(
            {
                "schedule_id": schedule_id,
                "status": {"$in": [BookingStatus.PENDING.value, BookingStatus.BOOKING.value]},
            }
        )
        if held is not None:
            return OperationResult.fail("Schedule has an active booking", reason="CONFLICT")

        await self.collection.update_one(
            {"_id": schedule_id},
            {"$set": {"destroyed": True, "updated_at": utc_now()}},
        )
        logger.info(f"Soft-deleted schedule {schedule_id}")
        return OperationResult.ok("Schedule deleted")
