"""Concrete class sessions generated from a class's weekly recurrence."""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from gym_management.managers.logging_manager import get_logger
from gym_management.models.result_models import OperationResult
from gym_management.utils.date_utils import generate_class_sessions, utc_now
from gym_management.utils.identifiers import new_id

logger = get_logger(prefix="[ClassSessionService]")


class ClassSessionService:
    def __init__(self, db):
        self.db = db
        self.collection_name = "class_sessions"

    @property
    def collection(self):
        return self.db.get_collection(self.collection_name)

    async def get_class(self, class_id: str) -> Optional[Dict[str, Any]]:
        classes = self.db.get_collection("classes")
        return await classes.find_one({"_id": class_id, "destroyed": {"$ne": True}})

    async def get_upcoming_sessions(self, class_id: str, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        now = now or utc_now()
        cursor = self.collection.find({"class_id": class_id, "destroyed": False, "start_time": {"$gte": now}})
        return await cursor.sort("start_time", 1).to_list(length=None)

    async def check_room_conflict(
        self, room_id: str, start_time: datetime, end_time: datetime, exclude_class_id: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        query: Dict[str, Any] = {
            "room_id": room_id,
            "destroyed": False,
            "start_time": {"$lt": end_time},
            "end_time": {"$gt": start_time},
        }
        if exclude_class_id:
            query["class_id"] = {"$ne": exclude_class_id}
        return await self.collection.find_one(query)

    async def check_trainer_conflict(
        self, trainer_ids: List[str], start_time: datetime, end_time: datetime, exclude_class_id: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        if not trainer_ids:
            return None
        query: Dict[str, Any] = {
            "trainers": {"$in": trainer_ids},
            "destroyed": False,
            "start_time": {"$lt": end_time},
            "end_time": {"$gt": start_time},
        }
        if exclude_class_id:
            query["class_id"] = {"$ne": exclude_class_id}
        return await self.collection.find_one(query)

    async def create_sessions_for_class(self, class_id: str, now: Optional[datetime] = None) -> OperationResult:
        """Expand the class recurrence and insert its future sessions, refusing on room/trainer clashes."""
        gym_class = await self.get_class(class_id)
        if gym_class is None:
            return OperationResult.not_found("Class not found")

        sessions = generate_class_sessions(gym_class, now)
        conflicts = []
        for session in sessions:
            clash = None
            if session["room_id"]:
                clash = await self.check_room_conflict(
                    session["room_id"], session["start_time"], session["end_time"], exclude_class_id=class_id
                )
            if clash is None:
                clash = await self.check_trainer_conflict(
                    session["trainers"], session["start_time"], session["end_time"], exclude_class_id=class_id
                )
            if clash is not None:
                conflicts.append(
                    {"start_time": session["start_time"].isoformat(), "conflicting_session_id": clash["_id"]}
                )

        if conflicts:
            return OperationResult.fail("Class sessions clash with existing sessions", reason="CONFLICT", data=conflicts)
        if not sessions:
            return OperationResult.ok("No future sessions to create", data={"created": 0})

        for session in sessions:
            session["_id"] = new_id()
        await self.collection.insert_many(sessions)
        logger.info(f"Created {len(sessions)} sessions for class {class_id}")
        return OperationResult.ok("Sessions created", data={"created": len(sessions)})

    async def add_user_to_upcoming_sessions(self, user_id: str, class_id: str, now: Optional[datetime] = None) -> int:
        now = now or utc_now()
        result = await self.collection.update_many(
            {"class_id": class_id, "destroyed": False, "start_time": {"$gte": now}},
            {"$addToSet": {"users": user_id}},
        )
        logger.info(f"Added user {user_id} to {result.modified_count} sessions of class {class_id}")
        return result.modified_count

    async def remove_user_from_sessions(self, user_id: str, class_id: str, now: Optional[datetime] = None) -> int:
        now = now or utc_now()
        result = await self.collection.update_many(
            {"class_id": class_id, "destroyed": False, "start_time": {"$gte": now}},
            {"$pull": {"users": user_id}},
        )
        return result.modified_count

    async def get_upcoming_sessions_for_reminder(
        self, minutes: int, now: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        now = now or utc_now()
        cursor = self.collection.find(
            {"destroyed": False, "start_time": {"$gt": now, "$lte": now + timedelta(minutes=minutes)}}
        )
        return await cursor.to_list(length=None)
