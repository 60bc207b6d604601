"""User lookups and account status updates."""

from typing import Any, Dict, Optional

from gym_management.managers.logging_manager import get_logger
from gym_management.models.user_models import UserStatus
from gym_management.utils.date_utils import utc_now

logger = get_logger(prefix="[UserService]")


class UserService:
    def __init__(self, db):
        self.db = db
        self.collection_name = "users"

    async def get_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        col = self.db.get_collection(self.collection_name)
        return await col.find_one({"_id": user_id, "destroyed": {"$ne": True}})

    async def set_status(self, user_id: str, status: UserStatus) -> bool:
        col = self.db.get_collection(self.collection_name)
        result = await col.update_one(
            {"_id": user_id},
            {"$set": {"status": status.value, "updated_at": utc_now()}},
        )
        logger.info(f"User {user_id} status set to {status.value}")
        return result.matched_count > 0
