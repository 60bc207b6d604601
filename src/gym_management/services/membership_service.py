"""Membership plan lookups."""

from typing import Any, Dict, Optional

from gym_management.models.subscription_models import Membership


class MembershipService:
    def __init__(self, db):
        self.db = db
        self.collection_name = "memberships"

    async def get_membership(self, membership_id: str) -> Optional[Dict[str, Any]]:
        col = self.db.get_collection(self.collection_name)
        return await col.find_one({"_id": membership_id, "destroyed": {"$ne": True}})

    async def create_membership(self, membership: Membership) -> str:
        col = self.db.get_collection(self.collection_name)
        await col.insert_one(membership.model_dump(by_alias=True))
        return membership.id
