"""
Notification Service.

Creates, lists and cleans up in-app notifications. Two de-duplication rules apply:

- `create_notification` skips a notification identical in (user, type, reference) to one created in
  the last `NOTIFICATION_DEDUP_MINUTES` minutes.
- The booking and class-session reminder creators skip whenever such a notification already exists,
  with no time limit, and report `reason="ALREADY_EXISTS"` so the reminder jobs can count skips.

Newly created notifications are pushed to the user's open WebSocket connections when a connection
manager is supplied.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from gym_management.config import Settings, settings as default_settings
from gym_management.managers.logging_manager import get_logger
from gym_management.models.notification_models import (
    Notification,
    NotificationReferenceType,
    NotificationType,
)
from gym_management.models.result_models import OperationResult
from gym_management.utils.date_utils import utc_now

logger = get_logger(prefix="[NotificationService]")

ALREADY_EXISTS = "ALREADY_EXISTS"


def membership_expiring_message(membership_name: str, days_left: int) -> str:
    if days_left >= 7:
        return f"Your {membership_name} membership expires in 7 days. Renew to keep training!"
    if days_left >= 3:
        return f"Your {membership_name} membership expires in 3 days. Please renew now!"
    if days_left >= 1:
        return f"Your {membership_name} membership expires tomorrow. Renew now to avoid interruption!"
    return membership_expired_message(membership_name)


def membership_expired_message(membership_name: str) -> str:
    return f"Your {membership_name} membership has expired. Please renew to continue using the gym."


class NotificationService:
    def __init__(self, db, settings: Optional[Settings] = None, connection_manager=None):
        self.db = db
        self.settings = settings or default_settings
        self.connection_manager = connection_manager
        self.collection_name = "notifications"

    @property
    def collection(self):
        return self.db.get_collection(self.collection_name)

    async def _exists(
        self,
        user_id: str,
        notification_type: NotificationType,
        reference_id: Optional[str],
        since: Optional[datetime] = None,
    ) -> bool:
        query: Dict[str, Any] = {
            "user_id": user_id,
            "type": notification_type.value,
            "reference_id": reference_id,
            "destroyed": False,
        }
        if since is not None:
            query["created_at"] = {"$gte": since}
        return await self.collection.find_one(query) is not None

    async def _insert(self, notification: Notification) -> OperationResult:
        doc = notification.to_document()
        await self.collection.insert_one(doc)
        logger.info(f"Created {notification.type.value} notification for user {notification.user_id}")
        if self.connection_manager is not None:
            await self.connection_manager.send_json_to_user(
                notification.user_id,
                {"event": "notification", "data": notification.model_dump(mode="json", by_alias=True)},
            )
        return OperationResult.ok("Notification created", data={"notification_id": notification.id})

    async def create_notification(self, notification: Notification) -> OperationResult:
        since = utc_now() - timedelta(minutes=self.settings.NOTIFICATION_DEDUP_MINUTES)
        if await self._exists(notification.user_id, notification.type, notification.reference_id, since):
            logger.debug(f"Duplicate {notification.type.value} for user {notification.user_id} skipped")
            return OperationResult.fail("Duplicate notification", reason=ALREADY_EXISTS)
        return await self._insert(notification)

    async def create_membership_expiring_notification(
        self, user_id: str, subscription_id: str, membership_name: str, expiry_date: datetime, days_left: int
    ) -> OperationResult:
        return await self.create_notification(
            Notification(
                user_id=user_id,
                type=NotificationType.USER_MEMBERSHIP_EXPIRING,
                title="Membership expiring soon",
                content=membership_expiring_message(membership_name, days_left),
                reference_id=subscription_id,
                reference_type=NotificationReferenceType.MEMBERSHIP,
                scheduled_at=expiry_date,
            )
        )

    async def create_membership_expired_notification(
        self, user_id: str, subscription_id: str, membership_name: str
    ) -> OperationResult:
        return await self.create_notification(
            Notification(
                user_id=user_id,
                type=NotificationType.USER_MEMBERSHIP_EXPIRED,
                title="Membership expired",
                content=membership_expired_message(membership_name),
                reference_id=subscription_id,
                reference_type=NotificationReferenceType.MEMBERSHIP,
            )
        )

    async def create_booking_reminder(
        self,
        recipient_id: str,
        booking_id: str,
        start_time: datetime,
        is_trainer: bool = False,
        counterpart_name: str = "",
    ) -> OperationResult:
        notification_type = (
            NotificationType.TRAINER_UPCOMING_BOOKING if is_trainer else NotificationType.USER_UPCOMING_BOOKING
        )
        if await self._exists(recipient_id, notification_type, booking_id):
            return OperationResult.fail("Reminder already exists", reason=ALREADY_EXISTS)

        minutes = self.settings.BOOKING_REMINDER_MINUTES
        if is_trainer:
            title = "Upcoming coaching session"
            content = f"Your 1-on-1 session with {counterpart_name or 'your client'} starts in {minutes} minutes"
        else:
            title = "Upcoming training session"
            content = f"Your session with {counterpart_name or 'your trainer'} starts in {minutes} minutes"
        return await self._insert(
            Notification(
                user_id=recipient_id,
                type=notification_type,
                title=title,
                content=content,
                reference_id=booking_id,
                reference_type=NotificationReferenceType.BOOKING,
                scheduled_at=start_time,
            )
        )

    async def create_class_reminder(
        self,
        recipient_id: str,
        session_id: str,
        class_name: str,
        start_time: datetime,
        is_trainer: bool = False,
        total_users: int = 0,
    ) -> OperationResult:
        notification_type = (
            NotificationType.TRAINER_UPCOMING_CLASS_SESSION
            if is_trainer
            else NotificationType.USER_UPCOMING_CLASS_SESSION
        )
        if await self._exists(recipient_id, notification_type, session_id):
            return OperationResult.fail("Reminder already exists", reason=ALREADY_EXISTS)

        minutes = self.settings.CLASS_REMINDER_MINUTES
        if is_trainer:
            title = "Upcoming class to teach"
            content = f"{class_name} starts in {minutes} minutes with {total_users} enrolled"
        else:
            title = "Upcoming class"
            content = f"{class_name} starts in {minutes} minutes"
        return await self._insert(
            Notification(
                user_id=recipient_id,
                type=notification_type,
                title=title,
                content=content,
                reference_id=session_id,
                reference_type=NotificationReferenceType.CLASS,
                scheduled_at=start_time,
            )
        )

    async def delete_by_reference(self, reference_id: str, reference_type: NotificationReferenceType) -> int:
        """Soft-delete every notification attached to a booking, class session or subscription."""
        result = await self.collection.update_many(
            {"reference_id": reference_id, "reference_type": reference_type.value, "destroyed": False},
            {"$set": {"destroyed": True, "updated_at": utc_now()}},
        )
        return result.modified_count

    async def delete_older_than(self, days: int, now: Optional[datetime] = None) -> int:
        cutoff = (now or utc_now()) - timedelta(days=days)
        result = await self.collection.delete_many({"created_at": {"$lt": cutoff}})
        logger.info(f"Removed {result.deleted_count} notifications older than {days} days")
        return result.deleted_count

    async def list_for_user(self, user_id: str, unread_only: bool = False, limit: int = 20, skip: int = 0) -> Dict[str, Any]:
        query: Dict[str, Any] = {"user_id": user_id, "destroyed": False}
        if unread_only:
            query["is_read"] = False
        items = await self.collection.find(query).sort("created_at", -1).skip(skip).limit(limit).to_list(length=limit)
        unread = await self.collection.count_documents({"user_id": user_id, "destroyed": False, "is_read": False})
        return {"notifications": items, "unread_count": unread}

    async def mark_as_read(self, notification_id: str) -> OperationResult:
        result = await self.collection.update_one(
            {"_id": notification_id, "destroyed": False},
            {"$set": {"is_read": True, "read_at": utc_now()}},
        )
        if result.matched_count == 0:
            return OperationResult.not_found("Notification not found")
        return OperationResult.ok("Notification marked as read")
