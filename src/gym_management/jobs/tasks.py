"""
Periodic reminder, rollover and cleanup tasks.

Every task polls the collections it needs and returns a stats dict. A failure on one item is logged
and counted in `errors` without stopping the batch; a failure of the initial query is logged and the
task simply reports `failed=True`, to be retried on its next scheduled tick.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from gym_management.config import Settings, settings as default_settings
from gym_management.managers.logging_manager import get_logger
from gym_management.utils.date_utils import count_remaining_days, day_bounds, utc_now

logger = get_logger(prefix="[Jobs]")


def _stats() -> Dict[str, Any]:
    return {"processed": 0, "created": 0, "skipped": 0, "errors": 0, "failed": False}


def _tally(stats: Dict[str, Any], result) -> None:
    if result.success:
        stats["created"] += 1
    else:
        stats["skipped"] += 1


class GymJobs:
    def __init__(
        self,
        booking_service,
        class_session_service,
        class_enrollment_service,
        subscription_service,
        membership_service,
        notification_service,
        settings: Optional[Settings] = None,
    ):
        self.booking_service = booking_service
        self.class_session_service = class_session_service
        self.class_enrollment_service = class_enrollment_service
        self.subscription_service = subscription_service
        self.membership_service = membership_service
        self.notification_service = notification_service
        self.settings = settings or default_settings

    async def send_booking_reminders(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        stats = _stats()
        try:
            bookings = await self.booking_service.get_upcoming_bookings_for_reminder(
                self.settings.BOOKING_REMINDER_MINUTES, now
            )
        except Exception as e:
            logger.error(f"Booking reminder job failed: {e}", exc_info=True)
            stats["failed"] = True
            return stats

        for booking in bookings:
            stats["processed"] += 1
            schedule = booking["schedule"]
            try:
                _tally(
                    stats,
                    await self.notification_service.create_booking_reminder(
                        booking["user_id"], booking["_id"], schedule["start_time"]
                    ),
                )
                _tally(
                    stats,
                    await self.notification_service.create_booking_reminder(
                        schedule["trainer_id"], booking["_id"], schedule["start_time"], is_trainer=True
                    ),
                )
            except Exception as e:
                stats["errors"] += 1
                logger.error(f"Reminder for booking {booking.get('_id')} failed: {e}", exc_info=True)

        logger.info(f"Booking reminders: {stats}")
        return stats

    async def send_class_reminders(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        stats = _stats()
        try:
            sessions = await self.class_session_service.get_upcoming_sessions_for_reminder(
                self.settings.CLASS_REMINDER_MINUTES, now
            )
        except Exception as e:
            logger.error(f"Class reminder job failed: {e}", exc_info=True)
            stats["failed"] = True
            return stats

        for session in sessions:
            stats["processed"] += 1
            users = session.get("users") or []
            try:
                for user_id in users:
                    if not await self.class_enrollment_service.has_active_enrollment(user_id, session["class_id"]):
                        stats["skipped"] += 1
                        continue
                    _tally(
                        stats,
                        await self.notification_service.create_class_reminder(
                            user_id, session["_id"], session.get("title", ""), session["start_time"]
                        ),
                    )
                for trainer_id in session.get("trainers") or []:
                    _tally(
                        stats,
                        await self.notification_service.create_class_reminder(
                            trainer_id,
                            session["_id"],
                            session.get("title", ""),
                            session["start_time"],
                            is_trainer=True,
                            total_users=len(users),
                        ),
                    )
            except Exception as e:
                stats["errors"] += 1
                logger.error(f"Reminder for session {session.get('_id')} failed: {e}", exc_info=True)

        logger.info(f"Class reminders: {stats}")
        return stats

    async def complete_finished_bookings(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        stats = _stats()
        stats["updated"] = 0
        try:
            bookings = await self.booking_service.get_bookings_to_complete(now)
            stats["processed"] = len(bookings)
            stats["updated"] = await self.booking_service.complete_bookings([b["_id"] for b in bookings])
        except Exception as e:
            logger.error(f"Booking status job failed: {e}", exc_info=True)
            stats["failed"] = True
            return stats

        logger.info(f"Booking status rollover: {stats['updated']}/{stats['processed']} completed")
        return stats

    async def notify_expiring_memberships(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or utc_now()
        stats = _stats()
        try:
            subscriptions = await self.subscription_service.get_active_subscriptions()
        except Exception as e:
            logger.error(f"Membership expiring job failed: {e}", exc_info=True)
            stats["failed"] = True
            return stats

        thresholds = set(self.settings.MEMBERSHIP_REMINDER_DAYS)
        for subscription in subscriptions:
            stats["processed"] += 1
            try:
                days_left = count_remaining_days(subscription.get("end_date"), now)
                if days_left not in thresholds:
                    continue
                membership = await self.membership_service.get_membership(subscription["membership_id"]) or {}
                _tally(
                    stats,
                    await self.notification_service.create_membership_expiring_notification(
                        subscription["user_id"],
                        subscription["_id"],
                        membership.get("name", ""),
                        subscription["end_date"],
                        days_left,
                    ),
                )
            except Exception as e:
                stats["errors"] += 1
                logger.error(f"Expiring notice for {subscription.get('_id')} failed: {e}", exc_info=True)

        logger.info(f"Membership expiring notices: {stats}")
        return stats

    async def notify_expired_memberships(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        stats = _stats()
        start, end = day_bounds(now or utc_now())
        try:
            subscriptions = await self.subscription_service.get_expired_subscriptions_between(start, end)
        except Exception as e:
            logger.error(f"Membership expired job failed: {e}", exc_info=True)
            stats["failed"] = True
            return stats

        for subscription in subscriptions:
            stats["processed"] += 1
            try:
                membership = await self.membership_service.get_membership(subscription["membership_id"]) or {}
                _tally(
                    stats,
                    await self.notification_service.create_membership_expired_notification(
                        subscription["user_id"], subscription["_id"], membership.get("name", "")
                    ),
                )
            except Exception as e:
                stats["errors"] += 1
                logger.error(f"Expired notice for {subscription.get('_id')} failed: {e}", exc_info=True)

        logger.info(f"Membership expired notices: {stats}")
        return stats

    async def sweep_expired_subscriptions(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        try:
            stats = await self.subscription_service.sweep_expired(now)
        except Exception as e:
            logger.error(f"Subscription sweep failed: {e}", exc_info=True)
            return {"processed": 0, "expired": 0, "errors": 0, "failed": True}
        logger.info(f"Subscription sweep: {stats}")
        return {**stats, "failed": False}

    async def cleanup_notifications(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        try:
            deleted = await self.notification_service.delete_older_than(
                self.settings.NOTIFICATION_RETENTION_DAYS, now
            )
        except Exception as e:
            logger.error(f"Notification cleanup failed: {e}", exc_info=True)
            return {"deleted": 0, "failed": True}
        return {"deleted": deleted, "failed": False}
