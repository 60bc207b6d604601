"""
Service container.

Builds every service once, wiring collaborators through constructors, and owns the connect/disconnect
lifecycle of the MongoDB and Redis managers. The FastAPI lifespan creates one container and stores it
on `app.state.container`; tests build services directly with mocks instead.
"""

from typing import Optional

from gym_management.config import Settings, settings as default_settings
from gym_management.database import DatabaseManager
from gym_management.jobs.scheduler import JobScheduler
from gym_management.jobs.tasks import GymJobs
from gym_management.managers.logging_manager import get_logger
from gym_management.managers.redis_manager import RedisManager
from gym_management.services.booking_service import BookingService
from gym_management.services.class_enrollment_service import ClassEnrollmentService
from gym_management.services.class_session_service import ClassSessionService
from gym_management.services.intent_expiry_listener import IntentExpiryListener
from gym_management.services.membership_service import MembershipService
from gym_management.services.notification_service import NotificationService
from gym_management.services.payment_intent_store import PaymentIntentStore
from gym_management.services.payment_ledger import PaymentLedger
from gym_management.services.payment_reconciler import PaymentReconciler
from gym_management.services.payment_service import PaymentService
from gym_management.services.schedule_service import ScheduleService
from gym_management.services.statistics_service import StatisticsService
from gym_management.services.subscription_service import SubscriptionService
from gym_management.services.user_service import UserService
from gym_management.utils.vnpay import VnpayClient
from gym_management.websocket_manager import ConnectionManager

logger = get_logger(prefix="[Container]")


class ServiceContainer:
    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings
        self.db = DatabaseManager(self.settings)
        self.redis = RedisManager(self.settings)
        self.connection_manager = ConnectionManager()
        self.vnpay_client = VnpayClient(self.settings)
        self.intent_store = PaymentIntentStore(self.redis, self.settings)

        self.user_service = UserService(self.db)
        self.membership_service = MembershipService(self.db)
        self.payment_ledger = PaymentLedger(self.db)
        self.notification_service = NotificationService(self.db, self.settings, self.connection_manager)
        self.schedule_service = ScheduleService(self.db)
        self.booking_service = BookingService(
            self.db, self.schedule_service, self.user_service, self.notification_service, self.payment_ledger
        )
        self.class_session_service = ClassSessionService(self.db)
        self.class_enrollment_service = ClassEnrollmentService(
            self.db, self.class_session_service, self.booking_service, self.payment_ledger
        )
        self.subscription_service = SubscriptionService(
            self.db,
            self.user_service,
            self.membership_service,
            self.notification_service,
            self.payment_ledger,
            self.settings,
            intent_store=self.intent_store,
        )
        self.statistics_service = StatisticsService(self.db)
        self.payment_service = PaymentService(
            self.intent_store,
            self.vnpay_client,
            self.subscription_service,
            self.booking_service,
            self.class_session_service,
            self.class_enrollment_service,
            self.settings,
        )
        self.payment_reconciler = PaymentReconciler(
            self.intent_store,
            self.vnpay_client,
            self.user_service,
            self.subscription_service,
            self.booking_service,
            self.class_session_service,
            self.class_enrollment_service,
            self.payment_ledger,
            self.settings,
        )
        self.expiry_listener = IntentExpiryListener(
            self.redis, self.intent_store, self.subscription_service, self.booking_service
        )
        self.jobs = GymJobs(
            self.booking_service,
            self.class_session_service,
            self.class_enrollment_service,
            self.subscription_service,
            self.membership_service,
            self.notification_service,
            self.settings,
        )
        self.scheduler = JobScheduler(self.jobs, self.settings)

    async def connect(self):
        await self.db.connect()
        await self.db.create_indexes()
        await self.redis.connect()
        self.expiry_listener.start()
        if self.settings.JOBS_ENABLED:
            self.scheduler.start()
        logger.info("Services started")

    async def disconnect(self):
        self.scheduler.stop()
        await self.expiry_listener.stop()
        await self.redis.disconnect()
        await self.db.disconnect()
        logger.info("Services stopped")
