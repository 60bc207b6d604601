"""
Payment Service.

Creates VNPay checkout URLs for the three payable operations and records a temporary intent for
each, which the reconciler consumes when the gateway redirects back:

| Operation | Rows created before redirect | Intent payload |
|---|---|---|
| membership | one unpaid subscription (removed if the checkout cannot be created) | subscription id |
| booking | N pending bookings (rolled back together if any fails or the checkout cannot be created) | booking ids, total |
| class | none (conflict-checked first) | user id, class id, price |
"""

from datetime import datetime, timedelta
from typing import List, Optional

from gym_management.config import Settings, settings as default_settings
from gym_management.managers.logging_manager import get_logger
from gym_management.models.booking_models import CreateBookingRequest
from gym_management.models.payment_models import (
    BookingIntent,
    ClassIntent,
    CreateBookingPaymentItem,
    MembershipIntent,
    PaymentUrlResponse,
)
from gym_management.models.result_models import OperationResult
from gym_management.utils.date_utils import calculate_discounted_price, utc_now
from gym_management.utils.identifiers import transaction_ref_from_timestamp

logger = get_logger(prefix="[PaymentService]")


class PaymentService:
    def __init__(
        self,
        intent_store,
        vnpay_client,
        subscription_service,
        booking_service,
        class_session_service,
        class_enrollment_service,
        settings: Optional[Settings] = None,
    ):
        self.intent_store = intent_store
        self.vnpay_client = vnpay_client
        self.subscription_service = subscription_service
        self.booking_service = booking_service
        self.class_session_service = class_session_service
        self.class_enrollment_service = class_enrollment_service
        self.settings = settings or default_settings

    def _expiry(self, now: datetime) -> datetime:
        return now + timedelta(seconds=self.settings.PAYMENT_INTENT_TTL_SECONDS)

    async def create_membership_payment(
        self, user_id: str, membership_id: str, ip_address: str = "127.0.0.1"
    ) -> OperationResult:
        now = utc_now()
        txn_ref = transaction_ref_from_timestamp()
        subscribed = await self.subscription_service.subscribe(user_id, membership_id, now, transaction_ref=txn_ref)
        if not subscribed.success:
            return subscribed

        membership = subscribed.data["membership"]
        subscription_id = subscribed.data["subscription_id"]
        try:
            price = calculate_discounted_price(membership["price"], membership.get("discount", 0))["final_price"]
            payment_url = self.vnpay_client.build_payment_url(
                txn_ref, price, membership.get("name", ""), ip_address, now
            )
            intent = MembershipIntent(
                transaction_ref=txn_ref,
                payment_url=payment_url,
                expire_at=self._expiry(now),
                created_at=now,
                subscription_id=subscription_id,
                user_id=user_id,
                membership_id=membership_id,
            )
            await self.intent_store.save(intent)
        except Exception:
            logger.warning(f"Checkout for subscription {subscription_id} failed, removing it")
            await self.subscription_service.delete_pending(subscription_id)
            raise
        return OperationResult.ok(
            "Payment URL created",
            data=PaymentUrlResponse(payment_url=payment_url, transaction_ref=txn_ref, expire_at=intent.expire_at),
        )

    async def create_booking_payment(
        self, items: List[CreateBookingPaymentItem], ip_address: str = "127.0.0.1"
    ) -> OperationResult:
        if not items:
            return OperationResult.fail("No bookings to pay for")
        if len({item.user_id for item in items}) != 1:
            return OperationResult.fail("All bookings in one payment must belong to the same user")

        booking_ids: List[str] = []
        for item in items:
            result = await self.booking_service.create_booking(
                CreateBookingRequest(
                    user_id=item.user_id,
                    schedule_id=item.schedule_id,
                    price=item.price,
                    title=item.title,
                    note=item.note,
                )
            )
            if not result.success:
                if booking_ids:
                    logger.warning(f"Rolling back {len(booking_ids)} bookings after failure: {result.message}")
                    await self.booking_service.delete_pending_bookings(booking_ids)
                return result
            booking_ids.append(result.data["booking_id"])

        total_price = sum(item.price for item in items)
        title = items[0].title if len(items) == 1 else f"{len(items)} personal training sessions"
        now = utc_now()
        txn_ref = transaction_ref_from_timestamp()
        try:
            payment_url = self.vnpay_client.build_payment_url(txn_ref, total_price, title, ip_address, now)
            intent = BookingIntent(
                transaction_ref=txn_ref,
                payment_url=payment_url,
                expire_at=self._expiry(now),
                created_at=now,
                booking_ids=booking_ids,
                user_id=items[0].user_id,
                total_price=total_price,
                title=title,
            )
            await self.intent_store.save(intent)
        except Exception:
            logger.warning(f"Checkout for {len(booking_ids)} bookings failed, rolling them back")
            await self.booking_service.delete_pending_bookings(booking_ids)
            raise
        logger.info(f"Payment {txn_ref} created for {len(booking_ids)} bookings, total {total_price}")
        return OperationResult.ok(
            "Payment URL created",
            data=PaymentUrlResponse(
                payment_url=payment_url,
                transaction_ref=txn_ref,
                expire_at=intent.expire_at,
                booking_ids=booking_ids,
            ),
        )

    async def create_class_payment(self, user_id: str, class_id: str, ip_address: str = "127.0.0.1") -> OperationResult:
        gym_class = await self.class_session_service.get_class(class_id)
        if gym_class is None:
            return OperationResult.not_found("Class not found")
        if await self.class_enrollment_service.has_active_enrollment(user_id, class_id):
            return OperationResult.fail("Already enrolled in this class", reason="ALREADY_EXISTS")

        conflict = await self.class_enrollment_service.check_schedule_conflict(user_id, class_id)
        if conflict is not None:
            return OperationResult.fail(
                f"Cannot enroll: {conflict.message}. Class session at "
                f"{conflict.class_session.start_time.isoformat()} conflicts with existing booking at "
                f"{conflict.existing_booking.start_time.isoformat()}",
                reason="CONFLICT",
                data=conflict.model_dump(mode="json"),
            )

        now = utc_now()
        txn_ref = transaction_ref_from_timestamp()
        title = gym_class.get("name", "")
        payment_url = self.vnpay_client.build_payment_url(txn_ref, gym_class["price"], title, ip_address, now)
        intent = ClassIntent(
            transaction_ref=txn_ref,
            payment_url=payment_url,
            expire_at=self._expiry(now),
            created_at=now,
            user_id=user_id,
            class_id=class_id,
            price=gym_class["price"],
            title=title,
        )
        await self.intent_store.save(intent)
        return OperationResult.ok(
            "Payment URL created",
            data=PaymentUrlResponse(payment_url=payment_url, transaction_ref=txn_ref, expire_at=intent.expire_at),
        )
