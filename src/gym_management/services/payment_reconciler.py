"""
# Payment Reconciler

Turns a VNPay return redirect into exactly one business-state transition.

## Flow

```
gateway redirect ──▶ verify signature ──▶ consume intent (GETDEL) ──▶ branch on intent.payment_type
                           │                       │
                        invalid                 missing
                           ▼                       ▼
                     failure redirect        failure redirect
```

| payment_type | on failure | on success |
|---|---|---|
| membership | delete the pending subscription | activate it from the pay date (or extend the user's active one), write one payment row; failure redirect if the pending record is gone |
| booking | delete every pending booking of the batch | confirm each booking, one payment row per booking (its own price) |
| class | nothing to undo | create the paid enrollment, add the user to upcoming sessions, one payment row |

The intent is removed by the consume step itself, so it disappears exactly once whatever the branch,
and a duplicate callback finds nothing to consume. A callback with a bad signature leaves the intent
untouched; the TTL and expiry listener clean it up.

The steps after consumption are independent single-document writes. An infrastructure error part way
through propagates to the caller (HTTP 500) and leaves the earlier writes in place.
"""

from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel

from gym_management.config import Settings, settings as default_settings
from gym_management.managers.logging_manager import get_logger
from gym_management.models.lifecycle import IntentEvent, IntentState, intent_machine
from gym_management.models.payment_models import (
    BookingIntent,
    BookingReference,
    ClassIntent,
    EnrollmentReference,
    MembershipIntent,
    Payment,
    PaymentIntent,
    PaymentMethod,
    SubscriptionReference,
)
from gym_management.models.user_models import UserRole
from gym_management.utils.date_utils import utc_now
from gym_management.utils.vnpay import VnpayReturn, build_redirect_url

logger = get_logger(prefix="[PaymentReconciler]")


class ReturnOutcome(BaseModel):
    success: bool
    redirect_url: str
    payment_type: Optional[str] = None
    intent_state: Optional[IntentState] = None
    message: str = ""


class PaymentReconciler:
    def __init__(
        self,
        intent_store,
        vnpay_client,
        user_service,
        subscription_service,
        booking_service,
        class_session_service,
        class_enrollment_service,
        payment_ledger,
        settings: Optional[Settings] = None,
    ):
        self.intent_store = intent_store
        self.vnpay_client = vnpay_client
        self.user_service = user_service
        self.subscription_service = subscription_service
        self.booking_service = booking_service
        self.class_session_service = class_session_service
        self.class_enrollment_service = class_enrollment_service
        self.payment_ledger = payment_ledger
        self.settings = settings or default_settings

    @property
    def failed_url(self) -> str:
        return f"{self.settings.FE_URL}/user/payment/failed"

    def _success_url(self, verified: VnpayReturn, role: str = UserRole.USER.value) -> str:
        area = "user" if role == UserRole.USER.value else "pt"
        return build_redirect_url(f"{self.settings.FE_URL}/{area}/payment/success?", verified.raw)

    def _failure(self, message: str, intent: Optional[PaymentIntent] = None) -> ReturnOutcome:
        return ReturnOutcome(
            success=False,
            redirect_url=self.failed_url,
            payment_type=intent.payment_type if intent else None,
            intent_state=intent_machine.next(IntentState.CREATED, IntentEvent.FAILURE) if intent else None,
            message=message,
        )

    async def handle_vnpay_return(self, query: Mapping[str, Any]) -> ReturnOutcome:
        verified = self.vnpay_client.verify_return(query)
        if not verified.is_verified:
            return self._failure("Invalid signature")

        intent = await self.intent_store.consume(verified.txn_ref)
        if intent is None:
            return self._failure("Unknown, expired or already processed transaction")

        if not verified.is_success:
            await self._undo(intent)
            logger.info(f"Payment {verified.txn_ref} failed with code {verified.response_code}")
            return self._failure(f"Payment failed ({verified.response_code})", intent)

        if isinstance(intent, MembershipIntent):
            redirect_url = await self._complete_membership(intent, verified)
            if redirect_url is None:
                return self._failure("Paid subscription could not be activated", intent)
        elif isinstance(intent, BookingIntent):
            redirect_url = await self._complete_booking(intent, verified)
        else:
            redirect_url = await self._complete_class(intent, verified)

        logger.info(f"Payment {verified.txn_ref} ({intent.payment_type}) reconciled")
        return ReturnOutcome(
            success=True,
            redirect_url=redirect_url,
            payment_type=intent.payment_type,
            intent_state=intent_machine.next(IntentState.CREATED, IntentEvent.SUCCESS),
            message="Payment successful",
        )

    async def _undo(self, intent: PaymentIntent) -> None:
        if isinstance(intent, MembershipIntent):
            await self.subscription_service.delete_pending(intent.subscription_id)
        elif isinstance(intent, BookingIntent):
            await self.booking_service.delete_pending_bookings(intent.booking_ids)

    async def _complete_membership(self, intent: MembershipIntent, verified: VnpayReturn) -> Optional[str]:
        paid_at = verified.pay_date or utc_now()
        subscription = await self.subscription_service.activate_after_payment(intent.subscription_id, paid_at)
        if subscription is None:
            logger.error(
                f"Paid transaction {verified.txn_ref} ({verified.amount}) has no subscription to activate, "
                f"user {intent.user_id} needs a manual refund"
            )
            return None

        await self.payment_ledger.record(
            Payment(
                user_id=intent.user_id,
                reference=SubscriptionReference(subscription_id=subscription["_id"]),
                amount=verified.amount,
                payment_method=PaymentMethod.VNPAY,
                payment_date=paid_at,
                description=verified.order_info,
            )
        )
        user: Dict[str, Any] = await self.user_service.get_user(intent.user_id) or {}
        return self._success_url(verified, user.get("role", UserRole.USER.value))

    async def _complete_booking(self, intent: BookingIntent, verified: VnpayReturn) -> str:
        paid_at = verified.pay_date or utc_now()
        for booking_id in intent.booking_ids:
            booking = await self.booking_service.confirm_booking(booking_id)
            if booking is None:
                logger.error(f"Paid transaction {verified.txn_ref} references missing booking {booking_id}")
                continue
            await self.payment_ledger.record(
                Payment(
                    user_id=booking["user_id"],
                    reference=BookingReference(booking_id=booking_id),
                    amount=booking["price"],
                    payment_method=PaymentMethod.VNPAY,
                    payment_date=paid_at,
                    description=booking.get("title", ""),
                )
            )
        return self._success_url(verified)

    async def _complete_class(self, intent: ClassIntent, verified: VnpayReturn) -> str:
        paid_at = verified.pay_date or utc_now()
        enrollment = await self.class_enrollment_service.create_paid_enrollment(
            intent.user_id, intent.class_id, verified.amount
        )
        await self.class_session_service.add_user_to_upcoming_sessions(intent.user_id, intent.class_id)
        await self.payment_ledger.record(
            Payment(
                user_id=intent.user_id,
                reference=EnrollmentReference(enrollment_id=enrollment["_id"]),
                amount=verified.amount,
                payment_method=PaymentMethod.VNPAY,
                payment_date=paid_at,
                description=verified.order_info,
            )
        )
        return self._success_url(verified)
