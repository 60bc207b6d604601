"""
Subscription Service.

Membership subscriptions move through `subscription_machine`:

    PENDING (expired/unpaid) --payment confirmed--> ACTIVE (active/paid) --expire--> EXPIRED (expired/paid)

Expiry is applied by `reconcile_expiry()`, a mutation that recomputes `remaining_sessions` from
`end_date` and, when nothing remains, expires the subscription and marks its owner inactive. It runs
on the read path (`get_current_by_user_id`) and from the daily sweep job.

A user holds at most one ACTIVE subscription. `subscribe()` refuses while one is active; older unpaid
records are left for their payment intent's expiry to clean up, since their checkout URL may still be
paid. A payment that lands while another subscription is already active extends that subscription
instead of activating a second one. Front-desk sales are refused while an online checkout is live.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from gym_management.config import Settings, settings as default_settings
from gym_management.managers.logging_manager import get_logger
from gym_management.models.lifecycle import (
    SubscriptionEvent,
    SubscriptionState,
    subscription_state,
    transition_subscription,
)
from gym_management.models.notification_models import NotificationReferenceType
from gym_management.models.payment_models import Payment, PaymentMethod, PaymentStatus, SubscriptionReference
from gym_management.models.result_models import OperationResult
from gym_management.models.subscription_models import CurrentSubscription, Subscription, SubscriptionStatus
from gym_management.models.user_models import UserStatus
from gym_management.utils.date_utils import (
    calculate_discounted_price,
    calculate_end_date,
    count_remaining_days,
    ensure_aware,
    utc_now,
)

logger = get_logger(prefix="[SubscriptionService]")


class SubscriptionService:
    def __init__(
        self,
        db,
        user_service,
        membership_service,
        notification_service,
        payment_ledger,
        settings: Optional[Settings] = None,
        intent_store=None,
    ):
        self.db = db
        self.user_service = user_service
        self.membership_service = membership_service
        self.notification_service = notification_service
        self.payment_ledger = payment_ledger
        self.settings = settings or default_settings
        self.intent_store = intent_store
        self.collection_name = "subscriptions"

    @property
    def collection(self):
        return self.db.get_collection(self.collection_name)

    async def get_subscription(self, subscription_id: str) -> Optional[Dict[str, Any]]:
        return await self.collection.find_one({"_id": subscription_id})

    async def _active_document(self, user_id: str) -> Optional[Dict[str, Any]]:
        return await self.collection.find_one(
            {
                "user_id": user_id,
                "status": SubscriptionStatus.ACTIVE.value,
                "payment_status": PaymentStatus.PAID.value,
                "destroyed": False,
            },
            sort=[("created_at", -1)],
        )

    async def _current_document(self, user_id: str) -> Optional[Dict[str, Any]]:
        """The active subscription if there is one, otherwise the most recent record."""
        active = await self._active_document(user_id)
        if active is not None:
            return active
        return await self.collection.find_one(
            {"user_id": user_id, "destroyed": False},
            sort=[("created_at", -1)],
        )

    async def _pending_documents(self, user_id: str) -> List[Dict[str, Any]]:
        cursor = self.collection.find(
            {"user_id": user_id, "payment_status": PaymentStatus.UNPAID.value, "destroyed": False}
        )
        return await cursor.to_list(length=None)

    async def _live_checkout(self, user_id: str) -> Optional[Dict[str, Any]]:
        """A pending subscription whose payment intent can still be paid."""
        if self.intent_store is None:
            return None
        for pending in await self._pending_documents(user_id):
            transaction_ref = pending.get("transaction_ref")
            if transaction_ref and await self.intent_store.get(transaction_ref) is not None:
                return pending
        return None

    async def reconcile_expiry(self, subscription: Dict[str, Any], now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Bring `remaining_sessions` and `status` in line with `end_date`.

        Writes only when something changed, so calling it twice in a row is a no-op the second time.
        Returns the subscription with the reconciled values.
        """
        state = subscription_state(subscription.get("status", ""), subscription.get("payment_status", ""))
        if state != SubscriptionState.ACTIVE:
            return subscription

        remaining = count_remaining_days(subscription.get("end_date"), now)
        if remaining > 0:
            if remaining != subscription.get("remaining_sessions"):
                await self.collection.update_one(
                    {"_id": subscription["_id"]},
                    {"$set": {"remaining_sessions": remaining}},
                )
            return {**subscription, "remaining_sessions": remaining}

        fields = transition_subscription(subscription["status"], subscription["payment_status"], SubscriptionEvent.EXPIRE)
        await self.collection.update_one(
            {"_id": subscription["_id"], "status": SubscriptionStatus.ACTIVE.value},
            {"$set": {**fields, "remaining_sessions": 0, "updated_at": utc_now()}},
        )
        await self.user_service.set_status(subscription["user_id"], UserStatus.INACTIVE)
        logger.info(f"Subscription {subscription['_id']} expired")
        return {**subscription, **fields, "remaining_sessions": 0}

    async def get_current_by_user_id(self, user_id: str, now: Optional[datetime] = None) -> CurrentSubscription:
        subscription = await self._current_document(user_id)
        if subscription is None:
            return CurrentSubscription.placeholder(user_id)
        return CurrentSubscription.from_document(await self.reconcile_expiry(subscription, now))

    async def subscribe(
        self,
        user_id: str,
        membership_id: str,
        now: Optional[datetime] = None,
        transaction_ref: Optional[str] = None,
    ) -> OperationResult:
        """Create an unpaid subscription awaiting payment of `transaction_ref`."""
        now = now or utc_now()
        if await self.user_service.get_user(user_id) is None:
            return OperationResult.not_found("User not found")
        membership = await self.membership_service.get_membership(membership_id)
        if membership is None:
            return OperationResult.not_found("Membership not found")

        current = await self._current_document(user_id)
        if current is not None:
            current = await self.reconcile_expiry(current, now)
            if subscription_state(current["status"], current["payment_status"]) == SubscriptionState.ACTIVE:
                return OperationResult.fail(
                    "User already has an active subscription", reason="ACTIVE_SUBSCRIPTION_EXISTS"
                )
            await self.notification_service.delete_by_reference(current["_id"], NotificationReferenceType.MEMBERSHIP)

        hold = self.settings.PAYMENT_INTENT_TTL_SECONDS + self.settings.PAYMENT_INTENT_BACKUP_GRACE_SECONDS
        subscription = Subscription(
            user_id=user_id,
            membership_id=membership_id,
            transaction_ref=transaction_ref,
            expire_at=now + timedelta(seconds=hold),
            created_at=now,
        )
        await self.collection.insert_one(subscription.to_document())
        logger.info(f"User {user_id} subscribed to membership {membership_id} ({subscription.id}), awaiting payment")
        return OperationResult.ok(
            "Subscription created",
            data={"subscription_id": subscription.id, "membership": membership},
        )

    async def activate_after_payment(self, subscription_id: str, paid_at: datetime) -> Optional[Dict[str, Any]]:
        """
        Give a pending subscription its validity window starting at `paid_at`.

        When the user already has another active subscription, that one is extended by the paid
        membership's duration and the pending record is removed. Returns the subscription that now
        carries the payment, or `None` when the pending record or its membership is gone.
        """
        subscription = await self.get_subscription(subscription_id)
        if subscription is None:
            logger.warning(f"Cannot activate missing subscription {subscription_id}")
            return None
        membership = await self.membership_service.get_membership(subscription["membership_id"])
        if membership is None:
            logger.warning(f"Membership {subscription['membership_id']} vanished before activation")
            return None

        active = await self._active_document(subscription["user_id"])
        if active is not None and active["_id"] != subscription_id:
            return await self._extend(active, subscription_id, membership, paid_at)

        fields = transition_subscription(
            subscription["status"], subscription["payment_status"], SubscriptionEvent.PAYMENT_CONFIRMED
        )
        end_date = calculate_end_date(paid_at, membership["duration_month"])
        update = {
            **fields,
            "start_date": paid_at,
            "end_date": end_date,
            "remaining_sessions": count_remaining_days(end_date),
            "updated_at": utc_now(),
        }
        await self.collection.update_one(
            {"_id": subscription_id, "payment_status": PaymentStatus.UNPAID.value},
            {"$set": update, "$unset": {"expire_at": ""}},
        )
        await self.user_service.set_status(subscription["user_id"], UserStatus.ACTIVE)
        logger.info(f"Activated subscription {subscription_id} until {end_date.isoformat()}")
        updated = {**subscription, **update, "membership": membership}
        updated.pop("expire_at", None)
        return updated

    async def _extend(
        self, active: Dict[str, Any], pending_id: str, membership: Dict[str, Any], paid_at: datetime
    ) -> Dict[str, Any]:
        base = max(ensure_aware(active["end_date"]), ensure_aware(paid_at))
        end_date = calculate_end_date(base, membership["duration_month"])
        update = {"end_date": end_date, "remaining_sessions": count_remaining_days(end_date), "updated_at": utc_now()}
        await self.collection.update_one({"_id": active["_id"]}, {"$set": update})
        await self.delete_pending(pending_id)
        await self.user_service.set_status(active["user_id"], UserStatus.ACTIVE)
        logger.info(
            f"Payment for {pending_id} extended active subscription {active['_id']} until {end_date.isoformat()}"
        )
        return {**active, **update, "membership": membership}

    async def delete_pending(self, subscription_id: str) -> bool:
        result = await self.collection.delete_one(
            {"_id": subscription_id, "payment_status": PaymentStatus.UNPAID.value}
        )
        if result.deleted_count:
            logger.info(f"Removed pending subscription {subscription_id}")
        return result.deleted_count > 0

    async def delete(self, subscription_id: str) -> OperationResult:
        """Soft-delete, clearing membership notifications and deactivating the owner."""
        subscription = await self.get_subscription(subscription_id)
        if subscription is None or subscription.get("destroyed"):
            return OperationResult.not_found("Subscription not found")

        await self.notification_service.delete_by_reference(subscription_id, NotificationReferenceType.MEMBERSHIP)
        await self.user_service.set_status(subscription["user_id"], UserStatus.INACTIVE)
        await self.collection.update_one(
            {"_id": subscription_id},
            {"$set": {"destroyed": True, "updated_at": utc_now()}},
        )
        logger.info(f"Soft-deleted subscription {subscription_id}")
        return OperationResult.ok("Subscription deleted")

    async def restore(self, subscription_id: str, now: Optional[datetime] = None) -> OperationResult:
        subscription = await self.get_subscription(subscription_id)
        if subscription is None or not subscription.get("destroyed"):
            return OperationResult.not_found("No deleted subscription with that id")

        await self.collection.update_one(
            {"_id": subscription_id},
            {"$set": {"destroyed": False, "updated_at": utc_now()}},
        )
        restored = await self.reconcile_expiry({**subscription, "destroyed": False}, now)
        if subscription_state(restored["status"], restored["payment_status"]) == SubscriptionState.ACTIVE:
            await self.user_service.set_status(subscription["user_id"], UserStatus.ACTIVE)
        return OperationResult.ok("Subscription restored", data=CurrentSubscription.from_document(restored))

    async def subscribe_for_staff(self, user_id: str, membership_id: str, now: Optional[datetime] = None) -> OperationResult:
        """Front-desk sale paid in cash: the subscription starts active immediately."""
        now = now or utc_now()
        if await self.user_service.get_user(user_id) is None:
            return OperationResult.not_found("User not found")
        membership = await self.membership_service.get_membership(membership_id)
        if membership is None:
            return OperationResult.not_found("Membership not found")

        current = await self._current_document(user_id)
        if current is not None:
            current = await self.reconcile_expiry(current, now)
            if subscription_state(current["status"], current["payment_status"]) == SubscriptionState.ACTIVE:
                return OperationResult.fail(
                    "User already has an active subscription", reason="ACTIVE_SUBSCRIPTION_EXISTS"
                )

        checkout = await self._live_checkout(user_id)
        if checkout is not None:
            return OperationResult.fail(
                "User has an online payment in progress",
                reason="CONFLICT",
                data={"subscription_id": checkout["_id"], "transaction_ref": checkout["transaction_ref"]},
            )

        fields = transition_subscription(
            SubscriptionStatus.EXPIRED.value, PaymentStatus.UNPAID.value, SubscriptionEvent.STAFF_ACTIVATED
        )
        end_date = calculate_end_date(now, membership["duration_month"])
        subscription = Subscription(
            user_id=user_id,
            membership_id=membership_id,
            start_date=now,
            end_date=end_date,
            status=fields["status"],
            payment_status=fields["payment_status"],
            remaining_sessions=count_remaining_days(end_date, now),
            created_at=now,
        )
        await self.collection.insert_one(subscription.to_document())

        price = calculate_discounted_price(membership["price"], membership.get("discount", 0))["final_price"]
        await self.payment_ledger.record(
            Payment(
                user_id=user_id,
                reference=SubscriptionReference(subscription_id=subscription.id),
                amount=price,
                payment_method=PaymentMethod.CASH,
                payment_date=now,
                description=f"Membership {membership.get('name', '')} (front desk)",
            )
        )
        await self.user_service.set_status(user_id, UserStatus.ACTIVE)
        return OperationResult.ok("Subscription activated", data={"subscription_id": subscription.id})

    async def get_active_subscriptions(self) -> List[Dict[str, Any]]:
        cursor = self.collection.find(
            {
                "status": SubscriptionStatus.ACTIVE.value,
                "payment_status": PaymentStatus.PAID.value,
                "destroyed": False,
            }
        )
        return await cursor.to_list(length=None)

    async def get_expired_subscriptions_between(self, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        """Paid subscriptions whose end date falls in [start, end)."""
        cursor = self.collection.find(
            {
                "payment_status": PaymentStatus.PAID.value,
                "destroyed": False,
                "end_date": {"$gte": start, "$lt": end},
            }
        )
        return await cursor.to_list(length=None)

    async def sweep_expired(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Run `reconcile_expiry` on every active subscription whose end date has passed."""
        now = now or utc_now()
        cursor = self.collection.find(
            {
                "status": SubscriptionStatus.ACTIVE.value,
                "payment_status": PaymentStatus.PAID.value,
                "destroyed": False,
                "end_date": {"$lte": now},
            }
        )
        stats = {"processed": 0, "expired": 0, "errors": 0}
        for subscription in await cursor.to_list(length=None):
            stats["processed"] += 1
            try:
                reconciled = await self.reconcile_expiry(subscription, now)
                if reconciled["status"] == SubscriptionStatus.EXPIRED.value:
                    stats["expired"] += 1
            except Exception as e:
                stats["errors"] += 1
                logger.error(f"Failed to expire subscription {subscription.get('_id')}: {e}", exc_info=True)
        return stats
