"""
Compensating cleanup for payment intents that expire unconsumed.

Redis publishes `__keyevent@<db>__:expired` with the key name when a `payment_intent:{ref}` key's TTL
elapses. The listener then reads the intent's backup copy and deletes the speculative rows created
with it: the pending subscription of a membership intent, or the pending bookings of a booking intent.
Class intents create nothing up front and need no cleanup.
"""

import asyncio
from typing import Optional

from redis.exceptions import RedisError

from gym_management.managers.logging_manager import get_logger
from gym_management.models.lifecycle import IntentEvent, IntentState, intent_machine
from gym_management.models.payment_models import BookingIntent, MembershipIntent
from gym_management.services.payment_intent_store import transaction_ref_from_key

logger = get_logger(prefix="[IntentExpiryListener]")


class IntentExpiryListener:
    def __init__(self, redis_manager, intent_store, subscription_service, booking_service):
        self.redis_manager = redis_manager
        self.intent_store = intent_store
        self.subscription_service = subscription_service
        self.booking_service = booking_service
        self._task: Optional[asyncio.Task] = None

    async def handle_expired_key(self, key: str) -> bool:
        """Undo the rows tied to an expired intent key. Returns True when cleanup ran."""
        transaction_ref = transaction_ref_from_key(key)
        if transaction_ref is None:
            return False

        intent = await self.intent_store.pop_backup(transaction_ref)
        if intent is None:
            logger.warning(f"Intent {transaction_ref} expired without a backup; nothing to clean up")
            return False

        intent_machine.next(IntentState.CREATED, IntentEvent.TTL_ELAPSED)
        if isinstance(intent, MembershipIntent):
            await self.subscription_service.delete_pending(intent.subscription_id)
        elif isinstance(intent, BookingIntent):
            await self.booking_service.delete_pending_bookings(intent.booking_ids)
        logger.info(f"Cleaned up expired {intent.payment_type} intent {transaction_ref}")
        return True

    async def run(self) -> None:
        pubsub = self.redis_manager.get_client().pubsub()
        await pubsub.subscribe(self.redis_manager.expired_channel)
        logger.info(f"Listening on {self.redis_manager.expired_channel}")
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    await self.handle_expired_key(message["data"])
                except Exception as e:
                    logger.error(f"Cleanup for expired key {message.get('data')} failed: {e}", exc_info=True)
        finally:
            await pubsub.unsubscribe()
            await pubsub.aclose()

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name="intent-expiry-listener")
            self._task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if isinstance(error, RedisError):
            logger.error(f"Expiry listener stopped after Redis error: {error}")
        elif error is not None:
            logger.error(f"Expiry listener crashed: {error}")

    async def stop(self) -> None:
        if self._task is None:
            return
        if not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
