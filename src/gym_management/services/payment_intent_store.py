"""
Temporary payment intents in Redis.

An intent lives under `payment_intent:{ref}` for `PAYMENT_INTENT_TTL_SECONDS` (10 minutes by
default). A copy lives under `payment_intent_backup:{ref}` a little longer, because once Redis
expires the primary key its value is gone: the expiry listener reads the backup to undo the
speculative rows created alongside the intent.

`consume()` uses `GETDEL`, so of two concurrent gateway callbacks for the same reference only one
receives the intent.
"""

from typing import Optional

from pydantic import ValidationError
from redis.exceptions import RedisError

from gym_management.config import Settings, settings as default_settings
from gym_management.managers.logging_manager import get_logger
from gym_management.managers.redis_manager import RedisManager
from gym_management.models.payment_models import PaymentIntent, payment_intent_adapter

logger = get_logger(prefix="[PaymentIntentStore]")

INTENT_PREFIX = "payment_intent:"
BACKUP_PREFIX = "payment_intent_backup:"


def intent_key(transaction_ref: str) -> str:
    return f"{INTENT_PREFIX}{transaction_ref}"


def backup_key(transaction_ref: str) -> str:
    return f"{BACKUP_PREFIX}{transaction_ref}"


def transaction_ref_from_key(key: str) -> Optional[str]:
    """Reference of a primary intent key, `None` for any other key."""
    if key.startswith(INTENT_PREFIX):
        return key[len(INTENT_PREFIX):]
    return None


class PaymentIntentStore:
    def __init__(self, redis_manager: RedisManager, settings: Optional[Settings] = None):
        self.redis_manager = redis_manager
        self.settings = settings or default_settings

    @property
    def client(self):
        return self.redis_manager.get_client()

    def _decode(self, raw: Optional[str], key: str) -> Optional[PaymentIntent]:
        if raw is None:
            return None
        try:
            return payment_intent_adapter.validate_json(raw)
        except ValidationError as e:
            logger.error(f"Discarding malformed intent under {key}: {e}")
            return None

    async def save(self, intent: PaymentIntent) -> None:
        ttl = self.settings.PAYMENT_INTENT_TTL_SECONDS
        payload = intent.model_dump_json()
        try:
            await self.client.set(intent_key(intent.transaction_ref), payload, ex=ttl)
            await self.client.set(
                backup_key(intent.transaction_ref),
                payload,
                ex=ttl + self.settings.PAYMENT_INTENT_BACKUP_GRACE_SECONDS,
            )
        except RedisError as e:
            logger.error(f"Failed to save intent {intent.transaction_ref}: {e}", exc_info=True)
            raise
        logger.info(f"Saved {intent.payment_type} intent {intent.transaction_ref} (ttl {ttl}s)")

    async def get(self, transaction_ref: str) -> Optional[PaymentIntent]:
        key = intent_key(transaction_ref)
        return self._decode(await self.client.get(key), key)

    async def consume(self, transaction_ref: str) -> Optional[PaymentIntent]:
        """
        Atomically fetch and delete the intent; the backup is dropped as well.

        Returns `None` when the intent is unknown, already consumed or expired.
        """
        key = intent_key(transaction_ref)
        raw = await self.client.getdel(key)
        if raw is None:
            logger.warning(f"Intent {transaction_ref} not found (expired or already consumed)")
            return None
        await self.client.delete(backup_key(transaction_ref))
        return self._decode(raw, key)

    async def discard(self, transaction_ref: str) -> None:
        await self.client.delete(intent_key(transaction_ref), backup_key(transaction_ref))

    async def pop_backup(self, transaction_ref: str) -> Optional[PaymentIntent]:
        key = backup_key(transaction_ref)
        return self._decode(await self.client.getdel(key), key)
