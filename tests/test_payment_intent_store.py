from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from gym_management.models.payment_models import BookingIntent, MembershipIntent
from gym_management.services.payment_intent_store import (
    PaymentIntentStore,
    backup_key,
    intent_key,
    transaction_ref_from_key,
)

EXPIRE_AT = datetime(2024, 3, 10, 3, 10, tzinfo=timezone.utc)


@pytest.fixture
def redis_client():
    client = MagicMock()
    client.set = AsyncMock()
    client.get = AsyncMock(return_value=None)
    client.getdel = AsyncMock(return_value=None)
    client.delete = AsyncMock()
    return client


@pytest.fixture
def store(redis_client, test_settings):
    manager = MagicMock()
    manager.get_client.return_value = redis_client
    return PaymentIntentStore(manager, test_settings)


def membership_intent():
    return MembershipIntent(
        transaction_ref="ref-1",
        expire_at=EXPIRE_AT,
        subscription_id="sub-1",
        user_id="user-1",
        membership_id="gold",
    )


def test_key_helpers():
    assert intent_key("ref-1") == "payment_intent:ref-1"
    assert backup_key("ref-1") == "payment_intent_backup:ref-1"
    assert transaction_ref_from_key("payment_intent:ref-1") == "ref-1"
    assert transaction_ref_from_key("payment_intent_backup:ref-1") is None
    assert transaction_ref_from_key("session:abc") is None


@pytest.mark.asyncio
async def test_save_writes_intent_and_longer_lived_backup(store, redis_client):
    await store.save(membership_intent())

    assert redis_client.set.await_count == 2
    primary, backup = redis_client.set.call_args_list
    assert primary.args[0] == "payment_intent:ref-1"
    assert primary.kwargs["ex"] == 600
    assert backup.args[0] == "payment_intent_backup:ref-1"
    assert backup.kwargs["ex"] == 660
    assert primary.args[1] == backup.args[1]


@pytest.mark.asyncio
async def test_consume_returns_typed_intent_once(store, redis_client):
    payload = membership_intent().model_dump_json()
    redis_client.getdel.side_effect = [payload, None]

    first = await store.consume("ref-1")
    second = await store.consume("ref-1")

    assert isinstance(first, MembershipIntent)
    assert first.subscription_id == "sub-1"
    assert second is None
    redis_client.getdel.assert_any_await("payment_intent:ref-1")
    redis_client.delete.assert_awaited_once_with("payment_intent_backup:ref-1")


@pytest.mark.asyncio
async def test_pop_backup_decodes_booking_intent(store, redis_client):
    intent = BookingIntent(
        transaction_ref="ref-2",
        expire_at=EXPIRE_AT,
        booking_ids=["b1", "b2"],
        user_id="user-1",
        total_price=700000,
    )
    redis_client.getdel.return_value = intent.model_dump_json()

    restored = await store.pop_backup("ref-2")

    assert isinstance(restored, BookingIntent)
    assert restored.booking_ids == ["b1", "b2"]
    redis_client.getdel.assert_awaited_once_with("payment_intent_backup:ref-2")


@pytest.mark.asyncio
async def test_malformed_payload_is_discarded(store, redis_client):
    redis_client.getdel.return_value = '{"payment_type": "unknown"}'
    assert await store.consume("ref-3") is None


@pytest.mark.asyncio
async def test_discard_removes_both_keys(store, redis_client):
    await store.discard("ref-1")
    redis_client.delete.assert_awaited_once_with("payment_intent:ref-1", "payment_intent_backup:ref-1")


@pytest.mark.asyncio
async def test_get_peeks_without_consuming(store, redis_client):
    redis_client.get.return_value = membership_intent().model_dump_json()

    intent = await store.get("ref-1")

    assert isinstance(intent, MembershipIntent)
    redis_client.get.assert_awaited_once_with("payment_intent:ref-1")
    redis_client.getdel.assert_not_awaited()
    redis_client.delete.assert_not_awaited()
    redis_client.get.return_value = None
    assert await store.get("ref-1") is None
