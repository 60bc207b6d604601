from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from gym_management.config import Settings


def make_cursor(items=None):
    """Motor-style cursor: chainable sort/skip/limit, awaitable to_list."""
    cursor = MagicMock()
    cursor.sort.return_value = cursor
    cursor.skip.return_value = cursor
    cursor.limit.return_value = cursor
    cursor.to_list = AsyncMock(return_value=list(items or []))
    return cursor


def make_collection():
    collection = MagicMock()
    collection.find_one = AsyncMock(return_value=None)
    collection.insert_one = AsyncMock(return_value=MagicMock(inserted_id="new-id"))
    collection.insert_many = AsyncMock(return_value=MagicMock(inserted_ids=[]))
    collection.update_one = AsyncMock(return_value=MagicMock(matched_count=1, modified_count=1))
    collection.update_many = AsyncMock(return_value=MagicMock(matched_count=0, modified_count=0))
    collection.delete_one = AsyncMock(return_value=MagicMock(deleted_count=1))
    collection.delete_many = AsyncMock(return_value=MagicMock(deleted_count=0))
    collection.count_documents = AsyncMock(return_value=0)
    collection.find.return_value = make_cursor()
    collection.aggregate.return_value = make_cursor()
    return collection


@pytest.fixture
def collections():
    return {}


@pytest.fixture
def mock_db(collections):
    """Database manager whose `get_collection` hands out one mock per collection name."""
    db = MagicMock()
    db.get_collection.side_effect = lambda name: collections.setdefault(name, make_collection())
    return db


@pytest.fixture
def test_settings():
    return Settings(
        FE_URL="http://fe.test",
        SECRET_KEY="test-jwt-secret",
        VNPAY_TMN_CODE="GYMTEST1",
        VNPAY_HASH_SECRET="test-hash-secret",
        VNPAY_RETURN_URL="http://api.test/payments/vnpay-return",
        JOBS_ENABLED=False,
    )


@pytest.fixture
def now():
    return datetime(2024, 3, 10, 3, 0, tzinfo=timezone.utc)
