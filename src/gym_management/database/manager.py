"""
# Database Manager

Connection lifecycle and collection access for MongoDB, built on **Motor** (async PyMongo).

## Lifecycle

```
DatabaseManager(settings) ──connect()──▶ connected ──disconnect()──▶ closed
                                  │
                                  └─ create_indexes()
```

- `connect()` retries up to three times with exponential backoff (1s, 2s) on
  `ServerSelectionTimeoutError` / `ConnectionFailure`, then re-raises.
- `get_collection()` raises `ConnectionError` when called before `connect()`.
- The client is created with `tz_aware=True`, so every datetime read back is timezone-aware UTC.

## Indexes

`create_indexes()` is idempotent and creates:

| Collection | Index | Purpose |
|---|---|---|
| `subscriptions` | `expire_at` (TTL, 0s) | Removes unpaid subscriptions left behind by abandoned payments |
| `subscriptions` | `user_id, created_at` | Current-subscription lookup |
| `schedules` | `trainer_id, start_time, end_time` | Trainer overlap query |
| `bookings` | `user_id, status` / `schedule_id` | Booking conflicts and rollover |
| `class_sessions` | `class_id, start_time` | Upcoming-session lookups |
| `notifications` | `user_id, type, reference_id` / `created_at` | De-duplication and retention cleanup |
| `payments` | `reference_id, payment_type` / `payment_date` | Refunds and statistics |

## Usage

```python
db = DatabaseManager(settings)
await db.connect()
bookings = db.get_collection("bookings")
await bookings.find_one({"_id": booking_id})
await db.disconnect()
```
"""

import asyncio
import time
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import ConnectionFailure, PyMongoError, ServerSelectionTimeoutError

from gym_management.config import Settings, settings as default_settings
from gym_management.managers.logging_manager import get_logger

db_logger = get_logger(prefix="[DATABASE]")
perf_logger = get_logger(prefix="[DB_PERFORMANCE]")
health_logger = get_logger(prefix="[DB_HEALTH]")


class DatabaseManager:
    """
    Owns the Motor client and hands out collections.

    Attributes:
        client: The Motor client, `None` until `connect()` succeeds.
        database: The selected database, `None` until `connect()` succeeds.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or default_settings
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = None
        self._connection_retries = 3

    def _connection_string(self) -> str:
        cfg = self.settings
        if cfg.MONGODB_USERNAME and cfg.MONGODB_PASSWORD:
            password = cfg.MONGODB_PASSWORD.get_secret_value()
            db_logger.debug("Using authenticated connection to MongoDB")
            return f"mongodb://{cfg.MONGODB_USERNAME}:{password}@{cfg.MONGODB_URL.replace('mongodb://', '')}"
        db_logger.debug("Using unauthenticated connection to MongoDB")
        return cfg.MONGODB_URL

    async def connect(self):
        """Connect to MongoDB, retrying with exponential backoff."""
        cfg = self.settings
        start_time = time.time()
        db_logger.info("Starting MongoDB connection process")

        for attempt in range(self._connection_retries):
            attempt_start = time.time()
            try:
                db_logger.info("Connection attempt %d/%d to MongoDB", attempt + 1, self._connection_retries)
                self.client = AsyncIOMotorClient(
                    self._connection_string(),
                    serverSelectionTimeoutMS=cfg.MONGODB_SERVER_SELECTION_TIMEOUT,
                    connectTimeoutMS=cfg.MONGODB_CONNECTION_TIMEOUT,
                    tz_aware=True,
                )
                self.database = self.client[cfg.MONGODB_DATABASE]

                ping_start = time.time()
                await self.client.admin.command("ping")
                ping_duration = time.time() - ping_start

                perf_logger.info(
                    "MongoDB connection established in %.3fs (ping: %.3fs)", time.time() - start_time, ping_duration
                )
                db_logger.info("Successfully connected to MongoDB database: %s", cfg.MONGODB_DATABASE)
                return

            except (ServerSelectionTimeoutError, ConnectionFailure) as e:
                perf_logger.warning("Connection attempt %d failed after %.3fs", attempt + 1, time.time() - attempt_start)
                db_logger.warning(
                    "Failed to connect to MongoDB (attempt %d/%d): %s", attempt + 1, self._connection_retries, e
                )
                if attempt == self._connection_retries - 1:
                    db_logger.error("All connection attempts failed after %.3fs", time.time() - start_time)
                    raise

                backoff_time = 2**attempt
                db_logger.info("Waiting %.1fs before retry (exponential backoff)", backoff_time)
                await asyncio.sleep(backoff_time)

    async def disconnect(self):
        """Close the Motor client."""
        if self.client is None:
            db_logger.warning("Disconnect called but no active MongoDB connection found")
            return

        self.client.close()
        self.client = None
        self.database = None
        db_logger.info("Successfully disconnected from MongoDB")

    async def health_check(self) -> bool:
        """Ping the server; returns False instead of raising on connection problems."""
        if self.client is None:
            health_logger.warning("Health check failed: No database client available")
            return False
        try:
            await self.client.admin.command("ping")
            return True
        except PyMongoError as e:
            health_logger.error("Database health check failed: %s", e)
            return False

    def get_collection(self, collection_name: str) -> AsyncIOMotorCollection:
        """
        Return a collection from the connected database.

        Raises:
            ConnectionError: If `connect()` has not been called.
        """
        if self.database is None:
            db_logger.error("Attempted to get collection '%s' without database connection", collection_name)
            raise ConnectionError("Database not connected. Call connect() first.")
        return self.database[collection_name]

    async def create_indexes(self):
        """Create the indexes every service relies on."""
        start_time = time.time()
        db_logger.info("Starting database index creation process")

        try:
            subscriptions = self.get_collection("subscriptions")
            await subscriptions.create_index("expire_at", expireAfterSeconds=0, name="expire_at_ttl")
            await subscriptions.create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])

            await self.get_collection("schedules").create_index(
                [("trainer_id", ASCENDING), ("start_time", ASCENDING), ("end_time", ASCENDING)]
            )

            bookings = self.get_collection("bookings")
            await bookings.create_index([("user_id", ASCENDING), ("status", ASCENDING)])
            await bookings.create_index("schedule_id")

            await self.get_collection("class_sessions").create_index(
                [("class_id", ASCENDING), ("start_time", ASCENDING)]
            )
            await self.get_collection("class_enrollments").create_index(
                [("user_id", ASCENDING), ("class_id", ASCENDING)]
            )

            notifications = self.get_collection("notifications")
            await notifications.create_index(
                [("user_id", ASCENDING), ("type", ASCENDING), ("reference_id", ASCENDING)]
            )
            await notifications.create_index("created_at")

            payments = self.get_collection("payments")
            await payments.create_index([("reference_id", ASCENDING), ("payment_type", ASCENDING)])
            await payments.create_index("payment_date")

            perf_logger.info("Index creation completed in %.3fs", time.time() - start_time)
        except PyMongoError as e:
            db_logger.error("Failed to create indexes: %s", e, exc_info=True)
            raise
