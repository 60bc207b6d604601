"""
# Configuration Module

Centralised, typed configuration for the gym management service, built on **Pydantic Settings**.

## Loading Order

1. **Environment variables** (highest precedence)
2. **Config file** pointed to by `GYM_MANAGEMENT_CONFIG_PATH`
3. **`.env`** in the project root
4. **Field defaults** declared on `Settings`

The config file (when found) is loaded with `python-dotenv` before `Settings` is instantiated,
so every value ends up in the process environment and secrets never have to be committed.

## Configuration Groups

- **Server**: host, port, debug flag and the frontend base URL used for payment redirects
- **MongoDB**: connection URL, database name, timeouts, optional credentials
- **Redis**: effective URL (derived from host/port/db when not given explicitly)
- **VNPay**: merchant code, hash secret, gateway URL and return URL
- **Payment intents**: time-to-live of the temporary intent record and its backup
- **Jobs**: cron expressions and thresholds for the reminder/cleanup jobs
- **Logging**: default log level

## Usage

```python
from gym_management.config import settings

ttl = settings.PAYMENT_INTENT_TTL_SECONDS
secret = settings.VNPAY_HASH_SECRET.get_secret_value()
```

Components take a `Settings` instance through their constructor and fall back to the module-level
`settings` object, which keeps them trivially configurable in tests.
"""

import os
from pathlib import Path
from typing import Any, List, Optional

from dotenv import load_dotenv
from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Constants ---
DEFAULT_ENV_FILENAME: str = ".env"
CONFIG_ENV_VAR: str = "GYM_MANAGEMENT_CONFIG_PATH"
PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent.parent


def get_config_path() -> Optional[str]:
    """
    Determine which configuration file to load, if any.

    Precedence is the `GYM_MANAGEMENT_CONFIG_PATH` environment variable (when the file exists),
    then a `.env` file in the project root. Returns `None` when neither exists, in which case the
    settings are read from the environment only.
    """
    env_path: Optional[str] = os.environ.get(CONFIG_ENV_VAR)
    if env_path and os.path.exists(env_path):
        return env_path
    env_path_file: Path = PROJECT_ROOT / DEFAULT_ENV_FILENAME
    if env_path_file.exists():
        return str(env_path_file)
    return None


CONFIG_PATH: Optional[str] = get_config_path()
if CONFIG_PATH:
    load_dotenv(dotenv_path=CONFIG_PATH, override=False)


class Settings(BaseSettings):
    """
    Application configuration settings model.

    **Configuration Groups:**
    *   **Server**: Host, port, debug mode, frontend URL.
    *   **Database**: MongoDB connection details.
    *   **Redis**: Connection details for the payment intent store.
    *   **Security**: JWT secret used to authenticate WebSocket clients.
    *   **VNPay**: Gateway credentials and URLs.
    *   **Jobs**: Cron schedules and reminder thresholds.
    """

    model_config = SettingsConfigDict(
        env_file=CONFIG_PATH if CONFIG_PATH else None,
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="allow",
    )

    # Server configuration
    HOST: str = "127.0.0.1"
    PORT: int = 8000
    DEBUG: bool = False
    FE_URL: str = "http://localhost:3000"

    # JWT configuration
    SECRET_KEY: SecretStr = SecretStr("")
    ALGORITHM: str = "HS256"

    # MongoDB configuration
    MONGODB_URL: str = "mongodb://localhost:27017"
    MONGODB_DATABASE: str = "gym_management"
    MONGODB_CONNECTION_TIMEOUT: int = 10000
    MONGODB_SERVER_SELECTION_TIMEOUT: int = 5000
    MONGODB_USERNAME: Optional[str] = None
    MONGODB_PASSWORD: Optional[SecretStr] = None

    # Redis configuration
    # REDIS_URL is the effective URL. When absent it is built from host/port/db/password.
    REDIS_URL: Optional[str] = None
    REDIS_HOST: str = "127.0.0.1"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: Optional[SecretStr] = None

    # VNPay configuration
    VNPAY_TMN_CODE: str = ""
    VNPAY_HASH_SECRET: SecretStr = SecretStr("")
    VNPAY_PAYMENT_URL: str = "https://sandbox.vnpayment.vn/paymentv2/vpcpay.html"
    VNPAY_RETURN_URL: str = "http://localhost:8000/payments/vnpay-return"
    VNPAY_LOCALE: str = "vn"
    VNPAY_CURR_CODE: str = "VND"
    VNPAY_VERSION: str = "2.1.0"

    # Payment intent store
    PAYMENT_INTENT_TTL_SECONDS: int = 600
    PAYMENT_INTENT_BACKUP_GRACE_SECONDS: int = 60

    # Scheduled jobs
    JOBS_ENABLED: bool = True
    JOBS_TIMEZONE: str = "Asia/Ho_Chi_Minh"
    BOOKING_REMINDER_CRON: str = "*/10 * * * *"
    CLASS_REMINDER_CRON: str = "*/10 * * * *"
    BOOKING_STATUS_CRON: str = "0 */2 * * *"
    MEMBERSHIP_EXPIRING_CRON: str = "0 5 * * *"
    MEMBERSHIP_EXPIRED_CRON: str = "5 5 * * *"
    SUBSCRIPTION_SWEEP_CRON: str = "15 5 * * *"
    NOTIFICATION_CLEANUP_CRON: str = "0 2 * * *"
    MEMBERSHIP_REMINDER_DAYS: List[int] = [7, 3, 1]
    BOOKING_REMINDER_MINUTES: int = 60
    CLASS_REMINDER_MINUTES: int = 60
    NOTIFICATION_RETENTION_DAYS: int = 7
    NOTIFICATION_DEDUP_MINUTES: int = 30

    # Logging configuration
    DEFAULT_LOG_LEVEL: str = "INFO"

    @field_validator("MONGODB_URL", mode="before")
    @classmethod
    def no_empty_urls(cls, v: Any, info: Any) -> Any:
        """Reject an empty or whitespace-only MongoDB URL."""
        if not v or not str(v).strip():
            raise ValueError(f"{info.field_name} must be set via environment or .env and not empty!")
        return v

    @field_validator(
        "PAYMENT_INTENT_TTL_SECONDS",
        "PAYMENT_INTENT_BACKUP_GRACE_SECONDS",
        "BOOKING_REMINDER_MINUTES",
        "CLASS_REMINDER_MINUTES",
        "NOTIFICATION_RETENTION_DAYS",
        mode="before",
    )
    @classmethod
    def positive_durations(cls, v: Any, info: Any) -> Any:
        """Durations and windows must be strictly positive."""
        if int(v) <= 0:
            raise ValueError(f"{info.field_name} must be a positive integer")
        return v

    @property
    def effective_redis_url(self) -> str:
        """Explicit REDIS_URL, or one constructed from host/port/db and optional password."""
        if self.REDIS_URL:
            return self.REDIS_URL
        creds = ""
        if self.REDIS_PASSWORD:
            creds = f":{self.REDIS_PASSWORD.get_secret_value()}@"
        return f"redis://{creds}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


# Global settings instance
settings: Settings = Settings()
