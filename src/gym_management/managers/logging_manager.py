"""
Logging setup shared by every module.

Each module asks for its own logger with a bracketed prefix so log lines can be traced back to the
component that emitted them:

```python
from gym_management.managers.logging_manager import get_logger

logger = get_logger(prefix="[BookingService]")
logger.info("Booking %s confirmed", booking_id)
# 2026-01-01 10:00:00 | INFO | gym_management | [BookingService] Booking 4f2c... confirmed
```
"""

import logging
import sys
from typing import Dict, Tuple

from gym_management.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

_configured_loggers: Dict[str, logging.Logger] = {}
_adapters: Dict[Tuple[str, str], "PrefixedLoggerAdapter"] = {}


class PrefixedLoggerAdapter(logging.LoggerAdapter):
    """Prepends a fixed prefix to every message."""

    def __init__(self, logger: logging.Logger, prefix: str):
        super().__init__(logger, {})
        self.prefix = prefix

    def process(self, msg, kwargs):
        if self.prefix:
            return f"{self.prefix} {msg}", kwargs
        return msg, kwargs


def _configure(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    if name in _configured_loggers:
        return logger

    level = getattr(logging, str(settings.DEFAULT_LOG_LEVEL).upper(), logging.INFO)
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    logger.propagate = False
    _configured_loggers[name] = logger
    return logger


def get_logger(name: str = "gym_management", prefix: str = "") -> PrefixedLoggerAdapter:
    """
    Return a logger that writes `prefix message` records.

    Args:
        name: Underlying `logging` logger name. All application modules share the default.
        prefix: Text placed in front of each message, conventionally `[ComponentName]`.
    """
    key = (name, prefix)
    adapter = _adapters.get(key)
    if adapter is None:
        adapter = PrefixedLoggerAdapter(_configure(name), prefix)
        _adapters[key] = adapter
    return adapter
