"""Identifier helpers."""

import secrets
import time
import uuid


def new_id() -> str:
    """Primary key for new documents."""
    return uuid.uuid4().hex


def transaction_ref_from_timestamp() -> str:
    """Gateway transaction reference: epoch milliseconds plus a short random suffix."""
    return f"{int(time.time() * 1000)}-{secrets.token_hex(2)}"
