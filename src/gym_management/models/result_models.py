"""Result values returned by services for business-rule outcomes."""

from typing import Any, Optional

from pydantic import BaseModel


class OperationResult(BaseModel):
    """
    Outcome of a service operation that may fail for a business reason.

    Not-found, validation and conflict outcomes are returned as `success=False` values rather than
    raised, so the caller decides on the HTTP status. `reason` carries a machine-readable code
    (`NOT_FOUND`, `CONFLICT`, `ALREADY_EXISTS`, ...).
    """

    success: bool
    message: str = ""
    reason: Optional[str] = None
    data: Optional[Any] = None

    @classmethod
    def ok(cls, message: str = "", data: Any = None) -> "OperationResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, message: str, reason: Optional[str] = None, data: Any = None) -> "OperationResult":
        return cls(success=False, message=message, reason=reason, data=data)

    @classmethod
    def not_found(cls, message: str) -> "OperationResult":
        return cls(success=False, message=message, reason="NOT_FOUND")
