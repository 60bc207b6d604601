"""FastAPI dependencies resolving services from the application's container."""

from fastapi import HTTPException, Request, status

from gym_management.container import ServiceContainer
from gym_management.models.result_models import OperationResult


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_subscription_service(request: Request):
    return get_container(request).subscription_service


def get_booking_service(request: Request):
    return get_container(request).booking_service


def get_schedule_service(request: Request):
    return get_container(request).schedule_service


def get_class_session_service(request: Request):
    return get_container(request).class_session_service


def get_class_enrollment_service(request: Request):
    return get_container(request).class_enrollment_service


def get_payment_service(request: Request):
    return get_container(request).payment_service


def get_payment_reconciler(request: Request):
    return get_container(request).payment_reconciler


def get_payment_ledger(request: Request):
    return get_container(request).payment_ledger


def get_notification_service(request: Request):
    return get_container(request).notification_service


def get_statistics_service(request: Request):
    return get_container(request).statistics_service


def raise_for_result(result: OperationResult) -> OperationResult:
    """Map a failed business result to 404 (not found) or 400; pass successes through."""
    if result.success:
        return result
    if result.reason == "NOT_FOUND":
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=result.message)
    if result.reason == "CONFLICT":
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"message": result.message, "conflict": result.data},
        )
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.message)
