"""
Payment API Routes.

Checkout URL creation for memberships, trainer bookings and classes, the VNPay return endpoint, and
a user's payment history.
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import RedirectResponse

from gym_management.managers.logging_manager import get_logger
from gym_management.models.payment_models import (
    CreateBookingPaymentItem,
    CreateClassPaymentRequest,
    CreateMembershipPaymentRequest,
    PaymentUrlResponse,
)
from gym_management.routes.dependencies import (
    get_payment_ledger,
    get_payment_reconciler,
    get_payment_service,
    raise_for_result,
)

router = APIRouter(prefix="/payments", tags=["Payments"])
logger = get_logger(prefix="[PAYMENT_ROUTES]")


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "127.0.0.1"


@router.post(
    "/vnpay/membership",
    response_model=PaymentUrlResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create membership checkout",
    description="""
    Subscribe the user to a membership (unpaid) and return a VNPay checkout URL.
    The URL and its pending subscription stay valid for 10 minutes.
    """,
)
async def create_membership_payment(
    body: CreateMembershipPaymentRequest,
    request: Request,
    payment_service=Depends(get_payment_service),
):
    try:
        result = await payment_service.create_membership_payment(body.user_id, body.membership_id, _client_ip(request))
        return raise_for_result(result).data
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to create membership payment: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to create payment")


@router.post(
    "/vnpay/booking",
    response_model=PaymentUrlResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create trainer booking checkout",
    description="""
    Create one pending booking per item and a single VNPay checkout for their total price.
    If any booking cannot be created, the ones already created are removed and nothing is charged.
    """,
)
async def create_booking_payment(
    items: List[CreateBookingPaymentItem],
    request: Request,
    payment_service=Depends(get_payment_service),
):
    try:
        result = await payment_service.create_booking_payment(items, _client_ip(request))
        return raise_for_result(result).data
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to create booking payment: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to create payment")


@router.post(
    "/vnpay/class",
    response_model=PaymentUrlResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create class enrollment checkout",
    responses={409: {"description": "A class session overlaps one of the user's trainer bookings"}},
)
async def create_class_payment(
    body: CreateClassPaymentRequest,
    request: Request,
    payment_service=Depends(get_payment_service),
):
    try:
        result = await payment_service.create_class_payment(body.user_id, body.class_id, _client_ip(request))
        return raise_for_result(result).data
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to create class payment: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to create payment")


@router.get(
    "/vnpay-return",
    summary="VNPay return endpoint",
    description="Reconcile the gateway result and redirect the customer to the frontend success or failure page.",
    status_code=status.HTTP_302_FOUND,
)
async def vnpay_return(request: Request, reconciler=Depends(get_payment_reconciler)):
    try:
        outcome = await reconciler.handle_vnpay_return(dict(request.query_params))
    except Exception as e:
        logger.error(f"Failed to reconcile VNPay return: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to process payment")
    return RedirectResponse(outcome.redirect_url, status_code=status.HTTP_302_FOUND)


@router.get("/user/{user_id}", summary="Payment history for a user")
async def list_user_payments(user_id: str, page: int = 1, limit: int = 10, ledger=Depends(get_payment_ledger)):
    return await ledger.list_for_user(user_id, page, limit)
