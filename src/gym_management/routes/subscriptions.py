"""Subscription API Routes."""

from fastapi import APIRouter, Depends, status

from gym_management.models.subscription_models import CurrentSubscription, SubscribeRequest
from gym_management.routes.dependencies import get_subscription_service, raise_for_result

router = APIRouter(prefix="/subscriptions", tags=["Subscriptions"])


@router.post("", status_code=status.HTTP_201_CREATED, summary="Subscribe to a membership (unpaid)")
async def subscribe(body: SubscribeRequest, service=Depends(get_subscription_service)):
    result = raise_for_result(await service.subscribe(body.user_id, body.membership_id))
    return {"subscription_id": result.data["subscription_id"]}


@router.post("/staff", status_code=status.HTTP_201_CREATED, summary="Front-desk subscription paid in cash")
async def subscribe_for_staff(body: SubscribeRequest, service=Depends(get_subscription_service)):
    return raise_for_result(await service.subscribe_for_staff(body.user_id, body.membership_id)).data


@router.get(
    "/user/{user_id}/current",
    response_model=CurrentSubscription,
    summary="Current subscription",
    description="Returns the user's latest subscription after reconciling its expiry, or an empty placeholder.",
)
async def get_current(user_id: str, service=Depends(get_subscription_service)):
    return await service.get_current_by_user_id(user_id)


@router.delete("/{subscription_id}", summary="Soft-delete a subscription")
async def delete_subscription(subscription_id: str, service=Depends(get_subscription_service)):
    return {"message": raise_for_result(await service.delete(subscription_id)).message}


@router.post("/{subscription_id}/restore", summary="Restore a soft-deleted subscription")
async def restore_subscription(subscription_id: str, service=Depends(get_subscription_service)):
    return raise_for_result(await service.restore(subscription_id)).data
