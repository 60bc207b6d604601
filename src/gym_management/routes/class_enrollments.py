"""Class enrollment API Routes."""

from fastapi import APIRouter, Depends

from gym_management.routes.dependencies import get_class_enrollment_service, raise_for_result

router = APIRouter(prefix="/class-enrollments", tags=["Class Enrollments"])


@router.get("/conflicts", summary="Check a class against the user's trainer bookings")
async def check_conflict(user_id: str, class_id: str, service=Depends(get_class_enrollment_service)):
    conflict = await service.check_schedule_conflict(user_id, class_id)
    return {"has_conflict": conflict is not None, "conflict": conflict}


@router.get("/{enrollment_id}/can-cancel", summary="Whether the enrollment can still be cancelled and refunded")
async def can_cancel(enrollment_id: str, service=Depends(get_class_enrollment_service)):
    return {"can_cancel": await service.can_cancel_enrollment(enrollment_id)}


@router.post("/{enrollment_id}/cancel", summary="Cancel an enrollment, refunding it before the class starts")
async def cancel(enrollment_id: str, service=Depends(get_class_enrollment_service)):
    return raise_for_result(await service.cancel_enrollment(enrollment_id)).data
