"""Booking and trainer schedule API Routes."""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status

from gym_management.models.booking_models import CreateBookingRequest, CreateScheduleRequest
from gym_management.routes.dependencies import get_booking_service, get_schedule_service, raise_for_result

router = APIRouter(tags=["Bookings"])


@router.post("/bookings", status_code=status.HTTP_201_CREATED, summary="Create a pending booking")
async def create_booking(body: CreateBookingRequest, service=Depends(get_booking_service)):
    return raise_for_result(await service.create_booking(body)).data


@router.post("/bookings/{booking_id}/cancel", summary="Cancel a booking (more than 1 hour before start)")
async def cancel_booking(booking_id: str, service=Depends(get_booking_service)):
    return raise_for_result(await service.cancel_booking(booking_id)).data


@router.post("/schedules", status_code=status.HTTP_201_CREATED, summary="Create a trainer schedule slot")
async def create_schedule(body: CreateScheduleRequest, service=Depends(get_schedule_service)):
    try:
        result = await service.create_schedule(body)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return raise_for_result(result).data


@router.get("/schedules/conflicts", summary="Check a trainer window for overlapping slots")
async def check_schedule_conflict(
    trainer_id: str,
    start_time: datetime,
    end_time: datetime,
    service=Depends(get_schedule_service),
):
    try:
        conflict = await service.check_conflict(trainer_id, start_time, end_time)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return {"has_conflict": conflict is not None, "conflict": conflict}


@router.delete("/schedules/{schedule_id}", summary="Soft-delete an unbooked schedule slot")
async def delete_schedule(schedule_id: str, service=Depends(get_schedule_service)):
    return {"message": raise_for_result(await service.delete_schedule(schedule_id)).message}
