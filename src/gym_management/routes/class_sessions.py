"""Class session API Routes."""

from fastapi import APIRouter, Depends, status

from gym_management.routes.dependencies import get_class_session_service, raise_for_result

router = APIRouter(prefix="/class-sessions", tags=["Class Sessions"])


@router.post(
    "/classes/{class_id}/generate",
    status_code=status.HTTP_201_CREATED,
    summary="Create the future sessions of a class from its weekly schedule",
    description="""
    Expands the class recurrence into concrete sessions. Nothing is created when any session would
    share a room or a trainer with an existing session of another class; the clashes are returned
    with a 409.
    """,
)
async def generate_sessions(class_id: str, service=Depends(get_class_session_service)):
    return raise_for_result(await service.create_sessions_for_class(class_id)).data


@router.get("/classes/{class_id}/upcoming", summary="Upcoming sessions of a class")
async def upcoming_sessions(class_id: str, service=Depends(get_class_session_service)):
    return await service.get_upcoming_sessions(class_id)
