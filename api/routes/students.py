"""Student analytics endpoints."""

from fastapi import APIRouter

from api.dependencies import LifecycleManagerDep, RequesterDep
from models.analytics import StudentAnalytics

router = APIRouter(
    prefix="/students",
    tags=["students"],
)


@router.get("/{student_id}/analytics", response_model=StudentAnalytics)
def get_student_analytics(student_id: str, manager: LifecycleManagerDep, requester: RequesterDep):
    """Summary, difficulty breakdown and monthly trend of completed sessions."""
    return manager.student_analytics(student_id, requester.user_id, requester.role)
