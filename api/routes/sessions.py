"""Session endpoints.

Thin HTTP layer over SessionLifecycleManager: parse the request, pass the
requester identity through, return the manager's result. Handlers are plain
functions so FastAPI runs them in its threadpool; the manager blocks on
per-session locks and on the patient response service.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from api.dependencies import LifecycleManagerDep, RequesterDep
from models.actions import InterventionEvaluation
from models.drugs import InteractionReport
from models.event import TimeEvent
from models.session import Session
from models.simulation import (
    ActionRequest,
    ActionResult,
    ComplicationResult,
    FastForwardResult,
    ProgressionReport,
    QuestionResult,
    StartOptions,
    StartResult,
)

router = APIRouter(tags=["sessions"])


# Request Models


class StartSessionRequest(BaseModel):
    """Request model for starting a session.

    Attributes:
        supervisor_id: Optional supervisor to assign.
        assessment_type: Optional assessment mode label.
        time_acceleration_rate: Overrides the scenario's rate.
        time_pressure_enabled: Overrides the scenario's time pressure flag.
    """

    supervisor_id: Optional[str] = None
    assessment_type: Optional[str] = None
    time_acceleration_rate: Optional[float] = Field(default=None, gt=0)
    time_pressure_enabled: Optional[bool] = None


class FastForwardRequest(BaseModel):
    """Request model for skipping virtual time.

    Attributes:
        virtual_minutes: Minutes of virtual time to skip.
        stop_on_events: Stop at the first unacknowledged interrupting event.
    """

    virtual_minutes: float
    stop_on_events: bool = True


class QuestionRequest(BaseModel):
    question: str


class ComplicationRequest(BaseModel):
    """Request model for introducing a complication.

    Attributes:
        complication_type: Template name, e.g. "arrhythmia".
        severity: Severity in [0, 1].
        timing: Virtual time for the onset; omitted means now.
    """

    complication_type: str
    severity: float
    timing: Optional[datetime] = None


class DrugInteractionRequest(BaseModel):
    drug_ids: list[str] = Field(default_factory=list)


# Route Handlers


@router.post(
    "/scenarios/{scenario_id}/sessions",
    response_model=StartResult,
    status_code=status.HTTP_201_CREATED,
)
def start_session(
    scenario_id: str,
    manager: LifecycleManagerDep,
    requester: RequesterDep,
    request: Optional[StartSessionRequest] = None,
):
    """Start a session on a scenario for the requesting student."""
    request = request or StartSessionRequest()
    return manager.start(
        scenario_id,
        requester.user_id,
        StartOptions(**request.model_dump()),
    )


@router.get("/sessions/{session_id}", response_model=Session)
def get_session(session_id: str, manager: LifecycleManagerDep, requester: RequesterDep):
    return manager.get_session(session_id, requester.user_id, requester.role)


@router.post("/sessions/{session_id}/fast-forward", response_model=FastForwardResult)
def fast_forward(
    session_id: str,
    request: FastForwardRequest,
    manager: LifecycleManagerDep,
    requester: RequesterDep,
):
    """Skip virtual time, stopping at the first interrupting event."""
    return manager.fast_forward(
        session_id,
        request.virtual_minutes,
        requester.user_id,
        stop_on_events=request.stop_on_events,
    )


@router.post("/sessions/{session_id}/pause", response_model=Session)
def pause_session(session_id: str, manager: LifecycleManagerDep, requester: RequesterDep):
    return manager.pause(session_id, requester.user_id)


@router.post("/sessions/{session_id}/resume", response_model=Session)
def resume_session(session_id: str, manager: LifecycleManagerDep, requester: RequesterDep):
    return manager.resume(session_id, requester.user_id)


@router.post("/sessions/{session_id}/complete", response_model=Session)
def complete_session(session_id: str, manager: LifecycleManagerDep, requester: RequesterDep):
    """Complete the session and return it with its assessment."""
    return manager.complete(session_id, requester.user_id)


@router.post("/sessions/{session_id}/questions", response_model=QuestionResult)
def ask_question(
    session_id: str,
    request: QuestionRequest,
    manager: LifecycleManagerDep,
    requester: RequesterDep,
):
    return manager.ask_patient_question(session_id, request.question, requester.user_id)


@router.post("/sessions/{session_id}/actions", response_model=ActionResult)
def perform_action(
    session_id: str,
    request: ActionRequest,
    manager: LifecycleManagerDep,
    requester: RequesterDep,
):
    """Perform a clinical action. Unknown action types return success false."""
    return manager.perform_action(session_id, request, requester.user_id)


@router.post(
    "/sessions/{session_id}/events/{event_id}/acknowledge",
    response_model=TimeEvent,
)
def acknowledge_event(
    session_id: str,
    event_id: str,
    manager: LifecycleManagerDep,
    requester: RequesterDep,
):
    return manager.acknowledge_event(session_id, event_id, requester.user_id)


@router.post("/sessions/{session_id}/complications", response_model=ComplicationResult)
def simulate_complication(
    session_id: str,
    request: ComplicationRequest,
    manager: LifecycleManagerDep,
    requester: RequesterDep,
):
    return manager.simulate_complication(
        session_id,
        request.complication_type,
        request.severity,
        requester.user_id,
        timing=request.timing,
    )


@router.post("/sessions/{session_id}/drug-interactions", response_model=InteractionReport)
def check_drug_interactions(
    session_id: str,
    request: DrugInteractionRequest,
    manager: LifecycleManagerDep,
    requester: RequesterDep,
):
    return manager.check_drug_interactions(
        session_id, request.drug_ids, requester.user_id, requester.role
    )


@router.get("/sessions/{session_id}/progression", response_model=ProgressionReport)
def get_progression(session_id: str, manager: LifecycleManagerDep, requester: RequesterDep):
    return manager.analyze_progression(session_id, requester.user_id, requester.role)


@router.post(
    "/sessions/{session_id}/interventions/evaluate",
    response_model=InterventionEvaluation,
)
def evaluate_intervention(
    session_id: str,
    request: ActionRequest,
    manager: LifecycleManagerDep,
    requester: RequesterDep,
):
    """Rule-based safety check of a proposed action. Nothing is performed."""
    return manager.evaluate_intervention(
        session_id, request, requester.user_id, requester.role
    )
