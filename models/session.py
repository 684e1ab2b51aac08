"""Session aggregate and its sub-records."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from models.actions import ActiveMedication, MedicalAction
from models.clock import TimeFlowMode
from models.errors import InvalidStateError, InvalidStateTransitionError
from models.event import TimeEvent
from models.patient import PatientState


class SessionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"


class UserRole(str, Enum):
    STUDENT = "STUDENT"
    SUPERVISOR = "SUPERVISOR"
    MEDICAL_EXPERT = "MEDICAL_EXPERT"
    ADMIN = "ADMIN"


SUPERVISORY_ROLES = frozenset({UserRole.SUPERVISOR, UserRole.MEDICAL_EXPERT, UserRole.ADMIN})

# Lifecycle transitions allowed from each status.
ALLOWED_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.ACTIVE: frozenset({SessionStatus.PAUSED, SessionStatus.COMPLETED}),
    SessionStatus.PAUSED: frozenset({SessionStatus.ACTIVE}),
    SessionStatus.COMPLETED: frozenset(),
}


class CompetencyScore(BaseModel):
    score: float = Field(default=0.0, ge=0.0, le=1.0)
    feedback: str = ""
    evidence: list[str] = Field(default_factory=list)


class CompetencyScores(BaseModel):
    """Scores for each assessed competency dimension."""

    diagnostic: CompetencyScore = Field(default_factory=CompetencyScore)
    procedural: CompetencyScore = Field(default_factory=CompetencyScore)
    communication: CompetencyScore = Field(default_factory=CompetencyScore)
    professionalism: CompetencyScore = Field(default_factory=CompetencyScore)
    critical_thinking: CompetencyScore = Field(default_factory=CompetencyScore)

    def all_scores(self) -> list[CompetencyScore]:
        return [
            self.diagnostic,
            self.procedural,
            self.communication,
            self.professionalism,
            self.critical_thinking,
        ]


class ConversationTurn(BaseModel):
    """One question to the virtual patient and its answer."""

    turn_id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str
    user_message: str
    patient_response: str
    message_context: dict[str, Any] = Field(default_factory=dict)
    emotional_context: Optional[str] = None
    virtual_timestamp: datetime
    timestamp: datetime
    medical_accuracy: Optional[float] = None
    appropriateness: Optional[float] = None


class Session(BaseModel):
    """A student's run through a scenario.

    Owns its time events, actions and conversation turns. All mutation goes
    through the lifecycle manager, which works on a deep copy and saves it
    back to the repository in one call.

    Args:
        session_id: Unique identifier.
        scenario_id: Scenario being run.
        student_id: Owning student.
        supervisor_id: Optional assigned supervisor.
        assessment_type: Optional assessment mode label.
        status: Lifecycle status.
        start_time: Real start time.
        end_time: Real completion time.
        current_virtual_time: Current position on the patient timeline.
        last_real_time_update: Real time the clocks were last advanced.
        total_real_time_elapsed: Real seconds accounted for by fast-forwards.
        total_virtual_time_elapsed: Virtual minutes skipped.
        time_acceleration_rate: Virtual minutes per real minute.
        time_flow_mode: How virtual time currently flows.
        time_pressure_enabled: Whether the scenario runs under time pressure.
        version: Optimistic concurrency version, bumped on every save.
    """

    session_id: str = Field(default_factory=lambda: str(uuid4()))
    scenario_id: str
    student_id: str
    supervisor_id: Optional[str] = None
    assessment_type: Optional[str] = None
    status: SessionStatus = SessionStatus.ACTIVE

    start_time: datetime
    end_time: Optional[datetime] = None
    current_virtual_time: datetime
    last_real_time_update: datetime
    total_real_time_elapsed: float = 0.0
    total_virtual_time_elapsed: float = 0.0
    time_acceleration_rate: float = Field(default=1.0, gt=0.0)
    time_flow_mode: TimeFlowMode = TimeFlowMode.REAL_TIME
    time_pressure_enabled: bool = False

    patient_state: PatientState = Field(default_factory=PatientState)
    emotional_state: str = "calm"
    complications_encountered: list[str] = Field(default_factory=list)
    active_medications: list[ActiveMedication] = Field(default_factory=list)
    completed_steps: list[str] = Field(default_factory=list)
    competency_scores: CompetencyScores = Field(default_factory=CompetencyScores)
    overall_score: Optional[float] = None
    time_efficiency_score: Optional[float] = None
    final_feedback: Optional[str] = None

    time_events: list[TimeEvent] = Field(default_factory=list)
    actions: list[MedicalAction] = Field(default_factory=list)
    conversations: list[ConversationTurn] = Field(default_factory=list)

    version: int = 0

    @field_validator("start_time", "current_virtual_time", "last_real_time_update")
    @classmethod
    def validate_timezone_aware(cls, v: datetime) -> datetime:
        """Ensure datetime is timezone-aware."""
        if v.tzinfo is None:
            raise ValueError("Datetime must be timezone-aware (recommend UTC)")
        return v

    @property
    def is_open(self) -> bool:
        return self.status in (SessionStatus.ACTIVE, SessionStatus.PAUSED)

    def require_status(self, *allowed: SessionStatus) -> None:
        """Raise InvalidStateError unless the session is in one of allowed."""
        if self.status not in allowed:
            names = ", ".join(s.value for s in allowed)
            raise InvalidStateError(
                f"Session {self.session_id} is {self.status.value}, expected {names}"
            )

    def transition_to(self, status: SessionStatus) -> None:
        """Move to a new lifecycle status.

        Raises:
            InvalidStateTransitionError: If the transition is not allowed.
                The status is left unchanged.
        """
        if status not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidStateTransitionError(self.status.value, status.value)
        self.status = status

    def blocking_actions(self) -> list[MedicalAction]:
        return [a for a in self.actions if a.blocks_fast_forward]
