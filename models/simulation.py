"""Session lifecycle orchestration.

SessionLifecycleManager is the single entry point that mutates sessions. It
checks access and status, serializes work per session, runs the stateless
components (clock, scheduler, physiology, actions, assessment) on a working
copy and saves the result in one repository call.
"""

import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterator, Optional, TypeVar

from pydantic import BaseModel, Field

from models.actions import (
    ActionContext,
    ActionProcessor,
    InterventionEvaluation,
    MedicalAction,
    active_interventions,
    can_be_fast_forwarded,
    parse_action,
)
from models.analytics import StudentAnalytics, build_student_analytics
from models.assessment import AssessmentEngine, SessionHistory
from models.clock import TimeFlowMode, VirtualClock
from models.drugs import DrugKnowledgeSource, InteractionReport, check_interactions
from models.errors import (
    BlockedError,
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
    ServiceUnavailableError,
)
from models.event import COMPLICATION_PREFIX, CONVERSATION_ORIGIN, TimeEvent
from models.guidelines import ClinicalGuidelines, get_clinical_guidelines
from models.oracle import ConversationContext, ConversationMessage, PatientResponder
from models.patient import DEFAULT_MENTAL_STATUS, PatientState, VitalSignChanges
from models.physiology import (
    Complication,
    PhysiologyEngine,
    available_complications,
    complication_risk,
    expected_course,
    generate_complication,
    progression_stage,
)
from models.repository import AccessPolicy, ScenarioProvider, SessionRepository, UserDirectory
from models.scenario import Scenario
from models.scheduler import EventScheduler
from models.session import (
    SUPERVISORY_ROLES,
    ConversationTurn,
    Session,
    SessionStatus,
    UserRole,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Symptoms recognized in a scenario's history of present illness.
INITIAL_SYMPTOM_KEYWORDS = (
    "pain",
    "fever",
    "cough",
    "shortness of breath",
    "nausea",
    "vomiting",
    "headache",
    "dizziness",
    "fatigue",
    "weakness",
)


def extract_initial_symptoms(history: str) -> list[str]:
    """Symptoms from INITIAL_SYMPTOM_KEYWORDS mentioned in the history text."""
    lowered = history.lower()
    return [symptom for symptom in INITIAL_SYMPTOM_KEYWORDS if symptom in lowered]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SessionLockTable:
    """Hands out one lock per key and forgets it when nobody needs it.

    Entries are reference counted: a key's lock lives while at least one
    thread holds it or waits for it.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._users: dict[str, int] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._users[key] = self._users.get(key, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._users[key] -= 1
                if self._users[key] == 0:
                    del self._users[key]
                    del self._locks[key]


# ===== Requests and results =====


class StartOptions(BaseModel):
    supervisor_id: Optional[str] = None
    assessment_type: Optional[str] = None
    time_acceleration_rate: Optional[float] = Field(default=None, gt=0.0)
    time_pressure_enabled: Optional[bool] = None


class StartResult(BaseModel):
    session: Session
    patient_state: PatientState


class FastForwardResult(BaseModel):
    session: Session
    triggered_events: list[TimeEvent]
    interrupted: bool
    virtual_minutes_elapsed: float


class QuestionResult(BaseModel):
    response: str
    emotional_state: str
    vital_sign_changes: Optional[VitalSignChanges] = None
    conversation_id: str


class ActionRequest(BaseModel):
    action_type: str
    action_details: dict[str, Any] = Field(default_factory=dict)
    priority: str = "routine"


class ActionResult(BaseModel):
    action: MedicalAction
    success: bool
    result: Optional[dict[str, Any]] = None
    feedback: str
    patient_state: PatientState


class ComplicationResult(BaseModel):
    complication: Complication
    event: TimeEvent
    applied: bool
    patient_state: PatientState


class ProgressionReport(BaseModel):
    session_id: str
    current_stage: str
    expected_course: dict[str, Any]
    complications_risk: float
    available_complications: list[str]
    progression_data: dict[str, Any]


class SessionLifecycleManager:
    """Runs every operation on encounter sessions.

    Mutating operations hold the session's lock for their whole duration,
    work on a copy of the stored session and save it once at the end. If any
    step raises, the stored session is left untouched.

    Args:
        repository: Session store.
        scenarios: Scenario source.
        users: Role lookup for supervisors.
        access_policy: Read-access rule for sessions.
        responder: Virtual patient dialogue service.
        drug_knowledge: Drug formulary and interactions.
        physiology: Physiology engine with its disease model registry.
        scheduler: Event scheduler.
        action_processor: Action processor; built from drug_knowledge if omitted.
        assessment: Assessment engine.
        context_turns: Conversation turns passed to the responder.
        follow_up_delay_minutes: Virtual delay of conversation follow-up events.
        default_acceleration_rate: Rate when neither request nor scenario gives one.
        now: Real-time source.
    """

    def __init__(
        self,
        repository: SessionRepository,
        scenarios: ScenarioProvider,
        users: UserDirectory,
        access_policy: AccessPolicy,
        responder: PatientResponder,
        drug_knowledge: DrugKnowledgeSource,
        physiology: PhysiologyEngine,
        scheduler: Optional[EventScheduler] = None,
        action_processor: Optional[ActionProcessor] = None,
        assessment: Optional[AssessmentEngine] = None,
        context_turns: int = 10,
        follow_up_delay_minutes: float = 1.0,
        default_acceleration_rate: float = 1.0,
        now: Callable[[], datetime] = utc_now,
    ):
        self.repository = repository
        self.scenarios = scenarios
        self.users = users
        self.access_policy = access_policy
        self.responder = responder
        self.drug_knowledge = drug_knowledge
        self.physiology = physiology
        self.scheduler = scheduler or EventScheduler()
        self.action_processor = action_processor or ActionProcessor(drug_knowledge)
        self.assessment = assessment or AssessmentEngine()
        self.context_turns = context_turns
        self.follow_up_delay_minutes = follow_up_delay_minutes
        self.default_acceleration_rate = default_acceleration_rate
        self._now = now
        self._locks = SessionLockTable()

    # ===== Helpers =====

    def _mutate(self, session_id: str, mutation: Callable[[Session], T]) -> tuple[Session, T]:
        """Apply mutation to a working copy under the session lock and save it."""
        with self._locks.hold(f"session:{session_id}"):
            working = self.repository.get(session_id)
            result = mutation(working)
            saved = self.repository.save(working)
        return saved, result

    @staticmethod
    def _require_participant(session: Session, user_id: str) -> None:
        if user_id != session.student_id and user_id != session.supervisor_id:
            raise ForbiddenError("Access denied to this session")

    @staticmethod
    def _require_owner(session: Session, user_id: str) -> None:
        if user_id != session.student_id:
            raise ForbiddenError("Only the session's student can do this")

    def _scenario_for(self, session: Session) -> Scenario:
        return self.scenarios.get_scenario(session.scenario_id)

    def _apply_fired(self, session: Session, events: list[TimeEvent], fired_at: datetime) -> list[TimeEvent]:
        fired = self.scheduler.fire(
            events, session.patient_state, session.complications_encountered, fired_at
        )
        session.patient_state = fired.patient_state
        session.complications_encountered = fired.complications
        for event in fired.already_handled:
            logger.warning(f"Event {event.event_id} was already handled, skipping")
        return fired.triggered

    # ===== Lifecycle =====

    def start(self, scenario_id: str, student_id: str, options: Optional[StartOptions] = None) -> StartResult:
        """Start a session for a student.

        Raises:
            NotFoundError: If the scenario is missing or inactive.
            ConflictError: If the student already has an open session for it.
            InvalidInputError: If the supervisor does not have a supervisory role.
        """
        options = options or StartOptions()

        with self._locks.hold(f"start:{student_id}:{scenario_id}"):
            scenario = self.scenarios.get_active_scenario(scenario_id)

            if self.repository.find_open_session(student_id, scenario_id) is not None:
                raise ConflictError("Student already has an active session for this scenario")

            if options.supervisor_id:
                role = self.users.get_role(options.supervisor_id)
                if role not in SUPERVISORY_ROLES:
                    raise InvalidInputError(f"Invalid supervisor ID {options.supervisor_id}")

            now = self._now()
            rate = (
                options.time_acceleration_rate
                or scenario.time_acceleration_rate
                or self.default_acceleration_rate
            )
            time_pressure = (
                options.time_pressure_enabled
                if options.time_pressure_enabled is not None
                else scenario.requires_time_pressure
            )
            patient_state = PatientState(
                vital_signs=scenario.initial_vital_signs.model_copy(deep=True),
                symptoms=extract_initial_symptoms(scenario.history_of_present_illness),
                mental_status=DEFAULT_MENTAL_STATUS,
            )
            session = Session(
                scenario_id=scenario_id,
                student_id=student_id,
                supervisor_id=options.supervisor_id,
                assessment_type=options.assessment_type,
                start_time=now,
                current_virtual_time=now,
                last_real_time_update=now,
                time_acceleration_rate=rate,
                time_flow_mode=TimeFlowMode.REAL_TIME,
                time_pressure_enabled=time_pressure,
                patient_state=patient_state,
                emotional_state=scenario.initial_emotional_state,
            )
            session.time_events = self.scheduler.materialize(scenario.scheduled_events, now, now)
            saved = self.repository.add(session)

        logger.info(
            f"Session {saved.session_id} started for student {student_id} "
            f"on scenario {scenario_id} ({len(saved.time_events)} scheduled events)"
        )
        return StartResult(session=saved, patient_state=saved.patient_state)

    def get_session(self, session_id: str, requester_id: str, requester_role: UserRole) -> Session:
        """Return the last saved version of a session.

        Raises:
            NotFoundError: If the session does not exist.
            ForbiddenError: If the access policy denies the requester.
        """
        session = self.repository.get(session_id)
        if not self.access_policy.can_access(session, requester_id, requester_role):
            raise ForbiddenError("Access denied to this session")
        return session

    def pause(self, session_id: str, requester_id: str) -> Session:
        def mutate(session: Session) -> None:
            self._require_owner(session, requester_id)
            session.transition_to(SessionStatus.PAUSED)
            session.time_flow_mode = TimeFlowMode.PAUSED

        saved, _ = self._mutate(session_id, mutate)
        logger.info(f"Session {session_id} paused")
        return saved

    def resume(self, session_id: str, requester_id: str) -> Session:
        def mutate(session: Session) -> None:
            self._require_owner(session, requester_id)
            session.transition_to(SessionStatus.ACTIVE)
            session.last_real_time_update = self._now()
            session.time_flow_mode = TimeFlowMode.REAL_TIME

        saved, _ = self._mutate(session_id, mutate)
        logger.info(f"Session {session_id} resumed")
        return saved

    def complete(self, session_id: str, requester_id: str) -> Session:
        """Complete a session and store its assessment.

        Raises:
            InvalidStateError: If the session is not ACTIVE, including when it
                was already completed.
        """
        def mutate(session: Session) -> None:
            self._require_owner(session, requester_id)
            session.transition_to(SessionStatus.COMPLETED)
            end_time = self._now()
            scenario = self._scenario_for(session)
            history = SessionHistory(
                actions=session.actions,
                conversations=session.conversations,
                events=session.time_events,
                complications=session.complications_encountered,
                start_time=session.start_time,
                end_time=end_time,
                expected_duration_seconds=scenario.expected_duration_seconds,
            )
            assessment = self.assessment.assess(history)
            session.end_time = end_time
            session.competency_scores = assessment.competency_scores
            session.overall_score = assessment.overall_score
            session.time_efficiency_score = assessment.time_efficiency_score
            session.final_feedback = assessment.feedback
            session.time_flow_mode = TimeFlowMode.PAUSED

        saved, _ = self._mutate(session_id, mutate)
        logger.info(f"Session {session_id} completed with overall score {saved.overall_score}")
        return saved

    # ===== Time control =====

    def fast_forward(
        self,
        session_id: str,
        virtual_minutes: float,
        requester_id: str,
        stop_on_events: bool = True,
    ) -> FastForwardResult:
        """Skip virtual time forward, stopping at the first interrupting event.

        Raises:
            ForbiddenError: If the requester is neither the student nor the supervisor.
            InvalidStateError: If the session is not ACTIVE.
            BlockedError: If a non-fast-forwardable action is in progress.
            InvalidInputError: If virtual_minutes is not positive.
        """
        def mutate(session: Session) -> tuple[list[TimeEvent], bool, float]:
            self._require_participant(session, requester_id)
            session.require_status(SessionStatus.ACTIVE)

            blocking = session.blocking_actions()
            if blocking:
                raise BlockedError(
                    f"Cannot fast-forward while {blocking[0].action_type} "
                    f"action {blocking[0].action_id} is in progress"
                )

            clock = VirtualClock(acceleration_rate=session.time_acceleration_rate)
            start = session.current_virtual_time
            target = clock.advance(start, virtual_minutes)

            interrupting = self.scheduler.interrupting_events_between(
                session.time_events, start, target, enabled=stop_on_events
            )
            interrupted = bool(interrupting)
            if interrupted:
                target = interrupting[0].virtual_time_scheduled
                session.time_flow_mode = TimeFlowMode.PAUSED
            else:
                session.time_flow_mode = TimeFlowMode.ACCELERATED

            elapsed = clock.minutes_between(start, target)
            now = self._now()
            session.current_virtual_time = target
            session.total_virtual_time_elapsed += elapsed
            session.total_real_time_elapsed += clock.calculate_real_time_elapsed(elapsed)
            session.last_real_time_update = now

            due = self.scheduler.events_in_range(session.time_events, start, target)
            triggered = self._apply_fired(session, due, now)
            self._recompute_physiology(session, elapsed)
            return triggered, interrupted, elapsed

        saved, (triggered, interrupted, elapsed) = self._mutate(session_id, mutate)
        logger.info(
            f"Session {session_id} fast-forwarded {elapsed:.1f} of {virtual_minutes} min "
            f"to {saved.current_virtual_time} ({len(triggered)} events fired"
            f"{', interrupted' if interrupted else ''})"
        )
        return FastForwardResult(
            session=saved,
            triggered_events=triggered,
            interrupted=interrupted,
            virtual_minutes_elapsed=elapsed,
        )

    def _recompute_physiology(self, session: Session, elapsed_minutes: float) -> None:
        scenario = self._scenario_for(session)
        update = self.physiology.recompute(
            patient_state=session.patient_state,
            elapsed_minutes=elapsed_minutes,
            interventions=active_interventions(session.active_medications, session.completed_steps),
            condition=scenario.medical_condition,
            total_minutes=session.total_virtual_time_elapsed,
            known_complications=session.complications_encountered,
        )
        state = session.patient_state
        state.vital_signs = update.vital_signs
        state.symptoms = update.symptoms
        state.mental_status = update.mental_status
        for complication in update.new_complications:
            logger.warning(f"Session {session.session_id} developed {complication}")
            session.complications_encountered.append(complication)
            if complication not in state.complications:
                state.complications.append(complication)

    # ===== Patient interaction =====

    def _build_context(self, session: Session, scenario: Scenario) -> ConversationContext:
        recent = session.conversations[-self.context_turns:] if self.context_turns > 0 else []
        history = []
        for turn in recent:
            history.append(ConversationMessage(
                role="user", content=turn.user_message, timestamp=turn.timestamp.isoformat()
            ))
            history.append(ConversationMessage(
                role="patient", content=turn.patient_response, timestamp=turn.timestamp.isoformat()
            ))

        state = session.patient_state
        return ConversationContext(
            patient_state=state.model_dump(mode="json"),
            medical_history=scenario.past_medical_history,
            current_symptoms=list(state.symptoms),
            vital_signs=state.vital_signs.model_dump(mode="json"),
            emotional_state=session.emotional_state,
            pain_level=state.vital_signs.pain_level,
            conversation_history=history,
            educational_objectives=scenario.learning_objectives,
        )

    def ask_patient_question(self, session_id: str, question: str, requester_id: str) -> QuestionResult:
        """Ask the virtual patient a question.

        Raises:
            ForbiddenError: If the requester is neither the student nor the supervisor.
            InvalidStateError: If the session is not ACTIVE.
            InvalidInputError: If the question is blank.
            ServiceUnavailableError: If the patient responder fails.
        """
        if not question or not question.strip():
            raise InvalidInputError("Question cannot be empty")

        def mutate(session: Session) -> QuestionResult:
            self._require_participant(session, requester_id)
            session.require_status(SessionStatus.ACTIVE)
            scenario = self._scenario_for(session)
            context = self._build_context(session, scenario)

            try:
                response = self.responder.generate_patient_response(question, context)
            except ServiceUnavailableError as e:
                logger.error(f"Patient responder failed for session {session_id}: {e.message}")
                raise

            now = self._now()
            turn = ConversationTurn(
                user_id=requester_id,
                user_message=question,
                patient_response=response.text,
                message_context=context.model_dump(mode="json"),
                emotional_context=response.emotional_state,
                virtual_timestamp=session.current_virtual_time,
                timestamp=now,
                medical_accuracy=response.medical_accuracy,
                appropriateness=response.educational_value,
            )
            session.conversations.append(turn)
            session.emotional_state = response.emotional_state

            changes = response.vital_sign_changes
            if changes is not None and not changes.is_empty():
                session.patient_state.apply_vital_sign_changes(changes)

            follow_up_time = session.current_virtual_time + timedelta(
                minutes=self.follow_up_delay_minutes
            )
            for event_type in response.triggered_event_types:
                event_data = dict(response.triggered_event_data.get(event_type, {}))
                event_data.update(triggered_by=CONVERSATION_ORIGIN, turn_id=turn.turn_id)
                self.scheduler.schedule(
                    session.time_events,
                    TimeEvent(
                        event_type=event_type,
                        event_data=event_data,
                        virtual_time_scheduled=follow_up_time,
                        requires_attention=True,
                        created_at=now,
                    ),
                )

            return QuestionResult(
                response=response.text,
                emotional_state=response.emotional_state,
                vital_sign_changes=changes,
                conversation_id=turn.turn_id,
            )

        _, result = self._mutate(session_id, mutate)
        return result

    def perform_action(self, session_id: str, request: ActionRequest, requester_id: str) -> ActionResult:
        """Perform a clinical action.

        Unknown action types do not raise; they complete with success False.

        Raises:
            ForbiddenError: If the requester is neither the student nor the supervisor.
            InvalidStateError: If the session is not ACTIVE.
            InvalidInputError: If a known action type has malformed details.
        """
        def mutate(session: Session) -> ActionResult:
            self._require_participant(session, requester_id)
            session.require_status(SessionStatus.ACTIVE)
            variant = parse_action(request.action_type, request.action_details)

            now = self._now()
            action = MedicalAction(
                user_id=requester_id,
                action_type=request.action_type,
                action_details=dict(request.action_details),
                priority=request.priority,
                can_be_fast_forwarded=can_be_fast_forwarded(request.action_type),
                real_time_started=now,
                virtual_time_started=session.current_virtual_time,
            )
            session.actions.append(action)

            scenario = self._scenario_for(session)
            context = ActionContext(
                allergies=scenario.allergies,
                active_medications=session.active_medications,
                virtual_time=session.current_virtual_time,
            )
            outcome = self.action_processor.process(variant, session.patient_state, context)
            action.complete(outcome, self._now(), session.current_virtual_time)

            outcome.delta.apply_to(session.patient_state)
            session.active_medications.extend(outcome.delta.active_medications)
            session.completed_steps.extend(outcome.delta.completed_steps)

            return ActionResult(
                action=action,
                success=outcome.success,
                result=outcome.result,
                feedback=outcome.feedback,
                patient_state=session.patient_state,
            )

        _, result = self._mutate(session_id, mutate)
        logger.info(
            f"Session {session_id}: {request.action_type} action "
            f"{'succeeded' if result.success else 'failed'}"
        )
        return result

    def acknowledge_event(self, session_id: str, event_id: str, requester_id: str) -> TimeEvent:
        """Acknowledge an event; repeated calls return the first stamp.

        Raises:
            NotFoundError: If the session or event does not exist.
        """
        def mutate(session: Session) -> TimeEvent:
            self._require_participant(session, requester_id)
            session.require_status(SessionStatus.ACTIVE, SessionStatus.PAUSED)
            return self.scheduler.acknowledge(session.time_events, event_id, self._now())

        _, event = self._mutate(session_id, mutate)
        return event

    def simulate_complication(
        self,
        session_id: str,
        complication_type: str,
        severity: float,
        requester_id: str,
        timing: Optional[datetime] = None,
    ) -> ComplicationResult:
        """Introduce a complication now, or schedule it for a later virtual time.

        Raises:
            InvalidInputError: If severity is outside [0, 1] or timing is naive.
            InvalidStateError: If the session is not ACTIVE.
        """
        if timing is not None and timing.tzinfo is None:
            raise InvalidInputError("timing must be timezone-aware")

        def mutate(session: Session) -> ComplicationResult:
            self._require_participant(session, requester_id)
            session.require_status(SessionStatus.ACTIVE)
            complication = generate_complication(complication_type, severity)

            now = self._now()
            immediate = timing is None or timing <= session.current_virtual_time
            event = TimeEvent(
                event_type=f"{COMPLICATION_PREFIX}{complication_type}",
                event_data={"complication_type": complication_type, "severity": severity},
                virtual_time_scheduled=session.current_virtual_time if immediate else timing,
                requires_attention=True,
                created_at=now,
            )
            self.scheduler.schedule(session.time_events, event)
            if immediate:
                self._apply_fired(session, [event], now)

            return ComplicationResult(
                complication=complication,
                event=event,
                applied=immediate,
                patient_state=session.patient_state,
            )

        _, result = self._mutate(session_id, mutate)
        logger.info(
            f"Session {session_id}: complication {complication_type} "
            f"(severity {severity}) {'applied' if result.applied else 'scheduled'}"
        )
        return result

    # ===== Read-only analysis =====

    def check_drug_interactions(
        self,
        session_id: str,
        drug_ids: list[str],
        requester_id: str,
        requester_role: UserRole,
    ) -> InteractionReport:
        """Check requested drugs against each other, active medications and the patient.

        Raises:
            NotFoundError: If a drug id is unknown.
        """
        session = self.get_session(session_id, requester_id, requester_role)
        scenario = self._scenario_for(session)

        ids = [m.drug_id for m in session.active_medications if m.drug_id] + list(drug_ids)
        unique_ids = list(dict.fromkeys(ids))
        drugs = [self.drug_knowledge.get_drug(drug_id) for drug_id in unique_ids]

        return check_interactions(
            self.drug_knowledge,
            drugs,
            allergies=scenario.allergies,
            medical_condition=scenario.medical_condition,
            conditions=scenario.past_medical_history,
        )

    def check_general_drug_interactions(self, drug_ids: list[str]) -> InteractionReport:
        """Check drugs against each other without any patient context.

        Raises:
            NotFoundError: If a drug id is unknown.
        """
        unique_ids = list(dict.fromkeys(drug_ids))
        drugs = [self.drug_knowledge.get_drug(drug_id) for drug_id in unique_ids]
        return check_interactions(self.drug_knowledge, drugs)

    def evaluate_intervention(
        self,
        session_id: str,
        request: ActionRequest,
        requester_id: str,
        requester_role: UserRole,
    ) -> InterventionEvaluation:
        """Run rule-based safety checks on a proposed action without performing it.

        Supervisory roles count as trained for advanced procedures.

        Raises:
            InvalidInputError: If a known action type has malformed details.
        """
        session = self.get_session(session_id, requester_id, requester_role)
        scenario = self._scenario_for(session)
        variant = parse_action(request.action_type, request.action_details)

        conditions = scenario.past_medical_history + session.complications_encountered
        if scenario.medical_condition:
            conditions.append(scenario.medical_condition)

        evaluation = self.action_processor.evaluate(
            variant,
            session.patient_state,
            allergies=scenario.allergies,
            conditions=conditions,
            trained=requester_role in SUPERVISORY_ROLES,
        )
        logger.debug(
            f"Session {session_id}: {request.action_type} evaluated with {len(evaluation.risks)} risks"
        )
        return evaluation

    @staticmethod
    def clinical_guidelines(condition: str) -> ClinicalGuidelines:
        return get_clinical_guidelines(condition)

    def analyze_progression(
        self,
        session_id: str,
        requester_id: str,
        requester_role: UserRole,
    ) -> ProgressionReport:
        session = self.get_session(session_id, requester_id, requester_role)
        scenario = self._scenario_for(session)
        vitals = session.patient_state.vital_signs
        stage = progression_stage(vitals, session.complications_encountered)

        return ProgressionReport(
            session_id=session.session_id,
            current_stage=stage,
            expected_course=expected_course(scenario.medical_condition),
            complications_risk=complication_risk(
                stage, session.total_virtual_time_elapsed, session.complications_encountered
            ),
            available_complications=available_complications(scenario.medical_condition),
            progression_data={
                "total_virtual_minutes": session.total_virtual_time_elapsed,
                "complications": list(session.complications_encountered),
                "vital_signs": vitals.model_dump(mode="json"),
                "mental_status": session.patient_state.mental_status,
                "acuity": session.patient_state.acuity,
            },
        )

    def student_analytics(
        self,
        student_id: str,
        requester_id: str,
        requester_role: UserRole,
    ) -> StudentAnalytics:
        """Analytics over a student's completed sessions.

        Raises:
            ForbiddenError: If a student asks for someone else's analytics.
        """
        if requester_id != student_id and requester_role not in SUPERVISORY_ROLES:
            raise ForbiddenError("Access denied to this student's analytics")

        sessions = self.repository.list_for_student(student_id)
        scenarios: dict[str, Scenario] = {}
        for session in sessions:
            if session.scenario_id in scenarios:
                continue
            try:
                scenarios[session.scenario_id] = self.scenarios.get_scenario(session.scenario_id)
            except NotFoundError:
                logger.warning(
                    f"Scenario {session.scenario_id} of session {session.session_id} no longer exists"
                )

        return build_student_analytics(student_id, sessions, scenarios, self._now())
