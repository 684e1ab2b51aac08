"""Competency assessment of a finished session."""

import logging
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from models.actions import UNKNOWN_ACTION_FEEDBACK, MedicalAction
from models.event import TimeEvent
from models.session import CompetencyScore, CompetencyScores, ConversationTurn

logger = logging.getLogger(__name__)

DEFAULT_EXPECTED_DURATION_SECONDS = 3600.0

HISTORY_KEYWORDS = ("history", "symptom", "pain", "when", "how long", "medication", "allerg")

TREATMENT_ACTIONS = ("medication", "procedure")


def _round(value: float) -> float:
    return round(value, 4)


def _band(score: float) -> str:
    if score >= 0.9:
        return "excellent"
    if score >= 0.7:
        return "good"
    if score >= 0.5:
        return "adequate"
    return "needs improvement"


_FEEDBACK = {
    "diagnostic": {
        "excellent": "Excellent diagnostic reasoning with comprehensive evaluation",
        "good": "Good diagnostic approach with appropriate investigations",
        "adequate": "Adequate diagnostic process with some areas for improvement",
        "needs improvement": "Needs significant improvement in diagnostic methodology",
    },
    "procedural": {
        "excellent": "Excellent procedural skills and safe treatment choices",
        "good": "Good procedural skills",
        "adequate": "Adequate procedural skills with room for improvement",
        "needs improvement": "Procedural skills need significant improvement",
    },
    "communication": {
        "excellent": "Excellent patient communication",
        "good": "Good rapport and questioning",
        "adequate": "Adequate communication, engage the patient more",
        "needs improvement": "Communication with the patient needs significant improvement",
    },
    "professionalism": {
        "excellent": "Professional conduct maintained throughout",
        "good": "Good professional conduct",
        "adequate": "Adequate professionalism, respond to alerts more consistently",
        "needs improvement": "Professional conduct needs significant improvement",
    },
    "critical_thinking": {
        "excellent": "Excellent problem-solving under changing conditions",
        "good": "Good problem-solving approach",
        "adequate": "Adequate reasoning, react faster to complications",
        "needs improvement": "Critical thinking needs significant improvement",
    },
}

_OVERALL_FEEDBACK = {
    "excellent": "Excellent overall performance.",
    "good": "Good overall performance with some room for improvement.",
    "adequate": "Adequate performance; review the feedback for each competency.",
    "needs improvement": "Performance needs significant improvement; revisit the learning objectives.",
}


class SessionHistory(BaseModel):
    """Everything the assessment looks at, detached from the session."""

    actions: list[MedicalAction] = Field(default_factory=list)
    conversations: list[ConversationTurn] = Field(default_factory=list)
    events: list[TimeEvent] = Field(default_factory=list)
    complications: list[str] = Field(default_factory=list)
    start_time: datetime
    end_time: datetime
    expected_duration_seconds: Optional[float] = None


class Assessment(BaseModel):
    competency_scores: CompetencyScores
    overall_score: float
    time_efficiency_score: float
    feedback: str


def _score(dimension: str, value: float, evidence: list[str]) -> CompetencyScore:
    value = _round(min(1.0, max(0.0, value)))
    return CompetencyScore(score=value, feedback=_FEEDBACK[dimension][_band(value)], evidence=evidence)


def _diagnostic(history: SessionHistory) -> CompetencyScore:
    evidence = []
    score = 0.0

    history_questions = sum(
        1 for turn in history.conversations
        if any(k in turn.user_message.lower() for k in HISTORY_KEYWORDS)
    )
    if history_questions >= 3:
        score += 0.2
        evidence.append("Comprehensive history taking")

    exams = [a for a in history.actions if a.action_type == "examination" and a.success]
    if exams:
        score += min(1.0, len(exams) / 2) * 0.3
        evidence.append(f"Performed {len(exams)} examination(s)")

    tests = [a for a in history.actions if a.action_type == "diagnostic" and a.success]
    if tests:
        score += min(1.0, len(tests) / 2) * 0.5
        evidence.append(f"Ordered {len(tests)} diagnostic test(s)")

    return _score("diagnostic", score, evidence)


def _procedural(history: SessionHistory) -> CompetencyScore:
    treatments = [a for a in history.actions if a.action_type in TREATMENT_ACTIONS]
    if not treatments:
        return _score("procedural", 0.0, ["No treatments performed"])

    succeeded = [a for a in treatments if a.success]
    failed = len(treatments) - len(succeeded)
    score = len(succeeded) / len(treatments) * 0.7
    evidence = [f"{len(succeeded)} of {len(treatments)} treatments succeeded"]
    if failed == 0:
        score += 0.3
        evidence.append("No unsafe treatment attempts")
    return _score("procedural", score, evidence)


def _communication(history: SessionHistory) -> CompetencyScore:
    turns = history.conversations
    if not turns:
        return _score("communication", 0.0, ["No questions asked to the patient"])

    score = min(1.0, len(turns) / 5) * 0.6
    evidence = [f"Asked the patient {len(turns)} question(s)"]
    rated = [t.appropriateness for t in turns if t.appropriateness is not None]
    if rated:
        score += sum(rated) / len(rated) * 0.4
        evidence.append(f"Average appropriateness {_round(sum(rated) / len(rated))}")
    return _score("communication", score, evidence)


def _professionalism(history: SessionHistory) -> CompetencyScore:
    evidence = []
    alerts = [e for e in history.events if e.requires_attention and e.is_triggered]
    if alerts:
        acknowledged = sum(1 for e in alerts if e.is_acknowledged)
        score = acknowledged / len(alerts) * 0.6
        evidence.append(f"Acknowledged {acknowledged} of {len(alerts)} alert(s)")
    else:
        score = 0.6

    if history.actions:
        invalid = sum(1 for a in history.actions if a.feedback == UNKNOWN_ACTION_FEEDBACK)
        score += (1 - invalid / len(history.actions)) * 0.4
        if invalid:
            evidence.append(f"{invalid} invalid action request(s)")
    else:
        score += 0.4
    return _score("professionalism", score, evidence)


def _critical_thinking(history: SessionHistory) -> CompetencyScore:
    evidence = []
    onsets = [e for e in history.events if e.is_complication and e.is_triggered]
    if onsets:
        responded = 0
        for event in onsets:
            if any(a.virtual_time_started >= event.virtual_time_triggered for a in history.actions):
                responded += 1
        score = responded / len(onsets) * 0.6
        evidence.append(f"Responded to {responded} of {len(onsets)} complication(s)")
    else:
        score = 0.6

    kinds = sorted({a.action_type for a in history.actions if a.success})
    score += min(1.0, len(kinds) / 3) * 0.4
    if kinds:
        evidence.append(f"Used action types: {', '.join(kinds)}")
    return _score("critical_thinking", score, evidence)


class AssessmentEngine:
    """Folds a session history into competency scores.

    Identical histories always produce identical assessments.

    Args:
        time_efficiency_cap: Upper bound of the time-efficiency score.
        default_expected_seconds: Expected duration when the scenario has none.
    """

    def __init__(
        self,
        time_efficiency_cap: float = 1.0,
        default_expected_seconds: float = DEFAULT_EXPECTED_DURATION_SECONDS,
    ):
        self.time_efficiency_cap = time_efficiency_cap
        self.default_expected_seconds = default_expected_seconds

    def time_efficiency(self, history: SessionHistory) -> float:
        expected = history.expected_duration_seconds or self.default_expected_seconds
        actual = (history.end_time - history.start_time).total_seconds()
        return _round(min(self.time_efficiency_cap, expected / max(actual, 1.0)))

    def assess(self, history: SessionHistory) -> Assessment:
        scores = CompetencyScores(
            diagnostic=_diagnostic(history),
            procedural=_procedural(history),
            communication=_communication(history),
            professionalism=_professionalism(history),
            critical_thinking=_critical_thinking(history),
        )
        values = [s.score for s in scores.all_scores()]
        overall = _round(sum(values) / len(values))
        efficiency = self.time_efficiency(history)

        feedback = _OVERALL_FEEDBACK[_band(overall)]
        if efficiency < 0.5:
            feedback += " Work on completing the encounter within the expected time."

        logger.debug(f"Assessment: overall={overall}, time_efficiency={efficiency}")
        return Assessment(
            competency_scores=scores,
            overall_score=overall,
            time_efficiency_score=efficiency,
            feedback=feedback,
        )
