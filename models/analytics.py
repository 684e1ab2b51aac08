"""Per-student analytics over completed sessions."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from models.assessment import DEFAULT_EXPECTED_DURATION_SECONDS
from models.scenario import Scenario
from models.session import Session, SessionStatus


def format_duration(seconds: float) -> str:
    """Format seconds as "<h>h <m>m"."""
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    return f"{hours}h {minutes}m"


def _duration(session: Session) -> float:
    return (session.end_time - session.start_time).total_seconds()


def _month_key(moment: datetime) -> str:
    return f"{moment.year}-{moment.month:02d}"


class LinearTrend(BaseModel):
    slope: float = 0.0
    confidence: float = 0.0


def linear_trend(data: list[float]) -> LinearTrend:
    """Least-squares slope over the series index, with a consistency confidence.

    Confidence is 1 minus the coefficient of variation, floored at 0.
    """
    n = len(data)
    if n < 2:
        return LinearTrend()

    xs = range(n)
    sum_x = sum(xs)
    sum_y = sum(data)
    sum_xy = sum(x * y for x, y in zip(xs, data))
    sum_xx = sum(x * x for x in xs)
    slope = (n * sum_xy - sum_x * sum_y) / (n * sum_xx - sum_x * sum_x)

    mean = sum_y / n
    variance = sum((y - mean) ** 2 for y in data) / n
    confidence = max(0.0, 1 - variance ** 0.5 / (mean or 1))
    return LinearTrend(slope=slope, confidence=confidence)


class AnalyticsSummary(BaseModel):
    total_sessions: int
    total_time_spent: float
    formatted_time_spent: str
    average_session_duration: float
    average_score: float
    average_efficiency: float


class SessionBrief(BaseModel):
    session_id: str
    title: str
    duration: float
    score: Optional[float] = None


class DifficultyGroup(BaseModel):
    count: int = 0
    total_duration: float = 0.0
    average_duration: float = 0.0
    average_score: float = 0.0
    sessions: list[SessionBrief] = Field(default_factory=list)


class MonthlyData(BaseModel):
    month: str
    count: int = 0
    total_duration: float = 0.0
    total_score: float = 0.0
    average_duration: float = 0.0
    average_score: float = 0.0
    sessions: list[str] = Field(default_factory=list)


class TrendDirection(BaseModel):
    direction: str
    strength: float
    confidence: float


class CompletionTrend(BaseModel):
    """Monthly completion trend; trends are None with fewer than two months."""

    monthly_data: list[MonthlyData] = Field(default_factory=list)
    session_count: Optional[TrendDirection] = None
    performance: Optional[TrendDirection] = None
    efficiency: Optional[TrendDirection] = None
    summary: str


class RecentActivity(BaseModel):
    last_session_id: Optional[str] = None
    sessions_this_month: int = 0
    favorite_scenario: Optional[str] = None


class StudentAnalytics(BaseModel):
    student_id: str
    summary: AnalyticsSummary
    by_difficulty: dict[str, DifficultyGroup]
    completion_trend: CompletionTrend
    recent_activity: RecentActivity


def _direction(slope: float, rising: str, falling: str) -> str:
    if slope > 0:
        return rising
    if slope < 0:
        return falling
    return "stable"


def _completion_trend(sessions: list[Session]) -> CompletionTrend:
    if not sessions:
        return CompletionTrend(summary="No completed sessions available")

    months: dict[str, MonthlyData] = {}
    for session in sessions:
        key = _month_key(session.end_time)
        month = months.setdefault(key, MonthlyData(month=key))
        month.count += 1
        month.total_duration += _duration(session)
        month.total_score += session.overall_score or 0.0
        month.sessions.append(session.session_id)

    monthly = [months[key] for key in sorted(months)]
    for month in monthly:
        month.average_duration = month.total_duration / month.count
        month.average_score = month.total_score / month.count

    if len(monthly) < 2:
        return CompletionTrend(monthly_data=monthly, summary="Consistent performance maintained")

    counts = linear_trend([float(m.count) for m in monthly])
    scores = linear_trend([m.average_score for m in monthly])
    durations = linear_trend([m.average_duration for m in monthly])

    session_count = TrendDirection(
        direction=_direction(counts.slope, "increasing", "decreasing"),
        strength=abs(counts.slope),
        confidence=counts.confidence,
    )
    performance = TrendDirection(
        direction=_direction(scores.slope, "improving", "declining"),
        strength=abs(scores.slope),
        confidence=scores.confidence,
    )
    # Shorter sessions mean better efficiency.
    efficiency = TrendDirection(
        direction=_direction(-durations.slope, "improving", "declining"),
        strength=abs(durations.slope),
        confidence=durations.confidence,
    )

    first, last = monthly[0], monthly[-1]
    parts = []
    if session_count.direction == "increasing":
        parts.append(f"Completed {last.count} sessions this month (up from {first.count})")
    elif session_count.direction == "decreasing":
        parts.append(f"Session completion decreased to {last.count} this month")
    if performance.direction == "improving":
        improvement = (last.average_score - first.average_score) * 100
        parts.append(f"Performance improved by {improvement:.1f}%")
    if efficiency.direction == "improving":
        saved = first.average_duration - last.average_duration
        parts.append(f"Became {format_duration(saved)} more efficient per session")

    return CompletionTrend(
        monthly_data=monthly,
        session_count=session_count,
        performance=performance,
        efficiency=efficiency,
        summary=". ".join(parts) or "Consistent performance maintained",
    )


def build_student_analytics(
    student_id: str,
    sessions: list[Session],
    scenarios: dict[str, Scenario],
    now: datetime,
) -> StudentAnalytics:
    """Summarize a student's completed sessions.

    Args:
        student_id: Student the analytics are for.
        sessions: The student's sessions; only completed ones are counted.
        scenarios: Scenarios keyed by id, for titles, difficulty and durations.
        now: Current real time, for "this month" counts.

    Returns:
        StudentAnalytics.
    """
    completed = sorted(
        (s for s in sessions if s.status == SessionStatus.COMPLETED and s.end_time is not None),
        key=lambda s: s.end_time,
    )
    count = len(completed)

    def scenario_of(session: Session) -> Optional[Scenario]:
        return scenarios.get(session.scenario_id)

    total_duration = sum(_duration(s) for s in completed)
    total_score = sum(s.overall_score or 0.0 for s in completed)
    total_efficiency = 0.0
    for session in completed:
        scenario = scenario_of(session)
        expected = (scenario.expected_duration_seconds if scenario else None) or DEFAULT_EXPECTED_DURATION_SECONDS
        total_efficiency += expected / max(_duration(session), 1.0)

    summary = AnalyticsSummary(
        total_sessions=count,
        total_time_spent=total_duration,
        formatted_time_spent=format_duration(total_duration),
        average_session_duration=total_duration / count if count else 0.0,
        average_score=total_score / count if count else 0.0,
        average_efficiency=total_efficiency / count if count else 0.0,
    )

    groups: dict[str, DifficultyGroup] = {}
    for session in completed:
        scenario = scenario_of(session)
        difficulty = scenario.difficulty_level if scenario else "unknown"
        group = groups.setdefault(difficulty, DifficultyGroup())
        duration = _duration(session)
        group.count += 1
        group.total_duration += duration
        group.average_score += session.overall_score or 0.0
        group.sessions.append(
            SessionBrief(
                session_id=session.session_id,
                title=scenario.title if scenario else session.scenario_id,
                duration=duration,
                score=session.overall_score,
            )
        )
    for group in groups.values():
        group.average_duration = group.total_duration / group.count
        group.average_score = group.average_score / group.count

    titles: dict[str, int] = {}
    for session in completed:
        scenario = scenario_of(session)
        title = scenario.title if scenario else session.scenario_id
        titles[title] = titles.get(title, 0) + 1
    favorite = max(titles, key=lambda t: titles[t]) if titles else None

    recent = RecentActivity(
        last_session_id=completed[-1].session_id if completed else None,
        sessions_this_month=sum(1 for s in completed if _month_key(s.end_time) == _month_key(now)),
        favorite_scenario=favorite,
    )

    return StudentAnalytics(
        student_id=student_id,
        summary=summary,
        by_difficulty=groups,
        completion_trend=_completion_trend(completed),
        recent_activity=recent,
    )
