"""Event scheduling for a session's virtual timeline.

The scheduler holds no state of its own. It operates on the session's
time_events list, which is kept sorted by virtual_time_scheduled so that
range queries can use binary search.
"""

import bisect
import logging
from datetime import datetime
from typing import Callable

from pydantic import BaseModel, Field

from models.errors import InvalidInputError, NotFoundError
from models.event import (
    ComplicationOnset,
    EventPayload,
    LabResultReady,
    MedicationEffect,
    PatientDeterioration,
    TimeEvent,
    UnknownEventPayload,
)
from models.patient import LabResult, PatientState
from models.physiology import apply_complication, generate_complication
from models.scenario import EventTemplate

logger = logging.getLogger(__name__)


def _scheduled(event: TimeEvent) -> datetime:
    return event.virtual_time_scheduled


class FireResult(BaseModel):
    """Outcome of firing a batch of events.

    Args:
        triggered: Events stamped by this call, in firing order.
        already_handled: Events skipped because they had fired before.
        patient_state: Patient state after all consequences were applied.
        complications: Session complication log after firing.
    """

    triggered: list[TimeEvent] = Field(default_factory=list)
    already_handled: list[TimeEvent] = Field(default_factory=list)
    patient_state: PatientState
    complications: list[str] = Field(default_factory=list)


class _FiringContext:
    """Mutable state threaded through the consequence handlers of one fire() call."""

    def __init__(self, patient_state: PatientState, complications: list[str]):
        self.patient_state = patient_state
        self.complications = complications


def _on_lab_result(event: TimeEvent, payload: LabResultReady, ctx: _FiringContext) -> None:
    ctx.patient_state.lab_results.append(
        LabResult(
            test=payload.test,
            value=payload.value,
            units=payload.units,
            normal_range=payload.normal_range,
            is_critical=payload.is_critical,
            interpretation=payload.interpretation,
            timestamp=event.virtual_time_scheduled,
        )
    )


def _on_medication_effect(event: TimeEvent, payload: MedicationEffect, ctx: _FiringContext) -> None:
    if not payload.vital_sign_changes.is_empty():
        ctx.patient_state.apply_vital_sign_changes(payload.vital_sign_changes)


def _on_deterioration(event: TimeEvent, payload: PatientDeterioration, ctx: _FiringContext) -> None:
    ctx.complications.append(payload.complication)
    if not payload.vital_sign_changes.is_empty():
        ctx.patient_state.apply_vital_sign_changes(payload.vital_sign_changes)


def _on_complication(event: TimeEvent, payload: ComplicationOnset, ctx: _FiringContext) -> None:
    complication = generate_complication(payload.complication_type, payload.severity)
    ctx.patient_state = apply_complication(ctx.patient_state, complication)
    ctx.complications.append(complication.type)


def _on_unknown(event: TimeEvent, payload: UnknownEventPayload, ctx: _FiringContext) -> None:
    logger.debug(f"No consequences for event type '{payload.event_type}'")


_HANDLERS: dict[type, Callable[[TimeEvent, EventPayload, _FiringContext], None]] = {
    LabResultReady: _on_lab_result,
    MedicationEffect: _on_medication_effect,
    PatientDeterioration: _on_deterioration,
    ComplicationOnset: _on_complication,
    UnknownEventPayload: _on_unknown,
}


class EventScheduler:
    """Materializes, queries, fires and acknowledges time events."""

    def materialize(
        self,
        templates: list[EventTemplate],
        session_start: datetime,
        created_at: datetime,
    ) -> list[TimeEvent]:
        """Create events from scenario templates.

        Each template's "HH:MM" time of day is placed on the date, and in the
        timezone, of session_start.

        Args:
            templates: Scenario event templates.
            session_start: Virtual start time of the session.
            created_at: Real creation time stamped on each event.

        Returns:
            Events sorted by scheduled time.

        Raises:
            InvalidInputError: If a template's time of day is malformed.
        """
        events = []
        for template in templates:
            try:
                hours, minutes = template.time_of_day()
            except ValueError as e:
                raise InvalidInputError(str(e)) from e

            scheduled = session_start.replace(
                hour=hours, minute=minutes, second=0, microsecond=0
            )
            events.append(
                TimeEvent(
                    event_type=template.event_type,
                    event_data=dict(template.details),
                    virtual_time_scheduled=scheduled,
                    requires_attention=template.requires_attention,
                    created_at=created_at,
                )
            )

        events.sort(key=_scheduled)
        return events

    def schedule(self, events: list[TimeEvent], event: TimeEvent) -> None:
        """Insert an event keeping the list sorted by scheduled time.

        Raises:
            ValueError: If an event with the same event_id is already present.
        """
        if any(e.event_id == event.event_id for e in events):
            raise ValueError(f"Event {event.event_id} already scheduled")
        index = bisect.bisect_right(events, event.virtual_time_scheduled, key=_scheduled)
        events.insert(index, event)

    def events_in_range(
        self,
        events: list[TimeEvent],
        start: datetime,
        end: datetime,
        include_start: bool = False,
    ) -> list[TimeEvent]:
        """Events scheduled in (start, end], or [start, end] with include_start.

        Args:
            events: Events sorted by scheduled time.
            start: Lower bound of the range.
            end: Upper bound of the range (inclusive).
            include_start: Whether events exactly at start are included.

        Returns:
            Matching events in ascending scheduled order.
        """
        if include_start:
            start_index = bisect.bisect_left(events, start, key=_scheduled)
        else:
            start_index = bisect.bisect_right(events, start, key=_scheduled)
        end_index = bisect.bisect_right(events, end, key=_scheduled)
        return events[start_index:end_index]

    def interrupting_events_between(
        self,
        events: list[TimeEvent],
        start: datetime,
        end: datetime,
        enabled: bool = True,
    ) -> list[TimeEvent]:
        """Unacknowledged events requiring attention scheduled in (start, end].

        Returns an empty list when enabled is False.
        """
        if not enabled:
            return []
        return [
            e
            for e in self.events_in_range(events, start, end)
            if e.requires_attention and not e.is_acknowledged
        ]

    def fire(
        self,
        events: list[TimeEvent],
        patient_state: PatientState,
        complications: list[str],
        fired_at: datetime,
    ) -> FireResult:
        """Trigger events and apply their consequences.

        Each event fires at most once. Events that have already fired are
        skipped and reported in already_handled. Event types with no known
        consequences are stamped as triggered and otherwise ignored.

        Args:
            events: Events to fire, in order.
            patient_state: Patient state to apply consequences to (not modified).
            complications: Session complication log (not modified).
            fired_at: Real time of firing.

        Returns:
            FireResult with triggered/already-handled events and the new
            patient state and complication log.
        """
        ctx = _FiringContext(patient_state.model_copy(deep=True), list(complications))
        triggered = []
        already_handled = []

        for event in events:
            if not event.mark_triggered(fired_at):
                already_handled.append(event)
                continue

            payload = event.payload()
            _HANDLERS[type(payload)](event, payload, ctx)
            triggered.append(event)
            logger.info(f"Fired event {event.event_id}: {event.get_summary()}")

        return FireResult(
            triggered=triggered,
            already_handled=already_handled,
            patient_state=ctx.patient_state,
            complications=ctx.complications,
        )

    def acknowledge(self, events: list[TimeEvent], event_id: str, now: datetime) -> TimeEvent:
        """Acknowledge an event; acknowledging twice keeps the first stamp.

        Raises:
            NotFoundError: If no event has this event_id.
        """
        for event in events:
            if event.event_id == event_id:
                event.acknowledge(now)
                return event
        raise NotFoundError("Event", event_id)
