"""Time event model and its typed payloads."""

import logging
from datetime import datetime
from typing import Any, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from models.patient import VitalSignChanges

logger = logging.getLogger(__name__)

LAB_RESULT_READY = "lab_result_ready"
MEDICATION_EFFECT = "medication_effect"
PATIENT_DETERIORATION = "patient_deterioration"
COMPLICATION_PREFIX = "complication_"

# event_data["triggered_by"] for follow-ups set off by a patient answer.
CONVERSATION_ORIGIN = "conversation"


class LabResultReady(BaseModel):
    """A lab or diagnostic result becomes available."""

    test: str
    value: Any = None
    units: Optional[str] = None
    normal_range: Optional[str] = None
    is_critical: bool = False
    interpretation: Optional[str] = None


class MedicationEffect(BaseModel):
    """A medication's effect on vital signs takes hold."""

    medication: Optional[str] = None
    vital_sign_changes: VitalSignChanges = Field(default_factory=VitalSignChanges)


class PatientDeterioration(BaseModel):
    """The patient worsens; the complication is logged on the session."""

    complication: str
    vital_sign_changes: VitalSignChanges = Field(default_factory=VitalSignChanges)


class ComplicationOnset(BaseModel):
    """A templated complication starts."""

    complication_type: str
    severity: float = Field(default=0.5, ge=0.0, le=1.0)


class UnknownEventPayload(BaseModel):
    """Payload of an event type nothing reacts to."""

    event_type: str
    data: dict[str, Any] = Field(default_factory=dict)


EventPayload = Union[
    LabResultReady,
    MedicationEffect,
    PatientDeterioration,
    ComplicationOnset,
    UnknownEventPayload,
]

_PAYLOAD_TYPES: dict[str, type[BaseModel]] = {
    LAB_RESULT_READY: LabResultReady,
    MEDICATION_EFFECT: MedicationEffect,
    PATIENT_DETERIORATION: PatientDeterioration,
}


def parse_event_payload(event_type: str, event_data: dict[str, Any]) -> EventPayload:
    """Interpret raw event data as one of the closed payload variants.

    Never raises. Event types nothing handles, and payloads that fail
    validation for their type, come back as UnknownEventPayload. Conversation
    follow-ups often carry no payload, so their failures are logged at DEBUG.

    Args:
        event_type: The event's type string.
        event_data: Raw payload as stored on the event.

    Returns:
        The typed payload.
    """
    try:
        if event_type.startswith(COMPLICATION_PREFIX):
            data = {"complication_type": event_type[len(COMPLICATION_PREFIX):]}
            data.update(event_data)
            return ComplicationOnset.model_validate(data)

        payload_type = _PAYLOAD_TYPES.get(event_type)
        if payload_type is not None:
            return payload_type.model_validate(event_data)
    except ValidationError as e:
        if event_data.get("triggered_by") == CONVERSATION_ORIGIN:
            logger.debug(f"Follow-up event '{event_type}' has no usable payload: {e}")
        else:
            logger.warning(f"Malformed payload for event type '{event_type}': {e}")

    return UnknownEventPayload(event_type=event_type, data=dict(event_data))


class TimeEvent(BaseModel):
    """A clinical event scheduled on the virtual patient timeline.

    Events fire at most once. Interrupting events (requires_attention) stop a
    fast-forward that reaches them until they are acknowledged.

    Args:
        event_id: Unique identifier for this event.
        event_type: Type string, e.g. "lab_result_ready".
        event_data: Raw payload, interpreted by payload().
        virtual_time_scheduled: When the event is due on the virtual clock.
        requires_attention: Whether the event interrupts fast-forward.
        is_complication: True when the event type names a complication.
        acknowledged_at: Real time the event was acknowledged.
        virtual_time_triggered: Virtual time the event fired.
        real_time_triggered: Real time the event fired.
        created_at: Real time the event was created.
    """

    event_id: str = Field(
        default_factory=lambda: str(uuid4()),
        description="Unique identifier for this event",
    )
    event_type: str = Field(description="Type of the event")
    event_data: dict[str, Any] = Field(default_factory=dict)
    virtual_time_scheduled: datetime = Field(
        description="When this event is due (virtual time)"
    )
    requires_attention: bool = Field(default=False)
    is_complication: bool = Field(default=False)
    acknowledged_at: Optional[datetime] = None
    virtual_time_triggered: Optional[datetime] = None
    real_time_triggered: Optional[datetime] = None
    created_at: datetime

    @field_validator("virtual_time_scheduled", "created_at")
    @classmethod
    def validate_timezone_aware(cls, v: datetime) -> datetime:
        """Ensure datetime is timezone-aware."""
        if v.tzinfo is None:
            raise ValueError("Datetime must be timezone-aware (recommend UTC)")
        return v

    @model_validator(mode="after")
    def derive_is_complication(self) -> "TimeEvent":
        if "complication" in self.event_type:
            self.is_complication = True
        return self

    @property
    def is_triggered(self) -> bool:
        return self.real_time_triggered is not None

    @property
    def is_acknowledged(self) -> bool:
        return self.acknowledged_at is not None

    def payload(self) -> EventPayload:
        return parse_event_payload(self.event_type, self.event_data)

    def mark_triggered(self, fired_at: datetime) -> bool:
        """Stamp trigger times once.

        Args:
            fired_at: Real time of firing.

        Returns:
            True if the event was stamped now, False if it had already fired.
        """
        if self.is_triggered:
            return False
        self.virtual_time_triggered = self.virtual_time_scheduled
        self.real_time_triggered = fired_at
        return True

    def acknowledge(self, now: datetime) -> datetime:
        """Stamp acknowledged_at unless already set, and return the stamp."""
        if self.acknowledged_at is None:
            self.acknowledged_at = now
        return self.acknowledged_at

    def get_summary(self) -> str:
        """Return a short "[time] type" description for logging."""
        time_str = self.virtual_time_scheduled.strftime("%Y-%m-%d %H:%M")
        flag = " (requires attention)" if self.requires_attention else ""
        return f"[{time_str}] {self.event_type}{flag}"
