"""Scenario definition models (read-only to the simulation core)."""

import re
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from models.patient import VitalSigns

_TIME_OF_DAY = re.compile(r"^(\d{1,2}):(\d{2})$")


class EventTemplate(BaseModel):
    """An event a scenario schedules at a virtual time of day.

    Args:
        virtual_time: Time of day as "HH:MM".
        event_type: Type of the event to create.
        details: Payload copied onto the created event.
        requires_attention: Whether the event interrupts fast-forward.
    """

    virtual_time: str
    event_type: str
    details: dict[str, Any] = Field(default_factory=dict)
    requires_attention: bool = False

    def time_of_day(self) -> tuple[int, int]:
        """Parse virtual_time into (hours, minutes).

        Raises:
            ValueError: If the value is not a valid "HH:MM" time.
        """
        match = _TIME_OF_DAY.match(self.virtual_time.strip())
        if not match:
            raise ValueError(f"Invalid virtual time '{self.virtual_time}', expected HH:MM")
        hours, minutes = int(match.group(1)), int(match.group(2))
        if hours > 23 or minutes > 59:
            raise ValueError(f"Invalid virtual time '{self.virtual_time}', expected HH:MM")
        return hours, minutes


class Scenario(BaseModel):
    """A clinical case students can run sessions against."""

    scenario_id: str
    title: str
    is_active: bool = True
    medical_condition: Optional[str] = None
    difficulty_level: str = "intermediate"
    chief_complaint: str = ""
    history_of_present_illness: str = ""
    past_medical_history: list[str] = Field(default_factory=list)
    allergies: list[str] = Field(default_factory=list)
    initial_vital_signs: VitalSigns = Field(default_factory=VitalSigns)
    initial_emotional_state: str = "calm"
    scheduled_events: list[EventTemplate] = Field(default_factory=list)
    learning_objectives: list[str] = Field(default_factory=list)
    expected_duration_minutes: Optional[float] = None
    requires_time_pressure: bool = False
    time_acceleration_rate: Optional[float] = None
    complication_risks: dict[str, float] = Field(default_factory=dict)

    @field_validator("time_acceleration_rate")
    @classmethod
    def validate_rate(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError("time_acceleration_rate must be positive")
        return v

    @property
    def expected_duration_seconds(self) -> Optional[float]:
        if self.expected_duration_minutes is None:
            return None
        return self.expected_duration_minutes * 60.0
