"""Fixtures for TimeEvent."""

from datetime import datetime, timedelta
from typing import Any

import pytest

from models.event import TimeEvent
from tests.fixtures.core.scenarios import FIXED_START


def create_time_event(
    event_type: str = "lab_result_ready",
    virtual_time_scheduled: datetime | None = None,
    event_data: dict[str, Any] | None = None,
    created_at: datetime | None = None,
    **kwargs,
) -> TimeEvent:
    """Create a TimeEvent with sensible defaults.

    Args:
        event_type: Event type string.
        virtual_time_scheduled: When the event is due (defaults to start + 20 min).
        event_data: Payload (defaults to a normal CBC for lab results).
        created_at: Creation time (defaults to FIXED_START).
        **kwargs: Additional fields to override.

    Returns:
        TimeEvent instance ready for testing.
    """
    if virtual_time_scheduled is None:
        virtual_time_scheduled = FIXED_START + timedelta(minutes=20)
    if event_data is None:
        event_data = {"test": "cbc", "value": 7.4} if event_type == "lab_result_ready" else {}
    return TimeEvent(
        event_type=event_type,
        event_data=event_data,
        virtual_time_scheduled=virtual_time_scheduled,
        created_at=created_at or FIXED_START,
        **kwargs,
    )


@pytest.fixture
def lab_event():
    return create_time_event(requires_attention=True)


@pytest.fixture
def events_timeline():
    """Four events at +10, +20, +20 and +40 minutes, the second interrupting."""
    return [
        create_time_event(virtual_time_scheduled=FIXED_START + timedelta(minutes=10)),
        create_time_event(
            virtual_time_scheduled=FIXED_START + timedelta(minutes=20),
            requires_attention=True,
        ),
        create_time_event(
            event_type="medication_effect",
            virtual_time_scheduled=FIXED_START + timedelta(minutes=20),
            event_data={"vital_sign_changes": {"heart_rate": 90}},
        ),
        create_time_event(
            event_type="patient_deterioration",
            virtual_time_scheduled=FIXED_START + timedelta(minutes=40),
            event_data={"complication": "hypotension"},
            requires_attention=True,
        ),
    ]
