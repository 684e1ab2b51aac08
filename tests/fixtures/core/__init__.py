"""Core simulation fixtures."""

from tests.fixtures.core.scenarios import (
    FIXED_START,
    create_scenario,
    create_event_template,
)
from tests.fixtures.core.sessions import create_session
from tests.fixtures.core.events import create_time_event
from tests.fixtures.core.managers import FixedClock, create_lifecycle_manager

__all__ = [
    "FIXED_START",
    "create_scenario",
    "create_event_template",
    "create_session",
    "create_time_event",
    "FixedClock",
    "create_lifecycle_manager",
]
