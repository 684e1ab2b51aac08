"""Virtual patient clock model."""

import math
from datetime import datetime, timedelta
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from models.errors import InvalidInputError


class TimeFlowMode(str, Enum):
    """How virtual time is currently flowing for a session."""

    REAL_TIME = "REAL_TIME"
    ACCELERATED = "ACCELERATED"
    PAUSED = "PAUSED"


class VirtualClock(BaseModel):
    """Converts between real elapsed time and virtual patient time.

    Virtual time is decoupled from wall-clock time. The clock holds nothing
    but the acceleration rate; the session owns the actual timestamps and
    this class only does the arithmetic on them.

    Examples:
        - rate=1.0, 10 virtual minutes -> 600 real seconds
        - rate=10.0, 10 virtual minutes -> 60 real seconds
        - rate=2.0, 30 real seconds -> 1 virtual minute

    Args:
        acceleration_rate: Virtual minutes simulated per real minute (> 0).
    """

    acceleration_rate: float = Field(
        default=1.0,
        gt=0.0,
        description="Virtual minutes simulated per real minute",
    )

    @field_validator("acceleration_rate")
    @classmethod
    def validate_finite(cls, v: float) -> float:
        """Reject infinite rates, which would make real time collapse to zero."""
        if v == float("inf"):
            raise ValueError("acceleration_rate must be finite")
        return v

    def calculate_real_time_elapsed(self, virtual_minutes: float) -> float:
        """Real seconds that correspond to the given virtual minutes.

        Linear in virtual_minutes; at rate 1.0 the result is minutes * 60.

        Args:
            virtual_minutes: Amount of virtual time in minutes.

        Returns:
            Equivalent real time in seconds.
        """
        return calculate_real_time_elapsed(self.acceleration_rate, virtual_minutes)

    def calculate_virtual_minutes(self, real_seconds: float) -> float:
        """Virtual minutes that pass during the given real seconds.

        Args:
            real_seconds: Real elapsed time in seconds.

        Returns:
            Virtual minutes at this clock's rate.
        """
        if real_seconds < 0:
            raise InvalidInputError("Real elapsed time cannot be negative")
        return real_seconds / 60.0 * self.acceleration_rate

    def advance(self, current: datetime, virtual_minutes: float) -> datetime:
        """Compute the virtual time reached after skipping forward.

        Args:
            current: Current virtual time.
            virtual_minutes: Minutes to skip (must be positive).

        Returns:
            The target virtual time.

        Raises:
            InvalidInputError: If virtual_minutes is not a positive finite number,
                or the target falls outside the representable date range.
        """
        if not math.isfinite(virtual_minutes) or virtual_minutes <= 0:
            raise InvalidInputError(
                f"virtual_minutes must be positive, got {virtual_minutes}"
            )
        try:
            return current + timedelta(minutes=virtual_minutes)
        except OverflowError as e:
            raise InvalidInputError(
                f"virtual_minutes is too large, got {virtual_minutes}"
            ) from e

    @staticmethod
    def minutes_between(start: datetime, end: datetime) -> float:
        """Virtual minutes from start to end.

        Raises:
            InvalidInputError: If end is before start.
        """
        if end < start:
            raise InvalidInputError(f"'end' is before 'start': {end} < {start}")
        return (end - start).total_seconds() / 60.0


def calculate_real_time_elapsed(acceleration_rate: float, virtual_minutes: float) -> float:
    """Real seconds needed to simulate virtual_minutes at acceleration_rate.

    Args:
        acceleration_rate: Virtual minutes per real minute (> 0).
        virtual_minutes: Virtual minutes simulated.

    Returns:
        Real time in seconds.

    Raises:
        InvalidInputError: If the rate is not positive.
    """
    if acceleration_rate <= 0:
        raise InvalidInputError(
            f"Acceleration rate must be positive, got {acceleration_rate}"
        )
    return (virtual_minutes / acceleration_rate) * 60.0
