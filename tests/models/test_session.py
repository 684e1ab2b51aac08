"""Unit tests for the Session aggregate and its state machine."""

from datetime import datetime

import pytest
from pydantic import ValidationError

from models.actions import MedicalAction
from models.errors import InvalidStateError, InvalidStateTransitionError
from models.session import Session, SessionStatus
from tests.fixtures.core.scenarios import FIXED_START
from tests.fixtures.core.sessions import create_session


class TestSessionInstantiation:
    def test_defaults(self, session):
        assert session.status == SessionStatus.ACTIVE
        assert session.version == 0
        assert session.total_virtual_time_elapsed == 0.0
        assert session.is_open

    def test_naive_start_time_rejected(self):
        with pytest.raises(ValidationError):
            Session(
                scenario_id="scenario-001",
                student_id="student-1",
                start_time=datetime(2025, 1, 15, 10, 0),
                current_virtual_time=FIXED_START,
                last_real_time_update=FIXED_START,
            )

    def test_rejects_non_positive_acceleration(self):
        with pytest.raises(ValidationError):
            create_session(time_acceleration_rate=0)


class TestTransitions:
    @pytest.mark.parametrize(
        "start, target",
        [
            (SessionStatus.ACTIVE, SessionStatus.PAUSED),
            (SessionStatus.PAUSED, SessionStatus.ACTIVE),
            (SessionStatus.ACTIVE, SessionStatus.COMPLETED),
        ],
    )
    def test_allowed(self, start, target):
        session = create_session(status=start)

        session.transition_to(target)

        assert session.status == target

    @pytest.mark.parametrize(
        "start, target",
        [
            (SessionStatus.PAUSED, SessionStatus.COMPLETED),
            (SessionStatus.PAUSED, SessionStatus.PAUSED),
            (SessionStatus.ACTIVE, SessionStatus.ACTIVE),
            (SessionStatus.COMPLETED, SessionStatus.ACTIVE),
            (SessionStatus.COMPLETED, SessionStatus.PAUSED),
            (SessionStatus.COMPLETED, SessionStatus.COMPLETED),
        ],
    )
    def test_rejected_transition_leaves_status(self, start, target):
        session = create_session(status=start)

        with pytest.raises(InvalidStateTransitionError) as exc_info:
            session.transition_to(target)

        assert session.status == start
        assert exc_info.value.current == start.value
        assert isinstance(exc_info.value, InvalidStateError)

    def test_require_status(self):
        session = create_session(status=SessionStatus.PAUSED)

        session.require_status(SessionStatus.ACTIVE, SessionStatus.PAUSED)
        with pytest.raises(InvalidStateError):
            session.require_status(SessionStatus.ACTIVE)


class TestBlockingActions:
    def test_in_progress_real_time_action_blocks(self):
        surgery = MedicalAction(
            user_id="student-1",
            action_type="surgery",
            can_be_fast_forwarded=False,
            real_time_started=FIXED_START,
            virtual_time_started=FIXED_START,
        )
        exam = MedicalAction(
            user_id="student-1",
            action_type="examination",
            real_time_started=FIXED_START,
            virtual_time_started=FIXED_START,
        )
        session = create_session(actions=[surgery, exam])

        assert session.blocking_actions() == [surgery]
