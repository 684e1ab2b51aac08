"""Storage and directory interfaces used by the lifecycle manager.

Each interface comes with an in-memory implementation. Stored sessions are
never handed out directly: reads return deep copies, so callers can only
change stored state through save().
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Iterable, Optional

from models.errors import ConflictError, NotFoundError
from models.scenario import Scenario
from models.session import Session, UserRole

logger = logging.getLogger(__name__)


class SessionRepository(ABC):
    """Persistent store of sessions with optimistic concurrency."""

    @abstractmethod
    def get(self, session_id: str) -> Session:
        """Return a copy of the last saved version.

        Raises:
            NotFoundError: If no session has this id.
        """

    @abstractmethod
    def add(self, session: Session) -> Session:
        """Insert a new session and return the stored copy.

        Raises:
            ConflictError: If the session id already exists.
        """

    @abstractmethod
    def save(self, session: Session) -> Session:
        """Replace a stored session and return the stored copy.

        The session's version must match the stored version; the stored copy
        gets the next version.

        Raises:
            NotFoundError: If the session was never added.
            ConflictError: If the stored version has moved on.
        """

    @abstractmethod
    def find_open_session(self, student_id: str, scenario_id: str) -> Optional[Session]:
        """Return the student's ACTIVE or PAUSED session for the scenario, if any."""

    @abstractmethod
    def list_for_student(self, student_id: str) -> list[Session]:
        """Return copies of all sessions owned by the student."""


class InMemorySessionRepository(SessionRepository):
    """Thread-safe dict-backed repository."""

    def __init__(self):
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def get(self, session_id: str) -> Session:
        with self._lock:
            stored = self._sessions.get(session_id)
            if stored is None:
                raise NotFoundError("Session", session_id)
            return stored.model_copy(deep=True)

    def add(self, session: Session) -> Session:
        with self._lock:
            if session.session_id in self._sessions:
                raise ConflictError(f"Session {session.session_id} already exists")
            stored = session.model_copy(deep=True)
            stored.version = 1
            self._sessions[stored.session_id] = stored
            return stored.model_copy(deep=True)

    def save(self, session: Session) -> Session:
        with self._lock:
            stored = self._sessions.get(session.session_id)
            if stored is None:
                raise NotFoundError("Session", session.session_id)
            if stored.version != session.version:
                raise ConflictError(
                    f"Session {session.session_id} was modified concurrently "
                    f"(stored version {stored.version}, got {session.version})"
                )
            updated = session.model_copy(deep=True)
            updated.version = stored.version + 1
            self._sessions[updated.session_id] = updated
            return updated.model_copy(deep=True)

    def find_open_session(self, student_id: str, scenario_id: str) -> Optional[Session]:
        with self._lock:
            for stored in self._sessions.values():
                if (
                    stored.student_id == student_id
                    and stored.scenario_id == scenario_id
                    and stored.is_open
                ):
                    return stored.model_copy(deep=True)
        return None

    def list_for_student(self, student_id: str) -> list[Session]:
        with self._lock:
            return [
                s.model_copy(deep=True)
                for s in self._sessions.values()
                if s.student_id == student_id
            ]


class ScenarioProvider(ABC):
    """Read-only source of scenarios."""

    @abstractmethod
    def get_scenario(self, scenario_id: str) -> Scenario:
        """Return a scenario whether or not it is active.

        Raises:
            NotFoundError: If the scenario does not exist.
        """

    def get_active_scenario(self, scenario_id: str) -> Scenario:
        """Return the scenario if it exists and is active.

        Raises:
            NotFoundError: If the scenario is missing or inactive.
        """
        scenario = self.get_scenario(scenario_id)
        if not scenario.is_active:
            raise NotFoundError(
                "Scenario",
                scenario_id,
                f"Scenario with ID {scenario_id} not found or inactive",
            )
        return scenario


class InMemoryScenarioProvider(ScenarioProvider):
    def __init__(self, scenarios: Iterable[Scenario] = ()):
        self._scenarios = {s.scenario_id: s for s in scenarios}

    def add(self, scenario: Scenario) -> None:
        self._scenarios[scenario.scenario_id] = scenario

    def get_scenario(self, scenario_id: str) -> Scenario:
        scenario = self._scenarios.get(scenario_id)
        if scenario is None:
            raise NotFoundError(
                "Scenario",
                scenario_id,
                f"Scenario with ID {scenario_id} not found or inactive",
            )
        return scenario.model_copy(deep=True)


class UserDirectory(ABC):
    @abstractmethod
    def get_role(self, user_id: str) -> Optional[UserRole]:
        """Return the user's role, or None for unknown users."""


class InMemoryUserDirectory(UserDirectory):
    def __init__(self, roles: Optional[dict[str, UserRole]] = None):
        self._roles = dict(roles or {})

    def add(self, user_id: str, role: UserRole) -> None:
        self._roles[user_id] = role

    def get_role(self, user_id: str) -> Optional[UserRole]:
        return self._roles.get(user_id)


class AccessPolicy(ABC):
    @abstractmethod
    def can_access(self, session: Session, user_id: str, role: UserRole) -> bool:
        """Whether the user may read the session."""


class DefaultAccessPolicy(AccessPolicy):
    """Admins, the owning student, the assigned supervisor and medical experts.

    Institution scoping for medical experts is left to deployments that
    provide their own AccessPolicy.
    """

    def can_access(self, session: Session, user_id: str, role: UserRole) -> bool:
        if role == UserRole.ADMIN:
            return True
        if session.student_id == user_id:
            return True
        if session.supervisor_id is not None and session.supervisor_id == user_id:
            return True
        return role == UserRole.MEDICAL_EXPERT
