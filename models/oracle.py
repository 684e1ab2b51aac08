"""Virtual patient dialogue.

The patient's words come from an external text-generation service. This
module defines the boundary (PatientResponder) with an httpx implementation
for the real service and a deterministic scripted one for development and
tests.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

import httpx
from pydantic import BaseModel, Field, ValidationError

from models.errors import ServiceUnavailableError
from models.patient import VitalSignChanges

logger = logging.getLogger(__name__)

# Status codes that trigger automatic retry
RETRYABLE_STATUS_CODES = {502, 503, 504}

DEFAULT_RETRY_BACKOFF_BASE = 0.5  # seconds
DEFAULT_RETRY_BACKOFF_MAX = 30.0  # seconds


class ConversationMessage(BaseModel):
    role: str = "user"
    content: str
    timestamp: str


class ConversationContext(BaseModel):
    """What the patient "knows" when answering a question."""

    patient_state: dict[str, Any]
    medical_history: list[str] = Field(default_factory=list)
    current_symptoms: list[str] = Field(default_factory=list)
    vital_signs: dict[str, Any] = Field(default_factory=dict)
    emotional_state: str
    pain_level: float = 0.0
    conversation_history: list[ConversationMessage] = Field(default_factory=list)
    educational_objectives: list[str] = Field(default_factory=list)


class PatientResponse(BaseModel):
    """The virtual patient's answer and its side effects.

    Args:
        text: What the patient says.
        emotional_state: Patient's emotional state after answering.
        vital_sign_changes: Optional partial vital-sign update.
        medical_accuracy: Rated medical accuracy of the answer in [0, 1].
        educational_value: Rated educational value in [0, 1].
        triggered_event_types: Follow-up event types the answer sets off.
        triggered_event_data: Payload data for follow-up events, keyed by event type.
    """

    text: str
    emotional_state: str
    vital_sign_changes: Optional[VitalSignChanges] = None
    medical_accuracy: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    educational_value: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    triggered_event_types: list[str] = Field(default_factory=list)
    triggered_event_data: dict[str, dict[str, Any]] = Field(default_factory=dict)


class PatientResponder(ABC):
    @abstractmethod
    def generate_patient_response(self, question: str, context: ConversationContext) -> PatientResponse:
        """Produce the patient's answer to a question.

        Raises:
            ServiceUnavailableError: If the answer cannot be produced.
        """


def _calculate_backoff(attempt: int, base: float = DEFAULT_RETRY_BACKOFF_BASE) -> float:
    """Exponential backoff delay: base * 2^attempt, capped."""
    delay = base * (2 ** attempt)
    return min(delay, DEFAULT_RETRY_BACKOFF_MAX)


class HTTPPatientResponder(PatientResponder):
    """Calls a remote text-generation service over HTTP.

    Transient failures (connection errors, timeouts and 502/503/504
    responses) are retried with exponential backoff; anything that still
    fails is raised as ServiceUnavailableError.

    Args:
        base_url: Base URL of the service.
        timeout: Request timeout in seconds.
        max_retries: Retries after the first attempt.
        transport: Custom transport (e.g., MockTransport for testing).
        sleep: Function used to wait between retries.
    """

    path = "/patient-responses"

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        max_retries: int = 2,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self._sleep = sleep
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "HTTPPatientResponder":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def generate_patient_response(self, question: str, context: ConversationContext) -> PatientResponse:
        url = f"{self.base_url}{self.path}"
        body = {"question": question, "context": context.model_dump(mode="json")}
        attempts = self.max_retries + 1

        for attempt in range(attempts):
            try:
                response = self._client.post(self.path, json=body)
            except httpx.TimeoutException as e:
                if attempt >= attempts - 1:
                    logger.error(f"Patient response request to {url} timed out")
                    raise ServiceUnavailableError(f"Request to {url} timed out") from e
                self._sleep(_calculate_backoff(attempt))
                continue
            except httpx.TransportError as e:
                if attempt >= attempts - 1:
                    logger.error(f"Patient response service unreachable at {url}: {e}")
                    raise ServiceUnavailableError(f"Failed to reach {url}") from e
                self._sleep(_calculate_backoff(attempt))
                continue

            if response.status_code in RETRYABLE_STATUS_CODES and attempt < attempts - 1:
                logger.warning(
                    f"Patient response service returned {response.status_code}, retrying"
                )
                self._sleep(_calculate_backoff(attempt))
                continue

            if not response.is_success:
                logger.error(f"Patient response service returned HTTP {response.status_code}")
                raise ServiceUnavailableError(
                    f"Patient response service returned HTTP {response.status_code}"
                )

            try:
                return PatientResponse.model_validate(response.json())
            except (ValueError, ValidationError) as e:
                logger.error(f"Malformed response from patient response service: {e}")
                raise ServiceUnavailableError(
                    "Malformed response from patient response service"
                ) from e

        raise ServiceUnavailableError(f"Patient response service at {url} is unavailable")


class ScriptedRule(BaseModel):
    """Keyword rule for the scripted responder. First matching rule wins."""

    keywords: tuple[str, ...]
    reply: str
    emotional_state: Optional[str] = None
    vital_sign_changes: Optional[VitalSignChanges] = None
    triggered_event_types: tuple[str, ...] = ()


DEFAULT_RULES = (
    ScriptedRule(
        keywords=("pain", "hurt"),
        reply="It hurts a lot. It started a few hours ago and it's getting worse.",
    ),
    ScriptedRule(
        keywords=("breath", "breathing"),
        reply="I can't seem to catch my breath, especially when I move around.",
    ),
    ScriptedRule(
        keywords=("allerg",),
        reply="I think I'm allergic to something, I had a rash with an antibiotic once.",
    ),
    ScriptedRule(
        keywords=("history", "before", "medication"),
        reply="I've been seeing my doctor for a few things. I take my pills most days.",
    ),
    ScriptedRule(
        keywords=("worried", "scared", "okay", "reassure"),
        reply="Thank you, that makes me feel a little better.",
        emotional_state="calm",
    ),
)


class ScriptedPatientResponder(PatientResponder):
    """Deterministic keyword-driven patient.

    Args:
        rules: Ordered rules; the first rule with a keyword in the question wins.
        fallback: Reply when no rule matches.
    """

    def __init__(
        self,
        rules: tuple[ScriptedRule, ...] = DEFAULT_RULES,
        fallback: str = "I'm not sure, doctor. I just don't feel right.",
    ):
        self.rules = rules
        self.fallback = fallback

    def generate_patient_response(self, question: str, context: ConversationContext) -> PatientResponse:
        lowered = question.lower()
        rule = next((r for r in self.rules if any(k in lowered for k in r.keywords)), None)

        emotional_state = context.emotional_state
        if context.pain_level >= 7:
            emotional_state = "distressed"

        if rule is None:
            return PatientResponse(
                text=self.fallback,
                emotional_state=emotional_state,
                medical_accuracy=0.8,
                educational_value=0.5,
            )

        return PatientResponse(
            text=rule.reply,
            emotional_state=rule.emotional_state or emotional_state,
            vital_sign_changes=rule.vital_sign_changes,
            medical_accuracy=0.8,
            educational_value=0.7,
            triggered_event_types=list(rule.triggered_event_types),
        )
