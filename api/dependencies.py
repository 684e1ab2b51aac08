"""Dependency injection providers for the FastAPI application.

This module builds the shared SessionLifecycleManager at startup and exposes
it, together with the requester identity taken from request headers, to
route handlers.
"""

import logging
from typing import Annotated, Optional

from fastapi import Depends, Header
from pydantic import BaseModel

from models.drugs import InMemoryDrugKnowledge
from models.oracle import HTTPPatientResponder, PatientResponder, ScriptedPatientResponder
from models.patient import BloodPressure, VitalSigns
from models.physiology import DiseaseModelRegistry, PhysiologyEngine
from models.assessment import AssessmentEngine
from models.repository import (
    DefaultAccessPolicy,
    InMemoryScenarioProvider,
    InMemorySessionRepository,
    InMemoryUserDirectory,
)
from models.scenario import EventTemplate, Scenario
from models.session import UserRole
from models.simulation import SessionLifecycleManager
from settings import Settings

logger = logging.getLogger(__name__)

# Single shared instance, created when the app starts
_lifecycle_manager: SessionLifecycleManager | None = None
_responder: PatientResponder | None = None


def demo_scenarios() -> list[Scenario]:
    """Scenarios available out of the box."""
    return [
        Scenario(
            scenario_id="chest-pain-001",
            title="Acute chest pain",
            medical_condition="myocardial_infarction",
            difficulty_level="intermediate",
            chief_complaint="Crushing chest pain",
            history_of_present_illness=(
                "58-year-old with sudden onset chest pain radiating to the left arm, "
                "nausea and shortness of breath for the past hour."
            ),
            past_medical_history=["hypertension", "hyperlipidemia"],
            allergies=["penicillin"],
            initial_vital_signs=VitalSigns(
                heart_rate=104,
                blood_pressure=BloodPressure(systolic=150, diastolic=92),
                respiratory_rate=22,
                oxygen_saturation=94,
                temperature=37.0,
                pain_level=8,
            ),
            initial_emotional_state="anxious",
            scheduled_events=[
                EventTemplate(
                    virtual_time="23:59",
                    event_type="lab_result_ready",
                    details={"test": "troponin", "value": 2.4, "units": "ng/mL",
                             "normal_range": "<0.04", "is_critical": True},
                    requires_attention=True,
                ),
            ],
            learning_objectives=[
                "Recognize acute coronary syndrome",
                "Initiate antiplatelet therapy promptly",
            ],
            expected_duration_minutes=45,
        ),
        Scenario(
            scenario_id="sepsis-001",
            title="Fever and confusion",
            medical_condition="sepsis",
            difficulty_level="advanced",
            chief_complaint="Fever and feeling weak",
            history_of_present_illness="Two days of fever, cough and increasing fatigue.",
            past_medical_history=["type 2 diabetes"],
            initial_vital_signs=VitalSigns(
                heart_rate=118,
                blood_pressure=BloodPressure(systolic=96, diastolic=58),
                respiratory_rate=24,
                oxygen_saturation=93,
                temperature=39.1,
                pain_level=3,
            ),
            initial_emotional_state="tired",
            learning_objectives=["Apply the sepsis bundle"],
            expected_duration_minutes=60,
            requires_time_pressure=True,
        ),
    ]


def build_lifecycle_manager(settings: Settings) -> SessionLifecycleManager:
    """Wire a lifecycle manager with in-memory collaborators."""
    global _responder

    if settings.oracle_url:
        _responder = HTTPPatientResponder(
            base_url=settings.oracle_url,
            timeout=settings.oracle_timeout,
            max_retries=settings.oracle_max_retries,
        )
        logger.info(f"Using patient response service at {settings.oracle_url}")
    else:
        _responder = ScriptedPatientResponder()
        logger.info("No patient response service configured, using scripted patient")

    return SessionLifecycleManager(
        repository=InMemorySessionRepository(),
        scenarios=InMemoryScenarioProvider(demo_scenarios()),
        users=InMemoryUserDirectory(),
        access_policy=DefaultAccessPolicy(),
        responder=_responder,
        drug_knowledge=InMemoryDrugKnowledge(),
        physiology=PhysiologyEngine(DiseaseModelRegistry.with_common_conditions()),
        assessment=AssessmentEngine(time_efficiency_cap=settings.time_efficiency_cap),
        context_turns=settings.context_turns,
        follow_up_delay_minutes=settings.follow_up_delay_minutes,
        default_acceleration_rate=settings.default_acceleration_rate,
    )


def get_lifecycle_manager() -> SessionLifecycleManager:
    """Get the shared SessionLifecycleManager instance.

    Raises:
        RuntimeError: If the manager hasn't been initialized yet.
    """
    if _lifecycle_manager is None:
        raise RuntimeError(
            "SessionLifecycleManager not initialized. Call initialize_lifecycle_manager() first."
        )
    return _lifecycle_manager


def initialize_lifecycle_manager(settings: Settings) -> SessionLifecycleManager:
    global _lifecycle_manager
    _lifecycle_manager = build_lifecycle_manager(settings)
    return _lifecycle_manager


def shutdown_lifecycle_manager() -> None:
    """Release the shared manager and close the HTTP responder if one is open."""
    global _lifecycle_manager, _responder

    if isinstance(_responder, HTTPPatientResponder):
        _responder.close()
    _responder = None
    _lifecycle_manager = None


class Requester(BaseModel):
    """Identity of the caller, as asserted by the upstream auth layer."""

    user_id: str
    role: UserRole


def get_requester(
    x_user_id: Annotated[str, Header()],
    x_user_role: Annotated[Optional[UserRole], Header()] = None,
) -> Requester:
    return Requester(user_id=x_user_id, role=x_user_role or UserRole.STUDENT)


# Type aliases for dependency injection
LifecycleManagerDep = Annotated[SessionLifecycleManager, Depends(get_lifecycle_manager)]
RequesterDep = Annotated[Requester, Depends(get_requester)]
