"""Clinical actions and their processing.

Requests arrive with a free-form action type and details. They are parsed
once into a closed set of variants and dispatched to a handler per variant.
Handlers never touch the session: they return an ActionOutcome whose delta
the lifecycle manager applies to its working copy.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, Field, ValidationError

from models.drugs import DrugKnowledgeSource, has_known_allergy
from models.errors import InvalidInputError
from models.patient import DEFAULT_MENTAL_STATUS, LabResult, PatientState
from models.physiology import Intervention

logger = logging.getLogger(__name__)

UNKNOWN_ACTION_FEEDBACK = "unknown action type"

# Actions that must play out in real time; fast-forward is refused while one runs.
NON_FAST_FORWARDABLE_ACTIONS = frozenset({"complex_procedure", "surgery", "critical_care"})

# Procedures that need the patient's informed consent.
CONSENT_REQUIRED_PROCEDURES = frozenset({
    "intubation",
    "central_line",
    "chest_tube",
    "lumbar_puncture",
    "thoracentesis",
    "paracentesis",
    "cardioversion",
    "pci",
})

# Procedures only trained clinicians should perform unsupervised.
SPECIAL_TRAINING_PROCEDURES = frozenset({"intubation", "central_line", "chest_tube"})

# Completed procedures that keep acting on physiology.
PROCEDURE_EFFECTS: dict[str, tuple[str, ...]] = {
    "oxygen_therapy": ("oxygen",),
    "intubation": ("oxygen",),
    "iv_fluids": ("fluids",),
    "fluid_bolus": ("fluids",),
    "pci": ("reperfusion",),
    "cooling": ("antipyretic",),
    "nebulizer": ("bronchodilator",),
}


def can_be_fast_forwarded(action_type: str) -> bool:
    return action_type not in NON_FAST_FORWARDABLE_ACTIONS


class ActionStatus(str, Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class ActiveMedication(BaseModel):
    """A medication currently acting on the patient."""

    name: str
    drug_id: Optional[str] = None
    category: Optional[str] = None
    effects: list[str] = Field(default_factory=list)
    dosage: Optional[str] = None
    route: Optional[str] = None
    started_at: datetime


class MedicalAction(BaseModel):
    """An action a user performed during a session.

    Args:
        action_id: Unique identifier.
        user_id: Who performed the action.
        action_type: Raw type string as received.
        action_details: Raw details as received.
        priority: Clinical priority label.
        status: IN_PROGRESS until processing finishes.
        can_be_fast_forwarded: Whether fast-forward may run while in progress.
        real_time_started: Real start time.
        virtual_time_started: Virtual start time.
        real_time_completed: Real completion time.
        virtual_time_completed: Virtual completion time.
        result: Handler result payload.
        success: Whether the action succeeded.
        feedback: Feedback for the student.
    """

    action_id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str
    action_type: str
    action_details: dict[str, Any] = Field(default_factory=dict)
    priority: str = "routine"
    status: ActionStatus = ActionStatus.IN_PROGRESS
    can_be_fast_forwarded: bool = True
    real_time_started: datetime
    virtual_time_started: datetime
    real_time_completed: Optional[datetime] = None
    virtual_time_completed: Optional[datetime] = None
    result: Optional[dict[str, Any]] = None
    success: Optional[bool] = None
    feedback: Optional[str] = None

    @property
    def blocks_fast_forward(self) -> bool:
        return self.status == ActionStatus.IN_PROGRESS and not self.can_be_fast_forwarded

    def complete(self, outcome: "ActionOutcome", real_now: datetime, virtual_now: datetime) -> None:
        self.status = ActionStatus.COMPLETED
        self.result = outcome.result
        self.success = outcome.success
        self.feedback = outcome.feedback
        self.real_time_completed = real_now
        self.virtual_time_completed = virtual_now


# ===== Parsed action variants =====


class ExaminationAction(BaseModel):
    examination: str = "general"


class MedicationAction(BaseModel):
    medication: str = Field(min_length=1)
    dosage: Optional[str] = None
    route: Optional[str] = None

    class Config:
        str_strip_whitespace = True


class ProcedureAction(BaseModel):
    procedure: str = Field(min_length=1)

    class Config:
        str_strip_whitespace = True


class DiagnosticAction(BaseModel):
    test: str = Field(min_length=1)

    class Config:
        str_strip_whitespace = True


class UnknownAction(BaseModel):
    action_type: str
    details: dict[str, Any] = Field(default_factory=dict)


ActionVariant = Union[
    ExaminationAction,
    MedicationAction,
    ProcedureAction,
    DiagnosticAction,
    UnknownAction,
]


def parse_action(action_type: str, details: dict[str, Any]) -> ActionVariant:
    """Parse a boundary payload into an action variant.

    Unrecognized action types become UnknownAction.

    Raises:
        InvalidInputError: If a recognized action type has malformed details.
    """
    try:
        if action_type == "examination":
            # Older clients send the examined system under "procedure".
            system = details.get("examination") or details.get("procedure") or "general"
            return ExaminationAction(examination=str(system))
        if action_type == "medication":
            return MedicationAction.model_validate(details)
        if action_type == "procedure":
            return ProcedureAction.model_validate(details)
        if action_type == "diagnostic":
            return DiagnosticAction.model_validate(details)
    except ValidationError as e:
        raise InvalidInputError(f"Invalid details for {action_type} action: {e}") from e
    return UnknownAction(action_type=action_type, details=dict(details))


# ===== Outcomes =====


class ActionDelta(BaseModel):
    """Changes an action makes to the session."""

    physical_findings: list[str] = Field(default_factory=list)
    lab_results: list[LabResult] = Field(default_factory=list)
    treatment_responses: list[dict[str, Any]] = Field(default_factory=list)
    active_medications: list[ActiveMedication] = Field(default_factory=list)
    completed_steps: list[str] = Field(default_factory=list)

    def apply_to(self, patient_state: PatientState) -> None:
        """Append the patient-state parts of this delta in place."""
        for finding in self.physical_findings:
            if finding not in patient_state.physical_findings:
                patient_state.physical_findings.append(finding)
        patient_state.lab_results.extend(self.lab_results)
        patient_state.treatment_responses.extend(self.treatment_responses)


class ActionOutcome(BaseModel):
    success: bool
    result: Optional[dict[str, Any]] = None
    feedback: str
    delta: ActionDelta = Field(default_factory=ActionDelta)


class ActionContext(BaseModel):
    """Read-only session facts a handler may consult."""

    allergies: list[str] = Field(default_factory=list)
    active_medications: list[ActiveMedication] = Field(default_factory=list)
    virtual_time: datetime

    class Config:
        frozen = True


# ===== Handlers =====


def _examination_findings(system: str, state: PatientState) -> tuple[list[str], list[str]]:
    vitals = state.vital_signs
    symptoms = set(state.symptoms)
    findings: list[str] = []
    abnormal: list[str] = []

    def note(text: str, is_abnormal: bool) -> None:
        findings.append(text)
        if is_abnormal:
            abnormal.append(text)

    key = system.lower()
    if key in ("cardiovascular", "cardiac", "heart"):
        if vitals.heart_rate > 100:
            note("Tachycardic, regular rhythm", True)
        elif vitals.heart_rate < 60:
            note("Bradycardic, regular rhythm", True)
        else:
            note("Regular rate and rhythm", False)
        if vitals.blood_pressure.systolic < 90:
            note("Weak peripheral pulses, delayed capillary refill", True)
    elif key in ("respiratory", "lungs", "chest"):
        if vitals.respiratory_rate > 20:
            note("Tachypneic with increased work of breathing", True)
        if vitals.oxygen_saturation < 92:
            note("Reduced oxygen saturation on room air", True)
        if "wheezing" in symptoms:
            note("Expiratory wheeze", True)
        if not abnormal:
            note("Clear to auscultation bilaterally", False)
    elif key in ("abdominal", "abdomen"):
        if symptoms & {"nausea", "vomiting"}:
            note("Epigastric tenderness", True)
        else:
            note("Soft, non-tender, non-distended", False)
    elif key in ("neurological", "neuro"):
        if state.mental_status != DEFAULT_MENTAL_STATUS:
            note(f"Altered mental status: {state.mental_status}", True)
        else:
            note("Alert and oriented, no focal deficits", False)
        if "weakness" in symptoms:
            note("Focal weakness noted", True)
    else:
        if vitals.temperature >= 38.0:
            note("Febrile to touch", True)
        if vitals.pain_level >= 7:
            note("Appears in significant distress", True)
        if not abnormal:
            note("No acute distress", False)

    return findings, abnormal


def _examine(action: ExaminationAction, state: PatientState, ctx: ActionContext,
             knowledge: DrugKnowledgeSource) -> ActionOutcome:
    findings, abnormal = _examination_findings(action.examination, state)
    return ActionOutcome(
        success=True,
        result={
            "examination": action.examination,
            "findings": findings,
            "abnormalities": abnormal,
        },
        feedback="Examination completed successfully",
        delta=ActionDelta(
            physical_findings=[f"{action.examination}: {f}" for f in findings],
        ),
    )


def _give_medication(action: MedicationAction, state: PatientState, ctx: ActionContext,
                     knowledge: DrugKnowledgeSource) -> ActionOutcome:
    drug = knowledge.find_by_name(action.medication)
    name = drug.name if drug else action.medication

    allergy_terms = [action.medication] + ([drug.name, drug.category] if drug else [])
    allergic = any(has_known_allergy(term, ctx.allergies) for term in allergy_terms)
    if allergic:
        return ActionOutcome(
            success=False,
            result={"medication": name, "administered": False},
            feedback=f"Patient has known allergy to {name}; medication not administered",
        )

    warnings = []
    if drug is not None:
        for active in ctx.active_medications:
            other = knowledge.find_by_name(active.drug_id or active.name)
            if other is None or other.drug_id == drug.drug_id:
                continue
            interaction = knowledge.find_interaction(drug, other)
            if interaction is not None:
                warnings.append(
                    f"{interaction.severity.value} interaction with {other.name}: "
                    f"{interaction.description}"
                )
    else:
        warnings.append(f"{name} is not in the formulary; no physiological effect is modelled")

    effects = list(drug.effects) if drug else []
    medication = ActiveMedication(
        name=name,
        drug_id=drug.drug_id if drug else None,
        category=drug.category if drug else None,
        effects=effects,
        dosage=action.dosage,
        route=action.route,
        started_at=ctx.virtual_time,
    )
    already_active = any(m.name == name for m in ctx.active_medications)

    feedback = "Medication administered correctly"
    if warnings:
        feedback = "Medication administered with warnings: " + "; ".join(warnings)

    return ActionOutcome(
        success=True,
        result={
            "medication": name,
            "dosage": action.dosage,
            "route": action.route,
            "administered": True,
            "expected_effects": effects,
            "warnings": warnings,
        },
        feedback=feedback,
        delta=ActionDelta(
            active_medications=[] if already_active else [medication],
            treatment_responses=[{
                "type": "medication",
                "medication": name,
                "dosage": action.dosage,
                "expected_effects": effects,
                "virtual_time": ctx.virtual_time.isoformat(),
            }],
        ),
    )


def _perform_procedure(action: ProcedureAction, state: PatientState, ctx: ActionContext,
                       knowledge: DrugKnowledgeSource) -> ActionOutcome:
    procedure = action.procedure
    if procedure in CONSENT_REQUIRED_PROCEDURES and "Alert" not in state.mental_status:
        return ActionOutcome(
            success=False,
            result={"procedure": procedure, "performed": False},
            feedback="Procedure requires informed consent, which the patient cannot give",
        )

    return ActionOutcome(
        success=True,
        result={
            "procedure": procedure,
            "performed": True,
            "findings": "Procedure completed successfully",
            "complications": [],
        },
        feedback="Procedure performed correctly",
        delta=ActionDelta(
            completed_steps=[procedure],
            treatment_responses=[{
                "type": "procedure",
                "procedure": procedure,
                "expected_effects": list(PROCEDURE_EFFECTS.get(procedure, ())),
                "virtual_time": ctx.virtual_time.isoformat(),
            }],
        ),
    )


def _interpret_test(test: str, state: PatientState) -> dict[str, Any]:
    vitals = state.vital_signs
    key = test.lower()
    if key in ("ecg", "ekg"):
        if vitals.heart_rate > 100:
            finding = "Sinus tachycardia"
        elif vitals.heart_rate < 60:
            finding = "Sinus bradycardia"
        else:
            finding = "Normal sinus rhythm"
        return {"value": finding, "units": None, "normal_range": None,
                "is_critical": vitals.heart_rate > 130,
                "interpretation": finding}
    if key in ("abg", "arterial_blood_gas", "pulse_oximetry"):
        spo2 = round(vitals.oxygen_saturation, 1)
        return {"value": spo2, "units": "%", "normal_range": "95-100",
                "is_critical": spo2 < 88,
                "interpretation": "Hypoxemia" if spo2 < 90 else "Adequate oxygenation"}
    if key in ("cbc", "blood_count"):
        infected = vitals.temperature >= 38.0
        return {"value": 15.2 if infected else 7.4, "units": "10^9/L", "normal_range": "4.0-11.0",
                "is_critical": False,
                "interpretation": "Leukocytosis suggestive of infection" if infected
                else "Within normal limits"}
    if key == "lactate":
        shocked = vitals.blood_pressure.systolic < 90
        return {"value": 4.2 if shocked else 1.1, "units": "mmol/L", "normal_range": "0.5-2.0",
                "is_critical": shocked,
                "interpretation": "Elevated lactate, consider hypoperfusion" if shocked
                else "Within normal limits"}
    return {"value": "Within normal limits", "units": None, "normal_range": None,
            "is_critical": False,
            "interpretation": "No significant abnormalities detected"}


def _order_diagnostic(action: DiagnosticAction, state: PatientState, ctx: ActionContext,
                      knowledge: DrugKnowledgeSource) -> ActionOutcome:
    reading = _interpret_test(action.test, state)
    lab = LabResult(test=action.test, timestamp=ctx.virtual_time, **reading)
    return ActionOutcome(
        success=True,
        result={"test": action.test, **reading},
        feedback="Diagnostic test ordered successfully",
        delta=ActionDelta(lab_results=[lab]),
    )


def _unknown(action: UnknownAction, state: PatientState, ctx: ActionContext,
             knowledge: DrugKnowledgeSource) -> ActionOutcome:
    logger.warning(f"Unknown action type '{action.action_type}'")
    return ActionOutcome(success=False, result=None, feedback=UNKNOWN_ACTION_FEEDBACK)


_HANDLERS: dict[type, Callable[..., ActionOutcome]] = {
    ExaminationAction: _examine,
    MedicationAction: _give_medication,
    ProcedureAction: _perform_procedure,
    DiagnosticAction: _order_diagnostic,
    UnknownAction: _unknown,
}


class InterventionEvaluation(BaseModel):
    is_appropriate: bool
    risks: list[str] = Field(default_factory=list)


class ActionProcessor:
    """Runs parsed actions against the patient state.

    Args:
        drug_knowledge: Read-only drug knowledge used for medication checks.
    """

    def __init__(self, drug_knowledge: DrugKnowledgeSource):
        self.drug_knowledge = drug_knowledge

    def process(self, action: ActionVariant, patient_state: PatientState,
                context: ActionContext) -> ActionOutcome:
        """Run the handler for the action's variant. Never raises for unknown types."""
        return _HANDLERS[type(action)](action, patient_state, context, self.drug_knowledge)

    def evaluate(
        self,
        action: ActionVariant,
        patient_state: PatientState,
        allergies: list[str],
        conditions: list[str],
        trained: bool = True,
    ) -> InterventionEvaluation:
        """Check a proposed action against rule-based safety checks without running it.

        Args:
            action: The parsed action.
            patient_state: Current patient state.
            allergies: Patient allergies.
            conditions: Patient conditions checked against contraindications.
            trained: Whether the requester holds advanced procedure training.

        Returns:
            InterventionEvaluation listing the risks found.
        """
        risks = []
        if isinstance(action, MedicationAction):
            drug = self.drug_knowledge.find_by_name(action.medication)
            terms = [action.medication] + ([drug.name, drug.category] if drug else [])
            if any(has_known_allergy(term, allergies) for term in terms):
                risks.append("Patient has known allergy to this medication")
            patient_conditions = {c.lower() for c in conditions}
            if drug is not None and patient_conditions.intersection(drug.contraindications):
                risks.append("Medication is contraindicated for patient conditions")
        elif isinstance(action, ProcedureAction):
            if (
                action.procedure in CONSENT_REQUIRED_PROCEDURES
                and "Alert" not in patient_state.mental_status
            ):
                risks.append("Procedure may require informed consent")
            if action.procedure in SPECIAL_TRAINING_PROCEDURES and not trained:
                risks.append("Procedure requires specialized training")

        return InterventionEvaluation(is_appropriate=not risks, risks=risks)


def active_interventions(
    active_medications: list[ActiveMedication],
    completed_steps: list[str],
) -> list[Intervention]:
    """Interventions currently acting on physiology."""
    interventions = []
    for medication in active_medications:
        for effect in medication.effects:
            interventions.append(
                Intervention(kind="medication", name=medication.name, category=effect)
            )
    for step in completed_steps:
        for effect in PROCEDURE_EFFECTS.get(step, ()):
            interventions.append(Intervention(kind="procedure", name=step, category=effect))
    return interventions
