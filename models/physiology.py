"""Physiology simulation for the virtual patient.

Derives new vital signs, symptoms, mental status and complications from the
previous state, the virtual minutes that elapsed and the interventions that
are active. Nothing here holds session state: disease models live in a
read-only registry that is built once at startup and passed in.
"""

import logging
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional

from pydantic import BaseModel, Field

from models.errors import InvalidInputError
from models.patient import (
    BloodPressureChanges,
    PatientState,
    VitalSignChanges,
    VitalSigns,
    clamp,
)

logger = logging.getLogger(__name__)

# Time-driven recomputation never lets the heart rate fall below this.
MIN_HEART_RATE = 60.0

CONFUSED = "Confused"
LETHARGIC = "Lethargic"


class SymptomOnset(BaseModel):
    """A symptom that appears after a number of untreated virtual minutes."""

    symptom: str
    after_minutes: float

    class Config:
        frozen = True


class DiseaseModel(BaseModel):
    """Per-condition drift of vital signs while the condition is untreated.

    Drift values are per virtual minute. Once any of the treated_by
    intervention categories is active, drift is scaled by treated_drift_factor.
    """

    condition: str
    heart_rate_drift: float = 0.1
    respiratory_rate_drift: float = 0.0
    temperature_drift: float = 0.0
    oxygen_saturation_drift: float = 0.0
    systolic_drift: float = 0.0
    pain_drift: float = 0.0
    progressive_symptoms: tuple[SymptomOnset, ...] = ()
    treated_by: tuple[str, ...] = ()
    treated_drift_factor: float = 0.0

    class Config:
        frozen = True

    def is_treated(self, interventions: list["Intervention"]) -> bool:
        """True if any active intervention treats this condition."""
        categories = {i.category for i in interventions}
        return any(category in categories for category in self.treated_by)


DEFAULT_CONDITION = "default"

_COMMON_DISEASE_MODELS = (
    DiseaseModel(
        condition="myocardial_infarction",
        heart_rate_drift=0.15,
        systolic_drift=-0.2,
        oxygen_saturation_drift=-0.02,
        pain_drift=0.02,
        progressive_symptoms=(
            SymptomOnset(symptom="diaphoresis", after_minutes=20),
            SymptomOnset(symptom="nausea", after_minutes=40),
            SymptomOnset(symptom="shortness of breath", after_minutes=60),
        ),
        treated_by=("antiplatelet", "anticoagulant", "nitrate", "reperfusion"),
    ),
    DiseaseModel(
        condition="pneumonia",
        heart_rate_drift=0.05,
        respiratory_rate_drift=0.05,
        temperature_drift=0.01,
        oxygen_saturation_drift=-0.03,
        progressive_symptoms=(
            SymptomOnset(symptom="fatigue", after_minutes=60),
            SymptomOnset(symptom="shortness of breath", after_minutes=120),
        ),
        treated_by=("antibiotic",),
    ),
    DiseaseModel(
        condition="sepsis",
        heart_rate_drift=0.2,
        respiratory_rate_drift=0.08,
        temperature_drift=0.015,
        systolic_drift=-0.25,
        progressive_symptoms=(
            SymptomOnset(symptom="chills", after_minutes=30),
            SymptomOnset(symptom="weakness", after_minutes=60),
        ),
        treated_by=("antibiotic",),
        treated_drift_factor=0.25,
    ),
    DiseaseModel(
        condition="stroke",
        heart_rate_drift=0.02,
        systolic_drift=0.1,
        progressive_symptoms=(
            SymptomOnset(symptom="headache", after_minutes=15),
            SymptomOnset(symptom="weakness", after_minutes=30),
            SymptomOnset(symptom="dizziness", after_minutes=45),
        ),
        treated_by=("thrombolytic", "antihypertensive"),
    ),
    DiseaseModel(
        condition="diabetic_ketoacidosis",
        heart_rate_drift=0.1,
        respiratory_rate_drift=0.1,
        systolic_drift=-0.1,
        progressive_symptoms=(
            SymptomOnset(symptom="nausea", after_minutes=20),
            SymptomOnset(symptom="vomiting", after_minutes=45),
            SymptomOnset(symptom="fatigue", after_minutes=60),
        ),
        treated_by=("insulin",),
    ),
)


class DiseaseModelRegistry:
    """Read-only lookup of disease models keyed by medical condition.

    Built once and never mutated afterwards. Unknown conditions resolve to
    the default model instead of being inserted on demand.

    Args:
        models: Disease models to register.
        default: Model used for conditions without a dedicated entry.
    """

    def __init__(self, models: tuple[DiseaseModel, ...], default: DiseaseModel):
        self._models: Mapping[str, DiseaseModel] = MappingProxyType(
            {model.condition: model for model in models}
        )
        self._default = default

    @classmethod
    def with_common_conditions(cls) -> "DiseaseModelRegistry":
        """Registry preloaded with the commonly simulated conditions."""
        return cls(_COMMON_DISEASE_MODELS, DiseaseModel(condition=DEFAULT_CONDITION))

    @property
    def conditions(self) -> list[str]:
        return sorted(self._models)

    def get(self, condition: Optional[str]) -> DiseaseModel:
        if condition is None:
            return self._default
        return self._models.get(condition, self._default)


class InterventionEffect(BaseModel):
    """Moves one vital toward a target at a fixed rate per virtual minute."""

    vital: str
    target: float
    rate: float

    class Config:
        frozen = True


INTERVENTION_EFFECTS: Mapping[str, tuple[InterventionEffect, ...]] = MappingProxyType({
    "oxygen": (InterventionEffect(vital="oxygen_saturation", target=97.0, rate=0.5),),
    "fluids": (InterventionEffect(vital="systolic", target=110.0, rate=0.5),),
    "vasopressor": (
        InterventionEffect(vital="systolic", target=115.0, rate=1.0),
        InterventionEffect(vital="diastolic", target=70.0, rate=0.5),
    ),
    "antipyretic": (InterventionEffect(vital="temperature", target=37.2, rate=0.02),),
    "analgesic": (InterventionEffect(vital="pain_level", target=2.0, rate=0.2),),
    "opioid": (InterventionEffect(vital="pain_level", target=1.0, rate=0.3),),
    "beta_blocker": (InterventionEffect(vital="heart_rate", target=75.0, rate=0.3),),
    "bronchodilator": (
        InterventionEffect(vital="respiratory_rate", target=18.0, rate=0.2),
        InterventionEffect(vital="oxygen_saturation", target=95.0, rate=0.2),
    ),
    "nitrate": (InterventionEffect(vital="pain_level", target=3.0, rate=0.1),),
})

# Intervention category -> symptoms it resolves while active.
SYMPTOM_RESOLUTION: Mapping[str, tuple[str, ...]] = MappingProxyType({
    "analgesic": ("pain", "headache"),
    "opioid": ("pain",),
    "antipyretic": ("fever",),
    "antiemetic": ("nausea", "vomiting"),
    "oxygen": ("shortness of breath",),
    "bronchodilator": ("wheezing", "shortness of breath"),
})


class Intervention(BaseModel):
    """An active treatment influencing physiology."""

    kind: str = Field(description="medication or procedure")
    name: str
    category: str


class PhysiologyUpdate(BaseModel):
    """Result of one physiology recomputation."""

    vital_signs: VitalSigns
    symptoms: list[str]
    mental_status: str
    new_complications: list[str]


def derive_mental_status(current: str, vitals: VitalSigns) -> str:
    """Apply the mental-status rule chain.

    Rules are evaluated in order and the first match wins, so hypoxia takes
    precedence over hypotension.

    Args:
        current: Mental status before this update.
        vitals: Vital signs after this update.

    Returns:
        New mental status.
    """
    if vitals.oxygen_saturation < 90:
        return CONFUSED
    if vitals.blood_pressure.systolic < 90:
        return LETHARGIC
    return current


# Ordered (complication, predicate) rules for threshold-based detection.
COMPLICATION_RULES: tuple[tuple[str, Callable[[VitalSigns], bool]], ...] = (
    ("respiratory_failure", lambda v: v.oxygen_saturation < 88),
    ("hypotension", lambda v: v.blood_pressure.systolic < 90),
    ("arrhythmia", lambda v: v.heart_rate > 130),
    ("sepsis", lambda v: v.temperature >= 38.5 and v.heart_rate > 110),
)


def _move_toward(value: float, target: float, max_step: float) -> float:
    if value < target:
        return min(target, value + max_step)
    return max(target, value - max_step)


def _read_vital(vitals: VitalSigns, name: str) -> float:
    if name == "systolic":
        return vitals.blood_pressure.systolic
    if name == "diastolic":
        return vitals.blood_pressure.diastolic
    return getattr(vitals, name)


def _write_vital(vitals: VitalSigns, name: str, value: float) -> None:
    if name == "systolic":
        vitals.blood_pressure.systolic = value
    elif name == "diastolic":
        vitals.blood_pressure.diastolic = value
    else:
        setattr(vitals, name, value)


def simulate(
    vital_signs: VitalSigns,
    symptoms: list[str],
    mental_status: str,
    elapsed_minutes: float,
    interventions: list[Intervention],
    disease_model: DiseaseModel,
    total_minutes: float = 0.0,
    known_complications: Optional[list[str]] = None,
) -> PhysiologyUpdate:
    """Recompute patient physiology across elapsed virtual minutes.

    Steps, in order:
    1. Apply disease drift (scaled down when the condition is being treated)
    2. Move vitals toward the targets of active interventions
    3. Clamp to plausibility limits, with the heart-rate floor
    4. Add progressive symptoms whose onset has passed, drop resolved ones
    5. Derive mental status via the rule chain
    6. Detect complications not already known

    Args:
        vital_signs: Vitals before the elapsed interval.
        symptoms: Symptoms before the elapsed interval.
        mental_status: Mental status before the elapsed interval.
        elapsed_minutes: Virtual minutes that elapsed (>= 0).
        interventions: Active interventions.
        disease_model: Model for the scenario's condition.
        total_minutes: Virtual minutes since session start, after this interval.
        known_complications: Complications already logged for the session.

    Returns:
        PhysiologyUpdate with new vitals, symptoms, mental status and
        newly detected complications.

    Raises:
        InvalidInputError: If elapsed_minutes is negative.
    """
    if elapsed_minutes < 0:
        raise InvalidInputError(f"elapsed_minutes cannot be negative, got {elapsed_minutes}")

    vitals = vital_signs.model_copy(deep=True)
    treated = disease_model.is_treated(interventions)
    drift_scale = disease_model.treated_drift_factor if treated else 1.0
    scaled = elapsed_minutes * drift_scale

    vitals.heart_rate += disease_model.heart_rate_drift * scaled
    vitals.respiratory_rate += disease_model.respiratory_rate_drift * scaled
    vitals.temperature += disease_model.temperature_drift * scaled
    vitals.oxygen_saturation += disease_model.oxygen_saturation_drift * scaled
    vitals.blood_pressure.systolic += disease_model.systolic_drift * scaled
    vitals.pain_level += disease_model.pain_drift * scaled

    for intervention in interventions:
        for effect in INTERVENTION_EFFECTS.get(intervention.category, ()):
            current = _read_vital(vitals, effect.vital)
            _write_vital(
                vitals,
                effect.vital,
                _move_toward(current, effect.target, effect.rate * elapsed_minutes),
            )

    vitals = vitals.clamped()
    vitals.heart_rate = max(MIN_HEART_RATE, vitals.heart_rate)

    new_symptoms = list(symptoms)
    if not treated:
        for onset in disease_model.progressive_symptoms:
            if onset.after_minutes <= total_minutes and onset.symptom not in new_symptoms:
                new_symptoms.append(onset.symptom)

    resolved: set[str] = set()
    for intervention in interventions:
        resolved.update(SYMPTOM_RESOLUTION.get(intervention.category, ()))
    new_symptoms = [s for s in new_symptoms if s not in resolved]

    known = set(known_complications or [])
    new_complications = [
        name for name, predicate in COMPLICATION_RULES
        if predicate(vitals) and name not in known
    ]

    return PhysiologyUpdate(
        vital_signs=vitals,
        symptoms=new_symptoms,
        mental_status=derive_mental_status(mental_status, vitals),
        new_complications=new_complications,
    )


class PhysiologyEngine:
    """Resolves the disease model for a condition and runs simulate().

    Args:
        registry: Read-only disease model registry shared across sessions.
    """

    def __init__(self, registry: DiseaseModelRegistry):
        self.registry = registry

    def recompute(
        self,
        patient_state: PatientState,
        elapsed_minutes: float,
        interventions: list[Intervention],
        condition: Optional[str],
        total_minutes: float,
        known_complications: list[str],
    ) -> PhysiologyUpdate:
        model = self.registry.get(condition)
        update = simulate(
            vital_signs=patient_state.vital_signs,
            symptoms=patient_state.symptoms,
            mental_status=patient_state.mental_status,
            elapsed_minutes=elapsed_minutes,
            interventions=interventions,
            disease_model=model,
            total_minutes=total_minutes,
            known_complications=known_complications,
        )
        logger.debug(
            f"Physiology for '{model.condition}' over {elapsed_minutes:.1f} min: "
            f"HR {patient_state.vital_signs.heart_rate:.1f} -> {update.vital_signs.heart_rate:.1f}, "
            f"new complications={update.new_complications}"
        )
        return update


# ===== Complications =====


class Complication(BaseModel):
    """A generated complication and the effects it has on the patient."""

    type: str
    description: str
    severity: float = Field(ge=0.0, le=1.0)
    vital_sign_changes: VitalSignChanges
    symptoms: list[str]
    required_actions: list[str]


def _arrhythmia(sev: float) -> Complication:
    return Complication(
        type="arrhythmia",
        description="Cardiac rhythm disturbance",
        severity=sev,
        vital_sign_changes=VitalSignChanges(
            heart_rate=40 + round(sev * 100),
            blood_pressure=BloodPressureChanges(
                systolic=90 - round(sev * 30),
                diastolic=60 - round(sev * 20),
            ),
        ),
        symptoms=["palpitations", "dizziness", "shortness of breath"],
        required_actions=["cardiac_monitoring", "medication_review"],
    )


def _hypotension(sev: float) -> Complication:
    return Complication(
        type="hypotension",
        description="Low blood pressure",
        severity=sev,
        vital_sign_changes=VitalSignChanges(
            blood_pressure=BloodPressureChanges(
                systolic=80 - round(sev * 20),
                diastolic=50 - round(sev * 15),
            ),
            heart_rate=100 + round(sev * 40),
        ),
        symptoms=["dizziness", "weakness", "confusion"],
        required_actions=["fluid_administration", "vasopressors_consideration"],
    )


def _respiratory_failure(sev: float) -> Complication:
    return Complication(
        type="respiratory_failure",
        description="Inadequate oxygenation",
        severity=sev,
        vital_sign_changes=VitalSignChanges(
            respiratory_rate=30 + round(sev * 10),
            oxygen_saturation=95 - round(sev * 25),
        ),
        symptoms=["severe shortness of breath", "cyanosis", "confusion"],
        required_actions=["oxygen_therapy", "airway_management"],
    )


def _sepsis(sev: float) -> Complication:
    return Complication(
        type="sepsis",
        description="Systemic inflammatory response",
        severity=sev,
        vital_sign_changes=VitalSignChanges(
            heart_rate=110 + round(sev * 30),
            temperature=38.5 + sev,
            respiratory_rate=22 + round(sev * 8),
        ),
        symptoms=["fever", "tachycardia", "tachypnea"],
        required_actions=["blood_cultures", "broad_spectrum_antibiotics"],
    )


def _allergic_reaction(sev: float) -> Complication:
    return Complication(
        type="allergic_reaction",
        description="Medication allergy response",
        severity=sev,
        vital_sign_changes=VitalSignChanges(
            blood_pressure=BloodPressureChanges(
                systolic=100 - round(sev * 40),
                diastolic=60 - round(sev * 25),
            ),
            respiratory_rate=20 + round(sev * 10),
        ),
        symptoms=["rash", "swelling", "wheezing"],
        required_actions=["stop_offending_medication", "antihistamines", "epinephrine_if_severe"],
    )


COMPLICATION_TEMPLATES: Mapping[str, Callable[[float], Complication]] = MappingProxyType({
    "arrhythmia": _arrhythmia,
    "hypotension": _hypotension,
    "respiratory_failure": _respiratory_failure,
    "sepsis": _sepsis,
    "allergic_reaction": _allergic_reaction,
})

FALLBACK_COMPLICATION = "hypotension"


def generate_complication(complication_type: str, severity: float) -> Complication:
    """Build a complication from the template table.

    Unknown types fall back to the hypotension template.

    Args:
        complication_type: Template key, e.g. "arrhythmia".
        severity: Severity in [0, 1].

    Returns:
        Deterministic Complication for (type, severity).

    Raises:
        InvalidInputError: If severity is outside [0, 1].
    """
    if not 0.0 <= severity <= 1.0:
        raise InvalidInputError("Severity must be between 0 and 1")

    template = COMPLICATION_TEMPLATES.get(complication_type)
    if template is None:
        logger.warning(
            f"No template for complication '{complication_type}', "
            f"using '{FALLBACK_COMPLICATION}'"
        )
        template = COMPLICATION_TEMPLATES[FALLBACK_COMPLICATION]
    return template(severity)


def apply_complication(patient_state: PatientState, complication: Complication) -> PatientState:
    """Return a new patient state with the complication's effects applied."""
    state = patient_state.model_copy(deep=True)
    vitals = complication.vital_sign_changes.apply_to(state.vital_signs)
    vitals.pain_level = clamp(
        vitals.pain_level + complication.severity * 3, (0.0, 10.0)
    )
    state.vital_signs = vitals
    state.add_symptoms(complication.symptoms)
    state.mental_status = derive_mental_status(state.mental_status, vitals)
    state.complications.append(complication.type)
    state.acuity = min(1.0, state.acuity + complication.severity * 0.3)
    return state


# ===== Progression analysis =====

EXPECTED_COURSES: Mapping[str, dict[str, Any]] = MappingProxyType({
    "myocardial_infarction": {
        "stages": ["stable", "mild", "moderate", "severe"],
        "typical_timeline": "2-6 hours",
        "critical_points": ["arrhythmia", "cardiogenic_shock", "heart_failure"],
    },
    "pneumonia": {
        "stages": ["mild", "moderate", "severe", "respiratory_failure"],
        "typical_timeline": "24-72 hours",
        "critical_points": ["hypoxia", "sepsis", "respiratory_failure"],
    },
    "sepsis": {
        "stages": ["early", "progressive", "severe", "refractory"],
        "typical_timeline": "6-24 hours",
        "critical_points": ["hypotension", "organ_dysfunction", "shock"],
    },
})

DEFAULT_EXPECTED_COURSE: Mapping[str, Any] = MappingProxyType({
    "stages": ["mild", "moderate", "severe"],
    "typical_timeline": "24-48 hours",
    "critical_points": ["deterioration", "complication"],
})

CONDITION_COMPLICATIONS: Mapping[str, tuple[str, ...]] = MappingProxyType({
    "myocardial_infarction": ("arrhythmia", "hypotension", "heart_failure"),
    "pneumonia": ("respiratory_failure", "sepsis", "pleural_effusion"),
    "sepsis": ("hypotension", "respiratory_failure", "renal_failure"),
    "stroke": ("seizure", "aspiration", "increased_ICP"),
    "diabetic_ketoacidosis": ("hypotension", "electrolyte_imbalance", "cerebral_edema"),
})

DEFAULT_COMPLICATIONS = ("hypotension", "arrhythmia", "respiratory_failure")

STAGE_BASE_RISK = MappingProxyType({
    "stable": 0.1,
    "mild": 0.3,
    "moderate": 0.6,
    "severe": 0.9,
})


def progression_stage(vitals: VitalSigns, complications: list[str]) -> str:
    if len(complications) > 2:
        return "severe"
    if complications:
        return "moderate"
    if vitals.heart_rate > 100 or vitals.blood_pressure.systolic < 100:
        return "mild"
    return "stable"


def complication_risk(stage: str, total_virtual_minutes: float, complications: list[str]) -> float:
    """Risk in [0, 1] of a further complication.

    Base risk per stage, plus up to 0.2 as the session approaches four virtual
    hours, plus 0.1 per complication already encountered.
    """
    risk = STAGE_BASE_RISK.get(stage, 0.5)
    risk += min(1.0, total_virtual_minutes / 240.0) * 0.2
    risk += len(complications) * 0.1
    return min(1.0, max(0.0, risk))


def expected_course(condition: Optional[str]) -> dict[str, Any]:
    return dict(EXPECTED_COURSES.get(condition or "", DEFAULT_EXPECTED_COURSE))


def available_complications(condition: Optional[str]) -> list[str]:
    return list(CONDITION_COMPLICATIONS.get(condition or "", DEFAULT_COMPLICATIONS))
