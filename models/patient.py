"""Patient clinical state models.

Patient state used to travel as free-form JSON. These models give every field
the simulation reads an explicit type, while unknown fields supplied by older
scenarios are kept in the model's extras and survive a load/save cycle.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

PATIENT_STATE_SCHEMA_VERSION = 1

DEFAULT_MENTAL_STATUS = "Alert and oriented"

# Absolute plausibility limits (floor, ceiling) applied after every update.
VITAL_LIMITS: dict[str, tuple[float, float]] = {
    "heart_rate": (20.0, 250.0),
    "systolic": (40.0, 250.0),
    "diastolic": (20.0, 150.0),
    "respiratory_rate": (4.0, 60.0),
    "oxygen_saturation": (50.0, 100.0),
    "temperature": (30.0, 43.0),
    "pain_level": (0.0, 10.0),
}


def clamp(value: float, limits: tuple[float, float]) -> float:
    """Clamp value into the inclusive (floor, ceiling) range."""
    low, high = limits
    return max(low, min(high, value))


class BloodPressure(BaseModel):
    """Arterial blood pressure in mmHg."""

    systolic: float = Field(default=120.0)
    diastolic: float = Field(default=80.0)

    class Config:
        extra = "allow"


class VitalSigns(BaseModel):
    """Current vital signs of the virtual patient.

    Args:
        heart_rate: Beats per minute.
        blood_pressure: Systolic/diastolic pressure.
        respiratory_rate: Breaths per minute.
        oxygen_saturation: SpO2 percentage.
        temperature: Core temperature in degrees Celsius.
        pain_level: Self-reported pain on a 0-10 scale.
    """

    heart_rate: float = Field(default=80.0)
    blood_pressure: BloodPressure = Field(default_factory=BloodPressure)
    respiratory_rate: float = Field(default=16.0)
    oxygen_saturation: float = Field(default=98.0)
    temperature: float = Field(default=37.0)
    pain_level: float = Field(default=0.0)

    class Config:
        extra = "allow"

    def clamped(self) -> "VitalSigns":
        """Return a copy with every vital inside its plausibility limits."""
        vitals = self.model_copy(deep=True)
        vitals.heart_rate = clamp(vitals.heart_rate, VITAL_LIMITS["heart_rate"])
        vitals.blood_pressure.systolic = clamp(
            vitals.blood_pressure.systolic, VITAL_LIMITS["systolic"]
        )
        vitals.blood_pressure.diastolic = clamp(
            vitals.blood_pressure.diastolic, VITAL_LIMITS["diastolic"]
        )
        vitals.respiratory_rate = clamp(
            vitals.respiratory_rate, VITAL_LIMITS["respiratory_rate"]
        )
        vitals.oxygen_saturation = clamp(
            vitals.oxygen_saturation, VITAL_LIMITS["oxygen_saturation"]
        )
        vitals.temperature = clamp(vitals.temperature, VITAL_LIMITS["temperature"])
        vitals.pain_level = clamp(vitals.pain_level, VITAL_LIMITS["pain_level"])
        return vitals


class BloodPressureChanges(BaseModel):
    """Partial blood pressure update."""

    systolic: Optional[float] = None
    diastolic: Optional[float] = None


class VitalSignChanges(BaseModel):
    """Partial vital-sign update.

    Only the fields that are set replace the current values; everything else
    is carried over. The result is clamped to plausible limits.
    """

    heart_rate: Optional[float] = None
    blood_pressure: Optional[BloodPressureChanges] = None
    respiratory_rate: Optional[float] = None
    oxygen_saturation: Optional[float] = None
    temperature: Optional[float] = None
    pain_level: Optional[float] = None

    def is_empty(self) -> bool:
        """True if the update would change nothing."""
        return not self.model_dump(exclude_none=True)

    def apply_to(self, vitals: VitalSigns) -> VitalSigns:
        """Merge these changes over vitals and return the clamped result.

        Args:
            vitals: Current vital signs (not modified).

        Returns:
            New VitalSigns instance.
        """
        updated = vitals.model_copy(deep=True)
        for name in ("heart_rate", "respiratory_rate", "oxygen_saturation", "temperature", "pain_level"):
            value = getattr(self, name)
            if value is not None:
                setattr(updated, name, value)
        if self.blood_pressure is not None:
            if self.blood_pressure.systolic is not None:
                updated.blood_pressure.systolic = self.blood_pressure.systolic
            if self.blood_pressure.diastolic is not None:
                updated.blood_pressure.diastolic = self.blood_pressure.diastolic
        return updated.clamped()


class LabResult(BaseModel):
    """A single resulted laboratory or diagnostic value."""

    test: str
    value: Any = None
    units: Optional[str] = None
    normal_range: Optional[str] = None
    is_critical: bool = False
    interpretation: Optional[str] = None
    timestamp: datetime

    class Config:
        extra = "allow"


class PatientState(BaseModel):
    """Clinical state of the virtual patient.

    The state is append-mostly: findings, lab results and treatment responses
    accumulate over the session, while vitals, symptoms and mental status are
    replaced by each physiology update.

    Args:
        schema_version: Version of this record layout.
        vital_signs: Current vitals.
        symptoms: Symptoms the patient currently reports.
        mental_status: Current mental status description.
        physical_findings: Examination findings recorded so far.
        lab_results: Resulted labs and diagnostics.
        treatment_responses: Log of treatments given and their expected effect.
        complications: Complications that affected this patient.
        acuity: Overall acuity in [0, 1].
    """

    schema_version: int = Field(default=PATIENT_STATE_SCHEMA_VERSION)
    vital_signs: VitalSigns = Field(default_factory=VitalSigns)
    symptoms: list[str] = Field(default_factory=list)
    mental_status: str = Field(default=DEFAULT_MENTAL_STATUS)
    physical_findings: list[str] = Field(default_factory=list)
    lab_results: list[LabResult] = Field(default_factory=list)
    treatment_responses: list[dict[str, Any]] = Field(default_factory=list)
    complications: list[str] = Field(default_factory=list)
    acuity: float = Field(default=0.0, ge=0.0, le=1.0)

    class Config:
        extra = "allow"

    def apply_vital_sign_changes(self, changes: VitalSignChanges) -> None:
        """Merge vital-sign changes into this state in place."""
        self.vital_signs = changes.apply_to(self.vital_signs)

    def add_symptoms(self, symptoms: list[str]) -> None:
        """Append symptoms that are not already present, keeping order."""
        for symptom in symptoms:
            if symptom not in self.symptoms:
                self.symptoms.append(symptom)
