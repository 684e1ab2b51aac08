"""Clinical practice guidelines by medical condition."""

from datetime import date
from enum import Enum

from pydantic import BaseModel, Field


class GuidelineStrength(str, Enum):
    STRONG = "strong"
    MODERATE = "moderate"
    WEAK = "weak"


class Guideline(BaseModel):
    """One published guideline.

    Args:
        organization: Issuing body.
        title: Guideline title.
        recommendations: Key recommendations, most important first.
        strength: Strength of the recommendations.
        last_updated: Date of the latest revision.
    """

    organization: str
    title: str
    recommendations: tuple[str, ...] = ()
    strength: GuidelineStrength
    last_updated: date

    class Config:
        frozen = True


class ClinicalGuidelines(BaseModel):
    condition: str
    guidelines: list[Guideline] = Field(default_factory=list)
    references: list[str] = Field(default_factory=list)


_GUIDELINES: dict[str, tuple[tuple[Guideline, ...], tuple[str, ...]]] = {
    "myocardial_infarction": (
        (
            Guideline(
                organization="American Heart Association",
                title="STEMI Management Guidelines",
                recommendations=(
                    "Aspirin 162-325 mg chewed immediately",
                    "PCI within 90 minutes of first medical contact",
                    "Dual antiplatelet therapy for 12 months",
                    "Statin therapy initiated before discharge",
                ),
                strength=GuidelineStrength.STRONG,
                last_updated=date(2023, 11, 1),
            ),
            Guideline(
                organization="European Society of Cardiology",
                title="NSTEMI Management",
                recommendations=(
                    "Risk stratification using GRACE score",
                    "Early invasive strategy for high-risk patients",
                    "DAPT duration based on bleeding vs ischemic risk",
                ),
                strength=GuidelineStrength.STRONG,
                last_updated=date(2023, 9, 15),
            ),
        ),
        (
            "AHA/ACC Guideline for the Management of Patients With ST-Elevation Myocardial Infarction",
            "ESC Guidelines for the management of acute coronary syndromes",
        ),
    ),
    "pneumonia": (
        (
            Guideline(
                organization="Infectious Diseases Society of America",
                title="Community-Acquired Pneumonia",
                recommendations=(
                    "CURB-65 score for severity assessment",
                    "Empiric antibiotics based on local resistance patterns",
                    "Switch from IV to oral therapy when clinically stable",
                    "Pneumococcal and influenza vaccination",
                ),
                strength=GuidelineStrength.STRONG,
                last_updated=date(2023, 7, 20),
            ),
        ),
        ("IDSA/ATS Guidelines for CAP in Adults",),
    ),
    "sepsis": (
        (
            Guideline(
                organization="Surviving Sepsis Campaign",
                title="Sepsis and Septic Shock Management",
                recommendations=(
                    "Measure lactate, obtain blood cultures before antibiotics",
                    "Administer broad-spectrum antibiotics within 1 hour",
                    "30 mL/kg crystalloid for hypotension or lactate >= 4 mmol/L",
                    "Apply vasopressors for persistent hypotension",
                ),
                strength=GuidelineStrength.STRONG,
                last_updated=date(2023, 3, 10),
            ),
        ),
        ("Surviving Sepsis Campaign: International Guidelines",),
    ),
}

_DEFAULT_GUIDELINES = (
    (
        Guideline(
            organization="General Medical Practice",
            title="Standard Clinical Approach",
            recommendations=(
                "Comprehensive patient assessment",
                "Evidence-based treatment selection",
                "Regular monitoring and follow-up",
                "Patient education and shared decision-making",
            ),
            strength=GuidelineStrength.MODERATE,
            last_updated=date(2023, 1, 1),
        ),
    ),
    ("Consult latest specialty-specific guidelines",),
)


def get_clinical_guidelines(condition: str) -> ClinicalGuidelines:
    """Guidelines for a condition, or general practice guidance if none are on file."""
    guidelines, references = _GUIDELINES.get(condition.strip().lower(), _DEFAULT_GUIDELINES)
    return ClinicalGuidelines(
        condition=condition,
        guidelines=list(guidelines),
        references=list(references),
    )
