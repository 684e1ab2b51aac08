"""Drug knowledge source and interaction checking."""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Iterable, Optional

from pydantic import BaseModel, Field

from models.errors import NotFoundError

logger = logging.getLogger(__name__)


class InteractionSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CONTRAINDICATED = "contraindicated"


class Drug(BaseModel):
    """A drug in the formulary.

    Args:
        drug_id: Identifier used by callers.
        name: Generic name.
        category: Pharmacological category, e.g. "anticoagulant".
        effects: Physiological intervention categories the drug produces.
        contraindications: Conditions in which the drug should not be used.
        black_box_warning: Boxed warning text, if any.
    """

    drug_id: str
    name: str
    category: str
    effects: tuple[str, ...] = ()
    contraindications: tuple[str, ...] = ()
    black_box_warning: Optional[str] = None

    class Config:
        frozen = True


class DrugInteraction(BaseModel):
    drugs: list[str]
    severity: InteractionSeverity
    description: str
    recommendation: str


class InteractionReport(BaseModel):
    """Result of checking a set of drugs against each other and the patient."""

    has_interactions: bool
    interactions: list[DrugInteraction] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class KnownInteraction(BaseModel):
    terms: tuple[str, str]
    severity: InteractionSeverity
    description: str
    recommendation: str

    class Config:
        frozen = True


KNOWN_INTERACTIONS = (
    KnownInteraction(
        terms=("warfarin", "aspirin"),
        severity=InteractionSeverity.HIGH,
        description="Increased bleeding risk",
        recommendation="Monitor INR closely, consider alternative antiplatelet",
    ),
    KnownInteraction(
        terms=("simvastatin", "clarithromycin"),
        severity=InteractionSeverity.HIGH,
        description="Increased risk of myopathy/rhabdomyolysis",
        recommendation="Avoid combination or use alternative statin",
    ),
    KnownInteraction(
        terms=("lisinopril", "spironolactone"),
        severity=InteractionSeverity.MEDIUM,
        description="Increased risk of hyperkalemia",
        recommendation="Monitor potassium levels regularly",
    ),
    KnownInteraction(
        terms=("metformin", "contrast_media"),
        severity=InteractionSeverity.CONTRAINDICATED,
        description="Risk of contrast-induced nephropathy and lactic acidosis",
        recommendation="Hold metformin before and after contrast administration",
    ),
    KnownInteraction(
        terms=("ssri", "maoi"),
        severity=InteractionSeverity.CONTRAINDICATED,
        description="Risk of serotonin syndrome",
        recommendation="Absolute contraindication - do not combine",
    ),
)

INTERACTING_CATEGORIES = (
    frozenset({"anticoagulant", "antiplatelet"}),
    frozenset({"ace_inhibitor", "potassium_sparing_diuretic"}),
    frozenset({"beta_blocker", "calcium_channel_blocker"}),
    frozenset({"ssri", "triptan"}),
)

NEPHROTOXIC_CATEGORIES = frozenset({"nsaid", "aminoglycoside", "contrast_media", "vancomycin"})
HEPATOTOXIC_CATEGORIES = frozenset({"paracetamol", "statins", "antifungal", "antitubercular"})


def _matches(drug: Drug, term: str) -> bool:
    return term in drug.name.lower() or term == drug.category.lower()


class DrugKnowledgeSource(ABC):
    """Read-only lookup of drugs and pairwise interactions."""

    @abstractmethod
    def get_drug(self, drug_id: str) -> Drug:
        """Return the drug with this id.

        Raises:
            NotFoundError: If the drug is unknown.
        """

    @abstractmethod
    def find_by_name(self, name: str) -> Optional[Drug]:
        """Return the drug whose id or name matches, or None."""

    @abstractmethod
    def find_interaction(self, first: Drug, second: Drug) -> Optional[DrugInteraction]:
        """Return the interaction between two drugs, or None."""


class InMemoryDrugKnowledge(DrugKnowledgeSource):
    """Drug knowledge held in memory, seeded with a small formulary.

    Args:
        drugs: Formulary entries. Defaults to COMMON_DRUGS.
    """

    def __init__(self, drugs: Optional[Iterable[Drug]] = None):
        self._drugs = {d.drug_id: d for d in (COMMON_DRUGS if drugs is None else drugs)}

    def get_drug(self, drug_id: str) -> Drug:
        drug = self._drugs.get(drug_id)
        if drug is None:
            raise NotFoundError("Drug", drug_id)
        return drug

    def find_by_name(self, name: str) -> Optional[Drug]:
        key = name.strip().lower()
        if key in self._drugs:
            return self._drugs[key]
        for drug in self._drugs.values():
            if drug.name.lower() == key:
                return drug
        return None

    def find_interaction(self, first: Drug, second: Drug) -> Optional[DrugInteraction]:
        for known in KNOWN_INTERACTIONS:
            a, b = known.terms
            if (_matches(first, a) and _matches(second, b)) or (
                _matches(first, b) and _matches(second, a)
            ):
                return DrugInteraction(
                    drugs=[first.name, second.name],
                    severity=known.severity,
                    description=known.description,
                    recommendation=known.recommendation,
                )

        pair = {first.category.lower(), second.category.lower()}
        if len(pair) == 2 and pair in INTERACTING_CATEGORIES:
            return DrugInteraction(
                drugs=[first.name, second.name],
                severity=InteractionSeverity.MEDIUM,
                description=f"Potential interaction between {first.category} and {second.category}",
                recommendation="Monitor for additive effects",
            )
        return None


def check_interactions(
    knowledge: DrugKnowledgeSource,
    drugs: list[Drug],
    allergies: Optional[list[str]] = None,
    medical_condition: Optional[str] = None,
    conditions: Optional[list[str]] = None,
) -> InteractionReport:
    """Check drugs pairwise and against the patient context.

    Args:
        knowledge: Source of interaction data.
        drugs: Distinct drugs to check.
        allergies: Patient allergies (matched against name and category).
        medical_condition: Scenario condition, used for organ-specific warnings.
        conditions: Patient conditions checked against drug contraindications.

    Returns:
        InteractionReport listing interactions and warnings.
    """
    interactions = []
    for i, first in enumerate(drugs):
        for second in drugs[i + 1:]:
            interaction = knowledge.find_interaction(first, second)
            if interaction is not None:
                interactions.append(interaction)

    warnings = []
    allergies = [a.lower() for a in (allergies or [])]
    patient_conditions = {c.lower() for c in (conditions or [])}
    if medical_condition:
        patient_conditions.add(medical_condition.lower())

    for drug in drugs:
        if any(a in drug.name.lower() or a in drug.category.lower() for a in allergies):
            warnings.append(
                f"Allergy warning: Patient has known allergy to {drug.name} or related drugs"
            )
        for contraindication in drug.contraindications:
            if contraindication in patient_conditions:
                warnings.append(f"Contraindication: {drug.name} is contraindicated in {contraindication}")
        if medical_condition == "renal_failure" and drug.category in NEPHROTOXIC_CATEGORIES:
            warnings.append(
                f"Renal warning: {drug.name} may require dose adjustment in renal impairment"
            )
        if medical_condition == "liver_disease" and drug.category in HEPATOTOXIC_CATEGORIES:
            warnings.append(
                f"Hepatic warning: {drug.name} may require dose adjustment in liver disease"
            )

    for drug in drugs:
        if drug.black_box_warning:
            warnings.append(f"Black box warning: {drug.name} - {drug.black_box_warning}")

    return InteractionReport(
        has_interactions=bool(interactions or warnings),
        interactions=interactions,
        warnings=warnings,
    )


def has_known_allergy(drug_name: str, allergies: list[str]) -> bool:
    """True if any allergy names the drug, or the drug name names the allergy."""
    name = drug_name.strip().lower()
    if not name:
        return False
    return any(a.lower() in name or name in a.lower() for a in allergies if a)


COMMON_DRUGS = (
    Drug(drug_id="aspirin", name="Aspirin", category="antiplatelet",
         effects=("antiplatelet", "analgesic"), contraindications=("active_bleeding",)),
    Drug(drug_id="clopidogrel", name="Clopidogrel", category="antiplatelet",
         effects=("antiplatelet",), contraindications=("active_bleeding",)),
    Drug(drug_id="warfarin", name="Warfarin", category="anticoagulant",
         effects=("anticoagulant",), contraindications=("active_bleeding", "hemophilia"),
         black_box_warning="Risk of major or fatal bleeding"),
    Drug(drug_id="heparin", name="Heparin", category="anticoagulant",
         effects=("anticoagulant",), contraindications=("active_bleeding",)),
    Drug(drug_id="nitroglycerin", name="Nitroglycerin", category="nitrate",
         effects=("nitrate",)),
    Drug(drug_id="metoprolol", name="Metoprolol", category="beta_blocker",
         effects=("beta_blocker",)),
    Drug(drug_id="diltiazem", name="Diltiazem", category="calcium_channel_blocker",
         effects=("antihypertensive",)),
    Drug(drug_id="labetalol", name="Labetalol", category="beta_blocker",
         effects=("beta_blocker", "antihypertensive")),
    Drug(drug_id="lisinopril", name="Lisinopril", category="ace_inhibitor",
         effects=("antihypertensive",), contraindications=("pregnancy", "angioedema")),
    Drug(drug_id="spironolactone", name="Spironolactone", category="potassium_sparing_diuretic"),
    Drug(drug_id="simvastatin", name="Simvastatin", category="statins"),
    Drug(drug_id="clarithromycin", name="Clarithromycin", category="macrolide",
         effects=("antibiotic",)),
    Drug(drug_id="ceftriaxone", name="Ceftriaxone", category="cephalosporin",
         effects=("antibiotic",)),
    Drug(drug_id="vancomycin", name="Vancomycin", category="vancomycin",
         effects=("antibiotic",)),
    Drug(drug_id="gentamicin", name="Gentamicin", category="aminoglycoside",
         effects=("antibiotic",),
         black_box_warning="Nephrotoxicity and ototoxicity"),
    Drug(drug_id="metformin", name="Metformin", category="biguanide",
         contraindications=("renal_failure", "liver_disease")),
    Drug(drug_id="contrast_media", name="Contrast Media", category="contrast_media"),
    Drug(drug_id="insulin", name="Insulin", category="insulin", effects=("insulin",)),
    Drug(drug_id="acetaminophen", name="Acetaminophen", category="paracetamol",
         effects=("antipyretic", "analgesic")),
    Drug(drug_id="ibuprofen", name="Ibuprofen", category="nsaid",
         effects=("antipyretic", "analgesic")),
    Drug(drug_id="morphine", name="Morphine", category="opioid", effects=("opioid",),
         black_box_warning="Respiratory depression"),
    Drug(drug_id="ondansetron", name="Ondansetron", category="antiemetic",
         effects=("antiemetic",)),
    Drug(drug_id="albuterol", name="Albuterol", category="bronchodilator",
         effects=("bronchodilator",)),
    Drug(drug_id="norepinephrine", name="Norepinephrine", category="vasopressor",
         effects=("vasopressor",)),
    Drug(drug_id="normal_saline", name="Normal Saline", category="crystalloid",
         effects=("fluids",)),
    Drug(drug_id="oxygen", name="Oxygen", category="medical_gas", effects=("oxygen",)),
    Drug(drug_id="alteplase", name="Alteplase", category="thrombolytic",
         effects=("thrombolytic",), contraindications=("active_bleeding",)),
    Drug(drug_id="sertraline", name="Sertraline", category="ssri"),
    Drug(drug_id="phenelzine", name="Phenelzine", category="maoi"),
    Drug(drug_id="sumatriptan", name="Sumatriptan", category="triptan"),
    Drug(drug_id="fluconazole", name="Fluconazole", category="antifungal"),
    Drug(drug_id="penicillin", name="Penicillin", category="penicillin",
         effects=("antibiotic",)),
)
