"""Unit tests for the physiology engine and complication templates.

Tests cover:
    - Disease drift, treated drift scaling and progressive symptoms
    - Intervention effects and symptom resolution
    - Plausibility clamping and the heart-rate floor
    - Mental status rule chain and threshold complication detection
    - Disease model registry lookups
    - Complication generation, application and progression analysis
"""

import pytest

from models.errors import InvalidInputError
from models.patient import BloodPressure, PatientState, VitalSigns
from models.physiology import (
    DiseaseModelRegistry,
    Intervention,
    PhysiologyEngine,
    available_complications,
    apply_complication,
    complication_risk,
    derive_mental_status,
    expected_course,
    generate_complication,
    progression_stage,
    simulate,
)

ALERT = "Alert and oriented"


@pytest.fixture
def registry():
    return DiseaseModelRegistry.with_common_conditions()


def vitals(**kwargs) -> VitalSigns:
    systolic = kwargs.pop("systolic", 120)
    return VitalSigns(blood_pressure=BloodPressure(systolic=systolic, diastolic=80), **kwargs)


def medication(category: str) -> Intervention:
    return Intervention(kind="medication", name=category, category=category)


class TestDiseaseDrift:
    def test_default_model_drifts_heart_rate(self, registry):
        update = simulate(vitals(heart_rate=80), [], ALERT, 20, [], registry.get(None))

        assert update.vital_signs.heart_rate == pytest.approx(82.0)
        assert update.vital_signs.blood_pressure.systolic == 120

    def test_untreated_myocardial_infarction(self, registry):
        update = simulate(
            vitals(heart_rate=104, systolic=150, oxygen_saturation=96, pain_level=6),
            ["pain"],
            ALERT,
            60,
            [],
            registry.get("myocardial_infarction"),
            total_minutes=60,
        )

        assert update.vital_signs.heart_rate == pytest.approx(113.0)
        assert update.vital_signs.blood_pressure.systolic == pytest.approx(138.0)
        assert update.vital_signs.oxygen_saturation == pytest.approx(94.8)
        assert update.vital_signs.pain_level == pytest.approx(7.2)
        assert update.symptoms == ["pain", "diaphoresis", "nausea", "shortness of breath"]

    def test_progressive_symptoms_wait_for_onset(self, registry):
        update = simulate(
            vitals(), [], ALERT, 25, [], registry.get("myocardial_infarction"), total_minutes=25
        )

        assert update.symptoms == ["diaphoresis"]

    def test_treatment_stops_drift_and_progression(self, registry):
        update = simulate(
            vitals(heart_rate=104),
            [],
            ALERT,
            60,
            [medication("antiplatelet")],
            registry.get("myocardial_infarction"),
            total_minutes=60,
        )

        assert update.vital_signs.heart_rate == pytest.approx(104.0)
        assert update.symptoms == []

    def test_treated_sepsis_keeps_reduced_drift(self, registry):
        update = simulate(
            vitals(heart_rate=100), [], ALERT, 40, [medication("antibiotic")], registry.get("sepsis")
        )

        assert update.vital_signs.heart_rate == pytest.approx(102.0)

    def test_zero_elapsed_minutes_changes_nothing(self, registry):
        before = vitals(heart_rate=90)

        update = simulate(before, [], ALERT, 0, [], registry.get("sepsis"))

        assert update.vital_signs == before

    def test_negative_elapsed_minutes(self, registry):
        with pytest.raises(InvalidInputError):
            simulate(vitals(), [], ALERT, -1, [], registry.get(None))


class TestInterventions:
    def test_oxygen_moves_saturation_toward_target(self, registry):
        update = simulate(
            vitals(oxygen_saturation=85), [], ALERT, 10, [medication("oxygen")], registry.get(None)
        )

        assert update.vital_signs.oxygen_saturation == pytest.approx(90.0)

    def test_intervention_does_not_overshoot(self, registry):
        update = simulate(
            vitals(oxygen_saturation=95), [], ALERT, 60, [medication("oxygen")], registry.get(None)
        )

        assert update.vital_signs.oxygen_saturation == pytest.approx(97.0)

    def test_active_intervention_resolves_symptoms(self, registry):
        update = simulate(
            vitals(),
            ["shortness of breath", "nausea"],
            ALERT,
            5,
            [medication("oxygen")],
            registry.get(None),
        )

        assert update.symptoms == ["nausea"]


class TestLimits:
    def test_heart_rate_floor(self, registry):
        update = simulate(vitals(heart_rate=45), [], ALERT, 0, [], registry.get(None))

        assert update.vital_signs.heart_rate == 60.0

    def test_values_are_clamped(self, registry):
        update = simulate(
            vitals(oxygen_saturation=104, pain_level=14), [], ALERT, 0, [], registry.get(None)
        )

        assert update.vital_signs.oxygen_saturation == 100.0
        assert update.vital_signs.pain_level == 10.0


class TestMentalStatus:
    def test_hypoxia_causes_confusion(self):
        assert derive_mental_status(ALERT, vitals(oxygen_saturation=85)) == "Confused"

    def test_hypotension_causes_lethargy(self):
        assert derive_mental_status(ALERT, vitals(systolic=85)) == "Lethargic"

    def test_hypoxia_takes_precedence(self):
        assert derive_mental_status(ALERT, vitals(oxygen_saturation=85, systolic=85)) == "Confused"

    def test_normal_vitals_keep_status(self):
        assert derive_mental_status("Anxious", vitals()) == "Anxious"


class TestComplicationDetection:
    def test_thresholds_in_rule_order(self, registry):
        update = simulate(
            vitals(oxygen_saturation=85, systolic=85, heart_rate=135),
            [], ALERT, 0, [], registry.get(None),
        )

        assert update.new_complications == ["respiratory_failure", "hypotension", "arrhythmia"]

    def test_known_complications_are_not_reported_again(self, registry):
        update = simulate(
            vitals(oxygen_saturation=85), [], ALERT, 0, [], registry.get(None),
            known_complications=["respiratory_failure"],
        )

        assert update.new_complications == []

    def test_sepsis_needs_fever_and_tachycardia(self, registry):
        update = simulate(
            vitals(temperature=38.6, heart_rate=115), [], ALERT, 0, [], registry.get(None)
        )

        assert update.new_complications == ["sepsis"]


class TestRegistry:
    def test_known_condition(self, registry):
        assert registry.get("sepsis").condition == "sepsis"

    @pytest.mark.parametrize("condition", [None, "unheard_of_condition"])
    def test_unknown_condition_uses_default(self, registry, condition):
        assert registry.get(condition).condition == "default"

    def test_lookup_does_not_register_conditions(self, registry):
        before = registry.conditions

        registry.get("unheard_of_condition")

        assert registry.conditions == before
        assert "unheard_of_condition" not in registry.conditions

    def test_engine_uses_registry(self, registry):
        engine = PhysiologyEngine(registry)
        state = PatientState(vital_signs=vitals(heart_rate=100))

        update = engine.recompute(state, 40, [], "sepsis", 40, [])

        assert update.vital_signs.heart_rate == pytest.approx(108.0)
        assert state.vital_signs.heart_rate == 100


class TestComplications:
    def test_generation_is_deterministic(self):
        assert generate_complication("arrhythmia", 0.8) == generate_complication("arrhythmia", 0.8)

    def test_arrhythmia_template(self):
        complication = generate_complication("arrhythmia", 0.8)

        assert complication.type == "arrhythmia"
        assert complication.vital_sign_changes.heart_rate == 120
        assert complication.vital_sign_changes.blood_pressure.systolic == 66
        assert "palpitations" in complication.symptoms

    @pytest.mark.parametrize("severity", [-0.1, 1.5])
    def test_severity_out_of_range(self, severity):
        with pytest.raises(InvalidInputError) as exc_info:
            generate_complication("arrhythmia", severity)

        assert exc_info.value.message == "Severity must be between 0 and 1"

    def test_unknown_type_falls_back_to_hypotension(self):
        assert generate_complication("mystery", 0.5).type == "hypotension"

    def test_apply_complication_returns_new_state(self):
        state = PatientState(vital_signs=vitals(heart_rate=80, pain_level=2))
        complication = generate_complication("hypotension", 0.5)

        updated = apply_complication(state, complication)

        assert updated.vital_signs.heart_rate == 120
        assert updated.vital_signs.blood_pressure.systolic == 70
        assert updated.vital_signs.pain_level == pytest.approx(3.5)
        assert updated.mental_status == "Lethargic"
        assert updated.complications == ["hypotension"]
        assert updated.acuity == pytest.approx(0.15)
        assert state.vital_signs.heart_rate == 80
        assert state.complications == []


class TestProgression:
    def test_stages(self):
        assert progression_stage(vitals(heart_rate=80), []) == "stable"
        assert progression_stage(vitals(heart_rate=110), []) == "mild"
        assert progression_stage(vitals(), ["hypotension"]) == "moderate"
        assert progression_stage(vitals(), ["a", "b", "c"]) == "severe"

    def test_risk(self):
        assert complication_risk("stable", 0, []) == pytest.approx(0.1)
        assert complication_risk("moderate", 120, ["hypotension"]) == pytest.approx(0.8)
        assert complication_risk("severe", 240, ["a", "b", "c"]) == 1.0

    def test_expected_course(self):
        assert expected_course("sepsis")["typical_timeline"] == "6-24 hours"
        assert expected_course(None)["stages"] == ["mild", "moderate", "severe"]

    def test_available_complications(self):
        assert "heart_failure" in available_complications("myocardial_infarction")
        assert available_complications(None) == ["hypotension", "arrhythmia", "respiratory_failure"]
