"""Unit tests for action parsing and processing."""

import pytest

from models.actions import (
    UNKNOWN_ACTION_FEEDBACK,
    ActionContext,
    ActionDelta,
    ActionProcessor,
    ActionStatus,
    ActiveMedication,
    DiagnosticAction,
    ExaminationAction,
    MedicalAction,
    MedicationAction,
    ProcedureAction,
    UnknownAction,
    active_interventions,
    can_be_fast_forwarded,
    parse_action,
)
from models.drugs import InMemoryDrugKnowledge
from models.errors import InvalidInputError
from models.patient import PatientState, VitalSigns
from tests.fixtures.core.scenarios import FIXED_START


@pytest.fixture
def processor():
    return ActionProcessor(InMemoryDrugKnowledge())


@pytest.fixture
def patient_state():
    return PatientState(vital_signs=VitalSigns(heart_rate=104))


def make_context(active_medications=None, allergies=("penicillin",)) -> ActionContext:
    return ActionContext(
        allergies=list(allergies),
        active_medications=active_medications or [],
        virtual_time=FIXED_START,
    )


def active(drug_id: str, name: str) -> ActiveMedication:
    return ActiveMedication(name=name, drug_id=drug_id, started_at=FIXED_START)


class TestParseAction:
    def test_examination_accepts_procedure_key(self):
        action = parse_action("examination", {"procedure": "cardiovascular"})

        assert action == ExaminationAction(examination="cardiovascular")

    def test_examination_defaults_to_general(self):
        assert parse_action("examination", {}) == ExaminationAction()

    def test_medication(self):
        action = parse_action("medication", {"medication": "aspirin", "dosage": "325mg"})

        assert action == MedicationAction(medication="aspirin", dosage="325mg")

    def test_procedure_and_diagnostic(self):
        assert isinstance(parse_action("procedure", {"procedure": "iv_fluids"}), ProcedureAction)
        assert isinstance(parse_action("diagnostic", {"test": "ecg"}), DiagnosticAction)

    def test_malformed_details_for_known_type(self):
        with pytest.raises(InvalidInputError):
            parse_action("medication", {"dosage": "5mg"})

    @pytest.mark.parametrize("action_type, details", [
        ("medication", {"medication": ""}),
        ("medication", {"medication": "   "}),
        ("procedure", {"procedure": ""}),
        ("diagnostic", {"test": " "}),
    ])
    def test_blank_names_are_rejected(self, action_type, details):
        with pytest.raises(InvalidInputError):
            parse_action(action_type, details)

    def test_unknown_type(self):
        action = parse_action("bogus", {"anything": 1})

        assert action == UnknownAction(action_type="bogus", details={"anything": 1})

    @pytest.mark.parametrize("action_type", ["complex_procedure", "surgery", "critical_care"])
    def test_real_time_only_actions(self, action_type):
        assert can_be_fast_forwarded(action_type) is False

    def test_regular_actions_can_be_fast_forwarded(self):
        assert can_be_fast_forwarded("medication") is True


class TestExamination:
    def test_cardiovascular_findings(self, processor, patient_state):
        outcome = processor.process(
            ExaminationAction(examination="cardiovascular"), patient_state, make_context()
        )

        assert outcome.success is True
        assert outcome.result["abnormalities"] == ["Tachycardic, regular rhythm"]
        assert outcome.delta.physical_findings == ["cardiovascular: Tachycardic, regular rhythm"]

    def test_general_examination_of_well_patient(self, processor):
        outcome = processor.process(ExaminationAction(), PatientState(), make_context())

        assert outcome.result["findings"] == ["No acute distress"]
        assert outcome.result["abnormalities"] == []


class TestMedication:
    def test_administered_correctly(self, processor, patient_state):
        outcome = processor.process(MedicationAction(medication="aspirin"), patient_state, make_context())

        assert outcome.success is True
        assert outcome.feedback == "Medication administered correctly"
        (medication,) = outcome.delta.active_medications
        assert medication.drug_id == "aspirin"
        assert medication.effects == ["antiplatelet", "analgesic"]
        assert medication.started_at == FIXED_START

    def test_known_allergy_blocks_administration(self, processor, patient_state):
        outcome = processor.process(MedicationAction(medication="penicillin"), patient_state, make_context())

        assert outcome.success is False
        assert "allergy" in outcome.feedback
        assert outcome.result["administered"] is False
        assert outcome.delta == ActionDelta()

    def test_interaction_with_active_medication(self, processor, patient_state):
        context = make_context(active_medications=[active("warfarin", "Warfarin")])

        outcome = processor.process(MedicationAction(medication="aspirin"), patient_state, context)

        assert outcome.success is True
        assert outcome.feedback.startswith("Medication administered with warnings")
        assert outcome.result["warnings"] == [
            "high interaction with Warfarin: Increased bleeding risk"
        ]

    def test_unknown_drug_is_given_with_warning(self, processor, patient_state):
        outcome = processor.process(MedicationAction(medication="unobtainium"), patient_state, make_context())

        assert outcome.success is True
        assert "not in the formulary" in outcome.result["warnings"][0]
        assert outcome.delta.active_medications[0].effects == []

    def test_repeat_dose_is_not_added_twice(self, processor, patient_state):
        context = make_context(active_medications=[active("aspirin", "Aspirin")])

        outcome = processor.process(MedicationAction(medication="aspirin"), patient_state, context)

        assert outcome.delta.active_medications == []
        assert len(outcome.delta.treatment_responses) == 1


class TestProcedure:
    def test_procedure_completes_step(self, processor, patient_state):
        outcome = processor.process(ProcedureAction(procedure="intubation"), patient_state, make_context())

        assert outcome.success is True
        assert outcome.delta.completed_steps == ["intubation"]
        assert outcome.delta.treatment_responses[0]["expected_effects"] == ["oxygen"]

    def test_consent_needs_alert_patient(self, processor):
        state = PatientState(mental_status="Confused")

        outcome = processor.process(ProcedureAction(procedure="intubation"), state, make_context())

        assert outcome.success is False
        assert outcome.delta.completed_steps == []

    def test_procedure_without_consent_requirement(self, processor):
        state = PatientState(mental_status="Confused")

        outcome = processor.process(ProcedureAction(procedure="iv_fluids"), state, make_context())

        assert outcome.success is True


class TestDiagnostic:
    def test_ecg_reflects_heart_rate(self, processor, patient_state):
        outcome = processor.process(DiagnosticAction(test="ecg"), patient_state, make_context())

        assert outcome.result["value"] == "Sinus tachycardia"
        (lab,) = outcome.delta.lab_results
        assert lab.test == "ecg"
        assert lab.timestamp == FIXED_START

    def test_other_tests_are_normal(self, processor, patient_state):
        outcome = processor.process(DiagnosticAction(test="lipase"), patient_state, make_context())

        assert outcome.result["is_critical"] is False


class TestUnknownAction:
    def test_unknown_action_fails_softly(self, processor, patient_state):
        outcome = processor.process(UnknownAction(action_type="bogus"), patient_state, make_context())

        assert outcome.success is False
        assert outcome.result is None
        assert outcome.feedback == UNKNOWN_ACTION_FEEDBACK


class TestHelpers:
    def test_blocks_fast_forward_only_while_in_progress(self):
        action = MedicalAction(
            user_id="student-1",
            action_type="surgery",
            can_be_fast_forwarded=False,
            real_time_started=FIXED_START,
            virtual_time_started=FIXED_START,
        )
        assert action.blocks_fast_forward is True

        action.status = ActionStatus.COMPLETED
        assert action.blocks_fast_forward is False

    def test_active_interventions(self):
        medication = ActiveMedication(
            name="Aspirin", drug_id="aspirin", effects=["antiplatelet"], started_at=FIXED_START
        )

        interventions = active_interventions([medication], ["oxygen_therapy", "history_taking"])

        assert [(i.kind, i.category) for i in interventions] == [
            ("medication", "antiplatelet"),
            ("procedure", "oxygen"),
        ]

    def test_delta_does_not_duplicate_findings(self):
        state = PatientState(physical_findings=["general: No acute distress"])

        ActionDelta(physical_findings=["general: No acute distress"]).apply_to(state)

        assert state.physical_findings == ["general: No acute distress"]


class TestEvaluate:
    def test_safe_medication(self, processor, patient_state):
        evaluation = processor.evaluate(
            MedicationAction(medication="aspirin"), patient_state, ["penicillin"], ["hypertension"]
        )

        assert evaluation.is_appropriate is True
        assert evaluation.risks == []

    def test_allergy_by_category(self, processor, patient_state):
        evaluation = processor.evaluate(
            MedicationAction(medication="Warfarin"), patient_state, ["anticoagulant"], []
        )

        assert evaluation.is_appropriate is False
        assert evaluation.risks == ["Patient has known allergy to this medication"]

    def test_contraindication(self, processor, patient_state):
        evaluation = processor.evaluate(
            MedicationAction(medication="metformin"), patient_state, [], ["Renal_Failure"]
        )

        assert evaluation.risks == ["Medication is contraindicated for patient conditions"]

    def test_unconscious_patient_cannot_consent(self, processor):
        state = PatientState(mental_status="Unresponsive")

        evaluation = processor.evaluate(ProcedureAction(procedure="central_line"), state, [], [])

        assert evaluation.risks == ["Procedure may require informed consent"]

    def test_advanced_procedure_needs_training(self, processor, patient_state):
        action = ProcedureAction(procedure="chest_tube")

        untrained = processor.evaluate(action, patient_state, [], [], trained=False)
        trained = processor.evaluate(action, patient_state, [], [], trained=True)

        assert untrained.risks == ["Procedure requires specialized training"]
        assert trained.is_appropriate is True

    def test_other_actions_have_no_rules(self, processor, patient_state):
        evaluation = processor.evaluate(
            UnknownAction(action_type="bogus"), patient_state, ["penicillin"], [], trained=False
        )

        assert evaluation.is_appropriate is True
