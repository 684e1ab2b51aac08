"""Integration tests for the session routes.

Tests verify that each endpoint passes the requester identity through to the
lifecycle manager and that core errors come back with the mapped status
codes and error bodies.
"""

import pytest

from models.actions import MedicalAction
from tests.api.helpers import OTHER_STUDENT, STUDENT, SUPERVISOR
from tests.fixtures.core.scenarios import FIXED_START


class TestStartSession:
    def test_start_returns_created(self, client):
        response = client.post("/scenarios/scenario-interrupt/sessions", headers=STUDENT)

        assert response.status_code == 201
        data = response.json()
        assert data["session"]["status"] == "ACTIVE"
        assert data["session"]["student_id"] == "student-1"
        assert data["patient_state"]["vital_signs"]["heart_rate"] == 104
        assert len(data["session"]["time_events"]) == 1

    def test_start_with_options(self, client):
        response = client.post(
            "/scenarios/scenario-001/sessions",
            json={"supervisor_id": "supervisor-1", "time_acceleration_rate": 5},
            headers=STUDENT,
        )

        assert response.status_code == 201
        assert response.json()["session"]["time_acceleration_rate"] == 5

    def test_inactive_scenario(self, client):
        response = client.post("/scenarios/scenario-inactive/sessions", headers=STUDENT)

        assert response.status_code == 404
        data = response.json()
        assert data["error"] == "Not Found"
        assert data["resource_type"] == "Scenario"
        assert data["resource_id"] == "scenario-inactive"

    def test_duplicate_session(self, client, session_id):
        response = client.post("/scenarios/scenario-interrupt/sessions", headers=STUDENT)

        assert response.status_code == 409
        assert response.json()["type"] == "ConflictError"

    def test_invalid_supervisor(self, client):
        response = client.post(
            "/scenarios/scenario-001/sessions",
            json={"supervisor_id": "student-2"},
            headers=STUDENT,
        )

        assert response.status_code == 400

    def test_missing_identity_header(self, client):
        response = client.post("/scenarios/scenario-001/sessions")

        assert response.status_code == 422


class TestGetSession:
    def test_get_own_session(self, client, session_id):
        response = client.get(f"/sessions/{session_id}", headers=STUDENT)

        assert response.status_code == 200
        assert response.json()["session_id"] == session_id

    def test_other_student_forbidden(self, client, session_id):
        response = client.get(f"/sessions/{session_id}", headers=OTHER_STUDENT)

        assert response.status_code == 403

    def test_missing_session(self, client):
        response = client.get("/sessions/missing", headers=STUDENT)

        assert response.status_code == 404
        assert response.json()["resource_type"] == "Session"


class TestFastForward:
    def test_stops_at_interrupting_event(self, client, session_id):
        response = client.post(
            f"/sessions/{session_id}/fast-forward",
            json={"virtual_minutes": 60},
            headers=STUDENT,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["interrupted"] is True
        assert data["virtual_minutes_elapsed"] == 20
        assert len(data["triggered_events"]) == 1
        assert data["session"]["time_flow_mode"] == "PAUSED"
        assert data["session"]["current_virtual_time"] == "2025-01-15T10:20:00Z"

    @pytest.mark.parametrize("minutes", [0, 1e12])
    def test_invalid_minutes(self, client, session_id, minutes):
        response = client.post(
            f"/sessions/{session_id}/fast-forward",
            json={"virtual_minutes": minutes},
            headers=STUDENT,
        )

        assert response.status_code == 400
        assert response.json()["type"] == "InvalidInputError"

    def test_blocked(self, client_with_manager, session_id):
        client, manager, _ = client_with_manager
        stored = manager.repository.get(session_id)
        stored.actions.append(MedicalAction(
            user_id="student-1",
            action_type="critical_care",
            can_be_fast_forwarded=False,
            real_time_started=FIXED_START,
            virtual_time_started=FIXED_START,
        ))
        manager.repository.save(stored)

        response = client.post(
            f"/sessions/{session_id}/fast-forward",
            json={"virtual_minutes": 30},
            headers=STUDENT,
        )

        assert response.status_code == 423
        assert response.json()["error"] == "Blocked"


class TestLifecycleRoutes:
    def test_pause_resume_complete(self, client_with_manager, session_id):
        client, _, clock = client_with_manager

        paused = client.post(f"/sessions/{session_id}/pause", headers=STUDENT)
        assert paused.status_code == 200
        assert paused.json()["status"] == "PAUSED"

        resumed = client.post(f"/sessions/{session_id}/resume", headers=STUDENT)
        assert resumed.json()["status"] == "ACTIVE"

        clock.advance(30)
        completed = client.post(f"/sessions/{session_id}/complete", headers=STUDENT)
        assert completed.status_code == 200
        assert completed.json()["status"] == "COMPLETED"
        assert completed.json()["overall_score"] is not None

    def test_invalid_transition(self, client, session_id):
        client.post(f"/sessions/{session_id}/pause", headers=STUDENT)

        response = client.post(f"/sessions/{session_id}/pause", headers=STUDENT)

        assert response.status_code == 409
        assert response.json()["type"] == "InvalidStateTransitionError"

    def test_complete_twice(self, client, session_id):
        client.post(f"/sessions/{session_id}/complete", headers=STUDENT)

        response = client.post(f"/sessions/{session_id}/complete", headers=STUDENT)

        assert response.status_code == 409


class TestInteractionRoutes:
    def test_ask_question(self, client, session_id):
        response = client.post(
            f"/sessions/{session_id}/questions",
            json={"question": "Any allergies?"},
            headers=STUDENT,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["response"]
        assert data["conversation_id"]

    def test_blank_question(self, client, session_id):
        response = client.post(
            f"/sessions/{session_id}/questions", json={"question": " "}, headers=STUDENT
        )

        assert response.status_code == 400

    def test_unknown_action_is_not_an_error(self, client, session_id):
        response = client.post(
            f"/sessions/{session_id}/actions",
            json={"action_type": "bogus", "action_details": {}},
            headers=STUDENT,
        )

        assert response.status_code == 200
        assert response.json()["success"] is False
        assert response.json()["feedback"] == "unknown action type"

    def test_medication_action(self, client, session_id):
        response = client.post(
            f"/sessions/{session_id}/actions",
            json={"action_type": "medication", "action_details": {"medication": "aspirin"}},
            headers=STUDENT,
        )

        assert response.status_code == 200
        assert response.json()["action"]["status"] == "COMPLETED"

    def test_acknowledge_event(self, client, session_id):
        forwarded = client.post(
            f"/sessions/{session_id}/fast-forward", json={"virtual_minutes": 60}, headers=STUDENT
        )
        event_id = forwarded.json()["triggered_events"][0]["event_id"]

        response = client.post(
            f"/sessions/{session_id}/events/{event_id}/acknowledge", headers=STUDENT
        )

        assert response.status_code == 200
        assert response.json()["acknowledged_at"] == "2025-01-15T10:00:00Z"

    def test_acknowledge_unknown_event(self, client, session_id):
        response = client.post(
            f"/sessions/{session_id}/events/missing/acknowledge", headers=STUDENT
        )

        assert response.status_code == 404
        assert response.json()["resource_type"] == "Event"

    def test_complication(self, client, session_id):
        response = client.post(
            f"/sessions/{session_id}/complications",
            json={"complication_type": "arrhythmia", "severity": 0.8},
            headers=STUDENT,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["applied"] is True
        assert data["event"]["event_type"] == "complication_arrhythmia"

    def test_complication_severity_out_of_range(self, client, session_id):
        response = client.post(
            f"/sessions/{session_id}/complications",
            json={"complication_type": "arrhythmia", "severity": 1.5},
            headers=STUDENT,
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Severity must be between 0 and 1"


class TestAnalysisRoutes:
    def test_evaluate_intervention(self, client, session_id):
        response = client.post(
            f"/sessions/{session_id}/interventions/evaluate",
            json={"action_type": "medication", "action_details": {"medication": "penicillin"}},
            headers=STUDENT,
        )

        assert response.status_code == 200
        assert response.json() == {
            "is_appropriate": False,
            "risks": ["Patient has known allergy to this medication"],
        }

    def test_evaluate_blank_medication(self, client, session_id):
        response = client.post(
            f"/sessions/{session_id}/interventions/evaluate",
            json={"action_type": "medication", "action_details": {"medication": ""}},
            headers=STUDENT,
        )

        assert response.status_code == 400

    def test_drug_interactions(self, client, session_id):
        response = client.post(
            f"/sessions/{session_id}/drug-interactions",
            json={"drug_ids": ["warfarin", "aspirin"]},
            headers=STUDENT,
        )

        assert response.status_code == 200
        assert response.json()["interactions"][0]["severity"] == "high"

    def test_progression_as_supervisor_role(self, client_with_manager):
        client, _, _ = client_with_manager
        started = client.post(
            "/scenarios/scenario-001/sessions",
            json={"supervisor_id": "supervisor-1"},
            headers=STUDENT,
        )
        session_id = started.json()["session"]["session_id"]

        response = client.get(f"/sessions/{session_id}/progression", headers=SUPERVISOR)

        assert response.status_code == 200
        assert response.json()["current_stage"] == "mild"


class TestRootRoutes:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}

    def test_root(self, client):
        assert client.get("/").json()["version"] == "0.1.0"
