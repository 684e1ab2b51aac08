"""Integration tests for the session-free reference routes."""

from tests.api.helpers import STUDENT


class TestGeneralDrugInteractions:
    def test_interaction_found(self, client):
        response = client.post(
            "/drug-interactions", json={"drug_ids": ["aspirin", "warfarin"]}, headers=STUDENT
        )

        assert response.status_code == 200
        data = response.json()
        assert data["has_interactions"] is True
        assert data["interactions"][0]["severity"] == "high"

    def test_unknown_drug(self, client):
        response = client.post(
            "/drug-interactions", json={"drug_ids": ["unobtainium"]}, headers=STUDENT
        )

        assert response.status_code == 404
        assert response.json()["resource_type"] == "Drug"

    def test_requires_identity(self, client):
        response = client.post("/drug-interactions", json={"drug_ids": ["aspirin"]})

        assert response.status_code == 422


class TestClinicalGuidelines:
    def test_known_condition(self, client):
        response = client.get("/clinical-guidelines/sepsis", headers=STUDENT)

        assert response.status_code == 200
        data = response.json()
        assert data["condition"] == "sepsis"
        assert data["guidelines"][0]["strength"] == "strong"
        assert data["guidelines"][0]["last_updated"] == "2023-03-10"

    def test_unknown_condition(self, client):
        response = client.get("/clinical-guidelines/gout", headers=STUDENT)

        assert response.status_code == 200
        assert response.json()["guidelines"][0]["organization"] == "General Medical Practice"
