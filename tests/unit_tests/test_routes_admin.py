"""Tests for the officer admin endpoints."""

import pytest

from tests.consts import API_BASE
from tests.consts import PDF_BYTES
from tests.fixtures.app_fixtures import domisili_form

PERMOHONAN = f"{API_BASE}/permohonan"
ADMIN = f"{API_BASE}/admin/permohonan"


@pytest.fixture
def submitted(client):
    """One Surat Keterangan Domisili filed by the citizen client."""
    data, files = domisili_form()
    response = client.post(PERMOHONAN, data=data, files=files)
    assert response.status_code == 201, response.text
    return response.json()["Permohonan"]


@pytest.fixture
def processing(submitted, officer_client):
    permohonan_id = submitted["PermohonanId"]
    officer_client.post(f"{ADMIN}/{permohonan_id}/verify")
    response = officer_client.post(f"{ADMIN}/{permohonan_id}/process")
    assert response.status_code == 200, response.text
    return response.json()


class TestAccess:
    """Admin routes are for officers only."""

    @pytest.mark.parametrize(
        "method,path",
        [("get", ""), ("get", "/stats")],
        ids=["list", "stats"],
    )
    def test_citizen_forbidden(self, client, method, path):
        response = getattr(client, method)(f"{ADMIN}{path}")
        assert response.status_code == 403
        assert response.json()["detail"] == "Officer role required"

    def test_citizen_cannot_verify(self, submitted, client):
        response = client.post(f"{ADMIN}/{submitted['PermohonanId']}/verify")
        assert response.status_code == 403

    def test_anonymous(self, unauthenticated_client):
        assert unauthenticated_client.get(ADMIN).status_code == 401


class TestList:
    """Tests for GET /admin/permohonan."""

    def test_filters(self, submitted, client, officer_client):
        """Status, service and search filters combine with AND."""
        data, files = domisili_form()
        second = client.post(PERMOHONAN, data=data, files=files).json()["Permohonan"]
        officer_client.post(f"{ADMIN}/{second['PermohonanId']}/verify")

        everything = officer_client.get(ADMIN).json()
        assert everything["Total"] == 2
        # Most recently updated first
        assert everything["Permohonan"][0]["PermohonanId"] == second["PermohonanId"]

        verified = officer_client.get(ADMIN, params={"status": "VERIFIED"}).json()
        assert [p["PermohonanId"] for p in verified["Permohonan"]] == [second["PermohonanId"]]

        by_service = officer_client.get(ADMIN, params={"service_id": 9}).json()
        assert by_service["Total"] == 0

        by_number = officer_client.get(ADMIN, params={"search": submitted["TrackingNumber"].lower()}).json()
        assert [p["PermohonanId"] for p in by_number["Permohonan"]] == [submitted["PermohonanId"]]

    def test_date_range(self, submitted, officer_client):
        """Dates are inclusive local calendar days."""
        day = submitted["TrackingNumber"].split("-")[1]
        iso_day = f"{day[:4]}-{day[4:6]}-{day[6:]}"

        same_day = officer_client.get(ADMIN, params={"date_from": iso_day, "date_to": iso_day}).json()
        assert same_day["Total"] == 1

        earlier = officer_client.get(ADMIN, params={"date_to": "2000-01-01"}).json()
        assert earlier["Total"] == 0

    def test_inverted_date_range(self, officer_client):
        response = officer_client.get(ADMIN, params={"date_from": "2024-02-01", "date_to": "2024-01-01"})
        assert response.status_code == 400

    def test_invalid_status(self, officer_client):
        assert officer_client.get(ADMIN, params={"status": "DONE"}).status_code == 422


class TestStats:
    """Tests for GET /admin/permohonan/stats."""

    def test_stats(self, submitted, officer_client):
        response = officer_client.get(f"{ADMIN}/stats")

        assert response.status_code == 200
        stats = response.json()
        assert stats["Total"] == 1
        assert stats["Active"] == 1
        assert stats["SubmittedToday"] == 1
        assert stats["ByStatus"]["SUBMITTED"] == 1
        assert sum(stats["ByStatus"].values()) == stats["Total"]
        assert stats["ByService"] == [{"ServiceId": 1, "ServiceName": "Surat Keterangan Domisili", "Count": 1}]


class TestTransitions:
    """Tests for verify, process, reject and complete."""

    def test_verify_with_note(self, submitted, officer_client):
        response = officer_client.post(
            f"{ADMIN}/{submitted['PermohonanId']}/verify", json={"Note": "Dokumen lengkap"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["Status"] == "VERIFIED"
        assert data["Timeline"][-1] == {
            "Status": "VERIFIED",
            "Timestamp": data["Timeline"][-1]["Timestamp"],
            "Note": "Dokumen lengkap",
            "Actor": "petugas-01",
        }
        assert data["Version"] == 2

    def test_skipping_a_step_is_conflict(self, submitted, officer_client):
        """SUBMITTED cannot move straight to PROCESSING."""
        response = officer_client.post(f"{ADMIN}/{submitted['PermohonanId']}/process")

        assert response.status_code == 409
        assert response.json()["error_type"] == "InvalidTransition"

    def test_reject_requires_reason(self, submitted, officer_client):
        url = f"{ADMIN}/{submitted['PermohonanId']}/reject"

        blank = officer_client.post(url, json={"Reason": "  "})
        assert blank.status_code == 400
        assert blank.json()["error_type"] == "MissingReason"

        rejected = officer_client.post(url, json={"Reason": "KTP tidak terbaca"})
        assert rejected.status_code == 200
        assert rejected.json()["RejectionReason"] == "KTP tidak terbaca"
        assert rejected.json()["NextStatuses"] == []

        again = officer_client.post(f"{ADMIN}/{submitted['PermohonanId']}/verify")
        assert again.status_code == 409

    def test_complete(self, processing, officer_client):
        response = officer_client.post(
            f"{ADMIN}/{processing['PermohonanId']}/complete",
            files={"file": ("Surat-Domisili.pdf", PDF_BYTES, "application/pdf")},
            data={"note": "Silakan diambil di kantor desa"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["Status"] == "COMPLETED"
        assert data["ResultDocument"]["Label"] == "result"
        assert data["Timeline"][-1]["Note"] == "Silakan diambil di kantor desa"

    def test_complete_unsupported_type(self, processing, officer_client):
        response = officer_client.post(
            f"{ADMIN}/{processing['PermohonanId']}/complete",
            files={"file": ("surat.docx", b"PK", "application/vnd.openxmlformats-officedocument.wordprocessingml.document")},
        )
        assert response.status_code == 415

    def test_complete_before_processing(self, submitted, officer_client):
        response = officer_client.post(
            f"{ADMIN}/{submitted['PermohonanId']}/complete",
            files={"file": ("Surat.pdf", PDF_BYTES, "application/pdf")},
        )
        assert response.status_code == 409

    def test_unknown_permohonan(self, officer_client):
        response = officer_client.post(f"{ADMIN}/00000000-0000-0000-0000-000000000000/verify")
        assert response.status_code == 404
