"""Tests des routes d'historique : liste, fiche, photo, rapport, estimation, export."""

import csv
import io
import time
from unittest.mock import patch

import pytest

from app.errors import ExtractionError
from app.services import gemini_service
from app.services.duplicate_guard import HOUR_MS
from app.state import get_state

VIN = "VF1RFA00X12345678"


@pytest.fixture()
def seeded(app, make_record):
    """Trois scans : deux du meme VIN a une heure d'ecart, un autre vehicule."""
    now = int(time.time() * 1000)
    records = [
        make_record(vin=VIN, timestamp=now - 2 * HOUR_MS),
        make_record(vin=VIN, timestamp=now - HOUR_MS, inventory_notes='Pneu "AV" use'),
        make_record(vin="", brand="DACIA", model="LOGAN", timestamp=now, user_id="42"),
    ]
    with app.app_context():
        state = get_state()
        for record in records:
            state.add_record(record)
    return records


class TestListInventory:
    def test_history_newest_first_with_duplicate_flags(self, admin_client, seeded):
        data = admin_client.get("/api/inventory").get_json()["data"]

        assert data["count"] == data["total"] == 3
        assert [item["id"] for item in data["items"]] == [r.id for r in reversed(seeded)]
        flags = {item["id"]: item["isDuplicate"] for item in data["items"]}
        assert flags == {seeded[0].id: False, seeded[1].id: True, seeded[2].id: False}

    def test_filters(self, admin_client, seeded):
        by_search = admin_client.get("/api/inventory?q=logan").get_json()["data"]
        assert [i["id"] for i in by_search["items"]] == [seeded[2].id]

        by_user = admin_client.get("/api/inventory?user_id=42").get_json()["data"]
        assert by_user["count"] == 1

        duplicates = admin_client.get("/api/inventory?duplicates=1").get_json()["data"]
        assert [i["id"] for i in duplicates["items"]] == [seeded[1].id]

    def test_invalid_date(self, admin_client, seeded):
        resp = admin_client.get("/api/inventory?start=15/05/2024")
        assert resp.status_code == 400

    def test_requires_history(self, operator_client):
        client = operator_client(overrides={"history": False})
        assert client.get("/api/inventory").status_code == 403


class TestRecordDetail:
    def test_get_record(self, admin_client, seeded):
        resp = admin_client.get(f"/api/inventory/{seeded[0].id}")
        assert resp.get_json()["data"]["analysis"]["vin"] == VIN

    def test_unknown_record(self, admin_client):
        resp = admin_client.get("/api/inventory/S-0")
        assert resp.status_code == 404
        assert resp.get_json()["error"] == "NOT_FOUND"

    def test_missing_image_is_not_an_error(self, admin_client, seeded):
        resp = admin_client.get(f"/api/inventory/{seeded[0].id}/image")
        assert resp.status_code == 200
        assert resp.get_json()["data"]["image"] is None

    def test_stored_image_returned_as_data_url(self, app, admin_client, seeded):
        with app.app_context():
            app.extensions["blob_store"].put(seeded[0].id, b"jpeg", "image/jpeg")
        image = admin_client.get(f"/api/inventory/{seeded[0].id}/image").get_json()["data"]
        assert image["image"] == "data:image/jpeg;base64,anBlZw=="


class TestReport:
    def test_report_generated_once(self, admin_client, seeded):
        with patch.object(
            gemini_service, "get_vin_analysis_report", return_value="### Rapport"
        ) as report:
            first = admin_client.post(f"/api/inventory/{seeded[0].id}/report")
            second = admin_client.post(f"/api/inventory/{seeded[0].id}/report")

        report.assert_called_once_with(VIN)
        assert first.get_json()["data"]["cached"] is False
        assert first.get_json()["data"]["record"]["deepAnalysisDuration"] is not None
        assert second.get_json()["data"] == {"report": "### Rapport", "cached": True}

    def test_failure_not_cached(self, admin_client, seeded):
        with patch.object(
            gemini_service, "get_vin_analysis_report", side_effect=ExtractionError("Rapport vide")
        ):
            resp = admin_client.post(f"/api/inventory/{seeded[0].id}/report")
        assert resp.status_code == 502
        record = admin_client.get(f"/api/inventory/{seeded[0].id}").get_json()["data"]
        assert record["analysisReport"] is None

    def test_requires_full_vin(self, admin_client, seeded):
        resp = admin_client.post(f"/api/inventory/{seeded[2].id}/report")
        assert resp.status_code == 400


class TestEstimate:
    def test_estimate_merged_into_analysis(self, admin_client, seeded):
        estimation = {
            "marketValueMin": 95000.0,
            "marketValueMax": 110000.0,
            "marketValueJustification": "Cote locale",
        }
        with patch.object(gemini_service, "estimate_market_value", return_value=estimation):
            resp = admin_client.post(f"/api/inventory/{seeded[0].id}/estimate")

        analysis = resp.get_json()["data"]["analysis"]
        assert analysis["marketValueMin"] == 95000.0
        assert analysis["marketValueMax"] == 110000.0
        assert analysis["vin"] == VIN
        assert resp.get_json()["data"]["cached"] is False

    def test_known_range_returned_without_new_call(self, admin_client, seeded):
        estimation = {"marketValueMin": 95000.0, "marketValueMax": 110000.0}
        with patch.object(
            gemini_service, "estimate_market_value", return_value=estimation
        ) as estimate:
            admin_client.post(f"/api/inventory/{seeded[0].id}/estimate")
            second = admin_client.post(f"/api/inventory/{seeded[0].id}/estimate")

        estimate.assert_called_once()
        data = second.get_json()["data"]
        assert data["cached"] is True
        assert data["analysis"]["marketValueMin"] == 95000.0

    def test_refresh_forces_new_estimate(self, admin_client, seeded):
        with patch.object(
            gemini_service,
            "estimate_market_value",
            side_effect=[{"marketValueMin": 95000.0}, {"marketValueMin": 99000.0}],
        ) as estimate:
            admin_client.post(f"/api/inventory/{seeded[0].id}/estimate")
            resp = admin_client.post(f"/api/inventory/{seeded[0].id}/estimate?refresh=1")

        assert estimate.call_count == 2
        assert resp.get_json()["data"]["analysis"]["marketValueMin"] == 99000.0


class TestDelete:
    def test_agent_cannot_delete(self, operator_client, seeded):
        client = operator_client()
        resp = client.delete(f"/api/inventory/{seeded[0].id}")
        assert resp.status_code == 403

    def test_admin_deletes_record_and_photo(self, app, admin_client, seeded):
        with app.app_context():
            app.extensions["blob_store"].put(seeded[0].id, b"jpeg")

        resp = admin_client.delete(f"/api/inventory/{seeded[0].id}")
        assert resp.status_code == 200
        assert admin_client.get(f"/api/inventory/{seeded[0].id}").status_code == 404
        with app.app_context():
            assert app.extensions["blob_store"].get(seeded[0].id) is None

    def test_clear_history(self, admin_client, seeded):
        resp = admin_client.delete("/api/inventory")
        assert resp.get_json()["data"]["deleted"] == 3
        assert admin_client.get("/api/inventory").get_json()["data"]["total"] == 0


class TestExport:
    def test_csv_download(self, admin_client, seeded):
        resp = admin_client.get("/api/inventory/export.csv")

        assert resp.status_code == 200
        assert resp.headers["Content-Type"] == "text/csv; charset=utf-8"
        assert "inventaire_vehicules_" in resp.headers["Content-Disposition"]
        text = resp.data.decode("utf-8")
        assert text.startswith("\ufeff")
        rows = list(csv.reader(io.StringIO(text[1:]), delimiter=";"))
        assert rows[0][:3] == ["Date Scan", "VIN", "Marque"]
        assert len(rows) == 4
        assert rows[2][11] == 'Pneu "AV" use'
        assert rows[1][1] == "N/A"
