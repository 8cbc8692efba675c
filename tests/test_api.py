"""
Tests for the HTTP surface: kickoff acknowledgement, polling, budget and
maintenance endpoints.
"""

import pytest
from fastapi.testclient import TestClient

from folio.api.app import app, get_pipeline

from conftest import add_book


@pytest.fixture
def client(pipeline):
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def seeded(client, pipeline):
    """A one-chapter book added through the client's event loop."""
    book, (unit,) = client.portal.call(add_book, pipeline)
    return book, unit


def drain(client, pipeline):
    client.portal.call(pipeline.runner.drain)


# =============================================================================
# Kickoff
# =============================================================================


class TestKickoff:
    def test_unit_kickoff_is_accepted(self, client, pipeline, seeded):
        _, unit = seeded

        response = client.post("/translations", json={"content_unit_id": unit.id, "languages": ["en", "ar"]})

        assert response.status_code == 202
        body = response.json()
        assert body["accepted"] is True
        assert body["job_id"]
        assert body["languages"] == ["en", "ar"]

        drain(client, pipeline)

        job = client.get(f"/jobs/{body['job_id']}").json()
        assert job["status"] == "completed"
        assert job["completed"] == 2

    def test_unsupported_language(self, client, seeded):
        _, unit = seeded

        response = client.post("/translations", json={"content_unit_id": unit.id, "languages": ["xx"]})

        assert response.status_code == 422

    def test_unknown_unit(self, client):
        response = client.post("/translations", json={"content_unit_id": "unit_missing", "languages": ["en"]})

        assert response.status_code == 404

    def test_book_kickoff(self, client, pipeline, seeded):
        book, _ = seeded

        response = client.post(f"/books/{book.id}/translations", json={"languages": ["es"]})
        drain(client, pipeline)

        assert response.status_code == 202
        assert response.json()["units"] == 1

    def test_unknown_book(self, client):
        response = client.post("/books/book_missing/translations", json={"languages": ["es"]})

        assert response.status_code == 404

    def test_bulk(self, client, pipeline, seeded):
        book, _ = seeded

        response = client.post(
            "/translations/bulk",
            json={"book_ids": [book.id, "book_missing"], "languages": ["es"]},
        )
        drain(client, pipeline)

        assert response.status_code == 202
        body = response.json()
        assert (body["started"], body["skipped"], body["rejected"]) == (1, 0, 1)


# =============================================================================
# Polling
# =============================================================================


class TestPolling:
    def test_translations_for_unit(self, client, pipeline, seeded):
        _, unit = seeded
        client.post("/translations", json={"content_unit_id": unit.id, "languages": ["en", "ar"]})
        drain(client, pipeline)

        listing = client.get(f"/content/{unit.id}/translations").json()
        assert {t["language"]: t["status"] for t in listing["translations"]} == {
            "en": "completed",
            "ar": "completed",
        }

        arabic = client.get(f"/content/{unit.id}/translations/ar").json()
        assert arabic["direction"] == "rtl"
        assert "[ar]" in arabic["document"]
        assert arabic["usage"]["cost_usd"] == pytest.approx(0.01)

    def test_not_requested_language(self, client, seeded):
        _, unit = seeded

        response = client.get(f"/content/{unit.id}/translations/es")

        assert response.status_code == 404

    def test_unknown_job(self, client):
        assert client.get("/jobs/job_missing").status_code == 404

    def test_book_progress(self, client, pipeline, seeded):
        book, unit = seeded
        client.post("/translations", json={"content_unit_id": unit.id, "languages": ["en"]})
        drain(client, pipeline)

        progress = client.get(f"/progress/books/{book.id}", params={"languages": "en,es"}).json()

        assert progress["by_language"]["en"]["completed"] == 1
        assert progress["by_language"]["es"]["not_started"] == 1
        assert progress["progress"] == 0.0

    def test_dashboard(self, client):
        body = client.get("/progress").json()

        assert set(body) == {"stats", "budget", "active_jobs", "last_24h", "alerts"}


# =============================================================================
# Budget
# =============================================================================


class TestBudget:
    def test_get_and_update(self, client):
        assert client.get("/budget").json()["ceiling_usd"] == 10.0

        response = client.patch("/budget", json={"ceiling_usd": 25.0, "alert_threshold_pct": 90})

        assert response.status_code == 200
        assert response.json()["ceiling_usd"] == 25.0
        assert response.json()["alert_threshold_pct"] == 90.0

    @pytest.mark.parametrize("payload", [{"ceiling_usd": 0}, {"alert_threshold_pct": 150}])
    def test_invalid_update(self, client, payload):
        assert client.patch("/budget", json=payload).status_code == 422

    def test_history(self, client):
        client.get("/budget")

        periods = client.get("/budget/history").json()["periods"]

        assert len(periods) == 1

    def test_alerts_raised_and_resolved(self, client, pipeline):
        client.portal.call(pipeline.ledger.record_spend, 8.5)

        alerts = client.get("/budget/alerts").json()
        assert alerts["count"] == 1
        alert_id = alerts["alerts"][0]["id"]

        resolved = client.post(f"/budget/alerts/{alert_id}/resolve")
        assert resolved.status_code == 200
        assert resolved.json()["is_resolved"] is True

        assert client.get("/budget/alerts").json()["count"] == 0
        assert client.get("/budget/alerts", params={"include_resolved": True}).json()["count"] == 1

    def test_resolve_unknown_alert(self, client):
        assert client.post("/budget/alerts/alert_missing/resolve").status_code == 404


# =============================================================================
# Maintenance and reference data
# =============================================================================


class TestMisc:
    def test_recover(self, client, pipeline):
        response = client.post("/maintenance/recover")

        assert response.status_code == 200
        assert response.json()["reset"] == 0

    def test_languages(self, client):
        body = client.get("/languages").json()

        assert body["source"]["code"] == "fr"
        codes = {lang["code"]: lang for lang in body["languages"]}
        assert codes["ar"]["rtl"] is True
        assert codes["en"]["rtl"] is False

    def test_health(self, client):
        body = client.get("/health").json()

        assert body["status"] == "healthy"
