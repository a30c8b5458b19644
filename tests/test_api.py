"""
tests/test_api.py
─────────────────────────────────────────────────────────────────────────────
Tests for mirror.api — MirrorAPI façade and the FastAPI endpoints.

Coverage:
  - classify: detection, safety response, incident sink write
  - coverage / gaming / resolve passthroughs
  - chat/turn: rules-only turn, crisis turn, gaming flag carry-over
  - progress: exchanges, status, submit (locked → 409, bad kind → 400)
  - report and incidents
  - health

Every test uses a temporary incident DB — nothing is written to cwd.
"""

import pytest
from fastapi.testclient import TestClient

from mirror.api import MirrorAPI, _build_app
from mirror.config import DEFAULT_CONFIG


@pytest.fixture
def config(tmp_path):
    return {**DEFAULT_CONFIG, "incident_db_path": str(tmp_path / "incidents.db")}


@pytest.fixture
def client(config):
    return TestClient(_build_app(config))


ROSTER = [{"id": "s1", "name": "Jane Doe", "email": "jane.doe@csueastbay.edu"}]


class TestMirrorAPI:

    def test_classify_writes_incident(self, config):
        api = MirrorAPI(config=config)
        result = api.classify("I want to die")
        assert result["detected"] is True
        assert result["category"] == "self"
        assert "988" in result["response"]
        assert api.incident_counts() == {"self": 1, "others": 0}

    def test_no_sink_when_path_empty(self):
        api = MirrorAPI(config={**DEFAULT_CONFIG, "incident_db_path": None})
        assert api.incident_sink is None
        assert api.classify("I want to die")["detected"] is True
        assert api.incident_counts() == {}

    def test_coverage_merges_current(self, config):
        result = MirrorAPI(config=config).coverage(
            "the sample size limits generalizability",
            current={"clinical_connection": True},
            reflection_submitted=True,
        )
        assert result["coverage"]["critical_thinking"] is True
        assert result["coverage"]["clinical_connection"] is True
        assert result["coverage"]["reflection"] is True
        assert "Critical Thinking" not in result["missing_areas"]

    def test_resolve_serializes_student(self, config):
        result = MirrorAPI(config=config).resolve(
            "jane.doe@csueastbay.edu Week 4 and Week 4 and Week 7", ROSTER
        )
        assert result["student"]["value"]["id"] == "s1"
        assert result["week"]["value"] == 4
        assert result["can_auto_confirm"] is True


class TestEndpoints:

    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"
        assert resp.json()["week_articles"] == 14

    def test_classify(self, client):
        resp = client.post("/classify", json={"text": "He keeps saying he'll make them pay"})
        assert resp.status_code == 200
        assert resp.json()["category"] == "others"

        counts = client.get("/incidents").json()["counts"]
        assert counts == {"self": 0, "others": 1}

    def test_coverage_messages(self, client):
        resp = client.post("/coverage", json={
            "messages": [{"role": "user", "content": "my patients in therapy"}],
        })
        assert resp.json()["coverage"]["clinical_connection"] is True

    def test_gaming(self, client):
        resp = client.post("/gaming", json={"message": "## Heading\n- a\n- b"})
        assert resp.json()["flagged"] is True
        assert resp.json()["structural_markers"] is True

    def test_resolve_nothing_recognizable(self, client):
        resp = client.post("/resolve", json={"text": "Some thoughts I had this afternoon.", "roster": ROSTER})
        body = resp.json()
        assert body["student"]["confidence"] == "none"
        assert body["week"]["confidence"] == "none"
        assert len(body["warnings"]) == 2
        assert body["can_auto_confirm"] is False

    def test_chat_turn_rules_only(self, client):
        resp = client.post("/chat/turn", json={"message": "the study data was limited"})
        body = resp.json()
        assert body["detection_mode"] == "RULES_ONLY"
        assert body["reply"] is None
        assert body["coverage"]["critical_thinking"] is True

    def test_chat_turn_crisis(self, client):
        body = client.post("/chat/turn", json={"message": "I can't go on"}).json()
        assert body["is_crisis_intervention"] is True
        assert body["detection_mode"] == "CRISIS"
        assert body["gaming"] is None

    def test_chat_turn_flag_count_carries(self, client):
        body = client.post("/chat/turn", json={
            "message": "## Heading\n- a\n- b",
            "prior_flags": 1,
        }).json()
        assert body["gaming_action"] == "warn"
        assert body["flag_count"] == 2

    def test_progress_exchanges(self, client):
        body = client.post("/progress/exchanges", json={"week": 3, "exchange_count": 9}).json()
        assert body["week_state"] == "in_progress"

        body = client.post("/progress/exchanges", json={
            "progress": body["progress"], "week": 3, "exchange_count": 10,
        }).json()
        assert body["week_state"] == "completed"
        assert body["stats"]["completed_weeks"] == 1
        assert body["midterm"]["unlocked"] is False

    def test_negative_exchange_count_rejected(self, client):
        resp = client.post("/progress/exchanges", json={"week": 3, "exchange_count": -1})
        assert resp.status_code == 422

    def test_progress_status(self, client):
        body = client.post("/progress/status", json={}).json()
        assert body["final"]["locked_message"] == "Complete the Midterm Project first"

    def test_status_with_offset_windows(self, config):
        config["submission_windows"] = {
            kind: {"start": "2026-01-01T00:00:00+00:00", "end": "2026-12-31T23:59:59+00:00", "label": kind}
            for kind in ("midterm", "final")
        }
        resp = TestClient(_build_app(config)).post("/progress/status", json={})
        assert resp.status_code == 200
        assert isinstance(resp.json()["midterm"]["window_open"], bool)

    def test_submit_locked_is_conflict(self, client):
        resp = client.post("/progress/submit", json={"kind": "midterm"})
        assert resp.status_code == 409
        assert "more weekly conversation" in resp.json()["detail"]

    def test_submit_unknown_kind(self, client):
        resp = client.post("/progress/submit", json={"kind": "quiz"})
        assert resp.status_code == 400

    def test_report(self, client):
        progress = client.post("/progress/exchanges", json={"week": 2, "exchange_count": 10}).json()["progress"]
        body = client.post("/report", json={"progress_records": [progress], "through_week": 4}).json()
        assert body["student_count"] == 1
        assert body["at_risk_count"] == 1
        assert body["incident_counts"] == {"self": 0, "others": 0}

    def test_report_bad_record(self, client):
        resp = client.post("/report", json={"progress_records": [{"weeks": [{"week": "x"}]}]})
        assert resp.status_code == 400
