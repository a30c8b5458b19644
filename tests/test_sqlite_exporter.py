"""
tests/test_sqlite_exporter.py
Anonymized incident sink: schema, category filtering, counts, rollback.
"""

import sqlite3
from unittest.mock import patch

import pytest

from mirror.detectors.crisis_detector import screen_message
from mirror.exporters.sqlite_exporter import (
    SCHEMA_VERSION,
    SqliteIncidentSink,
    export,
    incident_counts,
)
from mirror.models.record import CrisisIncident


class TestExport:

    def test_creates_schema_and_rows(self, tmp_path):
        db = tmp_path / "incidents.db"
        export(db, [
            CrisisIncident("self",   "2026-03-01T10:00:00+00:00"),
            CrisisIncident("others", "2026-03-02T10:00:00+00:00"),
        ])
        assert incident_counts(db) == {"self": 1, "others": 1}

        conn = sqlite3.connect(str(db))
        try:
            version = conn.execute("SELECT schema_version FROM mirror_meta WHERE id = 1").fetchone()[0]
            columns = [row[1] for row in conn.execute("PRAGMA table_info(crisis_incidents)")]
        finally:
            conn.close()
        assert version == SCHEMA_VERSION
        assert columns == ["id", "category", "detected_at"]

    def test_invalid_category_filtered(self, tmp_path):
        db = tmp_path / "incidents.db"
        export(db, [CrisisIncident("none", "2026-03-01T10:00:00+00:00")])
        assert incident_counts(db) == {"self": 0, "others": 0}

    def test_appends_across_calls(self, tmp_path):
        db = tmp_path / "incidents.db"
        export(db, [CrisisIncident("self", "2026-03-01T10:00:00+00:00")])
        export(db, [CrisisIncident("self", "2026-03-05T10:00:00+00:00")])
        assert incident_counts(db)["self"] == 2

    def test_since_filter(self, tmp_path):
        db = tmp_path / "incidents.db"
        export(db, [
            CrisisIncident("self", "2026-03-01T10:00:00+00:00"),
            CrisisIncident("self", "2026-04-01T10:00:00+00:00"),
        ])
        assert incident_counts(db, since="2026-03-15")["self"] == 1

    def test_failure_reraises(self, tmp_path):
        db = tmp_path / "incidents.db"
        with patch("mirror.exporters.sqlite_exporter._write_meta", side_effect=sqlite3.OperationalError("boom")):
            with pytest.raises(sqlite3.OperationalError):
                export(db, [CrisisIncident("self", "2026-03-01T10:00:00+00:00")])
        assert incident_counts(db)["self"] == 0


class TestIncidentCounts:

    def test_missing_db_is_zero(self, tmp_path):
        assert incident_counts(tmp_path / "absent.db") == {"self": 0, "others": 0}


class TestSink:

    def test_sink_as_crisis_hook(self, tmp_path):
        db = tmp_path / "incidents.db"
        sink = SqliteIncidentSink(db)
        screen_message("I want to die", on_detected=sink)
        screen_message("what did the study find", on_detected=sink)
        assert incident_counts(db) == {"self": 1, "others": 0}

    def test_no_message_text_stored(self, tmp_path):
        db = tmp_path / "incidents.db"
        screen_message("I want to die", on_detected=SqliteIncidentSink(db))
        assert b"want to die" not in db.read_bytes()
