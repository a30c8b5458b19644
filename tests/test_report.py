"""
tests/test_report.py
Instructor class-progress report: per-week counts, at-risk rule,
assessment counts and the hashed JSON export.
No conversation content in fixtures or output.
"""

import json

from mirror.progress.tracker import create_empty_progress, progress_from_dict, record_exchanges
from mirror.report import (
    AT_RISK_MISSING_WEEKS,
    EXPORT_FORMAT_VERSION,
    _content_hash,
    build_report,
    export_to_json,
    report_to_dict,
)


def _student(name, complete_weeks=(), partial_weeks=()):
    p = create_empty_progress(name)
    for w in complete_weeks:
        p = record_exchanges(p, w, 10)
    for w in partial_weeks:
        p = record_exchanges(p, w, 3)
    return p


class TestBuildReport:

    def test_week_counts(self):
        report = build_report([
            _student("a", complete_weeks=[2]),
            _student("b", partial_weeks=[2]),
            _student("c"),
        ])
        week2 = next(w for w in report.weeks if w.week == 2)
        assert (week2.completed_count, week2.in_progress_count, week2.not_started_count) == (1, 1, 1)
        assert [w.week for w in report.weeks] == list(range(2, 16))

    def test_completed_flag_below_threshold_counts_as_in_progress(self):
        stale = progress_from_dict({
            "student_name": "a",
            "weeks": [{"week": 2, "completed": True, "exchange_count": 4}],
        })
        report = build_report([stale], through_week=2)
        week2 = next(w for w in report.weeks if w.week == 2)
        assert (week2.completed_count, week2.in_progress_count) == (0, 1)
        assert report.students[0].missing_weeks == [2]
        assert report.students[0].completed_weeks == 0

    def test_at_risk_only_counts_due_weeks(self):
        on_track = _student("a", complete_weeks=[2, 3, 4])
        behind   = _student("b", complete_weeks=[2])
        report = build_report([on_track, behind], through_week=4)

        by_name = {s.student_identifier: s for s in report.students}
        assert by_name["a"].at_risk is False
        assert by_name["b"].missing_weeks == [3, 4]
        assert len(by_name["b"].missing_weeks) >= AT_RISK_MISSING_WEEKS
        assert by_name["b"].at_risk is True
        assert report.at_risk_count == 1

    def test_one_missing_week_is_not_at_risk(self):
        report = build_report([_student("a", complete_weeks=[2])], through_week=3)
        assert report.students[0].at_risk is False

    def test_assessment_counts(self):
        ready = _student("a", complete_weeks=range(2, 9))
        report = build_report([ready, _student("b")])
        assert report.midterm_unlocked_count == 1
        assert report.midterm_submitted_count == 0
        assert report.final_unlocked_count == 0

    def test_incident_counts_carried(self):
        report = build_report([], incident_counts={"self": 2, "others": 0})
        assert report.student_count == 0
        assert report.incident_counts == {"self": 2, "others": 0}


class TestExport:

    def test_report_to_dict_is_json_ready(self):
        data = report_to_dict(build_report([_student("a", complete_weeks=[2])]))
        assert json.loads(json.dumps(data)) == data
        assert data["students"][0]["student_identifier"] == "a"

    def test_export_hash_verifies(self):
        exported = json.loads(export_to_json(build_report([_student("a")])))
        assert exported["export_format_version"] == EXPORT_FORMAT_VERSION

        claimed = exported.pop("content_hash_sha256")
        assert _content_hash(exported) == claimed

    def test_tampering_changes_hash(self):
        exported = json.loads(export_to_json(build_report([_student("a")])))
        claimed = exported.pop("content_hash_sha256")
        exported["report"]["at_risk_count"] = 99
        assert _content_hash(exported) != claimed
