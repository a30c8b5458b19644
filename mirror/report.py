"""
mirror/report.py
Instructor class-progress summary.

Input: List[StudentProgress] (one per student, from the caller's store).
Output: structured report — per-week completion counts, at-risk students,
assessment unlock/submission counts — plus a hashed JSON export.
No conversation content. Student identifier is the progress record's name.
"""

import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from mirror.models.record import StudentProgress
from mirror.progress.tracker import (
    DEFAULT_SETTINGS,
    ProgressSettings,
    is_final_unlocked,
    is_midterm_unlocked,
    is_week_complete,
)

EXPORT_FORMAT_VERSION = "1.0"
AT_RISK_MISSING_WEEKS = 2


@dataclass
class WeekCompletion:
    week: int
    completed_count: int = 0
    in_progress_count: int = 0
    not_started_count: int = 0


@dataclass
class StudentSummary:
    student_identifier: str
    completed_weeks: int
    missing_weeks: List[int]
    at_risk: bool
    midterm_unlocked: bool
    midterm_submitted: bool
    final_unlocked: bool
    final_submitted: bool


@dataclass
class ClassProgressReport:
    student_count: int
    at_risk_count: int
    midterm_unlocked_count: int
    midterm_submitted_count: int
    final_unlocked_count: int
    final_submitted_count: int
    weeks: List[WeekCompletion]
    students: List[StudentSummary]
    through_week: int
    generated_at: str
    incident_counts: Dict[str, int] = field(default_factory=dict)


def build_report(
    progress_records: List[StudentProgress],
    through_week: Optional[int] = None,
    settings: ProgressSettings = DEFAULT_SETTINGS,
    incident_counts: Optional[Dict[str, int]] = None,
) -> ClassProgressReport:
    """
    Summarize a class.

    through_week: the latest week that has already happened. A student is
    at risk when 2+ required weeks up to that point are incomplete.
    Defaults to the last week required for the final.
    """
    required = sorted(settings.final_required_weeks)
    if through_week is None:
        through_week = max(required) if required else settings.total_weeks
    due_weeks = [w for w in required if w <= through_week]

    weeks = {w: WeekCompletion(week=w) for w in required}
    students: List[StudentSummary] = []

    for p in progress_records:
        for w in required:
            wp = next((x for x in p.weeks if x.week == w), None)
            if is_week_complete(p, w, settings):
                weeks[w].completed_count += 1
            elif wp is not None and wp.exchange_count > 0:
                weeks[w].in_progress_count += 1
            else:
                weeks[w].not_started_count += 1

        missing = [w for w in due_weeks if not is_week_complete(p, w, settings)]
        students.append(StudentSummary(
            student_identifier=p.student_name,
            completed_weeks=sum(1 for w in required if is_week_complete(p, w, settings)),
            missing_weeks=missing,
            at_risk=len(missing) >= AT_RISK_MISSING_WEEKS,
            midterm_unlocked=is_midterm_unlocked(p, settings),
            midterm_submitted=p.midterm.submitted,
            final_unlocked=is_final_unlocked(p, settings),
            final_submitted=p.final.submitted,
        ))

    return ClassProgressReport(
        student_count=len(students),
        at_risk_count=sum(1 for s in students if s.at_risk),
        midterm_unlocked_count=sum(1 for s in students if s.midterm_unlocked),
        midterm_submitted_count=sum(1 for s in students if s.midterm_submitted),
        final_unlocked_count=sum(1 for s in students if s.final_unlocked),
        final_submitted_count=sum(1 for s in students if s.final_submitted),
        weeks=[weeks[w] for w in required],
        students=students,
        through_week=through_week,
        generated_at=datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        incident_counts=dict(incident_counts or {}),
    )


def report_to_dict(report: ClassProgressReport) -> Dict:
    """Convert report to a JSON-serializable dict."""
    def _dataclass_to_dict(obj):
        if hasattr(obj, "__dataclass_fields__"):
            return {k: _dataclass_to_dict(getattr(obj, k)) for k in obj.__dataclass_fields__}
        if isinstance(obj, list):
            return [_dataclass_to_dict(x) for x in obj]
        if isinstance(obj, dict):
            return {k: _dataclass_to_dict(v) for k, v in obj.items()}
        return obj

    return _dataclass_to_dict(report)


def _content_hash(payload: Dict[str, Any]) -> str:
    """SHA-256 of canonical JSON serialization of payload (no hash field)."""
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def export_to_json(report: ClassProgressReport, indent: Optional[int] = 2) -> str:
    """JSON export with format version and an integrity hash over the payload."""
    payload = {
        "export_format_version": EXPORT_FORMAT_VERSION,
        "report": report_to_dict(report),
    }
    return json.dumps({**payload, "content_hash_sha256": _content_hash(payload)}, indent=indent)
