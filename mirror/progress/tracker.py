"""
mirror/progress/tracker.py
Per-student progress reducer and assessment unlock gates.

Week lifecycle:  not_started → in_progress → completed
  exchange_count never decreases; completed flips to True once
  exchange_count reaches the threshold and never flips back.

Two independent gates per assessment:
  content unlock     — enough weeks completed (final also needs the
                       midterm submitted). Grants drafting access.
  submission window  — the calendar interval in which submit is allowed.

All reducers return a new StudentProgress; inputs are never mutated.
Storage belongs to the caller: progress_to_dict / progress_from_dict
give a JSON-ready shape.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Tuple

from mirror.models.record import (
    SUBMISSION_FINAL,
    SUBMISSION_MIDTERM,
    AssessmentProgress,
    StudentProgress,
    SubmissionWindow,
    WeekProgress,
)

logger = logging.getLogger(__name__)

STATE_NOT_STARTED = 'not_started'
STATE_IN_PROGRESS = 'in_progress'
STATE_COMPLETED   = 'completed'

MIN_EXCHANGES_FOR_COMPLETION = 10
TOTAL_WEEKS                  = 15
MAX_PHASE                    = 6

MIDTERM_SECTIONS = ('starting_point', 'act_i', 'act_ii', 'why_it_matters')
FINAL_SECTIONS   = ('starting_point', 'act_i', 'act_ii', 'act_iii', 'act_iv', 'why_it_matters')


class SubmissionBlocked(ValueError):
    """Submit attempted while locked or outside the submission window."""


@dataclass(frozen=True)
class ProgressSettings:
    min_exchanges:           int                  = MIN_EXCHANGES_FOR_COMPLETION
    total_weeks:             int                  = TOTAL_WEEKS
    midterm_required_weeks:  Tuple[int, ...]      = tuple(range(2, 9))     # weeks 2-8
    final_required_weeks:    Tuple[int, ...]      = tuple(range(2, 16))    # weeks 2-15
    windows:                 Mapping[str, SubmissionWindow] = field(default_factory=lambda: {
        SUBMISSION_MIDTERM: SubmissionWindow(
            start = datetime(2026, 3, 17, 0, 0, 0),
            end   = datetime(2026, 3, 23, 23, 59, 59),
            label = 'Week 9 (March 17-23, 2026)',
        ),
        SUBMISSION_FINAL: SubmissionWindow(
            start = datetime(2026, 5, 11, 0, 0, 0),
            end   = datetime(2026, 5, 16, 23, 59, 59),
            label = 'Finals Week (May 11-16, 2026)',
        ),
    })


DEFAULT_SETTINGS = ProgressSettings()


def _now_iso(now: Optional[datetime]) -> str:
    return (now or datetime.now(timezone.utc)).isoformat()


def to_local_naive(value: datetime) -> datetime:
    """Windows are compared in naive local time; aware values are converted."""
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


def _window_and_now(
    kind:      str,
    now:       Optional[datetime],
    settings:  ProgressSettings,
) -> Tuple[SubmissionWindow, datetime]:
    window = settings.windows[_check_kind(kind)]
    window = SubmissionWindow(
        start = to_local_naive(window.start),
        end   = to_local_naive(window.end),
        label = window.label,
    )
    return window, to_local_naive(now or datetime.now())


def _check_kind(kind: str) -> str:
    if kind not in (SUBMISSION_MIDTERM, SUBMISSION_FINAL):
        raise ValueError(f"Unknown assessment: {kind!r} (expected 'midterm' or 'final')")
    return kind


# ── CONSTRUCTION ─────────────────────────────────────────────

def create_empty_progress(
    student_name:  str              = '',
    settings:      ProgressSettings = DEFAULT_SETTINGS,
) -> StudentProgress:
    return StudentProgress(
        student_name = student_name,
        weeks        = [WeekProgress(week=w) for w in range(1, settings.total_weeks + 1)],
        midterm      = AssessmentProgress(kind=SUBMISSION_MIDTERM),
        final        = AssessmentProgress(kind=SUBMISSION_FINAL),
    )


def _find_week(progress: StudentProgress, week: int) -> Optional[WeekProgress]:
    return next((w for w in progress.weeks if w.week == week), None)


# ── WEEK STATE ───────────────────────────────────────────────

def week_state(progress: StudentProgress, week: int) -> str:
    wp = _find_week(progress, week)
    if wp is None or (wp.exchange_count <= 0 and not wp.completed):
        return STATE_NOT_STARTED
    return STATE_COMPLETED if wp.completed else STATE_IN_PROGRESS


def is_week_complete(
    progress:  StudentProgress,
    week:      int,
    settings:  ProgressSettings = DEFAULT_SETTINGS,
) -> bool:
    wp = _find_week(progress, week)
    return wp is not None and wp.completed and wp.exchange_count >= settings.min_exchanges


def record_exchanges(
    progress:        StudentProgress,
    week:            int,
    exchange_count:  int,
    now:             Optional[datetime] = None,
    settings:        ProgressSettings   = DEFAULT_SETTINGS,
) -> StudentProgress:
    """
    Reducer for a conversation's exchange count.

    exchange_count is the caller's current total for that week. Lower
    values than already recorded are ignored; reaching the threshold
    completes the week. Unknown week numbers leave progress unchanged.
    """
    weeks = []
    found = False
    for wp in progress.weeks:
        if wp.week != week:
            weeks.append(wp)
            continue
        found     = True
        count     = max(wp.exchange_count, int(exchange_count or 0))
        completed = wp.completed or count >= settings.min_exchanges
        completed_at = wp.completed_at
        if completed and not wp.completed:
            completed_at = _now_iso(now)
            logger.info(f"Week {week} completed at {count} exchanges")
        weeks.append(replace(wp, exchange_count=count, completed=completed,
                             completed_at=completed_at))

    if not found:
        logger.warning(f"record_exchanges: week {week} not tracked — ignored")
        return progress
    return replace(progress, weeks=weeks)


# ── UNLOCK GATES ─────────────────────────────────────────────

def is_midterm_unlocked(progress: StudentProgress, settings: ProgressSettings = DEFAULT_SETTINGS) -> bool:
    return all(is_week_complete(progress, w, settings) for w in settings.midterm_required_weeks)


def is_final_unlocked(progress: StudentProgress, settings: ProgressSettings = DEFAULT_SETTINGS) -> bool:
    weeks_done = all(is_week_complete(progress, w, settings) for w in settings.final_required_weeks)
    return weeks_done and progress.midterm.submitted


def is_unlocked(progress: StudentProgress, kind: str, settings: ProgressSettings = DEFAULT_SETTINGS) -> bool:
    if _check_kind(kind) == SUBMISSION_MIDTERM:
        return is_midterm_unlocked(progress, settings)
    return is_final_unlocked(progress, settings)


def is_within_submission_window(
    kind:      str,
    now:       Optional[datetime] = None,
    settings:  ProgressSettings   = DEFAULT_SETTINGS,
) -> bool:
    window, now = _window_and_now(kind, now, settings)
    return window.start <= now <= window.end


def can_submit(
    progress:  StudentProgress,
    kind:      str,
    now:       Optional[datetime] = None,
    settings:  ProgressSettings   = DEFAULT_SETTINGS,
) -> bool:
    return (is_unlocked(progress, kind, settings)
            and is_within_submission_window(kind, now, settings))


# ── ASSESSMENT STATE ─────────────────────────────────────────

def _assessment(progress: StudentProgress, kind: str) -> AssessmentProgress:
    return progress.midterm if _check_kind(kind) == SUBMISSION_MIDTERM else progress.final


def _with_assessment(progress: StudentProgress, updated: AssessmentProgress) -> StudentProgress:
    if updated.kind == SUBMISSION_MIDTERM:
        return replace(progress, midterm=updated)
    return replace(progress, final=updated)


def save_section(
    progress:  StudentProgress,
    kind:      str,
    section:   str,
    content:   str,
    now:       Optional[datetime] = None,
) -> StudentProgress:
    allowed = MIDTERM_SECTIONS if _check_kind(kind) == SUBMISSION_MIDTERM else FINAL_SECTIONS
    if section not in allowed:
        raise ValueError(f"Unknown {kind} section: {section!r}")
    current  = _assessment(progress, kind)
    sections = dict(current.paper_sections)
    sections[section] = content
    return _with_assessment(progress, replace(
        current,
        started        = True,
        paper_sections = sections,
        last_saved_at  = _now_iso(now),
    ))


def advance_phase(progress: StudentProgress, kind: str) -> StudentProgress:
    current = _assessment(progress, kind)
    return _with_assessment(progress, replace(
        current,
        started       = True,
        current_phase = min(current.current_phase + 1, MAX_PHASE),
    ))


def submit_assessment(
    progress:  StudentProgress,
    kind:      str,
    now:       Optional[datetime] = None,
    settings:  ProgressSettings   = DEFAULT_SETTINGS,
) -> StudentProgress:
    """
    Latch `submitted`. Re-submitting is a no-op. Raises SubmissionBlocked
    when the assessment is locked or the window is closed.
    """
    current = _assessment(progress, kind)
    if current.submitted:
        return progress
    if not is_unlocked(progress, kind, settings):
        raise SubmissionBlocked(locked_message(progress, kind, settings))
    if not is_within_submission_window(kind, now, settings):
        raise SubmissionBlocked(submission_window_message(kind, now, settings))

    logger.info(f"{kind.capitalize()} submitted")
    return _with_assessment(progress, replace(
        current,
        started      = True,
        submitted    = True,
        submitted_at = _now_iso(now),
    ))


# ── STATUS HELPERS ───────────────────────────────────────────

def completion_stats(progress: StudentProgress, settings: ProgressSettings = DEFAULT_SETTINGS) -> Dict[str, int]:
    mid_done   = sum(1 for w in settings.midterm_required_weeks if is_week_complete(progress, w, settings))
    final_done = sum(1 for w in settings.final_required_weeks   if is_week_complete(progress, w, settings))
    return {
        'completed_weeks':      sum(1 for w in progress.weeks if w.completed),
        'total_required_weeks': len(settings.final_required_weeks),
        'midterm_progress':     round(mid_done / max(len(settings.midterm_required_weeks), 1) * 100),
        'final_progress':       round(final_done / max(len(settings.final_required_weeks), 1) * 100),
    }


def _week_span(weeks: Tuple[int, ...]) -> str:
    return f"Weeks {min(weeks)}-{max(weeks)}" if weeks else "required weeks"


def locked_message(progress: StudentProgress, kind: str, settings: ProgressSettings = DEFAULT_SETTINGS) -> str:
    if _check_kind(kind) == SUBMISSION_FINAL and not progress.midterm.submitted:
        return 'Complete the Midterm Project first'

    required  = settings.midterm_required_weeks if kind == SUBMISSION_MIDTERM else settings.final_required_weeks
    remaining = sum(1 for w in required if not is_week_complete(progress, w, settings))
    if remaining <= 0:
        return 'Ready to start!'
    plural = 's' if remaining > 1 else ''
    if kind == SUBMISSION_MIDTERM:
        return f"Complete {remaining} more weekly conversation{plural} ({_week_span(required)}) to unlock"
    return f"Complete {remaining} more weekly conversation{plural} to unlock"


def submission_window_message(
    kind:      str,
    now:       Optional[datetime] = None,
    settings:  ProgressSettings   = DEFAULT_SETTINGS,
) -> str:
    window, now = _window_and_now(kind, now, settings)
    if now < window.start:
        return f"Submissions open {window.label}. You can work on your draft now."
    if now > window.end:
        return 'Submission window has closed.'
    return f"Submission window is open until {window.end.strftime('%B %d, %Y')}."


# ── SERIALIZATION ────────────────────────────────────────────

def progress_to_dict(progress: StudentProgress) -> Dict[str, Any]:
    return asdict(progress)


def _assessment_from_dict(kind: str, data: Optional[Mapping[str, Any]]) -> AssessmentProgress:
    data = data or {}
    return AssessmentProgress(
        kind           = kind,
        started        = bool(data.get('started', False)),
        current_phase  = int(data.get('current_phase', 1) or 1),
        paper_sections = {str(k): str(v) for k, v in (data.get('paper_sections') or {}).items()},
        submitted      = bool(data.get('submitted', False)),
        submitted_at   = data.get('submitted_at'),
        last_saved_at  = data.get('last_saved_at'),
    )


def progress_from_dict(
    data:      Mapping[str, Any],
    settings:  ProgressSettings = DEFAULT_SETTINGS,
) -> StudentProgress:
    """Rebuild progress from stored JSON. Missing weeks are filled in empty."""
    stored = {
        int(w['week']): WeekProgress(
            week           = int(w['week']),
            completed      = bool(w.get('completed', False)),
            exchange_count = max(int(w.get('exchange_count', 0) or 0), 0),
            completed_at   = w.get('completed_at'),
        )
        for w in (data.get('weeks') or []) if 'week' in w
    }
    weeks = [stored.get(n, WeekProgress(week=n)) for n in range(1, settings.total_weeks + 1)]
    return StudentProgress(
        student_name = str(data.get('student_name', '') or ''),
        weeks        = weeks,
        midterm      = _assessment_from_dict(SUBMISSION_MIDTERM, data.get('midterm')),
        final        = _assessment_from_dict(SUBMISSION_FINAL,   data.get('final')),
    )
