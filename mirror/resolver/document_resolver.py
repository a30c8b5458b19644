"""
mirror/resolver/document_resolver.py
Matches an uploaded document's extracted text to a roster student, a
course week, and a submission type. Output goes to a human-confirmation
step — nothing here writes anywhere.

Each axis is an ordered list of (strategy, confidence) pairs evaluated
with early exit. To add a strategy, insert it into the list at the
priority it deserves; the resolver loop does not change.

Privacy: logs carry strategy names and confidence tiers only, never
names, emails or document text.
"""

import logging
import re
from collections import Counter
from typing import Any, Callable, Iterable, List, Mapping, Optional, Sequence, Tuple

from mirror.knowledge.course_tables import DEFAULT_WEEK_TABLE, WeekMetadataTable
from mirror.models.record import (
    CONFIDENCE_HIGH,
    CONFIDENCE_LOW,
    CONFIDENCE_MEDIUM,
    CONFIDENCE_NONE,
    SUBMISSION_FINAL,
    SUBMISSION_MIDTERM,
    SUBMISSION_WEEKLY,
    DocumentDetectionResult,
    EntityMatch,
    RosterEntry,
)

logger = logging.getLogger(__name__)

PREVIEW_CHARS     = 1000
MIN_NAME_PART_LEN = 3
TITLE_WORD_MIN    = 5        # significant title words are longer than 4 chars

_EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
_WEEK_PATTERN  = re.compile(r"\bweek\s*(\d{1,2})(?!\d)", re.I)   # "Week 3rd" counts
_TITLE_WORD    = re.compile(r"[a-z][a-z'-]*")


def _contains_phrase(lower_text: str, phrase: str) -> bool:
    """Whole-phrase match: 'act i' must not fire inside 'act ii'."""
    return re.search(r"(?<!\w)" + re.escape(phrase) + r"(?!\w)", lower_text) is not None


# ═══════════════════════════════════════════════════════════════
# STUDENT
# ═══════════════════════════════════════════════════════════════

def _by_email(lower: str, text: str, roster: Sequence[RosterEntry]) -> Optional[RosterEntry]:
    for s in roster:
        email = (s.email or '').strip().lower()
        if email and email in lower:
            return s
    return None


def _by_full_name(lower: str, text: str, roster: Sequence[RosterEntry]) -> Optional[RosterEntry]:
    for s in roster:
        name = ' '.join((s.name or '').lower().split())
        if name and name in lower:
            return s
    return None


def _by_first_and_last(lower: str, text: str, roster: Sequence[RosterEntry]) -> Optional[RosterEntry]:
    for s in roster:
        parts = (s.name or '').lower().split()
        if len(parts) < 2:
            continue
        first, last = parts[0], parts[-1]
        if len(first) < MIN_NAME_PART_LEN or len(last) < MIN_NAME_PART_LEN:
            continue
        if _contains_phrase(lower, first) and _contains_phrase(lower, last):
            return s
    return None


def _by_extracted_email(lower: str, text: str, roster: Sequence[RosterEntry]) -> Optional[RosterEntry]:
    by_email = {(s.email or '').strip().lower(): s for s in roster if s.email}
    for found in _EMAIL_PATTERN.findall(text):
        match = by_email.get(found.lower())
        if match is not None:
            return match
    return None


StudentStrategy = Callable[[str, str, Sequence[RosterEntry]], Optional[RosterEntry]]

STUDENT_STRATEGIES: List[Tuple[str, StudentStrategy, str]] = [
    ('email',           _by_email,           CONFIDENCE_HIGH),
    ('exact_name',      _by_full_name,       CONFIDENCE_HIGH),
    ('partial_name',    _by_first_and_last,  CONFIDENCE_MEDIUM),
    ('extracted_email', _by_extracted_email, CONFIDENCE_HIGH),
]


def detect_student(text: Optional[str], roster: Optional[Iterable[RosterEntry]]) -> EntityMatch:
    text   = text or ''
    lower  = text.lower()
    roster = list(roster or [])
    if not text.strip() or not roster:
        return EntityMatch()

    for name, strategy, confidence in STUDENT_STRATEGIES:
        student = strategy(lower, text, roster)
        if student is not None:
            logger.debug(f"Student matched via {name} ({confidence})")
            return EntityMatch(value=student, confidence=confidence, strategy=name)
    return EntityMatch()


# ═══════════════════════════════════════════════════════════════
# WEEK
# ═══════════════════════════════════════════════════════════════

def _by_week_number(lower: str, table: WeekMetadataTable) -> Optional[int]:
    """Plurality vote over every 'Week N'; ties go to the first seen."""
    found = [
        int(m.group(1)) for m in _WEEK_PATTERN.finditer(lower)
        if table.first_week <= int(m.group(1)) <= table.last_week
    ]
    if not found:
        return None
    counts = Counter(found)
    first_seen = list(dict.fromkeys(found))
    return max(first_seen, key=lambda week: counts[week])


def _by_author(lower: str, table: WeekMetadataTable) -> Optional[int]:
    for author, week in table.author_to_week.items():
        if re.search(r"\b" + re.escape(author) + r"\b", lower):
            return week
    return None


def _significant_words(title: str) -> List[str]:
    words = _TITLE_WORD.findall(title.lower())
    return list(dict.fromkeys(w for w in words if len(w) >= TITLE_WORD_MIN))


def _by_title_overlap(lower: str, table: WeekMetadataTable) -> Optional[int]:
    for week, article in table.articles.items():
        words = _significant_words(article.title)
        hits  = sum(1 for w in words if w in lower)
        needed = 3 if len(words) > 3 else 2
        if hits >= needed:
            return week
    return None


def _by_topic(lower: str, table: WeekMetadataTable) -> Optional[int]:
    for topic, week in table.topic_to_week.items():
        if _contains_phrase(lower, topic):
            return week
    return None


WeekStrategy = Callable[[str, WeekMetadataTable], Optional[int]]

WEEK_STRATEGIES: List[Tuple[str, WeekStrategy, str]] = [
    ('week_number',    _by_week_number,   CONFIDENCE_HIGH),
    ('article_author', _by_author,        CONFIDENCE_HIGH),
    ('article_title',  _by_title_overlap, CONFIDENCE_HIGH),
    ('article_topic',  _by_topic,         CONFIDENCE_MEDIUM),
]


def detect_week(text: Optional[str], table: WeekMetadataTable = DEFAULT_WEEK_TABLE) -> EntityMatch:
    lower = (text or '').lower()
    if not lower.strip():
        return EntityMatch()

    for name, strategy, confidence in WEEK_STRATEGIES:
        week = strategy(lower, table)
        if week is not None:
            logger.debug(f"Week {week} matched via {name} ({confidence})")
            return EntityMatch(
                value      = week,
                confidence = confidence,
                strategy   = name,
                detail     = table.article_title(week),
            )
    return EntityMatch()


# ═══════════════════════════════════════════════════════════════
# SUBMISSION TYPE
# ═══════════════════════════════════════════════════════════════

def detect_submission_type(
    text:   Optional[str],
    table:  WeekMetadataTable = DEFAULT_WEEK_TABLE,
) -> EntityMatch:
    """
    Two-bucket vote. Two or more indicator phrases → high; exactly one →
    medium; otherwise weekly at medium. Final is checked before midterm
    so a document that names both acts sets resolves to the later paper.
    """
    lower = (text or '').lower()
    final_hits   = sum(1 for p in table.final_indicators   if _contains_phrase(lower, p))
    midterm_hits = sum(1 for p in table.midterm_indicators if _contains_phrase(lower, p))

    if final_hits >= 2:
        return EntityMatch(SUBMISSION_FINAL,   CONFIDENCE_HIGH,   'indicator_vote')
    if midterm_hits >= 2:
        return EntityMatch(SUBMISSION_MIDTERM, CONFIDENCE_HIGH,   'indicator_vote')
    if final_hits == 1:
        return EntityMatch(SUBMISSION_FINAL,   CONFIDENCE_MEDIUM, 'indicator_vote')
    if midterm_hits == 1:
        return EntityMatch(SUBMISSION_MIDTERM, CONFIDENCE_MEDIUM, 'indicator_vote')
    return EntityMatch(SUBMISSION_WEEKLY, CONFIDENCE_MEDIUM, 'default')


# ═══════════════════════════════════════════════════════════════
# FULL RESOLUTION
# ═══════════════════════════════════════════════════════════════

def _axis_warnings(label: str, match: EntityMatch) -> List[str]:
    if match.confidence == CONFIDENCE_NONE:
        return [f"Could not identify {label} from document. Please select manually."]
    if match.confidence in (CONFIDENCE_MEDIUM, CONFIDENCE_LOW):
        return [f"{label.capitalize()} match is uncertain ({match.strategy}). Please verify."]
    return []


def resolve(
    text:    Optional[str],
    roster:  Optional[Iterable[RosterEntry]],
    table:   WeekMetadataTable = DEFAULT_WEEK_TABLE,
) -> DocumentDetectionResult:
    """
    Resolve all three axes, then cross-check them. Warnings only downgrade
    the result to needing review; they never block it.
    """
    text = text or ''
    student         = detect_student(text, roster)
    week            = detect_week(text, table)
    submission_type = detect_submission_type(text, table)

    warnings: List[str] = []
    warnings += _axis_warnings('student', student)
    warnings += _axis_warnings('week', week)

    if (submission_type.value == SUBMISSION_MIDTERM
            and week.value is not None and week.value != table.midterm_week):
        warnings.append(
            f"Document appears to be a midterm but detected week is not {table.midterm_week}."
        )
    if (submission_type.value == SUBMISSION_FINAL
            and week.value is not None and week.value != table.final_week):
        warnings.append(
            "Document appears to be a final exam but detected week is not from finals week."
        )

    logger.info(
        f"Document resolved: student={student.confidence}/{student.strategy or '-'} "
        f"week={week.confidence}/{week.strategy or '-'} "
        f"type={submission_type.value}/{submission_type.confidence} "
        f"warnings={len(warnings)}"
    )

    return DocumentDetectionResult(
        student           = student,
        week              = week,
        submission_type   = submission_type,
        warnings          = warnings,
        extracted_preview = text[:PREVIEW_CHARS],
    )


def can_auto_confirm(result: DocumentDetectionResult) -> bool:
    """The only place the three axes become one accept/reject decision."""
    return (
        result.student.confidence == CONFIDENCE_HIGH
        and result.week.confidence == CONFIDENCE_HIGH
        and not result.warnings
    )


def roster_from_dicts(rows: Iterable[Mapping[str, Any]]) -> List[RosterEntry]:
    """Build roster entries from store rows; rows without an id are skipped."""
    roster: List[RosterEntry] = []
    for row in rows or []:
        if not row.get('id'):
            continue
        roster.append(RosterEntry(
            id      = str(row['id']),
            name    = str(row.get('name') or ''),
            email   = str(row.get('email') or ''),
            section = str(row.get('section') or ''),
        ))
    return roster
