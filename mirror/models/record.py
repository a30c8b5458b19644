"""
mirror/models/record.py
Shared dataclass schema. All detectors, the resolver, the progress
tracker and the API use these types. Do not add logic here — data only.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

# ── CONFIDENCE TIERS ─────────────────────────────────────────
CONFIDENCE_HIGH   = 'high'
CONFIDENCE_MEDIUM = 'medium'
CONFIDENCE_LOW    = 'low'
CONFIDENCE_NONE   = 'none'

# ── CRISIS CATEGORIES ────────────────────────────────────────
CRISIS_SELF   = 'self'
CRISIS_OTHERS = 'others'
CRISIS_NONE   = 'none'

# ── SUBMISSION TYPES ─────────────────────────────────────────
SUBMISSION_WEEKLY  = 'weekly'
SUBMISSION_MIDTERM = 'midterm'
SUBMISSION_FINAL   = 'final'

# ── RUBRIC AREA IDS ──────────────────────────────────────────
AREA_IDS = (
    'article_engagement',
    'evidence_based_reasoning',
    'critical_thinking',
    'clinical_connection',
    'reflection',
)


@dataclass(frozen=True)
class ClassificationResult:
    """Crisis detector output for one message. Never merged."""
    detected:  bool
    category:  str  = CRISIS_NONE     # self / others / none
    rule:      str  = ''              # harm_to_others / explicit_self_harm / veiled_self_harm


@dataclass(frozen=True)
class CrisisIncident:
    """Anonymized incident row. Category and time only — no content, no identity."""
    category:     str
    detected_at:  str                 # ISO-8601


@dataclass(frozen=True)
class AreaCoverage:
    """Per-conversation rubric coverage. Only ever gains True values."""
    article_engagement:       bool = False
    evidence_based_reasoning: bool = False
    critical_thinking:        bool = False
    clinical_connection:      bool = False
    reflection:               bool = False


@dataclass(frozen=True)
class RosterEntry:
    id:       str
    name:     str
    email:    str
    section:  str = ''


@dataclass(frozen=True)
class EntityMatch:
    """One resolved axis of an uploaded document (student, week or type)."""
    value:       Any  = None          # RosterEntry / week number / submission type
    confidence:  str  = CONFIDENCE_NONE
    strategy:    str  = ''            # e.g. email / exact_name / week_number / indicator_vote
    detail:      str  = ''            # e.g. article title for a week match


@dataclass
class DocumentDetectionResult:
    student:            EntityMatch
    week:               EntityMatch
    submission_type:    EntityMatch
    warnings:           List[str]  = field(default_factory=list)
    extracted_preview:  str        = ''


@dataclass
class GamingSignal:
    """Advisory output of the submission-gaming heuristic. Never a block."""
    length_outlier:      bool       = False
    structural_markers:  bool       = False
    lexical_markers:     bool       = False
    register_shift:      bool       = False
    matched_phrases:     List[str]  = field(default_factory=list)
    reasons:             List[str]  = field(default_factory=list)

    @property
    def flagged(self) -> bool:
        return (self.length_outlier or self.structural_markers
                or self.lexical_markers or self.register_shift)


@dataclass(frozen=True)
class SubmissionWindow:
    start:  datetime
    end:    datetime
    label:  str = ''


@dataclass
class WeekProgress:
    week:            int
    completed:       bool           = False
    exchange_count:  int            = 0
    completed_at:    Optional[str]  = None


@dataclass
class AssessmentProgress:
    """Midterm or final paper state. `submitted` is a one-way latch."""
    kind:            str                      # midterm / final
    started:         bool            = False
    current_phase:   int             = 1
    paper_sections:  Dict[str, str]  = field(default_factory=dict)
    submitted:       bool            = False
    submitted_at:    Optional[str]   = None
    last_saved_at:   Optional[str]   = None


@dataclass
class StudentProgress:
    student_name:  str
    weeks:         List[WeekProgress]
    midterm:       AssessmentProgress
    final:         AssessmentProgress
