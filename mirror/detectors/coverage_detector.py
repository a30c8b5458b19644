"""
mirror/detectors/coverage_detector.py
Rubric-coverage detection — coarse lexical heuristic, not grading.

Scans the whole conversation so far for four of the five rubric areas and
merges the result into a running AreaCoverage. Reflection is never
inferred from text: it is set by the structured reflection submission.

Merge rule: old OR new per field. A later message without a keyword can
never erase coverage a student already demonstrated.
"""

import re
from dataclasses import asdict, replace
from typing import Dict, Iterable, List, Mapping, Optional, Union

from mirror.knowledge.course_tables import RUBRIC_AREAS
from mirror.models.record import AREA_IDS, AreaCoverage

# Minimum exchanges before the submit button is offered
MIN_EXCHANGES = 6

# ── KEYWORD CLUSTERS ─────────────────────────────────────────

AREA_PATTERNS: Dict[str, re.Pattern] = {
    # Singular forms only: "58 participants" in a sample-size remark is not
    # article engagement.
    'article_engagement': re.compile(
        r"\b(found|finding|study|research|method|methodology|participant|result|"
        r"author|paper|article|hypothesis)\b", re.I),
    'evidence_based_reasoning': re.compile(
        r"\b(data|evidence|percent|percentage|significant|significance|table|figure|"
        r"shows?|showed|demonstrates?|statistics?|statistical|p-value|correlat\w*|average)\b"
        r"|\d\s?%", re.I),
    'critical_thinking': re.compile(
        r"\b(limitations?|limits?|limited|confounds?|confounding|alternative|bias(ed)?|"
        r"sample size|generaliz\w*|validity|reliability|control(led)?|variables?)\b", re.I),
    'clinical_connection': re.compile(
        r"\b(clinic|clinical|clinician|patients?|client|therapy|treatment|practice|"
        r"real[- ]?world|session|assessment|intervention|slp|speech[- ]?language)\b", re.I),
}

Message = Mapping[str, str]


def _conversation_text(conversation: Union[str, Iterable[Message], None]) -> str:
    if conversation is None:
        return ''
    if isinstance(conversation, str):
        return conversation
    return ' '.join(str(m.get('content', '') or '') for m in conversation)


def detect_areas(conversation: Union[str, Iterable[Message], None]) -> Dict[str, bool]:
    """
    Partial coverage for the conversation so far.

    Accepts either the concatenated text or a list of {'role', 'content'}
    messages. The returned dict never contains 'reflection'.
    """
    text = _conversation_text(conversation)
    return {area: bool(pattern.search(text)) for area, pattern in AREA_PATTERNS.items()}


def merge_coverage(
    current:   AreaCoverage,
    detected:  Union[Mapping[str, bool], AreaCoverage, None],
) -> AreaCoverage:
    """Reducer: per-field OR. Unknown keys are ignored."""
    if detected is None:
        return current
    if isinstance(detected, AreaCoverage):
        detected = asdict(detected)
    return AreaCoverage(**{
        area: bool(getattr(current, area)) or bool(detected.get(area, False))
        for area in AREA_IDS
    })


def update_coverage(
    current:       AreaCoverage,
    conversation:  Union[str, Iterable[Message], None],
) -> AreaCoverage:
    return merge_coverage(current, detect_areas(conversation))


def record_reflection(current: AreaCoverage, submitted: bool = True) -> AreaCoverage:
    """Explicit reflection submission. Passing False never clears it."""
    return replace(current, reflection=current.reflection or bool(submitted))


def count_addressed(coverage: AreaCoverage) -> int:
    return sum(1 for area in AREA_IDS if getattr(coverage, area))


def missing_areas(coverage: AreaCoverage) -> List[str]:
    """Display names of areas not yet covered, in rubric order."""
    return [a.name for a in RUBRIC_AREAS if not getattr(coverage, a.id)]


def is_ready_to_submit(exchange_count: int, minimum: Optional[int] = None) -> bool:
    """Soft submission-readiness gate. Coverage is advisory and not required."""
    return exchange_count >= (MIN_EXCHANGES if minimum is None else minimum)
