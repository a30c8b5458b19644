"""
mirror/detectors/gaming_detector.py
Submission-gaming heuristic — flags chat turns that look pasted or
machine-written. Advisory only: produces a signal and readable reasons,
never blocks. What to do about repeated flags is GamingMonitor's call.

Sub-signals:
  length_outlier      message far longer than this student's baseline
  structural_markers  markdown headers / bullets / bold in a plain chat
  lexical_markers     stock transition phrases typical of generated prose
  register_shift      sudden jump in vocabulary sophistication vs. the
                      student's own earlier messages (rolling baseline)

NOTE: thresholds are PLAUSIBLE defaults, not calibrated against labeled
submissions. All are overridable per call and via config.
"""

import logging
import re
from dataclasses import dataclass
from statistics import mean
from typing import List, Optional, Sequence

from mirror.models.record import GamingSignal

logger = logging.getLogger(__name__)

STOCK_PHRASES: List[str] = [
    'furthermore', 'moreover', 'additionally', 'in conclusion', 'in summary',
    'it is important to note', "it's important to note", 'it is worth noting',
    'plays a crucial role', 'plays a pivotal role', 'a testament to',
    'delve into', 'delves into', 'multifaceted', 'nuanced understanding',
    'in today\'s', 'navigating the complexities', 'underscores the importance',
    'overall, the', 'this highlights', 'shed light on', 'sheds light on',
]

_STRUCTURE_LINE = re.compile(r"^\s*(#{1,6}\s+\S|[-*•]\s+\S|\d+[.)]\s+\S)", re.M)
_HEADER_LINE    = re.compile(r"^\s*#{1,6}\s+\S", re.M)
_BOLD           = re.compile(r"\*\*[^*\n]+\*\*")
_WORD           = re.compile(r"[A-Za-z][A-Za-z'-]*")


@dataclass(frozen=True)
class GamingThresholds:
    length_ratio:          float = 4.0     # x baseline mean length
    min_outlier_chars:     int   = 400     # never flag shorter than this
    no_baseline_chars:     int   = 1500    # first messages: absolute cap
    min_baseline_messages: int   = 2
    structure_lines:       int   = 2       # bullet/numbered lines to flag
    stock_phrase_hits:     int   = 2       # distinct phrases to flag
    register_min_words:    int   = 25
    baseline_min_words:    int   = 20
    avg_word_len_delta:    float = 1.0
    long_word_ratio_delta: float = 0.08
    long_word_len:         int   = 9


DEFAULT_THRESHOLDS = GamingThresholds()


def _words(text: str) -> List[str]:
    return _WORD.findall(text)


def _register(words: Sequence[str], long_len: int):
    if not words:
        return 0.0, 0.0
    avg_len   = mean(len(w) for w in words)
    long_frac = sum(1 for w in words if len(w) >= long_len) / len(words)
    return avg_len, long_frac


def score(
    message:         Optional[str],
    prior_messages:  Optional[Sequence[str]] = None,
    thresholds:      GamingThresholds        = DEFAULT_THRESHOLDS,
) -> GamingSignal:
    """
    Score one student message against that student's earlier messages in
    the same conversation. prior_messages should hold student turns only.
    """
    text   = message or ''
    priors = [p for p in (prior_messages or []) if p and p.strip()]
    signal = GamingSignal()
    if not text.strip():
        return signal

    t = thresholds

    # ── LENGTH ──────────────────────────────────────────────
    if len(priors) >= t.min_baseline_messages:
        baseline_len = mean(len(p) for p in priors)
        limit = max(baseline_len * t.length_ratio, t.min_outlier_chars)
        if len(text) > limit:
            signal.length_outlier = True
            signal.reasons.append(
                f"Message is {len(text)} characters; this student's earlier "
                f"messages average {baseline_len:.0f}."
            )
    elif len(text) > t.no_baseline_chars:
        signal.length_outlier = True
        signal.reasons.append(
            f"Message is {len(text)} characters with no earlier messages to compare against."
        )

    # ── STRUCTURE ───────────────────────────────────────────
    structure_lines = len(_STRUCTURE_LINE.findall(text))
    has_header      = bool(_HEADER_LINE.search(text))
    bold_runs       = len(_BOLD.findall(text))
    if has_header or structure_lines >= t.structure_lines or bold_runs >= 2:
        signal.structural_markers = True
        signal.reasons.append(
            "Message uses document formatting (headers, bullet or numbered "
            "lists, bold text) that is unusual in a chat reply."
        )

    # ── LEXICAL ─────────────────────────────────────────────
    lower = text.lower().replace('’', "'")
    hits  = [p for p in STOCK_PHRASES if p in lower]
    signal.matched_phrases = hits
    if len(hits) >= t.stock_phrase_hits:
        signal.lexical_markers = True
        signal.reasons.append(
            f"Message contains {len(hits)} stock transition phrases: {', '.join(hits)}."
        )

    # ── REGISTER SHIFT ──────────────────────────────────────
    msg_words  = _words(text)
    base_words = [w for p in priors for w in _words(p)]
    if len(msg_words) >= t.register_min_words and len(base_words) >= t.baseline_min_words:
        msg_avg,  msg_long  = _register(msg_words,  t.long_word_len)
        base_avg, base_long = _register(base_words, t.long_word_len)
        if (msg_avg - base_avg >= t.avg_word_len_delta
                and msg_long - base_long >= t.long_word_ratio_delta):
            signal.register_shift = True
            signal.reasons.append(
                f"Vocabulary jumps from an average word length of {base_avg:.1f} "
                f"to {msg_avg:.1f} compared with this student's earlier messages."
            )

    if signal.flagged:
        logger.debug(
            f"Gaming signal: length={signal.length_outlier} "
            f"structure={signal.structural_markers} "
            f"lexical={signal.lexical_markers} register={signal.register_shift}"
        )
    return signal


# ── REPEATED-FLAG POLICY ─────────────────────────────────────

ACTION_NONE     = 'none'
ACTION_CLARIFY  = 'clarify'     # ask the student to explain in their own words
ACTION_WARN     = 'warn'        # remind of academic-integrity expectations
ACTION_ESCALATE = 'escalate'    # surface to the instructor


class GamingMonitor:
    """
    Per-conversation counter for flagged turns.
    First flag asks for clarification, second warns, third and later escalate.
    """

    def __init__(self, escalate_after: int = 3):
        self.escalate_after = escalate_after
        self.flag_count     = 0

    def observe(self, signal: GamingSignal) -> str:
        if not signal.flagged:
            return ACTION_NONE
        self.flag_count += 1
        if self.flag_count >= self.escalate_after:
            return ACTION_ESCALATE
        if self.flag_count == 1:
            return ACTION_CLARIFY
        return ACTION_WARN
