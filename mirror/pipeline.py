"""
mirror/pipeline.py
Chat-turn orchestrator. Runs the rule layer in front of the model:

  1. Crisis gate      — always runs; a hit short-circuits to a fixed
                        safety response and the model is never called.
  2. Coverage update  — monotonic merge over the whole conversation.
  3. Gaming signal    — advisory notes for the model and the instructor.
  4. Model reply      — skipped if no adapter or adapter unavailable.

Falls back to a rule-only turn (reply=None) when the model is down.
Privacy: logs carry modes and counts only, never message text.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

from mirror.detectors.coverage_detector import missing_areas, update_coverage
from mirror.detectors.crisis_detector import IncidentHook, response_for, screen_message
from mirror.detectors.gaming_detector import (
    ACTION_NONE,
    DEFAULT_THRESHOLDS,
    GamingMonitor,
    GamingThresholds,
    score,
)
from mirror.llm.base import LLMAdapter
from mirror.models.record import AreaCoverage, ClassificationResult, GamingSignal

logger = logging.getLogger(__name__)

MODE_CRISIS      = 'CRISIS'
MODE_AI          = 'AI'
MODE_AI_FALLBACK = 'AI_FALLBACK'
MODE_RULES_ONLY  = 'RULES_ONLY'

FALLBACK_REPLY = (
    "I'm having trouble reaching the tutor right now. Your progress is saved — "
    "please try sending your message again in a moment."
)


@dataclass
class ChatTurn:
    crisis:          ClassificationResult
    coverage:        AreaCoverage
    reply:           Optional[str]          = None
    gaming:          Optional[GamingSignal] = None
    gaming_action:   str                    = ACTION_NONE
    detection_mode:  str                    = MODE_RULES_ONLY
    model_used:      str                    = ''
    missing_areas:   List[str]              = field(default_factory=list)

    @property
    def is_crisis_intervention(self) -> bool:
        return self.crisis.detected


def _student_turns(history: Sequence[Mapping[str, str]]) -> List[str]:
    return [str(m.get('content', '')) for m in history if m.get('role') == 'user']


def run_chat_turn(
    message:        str,
    history:        Optional[Sequence[Mapping[str, str]]] = None,
    coverage:       Optional[AreaCoverage]                = None,
    llm:            Optional[LLMAdapter]                  = None,
    system_prompt:  str                                   = '',
    incident_hook:  Optional[IncidentHook]                = None,
    monitor:        Optional[GamingMonitor]               = None,
    thresholds:     GamingThresholds                      = DEFAULT_THRESHOLDS,
) -> ChatTurn:
    """
    Process one student message.

    history: earlier turns as {'role': 'user'|'assistant', 'content': str},
             NOT including `message`.
    coverage: running coverage for this conversation (empty if None).
    monitor: optional per-conversation GamingMonitor; its action is
             reported on the turn.
    """
    history  = list(history or [])
    coverage = coverage or AreaCoverage()

    # ── CRISIS GATE ──────────────────────────────────────────
    crisis = screen_message(message, on_detected=incident_hook)
    if crisis.detected:
        logger.info(f"Crisis gate tripped ({crisis.category}) — model not called")
        return ChatTurn(
            crisis         = crisis,
            coverage       = coverage,
            reply          = response_for(crisis),
            detection_mode = MODE_CRISIS,
            missing_areas  = missing_areas(coverage),
        )

    # ── COVERAGE ─────────────────────────────────────────────
    conversation = history + [{'role': 'user', 'content': message}]
    coverage     = update_coverage(coverage, conversation)
    missing      = missing_areas(coverage)

    # ── GAMING ───────────────────────────────────────────────
    gaming = score(message, _student_turns(history), thresholds)
    action = monitor.observe(gaming) if monitor is not None else ACTION_NONE

    turn = ChatTurn(
        crisis        = crisis,
        coverage      = coverage,
        gaming        = gaming,
        gaming_action = action,
        missing_areas = missing,
    )

    # ── MODEL ────────────────────────────────────────────────
    if llm is None:
        return turn
    if not llm.is_available():
        logger.warning("Model unavailable — returning rule-only turn.")
        return turn

    context: Dict[str, object] = {
        'history':       history,
        'message':       message,
        'missing_areas': missing,
        'advisories':    list(gaming.reasons),
    }
    reply = llm.evaluate(system_prompt, context)
    if reply is None:
        logger.warning("Model call failed — using fallback reply.")
        turn.reply          = FALLBACK_REPLY
        turn.detection_mode = MODE_AI_FALLBACK
        turn.model_used     = 'fallback'
        return turn

    turn.reply          = reply
    turn.detection_mode = MODE_AI
    turn.model_used     = getattr(llm, 'model', 'unknown')
    logger.info(
        f"Turn complete: mode={turn.detection_mode} "
        f"missing_areas={len(missing)} gaming_flagged={gaming.flagged}"
    )
    return turn
