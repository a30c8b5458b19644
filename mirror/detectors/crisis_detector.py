"""
mirror/detectors/crisis_detector.py
Crisis / harm language gate — pure Python, zero dependencies, fully offline.
Runs on every inbound chat message BEFORE anything is sent to a model.

Recall-biased: an unnecessary "are you okay?" costs far less than a
missed disclosure, so patterns lean toward overmatching everyday phrasing.
The lists are tuned by inspection, not against labeled data. Grow the
regression set in tests/test_crisis_detector.py before tightening anything.

Privacy: nothing in this module logs or stores message text.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from mirror.models.record import (
    CRISIS_NONE,
    CRISIS_OTHERS,
    CRISIS_SELF,
    ClassificationResult,
    CrisisIncident,
)

logger = logging.getLogger(__name__)

_CANT = r"(?:can'?t|cannot|can not)"

# ── PATTERN CATEGORIES ───────────────────────────────────────
# Order is precedence. Harm to others is checked first: a threat against
# a third party needs a different response than a self-harm disclosure.

CRISIS_PATTERNS: List[Tuple[str, str, List[re.Pattern]]] = [

    ('harm_to_others', CRISIS_OTHERS, [
        re.compile(r"\b(kill|murder|shoot|stab|attack)\s+(him|her|them|someone|somebody|people|everyone|everybody)\b", re.I),
        re.compile(r"\bbring (a|my) (gun|weapon|knife) to\b", re.I),
        re.compile(r"\b(make them pay|make him pay|make her pay|they'?ll regret|revenge)\b", re.I),
    ]),

    ('explicit_self_harm', CRISIS_SELF, [
        re.compile(r"\b(kill myself|suicide|suicidal|end my life|end it all|want to die|wanna die|rather be dead|better off dead)\b", re.I),
        re.compile(r"\b(self.?harm|cut myself|cutting myself|hurt myself|hurting myself)\b", re.I),
        re.compile(r"\b(overdose|take all my pills|swallow (all )?(the |my )?pills)\b", re.I),
        re.compile(r"\b(no reason to live|" + _CANT + r" go on|go on anymore|don'?t want to go on|" + _CANT + r" take it anymore)\b", re.I),
        re.compile(r"\b(goodbye forever|final goodbye|this is the end)\b", re.I),
    ]),

    ('veiled_self_harm', CRISIS_SELF, [
        re.compile(r"\b(won'?t be a problem (much longer|anymore|soon))\b", re.I),
        re.compile(r"\b(won'?t have to worry about me)\b", re.I),
        re.compile(r"\b(giving away my|who should i leave my)\b", re.I),
        re.compile(r"\b(no point in anything|nothing matters anymore)\b", re.I),
        re.compile(r"\b(everyone would be better off without me|better off without me)\b", re.I),
        re.compile(r"\b((i'?ve|i have) made my decision|made my decision about everything|made up my mind about everything)\b", re.I),
        re.compile(r"\b(finally found a way out|found my solution)\b", re.I),
    ]),
]

# ── SAFETY RESPONSES ─────────────────────────────────────────

CRISIS_RESPONSE = """I need to pause our academic discussion because I'm noticing some concerning themes in what you're sharing. Your safety matters more than any assignment.

**If you're in crisis or having thoughts of suicide:**
- **988 Suicide & Crisis Lifeline:** Call or text **988** (24/7)
- **Crisis Text Line:** Text **HOME** to **741741**
- **Campus Counseling Services:** contact your campus counseling center
- **Emergency:** 911

These feelings are real, and you deserve support from people trained to help. Would you like to talk about connecting with one of these resources?

Our conversation about the course material will be here whenever you're ready to return to it."""

HARM_RESPONSE = """I need to stop our conversation here. If you or someone else is in immediate danger, please contact:

- **Emergency Services:** 911
- **Campus Police:** contact your campus police department

I'm not able to continue this conversation, but trained professionals are available to help."""

IncidentHook = Callable[[CrisisIncident], None]


def _normalize(text: Optional[str]) -> str:
    # Curly apostrophes from phones and word processors
    return (text or '').replace('’', "'").replace('‘', "'")


def classify(text: Optional[str]) -> ClassificationResult:
    """
    Classify one message. Short-circuits on the first category that hits.
    Never raises; no match is the normal case.
    """
    body = _normalize(text)
    if not body.strip():
        return ClassificationResult(detected=False)

    for rule, category, patterns in CRISIS_PATTERNS:
        for pattern in patterns:
            if pattern.search(body):
                return ClassificationResult(detected=True, category=category, rule=rule)

    return ClassificationResult(detected=False, category=CRISIS_NONE)


def response_for(result: ClassificationResult) -> Optional[str]:
    """Fixed safety response for a detected result, None when clear."""
    if not result.detected:
        return None
    return HARM_RESPONSE if result.category == CRISIS_OTHERS else CRISIS_RESPONSE


def screen_message(
    text:         Optional[str],
    on_detected:  Optional[IncidentHook] = None,
    now:          Optional[datetime]     = None,
) -> ClassificationResult:
    """
    Classify and, on detection, hand an anonymized incident to on_detected.

    The hook receives category + timestamp only. A failing hook is logged
    and ignored: the safety response must go out regardless.
    """
    result = classify(text)
    if not result.detected or on_detected is None:
        return result

    incident = CrisisIncident(
        category    = result.category,
        detected_at = (now or datetime.now(timezone.utc)).isoformat(),
    )
    try:
        on_detected(incident)
    except Exception as e:
        logger.error(f"Crisis incident hook failed ({result.category}): {e}")
    else:
        logger.info(f"Crisis incident recorded: category={result.category}")
    return result
