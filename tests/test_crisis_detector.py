"""
tests/test_crisis_detector.py
Crisis gate: precedence, case-insensitivity, recall regression set and the
anonymized incident hook.

The phrase lists below are the regression set. Add a case here for every
missed or spurious detection before touching the patterns.
"""

from datetime import datetime, timezone

import pytest

from mirror.detectors.crisis_detector import (
    CRISIS_RESPONSE,
    HARM_RESPONSE,
    classify,
    response_for,
    screen_message,
)
from mirror.models.record import CRISIS_NONE, CRISIS_OTHERS, CRISIS_SELF, CrisisIncident


SELF_HARM_PHRASES = [
    "I don't think I can go on anymore",
    "honestly I want to die",
    "I've been thinking about suicide",
    "sometimes I hurt myself when it gets bad",
    "I can't take it anymore",
    "there's no reason to live",
    "I just wanna end it all",
    "everyone would be better off without me",
    "I won't be a problem much longer",
    "I've made my decision about everything",
    "I was thinking about who should I leave my books to",
]

HARM_TO_OTHERS_PHRASES = [
    "He keeps saying he'll make them pay",
    "I'm going to kill him",
    "someone said they'd bring a gun to class",
]

CLEAR_PHRASES = [
    "The sample size was only 58 participants.",
    "I think the jitter measures were unreliable at low intensity.",
    "Can we go on to the next question?",
    "The article ended with a call for more research.",
    "",
]


class TestClassify:

    @pytest.mark.parametrize("text", SELF_HARM_PHRASES)
    def test_self_harm_detected(self, text):
        result = classify(text)
        assert result.detected is True
        assert result.category == CRISIS_SELF

    @pytest.mark.parametrize("text", HARM_TO_OTHERS_PHRASES)
    def test_harm_to_others_detected(self, text):
        result = classify(text)
        assert result.detected is True
        assert result.category == CRISIS_OTHERS
        assert result.rule == "harm_to_others"

    @pytest.mark.parametrize("text", CLEAR_PHRASES)
    def test_ordinary_course_talk_is_clear(self, text):
        result = classify(text)
        assert result.detected is False
        assert result.category == CRISIS_NONE

    def test_none_input_is_clear(self):
        assert classify(None).detected is False

    def test_others_takes_precedence_regardless_of_position(self):
        self_first  = classify("I want to die and I'm going to kill them")
        other_first = classify("I'm going to kill them and then I want to die")
        assert self_first.category == CRISIS_OTHERS
        assert other_first.category == CRISIS_OTHERS

    def test_case_insensitive(self):
        assert classify("I want to DIE") == classify("i want to die")

    def test_curly_apostrophe_normalized(self):
        assert classify("I can’t go on").category == CRISIS_SELF

    def test_explicit_checked_before_veiled(self):
        result = classify("nothing matters anymore, I want to die")
        assert result.rule == "explicit_self_harm"

    def test_idempotent(self):
        text = "I don't think I can go on anymore"
        assert classify(text) == classify(text)


class TestResponseFor:

    def test_self_gets_crisis_resources(self):
        assert response_for(classify("I want to die")) == CRISIS_RESPONSE
        assert "988" in CRISIS_RESPONSE

    def test_others_gets_harm_response(self):
        assert response_for(classify("I will kill him")) == HARM_RESPONSE

    def test_clear_gets_nothing(self):
        assert response_for(classify("hello")) is None


class TestScreenMessage:

    def test_hook_receives_anonymized_incident(self):
        received = []
        now = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        screen_message("I want to die", on_detected=received.append, now=now)

        assert received == [CrisisIncident(category=CRISIS_SELF, detected_at=now.isoformat())]
        # Category and time only
        assert set(received[0].__dataclass_fields__) == {"category", "detected_at"}

    def test_hook_not_called_when_clear(self):
        received = []
        screen_message("The methods section was confusing", on_detected=received.append)
        assert received == []

    def test_failing_hook_does_not_block_detection(self, caplog):
        def broken(incident):
            raise RuntimeError("db down")

        result = screen_message("I want to die", on_detected=broken)
        assert result.detected is True
        assert result.category == CRISIS_SELF
        assert "hook failed" in caplog.text

    def test_message_text_never_logged(self, caplog):
        caplog.set_level("DEBUG")
        screen_message("I want to die", on_detected=lambda i: None)
        assert "want to die" not in caplog.text
