"""
tests/test_coverage_detector.py
Rubric coverage: keyword detection per area, monotonic merge, explicit
reflection and the soft submit gate.
"""

from dataclasses import asdict

import pytest

from mirror.detectors.coverage_detector import (
    MIN_EXCHANGES,
    count_addressed,
    detect_areas,
    is_ready_to_submit,
    merge_coverage,
    missing_areas,
    record_reflection,
    update_coverage,
)
from mirror.models.record import AREA_IDS, AreaCoverage


ALL_TRUE = AreaCoverage(**{a: True for a in AREA_IDS})


class TestDetectAreas:

    def test_sample_size_sets_critical_thinking(self):
        detected = detect_areas(
            "the sample size was only 58 participants, which limits generalizability"
        )
        assert detected["critical_thinking"] is True

    def test_percent_counts_as_evidence(self):
        assert detect_areas("about 40% of them improved")["evidence_based_reasoning"] is True

    def test_clinical_language(self):
        assert detect_areas("I would use this in a therapy session with a client")["clinical_connection"] is True

    def test_article_language(self):
        assert detect_areas("The authors found a clear effect")["article_engagement"] is True
        assert detect_areas("one participant dropped out")["article_engagement"] is True

    def test_message_list_joins_contents(self):
        detected = detect_areas([
            {"role": "user", "content": "The study had limitations."},
            {"role": "assistant", "content": "Which ones?"},
            {"role": "user", "content": "It matters for my patients."},
        ])
        assert detected["critical_thinking"] is True
        assert detected["clinical_connection"] is True

    def test_reflection_never_inferred(self):
        detected = detect_areas("I reflected a lot and my thinking changed")
        assert "reflection" not in detected

    def test_empty_and_none(self):
        assert not any(detect_areas("").values())
        assert not any(detect_areas(None).values())

    def test_plain_chat_detects_nothing(self):
        assert not any(detect_areas("ok sure, sounds good").values())


class TestMergeCoverage:

    def test_scenario_other_fields_keep_previous_values(self):
        previous = AreaCoverage(clinical_connection=True)
        merged = update_coverage(
            previous,
            "the sample size was only 58 participants, which limits generalizability",
        )
        assert merged == AreaCoverage(critical_thinking=True, clinical_connection=True)

    def test_sample_size_remark_is_critical_thinking_only(self):
        merged = update_coverage(
            AreaCoverage(),
            "the sample size was only 58 participants, which limits generalizability",
        )
        assert merged == AreaCoverage(critical_thinking=True)

    def test_never_regresses(self):
        merged = merge_coverage(ALL_TRUE, {a: False for a in AREA_IDS})
        assert merged == ALL_TRUE

    @pytest.mark.parametrize("update", [
        None,
        {},
        AreaCoverage(),
        {"unknown_area": True},
        "plain text with no keywords",
    ])
    def test_no_input_clears_a_field(self, update):
        start = AreaCoverage(article_engagement=True, reflection=True)
        if isinstance(update, str):
            merged = update_coverage(start, update)
        else:
            merged = merge_coverage(start, update)
        assert merged.article_engagement is True
        assert merged.reflection is True

    def test_sequence_of_merges_is_monotonic(self):
        coverage = AreaCoverage()
        seen = set()
        for text in ["the study found", "ok", "data shows", "", "my clients", "sure"]:
            coverage = update_coverage(coverage, text)
            now_true = {a for a, v in asdict(coverage).items() if v}
            assert seen <= now_true
            seen = now_true

    def test_merge_accepts_area_coverage(self):
        merged = merge_coverage(AreaCoverage(), AreaCoverage(critical_thinking=True))
        assert merged.critical_thinking is True

    def test_input_not_mutated(self):
        start = AreaCoverage()
        update_coverage(start, "the study data shows limitations for patients")
        assert start == AreaCoverage()


class TestReflectionAndStatus:

    def test_record_reflection(self):
        assert record_reflection(AreaCoverage()).reflection is True

    def test_record_reflection_false_never_clears(self):
        assert record_reflection(AreaCoverage(reflection=True), submitted=False).reflection is True

    def test_count_addressed(self):
        assert count_addressed(AreaCoverage()) == 0
        assert count_addressed(ALL_TRUE) == 5

    def test_missing_areas_in_rubric_order(self):
        missing = missing_areas(AreaCoverage(evidence_based_reasoning=True))
        assert missing == [
            "Article Engagement",
            "Critical Thinking",
            "Clinical Connection",
            "Reflection",
        ]
        assert missing_areas(ALL_TRUE) == []

    def test_ready_to_submit_threshold(self):
        assert is_ready_to_submit(MIN_EXCHANGES - 1) is False
        assert is_ready_to_submit(MIN_EXCHANGES) is True
        assert is_ready_to_submit(3, minimum=3) is True
