"""
tests/test_course_tables.py
Static course knowledge: read-only defaults and JSON fixture loading.
"""

import json

import pytest

from mirror.knowledge.course_tables import (
    DEFAULT_WEEK_TABLE,
    RUBRIC_AREAS,
    load_week_table,
)
from mirror.models.record import AREA_IDS
from mirror.resolver.document_resolver import detect_week


class TestDefaults:

    def test_fourteen_weekly_articles(self):
        assert sorted(DEFAULT_WEEK_TABLE.articles) == list(range(2, 16))

    def test_tables_are_read_only(self):
        with pytest.raises(TypeError):
            DEFAULT_WEEK_TABLE.author_to_week["someone"] = 3

    def test_article_title_unknown_week(self):
        assert DEFAULT_WEEK_TABLE.article_title(1) == ""

    def test_rubric_areas_match_coverage_fields(self):
        assert tuple(a.id for a in RUBRIC_AREAS) == AREA_IDS


class TestLoadWeekTable:

    def test_none_returns_default(self):
        assert load_week_table(None) is DEFAULT_WEEK_TABLE

    def test_fixture_swaps_in(self, tmp_path):
        path = tmp_path / "weeks.json"
        path.write_text(json.dumps({
            "articles": {"3": {"title": "Sound Walls", "author": "Okafor"}},
            "author_to_week": {"Okafor": 3},
            "topic_to_week": {"sound walls": 3},
        }), encoding="utf-8")

        table = load_week_table(path)
        assert table.article_title(3) == "Sound Walls"
        match = detect_week("okafor argues otherwise", table)
        assert match.value == 3
        assert match.strategy == "article_author"
        # Calendar falls back to defaults
        assert table.midterm_week == 9

    def test_malformed_json_raises(self, tmp_path):
        path = tmp_path / "weeks.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ValueError):
            load_week_table(path)

    def test_wrong_shape_raises(self, tmp_path):
        path = tmp_path / "weeks.json"
        path.write_text(json.dumps({"articles": {"two": {"title": "x"}}}), encoding="utf-8")
        with pytest.raises(ValueError):
            load_week_table(path)

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(ValueError):
            load_week_table(tmp_path / "absent.json")
