"""
mirror/knowledge/course_tables.py
Static course knowledge used by the document resolver and the coverage
detector. Built once at import time and exposed read-only; tests and
deployments can swap in a JSON fixture via load_week_table().

Extend the tables freely. Dict order is match order: the first author or
topic that hits wins.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ArticleInfo:
    title:   str
    author:  str


@dataclass(frozen=True)
class WeekMetadataTable:
    """Everything the resolver knows about the course calendar."""
    articles:            Mapping[int, ArticleInfo]
    author_to_week:      Mapping[str, int]
    topic_to_week:       Mapping[str, int]
    midterm_indicators:  Tuple[str, ...]
    final_indicators:    Tuple[str, ...]
    midterm_week:        int = 9
    final_week:          int = 15
    first_week:          int = 1
    last_week:           int = 15

    def article_title(self, week: int) -> str:
        info = self.articles.get(week)
        return info.title if info else ''


# ── WEEKLY ARTICLES (weeks 2-15) ─────────────────────────────

WEEKLY_ARTICLES: Dict[int, ArticleInfo] = {
    2:  ArticleInfo("Evidence-Based Practice in Speech-Language Pathology", "Greenwell & Walsh"),
    3:  ArticleInfo("Acoustic Perturbation Measures Improve with Increasing Vocal Intensity", "Brockmann-Bauser et al."),
    4:  ArticleInfo("Sensitivity of Acoustic Voice Quality Measures in Simulated Reverberation", "Yousef"),
    5:  ArticleInfo("Quantitative and Descriptive Comparison of Four Acoustic Analysis Systems", "Burris et al."),
    6:  ArticleInfo("Predictors of Susceptibility to Noise and Speech Masking", "Lalonde & Werner"),
    7:  ArticleInfo("Effect of Contextual Information on Speech-in-Noise Perception", "Roushan et al."),
    8:  ArticleInfo("The Myth of Categorical Perception", "McMurray et al."),
    9:  ArticleInfo("Acoustic Measurement of Overall Voice Quality: A Meta-Analysis", "Maryn et al."),
    10: ArticleInfo("Meta-Analysis on the Validity of the Acoustic Voice Quality Index", "Barsties et al."),
    11: ArticleInfo("What Acoustic Studies Tell Us About Vowels in Developing and Disordered Speech", "Kent & Vorperian"),
    12: ArticleInfo("Production Benefits of Childhood Overhearing", "Knightly et al."),
    13: ArticleInfo("Consistency in Phonetic Categorization Predicts Speech-in-Noise Perception", "Rizzi & Bidelman"),
    14: ArticleInfo("The Impact of Nasalance on Cepstral Peak Prominence and HNR", "Madill et al."),
    15: ArticleInfo("Conducting High-Quality and Reliable Acoustic Analysis", "Murray et al."),
}

# Surnames are matched on word boundaries, case-insensitive.
AUTHOR_TO_WEEK: Dict[str, int] = {
    'greenwell':        2,
    'walsh':            2,
    'brockmann':        3,
    'brockmann-bauser': 3,
    'bauser':           3,
    'yousef':           4,
    'burris':           5,
    'lalonde':          6,
    'werner':           6,
    'roushan':          7,
    'mcmurray':         8,
    'maryn':            9,
    'barsties':         10,
    'kent':             11,
    'vorperian':        11,
    'knightly':         12,
    'rizzi':            13,
    'bidelman':         13,
    'madill':           14,
    'murray':           15,
}

TOPIC_TO_WEEK: Dict[str, int] = {
    'evidence-based practice':        2,
    'ebp':                            2,
    'perturbation':                   3,
    'jitter':                         3,
    'shimmer':                        3,
    'vocal intensity':                3,
    'reverberation':                  4,
    'room acoustics':                 4,
    'software comparison':            5,
    'praat':                          5,
    'acoustic analysis systems':      5,
    'noise masking':                  6,
    'speech masking':                 6,
    'babble':                         6,
    'speech-in-noise':                6,
    'context effects':                7,
    'contextual information':         7,
    'categorical perception':         8,
    'phoneme boundaries':             8,
    'voice quality':                  9,
    'cepstral peak prominence':       9,
    'cpp':                            9,
    'cpps':                           9,
    'avqi':                           10,
    'acoustic voice quality index':   10,
    'vowels':                         11,
    'formant':                        11,
    'developing speech':              11,
    'disordered speech':              11,
    'vot':                            12,
    'voice onset time':               12,
    'childhood overhearing':          12,
    'heritage language':              12,
    'phonetic categorization':        13,
    'categorization consistency':     13,
    'nasalance':                      14,
    'hnr':                            14,
    'harmonics-to-noise':             14,
    'high-quality acoustic analysis': 15,
    'reliable acoustic':              15,
}

# Matched as whole phrases, so 'act i' does not fire on 'act ii'.
MIDTERM_INDICATORS: Tuple[str, ...] = (
    'midterm',
    'act i',
    'act ii',
    'measurement confounds',
    'perception under noise',
    'synthesis paper',
    '2-3 page',
    '2-3 pages',
)

FINAL_INDICATORS: Tuple[str, ...] = (
    'final exam',
    'final paper',
    'act iii',
    'act iv',
    'central question',
    '4-5 page',
    '4-5 pages',
    'all four acts',
    'voice & phonation',
    'articulation & motor',
)


# ── RUBRIC AREAS ─────────────────────────────────────────────

@dataclass(frozen=True)
class RubricArea:
    id:           str
    name:         str
    description:  str
    points:       str


RUBRIC_AREAS: Tuple[RubricArea, ...] = (
    RubricArea('article_engagement',       'Article Engagement',
               'Research question, methods, findings',       '0-2 pts'),
    RubricArea('evidence_based_reasoning', 'Evidence-Based Reasoning',
               'Use specific data to support claims',        '0-2 pts'),
    RubricArea('critical_thinking',        'Critical Thinking',
               'Limitations, alternatives, confounds',       '0-2 pts'),
    RubricArea('clinical_connection',      'Clinical Connection',
               'Real clinical practice applications',        '0-2 pts'),
    RubricArea('reflection',               'Reflection',
               'Awareness of learning or thinking changes',  'Pass/Fail'),
)


def _freeze(
    articles:            Dict[int, ArticleInfo],
    author_to_week:      Dict[str, int],
    topic_to_week:       Dict[str, int],
    midterm_indicators:  Tuple[str, ...],
    final_indicators:    Tuple[str, ...],
    **calendar:          int,
) -> WeekMetadataTable:
    return WeekMetadataTable(
        articles           = MappingProxyType(dict(articles)),
        author_to_week     = MappingProxyType({k.lower(): v for k, v in author_to_week.items()}),
        topic_to_week      = MappingProxyType({k.lower(): v for k, v in topic_to_week.items()}),
        midterm_indicators = tuple(p.lower() for p in midterm_indicators),
        final_indicators   = tuple(p.lower() for p in final_indicators),
        **calendar,
    )


DEFAULT_WEEK_TABLE = _freeze(
    WEEKLY_ARTICLES, AUTHOR_TO_WEEK, TOPIC_TO_WEEK,
    MIDTERM_INDICATORS, FINAL_INDICATORS,
)


def load_week_table(path: Optional[Path]) -> WeekMetadataTable:
    """
    Load a week table from JSON. Returns DEFAULT_WEEK_TABLE when path is None.

    Shape:
        {"articles": {"2": {"title": "...", "author": "..."}},
         "author_to_week": {"greenwell": 2},
         "topic_to_week": {"ebp": 2},
         "midterm_indicators": [...], "final_indicators": [...],
         "midterm_week": 9, "final_week": 15}

    Missing optional keys fall back to the defaults. Raises ValueError on
    a malformed file: this is start-up configuration, not user input.
    """
    if path is None:
        return DEFAULT_WEEK_TABLE

    path = Path(path)
    try:
        data: Dict[str, Any] = json.loads(path.read_text(encoding='utf-8'))
    except (OSError, json.JSONDecodeError) as e:
        raise ValueError(f"Cannot read week table {path}: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Week table {path} must be a JSON object")

    try:
        articles = {
            int(week): ArticleInfo(title=str(a['title']), author=str(a.get('author', '')))
            for week, a in data.get('articles', {}).items()
        } or WEEKLY_ARTICLES
        author_to_week = {str(k): int(v) for k, v in data.get('author_to_week', AUTHOR_TO_WEEK).items()}
        topic_to_week  = {str(k): int(v) for k, v in data.get('topic_to_week', TOPIC_TO_WEEK).items()}
        calendar = {
            key: int(data[key])
            for key in ('midterm_week', 'final_week', 'first_week', 'last_week')
            if key in data
        }
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise ValueError(f"Malformed week table {path}: {e}") from e

    table = _freeze(
        articles, author_to_week, topic_to_week,
        tuple(data.get('midterm_indicators', MIDTERM_INDICATORS)),
        tuple(data.get('final_indicators', FINAL_INDICATORS)),
        **calendar,
    )
    logger.info(
        f"Week table loaded from {path}: {len(table.articles)} articles, "
        f"{len(table.author_to_week)} authors, {len(table.topic_to_week)} topics"
    )
    return table
