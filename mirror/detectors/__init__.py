"""
mirror/detectors — text heuristics run on every chat turn.

Privacy: no message content in logs. Categories, flags and counts only.
"""

from mirror.detectors.coverage_detector import detect_areas, merge_coverage
from mirror.detectors.crisis_detector import classify, screen_message
from mirror.detectors.gaming_detector import GamingMonitor, score

__all__ = [
    "classify",
    "screen_message",
    "detect_areas",
    "merge_coverage",
    "score",
    "GamingMonitor",
]
