"""
mirror — Reasoning Mirror rule layer.

Deterministic checks that sit in front of a Socratic tutoring model:
crisis gate, rubric coverage, submission-gaming signal, uploaded document
resolution and per-student progress gates.
"""

__version__ = "1.0.0"
