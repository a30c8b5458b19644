"""
mirror/llm/base.py
Abstract base class for all model backends.
The tutor treats the model as an opaque service: evaluate(prompt, context)
returns text or None. To add a backend, subclass LLMAdapter and implement
is_available() and evaluate().
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional


class LLMAdapter(ABC):
    """
    All model backends implement this interface.
    The pipeline calls evaluate() and gets back text.
    The caller never knows which backend is running.
    """

    model: str = 'unknown'

    @abstractmethod
    def is_available(self) -> bool:
        """
        Returns True if the backend is reachable and ready.
        Called before each turn so the pipeline can fall back to a
        rule-only reply instead of hanging.
        """
        ...

    @abstractmethod
    def evaluate(self, prompt: str, context: Mapping[str, Any]) -> Optional[str]:
        """
        Run one model call.
        Returns None on any failure — caller falls back.
        Never raises — catch internally and return None.
        """
        ...

    def build_prompt(self, prompt: str, context: Mapping[str, Any]) -> str:
        """
        Shared prompt assembly. Adapters use this unless their backend
        takes structured chat messages.

        Recognized context keys: history (list of {'role','content'}),
        message, missing_areas, advisories.
        """
        parts: List[str] = [prompt.strip()] if prompt else []

        missing = context.get('missing_areas') or []
        if missing:
            parts.append('Rubric areas not yet explored: ' + ', '.join(missing))

        advisories = context.get('advisories') or []
        if advisories:
            parts.append('Advisory notes (do not quote to the student):\n'
                         + '\n'.join(f'- {a}' for a in advisories))

        history: List[Dict[str, str]] = list(context.get('history') or [])
        if history:
            lines = [f"{m.get('role', 'user').upper()}: {m.get('content', '')}" for m in history]
            parts.append('CONVERSATION SO FAR:\n' + '\n'.join(lines))

        message = context.get('message')
        if message:
            parts.append(f'STUDENT:\n{message}')

        return '\n\n'.join(parts)
