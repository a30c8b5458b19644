"""
mirror/llm/ollama_adapter.py
Ollama backend adapter. Runs against a local Ollama server so tutoring
can be exercised without a hosted API key.
Supports any model pulled via `ollama pull <model>`.
"""

import json
import logging
import urllib.error
import urllib.request
from typing import Any, List, Mapping, Optional

from mirror.llm.base import LLMAdapter

logger = logging.getLogger(__name__)


class OllamaAdapter(LLMAdapter):

    def __init__(
        self,
        model:       str   = 'llama3.1:8b',
        host:        str   = 'http://localhost:11434',
        timeout_sec: int   = 120,
        temperature: float = 0.7,
        max_tokens:  int   = 600,
    ):
        self.model       = model
        self.host        = host.rstrip('/')
        self.timeout_sec = timeout_sec
        self.temperature = temperature
        self.max_tokens  = max_tokens

    # ── AVAILABILITY CHECK ───────────────────────────────────
    def is_available(self) -> bool:
        """Ping Ollama and confirm the configured model is pulled."""
        models = self.list_available_models()
        if not models:
            logger.warning(f"Ollama not reachable at {self.host} or no models pulled.")
            return False

        # Exact match or family prefix ("llama3.1" matches "llama3.1:8b")
        family = self.model.split(':')[0]
        available = any(m == self.model or m.startswith(family) for m in models)
        if not available:
            logger.warning(
                f"Model '{self.model}' not found in Ollama. "
                f"Available: {models}. Run: ollama pull {self.model}"
            )
        return available

    # ── EVALUATE ─────────────────────────────────────────────
    def evaluate(self, prompt: str, context: Mapping[str, Any]) -> Optional[str]:
        payload = json.dumps({
            'model':  self.model,
            'prompt': self.build_prompt(prompt, context),
            'stream': False,
            'options': {
                'temperature': self.temperature,
                'num_predict': self.max_tokens,
            },
        }).encode('utf-8')

        try:
            req = urllib.request.Request(
                f"{self.host}/api/generate",
                data    = payload,
                headers = {'Content-Type': 'application/json'},
                method  = 'POST',
            )
            with urllib.request.urlopen(req, timeout=self.timeout_sec) as resp:
                data = json.loads(resp.read().decode('utf-8'))
        except urllib.error.URLError as e:
            logger.error(f"Ollama request failed: {e}")
            return None
        except json.JSONDecodeError as e:
            logger.error(f"JSON decode failed in Ollama response: {e}")
            return None
        except Exception as e:
            logger.error(f"Ollama evaluate error: {e}")
            return None

        text = str(data.get('response', '') or '').strip()
        if not text:
            logger.warning("Ollama returned an empty response")
            return None
        return text

    # ── MODEL MANAGEMENT HELPERS ─────────────────────────────
    def list_available_models(self) -> List[str]:
        """Return list of locally available Ollama model names."""
        try:
            req = urllib.request.Request(f"{self.host}/api/tags", method='GET')
            with urllib.request.urlopen(req, timeout=5) as resp:
                data = json.loads(resp.read().decode())
            return [m['name'] for m in data.get('models', [])]
        except Exception as e:
            logger.debug(f"Ollama model listing failed: {e}")
            return []
