# propsignal/core/gemini_client.py
from __future__ import annotations
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict

import google.generativeai as genai
# google-api-core comes with google-generativeai
from google.api_core.exceptions import ResourceExhausted

from propsignal.core.redact import redact

logger = logging.getLogger(__name__)


def strip_fences(s: str) -> str:
    return (s or "").replace("```json", "").replace("```", "").strip()


@dataclass
class GeminiClient:
    api_key: str
    # Primary model used for planning and conversation classification.
    model: str = "gemini-1.5-pro"
    # Fallback model used when rate limited or quota-exhausted.
    fallback_model: str = "gemini-1.5-flash"

    def __post_init__(self) -> None:
        genai.configure(api_key=self.api_key)
        self._primary = genai.GenerativeModel(self.model)
        self._fallback = (
            genai.GenerativeModel(self.fallback_model)
            if self.fallback_model and self.fallback_model != self.model
            else self._primary
        )

    def _try_generate(self, prompt: str, *, temperature: float):
        """Try primary model; on quota (429) fall back once to fallback model."""
        config = {"temperature": temperature, "response_mime_type": "application/json"}
        try:
            return self._primary.generate_content(prompt, generation_config=config)
        except ResourceExhausted:
            if self._fallback is self._primary:
                raise
            return self._fallback.generate_content(prompt, generation_config=config)
        except Exception as e:
            # Heuristic: if looks like quota/rate limit, fall back once
            msg = str(e).lower()
            if ("429" in msg or "quota" in msg or "rate" in msg) and (self._fallback is not self._primary):
                return self._fallback.generate_content(prompt, generation_config=config)
            raise

    def text(self, prompt: str, *, temperature: float = 0.1) -> str:
        """
        Synchronous call used for JSON generation (planner, classifier).
        Returns "" on any failure so callers fall back to safe defaults.
        """
        try:
            resp = self._try_generate(prompt, temperature=temperature)
            # Prefer .text, fall back to first candidate if needed
            if getattr(resp, "text", None):
                return resp.text
            try:
                return resp.candidates[0].content.parts[0].text  # type: ignore[attr-defined]
            except Exception:
                return ""
        except Exception as ex:
            logger.warning("Gemini call failed: %s", redact(str(ex)))
            return ""

    def json(self, prompt: str, *, temperature: float = 0.1) -> Dict[str, Any]:
        s = self.text(prompt, temperature=temperature)
        try:
            data = json.loads(strip_fences(s))
        except (TypeError, ValueError):
            logger.warning("Gemini returned non-JSON output (%d chars)", len(s or ""))
            return {}
        return data if isinstance(data, dict) else {}
