"""Adapters for the external NLU services (planner + conversation classifier).

Both are pure function boundaries: the chat service only depends on the
`QueryPlanner` / `IntentClassifier` protocols, so tests stub them.
"""
from __future__ import annotations
import json
import logging
from typing import Any, Dict, List, Optional, Protocol

from pydantic import ValidationError

from propsignal.core.gemini_client import GeminiClient
from propsignal.core.models import ChatMessage, ConversationIntent, UserContext
from propsignal.core.ttl_cache import TTLCache, key_for

logger = logging.getLogger(__name__)


class QueryPlanner(Protocol):
    def plan(self, messages: List[ChatMessage], ctx: UserContext) -> Dict[str, Any]: ...


class IntentClassifier(Protocol):
    def classify(self, utterance: str, last_assistant: str, ctx: UserContext) -> ConversationIntent: ...


def fallback_intent() -> ConversationIntent:
    return ConversationIntent(
        type="new_question",
        confidence=50,
        reasoning="Failed to analyze, defaulting to new question",
        shouldClearContext=False,
    )


def _context_hints(ctx: UserContext) -> str:
    hints = ctx.model_dump(include={"suburb", "lga", "state", "propertyType", "purpose", "budget"}, exclude_none=True)
    return json.dumps(hints) if hints else "(none)"


class GeminiPlanner:
    def __init__(self, gemini: GeminiClient, cache: Optional[TTLCache[Dict[str, Any]]] = None):
        self.gemini = gemini
        self.cache = cache if cache is not None else TTLCache(ttl=60 * 60 * 24)

    def plan(self, messages: List[ChatMessage], ctx: UserContext) -> Dict[str, Any]:
        from propsignal.prompts.versioned.v1.planner import PLANNER_PROMPT

        focus = messages[-1].content if messages else ""
        convo = [m.model_dump() for m in messages[-8:]]
        hints = _context_hints(ctx)
        # Same conversation tail + same hints -> same plan
        k = key_for(json.dumps({"m": convo, "h": hints}, sort_keys=True))
        cached = self.cache.get(k)
        if cached is not None:
            logger.debug("planner cache hit")
            return dict(cached)

        raw = self.gemini.json(PLANNER_PROMPT.format(CONTEXT=hints, MESSAGES=json.dumps(convo), FOCUS=focus))
        if raw:
            self.cache.set(k, raw)
        else:
            logger.warning("planner produced no plan; normalizer will use the safe default")
        return dict(raw)


class GeminiIntentClassifier:
    def __init__(self, gemini: GeminiClient):
        self.gemini = gemini

    def classify(self, utterance: str, last_assistant: str, ctx: UserContext) -> ConversationIntent:
        from propsignal.prompts.versioned.v1.classifier import CLASSIFIER_PROMPT

        opts = ctx.clarificationOptions
        prompt = CLASSIFIER_PROMPT.format(
            PENDING="YES" if opts else "NO",
            SUBURB=ctx.suburb or "none",
            OPTIONS=", ".join(f"{o.suburb} ({o.state})" for o in opts) or "none",
            LAST_ASSISTANT=last_assistant,
            FOCUS=utterance,
        )
        raw = self.gemini.json(prompt)
        if not raw:
            return fallback_intent()
        try:
            return ConversationIntent.model_validate(raw)
        except ValidationError as ex:
            logger.warning("classifier output rejected: %s", ex.errors()[:3])
            return fallback_intent()
