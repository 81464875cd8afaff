from __future__ import annotations
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from propsignal.core.models import ClarificationOption, ConversationIntent, UserContext
from propsignal.core.plan_normalizer import STATE_NAMES

logger = logging.getLogger(__name__)

AWAITING_CLARIFICATION = "awaiting_clarification"
FREE = "free"

_CLEAR_PENDING: Dict[str, Any] = {"clarificationOptions": [], "pendingTopic": None}
_STATE_FULL_NAMES = {code: name for name, code in STATE_NAMES}


@dataclass
class FlowOutcome:
    state: str
    proceed: bool
    context_update: Dict[str, Any] = field(default_factory=dict)
    prompt: Optional[str] = None
    matched: Optional[ClarificationOption] = None
    options: List[ClarificationOption] = field(default_factory=list)


def flow_state(ctx: UserContext) -> str:
    return AWAITING_CLARIFICATION if ctx.clarificationOptions else FREE


def _state_hit(code: str, low: str) -> bool:
    code = (code or "").strip()
    if not code:
        return False
    name = _STATE_FULL_NAMES.get(code.upper())
    if name and name in low:
        return True
    if len(code) <= 2:
        # "sa"/"wa"/"nt" hide inside ordinary words
        return re.search(rf"\b{re.escape(code.lower())}\b", low) is not None
    return code.lower() in low


def match_option(utterance: str, options: Sequence[ClarificationOption]) -> Optional[ClarificationOption]:
    """Best option by number of fields (state, suburb, lga) contained in the utterance."""
    low = (utterance or "").lower()
    best: Optional[Tuple[int, ClarificationOption]] = None
    for opt in options:
        score = int(_state_hit(opt.state, low))
        for val in (opt.suburb, opt.lga):
            if val and val.strip() and val.strip().lower() in low:
                score += 1
        if score and (best is None or score > best[0]):
            best = (score, opt)
    return best[1] if best else None


def format_options(options: Sequence[ClarificationOption]) -> str:
    lines = []
    for o in options:
        where = f"{o.lga}, {o.state}" if o.lga else o.state
        lines.append(f"• {o.suburb} ({where})")
    return "\n".join(lines)


def clarification_prompt(options: Sequence[ClarificationOption], *, retry: bool = False) -> str:
    head = "I didn't catch that. Which suburb?" if retry else "I found more than one match. Which suburb did you mean?"
    return f"{head}\n\n{format_options(options)}"


# === Transition handlers: (ctx, intent, utterance) -> FlowOutcome ===
def _resolve_clarification(ctx: UserContext, intent: ConversationIntent, utterance: str) -> FlowOutcome:
    match = match_option(utterance, ctx.clarificationOptions)
    if match is None:
        logger.info("clarification reply %r matched no option; re-asking", utterance)
        return FlowOutcome(
            state=AWAITING_CLARIFICATION,
            proceed=False,
            prompt=clarification_prompt(ctx.clarificationOptions, retry=True),
            options=list(ctx.clarificationOptions),
        )
    logger.info("clarification resolved to %s (%s)", match.suburb, match.state)
    update = {"suburb": match.suburb, "lga": match.lga, "state": match.state, **_CLEAR_PENDING}
    return FlowOutcome(state=FREE, proceed=True, context_update=update, matched=match)


def _switch(ctx: UserContext, intent: ConversationIntent, utterance: str) -> FlowOutcome:
    # New suburb detection happens downstream in planning
    return FlowOutcome(state=FREE, proceed=True, context_update=dict(_CLEAR_PENDING))


def _stay(ctx: UserContext, intent: ConversationIntent, utterance: str) -> FlowOutcome:
    return FlowOutcome(state=flow_state(ctx), proceed=True)


Handler = Callable[[UserContext, ConversationIntent, str], FlowOutcome]

TRANSITIONS: Dict[Tuple[str, str], Handler] = {
    (AWAITING_CLARIFICATION, "clarification_response"): _resolve_clarification,
    (AWAITING_CLARIFICATION, "suburb_switch"): _switch,
    (AWAITING_CLARIFICATION, "new_question"): _stay,
    (AWAITING_CLARIFICATION, "follow_up"): _stay,
    (AWAITING_CLARIFICATION, "greeting"): _stay,
    (FREE, "clarification_response"): _stay,
    (FREE, "suburb_switch"): _switch,
    (FREE, "new_question"): _stay,
    (FREE, "follow_up"): _stay,
    (FREE, "greeting"): _stay,
}


class ConversationFlow:
    def __init__(self, min_confidence: float = 0.0):
        self.min_confidence = min_confidence

    def step(self, ctx: UserContext, intent: ConversationIntent, utterance: str) -> FlowOutcome:
        kind = intent.type
        if kind == "clarification_response" and intent.confidence < self.min_confidence:
            logger.info("clarification_response below confidence %.0f; treating as new_question", self.min_confidence)
            kind = "new_question"

        cleared: Dict[str, Any] = {}
        if intent.shouldClearContext and ctx.clarificationOptions:
            logger.info("classifier asked to clear pending clarification")
            cleared = dict(_CLEAR_PENDING)
            ctx = ctx.model_copy(update={"clarificationOptions": [], "pendingTopic": None})

        state = flow_state(ctx)
        outcome = TRANSITIONS[(state, kind)](ctx, intent, utterance)
        outcome.context_update = {**cleared, **outcome.context_update}
        logger.debug("flow %s --%s--> %s", state, kind, outcome.state)
        return outcome
