# propsignal/core/chat_service.py
from __future__ import annotations
import asyncio
import logging
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from queue import Queue
from typing import Any, Callable, Dict, List, Optional

from propsignal.core.context_store import ContextStore
from propsignal.core.conversation_flow import ConversationFlow
from propsignal.core.errors import MissingSuburbError
from propsignal.core.execution_engine import ExecutionEngine
from propsignal.core.followups import suggest_followups
from propsignal.core.models import ChatMessage, Compare, ConversationIntent, QueryPlan, TurnResult, UserContext
from propsignal.core.plan_normalizer import detect_state, normalize_plan
from propsignal.core.planner import IntentClassifier, QueryPlanner
from propsignal.core.suburb_resolver import SuburbResolver

logger = logging.getLogger(__name__)

Emit = Callable[[Dict[str, Any]], None]


@dataclass
class QEmitter:
    q: Queue
    def send(self, event: Dict[str, Any]) -> None:
        self.q.put(event)


class _TurnEvents:
    """Per-turn event numbering and step latency metrics."""

    def __init__(self, send: Optional[Emit], trace_id: str):
        self._send = send
        self._eid = 0
        self.trace_id = trace_id

    def emit(self, name: str, data: Dict[str, Any]) -> None:
        if self._send is None:
            return
        self._eid += 1
        self._send({"id": str(self._eid), "name": name, "data": {**data, "trace_id": self.trace_id}})

    @contextmanager
    def step(self, name: str):
        t0 = time.perf_counter()
        try:
            yield
        finally:
            dt = int((time.perf_counter() - t0) * 1000)
            logger.debug("step %s took %dms trace=%s", name, dt, self.trace_id)
            self.emit("metric", {"step": name, "latency_ms": dt})


def _last(messages: List[ChatMessage], role: str) -> str:
    for m in reversed(messages):
        if m.role == role:
            return m.content
    return ""


class ChatService:
    """One conversational turn: context, classify, flow, plan, resolve, execute."""

    def __init__(
        self,
        store: ContextStore,
        planner: QueryPlanner,
        classifier: IntentClassifier,
        flow: ConversationFlow,
        engine: ExecutionEngine,
        resolver: Optional[SuburbResolver] = None,
        *,
        default_state: str = "VIC",
        max_nearby: int = 2,
    ):
        self.store = store
        self.planner = planner
        self.classifier = classifier
        self.flow = flow
        self.engine = engine
        self.resolver = resolver
        self.default_state = default_state
        self.max_nearby = max_nearby

    # === Main entry ===
    async def handle_turn(
        self, session_id: str, messages: List[ChatMessage], emit: Optional[Emit] = None
    ) -> TurnResult:
        ev = _TurnEvents(emit, str(uuid.uuid4()))
        utterance = _last(messages, "user")
        ctx = self.store.get(session_id)
        logger.info("turn session=%s trace=%s", session_id, ev.trace_id)

        ev.emit("chat-step", {"step": "Understanding", "message": "Classifying message..."})
        with ev.step("Understanding"):
            intent = await asyncio.to_thread(self.classifier.classify, utterance, _last(messages, "assistant"), ctx)
        ev.emit("chat-step", {"step": "Understanding", "message": "Intent ready", "intent": intent.model_dump()})

        outcome = self.flow.step(ctx, intent, utterance)
        if outcome.context_update:
            ctx = self.store.update(session_id, outcome.context_update)
        if not outcome.proceed:
            return self._clarify(session_id, ev, intent, outcome.prompt or "", outcome.options)

        ev.emit("chat-step", {"step": "Planning", "message": "Formulating plan..."})
        with ev.step("Planning"):
            raw = await asyncio.to_thread(self.planner.plan, messages, ctx)
            plan = self._plan(raw, messages, utterance, ctx, intent)
        ev.emit("chat-step", {"step": "Planning", "message": "Plan ready", "plan": plan.model_dump(by_alias=True)})

        if plan.suburb and self.resolver is not None:
            with ev.step("Resolving"):
                hint = detect_state(utterance)
                if hint is None and ctx.suburb and plan.suburb.lower() == ctx.suburb.lower():
                    hint = ctx.state
                res = await self.resolver.resolve(plan.suburb, hint)
            if res.ambiguous:
                self.store.update(session_id, {"clarificationOptions": res.options, "pendingTopic": plan.intent})
                return self._clarify(
                    session_id, ev, intent,
                    f"I found more than one {plan.suburb}. Which one did you mean?",
                    res.options,
                )
            changed = (ctx.suburb or "").lower() != plan.suburb.lower()
            if res.state and res.state != plan.state:
                plan = plan.model_copy(update={"state": res.state})
            nearby = res.nearby if (res.nearby or changed) else ctx.nearbySuburbs
            ctx = self.store.update(session_id, {
                "suburb": plan.suburb,
                "lga": res.lga if (res.lga or changed) else ctx.lga,
                "state": plan.state,
                "nearbySuburbs": nearby,
            })

        if len(plan.propertyTypes) == 1:
            ctx = self.store.update(session_id, {"propertyType": plan.propertyTypes[0]})
        plan = self._with_nearby(plan, ctx)

        ev.emit("chat-step", {"step": "Execution", "message": f"Running {len(plan.actions)} action(s)"})
        try:
            with ev.step("Execution"):
                bundle = await self.engine.execute(plan)
        except MissingSuburbError as ex:
            return self._clarify(session_id, ev, intent, str(ex), [])

        if bundle.errors:
            ev.emit("chat-error", {"message": "Some figures could not be fetched", "fields": bundle.errors})
        result = TurnResult(
            sessionId=session_id,
            status="answered",
            bundle=bundle,
            suggestions=suggest_followups(plan, bundle),
            intent=intent,
            traceId=ev.trace_id,
        )
        ev.emit("chat-structured", result.model_dump(mode="json", by_alias=True))
        return result

    # === Helpers ===
    def _plan(
        self,
        raw: Dict[str, Any],
        messages: List[ChatMessage],
        utterance: str,
        ctx: UserContext,
        intent: ConversationIntent,
    ) -> QueryPlan:
        source = " ".join(m.content for m in messages if m.role == "user")
        default_state = ctx.state or self.default_state
        plan = normalize_plan(raw, utterance, source_text=source, default_state=default_state)
        if plan.suburb is None and ctx.suburb and intent.type in ("follow_up", "clarification_response"):
            # The committed suburb came from this conversation (or a chosen option)
            logger.info("plan has no suburb; carrying %s from context", ctx.suburb)
            plan = normalize_plan(
                {**raw, "suburb": ctx.suburb},
                utterance,
                source_text=f"{source} {ctx.suburb}",
                default_state=default_state,
            )
        return plan

    def _with_nearby(self, plan: QueryPlan, ctx: UserContext) -> QueryPlan:
        if "compare_nearby" not in plan.actions:
            return plan
        if plan.compare and plan.compare.suburbs:
            return plan
        subs = [s for s in ctx.nearbySuburbs if s.lower() != (plan.suburb or "").lower()][: self.max_nearby]
        return plan.model_copy(update={"compare": Compare(nearby=True, suburbs=subs)})

    def _clarify(self, session_id, ev: _TurnEvents, intent, prompt: str, options) -> TurnResult:
        result = TurnResult(
            sessionId=session_id,
            status="clarification",
            clarification=prompt,
            options=list(options),
            suggestions=[] if options else ["Specify a suburb and state, e.g., 'Doncaster VIC'"],
            intent=intent,
            traceId=ev.trace_id,
        )
        ev.emit("chat-clarification", {"message": prompt, "options": [o.model_dump() for o in options]})
        return result
