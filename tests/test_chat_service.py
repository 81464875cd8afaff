import pytest

from propsignal.core.context_store import ContextStore
from propsignal.core.followups import suggest_followups
from propsignal.core.models import ChatMessage, ConversationIntent, QueryPlan, ResultBundle, Years

NEW = ConversationIntent(type="new_question", confidence=90)
REPLY = ConversationIntent(type="clarification_response", confidence=90)
SWITCH = ConversationIntent(type="suburb_switch", confidence=90)
FOLLOW = ConversationIntent(type="follow_up", confidence=85)


def _user(text: str) -> ChatMessage:
    return ChatMessage(role="user", content=text)


@pytest.mark.asyncio
async def test_ambiguous_suburb_then_victoria(make_service):
    store = ContextStore()
    service = make_service({"actions": ["yield_latest"], "suburb": "Burwood"}, NEW, REPLY, store=store)

    msgs = [_user("What's the rental yield in Burwood?")]
    first = await service.handle_turn("s1", msgs)
    assert first.status == "clarification"
    assert [o.state for o in first.options] == ["NSW", "VIC"]
    assert len(store.get("s1").clarificationOptions) == 2

    msgs += [ChatMessage(role="assistant", content=first.clarification), _user("victoria")]
    second = await service.handle_turn("s1", msgs)
    assert second.status == "answered"
    assert second.bundle.suburb == "Burwood"
    assert second.bundle.state == "VIC"
    assert second.bundle.latestYield.house == 2.4

    ctx = store.get("s1")
    assert ctx.clarificationOptions == []
    assert ctx.pendingTopic is None
    assert (ctx.suburb, ctx.lga, ctx.state) == ("Burwood", "Whitehorse", "VIC")


@pytest.mark.asyncio
async def test_suburb_switch_while_clarifying(make_service):
    store = ContextStore()

    def plans(messages, ctx):
        suburb = "Doncaster" if "Doncaster" in messages[-1].content else "Burwood"
        return {"actions": ["yield_latest"], "suburb": suburb}

    service = make_service(plans, NEW, SWITCH, store=store)
    msgs = [_user("Yield in Burwood?")]
    first = await service.handle_turn("s2", msgs)
    assert first.status == "clarification"

    msgs += [ChatMessage(role="assistant", content=first.clarification), _user("what about Doncaster")]
    second = await service.handle_turn("s2", msgs)
    assert second.status == "answered"
    assert second.bundle.suburb == "Doncaster"
    assert second.bundle.latestYield.house is None

    ctx = store.get("s2")
    assert ctx.clarificationOptions == []
    assert ctx.suburb == "Doncaster"
    assert ctx.lga == "Manningham"


@pytest.mark.asyncio
async def test_follow_ups_reuse_suburb_and_nearby_list(make_service):
    store = ContextStore()
    turns = iter([
        {"actions": ["yield_latest", "price_rent_latest"], "suburb": "Ballarat"},
        {"actions": ["yield_series"], "years": {"lastN": 5}},
        {"actions": ["compare_nearby", "yield_latest"]},
    ])
    service = make_service(lambda messages, ctx: next(turns), NEW, FOLLOW, store=store)

    msgs = [_user("How are yields in Ballarat?")]
    first = await service.handle_turn("s3", msgs)
    assert first.bundle.latestYield.house == 5.0
    assert store.get("s3").nearbySuburbs == ["Alfredton", "Sebastopol", "Wendouree"]

    msgs += [ChatMessage(role="assistant", content="..."), _user("and the 5 year trend?")]
    second = await service.handle_turn("s3", msgs)
    assert second.bundle.suburb == "Ballarat"
    assert all(len(s.points) == 5 for s in second.bundle.yieldSeries)

    msgs += [ChatMessage(role="assistant", content="..."), _user("compare with nearby suburbs")]
    third = await service.handle_turn("s3", msgs)
    rows = third.bundle.nearbyCompare.rows
    assert [r.suburb for r in rows] == ["Alfredton", "Sebastopol"]
    assert third.bundle.plan.compare.nearby is True


@pytest.mark.asyncio
async def test_missing_suburb_becomes_clarification(make_service):
    service = make_service({"actions": ["yield_latest"]}, NEW)
    result = await service.handle_turn("s4", [_user("what's a good yield?")])
    assert result.status == "clarification"
    assert result.clarification.startswith("No suburb detected")
    assert result.bundle is None
    assert result.suggestions


@pytest.mark.asyncio
async def test_hallucinated_suburb_is_not_used(make_service):
    service = make_service({"actions": ["yield_latest"], "suburb": "Ballarat"}, NEW)
    result = await service.handle_turn("s5", [_user("what's a good yield?")])
    assert result.status == "clarification"


@pytest.mark.asyncio
async def test_events_carry_trace_id(make_service):
    events = []
    service = make_service({"actions": ["yield_latest"], "suburb": "Ballarat"}, NEW)
    result = await service.handle_turn("s6", [_user("Ballarat yield")], emit=events.append)

    names = [e["name"] for e in events]
    assert "chat-step" in names
    assert "metric" in names
    assert names[-1] == "chat-structured"
    assert {e["data"]["trace_id"] for e in events} == {result.traceId}
    assert [int(e["id"]) for e in events] == list(range(1, len(events) + 1))
    steps = {e["data"]["step"] for e in events if e["name"] == "metric"}
    assert {"Understanding", "Planning", "Execution"} <= steps


def test_suggestions_point_at_missing_parts():
    plan = QueryPlan(actions=["yield_latest", "price_rent_latest"], suburb="Ballarat", state="VIC")
    bundle = ResultBundle(suburb="Ballarat", state="VIC", plan=plan)
    assert suggest_followups(plan, bundle) == [
        "Show 5-year trends for both types",
        "Compare with 2 nearby suburbs",
        "Give 4BR vs 3BR house snapshot",
    ]

    full = QueryPlan(
        actions=["yield_series", "compare_nearby", "bedroom_snapshot", "price_rent_latest"],
        suburb="Ballarat", propertyTypes=["unit"], years=Years(lastN=5),
    )
    bundle = ResultBundle(suburb="Ballarat", state="VIC", plan=full, errors=["nearbyCompare"])
    assert suggest_followups(full, bundle) == [
        "How do houses in Ballarat VIC compare?",
        "Retry the missing figures for Ballarat VIC",
    ]
