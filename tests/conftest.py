import os

# Settings are read at import time of the app; keep them self-contained
os.environ.setdefault("GEMINI_API_KEY", "test-key")
os.environ.setdefault("DB_URL_RO", "sqlite://")

from typing import Any, Callable, Dict, List, Union

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import Column, Float, Integer, MetaData, String, Table, create_engine, insert

from propsignal.core.chat_service import ChatService
from propsignal.core.context_store import ContextStore
from propsignal.core.conversation_flow import ConversationFlow
from propsignal.core.errors import DataFetchError
from propsignal.core.execution_engine import ExecutionEngine
from propsignal.core.models import ConversationIntent, TableQuery
from propsignal.core.query_compiler import GenericQueryCompiler
from propsignal.core.read_only_db_executor import ReadOnlyDbExecutor
from propsignal.core.schema_registry import build_registry
from propsignal.core.state_average_cache import StateAverageCache
from propsignal.core.suburb_resolver import SuburbResolver

metadata = MetaData()


def _price_rent(name: str, measure: str) -> Table:
    return Table(
        name, metadata,
        Column("suburb", String), Column("postcode", String), Column("state", String),
        Column("lga", String), Column("year", Integer), Column("property_type", String),
        Column("bedroom", Integer, nullable=True), Column(measure, Float),
    )


median_price = _price_rent("median_price", "median_price")
median_rentals = _price_rent("median_rentals", "median_rent_weekly")
rental_yields = Table(
    "rental_yields", metadata,
    Column("suburb", String), Column("lga", String), Column("state", String),
    Column("year", Integer), Column("property_type", String), Column("yield_pct", Float),
)
lga_rental_yields = Table(
    "lga_rental_yields", metadata,
    Column("lga", String), Column("state", String), Column("year", Integer),
    Column("property_type", String), Column("yield_pct", Float),
)
lga_suburbs = Table(
    "lga_suburbs", metadata,
    Column("suburb", String), Column("lga", String), Column("state", String), Column("postcode", String),
)


def _pr(suburb, state, lga, year, pt, bedroom, postcode="3350"):
    return dict(suburb=suburb, postcode=postcode, state=state, lga=lga, year=year,
                property_type=pt, bedroom=bedroom)


PRICES = [
    {**_pr("Ballarat", "VIC", "Ballarat", 2023, "house", None), "median_price": 500000},
    {**_pr("Ballarat", "VIC", "Ballarat", 2024, "house", None), "median_price": 520000},
    {**_pr("Ballarat", "VIC", "Ballarat", 2024, "unit", None), "median_price": 380000},
    {**_pr("Ballarat", "VIC", "Ballarat", 2024, "house", 3), "median_price": 480000},
    {**_pr("Ballarat", "VIC", "Ballarat", 2023, "house", 4), "median_price": 590000},
    {**_pr("Ballarat", "VIC", "Ballarat", 2024, "house", 4), "median_price": 600000},
    {**_pr("Ballarat", "VIC", "Ballarat", 2024, "unit", 2), "median_price": 400000},
    {**_pr("Burwood", "VIC", "Whitehorse", 2024, "house", None, "3125"), "median_price": 1500000},
    {**_pr("Burwood", "NSW", "Burwood", 2024, "house", None, "2134"), "median_price": 2000000},
]
RENTS = [
    {**_pr("Ballarat", "VIC", "Ballarat", 2024, "house", None), "median_rent_weekly": 500},
    {**_pr("Ballarat", "VIC", "Ballarat", 2024, "unit", None), "median_rent_weekly": 400},
    {**_pr("Ballarat", "VIC", "Ballarat", 2024, "house", 3), "median_rent_weekly": 460},
    {**_pr("Ballarat", "VIC", "Ballarat", 2023, "house", 4), "median_rent_weekly": 550},
    {**_pr("Ballarat", "VIC", "Ballarat", 2024, "unit", 2), "median_rent_weekly": 420},
    {**_pr("Burwood", "VIC", "Whitehorse", 2024, "house", None, "3125"), "median_rent_weekly": 700},
    {**_pr("Burwood", "NSW", "Burwood", 2024, "house", None, "2134"), "median_rent_weekly": 900},
]
YIELDS = [
    dict(suburb="Ballarat", lga="Ballarat", state="VIC", year=2022, property_type="house", yield_pct=4.6),
    dict(suburb="Ballarat", lga="Ballarat", state="VIC", year=2023, property_type="house", yield_pct=4.8),
    dict(suburb="Ballarat", lga="Ballarat", state="VIC", year=2024, property_type="house", yield_pct=5.0),
    dict(suburb="Ballarat", lga="Ballarat", state="VIC", year=2023, property_type="unit", yield_pct=5.2),
    dict(suburb="Ballarat", lga="Ballarat", state="VIC", year=2024, property_type="unit", yield_pct=5.5),
    dict(suburb="Sebastopol", lga="Ballarat", state="VIC", year=2024, property_type="house", yield_pct=5.6),
    dict(suburb="Sebastopol", lga="Ballarat", state="VIC", year=2024, property_type="unit", yield_pct=6.0),
    dict(suburb="Wendouree", lga="Ballarat", state="VIC", year=2024, property_type="house", yield_pct=5.2),
    dict(suburb="Alfredton", lga="Ballarat", state="VIC", year=2024, property_type="house", yield_pct=4.4),
]
LGA_YIELDS = [
    dict(lga="Ballarat", state="VIC", year=2024, property_type="house", yield_pct=5.0),
    dict(lga="Ballarat", state="VIC", year=2024, property_type="unit", yield_pct=5.5),
    dict(lga="Melbourne", state="VIC", year=2024, property_type="house", yield_pct=3.0),
    dict(lga="Melbourne", state="VIC", year=2024, property_type="house", yield_pct=3.4),
    dict(lga="Melbourne", state="VIC", year=2024, property_type="unit", yield_pct=4.5),
    dict(lga="Burwood", state="NSW", year=2024, property_type="house", yield_pct=2.3),
]
SUBURBS = [
    dict(suburb="Ballarat", lga="Ballarat", state="VIC", postcode="3350"),
    dict(suburb="Sebastopol", lga="Ballarat", state="VIC", postcode="3356"),
    dict(suburb="Wendouree", lga="Ballarat", state="VIC", postcode="3355"),
    dict(suburb="Alfredton", lga="Ballarat", state="VIC", postcode="3350"),
    dict(suburb="Burwood", lga="Whitehorse", state="VIC", postcode="3125"),
    dict(suburb="Burwood", lga="Burwood", state="NSW", postcode="2134"),
    dict(suburb="Doncaster", lga="Manningham", state="VIC", postcode="3108"),
]


@pytest.fixture
def sa_engine(tmp_path):
    eng = create_engine(f"sqlite:///{tmp_path / 'propsignal.db'}")
    metadata.create_all(eng)
    with eng.begin() as conn:
        conn.execute(insert(median_price), PRICES)
        conn.execute(insert(median_rentals), RENTS)
        conn.execute(insert(rental_yields), YIELDS)
        conn.execute(insert(lga_rental_yields), LGA_YIELDS)
        conn.execute(insert(lga_suburbs), SUBURBS)
    yield eng
    eng.dispose()


@pytest.fixture
def registry():
    return build_registry()


@pytest.fixture
def compiler(sa_engine, registry):
    return GenericQueryCompiler(registry, ReadOnlyDbExecutor(sa_engine, statement_timeout_ms=5000))


class FailingCompiler:
    """Wraps a compiler and fails every query against the given tables."""

    def __init__(self, inner: GenericQueryCompiler, tables):
        self.inner = inner
        self.tables = set(tables)
        self.calls: List[str] = []

    def run(self, q: TableQuery):
        self.calls.append(q.id)
        if q.table in self.tables:
            raise DataFetchError(q.id, "connection reset")
        return self.inner.run(q)


@pytest.fixture
def make_engine(compiler):
    def _make(failing_tables=(), **kwargs):
        comp = FailingCompiler(compiler, failing_tables) if failing_tables else compiler
        kwargs.setdefault("fetch_timeout", 5.0)
        kwargs.setdefault("retry_backoff", 0.01)
        return ExecutionEngine(comp, kwargs.pop("state_averages", None) or StateAverageCache(), **kwargs)
    return _make


class StubPlanner:
    def __init__(self, plans: Union[Dict[str, Any], Callable[..., Dict[str, Any]]]):
        self.plans = plans
        self.seen: List[Any] = []

    def plan(self, messages, ctx):
        self.seen.append((list(messages), ctx))
        return self.plans(messages, ctx) if callable(self.plans) else dict(self.plans)


class StubClassifier:
    def __init__(self, *intents: ConversationIntent):
        self.intents = list(intents)

    def classify(self, utterance, last_assistant, ctx):
        if len(self.intents) > 1:
            return self.intents.pop(0)
        return self.intents[0] if self.intents else ConversationIntent()


@pytest.fixture
def make_service(compiler, make_engine):
    """Chat service over the seeded database with stubbed planner and classifier.

    `plans` is a plan dict or a callable of (messages, ctx); `intents` are
    handed out one per turn, the last one repeating.
    """
    def _make(plans, *intents, store=None, **kwargs):
        return ChatService(
            store or ContextStore(),
            StubPlanner(plans),
            StubClassifier(*intents),
            ConversationFlow(),
            make_engine(),
            SuburbResolver(compiler),
            **kwargs,
        )
    return _make


@pytest_asyncio.fixture
async def client(make_service):
    from propsignal.deps import chat_service
    from propsignal.main import app

    service = make_service(
        {"actions": ["yield_latest", "price_rent_latest"], "suburb": "Ballarat"},
        ConversationIntent(type="new_question", confidence=90),
    )
    app.dependency_overrides[chat_service] = lambda: service

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
