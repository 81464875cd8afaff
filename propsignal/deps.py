# propsignal/deps.py
from __future__ import annotations
from functools import lru_cache
from sqlalchemy import create_engine

from propsignal.settings import Settings
from propsignal.core.chat_service import ChatService
from propsignal.core.context_store import ContextStore
from propsignal.core.conversation_flow import ConversationFlow
from propsignal.core.execution_engine import ExecutionEngine
from propsignal.core.gemini_client import GeminiClient
from propsignal.core.planner import GeminiIntentClassifier, GeminiPlanner
from propsignal.core.query_compiler import GenericQueryCompiler
from propsignal.core.read_only_db_executor import ReadOnlyDbExecutor
from propsignal.core.schema_registry import SchemaRegistry, build_registry
from propsignal.core.state_average_cache import StateAverageCache
from propsignal.core.suburb_resolver import SuburbResolver
from propsignal.core.ttl_cache import TTLCache


@lru_cache(maxsize=1)
def settings() -> Settings:
    return Settings()


@lru_cache(maxsize=1)
def engine():
    s = settings()
    # Pre-ping keeps connections healthy over time
    return create_engine(s.DB_URL_RO, pool_pre_ping=True)


@lru_cache(maxsize=1)
def db() -> ReadOnlyDbExecutor:
    return ReadOnlyDbExecutor(engine=engine(), statement_timeout_ms=settings().STATEMENT_TIMEOUT_MS)


@lru_cache(maxsize=1)
def registry() -> SchemaRegistry:
    s = settings()
    return build_registry(
        price_table=s.PRICE_TABLE,
        rent_table=s.RENT_TABLE,
        yield_table=s.YIELD_TABLE,
        lga_yield_table=s.LGA_YIELD_TABLE,
        suburb_table=s.SUBURB_TABLE,
        max_rows=s.MAX_ROWS,
    )


@lru_cache(maxsize=1)
def compiler() -> GenericQueryCompiler:
    return GenericQueryCompiler(registry(), db())


# Process-local caches; a restart drops conversation state
@lru_cache(maxsize=1)
def context_store() -> ContextStore:
    return ContextStore(ttl=settings().CONTEXT_TTL_SECONDS)


@lru_cache(maxsize=1)
def state_average_cache() -> StateAverageCache:
    return StateAverageCache(ttl=settings().STATE_AVG_TTL_SECONDS)


@lru_cache(maxsize=1)
def gemini() -> GeminiClient:
    s = settings()
    return GeminiClient(
        api_key=s.GEMINI_API_KEY,
        model=s.GEMINI_MODEL,
        fallback_model=s.GEMINI_FALLBACK_MODEL,
    )


@lru_cache(maxsize=1)
def planner() -> GeminiPlanner:
    return GeminiPlanner(gemini(), cache=TTLCache(ttl=settings().PLAN_CACHE_TTL_SECONDS))


@lru_cache(maxsize=1)
def classifier() -> GeminiIntentClassifier:
    return GeminiIntentClassifier(gemini())


@lru_cache(maxsize=1)
def chat_service() -> ChatService:
    s = settings()
    engine_ = ExecutionEngine(
        compiler(),
        state_average_cache(),
        fetch_timeout=s.FETCH_TIMEOUT_SECONDS,
        retries=s.FETCH_RETRIES,
        retry_backoff=s.FETCH_RETRY_BACKOFF_SECONDS,
        max_nearby=s.MAX_NEARBY,
    )
    return ChatService(
        context_store(),
        planner(),
        classifier(),
        ConversationFlow(min_confidence=s.CLASSIFIER_MIN_CONFIDENCE),
        engine_,
        SuburbResolver(compiler()),
        default_state=s.DEFAULT_STATE,
        max_nearby=s.MAX_NEARBY,
    )
