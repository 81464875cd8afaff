from __future__ import annotations
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from typing import List, Dict, Any, Optional, Literal

Action = Literal["yield_latest", "yield_series", "price_rent_latest", "bedroom_snapshot", "compare_nearby"]
PropertyType = Literal["house", "unit"]
FilterOp = Literal["eq", "in", "between", "is_null", "not_null"]
IntentType = Literal["clarification_response", "new_question", "follow_up", "greeting", "suburb_switch"]

ALL_ACTIONS: tuple = ("yield_latest", "yield_series", "price_rent_latest", "bedroom_snapshot", "compare_nearby")
INTENT_TYPES: tuple = ("clarification_response", "new_question", "follow_up", "greeting", "suburb_switch")


# === API ===
class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"] = "user"
    content: str = ""


class ChatRequest(BaseModel):
    sessionId: Optional[str] = Field(default=None, validation_alias=AliasChoices("sessionId", "session_id"))
    messages: List[ChatMessage] = Field(default_factory=list)


# === Data access ===
class Filter(BaseModel):
    # Kept as plain strings; the compiler checks them against the registry
    col: str
    op: str
    value: Any = None
    values: List[Any] = Field(default_factory=list)


class OrderBy(BaseModel):
    col: str
    dir: Literal["asc", "desc"] = "asc"


class TableQuery(BaseModel):
    # Logical label; shows up in logs and DataFetchError messages
    id: str
    table: str
    select: List[str]
    filters: List[Filter] = Field(default_factory=list)
    orderBy: Optional[OrderBy] = None
    limit: Optional[int] = None


# === Planning ===
class Years(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    lastN: Optional[int] = None
    from_: Optional[int] = Field(default=None, alias="from")
    to: Optional[int] = None


class Compare(BaseModel):
    nearby: bool = False
    suburbs: List[str] = Field(default_factory=list)


class QueryPlan(BaseModel):
    actions: List[Action]
    suburb: Optional[str] = None
    state: str = "VIC"
    propertyTypes: List[PropertyType] = Field(default_factory=lambda: ["house", "unit"])
    bedroom: Optional[int] = None
    bedrooms: Optional[List[int]] = None
    years: Years = Field(default_factory=lambda: Years(lastN=3))
    compare: Optional[Compare] = None
    intent: Optional[str] = None
    analysisType: Optional[str] = None


# === Conversation ===
class ClarificationOption(BaseModel):
    suburb: str
    lga: Optional[str] = None
    state: str


class UserContext(BaseModel):
    suburb: Optional[str] = None
    lga: Optional[str] = None
    state: Optional[str] = None
    budget: Optional[str] = None
    purpose: Optional[str] = None  # invest, live, rent
    propertyType: Optional[str] = None
    clarificationOptions: List[ClarificationOption] = Field(default_factory=list)
    pendingTopic: Optional[str] = None
    nearbySuburbs: List[str] = Field(default_factory=list)


class ConversationIntent(BaseModel):
    type: IntentType = "new_question"
    confidence: float = 50
    reasoning: Optional[str] = None
    shouldClearContext: bool = False
    suburbMentioned: Optional[str] = None
    stateMentioned: Optional[str] = None


# === Result bundle ===
class PropertyPair(BaseModel):
    house: Optional[float] = None
    unit: Optional[float] = None


class LatestPriceRent(BaseModel):
    year: Optional[int] = None
    price: PropertyPair = Field(default_factory=PropertyPair)
    rent: PropertyPair = Field(default_factory=PropertyPair)


class SeriesPoint(BaseModel):
    year: int
    value: Optional[float] = None


class YieldSeries(BaseModel):
    propertyType: PropertyType
    points: List[SeriesPoint] = Field(default_factory=list)
    # last minus first non-null point, percentage points
    change: Optional[float] = None


class PricePoint(SeriesPoint):
    # percent change against the previous year's median
    yoyPct: Optional[float] = None


class PriceSeries(BaseModel):
    propertyType: PropertyType
    points: List[PricePoint] = Field(default_factory=list)
    totalGrowthPct: Optional[float] = None
    annualGrowthPct: Optional[float] = None


class BedroomSnapshot(BaseModel):
    bedroom: int
    year: int
    price: float
    rentWeekly: float
    impliedYield: Optional[float] = None


class NearbyRow(BaseModel):
    suburb: str
    house: Optional[float] = None
    unit: Optional[float] = None
    houseDelta: Optional[float] = None
    unitDelta: Optional[float] = None


class NearbyCompare(BaseModel):
    year: Optional[int] = None
    rows: List[NearbyRow] = Field(default_factory=list)


class ResultBundle(BaseModel):
    suburb: str
    state: str
    plan: QueryPlan
    latestPR: Optional[LatestPriceRent] = None
    latestYieldYear: Optional[int] = None
    latestYield: Optional[PropertyPair] = None
    yieldSeries: Optional[List[YieldSeries]] = None
    priceSeries: Optional[List[PriceSeries]] = None
    bedroomHouse: Optional[BedroomSnapshot] = None
    bedroomUnit: Optional[BedroomSnapshot] = None
    nearbyCompare: Optional[NearbyCompare] = None
    capitalAvg: Optional[PropertyPair] = None
    capitalDelta: Optional[PropertyPair] = None
    # names of fields that degraded because a fetch failed
    errors: List[str] = Field(default_factory=list)


class TurnResult(BaseModel):
    sessionId: str
    status: Literal["answered", "clarification"]
    clarification: Optional[str] = None
    options: List[ClarificationOption] = Field(default_factory=list)
    bundle: Optional[ResultBundle] = None
    suggestions: List[str] = Field(default_factory=list)
    intent: Optional[ConversationIntent] = None
    traceId: str
