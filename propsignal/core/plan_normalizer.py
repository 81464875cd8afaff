from __future__ import annotations
import logging
import math
import re
import string
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from propsignal.core.errors import PlanValidationError
from propsignal.core.metrics import MAX_SERIES_YEARS
from propsignal.core.models import ALL_ACTIONS, Compare, QueryPlan, Years
from propsignal.core.schema_registry import PROPERTY_TYPES

logger = logging.getLogger(__name__)

DEFAULT_ACTIONS: Tuple[str, ...] = ("yield_latest", "yield_series", "price_rent_latest")
DEFAULT_LAST_N = 3
MIN_YEAR = 1900

INTENTS = frozenset({
    "rental_yield", "crime_stats", "median_price", "price_growth",
    "new_projects", "suburb_profile", "demographics", "suburb_search",
})
ANALYSIS_TYPES = frozenset({
    "single_suburb", "comparison", "search", "market_overview", "trend_analysis", "meta_question",
})

# Longest names first so "south australia" wins over a bare "australia"-ish overlap
STATE_NAMES: Tuple[Tuple[str, str], ...] = (
    ("australian capital territory", "ACT"),
    ("new south wales", "NSW"),
    ("northern territory", "NT"),
    ("western australia", "WA"),
    ("south australia", "SA"),
    ("queensland", "QLD"),
    ("tasmania", "TAS"),
    ("victoria", "VIC"),
)
STATE_CODES = frozenset(code for _, code in STATE_NAMES)
# Short codes that are also English words only count when written in capitals
_CASED_CODES = ("SA", "WA", "NT", "ACT")
_UNCASED_CODES = ("VIC", "NSW", "QLD", "TAS")

_STATE_PATTERNS: List[Tuple[re.Pattern, str]] = (
    [(re.compile(rf"\b{re.escape(name)}\b", re.I), code) for name, code in STATE_NAMES]
    + [(re.compile(rf"\b{code}\b", re.I), code) for code in _UNCASED_CODES]
    + [(re.compile(rf"\b{code}\b"), code) for code in _CASED_CODES]
)


def detect_state(text: str) -> Optional[str]:
    """Earliest explicit state mention in `text`, as an abbreviation."""
    best: Optional[Tuple[int, str]] = None
    for pat, code in _STATE_PATTERNS:
        m = pat.search(text or "")
        if m and (best is None or m.start() < best[0]):
            best = (m.start(), code)
    return best[1] if best else None


def mentioned_in(phrase: str, text: str) -> bool:
    words = (phrase or "").split()
    if not words:
        return False
    pat = r"\b" + r"\s+".join(re.escape(w) for w in words) + r"\b"
    return re.search(pat, text or "", flags=re.I) is not None


def _canonical_suburb(s: str) -> str:
    s = " ".join(s.split())
    # mixed case such as "McKinnon" is kept; all-lower and all-caps are title-cased
    return s if any(c.isupper() for c in s) and not s.isupper() else string.capwords(s)


def _intent_from_keywords(utterance: str) -> str:
    low = (utterance or "").lower()
    if "crime" in low or "safe" in low:
        return "crime_stats"
    if "growth" in low:
        return "price_growth"
    if "price" in low and "yield" not in low and "rent" not in low:
        return "median_price"
    return "rental_yield"


def _int_or_none(v: Any) -> Optional[int]:
    if isinstance(v, bool) or v is None:
        return None
    if isinstance(v, (int, float)) and math.isfinite(v) and float(v).is_integer():
        return int(v)
    if isinstance(v, str) and v.strip().lstrip("-").isdigit():
        return int(v.strip())
    return None


def _actions(raw: Dict[str, Any]) -> List[str]:
    acts = raw.get("actions")
    if not isinstance(acts, list):
        raise PlanValidationError("actions must be a list")
    out: List[str] = []
    for a in acts:
        if isinstance(a, str) and a in ALL_ACTIONS and a not in out:
            out.append(a)
    if not out:
        raise PlanValidationError(f"no known actions in {acts!r}")
    return out


def _year_or_none(v: Any) -> Optional[int]:
    y = _int_or_none(v)
    if y is None or not MIN_YEAR <= y <= date.today().year + 1:
        return None
    return y


def _years(raw: Any) -> Years:
    if not isinstance(raw, dict):
        return Years(lastN=DEFAULT_LAST_N)
    last_n = _int_or_none(raw.get("lastN"))
    frm = _year_or_none(raw.get("from"))
    to = _year_or_none(raw.get("to"))
    if frm is not None and to is not None:
        if frm > to:
            frm, to = to, frm
        frm = max(frm, to - MAX_SERIES_YEARS + 1)
    if last_n is not None:
        last_n = min(last_n, MAX_SERIES_YEARS) if last_n > 0 else None
    if last_n is None and (frm is None or to is None):
        last_n = DEFAULT_LAST_N
    return Years(lastN=last_n, from_=frm, to=to)


def normalize_plan(
    raw: Any,
    utterance: str,
    *,
    source_text: Optional[str] = None,
    default_state: Optional[str] = None,
) -> QueryPlan:
    """Turn untrusted planner output into a validated QueryPlan.

    `utterance` is the latest user message and the only input for state
    detection. `source_text` is all user text of the conversation; a suburb
    or comparison suburb is kept only if it literally occurs there.
    """
    text = source_text if source_text is not None else utterance
    if not isinstance(raw, dict):
        logger.warning("planner output is %s, not an object; using default plan", type(raw).__name__)
        raw = {}
    try:
        actions = _actions(raw)
    except PlanValidationError as ex:
        logger.warning("plan validation failed (%s); using default actions", ex)
        actions = list(DEFAULT_ACTIONS)

    pts = raw.get("propertyTypes")
    property_types = [p for p in PROPERTY_TYPES if isinstance(pts, list) and p in pts]
    if not property_types:
        property_types = list(PROPERTY_TYPES)

    years = _years(raw.get("years"))

    bedroom = _int_or_none(raw.get("bedroom"))
    bedrooms: Optional[List[int]] = None
    if isinstance(raw.get("bedrooms"), list):
        seen: List[int] = []
        for b in raw["bedrooms"]:
            n = _int_or_none(b)
            if n is not None and n not in seen:
                seen.append(n)
        bedrooms = seen or None
        if bedroom is None and bedrooms and len(bedrooms) == 1:
            bedroom = bedrooms[0]

    if "bedroom_snapshot" in actions and "price_rent_latest" not in actions:
        actions.append("price_rent_latest")

    state = detect_state(utterance) or (default_state if default_state in STATE_CODES else None) or "VIC"

    suburb: Optional[str] = None
    cand = raw.get("suburb")
    if isinstance(cand, str) and cand.strip():
        if mentioned_in(cand, text):
            suburb = _canonical_suburb(cand)
        else:
            logger.info("dropping planner suburb %r: not present in conversation", cand)

    compare: Optional[Compare] = None
    rc = raw.get("compare")
    if isinstance(rc, dict):
        subs = [_canonical_suburb(s) for s in rc.get("suburbs") or [] if isinstance(s, str) and mentioned_in(s, text)]
        compare = Compare(nearby=bool(rc.get("nearby")), suburbs=subs)
    if "compare_nearby" in actions and compare is None:
        compare = Compare(nearby=True)

    if suburb is None:
        intent, analysis_type = "suburb_search", "search"
    else:
        ri, ra = raw.get("intent"), raw.get("analysisType")
        intent = ri if isinstance(ri, str) and ri in INTENTS and ri != "suburb_search" else _intent_from_keywords(utterance)
        if isinstance(ra, str) and ra in ANALYSIS_TYPES and ra != "search":
            analysis_type = ra
        else:
            analysis_type = "comparison" if "compare_nearby" in actions else "single_suburb"
        if intent == "price_growth" and "price_rent_latest" not in actions:
            actions.append("price_rent_latest")

    return QueryPlan(
        actions=actions,
        suburb=suburb,
        state=state,
        propertyTypes=property_types,
        bedroom=bedroom,
        bedrooms=bedrooms,
        years=years,
        compare=compare,
        intent=intent,
        analysisType=analysis_type,
    )
