from __future__ import annotations
from typing import List

from propsignal.core.models import QueryPlan, ResultBundle


def suggest_followups(plan: QueryPlan, bundle: ResultBundle, limit: int = 3) -> List[str]:
    """Next questions that would fill whatever the answered turn left out."""
    ideas: List[str] = []
    acts = set(plan.actions)
    where = f"{bundle.suburb} {bundle.state}".strip()

    if "yield_series" not in acts or (plan.years.lastN or 0) < 5:
        ideas.append("Show 5-year trends for both types")
    if "compare_nearby" not in acts:
        ideas.append("Compare with 2 nearby suburbs")
    if "bedroom_snapshot" not in acts:
        ideas.append("Give 4BR vs 3BR house snapshot")
    if len(plan.propertyTypes) == 1:
        other = "unit" if plan.propertyTypes[0] == "house" else "house"
        ideas.append(f"How do {other}s in {where} compare?")
    if bundle.capitalAvg is not None and bundle.latestYield and "yield_latest" in acts:
        ideas.append(f"Why is {bundle.suburb} above or below the {bundle.state} average?")
    if bundle.errors:
        ideas.append(f"Retry the missing figures for {where}")
    return ideas[:limit]
