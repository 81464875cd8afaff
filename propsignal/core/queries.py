"""TableQuery builders for every read the execution engine issues."""
from __future__ import annotations
from typing import List, Optional, Sequence

from propsignal.core.models import Filter, OrderBy, TableQuery

_BY_YEAR_DESC = OrderBy(col="year", dir="desc")


def _scope(suburb: str, state: Optional[str]) -> List[Filter]:
    out = [Filter(col="suburb", op="eq", value=suburb)]
    if state:
        out.append(Filter(col="state", op="eq", value=state))
    return out


def rollup_price(suburb: str, state: Optional[str], property_type: str) -> TableQuery:
    return TableQuery(
        id=f"price_rollup_{property_type}",
        table="price_table",
        select=["year", "property_type", "median_price"],
        filters=[
            *_scope(suburb, state),
            Filter(col="property_type", op="eq", value=property_type),
            Filter(col="bedroom", op="is_null"),
        ],
        orderBy=_BY_YEAR_DESC,
        limit=20,
    )


def rollup_rent(suburb: str, state: Optional[str], property_type: str) -> TableQuery:
    return TableQuery(
        id=f"rent_rollup_{property_type}",
        table="rent_table",
        select=["year", "property_type", "median_rent_weekly"],
        filters=[
            *_scope(suburb, state),
            Filter(col="property_type", op="eq", value=property_type),
            Filter(col="bedroom", op="is_null"),
        ],
        orderBy=_BY_YEAR_DESC,
        limit=20,
    )


def bedroom_price(suburb: str, state: Optional[str], property_type: str, bedrooms: Sequence[int]) -> TableQuery:
    return TableQuery(
        id=f"price_bedroom_{property_type}",
        table="price_table",
        select=["year", "property_type", "bedroom", "median_price"],
        filters=[
            *_scope(suburb, state),
            Filter(col="property_type", op="eq", value=property_type),
            Filter(col="bedroom", op="in", values=list(bedrooms)),
        ],
        orderBy=_BY_YEAR_DESC,
        limit=100,
    )


def bedroom_rent(suburb: str, state: Optional[str], property_type: str, bedrooms: Sequence[int]) -> TableQuery:
    return TableQuery(
        id=f"rent_bedroom_{property_type}",
        table="rent_table",
        select=["year", "property_type", "bedroom", "median_rent_weekly"],
        filters=[
            *_scope(suburb, state),
            Filter(col="property_type", op="eq", value=property_type),
            Filter(col="bedroom", op="in", values=list(bedrooms)),
        ],
        orderBy=_BY_YEAR_DESC,
        limit=100,
    )


def yield_history(suburb: str, state: Optional[str], property_type: str, years: Optional[Sequence[int]] = None) -> TableQuery:
    filters = [*_scope(suburb, state), Filter(col="property_type", op="eq", value=property_type)]
    if years:
        filters.append(Filter(col="year", op="between", values=[min(years), max(years)]))
    return TableQuery(
        id=f"yield_history_{property_type}",
        table="yield_table",
        select=["year", "property_type", "yield_pct"],
        filters=filters,
        orderBy=_BY_YEAR_DESC,
        limit=50,
    )


def nearby_yields(suburbs: Sequence[str], year: int, state: Optional[str]) -> TableQuery:
    filters = [
        Filter(col="suburb", op="in", values=list(suburbs)),
        Filter(col="year", op="eq", value=year),
    ]
    if state:
        filters.append(Filter(col="state", op="eq", value=state))
    return TableQuery(
        id="nearby_yields",
        table="yield_table",
        select=["suburb", "property_type", "yield_pct"],
        filters=filters,
    )


def lga_yields(state: str, year: int) -> TableQuery:
    return TableQuery(
        id=f"lga_yields_{state}_{year}",
        table="lga_yield_table",
        select=["lga", "property_type", "yield_pct"],
        filters=[
            Filter(col="state", op="eq", value=state),
            Filter(col="year", op="eq", value=year),
            Filter(col="property_type", op="in", values=["house", "unit"]),
        ],
    )


def suburb_lookup(suburb: str, state: Optional[str] = None) -> TableQuery:
    filters = [Filter(col="suburb", op="eq", value=suburb)]
    if state:
        filters.append(Filter(col="state", op="eq", value=state))
    return TableQuery(
        id="suburb_lookup",
        table="suburb_table",
        select=["suburb", "lga", "state"],
        filters=filters,
        orderBy=OrderBy(col="state"),
        limit=20,
    )


def lga_members(lga: str, state: str, limit: int = 10) -> TableQuery:
    return TableQuery(
        id="lga_members",
        table="suburb_table",
        select=["suburb"],
        filters=[Filter(col="lga", op="eq", value=lga), Filter(col="state", op="eq", value=state)],
        orderBy=OrderBy(col="suburb"),
        limit=limit,
    )
