"""Pure metric derivation over raw store rows.

Nothing here performs I/O; every function takes rows (lists of dicts as
returned by the query compiler) and returns derived records. Missing inputs
produce None, never NaN or Infinity.
"""
from __future__ import annotations
import math
from collections import defaultdict
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional, Sequence

from propsignal.core.models import (
    BedroomSnapshot,
    LatestPriceRent,
    NearbyCompare,
    NearbyRow,
    PricePoint,
    PriceSeries,
    PropertyPair,
    SeriesPoint,
    Years,
    YieldSeries,
)

Row = Dict[str, Any]

# Longest yield or price series a plan can ask for
MAX_SERIES_YEARS = 20


def _num(v: Any) -> Optional[float]:
    if v is None or isinstance(v, bool):
        return None
    try:
        n = float(v)
    except (TypeError, ValueError):
        return None
    return n if math.isfinite(n) else None


def _year(v: Any) -> Optional[int]:
    n = _num(v)
    return int(n) if n is not None else None


def _pt(row: Row) -> str:
    return str(row.get("property_type") or "").strip().lower()


def round1(x: float) -> float:
    # half away from zero on the decimal repr, so 5.45 -> 5.5
    return float(Decimal(repr(x)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def compute_yield(rent_weekly: Any, price: Any) -> Optional[float]:
    """Gross rental yield in percent: rent * 52 / price * 100, one decimal."""
    rw = _num(rent_weekly)
    p = _num(price)
    if rw is None or p is None or p <= 0 or rw < 0:
        return None
    return round1((rw * 52 / p) * 100)


def delta_pp(value: Optional[float], baseline: Optional[float]) -> Optional[float]:
    if value is None or baseline is None:
        return None
    return round1(value - baseline)


def latest_year(rows: Iterable[Row]) -> Optional[int]:
    years = [y for y in (_year(r.get("year")) for r in rows) if y is not None]
    return max(years) if years else None


def latest_price_rent(price_rows: Sequence[Row], rent_rows: Sequence[Row], property_types: Sequence[str]) -> LatestPriceRent:
    wanted = set(property_types)
    price_rows = [r for r in price_rows if _pt(r) in wanted]
    rent_rows = [r for r in rent_rows if _pt(r) in wanted]
    year = latest_year([*price_rows, *rent_rows])
    out = LatestPriceRent(year=year)
    if year is None:
        return out

    def pick(rows: Sequence[Row], pt: str, field: str) -> Optional[float]:
        for r in rows:
            if _pt(r) == pt and _year(r.get("year")) == year:
                return _num(r.get(field))
        return None

    for pt in wanted:
        setattr(out.price, pt, pick(price_rows, pt, "median_price"))
        setattr(out.rent, pt, pick(rent_rows, pt, "median_rent_weekly"))
    return out


def latest_yield(pr: LatestPriceRent) -> PropertyPair:
    return PropertyPair(
        house=compute_yield(pr.rent.house, pr.price.house),
        unit=compute_yield(pr.rent.unit, pr.price.unit),
    )


def series_window(years: Years, anchor_year: int) -> List[int]:
    """Years covered by a series, oldest first, never more than MAX_SERIES_YEARS."""
    if years.from_ is not None and years.to is not None and years.from_ <= years.to:
        start = max(years.from_, years.to - MAX_SERIES_YEARS + 1)
        return list(range(start, years.to + 1))
    last_n = min(years.lastN, MAX_SERIES_YEARS) if years.lastN and years.lastN > 0 else 3
    end = years.to if years.to is not None else anchor_year
    return list(range(end - last_n + 1, end + 1))


def yield_series(rows: Sequence[Row], property_types: Sequence[str], window: Sequence[int]) -> List[YieldSeries]:
    by_key: Dict[tuple, float] = {}
    for r in rows:
        y = _year(r.get("year"))
        v = _num(r.get("yield_pct"))
        if y is None or v is None:
            continue
        by_key.setdefault((_pt(r), y), v)

    out: List[YieldSeries] = []
    for pt in property_types:
        points = [SeriesPoint(year=y, value=_maybe_round(by_key.get((pt, y)))) for y in window]
        out.append(YieldSeries(propertyType=pt, points=points, change=series_change(points)))
    return out


def _maybe_round(v: Optional[float]) -> Optional[float]:
    return round1(v) if v is not None else None


def series_change(points: Sequence[SeriesPoint]) -> Optional[float]:
    vals = [p.value for p in points if p.value is not None]
    if len(vals) < 2:
        return None
    return round1(vals[-1] - vals[0])


def pct_change(value: Optional[float], previous: Optional[float]) -> Optional[float]:
    if value is None or previous is None or previous <= 0:
        return None
    return round1((value - previous) / previous * 100)


def year_over_year(points: Sequence[SeriesPoint]) -> List[Optional[float]]:
    """Percent change against the previous point; the first point has none."""
    if not points:
        return []
    return [None] + [pct_change(cur.value, prev.value) for prev, cur in zip(points, points[1:])]


def price_series(rows: Sequence[Row], property_types: Sequence[str], window: Sequence[int]) -> List[PriceSeries]:
    """Rollup median prices over `window` with year-over-year and total growth."""
    by_key: Dict[tuple, float] = {}
    for r in rows:
        y = _year(r.get("year"))
        v = _num(r.get("median_price"))
        if y is None or v is None:
            continue
        by_key.setdefault((_pt(r), y), v)

    out: List[PriceSeries] = []
    for pt in property_types:
        base = [SeriesPoint(year=y, value=by_key.get((pt, y))) for y in window]
        points = [PricePoint(year=p.year, value=p.value, yoyPct=g) for p, g in zip(base, year_over_year(base))]
        known = [p for p in points if p.value is not None]
        total = annual = None
        if len(known) >= 2:
            first, last = known[0], known[-1]
            total = pct_change(last.value, first.value)
            if total is not None and last.value > 0:
                annual = round1(((last.value / first.value) ** (1 / (last.year - first.year)) - 1) * 100)
        out.append(PriceSeries(propertyType=pt, points=points, totalGrowthPct=total, annualGrowthPct=annual))
    return out


def select_bedroom_snapshot(price_rows: Sequence[Row], rent_rows: Sequence[Row], prefs: Sequence[int]) -> Optional[BedroomSnapshot]:
    """First bedroom count in `prefs` that has both a price and a rent.

    For that bedroom the latest year holding both figures is used.
    """
    prices: Dict[tuple, float] = {}
    rents: Dict[tuple, float] = {}
    for r in price_rows:
        b, y, v = _year(r.get("bedroom")), _year(r.get("year")), _num(r.get("median_price"))
        if b is not None and y is not None and v is not None:
            prices.setdefault((b, y), v)
    for r in rent_rows:
        b, y, v = _year(r.get("bedroom")), _year(r.get("year")), _num(r.get("median_rent_weekly"))
        if b is not None and y is not None and v is not None:
            rents.setdefault((b, y), v)

    for bed in prefs:
        common = sorted({y for (b, y) in prices if b == bed} & {y for (b, y) in rents if b == bed})
        if not common:
            continue
        year = common[-1]
        price, rent = prices[(bed, year)], rents[(bed, year)]
        return BedroomSnapshot(
            bedroom=bed,
            year=year,
            price=price,
            rentWeekly=rent,
            impliedYield=compute_yield(rent, price),
        )
    return None


def nearby_compare(
    rows: Sequence[Row],
    suburbs: Sequence[str],
    year: Optional[int],
    primary: Optional[PropertyPair] = None,
    limit: int = 2,
) -> NearbyCompare:
    picked = list(suburbs)[:limit]
    found: Dict[str, Dict[str, float]] = defaultdict(dict)
    for r in rows:
        s = str(r.get("suburb") or "")
        pt = _pt(r)
        v = _num(r.get("yield_pct"))
        if pt in ("house", "unit") and v is not None:
            found[s.lower()].setdefault(pt, v)

    out_rows: List[NearbyRow] = []
    for s in picked:
        vals = found.get(s.lower(), {})
        house = _maybe_round(vals.get("house"))
        unit = _maybe_round(vals.get("unit"))
        out_rows.append(NearbyRow(
            suburb=s,
            house=house,
            unit=unit,
            houseDelta=delta_pp(house, primary.house if primary else None),
            unitDelta=delta_pp(unit, primary.unit if primary else None),
        ))
    return NearbyCompare(year=year, rows=out_rows)


def state_average(lga_rows: Sequence[Row]) -> PropertyPair:
    """Mean of per-LGA average yields, per property type."""
    per_lga: Dict[str, Dict[str, List[float]]] = defaultdict(lambda: defaultdict(list))
    for r in lga_rows:
        v = _num(r.get("yield_pct"))
        lga = str(r.get("lga") or "").strip().lower()
        if v is None or not lga:
            continue
        per_lga[_pt(r)][lga].append(v)

    def avg(pt: str) -> Optional[float]:
        lgas = per_lga.get(pt) or {}
        means = [sum(vs) / len(vs) for vs in lgas.values() if vs]
        return round1(sum(means) / len(means)) if means else None

    return PropertyPair(house=avg("house"), unit=avg("unit"))
