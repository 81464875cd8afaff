from __future__ import annotations
import asyncio
import logging
from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Tuple

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt, wait_exponential

from propsignal.core import metrics, queries
from propsignal.core.errors import DataFetchError, MissingSuburbError
from propsignal.core.models import LatestPriceRent, NearbyCompare, PropertyPair, QueryPlan, ResultBundle, TableQuery
from propsignal.core.query_compiler import GenericQueryCompiler
from propsignal.core.redact import redact
from propsignal.core.schema_registry import SchemaRegistry
from propsignal.core.state_average_cache import StateAverageCache

logger = logging.getLogger(__name__)

Rows = List[Dict[str, Any]]

# Every action is scoped to one suburb
SUBURB_ACTIONS = frozenset({"yield_latest", "yield_series", "price_rent_latest", "bedroom_snapshot", "compare_nearby"})


class ExecutionEngine:
    def __init__(
        self,
        compiler: GenericQueryCompiler,
        state_averages: StateAverageCache,
        *,
        fetch_timeout: float = 10.0,
        retries: int = 1,
        retry_backoff: float = 0.2,
        max_nearby: int = 2,
    ):
        self.compiler = compiler
        self.state_averages = state_averages
        self.fetch_timeout = fetch_timeout
        self.retries = max(0, retries)
        self.retry_backoff = max(0.0, retry_backoff)
        self.max_nearby = max_nearby

    # === Main entry ===
    async def execute(self, plan: QueryPlan) -> ResultBundle:
        if not plan.suburb and any(a in SUBURB_ACTIONS for a in plan.actions):
            raise MissingSuburbError()

        suburb, state = plan.suburb, plan.state
        actions = set(plan.actions)
        bundle = ResultBundle(suburb=suburb, state=state, plan=plan)
        logger.info("executing plan suburb=%s state=%s actions=%s", suburb, state, plan.actions)

        pr: Optional[LatestPriceRent] = None
        price_rows: Rows = []
        if actions & {"price_rent_latest", "yield_latest", "compare_nearby"}:
            pr, price_rows = await self._price_rent_latest(plan, bundle)
            if "price_rent_latest" in actions:
                bundle.latestPR = pr

        if "yield_latest" in actions and pr is not None:
            bundle.latestYieldYear = pr.year
            bundle.latestYield = metrics.latest_yield(pr)

        if pr is not None and (plan.intent == "price_growth" or "yield_series" in actions):
            window = metrics.series_window(plan.years, pr.year or date.today().year)
            bundle.priceSeries = metrics.price_series(price_rows, plan.propertyTypes, window)

        history_year: Optional[int] = None
        if "yield_series" in actions:
            history_year = await self._yield_series(plan, bundle, pr)

        if "bedroom_snapshot" in actions:
            await self._bedroom_snapshot(plan, bundle)

        if "compare_nearby" in actions:
            await self._compare_nearby(plan, bundle, pr, history_year)

        if bundle.latestYieldYear is not None:
            await self._capital_average(bundle)

        return bundle

    # === Fetching ===
    async def _fetch(self, q: TableQuery) -> Rows:
        def log_retry(rs: RetryCallState) -> None:
            logger.warning("fetch %s failed (attempt %d): %r", q.id, rs.attempt_number, rs.outcome.exception())

        try:
            async for attempt in AsyncRetrying(
                reraise=True,
                stop=stop_after_attempt(self.retries + 1),
                wait=wait_exponential(multiplier=self.retry_backoff, max=2),
                retry=retry_if_exception_type((DataFetchError, asyncio.TimeoutError)),
                before_sleep=log_retry,
            ):
                with attempt:
                    return await asyncio.wait_for(asyncio.to_thread(self.compiler.run, q), timeout=self.fetch_timeout)
        except asyncio.TimeoutError as ex:
            logger.warning("fetch %s timed out after %.1fs", q.id, self.fetch_timeout)
            raise DataFetchError(q.id, f"timed out after {self.fetch_timeout}s") from ex
        return []

    async def _gather(self, qs: Sequence[TableQuery]) -> List[Optional[Rows]]:
        """Fan out, wait for all. A failed fetch becomes None; siblings still complete."""
        results = await asyncio.gather(*(self._fetch(q) for q in qs), return_exceptions=True)
        out: List[Optional[Rows]] = []
        for q, res in zip(qs, results):
            if isinstance(res, BaseException):
                if not isinstance(res, DataFetchError):
                    logger.error("fetch %s raised unexpectedly: %s", q.id, redact(repr(res)))
                out.append(None)
            else:
                out.append(res)
        return out

    # === Action handlers ===
    async def _price_rent_latest(self, plan: QueryPlan, bundle: ResultBundle) -> Tuple[LatestPriceRent, Rows]:
        pts = list(plan.propertyTypes)
        qs = [queries.rollup_price(plan.suburb, plan.state, pt) for pt in pts]
        qs += [queries.rollup_rent(plan.suburb, plan.state, pt) for pt in pts]
        res = await self._gather(qs)
        price_res, rent_res = res[: len(pts)], res[len(pts):]
        if any(r is None for r in price_res):
            bundle.errors.append("latestPR.price")
        if any(r is None for r in rent_res):
            bundle.errors.append("latestPR.rent")
        price_rows = [row for r in price_res if r for row in r]
        rent_rows = [row for r in rent_res if r for row in r]
        return metrics.latest_price_rent(price_rows, rent_rows, pts), price_rows

    async def _yield_series(self, plan: QueryPlan, bundle: ResultBundle, pr: Optional[LatestPriceRent]) -> Optional[int]:
        pts = list(plan.propertyTypes)
        res = await self._gather([queries.yield_history(plan.suburb, plan.state, pt) for pt in pts])
        rows: Rows = []
        for pt, r in zip(pts, res):
            if r is None:
                bundle.errors.append(f"yieldSeries.{pt}")
            else:
                rows.extend(r)
        history_year = metrics.latest_year(rows)
        anchor = history_year or (pr.year if pr else None) or date.today().year
        window = metrics.series_window(plan.years, anchor)
        bundle.yieldSeries = metrics.yield_series(rows, pts, window)
        return history_year

    async def _bedroom_snapshot(self, plan: QueryPlan, bundle: ResultBundle) -> None:
        requested: List[int] = []
        if plan.bedroom is not None:
            requested.append(plan.bedroom)
        requested += [b for b in (plan.bedrooms or []) if b not in requested]

        pts = list(plan.propertyTypes)
        prefs = {pt: SchemaRegistry.bedroom_prefs(pt, requested) for pt in pts}
        qs: List[TableQuery] = []
        for pt in pts:
            qs.append(queries.bedroom_price(plan.suburb, plan.state, pt, prefs[pt]))
            qs.append(queries.bedroom_rent(plan.suburb, plan.state, pt, prefs[pt]))
        res = await self._gather(qs)

        for i, pt in enumerate(pts):
            price_rows, rent_rows = res[2 * i], res[2 * i + 1]
            if price_rows is None or rent_rows is None:
                bundle.errors.append(f"bedroom.{pt}")
            snap = metrics.select_bedroom_snapshot(price_rows or [], rent_rows or [], prefs[pt])
            if pt == "house":
                bundle.bedroomHouse = snap
            else:
                bundle.bedroomUnit = snap

    async def _compare_nearby(
        self,
        plan: QueryPlan,
        bundle: ResultBundle,
        pr: Optional[LatestPriceRent],
        history_year: Optional[int],
    ) -> None:
        primary = (plan.suburb or "").lower()
        candidates = plan.compare.suburbs if plan.compare else []
        suburbs = [s for s in candidates if s and s.lower() != primary][: self.max_nearby]

        year = pr.year if pr else None
        if year is None:
            year = history_year
        if year is None:
            res = await self._gather([queries.yield_history(plan.suburb, plan.state, pt) for pt in plan.propertyTypes])
            year = metrics.latest_year([row for r in res if r for row in r])
        if year is None or not suburbs:
            bundle.nearbyCompare = NearbyCompare(year=year, rows=[])
            return

        (rows,) = await self._gather([queries.nearby_yields(suburbs, year, plan.state)])
        if rows is None:
            bundle.errors.append("nearbyCompare")
        primary_yield = bundle.latestYield or (metrics.latest_yield(pr) if pr else None)
        bundle.nearbyCompare = metrics.nearby_compare(rows or [], suburbs, year, primary_yield, limit=self.max_nearby)

    async def _capital_average(self, bundle: ResultBundle) -> None:
        state, year = bundle.state, bundle.latestYieldYear

        async def compute() -> PropertyPair:
            rows = await self._fetch(queries.lga_yields(state, year))
            return metrics.state_average(rows)

        try:
            avg = await self.state_averages.get_or_compute(state, year, compute)
        except DataFetchError as ex:
            logger.warning("state average unavailable for %s-%s: %s", state, year, ex)
            bundle.errors.append("capitalAvg")
            return
        bundle.capitalAvg = avg
        if bundle.latestYield is not None:
            bundle.capitalDelta = PropertyPair(
                house=metrics.delta_pp(bundle.latestYield.house, avg.house),
                unit=metrics.delta_pp(bundle.latestYield.unit, avg.unit),
            )
