from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from propsignal.core import queries
from propsignal.core.errors import DataFetchError
from propsignal.core.models import ClarificationOption
from propsignal.core.query_compiler import GenericQueryCompiler

logger = logging.getLogger(__name__)


@dataclass
class Resolution:
    suburb: Optional[str]
    lga: Optional[str] = None
    state: Optional[str] = None
    options: List[ClarificationOption] = field(default_factory=list)
    nearby: List[str] = field(default_factory=list)

    @property
    def ambiguous(self) -> bool:
        return len({o.state for o in self.options}) > 1


class SuburbResolver:
    """Looks a planned suburb up in the suburb gazetteer.

    A name that exists in several states (and no state was given) comes back
    ambiguous with the candidate options; otherwise the LGA and state are
    attached along with other suburbs of the same LGA.
    """

    def __init__(self, compiler: GenericQueryCompiler, nearby_limit: int = 5):
        self.compiler = compiler
        self.nearby_limit = nearby_limit

    async def resolve(self, suburb: str, state: Optional[str] = None) -> Resolution:
        try:
            rows = await asyncio.to_thread(self.compiler.run, queries.suburb_lookup(suburb, state))
        except DataFetchError as ex:
            logger.warning("suburb lookup failed for %s: %s", suburb, ex)
            return Resolution(suburb=suburb, state=state)

        options: List[ClarificationOption] = []
        seen = set()
        for r in rows:
            key = (str(r.get("suburb")), r.get("lga"), str(r.get("state")))
            if key in seen or not r.get("state"):
                continue
            seen.add(key)
            options.append(ClarificationOption(suburb=key[0], lga=key[1], state=key[2]))

        if not options:
            logger.info("suburb %s not in gazetteer", suburb)
            return Resolution(suburb=suburb, state=state)

        res = Resolution(suburb=suburb, options=options)
        if res.ambiguous:
            logger.info("suburb %s is ambiguous across %d options", suburb, len(options))
            res.suburb = None
            return res

        pick = options[0]
        res.suburb, res.lga, res.state = pick.suburb, pick.lga, pick.state
        res.options = []
        if pick.lga:
            try:
                members = await asyncio.to_thread(
                    self.compiler.run, queries.lga_members(pick.lga, pick.state, limit=self.nearby_limit + 1)
                )
            except DataFetchError as ex:
                logger.warning("nearby lookup failed for %s: %s", pick.lga, ex)
                members = []
            res.nearby = [
                str(m["suburb"]) for m in members if str(m.get("suburb", "")).lower() != pick.suburb.lower()
            ][: self.nearby_limit]
        return res
