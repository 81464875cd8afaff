from __future__ import annotations
import logging
from typing import Any, Dict, List

from sqlalchemy import and_, column, select, table
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql import Select

from propsignal.core.errors import DataFetchError, QueryRejectedError
from propsignal.core.models import TableQuery
from propsignal.core.read_only_db_executor import ReadOnlyDbExecutor
from propsignal.core.redact import redact
from propsignal.core.schema_registry import OPERATORS, SchemaRegistry

logger = logging.getLogger(__name__)


class GenericQueryCompiler:
    """Compiles whitelisted TableQuery descriptors into SQLAlchemy selects.

    Only tables, columns and operators known to the SchemaRegistry are ever
    compiled. Anything else is rejected; `run` logs the rejection and returns
    no rows instead of raising. Failures of the store itself surface as
    DataFetchError so callers can retry or degrade.
    """

    def __init__(self, registry: SchemaRegistry, db: ReadOnlyDbExecutor):
        self.registry = registry
        self.db = db

    def build_statement(self, q: TableQuery) -> Select:
        spec = self.registry.table(q.table)
        if spec is None:
            raise QueryRejectedError(f"Unknown table: {q.table}")
        if not q.select:
            raise QueryRejectedError("Empty select list")
        unknown = [c for c in q.select if not spec.has_column(c)]
        if unknown:
            raise QueryRejectedError(f"Unknown column(s) for {q.table}: {', '.join(unknown)}")

        t = table(spec.physical, *[column(c) for c in sorted(spec.columns)])
        stmt = select(*[t.c[c] for c in q.select])

        clauses = []
        for f in q.filters:
            if f.op not in OPERATORS:
                raise QueryRejectedError(f"Unknown operator: {f.op}")
            if not spec.can_filter(f.col):
                raise QueryRejectedError(f"Column not filterable: {q.table}.{f.col}")
            col = t.c[f.col]
            if f.op == "eq":
                if f.value is None:
                    raise QueryRejectedError(f"eq on {f.col} needs a value; use is_null")
                clauses.append(col == f.value)
            elif f.op == "in":
                clauses.append(col.in_(list(f.values)))
            elif f.op == "between":
                lo = f.values[0] if len(f.values) > 0 else None
                hi = f.values[1] if len(f.values) > 1 else None
                if lo is not None:
                    clauses.append(col >= lo)
                if hi is not None:
                    clauses.append(col <= hi)
            elif f.op == "is_null":
                clauses.append(col.is_(None))
            elif f.op == "not_null":
                clauses.append(col.is_not(None))
        if clauses:
            stmt = stmt.where(and_(*clauses))

        if q.orderBy is not None:
            if not spec.can_filter(q.orderBy.col):
                raise QueryRejectedError(f"Cannot order by {q.table}.{q.orderBy.col}")
            oc = t.c[q.orderBy.col]
            stmt = stmt.order_by(oc.desc() if q.orderBy.dir == "desc" else oc.asc())

        max_rows = self.registry.max_rows
        limit = q.limit if q.limit is not None else max_rows
        if limit <= 0:
            raise QueryRejectedError(f"Non-positive limit: {limit}")
        stmt = stmt.limit(min(int(limit), max_rows))
        return stmt

    def run(self, q: TableQuery) -> List[Dict[str, Any]]:
        try:
            stmt = self.build_statement(q)
        except QueryRejectedError as ex:
            logger.error("query %s rejected: %s", q.id, ex)
            return []
        try:
            rows = self.db.execute(stmt)
        except SQLAlchemyError as ex:
            raise DataFetchError(q.id, redact(str(ex))) from ex
        logger.debug("query %s on %s returned %d rows", q.id, q.table, len(rows))
        return rows
