# propsignal/core/read_only_db_executor.py
from __future__ import annotations
from typing import List, Dict, Any
from decimal import Decimal
from datetime import date, datetime

from sqlalchemy.engine import Engine
from sqlalchemy.sql import Select


def _json_safe(v: Any) -> Any:
    """Coerce DB types into JSON-serializable values."""
    if isinstance(v, Decimal):
        # Medians and yields are analytics figures; float is enough
        return float(v)
    if isinstance(v, (date, datetime)):
        return v.isoformat()
    return v


class ReadOnlyDbExecutor:
    def __init__(self, engine: Engine, statement_timeout_ms: int):
        self.engine = engine
        self.statement_timeout_ms = statement_timeout_ms

    def execute(self, stmt: Select) -> List[Dict[str, Any]]:
        with self.engine.connect() as conn:
            if conn.dialect.name == "postgresql":
                conn.exec_driver_sql("SET TRANSACTION READ ONLY")
                conn.exec_driver_sql(f"SET LOCAL statement_timeout = {int(self.statement_timeout_ms)}")
            rows = conn.execute(stmt).mappings().all()
            out: List[Dict[str, Any]] = []
            for r in rows:
                out.append({k: _json_safe(v) for k, v in dict(r).items()})
            return out

    def ping(self) -> bool:
        with self.engine.connect() as conn:
            conn.exec_driver_sql("SELECT 1")
        return True
