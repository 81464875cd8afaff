# propsignal/routers/health.py
from __future__ import annotations

import logging
from fastapi import APIRouter
from sqlalchemy.exc import SQLAlchemyError

from propsignal.deps import db, registry
from propsignal.core.redact import redact

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])


@router.get("/health", summary="Liveness check")
def health_check():
    return {"status": "ok", "tables": registry().list_tables()}


@router.get("/health/db", summary="Database connectivity (read-only)")
def db_health():
    try:
        return {"ok": db().ping()}
    except SQLAlchemyError as ex:
        logger.warning("db health check failed: %s", redact(str(ex)))
        return {"ok": False, "error": redact(str(ex))}
