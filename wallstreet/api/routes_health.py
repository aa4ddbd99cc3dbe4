from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from wallstreet.api.dependencies import DbDep

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])


def _check_db(db: Session) -> bool:
    db.execute(text("SELECT 1"))
    return True


@router.get("/healthz")
async def healthz(db: DbDep) -> dict[str, str]:
    """Readiness probe: the relational store answers."""
    try:
        _check_db(db)
    except SQLAlchemyError as exc:
        logger.error("Database connectivity check failed: %s", exc)
        raise HTTPException(status_code=503, detail="Database connectivity check failed") from exc
    return {"status": "ok"}


@router.get("/live")
async def live() -> dict[str, str]:
    """Kubernetes-style liveness endpoint (no dependencies)."""
    return {"status": "alive"}


@router.get("/metrics")
async def metrics() -> Response:
    """Prometheus exposition of the default registry."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
