"""Liveness and readiness endpoints."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, status
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from pim_transfer.core.config import get_settings
from pim_transfer.db.session import get_engine
from pim_transfer.utils.redis_client import create_redis_client

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/health", tags=["health"])

SERVICE_NAME = "pim-transfer-api"


@router.get("/live", summary="Liveness probe")
async def live() -> dict[str, str]:
    """Indicates the API process is running."""
    return {"status": "ok", "service": SERVICE_NAME}


def _check_database() -> dict[str, str]:
    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}", exc_info=True)
        return {"status": "unhealthy", "message": f"Database connection failed: {e}"}
    return {"status": "healthy", "message": "Database connection successful"}


def _check_redis(url: str, label: str) -> dict[str, str]:
    try:
        client = create_redis_client(url, decode_responses=True, socket_connect_timeout=2)
        try:
            client.ping()
        finally:
            client.close()
    except RedisError as e:
        logger.warning(f"{label} health check failed: {e}")
        return {"status": "unhealthy", "message": f"{label} connection failed: {e}"}
    return {"status": "healthy", "message": f"{label} connection successful"}


@router.get("/ready", summary="Readiness probe")
def ready() -> dict[str, Any]:
    """Check the database (jobs, catalog) and Redis (queued work, progress).

    The Celery broker is reported but does not fail readiness; workers may
    run elsewhere.
    """
    settings = get_settings()
    checks = {
        "database": _check_database(),
        "redis": _check_redis(settings.redis_url, "Redis"),
        "celery_broker": _check_redis(settings.broker_url, "Celery broker"),
    }
    healthy = all(checks[name]["status"] == "healthy" for name in ("database", "redis"))
    payload: dict[str, Any] = {
        "status": "ok" if healthy else "unhealthy",
        "service": SERVICE_NAME,
        "checks": checks,
    }
    if not healthy:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=payload)
    return payload
