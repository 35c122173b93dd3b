"""Liveness for load balancers: the database, plus Redis when sessions use it."""

import logging

import redis
from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from linkdesk.db.connection import get_db
from linkdesk.web.auth import get_redis_client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])


def _session_store_status() -> str:
    """``memory`` without REDIS_URL; sessions and rate limits fall back there."""
    redis_client = get_redis_client()
    if redis_client is None:
        return "memory"
    try:
        redis_client.ping()
        return "redis"
    except redis.exceptions.RedisError as e:
        logger.warning("Redis unreachable, sessions fall back to memory: %s", e)
        return "memory (redis unreachable)"


@router.get("", status_code=status.HTTP_200_OK)
async def health_check(response: Response, db: AsyncSession = Depends(get_db)):
    """503 when the database is unreachable; a degraded session store stays 200."""
    body = {"status": "ok", "database": "connected", "sessionStore": _session_store_status()}
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Health check could not reach the database: %s", e)
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        body.update(status="error", database="disconnected", detail=str(e))
    return body
