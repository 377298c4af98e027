"""
System Router - Health checks
"""
from datetime import datetime, timezone
import logging
import redis
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from spotitnow.config import settings
from spotitnow.dependencies import get_db
from spotitnow.services.llm_service import llm_service
from spotitnow.worker.celery_app import celery_app

logger = logging.getLogger(__name__)
router = APIRouter()


def routed_queues():
    """Names of the broker queues tasks are routed to"""
    return sorted({route["queue"] for route in celery_app.conf.task_routes.values()})


@router.get("/health")
async def health_check(db: Session = Depends(get_db)):
    """
    Status of the database, the redis cache and the LLM providers.

    Redis only backs the geocode cache and the worker queue, so the
    service reports "degraded" rather than "unhealthy" without it.
    """
    database_status = "unhealthy"
    try:
        db.execute(text("SELECT 1"))
        database_status = "healthy"
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")

    redis_status = "unhealthy"
    worker_queue_depth = 0
    try:
        r = redis.from_url(settings.REDIS_URL, socket_connect_timeout=2)
        r.ping()
        redis_status = "healthy"
        worker_queue_depth = sum(r.llen(queue) or 0 for queue in routed_queues())
    except redis.RedisError as e:
        logger.warning(f"Redis health check failed: {e}")

    llm = await llm_service.health_check()

    if database_status != "healthy":
        overall = "unhealthy"
    elif redis_status != "healthy" or not llm.get("healthy"):
        overall = "degraded"
    else:
        overall = "healthy"

    return {
        "status": overall,
        "database": database_status,
        "redis": redis_status,
        "llm": llm,
        "worker_queue_depth": worker_queue_depth,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }
