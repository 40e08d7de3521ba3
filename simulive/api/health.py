"""
Health check endpoints
"""

from fastapi import APIRouter
from sqlalchemy import text

from simulive.core.deps import SessionDep
from simulive.infra.redis import get_redis_client
from simulive.realtime.manager import hub

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(db: SessionDep):
    """
    Check health of all dependent services
    """
    status = {
        "api": "ok",
        "db": "unknown",
        "redis": "disabled",
        "sockets": hub.get_stats()["sockets"],
    }

    # Check DB
    try:
        await db.execute(text("SELECT 1"))
        status["db"] = "ok"
    except Exception as e:
        status["db"] = f"error: {str(e)}"

    # Check Redis
    redis = get_redis_client()
    if redis is not None:
        try:
            await redis.ping()
            status["redis"] = "ok"
        except Exception as e:
            status["redis"] = f"error: {str(e)}"

    return status
