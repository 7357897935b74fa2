"""
CanteenGo — Health endpoint
"""
import asyncio
from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import func, select

from canteengo.core.change_feed import channel_for
from canteengo.core.config import get_settings
from canteengo.core.redis_client import get_redis
from canteengo.db import database
from canteengo.db.order_ops import ORDERS_TABLE
from canteengo.models import ACTIVE_STATUSES, Order

settings = get_settings()
router = APIRouter(tags=["health"])


async def _active_orders() -> int:
    async with database.SessionLocal() as db:
        result = await db.execute(
            select(func.count(Order.id)).where(Order.status.in_(list(ACTIVE_STATUSES)))
        )
        return result.scalar_one()


async def _feed_subscribers() -> int:
    counts = await get_redis().pubsub_numsub(channel_for(ORDERS_TABLE))
    return counts[0][1] if counts else 0


@router.get("/health")
async def health_check():
    """
    Checks the order store and the change feed.

    The store check counts active (pending or ready) orders, the pickup-code
    space those orders occupy. The feed check reports how many order streams
    are subscribed. 200 when both answer, 503 otherwise.
    """
    deps: dict[str, str] = {}
    healthy = True
    active = None
    streams = None

    try:
        active = await asyncio.wait_for(_active_orders(), timeout=settings.HEALTH_CHECK_TIMEOUT)
        deps["order_store"] = "ok"
    except Exception as e:
        deps["order_store"] = f"error: {str(e)[:100]}"
        healthy = False

    try:
        streams = await asyncio.wait_for(_feed_subscribers(), timeout=settings.HEALTH_CHECK_TIMEOUT)
        deps["change_feed"] = "ok"
    except Exception as e:
        deps["change_feed"] = f"error: {str(e)[:100]}"
        healthy = False

    return JSONResponse(
        content={
            "status": "healthy" if healthy else "degraded",
            "service": settings.SERVICE_NAME,
            "version": settings.SERVICE_VERSION,
            "dependencies": deps,
            "active_orders": active,
            "order_streams": streams,
        },
        status_code=200 if healthy else 503,
    )
