"""
CanteenGo — SSE order stream over the Redis change feed

Architecture:
  - place_order / transition_order publish to Redis channel changes:orders
  - Students subscribe to every change of their own orders
  - Vendors subscribe to new orders of their own canteen
  - Each pushed event only wakes the stream up: the order is re-fetched from
    the store (with the caller's access rules) before anything is sent, so
    interleaved or out-of-order pushes never show stale state
"""
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from canteengo.core.change_feed import INSERT, ChangeEvent, ChangeFeed, Subscription
from canteengo.core.config import get_settings
from canteengo.core.errors import NotFoundError
from canteengo.core.notifications import (
    NEW_ORDER_MESSAGE,
    format_sse,
    is_ready_transition,
    order_ready_notification,
)
from canteengo.core.redis_client import get_redis
from canteengo.db import database
from canteengo.db.canteen_ops import get_vendor_canteen
from canteengo.db.database import get_db
from canteengo.db.order_ops import ORDERS_TABLE, get_visible_order
from canteengo.db.user_ops import get_role
from canteengo.middleware.auth import actor_id
from canteengo.models import Role

settings = get_settings()
logger = logging.getLogger(__name__)
router = APIRouter(prefix="/realtime", tags=["realtime"])


async def render_event(event: ChangeEvent, user_id: str, role: Role) -> list[str]:
    """Turn one change event into SSE frames for this subscriber."""
    order_id = event.new.get("id")
    if not order_id:
        return []

    async with database.SessionLocal() as db:
        try:
            order = await get_visible_order(db, user_id, order_id)
        except NotFoundError:
            return []

    payload = order.model_dump(mode="json")
    if role == Role.VENDOR:
        return [format_sse("new_order", {"message": NEW_ORDER_MESSAGE, "order": payload})]

    frames = [format_sse("order_update", {"event_type": event.event_type, "order": payload})]
    if is_ready_transition(event.old, event.new):
        frames.append(format_sse(
            "order_ready",
            order_ready_notification(order.id, order.canteen_name or "the canteen",
                                     order.total_amount, order.pickup_code),
        ))
    return frames


async def order_event_stream(
    request: Request, subscription: Subscription, user_id: str, role: Role
) -> AsyncGenerator[str, None]:
    await subscription.open()
    idle = 0.0
    try:
        yield ": connected\n\n"
        yield f"retry: {settings.SSE_RETRY_MILLISECONDS}\n\n"

        while True:
            if await request.is_disconnected():
                break

            event = await subscription.get(timeout=settings.SSE_POLL_TIMEOUT_SECONDS)
            if event is None:
                idle += settings.SSE_POLL_TIMEOUT_SECONDS
                if idle >= settings.SSE_KEEPALIVE_INTERVAL_SECONDS:
                    idle = 0.0
                    yield ": keepalive\n\n"
                continue

            idle = 0.0
            for frame in await render_event(event, user_id, role):
                yield frame
    finally:
        await subscription.close()
        logger.debug("Order stream closed for %s", user_id)


async def subscription_for(db: AsyncSession, feed: ChangeFeed, user_id: str) -> tuple[Subscription, Role]:
    role = await get_role(db, user_id)
    if role == Role.STUDENT:
        return feed.subscribe(ORDERS_TABLE, filters={"student_id": user_id}), role
    if role == Role.VENDOR:
        canteen = await get_vendor_canteen(db, user_id)
        if canteen is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="No canteen registered for this vendor."
            )
        return feed.subscribe(ORDERS_TABLE, event_type=INSERT, filters={"canteen_id": canteen.id}), role
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="No role assigned to this account.")


@router.get("/orders")
async def stream_orders(request: Request, db: AsyncSession = Depends(get_db)):
    """
    SSE endpoint. Browser creates an EventSource to this URL (token in the
    Authorization header or ?access_token=). Events:
      order_update  student: one of your orders changed (re-fetched row)
      order_ready   student: pending → ready, with a notification payload
      new_order     vendor: a new order was placed at your canteen
    """
    user_id = actor_id(request)
    subscription, role = await subscription_for(db, ChangeFeed(get_redis()), user_id)

    return StreamingResponse(
        order_event_stream(request, subscription, user_id, role),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",  # Disable Nginx buffering
            "Connection": "keep-alive",
        },
    )
