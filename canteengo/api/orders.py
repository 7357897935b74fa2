"""
CanteenGo — Orders API

Flow (placement):
  1. JWT validated by middleware (request.state.user set)
  2. Idempotency-Key replay handled by IdempotencyMiddleware
  3. place_order: ownership check, price copy, pickup code, insert
  4. INSERT change event published for vendor dashboards

Flow (status update):
  1. Ownership checked before anything else
  2. Redis in-flight lock per order (token-owned), so a second click while
     the first update is still running is refused instead of queued
  3. transition_order: row lock, ownership re-check, state machine, update
  4. UPDATE change event published for the student's stream
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession

from canteengo.api.deps import run_store_op
from canteengo.core.config import get_settings
from canteengo.core.redis_client import acquire_lock, get_redis, release_lock
from canteengo.db import order_ops
from canteengo.db.database import get_db
from canteengo.middleware.auth import actor_id
from canteengo.schemas.order import OrderCreate, OrderResponse, StatusUpdate, TransitionResponse

settings = get_settings()
logger = logging.getLogger(__name__)
router = APIRouter(prefix="/orders", tags=["orders"])

INFLIGHT_PREFIX = "inflight:order:"


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(payload: OrderCreate, request: Request, db: AsyncSession = Depends(get_db)):
    """Place an order for the calling student. The pickup code is assigned server-side."""
    return await run_store_op(order_ops.place_order(db, actor_id(request), payload), "Placing order")


@router.get("", response_model=list[OrderResponse])
async def list_my_orders(request: Request, db: AsyncSession = Depends(get_db)):
    """Order history of the caller, newest first."""
    return await run_store_op(order_ops.list_student_orders(db, actor_id(request)), "Fetching orders")


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str, request: Request, db: AsyncSession = Depends(get_db)):
    return await run_store_op(
        order_ops.get_visible_order(db, actor_id(request), order_id), "Fetching order"
    )


@router.patch("/{order_id}/status", response_model=TransitionResponse)
async def update_order_status(
    order_id: str, payload: StatusUpdate, request: Request, db: AsyncSession = Depends(get_db)
):
    user_id = actor_id(request)
    # Non-owners are refused before they can hold the order's lock
    await run_store_op(order_ops.check_order_manager(db, user_id, order_id), "Updating order")

    redis = get_redis()
    lock_key = f"{INFLIGHT_PREFIX}{order_id}"

    token = None
    try:
        token = await acquire_lock(redis, lock_key, settings.STATUS_UPDATE_LOCK_TTL_SECONDS)
        if token is None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="A status update for this order is already in progress.",
            )
    except RedisError as exc:
        # The row lock taken by transition_order still serialises writers
        logger.warning("In-flight lock unavailable for order %s: %s", order_id, exc)

    try:
        order, changed = await run_store_op(
            order_ops.transition_order(db, user_id, order_id, payload.status), "Updating order"
        )
    finally:
        if token is not None:
            try:
                if not await release_lock(redis, lock_key, token):
                    logger.warning("In-flight lock %s expired before the update finished", lock_key)
            except RedisError as exc:
                logger.warning("Could not release in-flight lock %s: %s", lock_key, exc)

    if changed:
        message = f"Order marked as {order.status.value}!"
    else:
        message = f"Order is already {order.status.value}."
    return TransitionResponse(order=order, changed=changed, message=message)
