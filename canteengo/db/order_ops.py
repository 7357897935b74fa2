"""
CanteenGo — Order lifecycle operations

  place_order       student → pending (pickup code assigned before insert)
  transition_order  vendor  → ready → completed

Both publish a change event once the store has committed. Publishing is best
effort: a Redis outage is logged and never undoes a committed mutation.
"""
import logging
import random
import uuid
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from canteengo.core.change_feed import INSERT, UPDATE, ChangeEvent, ChangeFeed
from canteengo.core.errors import (
    AuthorizationError,
    NotFoundError,
    OrderValidationError,
    PickupCodeConflict,
)
from canteengo.core.order_state import INITIAL_STATUS, check_transition
from canteengo.core.permissions import can_manage_order, can_place_order, can_view_order
from canteengo.core.pickup_code import generate_pickup_code
from canteengo.core.redis_client import get_redis
from canteengo.core.retry import with_pickup_code_retry
from canteengo.db.canteen_ops import get_vendor_canteen
from canteengo.models import Canteen, MenuItem, Order, OrderItem, OrderStatus
from canteengo.schemas.order import (
    OrderCreate,
    OrderItemResponse,
    OrderResponse,
    OrderRow,
    VendorOrderBoard,
)

logger = logging.getLogger(__name__)

ORDERS_TABLE = Order.__tablename__
CENTS = Decimal("0.01")


def snapshot(order: Order) -> dict:
    return OrderRow.model_validate(order).model_dump(mode="json")


async def _publish(feed: ChangeFeed | None, event: ChangeEvent) -> None:
    try:
        feed = feed or ChangeFeed(get_redis())
        await feed.publish(event)
    except Exception as exc:
        # Subscribers re-fetch on their next event; a missed push is not fatal
        logger.warning("Change feed unreachable, %s %s not published: %s",
                       event.event_type, event.new.get("id"), exc)


async def build_order_responses(db: AsyncSession, orders: list[Order]) -> list[OrderResponse]:
    """Attach canteen names and line items, preserving the order of `orders`."""
    if not orders:
        return []

    order_ids = [o.id for o in orders]
    canteen_ids = {o.canteen_id for o in orders}

    names = dict((await db.execute(
        select(Canteen.id, Canteen.name).where(Canteen.id.in_(canteen_ids))
    )).all())

    items_result = await db.execute(
        select(OrderItem, MenuItem.name)
        .join(MenuItem, MenuItem.id == OrderItem.menu_item_id, isouter=True)
        .where(OrderItem.order_id.in_(order_ids))
    )
    items: dict[str, list[OrderItemResponse]] = {oid: [] for oid in order_ids}
    for line, name in items_result.all():
        items[line.order_id].append(OrderItemResponse(
            id=line.id,
            menu_item_id=line.menu_item_id,
            name=name,
            quantity=line.quantity,
            price=line.price,
        ))

    return [
        OrderResponse(
            **OrderRow.model_validate(o).model_dump(),
            canteen_name=names.get(o.canteen_id),
            items=items[o.id],
        )
        for o in orders
    ]


async def build_order_response(db: AsyncSession, order: Order) -> OrderResponse:
    return (await build_order_responses(db, [order]))[0]


@with_pickup_code_retry()
async def place_order(
    db: AsyncSession,
    actor_id: str,
    payload: OrderCreate,
    feed: ChangeFeed | None = None,
    rng: random.Random | None = None,
) -> OrderResponse:
    """
    Create a pending order with its line items in one transaction.

    Prices are copied from the menu as they are right now; the total is the
    sum of quantity × price over the lines. The pickup code is computed and
    attached before the row is written; callers can never supply one.
    """
    student_id = payload.student_id or actor_id
    if not await can_place_order(db, actor_id, student_id):
        raise AuthorizationError("Only students can place orders, and only for themselves.")

    canteen = await db.get(Canteen, payload.canteen_id)
    if canteen is None:
        raise NotFoundError("Canteen not found.")

    quantities: dict[str, int] = {}
    for item in payload.items:
        quantities[item.menu_item_id] = quantities.get(item.menu_item_id, 0) + item.quantity

    result = await db.execute(select(MenuItem).where(MenuItem.id.in_(list(quantities))))
    menu = {m.id: m for m in result.scalars().all()}

    missing = [mid for mid in quantities if mid not in menu]
    if missing:
        raise OrderValidationError(f"Unknown menu items: {', '.join(missing)}")
    foreign = [m.id for m in menu.values() if m.canteen_id != canteen.id]
    if foreign:
        raise OrderValidationError(f"Items do not belong to this canteen: {', '.join(foreign)}")
    unavailable = [m.name for m in menu.values() if not m.is_available]
    if unavailable:
        raise OrderValidationError(f"Currently unavailable: {', '.join(unavailable)}")

    total = sum((menu[mid].price * qty for mid, qty in quantities.items()), Decimal("0"))

    code = await generate_pickup_code(db, rng)
    order = Order(
        id=str(uuid.uuid4()),
        student_id=student_id,
        canteen_id=canteen.id,
        status=INITIAL_STATUS,
        total_amount=total.quantize(CENTS),
        pickup_code=code,
    )
    db.add(order)
    try:
        await db.flush()
        for mid, qty in quantities.items():
            db.add(OrderItem(order_id=order.id, menu_item_id=mid, quantity=qty, price=menu[mid].price))
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        if "pickup_code" in str(exc.orig):
            raise PickupCodeConflict(code) from exc
        raise
    await db.refresh(order)

    logger.info("Order %s placed at canteen %s (code %s, total %s)",
                order.id, order.canteen_id, order.pickup_code, order.total_amount)
    await _publish(feed, ChangeEvent(table=ORDERS_TABLE, event_type=INSERT, new=snapshot(order)))
    return await build_order_response(db, order)


async def _require_manager(db: AsyncSession, actor_id: str, order: Order | None) -> None:
    if order is None:
        raise NotFoundError("Order not found.")
    if not await can_manage_order(db, actor_id, order):
        raise AuthorizationError("Only the vendor owning this canteen can update the order.")


async def check_order_manager(db: AsyncSession, actor_id: str, order_id: str) -> None:
    """Raise unless `actor_id` is the vendor owning the order's canteen."""
    await _require_manager(db, actor_id, await db.get(Order, order_id))


async def transition_order(
    db: AsyncSession,
    actor_id: str,
    order_id: str,
    target: OrderStatus,
    feed: ChangeFeed | None = None,
) -> tuple[OrderResponse, bool]:
    """
    Move an order one step forward. Returns (order, changed).

    Requesting the status the order already has succeeds without writing
    or publishing. Only the status column changes; the pickup code is kept
    through completion for display.
    """
    result = await db.execute(
        select(Order)
        .where(Order.id == order_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    order: Order | None = result.scalar_one_or_none()
    await _require_manager(db, actor_id, order)

    if not check_transition(order.status, target):
        return await build_order_response(db, order), False

    old = snapshot(order)
    order.status = OrderStatus(target)
    await db.commit()
    await db.refresh(order)

    logger.info("Order %s: %s → %s by %s", order.id, old["status"], order.status.value, actor_id)
    await _publish(feed, ChangeEvent(table=ORDERS_TABLE, event_type=UPDATE, new=snapshot(order), old=old))
    return await build_order_response(db, order), True


async def get_visible_order(db: AsyncSession, actor_id: str, order_id: str) -> OrderResponse:
    """Order as seen by its student or its canteen's vendor; 404 for anyone else."""
    order = await db.get(Order, order_id, populate_existing=True)
    if order is None or not await can_view_order(db, actor_id, order):
        raise NotFoundError("Order not found.")
    return await build_order_response(db, order)


async def list_student_orders(db: AsyncSession, student_id: str) -> list[OrderResponse]:
    result = await db.execute(
        select(Order).where(Order.student_id == student_id).order_by(Order.created_at.desc())
    )
    return await build_order_responses(db, list(result.scalars().all()))


async def list_vendor_orders(
    db: AsyncSession,
    vendor_id: str,
    status: OrderStatus | None = None,
    search: str | None = None,
) -> VendorOrderBoard:
    """Orders of the vendor's canteen, newest first, with per-status counts."""
    canteen = await get_vendor_canteen(db, vendor_id)
    if canteen is None:
        raise NotFoundError("No canteen registered for this vendor.")

    counts = {s.value: 0 for s in OrderStatus}
    count_rows = await db.execute(
        select(Order.status, func.count(Order.id))
        .where(Order.canteen_id == canteen.id)
        .group_by(Order.status)
    )
    for row_status, n in count_rows.all():
        counts[OrderStatus(row_status).value] = n

    query = select(Order).where(Order.canteen_id == canteen.id).order_by(Order.created_at.desc())
    if status is not None:
        query = query.where(Order.status == status)
    if search:
        query = query.where(Order.pickup_code.contains(search.strip(), autoescape=True))

    orders = list((await db.execute(query)).scalars().all())
    return VendorOrderBoard(
        canteen_id=canteen.id,
        counts=counts,
        orders=await build_order_responses(db, orders),
    )
