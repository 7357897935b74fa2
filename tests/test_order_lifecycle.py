"""
Order placement and vendor transitions at the operation level.
"""
from decimal import Decimal

import pytest

from canteengo.core.change_feed import INSERT, UPDATE, ChangeFeed
from canteengo.core.errors import (
    AuthorizationError,
    InvalidTransitionError,
    NotFoundError,
    OrderValidationError,
)
from canteengo.db.order_ops import get_visible_order, place_order, transition_order
from canteengo.models import MenuItem, OrderStatus
from canteengo.schemas.order import OrderCreate, OrderItemRequest

from conftest import fetch_order


def _order(canteen, *lines, student_id=None):
    return OrderCreate(
        canteen_id=canteen["id"],
        items=[OrderItemRequest(menu_item_id=mid, quantity=q) for mid, q in lines],
        student_id=student_id,
    )


async def _drain(subscription, attempts=20):
    events = []
    for _ in range(attempts):
        event = await subscription.get(timeout=0.05)
        if event is not None:
            events.append(event)
        elif events:
            break
    return events


@pytest.mark.asyncio
async def test_two_dosas_and_a_coffee(session_factory, redis, canteen, student):
    async with session_factory() as db:
        order = await place_order(db, student, _order(canteen, (canteen["a"], 2), (canteen["b"], 1)))

    assert order.total_amount == Decimal("130.00")
    assert order.status == OrderStatus.PENDING
    assert len(order.pickup_code) == 6 and order.pickup_code.isdigit()
    assert len(order.items) == 2
    assert order.canteen_name == "Main Canteen"
    assert sum(i.price * i.quantity for i in order.items) == order.total_amount


@pytest.mark.asyncio
async def test_repeated_item_lines_are_merged(session_factory, redis, canteen, student):
    async with session_factory() as db:
        order = await place_order(db, student, _order(canteen, (canteen["a"], 1), (canteen["a"], 2)))

    assert len(order.items) == 1
    assert order.items[0].quantity == 3
    assert order.total_amount == Decimal("150.00")


@pytest.mark.asyncio
async def test_line_prices_are_frozen_at_order_time(session_factory, redis, canteen, student):
    async with session_factory() as db:
        order = await place_order(db, student, _order(canteen, (canteen["a"], 1)))

    async with session_factory() as db:
        item = await db.get(MenuItem, canteen["a"])
        item.price = Decimal("65.00")
        await db.commit()

    async with session_factory() as db:
        again = await get_visible_order(db, student, order.id)
    assert again.items[0].price == Decimal("50.00")
    assert again.total_amount == Decimal("50.00")


@pytest.mark.asyncio
async def test_cannot_order_for_another_student(session_factory, redis, canteen, student, other_student):
    async with session_factory() as db:
        with pytest.raises(AuthorizationError):
            await place_order(db, student, _order(canteen, (canteen["a"], 1), student_id=other_student))


@pytest.mark.asyncio
async def test_vendor_cannot_place_orders(session_factory, redis, canteen, vendor):
    async with session_factory() as db:
        with pytest.raises(AuthorizationError):
            await place_order(db, vendor, _order(canteen, (canteen["a"], 1)))


@pytest.mark.asyncio
async def test_missing_canteen(session_factory, redis, canteen, student):
    payload = OrderCreate(canteen_id="nope", items=[OrderItemRequest(menu_item_id=canteen["a"], quantity=1)])
    async with session_factory() as db:
        with pytest.raises(NotFoundError):
            await place_order(db, student, payload)


@pytest.mark.asyncio
@pytest.mark.parametrize("key", ["unavailable", "unknown", "foreign"])
async def test_invalid_items_are_rejected(session_factory, redis, canteen, other_canteen, student, key):
    menu_item_id = {
        "unavailable": canteen["unavailable"],
        "unknown": "does-not-exist",
        "foreign": other_canteen["item"],
    }[key]
    async with session_factory() as db:
        with pytest.raises(OrderValidationError):
            await place_order(db, student, _order(canteen, (menu_item_id, 1)))


@pytest.mark.asyncio
async def test_full_lifecycle_keeps_pickup_code(session_factory, redis, canteen, student, vendor):
    async with session_factory() as db:
        placed = await place_order(db, student, _order(canteen, (canteen["a"], 1)))

    async with session_factory() as db:
        ready, changed = await transition_order(db, vendor, placed.id, OrderStatus.READY)
    assert changed and ready.status == OrderStatus.READY

    async with session_factory() as db:
        done, changed = await transition_order(db, vendor, placed.id, OrderStatus.COMPLETED)
    assert changed and done.status == OrderStatus.COMPLETED
    assert done.pickup_code == placed.pickup_code
    assert done.total_amount == placed.total_amount


@pytest.mark.asyncio
async def test_other_vendor_is_rejected_and_status_unchanged(
    session_factory, redis, canteen, other_canteen, student, other_vendor
):
    async with session_factory() as db:
        placed = await place_order(db, student, _order(canteen, (canteen["a"], 1)))

    async with session_factory() as db:
        with pytest.raises(AuthorizationError):
            await transition_order(db, other_vendor, placed.id, OrderStatus.READY)

    assert (await fetch_order(session_factory, placed.id)).status == OrderStatus.PENDING


@pytest.mark.asyncio
async def test_student_cannot_advance_own_order(session_factory, redis, canteen, student):
    async with session_factory() as db:
        placed = await place_order(db, student, _order(canteen, (canteen["a"], 1)))
        with pytest.raises(AuthorizationError):
            await transition_order(db, student, placed.id, OrderStatus.READY)


@pytest.mark.asyncio
async def test_skip_to_completed_is_rejected(session_factory, redis, canteen, student, vendor):
    async with session_factory() as db:
        placed = await place_order(db, student, _order(canteen, (canteen["a"], 1)))

    async with session_factory() as db:
        with pytest.raises(InvalidTransitionError):
            await transition_order(db, vendor, placed.id, OrderStatus.COMPLETED)

    assert (await fetch_order(session_factory, placed.id)).status == OrderStatus.PENDING


@pytest.mark.asyncio
async def test_backward_move_is_rejected(session_factory, redis, canteen, student, vendor):
    async with session_factory() as db:
        placed = await place_order(db, student, _order(canteen, (canteen["a"], 1)))
        await transition_order(db, vendor, placed.id, OrderStatus.READY)

    async with session_factory() as db:
        with pytest.raises(InvalidTransitionError):
            await transition_order(db, vendor, placed.id, OrderStatus.PENDING)

    assert (await fetch_order(session_factory, placed.id)).status == OrderStatus.READY


@pytest.mark.asyncio
async def test_unknown_order(session_factory, redis, vendor):
    async with session_factory() as db:
        with pytest.raises(NotFoundError):
            await transition_order(db, vendor, "missing", OrderStatus.READY)


@pytest.mark.asyncio
async def test_events_published_after_commit(session_factory, redis, canteen, student, vendor):
    feed = ChangeFeed(redis)
    async with feed.subscribe("orders") as sub:
        async with session_factory() as db:
            placed = await place_order(db, student, _order(canteen, (canteen["a"], 1)), feed=feed)
        async with session_factory() as db:
            await transition_order(db, vendor, placed.id, OrderStatus.READY, feed=feed)
        # replaying the same transition succeeds quietly and publishes nothing
        async with session_factory() as db:
            order, changed = await transition_order(db, vendor, placed.id, OrderStatus.READY, feed=feed)

        events = await _drain(sub)

    assert not changed and order.status == OrderStatus.READY
    assert [e.event_type for e in events] == [INSERT, UPDATE]
    assert events[0].new["pickup_code"] == placed.pickup_code
    assert events[1].old["status"] == "pending"
    assert events[1].new["status"] == "ready"


@pytest.mark.asyncio
async def test_publish_failure_does_not_undo_the_order(session_factory, canteen, student):
    class BrokenFeed:
        async def publish(self, event):
            raise ConnectionError("redis down")

    async with session_factory() as db:
        placed = await place_order(db, student, _order(canteen, (canteen["a"], 1)), feed=BrokenFeed())

    assert (await fetch_order(session_factory, placed.id)) is not None


@pytest.mark.asyncio
async def test_order_visibility(session_factory, redis, canteen, student, other_student, vendor, other_vendor):
    async with session_factory() as db:
        placed = await place_order(db, student, _order(canteen, (canteen["a"], 1)))

    async with session_factory() as db:
        assert (await get_visible_order(db, student, placed.id)).id == placed.id
        assert (await get_visible_order(db, vendor, placed.id)).id == placed.id
        for outsider in (other_student, other_vendor):
            with pytest.raises(NotFoundError):
                await get_visible_order(db, outsider, placed.id)
