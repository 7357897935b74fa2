"""
Pickup code generator: 6-digit, zero padded, unique among pending/ready orders.
"""
import random
from decimal import Decimal

import pytest

from canteengo.core.pickup_code import code_in_use, draw_code, generate_pickup_code
from canteengo.db.order_ops import place_order, transition_order
from canteengo.models import Order, OrderStatus
from canteengo.schemas.order import OrderCreate, OrderItemRequest


class ScriptedRandom(random.Random):
    """Returns the scripted values in order, then falls back to a seeded stream."""

    def __init__(self, values):
        super().__init__(1234)
        self.values = list(values)
        self.calls = 0

    def randrange(self, *args, **kwargs):
        self.calls += 1
        if self.values:
            return self.values.pop(0)
        return super().randrange(*args, **kwargs)


async def _seed_order(session_factory, canteen, student, code, status):
    async with session_factory() as session:
        session.add(Order(
            student_id=student,
            canteen_id=canteen["id"],
            status=status,
            total_amount=Decimal("10.00"),
            pickup_code=code,
        ))
        await session.commit()


def _payload(canteen):
    return OrderCreate(canteen_id=canteen["id"], items=[OrderItemRequest(menu_item_id=canteen["a"], quantity=1)])


def test_draw_code_is_zero_padded():
    assert draw_code(ScriptedRandom([42])) == "000042"
    assert draw_code(ScriptedRandom([0])) == "000000"
    assert draw_code(ScriptedRandom([999999])) == "999999"


def test_draw_code_is_six_digits():
    rng = random.Random(7)
    for _ in range(200):
        code = draw_code(rng)
        assert len(code) == 6 and code.isdigit()


@pytest.mark.asyncio
async def test_skips_codes_held_by_active_orders(session_factory, db, canteen, student):
    await _seed_order(session_factory, canteen, student, "111111", OrderStatus.PENDING)
    await _seed_order(session_factory, canteen, student, "222222", OrderStatus.READY)

    rng = ScriptedRandom([111111, 222222, 333333])
    assert await generate_pickup_code(db, rng) == "333333"
    assert rng.calls == 3


@pytest.mark.asyncio
async def test_completed_order_code_is_free_again(session_factory, db, canteen, student):
    await _seed_order(session_factory, canteen, student, "123456", OrderStatus.COMPLETED)

    assert not await code_in_use(db, "123456")
    assert await generate_pickup_code(db, ScriptedRandom([123456])) == "123456"


@pytest.mark.asyncio
async def test_active_codes_never_collide_across_many_orders(session_factory, redis, canteen, student):
    # A tiny draw space forces repeated collisions the generator has to step around
    rng = ScriptedRandom([i % 5 for i in range(40)])
    codes = []
    async with session_factory() as session:
        for _ in range(12):
            order = await place_order(session, student, _payload(canteen), rng=rng)
            codes.append(order.pickup_code)

    assert len(set(codes)) == len(codes)
    assert all(len(c) == 6 and c.isdigit() for c in codes)


@pytest.mark.asyncio
async def test_code_reused_after_completion(session_factory, redis, canteen, student, vendor):
    async with session_factory() as session:
        first = await place_order(session, student, _payload(canteen), rng=ScriptedRandom([777777]))
        await transition_order(session, vendor, first.id, OrderStatus.READY)
        await transition_order(session, vendor, first.id, OrderStatus.COMPLETED)

        second = await place_order(session, student, _payload(canteen), rng=ScriptedRandom([777777]))

    assert first.pickup_code == second.pickup_code == "777777"
    assert first.id != second.id


@pytest.mark.asyncio
async def test_insert_race_on_same_code_is_retried(session_factory, redis, canteen, student, monkeypatch):
    """Simulate a concurrent writer winning the code between check and insert."""
    await _seed_order(session_factory, canteen, student, "555555", OrderStatus.PENDING)

    from canteengo.db import order_ops

    issued = iter(["555555", "666666"])

    async def racing_generator(db, rng=None):
        return next(issued)

    monkeypatch.setattr(order_ops, "generate_pickup_code", racing_generator)

    async with session_factory() as session:
        order = await place_order(session, student, _payload(canteen))

    assert order.pickup_code == "666666"
