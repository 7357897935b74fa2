"""
CanteenGo — Pickup code generator

Draws uniform random 6-digit codes until one is not held by an order in
the active set {pending, ready}. Completed orders release their code.
"""
import logging
import random

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from canteengo.core.config import get_settings
from canteengo.models.order import ACTIVE_STATUSES, Order

settings = get_settings()
logger = logging.getLogger(__name__)

_system_random = random.SystemRandom()


def draw_code(rng: random.Random | None = None, digits: int | None = None) -> str:
    digits = digits or settings.PICKUP_CODE_DIGITS
    rng = rng or _system_random
    return str(rng.randrange(10 ** digits)).zfill(digits)


async def code_in_use(db: AsyncSession, code: str) -> bool:
    result = await db.execute(
        select(Order.id)
        .where(Order.pickup_code == code, Order.status.in_(list(ACTIVE_STATUSES)))
        .limit(1)
    )
    return result.first() is not None


async def generate_pickup_code(db: AsyncSession, rng: random.Random | None = None) -> str:
    """
    Return a code not used by any active order.

    There is no attempt cap: with a million codes the expected number of
    draws stays close to one for any realistic number of open orders.
    Two concurrent callers can still pick the same code; the partial unique
    index on orders catches that at insert time.
    """
    attempts = 0
    while True:
        attempts += 1
        code = draw_code(rng)
        if not await code_in_use(db, code):
            if attempts > 1:
                logger.debug("Pickup code found after %d draws", attempts)
            return code
