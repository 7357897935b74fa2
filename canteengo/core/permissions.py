"""
CanteenGo — Capability checks

Every mutating operation calls one of these first. They answer yes/no from
the store and never trust the role claim carried in the JWT.
"""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from canteengo.models import Canteen, Order, Role, UserRole


async def has_role(db: AsyncSession, user_id: str, role: Role) -> bool:
    result = await db.execute(
        select(UserRole.id).where(UserRole.user_id == user_id, UserRole.role == role).limit(1)
    )
    return result.first() is not None


async def owns_canteen(db: AsyncSession, user_id: str, canteen_id: str) -> bool:
    result = await db.execute(
        select(Canteen.id).where(Canteen.id == canteen_id, Canteen.vendor_id == user_id).limit(1)
    )
    return result.first() is not None


async def can_place_order(db: AsyncSession, actor_id: str, student_id: str) -> bool:
    """Students may only create orders under their own identity."""
    if actor_id != student_id:
        return False
    return await has_role(db, actor_id, Role.STUDENT)


async def can_manage_order(db: AsyncSession, actor_id: str, order: Order) -> bool:
    """Only the vendor owning the order's canteen may change its status."""
    return await owns_canteen(db, actor_id, order.canteen_id)


async def can_view_order(db: AsyncSession, actor_id: str, order: Order) -> bool:
    if order.student_id == actor_id:
        return True
    return await owns_canteen(db, actor_id, order.canteen_id)
