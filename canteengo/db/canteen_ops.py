"""
CanteenGo — Canteen and menu CRUD

Writes are limited to the vendor who owns the canteen.
"""
import logging
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from canteengo.core.errors import AuthorizationError, ConflictError, NotFoundError
from canteengo.core.permissions import has_role, owns_canteen
from canteengo.models import Canteen, MenuItem, OrderItem, Role
from canteengo.schemas.canteen import (
    CanteenCreate,
    CanteenDetail,
    MenuItemCreate,
    MenuItemResponse,
    MenuItemUpdate,
)

logger = logging.getLogger(__name__)


async def list_canteens(db: AsyncSession) -> list[Canteen]:
    result = await db.execute(select(Canteen).order_by(Canteen.name))
    return list(result.scalars().all())


async def get_vendor_canteen(db: AsyncSession, vendor_id: str) -> Canteen | None:
    result = await db.execute(
        select(Canteen).where(Canteen.vendor_id == vendor_id).order_by(Canteen.created_at).limit(1)
    )
    return result.scalar_one_or_none()


async def get_canteen_detail(db: AsyncSession, canteen_id: str, actor_id: str | None = None) -> CanteenDetail:
    """Canteen with its menu. Unavailable items are visible to the owner only."""
    canteen = await db.get(Canteen, canteen_id)
    if canteen is None:
        raise NotFoundError("Canteen not found.")

    query = select(MenuItem).where(MenuItem.canteen_id == canteen_id).order_by(MenuItem.name)
    if actor_id != canteen.vendor_id:
        query = query.where(MenuItem.is_available.is_(True))
    items = (await db.execute(query)).scalars().all()

    detail = CanteenDetail.model_validate(canteen)
    detail.menu_items = [MenuItemResponse.model_validate(i) for i in items]
    return detail


async def create_canteen(db: AsyncSession, actor_id: str, payload: CanteenCreate) -> CanteenDetail:
    if not await has_role(db, actor_id, Role.VENDOR):
        raise AuthorizationError("Only vendors can register a canteen.")
    if await get_vendor_canteen(db, actor_id) is not None:
        raise ConflictError("Vendor already owns a canteen.")

    canteen = Canteen(
        name=payload.name,
        location=payload.location,
        vendor_id=actor_id,
        image_url=payload.image_url,
    )
    db.add(canteen)
    await db.flush()

    for item in payload.menu_items:
        db.add(MenuItem(canteen_id=canteen.id, **item.model_dump()))
    await db.commit()

    logger.info("Vendor %s registered canteen %s", actor_id, canteen.id)
    return await get_canteen_detail(db, canteen.id, actor_id)


async def add_menu_item(
    db: AsyncSession, actor_id: str, canteen_id: str, payload: MenuItemCreate
) -> MenuItem:
    if await db.get(Canteen, canteen_id) is None:
        raise NotFoundError("Canteen not found.")
    if not await owns_canteen(db, actor_id, canteen_id):
        raise AuthorizationError("You can only manage your own canteen's menu.")

    item = MenuItem(canteen_id=canteen_id, **payload.model_dump())
    db.add(item)
    await db.commit()
    await db.refresh(item)
    return item


async def _owned_menu_item(db: AsyncSession, actor_id: str, item_id: str) -> MenuItem:
    item = await db.get(MenuItem, item_id)
    if item is None:
        raise NotFoundError("Menu item not found.")
    if not await owns_canteen(db, actor_id, item.canteen_id):
        raise AuthorizationError("You can only manage your own canteen's menu.")
    return item


async def update_menu_item(
    db: AsyncSession, actor_id: str, item_id: str, payload: MenuItemUpdate
) -> MenuItem:
    item = await _owned_menu_item(db, actor_id, item_id)
    for field, value in payload.model_dump(exclude_unset=True).items():
        if field in ("name", "price", "is_available") and value is None:
            continue
        setattr(item, field, value)
    await db.commit()
    await db.refresh(item)
    return item


async def delete_menu_item(db: AsyncSession, actor_id: str, item_id: str) -> None:
    item = await _owned_menu_item(db, actor_id, item_id)
    ordered = await db.execute(select(OrderItem.id).where(OrderItem.menu_item_id == item_id).limit(1))
    if ordered.first() is not None:
        raise ConflictError("Item appears in past orders; mark it unavailable instead.")
    await db.delete(item)
    await db.commit()
