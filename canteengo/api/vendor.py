"""
CanteenGo — Vendor dashboard routes
"""
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from canteengo.api.deps import run_store_op
from canteengo.db import canteen_ops, order_ops
from canteengo.db.database import get_db
from canteengo.middleware.auth import actor_id
from canteengo.models import OrderStatus
from canteengo.schemas.canteen import CanteenDetail
from canteengo.schemas.order import VendorOrderBoard

router = APIRouter(prefix="/vendor", tags=["vendor"])


@router.get("/canteen", response_model=CanteenDetail)
async def my_canteen(request: Request, db: AsyncSession = Depends(get_db)):
    user_id = actor_id(request)
    canteen = await run_store_op(canteen_ops.get_vendor_canteen(db, user_id), "Fetching canteen")
    if canteen is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No canteen registered for this vendor.")
    return await run_store_op(canteen_ops.get_canteen_detail(db, canteen.id, user_id), "Fetching canteen")


@router.get("/orders", response_model=VendorOrderBoard)
async def vendor_orders(
    request: Request,
    status_filter: OrderStatus | None = Query(None, alias="status", description="pending, ready or completed"),
    search: str | None = Query(None, max_length=6, description="Pickup code fragment"),
    db: AsyncSession = Depends(get_db),
):
    """
    Kitchen board for the vendor's canteen: newest first, with counts per
    status. `search` narrows by pickup code.
    """
    return await run_store_op(
        order_ops.list_vendor_orders(db, actor_id(request), status_filter, search),
        "Fetching canteen orders",
    )
