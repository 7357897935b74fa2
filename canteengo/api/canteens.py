"""
CanteenGo — Canteen and menu routes
"""
from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from canteengo.api.deps import run_store_op
from canteengo.db import canteen_ops
from canteengo.db.database import get_db
from canteengo.middleware.auth import actor_id, optional_actor_id
from canteengo.schemas.canteen import (
    CanteenCreate,
    CanteenDetail,
    CanteenResponse,
    MenuItemCreate,
    MenuItemResponse,
    MenuItemUpdate,
)

router = APIRouter(prefix="/canteens", tags=["canteens"])
menu_router = APIRouter(prefix="/menu-items", tags=["menu"])


@router.get("", response_model=list[CanteenResponse])
async def list_canteens(db: AsyncSession = Depends(get_db)):
    return await run_store_op(canteen_ops.list_canteens(db), "Canteen listing")


@router.get("/{canteen_id}", response_model=CanteenDetail)
async def get_canteen(canteen_id: str, request: Request, db: AsyncSession = Depends(get_db)):
    """Canteen with its menu. The owning vendor also sees unavailable items."""
    return await run_store_op(
        canteen_ops.get_canteen_detail(db, canteen_id, optional_actor_id(request)),
        "Canteen lookup",
    )


@router.post("", response_model=CanteenDetail, status_code=status.HTTP_201_CREATED)
async def create_canteen(payload: CanteenCreate, request: Request, db: AsyncSession = Depends(get_db)):
    """Vendor registration: one canteen per vendor, optionally with an initial menu."""
    return await run_store_op(
        canteen_ops.create_canteen(db, actor_id(request), payload), "Canteen registration"
    )


@router.post("/{canteen_id}/menu-items", response_model=MenuItemResponse, status_code=status.HTTP_201_CREATED)
async def add_menu_item(
    canteen_id: str, payload: MenuItemCreate, request: Request, db: AsyncSession = Depends(get_db)
):
    return await run_store_op(
        canteen_ops.add_menu_item(db, actor_id(request), canteen_id, payload), "Adding menu item"
    )


@menu_router.patch("/{item_id}", response_model=MenuItemResponse)
async def update_menu_item(
    item_id: str, payload: MenuItemUpdate, request: Request, db: AsyncSession = Depends(get_db)
):
    return await run_store_op(
        canteen_ops.update_menu_item(db, actor_id(request), item_id, payload), "Updating menu item"
    )


@menu_router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_menu_item(item_id: str, request: Request, db: AsyncSession = Depends(get_db)):
    await run_store_op(canteen_ops.delete_menu_item(db, actor_id(request), item_id), "Deleting menu item")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
