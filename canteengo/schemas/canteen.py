"""
CanteenGo — Canteen and menu schemas
"""
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field


class MenuItemCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(None, max_length=2000)
    price: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    is_available: bool = True
    image_url: str | None = None


class MenuItemUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = Field(None, max_length=2000)
    price: Decimal | None = Field(None, gt=0, max_digits=10, decimal_places=2)
    is_available: bool | None = None
    image_url: str | None = None


class MenuItemResponse(BaseModel):
    id: str
    canteen_id: str
    name: str
    description: str | None
    price: Decimal
    is_available: bool
    image_url: str | None

    model_config = {"from_attributes": True}


class CanteenCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    location: str = Field(..., min_length=1, max_length=255)
    image_url: str | None = None
    menu_items: list[MenuItemCreate] = Field(default_factory=list, max_length=100)


class CanteenResponse(BaseModel):
    id: str
    name: str
    location: str
    vendor_id: str
    image_url: str | None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class CanteenDetail(CanteenResponse):
    menu_items: list[MenuItemResponse] = Field(default_factory=list)
