"""
CanteenGo — Order schemas
"""
from datetime import datetime
from decimal import Decimal
from pydantic import BaseModel, Field

from canteengo.models.order import OrderStatus


class OrderItemRequest(BaseModel):
    menu_item_id: str = Field(..., min_length=1, max_length=36)
    quantity: int = Field(..., ge=1, le=50)


class OrderCreate(BaseModel):
    canteen_id: str = Field(..., min_length=1, max_length=36)
    items: list[OrderItemRequest] = Field(..., min_length=1, max_length=50)
    # Optional; when sent it must be the caller's own id.
    student_id: str | None = None


class StatusUpdate(BaseModel):
    status: OrderStatus


class OrderRow(BaseModel):
    """Flat order snapshot, also the payload carried by change events."""
    id: str
    student_id: str
    canteen_id: str
    status: OrderStatus
    total_amount: Decimal
    pickup_code: str | None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class OrderItemResponse(BaseModel):
    id: str
    menu_item_id: str
    name: str | None = None
    quantity: int
    price: Decimal


class OrderResponse(OrderRow):
    canteen_name: str | None = None
    items: list[OrderItemResponse] = Field(default_factory=list)


class TransitionResponse(BaseModel):
    order: OrderResponse
    changed: bool
    message: str


class VendorOrderBoard(BaseModel):
    canteen_id: str
    counts: dict[str, int]
    orders: list[OrderResponse]
