"""
CanteenGo — Order DB models

Orders are inserted by students and only ever updated (status) by the vendor
owning the canteen. Line items are written once, together with the order.
"""
import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum as PyEnum
from sqlalchemy import (
    String, Integer, Numeric, DateTime, ForeignKey, CheckConstraint, Index, Enum, func, text,
)
from sqlalchemy.orm import Mapped, mapped_column
from canteengo.db.database import Base


class OrderStatus(str, PyEnum):
    PENDING = "pending"
    READY = "ready"
    COMPLETED = "completed"


# Pickup codes are unique only among orders in these states.
ACTIVE_STATUSES: frozenset[OrderStatus] = frozenset({OrderStatus.PENDING, OrderStatus.READY})

_ACTIVE_PREDICATE = text("status IN ('pending', 'ready')")


class Order(Base):
    __tablename__ = "orders"
    __mapper_args__ = {"eager_defaults": True}
    __table_args__ = (
        CheckConstraint("total_amount >= 0", name="ck_orders_total_non_negative"),
        Index(
            "uq_orders_active_pickup_code",
            "pickup_code",
            unique=True,
            postgresql_where=_ACTIVE_PREDICATE,
            sqlite_where=_ACTIVE_PREDICATE,
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    student_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )
    canteen_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("canteens.id", ondelete="CASCADE"), index=True, nullable=False
    )
    status: Mapped[OrderStatus] = mapped_column(
        Enum(
            OrderStatus,
            name="order_status",
            native_enum=False,
            values_callable=lambda e: [m.value for m in e],
        ),
        default=OrderStatus.PENDING,
        nullable=False,
    )
    total_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    pickup_code: Mapped[str | None] = mapped_column(String(6), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class OrderItem(Base):
    """Line item with the unit price copied from the menu at order time."""
    __tablename__ = "order_items"
    __table_args__ = (CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    order_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("orders.id", ondelete="CASCADE"), index=True, nullable=False
    )
    menu_item_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("menu_items.id"), nullable=False
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
