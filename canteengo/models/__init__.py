from canteengo.models.user import User, Profile, UserRole, Role
from canteengo.models.canteen import Canteen, MenuItem
from canteengo.models.order import Order, OrderItem, OrderStatus, ACTIVE_STATUSES

__all__ = [
    "User", "Profile", "UserRole", "Role",
    "Canteen", "MenuItem",
    "Order", "OrderItem", "OrderStatus", "ACTIVE_STATUSES",
]
