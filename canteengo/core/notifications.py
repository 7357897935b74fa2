"""
CanteenGo — User-facing notification payloads and SSE framing
"""
import json
from decimal import Decimal
from typing import Any

from canteengo.models.order import OrderStatus

ORDER_READY_TITLE = "Your Order is Ready! 🎉"
NEW_ORDER_MESSAGE = "New order received!"


def is_ready_transition(old: dict[str, Any] | None, new: dict[str, Any]) -> bool:
    """True only for pending → ready on the same order."""
    if not old:
        return False
    return old.get("status") == OrderStatus.PENDING.value and new.get("status") == OrderStatus.READY.value


def order_ready_notification(order_id: str, canteen_name: str, total_amount, pickup_code: str | None) -> dict:
    amount = Decimal(str(total_amount))
    return {
        "title": ORDER_READY_TITLE,
        "body": f"Your order from {canteen_name} (₹{amount:.2f}) is ready for pickup!",
        "tag": "order-ready",
        "require_interaction": True,
        "order_id": order_id,
        "pickup_code": pickup_code,
    }


def format_sse(event: str, data: dict[str, Any]) -> str:
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"
