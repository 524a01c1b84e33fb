"""
Title/message templates for order notifications.

Keys are notification types; messages are str.format templates over
order_number, restaurant_name and a few optional extras.
"""

from __future__ import annotations

ORDER_TEMPLATES: dict[str, dict[str, str]] = {
    "order-placed": {
        "title": "New Order Received",
        "message": "New order #{order_number} is waiting for confirmation.",
        "priority": "high",
    },
    "order-confirmed": {
        "title": "Order Confirmed!",
        "message": "Your order #{order_number} has been confirmed by {restaurant_name}.",
        "priority": "high",
    },
    "order-preparing": {
        "title": "Order Being Prepared",
        "message": "Your order #{order_number} is now being prepared by {restaurant_name}.",
        "priority": "medium",
    },
    "order-ready": {
        "title": "Order Ready!",
        "message": "Your order #{order_number} is ready for pickup/delivery.",
        "priority": "high",
    },
    "order-out-for-delivery": {
        "title": "Out for Delivery",
        "message": "Your order #{order_number} is on its way to you!",
        "priority": "high",
    },
    "order-delivered": {
        "title": "Order Delivered",
        "message": "Your order #{order_number} has been delivered. Enjoy your meal!",
        "priority": "medium",
    },
    "order-cancelled": {
        "title": "Order Cancelled",
        "message": "Order #{order_number} has been cancelled. Reason: {reason}",
        "priority": "high",
    },
    "dispute-opened": {
        "title": "Dispute Opened",
        "message": "A dispute was opened for order #{order_number}.",
        "priority": "high",
    },
    "dispute-resolved": {
        "title": "Dispute Resolved",
        "message": "The dispute for order #{order_number} has been resolved ({resolution}).",
        "priority": "high",
    },
    "order-update": {
        "title": "Order Update",
        "message": "Your order #{order_number} has been updated.",
        "priority": "medium",
    },
}

# Order status → notification type sent to the customer
STATUS_NOTIFICATION_TYPES: dict[str, str] = {
    "confirmed": "order-confirmed",
    "preparing": "order-preparing",
    "ready": "order-ready",
    "out_for_delivery": "order-out-for-delivery",
    "delivered": "order-delivered",
    "cancelled": "order-cancelled",
}


def render_order_template(notification_type: str, **values: object) -> dict[str, str]:
    """Return {'title', 'message', 'priority'} for a type, falling back to 'order-update'."""
    template = ORDER_TEMPLATES.get(notification_type, ORDER_TEMPLATES["order-update"])
    defaults = {
        "order_number": "your order",
        "restaurant_name": "the restaurant",
        "reason": "not specified",
        "resolution": "closed",
    }
    defaults.update({k: v for k, v in values.items() if v is not None})
    return {
        "title": template["title"],
        "message": template["message"].format(**defaults),
        "priority": template["priority"],
    }
