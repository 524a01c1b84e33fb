"""
Loyalty programme reference data: tiers, earn multipliers, the reward
catalogue, the achievement milestones shown on the loyalty page and the
customer dashboard badges.
"""

from __future__ import annotations

# (minimum lifetime points, level), checked highest first
LEVEL_THRESHOLDS: list[tuple[int, str]] = [
    (10_000, "Platinum"),
    (5_000, "Gold"),
    (2_000, "Silver"),
    (500, "Bronze"),
    (0, "Member"),
]

LEVEL_ORDER: list[str] = ["Member", "Bronze", "Silver", "Gold", "Platinum"]

LEVEL_MULTIPLIERS: dict[str, float] = {
    "Member": 1.0,
    "Bronze": 1.2,
    "Silver": 1.5,
    "Gold": 2.0,
    "Platinum": 3.0,
}

# One point per currency unit spent, before the level multiplier
BASE_EARN_RATE = 1

REWARDS: dict[str, dict] = {
    "discount_50": {
        "name": "$5 Discount",
        "description": "Get $5 off on your next order",
        "points_required": 500,
        "type": "discount",
        "value": 5,
        "min_order_value": 30,
    },
    "discount_100": {
        "name": "$10 Discount",
        "description": "Get $10 off on your next order",
        "points_required": 1000,
        "type": "discount",
        "value": 10,
        "min_order_value": 60,
    },
    "free_delivery": {
        "name": "Free Delivery",
        "description": "Free delivery on your next 3 orders",
        "points_required": 300,
        "type": "delivery",
        "value": 3,
    },
    "priority_support": {
        "name": "Priority Support",
        "description": "Priority customer support for 1 month",
        "points_required": 2000,
        "type": "service",
        "value": 1,
    },
}

# (name, earned description, upcoming description, order-count target);
# milestones without an upcoming description are not shown until earned
ORDER_MILESTONES: list[tuple[str, str, str | None, int]] = [
    ("First Order", "Completed your first order", None, 1),
    ("Regular Customer", "Completed 10 orders", "Complete 10 orders", 10),
    ("Loyal Customer", "Completed 50 orders", "Complete 50 orders", 50),
    ("VIP Customer", "Completed 100 orders", "Complete 100 orders", 100),
]

BIG_SPENDER_THRESHOLD = 10_000

# Badges on the customer dashboard: (name, description, metric, target).
# metric is one of 'orders' (delivered), 'reviews', 'favorites'.
DASHBOARD_BADGES: list[tuple[str, str, str, int]] = [
    ("First Order", "Placed your first order", "orders", 1),
    ("Regular Customer", "Completed 10 orders", "orders", 10),
    ("Food Explorer", "Completed 25 orders", "orders", 25),
    ("Foodie Legend", "Completed 50 orders", "orders", 50),
    ("Reviewer", "Wrote 5 reviews", "reviews", 5),
    ("Taste Maker", "Saved 5 favourite restaurants", "favorites", 5),
]
