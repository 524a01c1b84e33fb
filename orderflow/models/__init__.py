"""SQLAlchemy ORM models package."""

from orderflow.database import Base
from orderflow.models.user import User, UsedCoupon
from orderflow.models.restaurant import Restaurant, MenuItem, StockHistoryEntry
from orderflow.models.order import Order, OrderItem, OrderStatusEvent
from orderflow.models.coupon import Coupon, coupon_restaurants
from orderflow.models.loyalty import LoyaltyTransaction
from orderflow.models.notification import Notification
from orderflow.models.review import Review, ReviewFlag, ReviewEdit
from orderflow.models.favorite import FavoriteRestaurant, FavoriteCoupon
from orderflow.models.search import SearchHistoryEntry, SavedSearch
from orderflow.models.discount import Discount
from orderflow.models.payment import PaymentMethod
from orderflow.models.system import SystemSetting

__all__ = [
    "Base", "User", "UsedCoupon", "Restaurant", "MenuItem", "StockHistoryEntry",
    "Order", "OrderItem", "OrderStatusEvent", "Coupon", "coupon_restaurants",
    "LoyaltyTransaction", "Notification", "Review", "ReviewFlag", "ReviewEdit",
    "FavoriteRestaurant", "FavoriteCoupon", "SearchHistoryEntry", "SavedSearch",
    "Discount", "PaymentMethod", "SystemSetting",
]
