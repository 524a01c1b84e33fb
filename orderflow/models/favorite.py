"""Customer favourites: restaurants and coupons."""

from sqlalchemy import Column, Integer, Uuid, TIMESTAMP, ForeignKey, UniqueConstraint

from orderflow.database import Base
from orderflow.utils.clock import utcnow


class FavoriteRestaurant(Base):
    __tablename__ = "favorite_restaurants"
    __table_args__ = (
        UniqueConstraint("user_id", "restaurant_id", name="uq_favorite_restaurant"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    restaurant_id = Column(
        Uuid, ForeignKey("restaurants.id", ondelete="CASCADE"), nullable=False
    )
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)


class FavoriteCoupon(Base):
    __tablename__ = "favorite_coupons"
    __table_args__ = (
        UniqueConstraint("user_id", "coupon_id", name="uq_favorite_coupon"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    coupon_id = Column(Uuid, ForeignKey("coupons.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(TIMESTAMP(timezone=True), nullable=False, default=utcnow)
