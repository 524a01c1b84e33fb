"""Pydantic schemas for favourites."""

from __future__ import annotations

import uuid
from typing import Literal

from pydantic import BaseModel


class FavoriteAdd(BaseModel):
    restaurant_id: uuid.UUID


class CouponFavoriteRequest(BaseModel):
    coupon_id: uuid.UUID
    action: Literal["favorite", "unfavorite"]
