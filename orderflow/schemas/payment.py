"""Pydantic schemas for saved payment methods."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class CardDetails(BaseModel):
    card_number: str = Field(min_length=1, max_length=23)
    expiry_month: int = Field(ge=1, le=12)
    expiry_year: int = Field(ge=2000, le=2100)
    holder_name: str = Field(min_length=1, max_length=100)


class WalletDetails(BaseModel):
    provider: str = Field(min_length=1, max_length=16)
    wallet_id: str = Field(min_length=1, max_length=100)


class BankDetails(BaseModel):
    account_number: str = Field(min_length=4, max_length=34)
    routing_number: str = Field(min_length=1, max_length=20)
    account_holder: str = Field(min_length=1, max_length=100)
    bank_name: Optional[str] = Field(default=None, max_length=100)
    account_type: Literal["checking", "savings"] = "checking"


class PaymentMethodCreate(BaseModel):
    type: Literal["card", "wallet", "bank", "cash"]
    label: Optional[str] = Field(default=None, max_length=50)
    is_default: bool = False
    card: Optional[CardDetails] = None
    wallet: Optional[WalletDetails] = None
    bank: Optional[BankDetails] = None


class PaymentMethodUpdate(BaseModel):
    action: Literal["set-default", "update"] = "update"
    label: Optional[str] = Field(default=None, min_length=1, max_length=50)


class PaymentMethodRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    type: str
    label: str
    is_default: bool
    card_brand: Optional[str]
    last_four: Optional[str]
    expiry_month: Optional[int]
    expiry_year: Optional[int]
    holder_name: Optional[str]
    provider: Optional[str]
    bank_name: Optional[str]
    account_type: Optional[str]
    created_at: datetime
