"""
Pydantic schemas for checkout, order reads and order commands.

Order commands arrive as one body discriminated by `action`; each variant
converts to the matching command dataclass in orderflow.services.orders.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator
from pydantic import ValidationError as PydanticValidationError

from orderflow.errors import ValidationError
from orderflow.services import orders as order_service


# ── Checkout ─────────────────────────────────────────────────────────────────


class Customization(BaseModel):
    name: str
    value: str
    additional_price: float = Field(default=0, ge=0)


class OrderLineIn(BaseModel):
    menu_item_id: uuid.UUID
    quantity: int = Field(ge=1, le=50)
    customizations: list[Customization] = Field(default_factory=list)
    special_instructions: Optional[str] = Field(default=None, max_length=200)


class DeliveryAddress(BaseModel):
    street: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: Optional[str] = None
    zip_code: Optional[str] = None
    instructions: Optional[str] = Field(default=None, max_length=200)


class PlaceOrderRequest(BaseModel):
    restaurant_id: uuid.UUID
    order_type: Literal["delivery", "pickup"]
    items: list[OrderLineIn] = Field(min_length=1)
    delivery_address: Optional[DeliveryAddress] = None
    tip: float = Field(default=0, ge=0)
    coupon_code: Optional[str] = None
    special_instructions: Optional[str] = Field(default=None, max_length=500)

    @model_validator(mode="after")
    def _address_for_delivery(self) -> "PlaceOrderRequest":
        if self.order_type == "delivery" and self.delivery_address is None:
            raise ValueError("Delivery address is required for delivery orders")
        return self


# ── Reads ────────────────────────────────────────────────────────────────────


class OrderItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    menu_item_id: Optional[uuid.UUID]
    name: str
    unit_price: float
    quantity: int
    customizations: list[dict[str, Any]]
    special_instructions: Optional[str]


class StatusEventRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: str
    note: Optional[str]
    actor_role: Optional[str]
    created_at: datetime


class OrderRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    order_number: str
    customer_id: uuid.UUID
    restaurant_id: uuid.UUID
    order_type: str
    status: str
    subtotal: float
    delivery_fee: float
    service_fee: float
    tax: float
    discount: float
    tip: float
    total: float
    coupon_code: Optional[str]
    delivery_address: Optional[dict[str, Any]]
    special_instructions: Optional[str]
    delivery_person_id: Optional[uuid.UUID]
    delivered_at: Optional[datetime]
    cancel_reason: Optional[str]
    cancelled_by: Optional[str]
    cancelled_at: Optional[datetime]
    refund_amount: Optional[float]
    refund_status: Optional[str]
    dispute_status: Optional[str]
    dispute_reason: Optional[str]
    dispute_resolution: Optional[str]
    dispute_refund_amount: Optional[float]
    created_at: datetime
    items: list[OrderItemRead]
    status_history: list[StatusEventRead]


# ── Commands ─────────────────────────────────────────────────────────────────


class AdvanceStatusBody(BaseModel):
    action: Literal["advance_status"]
    status: str
    note: Optional[str] = Field(default=None, max_length=500)

    def to_command(self) -> order_service.AdvanceStatus:
        return order_service.AdvanceStatus(status=self.status, note=self.note)


class CancelBody(BaseModel):
    action: Literal["cancel"]
    reason: str = ""
    refund_amount: Optional[float] = Field(default=None, ge=0)

    def to_command(self) -> order_service.Cancel:
        return order_service.Cancel(reason=self.reason, refund_amount=self.refund_amount)


class AssignDeliveryBody(BaseModel):
    action: Literal["assign_delivery"]
    delivery_person_id: uuid.UUID

    def to_command(self) -> order_service.AssignDelivery:
        return order_service.AssignDelivery(delivery_person_id=self.delivery_person_id)


class OpenDisputeBody(BaseModel):
    action: Literal["open_dispute"]
    reason: str = ""

    def to_command(self) -> order_service.OpenDispute:
        return order_service.OpenDispute(reason=self.reason)


class ResolveDisputeBody(BaseModel):
    action: Literal["resolve_dispute"]
    resolution: str
    note: Optional[str] = None
    refund_amount: Optional[float] = Field(default=None, ge=0)

    def to_command(self) -> order_service.ResolveDispute:
        return order_service.ResolveDispute(
            resolution=self.resolution, note=self.note, refund_amount=self.refund_amount
        )


OrderCommandBody = Annotated[
    Union[AdvanceStatusBody, CancelBody, AssignDeliveryBody, OpenDisputeBody, ResolveDisputeBody],
    Field(discriminator="action"),
]

_command_adapter = TypeAdapter(OrderCommandBody)


def parse_order_command(payload: Any) -> Union[
    AdvanceStatusBody, CancelBody, AssignDeliveryBody, OpenDisputeBody, ResolveDisputeBody
]:
    """Validate a raw action body, raising the service ValidationError on bad input."""
    try:
        return _command_adapter.validate_python(payload)
    except PydanticValidationError as exc:
        errors = [
            f"{'.'.join(str(p) for p in err['loc']) or 'body'}: {err['msg']}"
            for err in exc.errors()
        ]
        raise ValidationError("Invalid order action", errors=errors) from exc
