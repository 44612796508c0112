# app/domain/schemas.py
from pydantic import BaseModel, Field, ConfigDict, EmailStr
from pydantic.alias_generators import to_camel
from typing import List
from decimal import Decimal
from datetime import datetime


class ApiModel(BaseModel):
    """UI mowi camelCase, serwisy zwracaja snake_case dicty."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# =====================================================
# CART
# =====================================================
class ItemIn(ApiModel):
    """Schema dla dodawania produktu do koszyka (addytywnie)."""

    product_id: str = Field(..., min_length=1, max_length=64)
    quantity: int = Field(1, gt=0, description="Ile dodac (musi byc > 0)")


class QuantityIn(ApiModel):
    """Schema dla ustawienia ilosci (wartosc bezwzgledna, <= 0 usuwa linie)."""

    quantity: int


class GuestItemIn(ApiModel):
    product_id: str = Field(..., min_length=1, max_length=64)
    quantity: int


class MergeIn(ApiModel):
    items: List[GuestItemIn]
    device_id: str | None = Field(None, max_length=64)
    snapshot_id: str = Field(..., min_length=1, max_length=64, description="Rewizja koszyka goscia")


class CartItemOut(ApiModel):
    product_id: str
    name: str | None = None
    quantity: int
    added_at: datetime
    price: Decimal | None = None
    stock_quantity: int
    available: bool


class CartOut(ApiModel):
    account_id: str
    items: List[CartItemOut]
    subtotal: Decimal
    total_items: int


class MergeOut(ApiModel):
    merge_token: str
    merged: List[str]
    skipped: List[str]
    rejected: List[str]
    failed: List[str]
    complete: bool
    cart: CartOut


# =====================================================
# ORDERS
# =====================================================
class Address(ApiModel):
    line1: str = Field(..., min_length=1)
    line2: str | None = None
    city: str = Field(..., min_length=1)
    state: str | None = None
    postal_code: str = Field(..., min_length=1)
    country: str = Field("IN", min_length=2, max_length=2)


class LineItemIn(ApiModel):
    product_id: str = Field(..., min_length=1, max_length=64)
    quantity: int = Field(..., gt=0)


class OrderCreate(ApiModel):
    """Schema dla tworzenia zamowienia."""

    line_items: List[LineItemIn]
    billing_address: Address
    shipping_address: Address | None = None
    contact_email: EmailStr
    contact_phone: str = Field(..., min_length=5, max_length=32)
    total_amount: Decimal | None = Field(None, description="Suma widziana przez klienta, sprawdzana z cenami")


class PaymentSessionOut(ApiModel):
    order_id: int
    order_number: str
    external_payment_order_id: str | None
    amount_minor_units: int
    currency: str
    gateway_public_key: str | None
    status: str


class PaymentConfirmIn(ApiModel):
    external_payment_order_id: str = Field(..., min_length=1, max_length=64)
    external_payment_id: str = Field(..., min_length=1, max_length=64)
    signature: str = Field(..., min_length=1, max_length=256)


class PaymentConfirmOut(ApiModel):
    order_id: int
    status: str


class PaymentDetailsOut(ApiModel):
    payment_id: str
    order_id: int
    status: str | None = None
    method: str | None = None
    amount_minor_units: int
    currency: str


class OrderLineOut(ApiModel):
    product_id: str
    quantity: int
    unit_price_snapshot: Decimal
    line_total: Decimal


class OrderOut(ApiModel):
    """Schema dla zamowienia (response)."""

    id: int
    order_number: str
    account_id: str
    status: str
    failure_reason: str | None = None
    line_items: List[OrderLineOut]
    subtotal: Decimal
    total_amount: Decimal
    currency: str
    external_payment_order_id: str | None = None
    created_at: datetime
    paid_at: datetime | None = None
