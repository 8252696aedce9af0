from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime
from decimal import Decimal
import uuid


class OrderItemIn(BaseModel):
    product_id: uuid.UUID
    quantity: int
    unit_price: Decimal


class GuestIdentityIn(BaseModel):
    email: str
    name: str


class CreateOrderIn(BaseModel):
    """결제 완료 후 체크아웃이 전달하는 주문 입력"""
    payment_reference: str = Field(min_length=1)
    items: List[OrderItemIn] = Field(default_factory=list)
    total: Decimal
    grand_total: Optional[Decimal] = None
    user_id: Optional[str] = None
    guest: Optional[GuestIdentityIn] = None
    shipping_address: Optional[dict] = None


class CancelOrderIn(BaseModel):
    reason: str = ""


class OrderItemResponse(BaseModel):
    id: uuid.UUID
    product_id: uuid.UUID
    quantity: int
    unit_price: Decimal
    total_price: Decimal

    model_config = ConfigDict(from_attributes=True)


class OrderResponse(BaseModel):
    id: uuid.UUID
    order_number: str
    payment_reference: str
    user_id: Optional[str] = None
    guest_email: Optional[str] = None
    guest_name: Optional[str] = None
    status: str
    total: Decimal
    grand_total: Decimal
    shipping_address: Optional[dict] = None
    tracking_number: Optional[str] = None
    cancel_reason: Optional[str] = None
    inventory_restored: bool
    processing_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    fulfilled_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    items: List[OrderItemResponse] = []

    model_config = ConfigDict(from_attributes=True)


class OrderStatusHistoryResponse(BaseModel):
    from_status: Optional[str] = None
    to_status: str
    source: Optional[str] = None
    note: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
