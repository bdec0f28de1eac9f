from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from .base import CamelModel


class CreateOrderRequest(CamelModel):
    items: Optional[List[Dict[str, Any]]] = None
    total_amount: Optional[float] = None
    shipping_address: Optional[Dict[str, Any]] = None
    billing_address: Optional[Dict[str, Any]] = None
    payment_method: Optional[str] = None
    shipping_cost: Optional[float] = Field(0, ge=0)
    tax: Optional[float] = Field(0, ge=0)
    discount: Optional[float] = Field(0, ge=0)
    notes: Optional[str] = Field(None, max_length=1000)


class PayOrderRequest(CamelModel):
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None


class OrderResponse(CamelModel):
    id: int
    user_id: int
    order_number: str
    items: List[Dict[str, Any]]
    total_amount: float
    shipping_address: Optional[Dict[str, Any]] = None
    billing_address: Optional[Dict[str, Any]] = None
    payment_method: str
    payment_status: str
    order_status: str
    payment_reference: Optional[str] = None
    shipping_cost: float = 0
    tax: float = 0
    discount: float = 0
    notes: Optional[str] = None
    paid_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None


class OrderPagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int


class OrderListResponse(CamelModel):
    orders: List[OrderResponse]
    pagination: OrderPagination
