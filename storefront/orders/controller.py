from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Query, Request, Response, status

from .service import (
    ANALYTICS_PERIOD_LIMIT,
    DEFAULT_PAGE_SIZE,
    TOP_PRODUCTS_LIMIT,
    OrderService,
    serialize_order,
)
from ..auth.service import AdminUser, CurrentUser
from ..core.cache import cached, clear_cache
from ..core.rate_limiter import limiter, ORDER_LIMIT
from ..database.core import DbSession
from ..schemas.orders import CreateOrderRequest, OrderListResponse, OrderResponse, PayOrderRequest

router = APIRouter(prefix="/api/orders", tags=["orders"])

CACHE_TAG = "orders"


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(ORDER_LIMIT)
async def create_order(request: Request, data: CreateOrderRequest, current_user: CurrentUser, db: DbSession):
    order = OrderService.create_order(db, current_user, data)
    clear_cache(CACHE_TAG)
    return serialize_order(order)


@router.get("", response_model=OrderListResponse)
async def list_orders(
    admin: AdminUser,
    db: DbSession,
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1),
    order_status: Optional[str] = Query(None, alias="status"),
    payment_status: Optional[str] = Query(None, alias="paymentStatus"),
    user_id: Optional[int] = Query(None, alias="userId"),
    search: Optional[str] = None,
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    sort_order: Optional[str] = Query(None, alias="sortOrder"),
):
    """Paginated order listing for the admin dashboard."""
    return OrderService.list_orders(
        db,
        page=page,
        limit=limit,
        status=order_status,
        payment_status=payment_status,
        user_id=user_id,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
    )


@router.get("/myorders", response_model=List[OrderResponse])
@cached(ttl=30)
async def my_orders(request: Request, response: Response, current_user: CurrentUser, db: DbSession):
    return [serialize_order(order) for order in OrderService.get_user_orders(db, current_user.id)]


@router.get("/statistics")
@cached(ttl=60)
async def order_statistics(request: Request, response: Response, admin: AdminUser, db: DbSession):
    return OrderService.statistics(db)


@router.get("/analytics")
@cached(ttl=300)
async def sales_analytics(
    request: Request,
    response: Response,
    admin: AdminUser,
    db: DbSession,
    period: Optional[str] = Query(None, pattern=r"^(day|week|month)$"),
    group_by: Optional[str] = Query(None, alias="groupBy", pattern=r"^(day|week|month)$"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    limit: int = Query(ANALYTICS_PERIOD_LIMIT, ge=1, le=366),
):
    return OrderService.sales_analytics(
        db,
        group_by=period or group_by or "month",
        start_date=start_date,
        end_date=end_date,
        limit=limit,
    )


@router.get("/top-products")
@cached(ttl=300)
async def top_products(
    request: Request,
    response: Response,
    admin: AdminUser,
    db: DbSession,
    limit: int = Query(TOP_PRODUCTS_LIMIT, ge=1, le=100),
):
    return OrderService.top_products(db, limit=limit)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: int, current_user: CurrentUser, db: DbSession):
    return serialize_order(OrderService.get_order_for_user(db, order_id, current_user))


@router.put("/{order_id}", response_model=OrderResponse)
async def update_order(
    order_id: int,
    current_user: CurrentUser,
    db: DbSession,
    payload: Dict[str, Any] = Body(...),
):
    order = OrderService.get_order_for_user(db, order_id, current_user, action="update")
    order = OrderService.update_order(db, order, payload)
    clear_cache(CACHE_TAG)
    return serialize_order(order)


@router.put("/{order_id}/pay", response_model=OrderResponse)
async def pay_order(
    order_id: int,
    current_user: CurrentUser,
    db: DbSession,
    data: Optional[PayOrderRequest] = None,
):
    order = OrderService.get_order_for_user(db, order_id, current_user, action="pay for")
    order = OrderService.mark_paid(
        db,
        order,
        payment_method=data.payment_method if data else None,
        payment_reference=data.payment_reference if data else None,
    )
    clear_cache(CACHE_TAG)
    return serialize_order(order)


@router.put("/{order_id}/deliver", response_model=OrderResponse)
async def deliver_order(order_id: int, admin: AdminUser, db: DbSession):
    order = OrderService.mark_delivered(db, OrderService.get_order(db, order_id))
    clear_cache(CACHE_TAG)
    return serialize_order(order)


@router.delete("/{order_id}")
async def delete_order(order_id: int, admin: AdminUser, db: DbSession):
    OrderService.delete_order(db, order_id)
    clear_cache(CACHE_TAG)
    return {"message": "Order removed successfully"}
