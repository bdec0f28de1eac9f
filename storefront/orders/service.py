import math
import time
import uuid
from collections import OrderedDict
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, joinedload

from .models import Order, OrderStatus, PaymentStatus
from ..core.config import settings
from ..core.exceptions import AuthorizationError, ResourceNotFoundError, ValidationFailedError
from ..logging import logger
from ..products.models import Product
from ..schemas.orders import CreateOrderRequest, OrderResponse
from ..users.models import User, utcnow

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
RECENT_ORDERS_LIMIT = 5
ANALYTICS_PERIOD_LIMIT = 12
TOP_PRODUCTS_LIMIT = 10
TOTAL_TOLERANCE = 0.01

# Sort parameters map onto a fixed set of columns; anything else is ignored
SORT_COLUMNS = {
    "created_at": Order.created_at,
    "createdAt": Order.created_at,
    "totalAmount": Order.total_amount,
    "total_amount": Order.total_amount,
    "orderStatus": Order.order_status,
    "order_status": Order.order_status,
    "id": Order.id,
}

# Client-updatable fields, wire name -> column
UPDATABLE_FIELDS = {
    "orderStatus": "order_status",
    "paymentStatus": "payment_status",
    "paymentMethod": "payment_method",
    "shippingCost": "shipping_cost",
    "tax": "tax",
    "discount": "discount",
    "notes": "notes",
    "items": "items",
    "shippingAddress": "shipping_address",
    "billingAddress": "billing_address",
}
UPDATABLE_FIELDS.update({column: column for column in list(UPDATABLE_FIELDS.values())})

MONEY_FIELDS = {"shipping_cost", "tax", "discount"}

PERIOD_FORMATS = {
    "day": "%Y-%m-%d",
    "week": "%Y-%W",
    "month": "%Y-%m",
}

ORDER_STATUSES = {status.value for status in OrderStatus}
PAYMENT_STATUSES = {status.value for status in PaymentStatus}


def generate_order_number() -> str:
    return f"ORD-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6].upper()}"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def validate_order(user_id: Optional[int], items: Any, total_amount: Any) -> List[str]:
    """Collect every rule an order violates."""
    errors = []
    if not user_id:
        errors.append("Valid user ID is required")
    if not items or not isinstance(items, list):
        errors.append("Order must have at least one item")
    if not _is_number(total_amount) or total_amount <= 0:
        errors.append("Total amount must be greater than 0")
    return errors


def validate_items(items: Any) -> List[str]:
    """Check the price and quantity of each line item; both are optional."""
    errors = []
    if not isinstance(items, list):
        return errors
    for index, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            errors.append(f"Item {index} is malformed")
            continue
        if "price" in item and (not _is_number(item["price"]) or item["price"] < 0):
            errors.append(f"Item {index} price must be a non-negative number")
        quantity = item.get("quantity", 1)
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            errors.append(f"Item {index} quantity must be a positive integer")
    return errors


def serialize_order(order: Order) -> OrderResponse:
    response = OrderResponse.model_validate(order)
    if order.user is not None:
        response.first_name = order.user.first_name
        response.last_name = order.user.last_name
        response.email = order.user.email
    return response


class OrderService:

    @staticmethod
    def _item_product_id(item: Dict[str, Any]) -> Optional[int]:
        for key in ("productId", "product_id", "id"):
            value = item.get(key)
            if value is None:
                continue
            try:
                return int(value)
            except (TypeError, ValueError):
                return None
        return None

    @staticmethod
    def verify_totals(
        db: Session,
        items: List[Dict[str, Any]],
        total_amount: float,
        shipping_cost: float = 0.0,
        tax: float = 0.0,
        discount: float = 0.0,
    ) -> float:
        """Recompute the order total from catalog prices and compare it to the client's figure."""
        errors = []
        quantities: Dict[int, int] = {}
        for index, item in enumerate(items):
            if not isinstance(item, dict):
                errors.append(f"Item {index + 1} is malformed")
                continue
            product_id = OrderService._item_product_id(item)
            if product_id is None:
                errors.append(f"Item {index + 1} must reference a product")
                continue
            quantity = item.get("quantity", 1)
            if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
                errors.append(f"Item {index + 1} quantity must be a positive integer")
                continue
            quantities[product_id] = quantities.get(product_id, 0) + quantity
        if errors:
            raise ValidationFailedError(errors)

        products = {
            product.id: product
            for product in db.query(Product).filter(Product.id.in_(list(quantities))).all()
        }
        missing = [str(pid) for pid in quantities if pid not in products]
        if missing:
            raise ValidationFailedError([f"Product {pid} not found" for pid in missing])

        subtotal = sum(products[pid].price * qty for pid, qty in quantities.items())
        expected = round(subtotal + (shipping_cost or 0) + (tax or 0) - (discount or 0), 2)
        if abs(expected - total_amount) > TOTAL_TOLERANCE:
            logger.warning(f"Order total mismatch: client sent {total_amount}, catalog gives {expected}")
            raise ValidationFailedError(["Total amount does not match catalog prices"], prefix=None)
        return expected

    @staticmethod
    def create_order(db: Session, user: Optional[User], data: CreateOrderRequest) -> Order:
        """Create an order for ``user`` after validating items and totals."""
        user_id = user.id if user is not None else None
        errors = validate_order(user_id, data.items, data.total_amount)
        errors.extend(validate_items(data.items))
        if errors:
            raise ValidationFailedError(errors)

        if settings.ORDER_TOTAL_VERIFICATION:
            OrderService.verify_totals(
                db,
                data.items,
                data.total_amount,
                shipping_cost=data.shipping_cost or 0.0,
                tax=data.tax or 0.0,
                discount=data.discount or 0.0,
            )

        order = Order(
            user_id=user_id,
            order_number=generate_order_number(),
            items=data.items,
            total_amount=data.total_amount,
            shipping_address=data.shipping_address,
            billing_address=data.billing_address,
            payment_method=data.payment_method or "pending",
            payment_status=PaymentStatus.UNPAID.value,
            order_status=OrderStatus.PENDING.value,
            shipping_cost=data.shipping_cost or 0.0,
            tax=data.tax or 0.0,
            discount=data.discount or 0.0,
            notes=data.notes,
        )
        db.add(order)
        db.commit()
        db.refresh(order)
        logger.info(f"Order {order.order_number} created for user {user_id}")
        return order

    @staticmethod
    def get_order(db: Session, order_id: int) -> Order:
        order = db.query(Order).options(joinedload(Order.user)).filter(Order.id == order_id).first()
        if order is None:
            raise ResourceNotFoundError("Order")
        return order

    @staticmethod
    def get_order_for_user(db: Session, order_id: int, user: User, action: str = "view") -> Order:
        """Fetch an order the user owns, or any order for an admin."""
        order = OrderService.get_order(db, order_id)
        if order.user_id != user.id and not user.is_admin:
            raise AuthorizationError(f"Not authorized to {action} this order")
        return order

    @staticmethod
    def get_user_orders(db: Session, user_id: int) -> List[Order]:
        """Get all orders for a specific user, newest first"""
        return (
            db.query(Order)
            .options(joinedload(Order.user))
            .filter(Order.user_id == user_id)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .all()
        )

    @staticmethod
    def find_by_reference(db: Session, reference: str) -> Optional[Order]:
        return db.query(Order).filter(
            or_(Order.payment_reference == reference, Order.order_number == reference)
        ).first()

    @staticmethod
    def list_orders(
        db: Session,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
        status: Optional[str] = None,
        payment_status: Optional[str] = None,
        user_id: Optional[int] = None,
        search: Optional[str] = None,
        sort_by: Optional[str] = None,
        sort_order: Optional[str] = None,
    ) -> Dict[str, Any]:
        page = max(int(page or 1), 1)
        limit = max(1, min(int(limit or DEFAULT_PAGE_SIZE), MAX_PAGE_SIZE))

        query = db.query(Order).join(User, Order.user_id == User.id)
        if status:
            query = query.filter(Order.order_status == status)
        if payment_status:
            query = query.filter(Order.payment_status == payment_status)
        if user_id:
            query = query.filter(Order.user_id == user_id)
        if search:
            term = f"%{search}%"
            query = query.filter(or_(
                Order.order_number.ilike(term),
                User.first_name.ilike(term),
                User.last_name.ilike(term),
                User.email.ilike(term),
            ))

        total = query.count()
        column = SORT_COLUMNS.get(sort_by or "", Order.created_at)
        ordering = column.asc() if (sort_order or "").upper() == "ASC" else column.desc()
        orders = (
            query.options(joinedload(Order.user))
            .order_by(ordering, Order.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return {
            "orders": [serialize_order(order) for order in orders],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "total_pages": math.ceil(total / limit) if total else 0,
            },
        }

    @staticmethod
    def update_order(db: Session, order: Order, payload: Dict[str, Any]) -> Order:
        """Apply whitelisted fields from ``payload``; unknown keys are dropped."""
        changes = {
            UPDATABLE_FIELDS[key]: value
            for key, value in payload.items()
            if key in UPDATABLE_FIELDS
        }
        if not changes:
            raise ValidationFailedError(["No valid fields to update"], prefix=None)

        errors = []
        if "order_status" in changes and changes["order_status"] not in ORDER_STATUSES:
            errors.append(f"Invalid order status: {changes['order_status']}")
        if "payment_status" in changes and changes["payment_status"] not in PAYMENT_STATUSES:
            errors.append(f"Invalid payment status: {changes['payment_status']}")
        if "items" in changes and (not isinstance(changes["items"], list) or not changes["items"]):
            errors.append("Order must have at least one item")
        elif "items" in changes:
            errors.extend(validate_items(changes["items"]))
        for field in MONEY_FIELDS & changes.keys():
            if not _is_number(changes[field]) or changes[field] < 0:
                errors.append(f"{field} must be a non-negative number")
        if errors:
            raise ValidationFailedError(errors)

        for field, value in changes.items():
            setattr(order, field, value)
        if changes.get("payment_status") == PaymentStatus.PAID.value and order.paid_at is None:
            order.paid_at = utcnow()
        if changes.get("order_status") == OrderStatus.DELIVERED.value and order.delivered_at is None:
            order.delivered_at = utcnow()

        db.commit()
        db.refresh(order)
        logger.info(f"Order {order.id} updated: {sorted(changes)}")
        return order

    @staticmethod
    def mark_paid(
        db: Session,
        order: Order,
        payment_method: Optional[str] = None,
        payment_reference: Optional[str] = None,
    ) -> Order:
        order.payment_status = PaymentStatus.PAID.value
        order.order_status = OrderStatus.PROCESSING.value
        order.paid_at = utcnow()
        if payment_method:
            order.payment_method = payment_method
        if payment_reference:
            order.payment_reference = payment_reference
        db.commit()
        db.refresh(order)
        logger.info(f"Order {order.id} marked as paid")
        return order

    @staticmethod
    def mark_payment_failed(db: Session, order: Order, payment_reference: Optional[str] = None) -> Order:
        order.payment_status = PaymentStatus.FAILED.value
        if payment_reference:
            order.payment_reference = payment_reference
        db.commit()
        db.refresh(order)
        logger.info(f"Payment failed for order {order.id}")
        return order

    @staticmethod
    def mark_delivered(db: Session, order: Order) -> Order:
        order.order_status = OrderStatus.DELIVERED.value
        order.delivered_at = utcnow()
        db.commit()
        db.refresh(order)
        logger.info(f"Order {order.id} marked as delivered")
        return order

    @staticmethod
    def delete_order(db: Session, order_id: int) -> None:
        order = OrderService.get_order(db, order_id)
        db.delete(order)
        db.commit()
        logger.info(f"Order {order_id} deleted")

    # --- Admin analytics ---

    @staticmethod
    def statistics(db: Session, recent: int = RECENT_ORDERS_LIMIT) -> Dict[str, Any]:
        """Order counts per status plus revenue figures over paid orders."""
        total_orders = db.query(func.count(Order.id)).scalar()
        total_revenue = db.query(func.coalesce(func.sum(Order.total_amount), 0)).filter(
            Order.payment_status == PaymentStatus.PAID.value
        ).scalar()
        status_counts = dict(
            db.query(Order.order_status, func.count(Order.id)).group_by(Order.order_status).all()
        )
        payment_counts = dict(
            db.query(Order.payment_status, func.count(Order.id)).group_by(Order.payment_status).all()
        )

        recent_orders = (
            db.query(Order)
            .options(joinedload(Order.user))
            .order_by(Order.created_at.desc(), Order.id.desc())
            .limit(recent)
            .all()
        )

        total_orders = int(total_orders or 0)
        total_revenue = float(total_revenue or 0)
        paid = payment_counts.get(PaymentStatus.PAID.value, 0)
        delivered = status_counts.get(OrderStatus.DELIVERED.value, 0)
        return {
            "totalOrders": total_orders,
            "totalRevenue": round(total_revenue, 2),
            "avgOrderValue": round(total_revenue / paid, 2) if paid else 0.0,
            "conversionRate": round(delivered / total_orders * 100, 2) if total_orders else 0.0,
            "pendingOrders": status_counts.get(OrderStatus.PENDING.value, 0),
            "processingOrders": status_counts.get(OrderStatus.PROCESSING.value, 0),
            "shippedOrders": status_counts.get(OrderStatus.SHIPPED.value, 0),
            "deliveredOrders": delivered,
            "cancelledOrders": status_counts.get(OrderStatus.CANCELLED.value, 0),
            "paidOrders": paid,
            "unpaidOrders": payment_counts.get(PaymentStatus.UNPAID.value, 0),
            "recentOrders": [serialize_order(order) for order in recent_orders],
        }

    @staticmethod
    def sales_analytics(
        db: Session,
        group_by: str = "month",
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: int = ANALYTICS_PERIOD_LIMIT,
    ) -> List[Dict[str, Any]]:
        """Order count, revenue and average value per day, week or month.

        Only the latest ``limit`` periods are returned, oldest first.
        """
        period_format = PERIOD_FORMATS.get(group_by, PERIOD_FORMATS["month"])
        query = db.query(Order.created_at, Order.total_amount)
        if start_date:
            query = query.filter(Order.created_at >= start_date)
        if end_date:
            query = query.filter(Order.created_at <= end_date)

        buckets: "OrderedDict[str, Dict[str, float]]" = OrderedDict()
        for created_at, amount in query.order_by(Order.created_at.asc()).all():
            bucket = buckets.setdefault(created_at.strftime(period_format), {"orderCount": 0, "revenue": 0.0})
            bucket["orderCount"] += 1
            bucket["revenue"] += amount or 0.0

        return [
            {
                "period": period,
                "orderCount": values["orderCount"],
                "revenue": round(values["revenue"], 2),
                "avgOrderValue": round(values["revenue"] / values["orderCount"], 2),
            }
            for period, values in sorted(buckets.items())[-max(1, int(limit)):]
        ]

    @staticmethod
    def top_products(db: Session, limit: int = TOP_PRODUCTS_LIMIT) -> List[Dict[str, Any]]:
        """Aggregate item quantities and revenue across non-cancelled orders."""
        sales: Dict[str, Dict[str, Any]] = {}
        rows = db.query(Order.items).filter(Order.order_status != OrderStatus.CANCELLED.value).all()
        for (items,) in rows:
            for item in items or []:
                if not isinstance(item, dict):
                    continue
                key = item.get("productId") or item.get("id") or item.get("title")
                if key is None:
                    continue
                quantity = item.get("quantity") or 1
                price = item.get("price") or 0
                if not _is_number(quantity) or not _is_number(price):
                    logger.warning(f"Skipping malformed order item {key!r} in top products")
                    continue
                entry = sales.setdefault(str(key), {
                    "productId": key,
                    "name": item.get("title") or item.get("name") or "Unknown Product",
                    "totalQuantity": 0,
                    "totalRevenue": 0.0,
                    "orderCount": 0,
                })
                entry["totalQuantity"] += quantity
                entry["totalRevenue"] += price * quantity
                entry["orderCount"] += 1

        ranked = sorted(sales.values(), key=lambda entry: entry["totalRevenue"], reverse=True)
        for entry in ranked:
            entry["totalRevenue"] = round(entry["totalRevenue"], 2)
        return ranked[:max(1, int(limit))]
