import hashlib
import hmac
import json
import logging
from typing import Any, Dict, Optional

import requests
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import AuthorizationError, PaymentGatewayError, ValidationFailedError
from ..orders.models import Order, PaymentStatus
from ..orders.service import OrderService
from ..users.models import User

logger = logging.getLogger(__name__)

SUBUNITS_PER_UNIT = 100
# one minor unit of slack for rounding
AMOUNT_TOLERANCE = 0.01


def to_subunits(amount: float) -> int:
    """Paystack amounts are integers in the currency's minor unit."""
    return int(round(amount * SUBUNITS_PER_UNIT))


def from_subunits(amount: Optional[int]) -> float:
    return (amount or 0) / SUBUNITS_PER_UNIT


def verify_webhook_signature(payload: bytes, signature: Optional[str]) -> bool:
    """Compare ``x-paystack-signature`` with the HMAC-SHA512 of the raw body."""
    if not signature or not settings.PAYSTACK_SECRET_KEY:
        return False
    expected = hmac.new(
        settings.PAYSTACK_SECRET_KEY.encode("utf-8"), payload, hashlib.sha512
    ).hexdigest()
    return hmac.compare_digest(expected, signature)


class PaystackService:

    @staticmethod
    def _headers() -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {settings.PAYSTACK_SECRET_KEY}",
            "Content-Type": "application/json",
        }

    @staticmethod
    def _request(method: str, path: str, failure_message: str, **kwargs) -> Dict[str, Any]:
        url = f"{settings.PAYSTACK_BASE_URL.rstrip('/')}{path}"
        try:
            response = requests.request(
                method, url, headers=PaystackService._headers(), timeout=settings.PAYSTACK_TIMEOUT, **kwargs
            )
        except requests.RequestException as e:
            logger.error(f"Paystack {method} {path} failed: {e}")
            raise PaymentGatewayError(failure_message, technical_details=str(e)) from e

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not response.ok or not body.get("status"):
            message = body.get("message") or failure_message
            logger.error(f"Paystack {method} {path} returned {response.status_code}: {message}")
            raise PaymentGatewayError(message, technical_details=response.text[:500])
        return body

    @staticmethod
    def initialize_transaction(
        email: str,
        amount: float,
        reference: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        callback_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "email": email,
            "amount": to_subunits(amount),
            "currency": settings.PAYSTACK_CURRENCY,
            "metadata": metadata or {},
            "callback_url": callback_url or f"{settings.frontend_base_url}/order/success",
        }
        if reference:
            payload["reference"] = reference
        body = PaystackService._request(
            "POST", "/transaction/initialize", "Transaction initialization failed", json=payload
        )
        return body.get("data") or {}

    @staticmethod
    def verify_transaction(reference: str) -> Dict[str, Any]:
        """Fetch the transaction and return it with ``amount`` in major units."""
        body = PaystackService._request(
            "GET", f"/transaction/verify/{reference}", "Transaction verification failed"
        )
        data = dict(body.get("data") or {})
        data["amount"] = from_subunits(data.get("amount"))
        return data

    @staticmethod
    def list_banks(country: Optional[str] = None) -> Any:
        params = {"country": country} if country else None
        body = PaystackService._request("GET", "/bank", "Failed to fetch banks", params=params)
        return body.get("data") or []


class PaymentService:
    """Ties gateway results to orders."""

    @staticmethod
    def initialize_for_order(db: Session, order: Order, email: str, callback_url: Optional[str] = None) -> Dict[str, Any]:
        data = PaystackService.initialize_transaction(
            email=email,
            amount=order.total_amount,
            reference=order.payment_reference or None,
            metadata={"order_id": order.id, "order_number": order.order_number},
            callback_url=callback_url,
        )
        reference = data.get("reference")
        if reference:
            order.payment_reference = reference
            order.payment_status = PaymentStatus.PENDING.value
            order.payment_method = "paystack"
            db.commit()
            db.refresh(order)
        logger.info(f"Initialized Paystack transaction {reference} for order {order.id}")
        return data

    @staticmethod
    def _locate_order(db: Session, data: Dict[str, Any]) -> Optional[Order]:
        order_id = PaymentService._metadata_order_id(data)
        if order_id is not None:
            order = db.get(Order, order_id)
            if order is not None:
                return order
        reference = data.get("reference")
        return OrderService.find_by_reference(db, reference) if reference else None

    @staticmethod
    def _metadata_order_id(data: Dict[str, Any]) -> Optional[int]:
        metadata = data.get("metadata")
        if isinstance(metadata, str):
            try:
                metadata = json.loads(metadata)
            except ValueError:
                return None
        if not isinstance(metadata, dict) or metadata.get("order_id") is None:
            return None
        try:
            return int(metadata["order_id"])
        except (TypeError, ValueError):
            return None

    @staticmethod
    def payment_mismatch(data: Dict[str, Any], order: Order) -> Optional[str]:
        """Why a successful transaction cannot settle ``order``, or None when it can."""
        tagged = PaymentService._metadata_order_id(data)
        if tagged is not None and tagged != order.id:
            return "Transaction does not belong to this order"
        amount = data.get("amount") or 0
        if amount + AMOUNT_TOLERANCE < (order.total_amount or 0):
            return "Payment amount does not cover the order total"
        return None

    @staticmethod
    def verify_payment(db: Session, reference: str, user: User, order_id: Optional[int] = None):
        """
        Verify ``reference`` with Paystack and settle the caller's matching order.

        The order must belong to ``user`` (or ``user`` is an admin), the
        transaction must not be tagged for another order, and the amount
        must cover the order total.
        """
        order = None
        if order_id is not None:
            order = OrderService.get_order_for_user(db, order_id, user, action="pay for")

        data = PaystackService.verify_transaction(reference)
        if data.get("status") != "success":
            logger.warning(f"Paystack reference {reference} not successful: {data.get('status')}")
            return data, None

        if order is None:
            order = PaymentService._locate_order(db, data)
            if order is None:
                return data, None
            if order.user_id != user.id and not user.is_admin:
                raise AuthorizationError("Not authorized to pay for this order")

        mismatch = PaymentService.payment_mismatch(data, order)
        if mismatch:
            logger.warning(f"Paystack reference {reference} rejected for order {order.id}: {mismatch}")
            raise ValidationFailedError([mismatch], prefix=None)

        if order.payment_status != PaymentStatus.PAID.value:
            order = OrderService.mark_paid(db, order, payment_method="paystack", payment_reference=reference)
        return data, order

    @staticmethod
    def handle_webhook_event(db: Session, event: Dict[str, Any]) -> None:
        event_type = event.get("event")
        data = event.get("data") or {}
        reference = data.get("reference")

        if event_type == "charge.success":
            order = PaymentService._locate_order(db, data)
            if order is None:
                logger.warning(f"charge.success for unknown order, reference {reference}")
                return
            data = dict(data, amount=from_subunits(data.get("amount")))
            mismatch = PaymentService.payment_mismatch(data, order)
            if mismatch:
                logger.warning(f"charge.success {reference} ignored for order {order.id}: {mismatch}")
                return
            if order.payment_status != PaymentStatus.PAID.value:
                OrderService.mark_paid(db, order, payment_method="paystack", payment_reference=reference)
            logger.info(f"Payment successful: {reference} (order {order.id})")
        elif event_type == "charge.failed":
            order = PaymentService._locate_order(db, data)
            if order is not None and order.payment_status != PaymentStatus.PAID.value:
                OrderService.mark_payment_failed(db, order, payment_reference=reference)
            logger.info(f"Payment failed: {reference}")
        elif event_type in ("transfer.success", "transfer.failed"):
            logger.info(f"Transfer event {event_type}: {reference}")
        else:
            logger.info(f"Unhandled Paystack event: {event_type}")
