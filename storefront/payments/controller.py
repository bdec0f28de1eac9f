import json
import logging
from typing import Optional

from fastapi import APIRouter, Request

from .service import PaymentService, PaystackService, verify_webhook_signature
from ..auth.service import CurrentUser
from ..core.cache import clear_cache
from ..core.exceptions import ValidationFailedError
from ..database.core import DbSession
from ..orders.service import OrderService
from ..schemas.payments import InitializePaymentRequest, PaymentVerificationResponse, VerifyPaymentRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments", tags=["payments"])

ORDERS_CACHE_TAG = "orders"


@router.post("/initialize")
def initialize_payment(data: InitializePaymentRequest, current_user: CurrentUser, db: DbSession):
    """Start a Paystack checkout for one of the caller's orders."""
    order = OrderService.get_order_for_user(db, data.order_id, current_user, action="pay for")
    transaction = PaymentService.initialize_for_order(db, order, current_user.email, data.callback_url)
    clear_cache(ORDERS_CACHE_TAG)
    return {
        "authorizationUrl": transaction.get("authorization_url"),
        "accessCode": transaction.get("access_code"),
        "reference": transaction.get("reference"),
    }


@router.post("/verify-paystack", response_model=PaymentVerificationResponse, response_model_exclude_none=True)
def verify_paystack_payment(data: VerifyPaymentRequest, current_user: CurrentUser, db: DbSession):
    if not data.reference:
        raise ValidationFailedError(["Payment reference is required"], prefix=None)

    transaction, order = PaymentService.verify_payment(db, data.reference, current_user, data.order_id)
    if transaction.get("status") != "success":
        raise ValidationFailedError(["Payment verification failed"], prefix=None)

    clear_cache(ORDERS_CACHE_TAG)
    return {
        "status": "success",
        "message": "Payment verified successfully",
        "data": {
            "reference": transaction.get("reference"),
            "amount": transaction.get("amount"),
            "currency": transaction.get("currency"),
            "channel": transaction.get("channel"),
            "paidAt": transaction.get("paid_at"),
            "customer": transaction.get("customer"),
            "orderId": order.id if order is not None else None,
        },
    }


@router.post("/paystack-webhook")
async def paystack_webhook(request: Request, db: DbSession):
    """Paystack event callback, authenticated by the request signature."""
    payload = await request.body()
    signature: Optional[str] = request.headers.get("x-paystack-signature")
    if not verify_webhook_signature(payload, signature):
        logger.warning("Rejected Paystack webhook with invalid signature")
        raise ValidationFailedError(["Invalid signature"], prefix=None)

    try:
        event = json.loads(payload)
    except ValueError:
        raise ValidationFailedError(["Invalid payload"], prefix=None)

    PaymentService.handle_webhook_event(db, event)
    clear_cache(ORDERS_CACHE_TAG)
    return {"status": "ok", "message": "Webhook received"}


@router.get("/paystack/banks")
def list_banks(country: Optional[str] = None):
    return {"success": True, "banks": PaystackService.list_banks(country)}
