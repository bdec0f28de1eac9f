from typing import Any, Dict, Optional

from .base import CamelModel


class InitializePaymentRequest(CamelModel):
    order_id: int
    callback_url: Optional[str] = None


class VerifyPaymentRequest(CamelModel):
    reference: Optional[str] = None
    order_id: Optional[int] = None


class PaymentVerificationResponse(CamelModel):
    status: str
    message: str
    data: Optional[Dict[str, Any]] = None
