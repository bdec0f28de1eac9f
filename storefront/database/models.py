# Central models file to avoid circular imports

from .core import Base

from ..users.models import User, UserRole
from ..products.models import Product
from ..orders.models import Order, OrderStatus, PaymentStatus
from ..site_settings.models import Setting, SettingType

__all__ = [
    "Base",
    "User",
    "UserRole",
    "Product",
    "Order",
    "OrderStatus",
    "PaymentStatus",
    "Setting",
    "SettingType",
]
