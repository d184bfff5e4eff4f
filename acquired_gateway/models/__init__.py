from .incoming import DataType, IncomingData, RedirectData, WebhookData, WebhookType
from .order import Customer, Order, OrderState, OrderStatus, PaymentToken

__all__ = [
    "DataType", "IncomingData", "RedirectData", "WebhookData", "WebhookType",
    "Customer", "Order", "OrderState", "OrderStatus", "PaymentToken",
]
