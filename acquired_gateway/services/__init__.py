from .customers import CustomerService
from .gateway import PaymentGateway
from .orders import OrderService
from .payment_methods import PaymentMethodService
from .scheduler import ScheduleService
from .store import InMemoryStore

__all__ = [
    "CustomerService",
    "InMemoryStore",
    "OrderService",
    "PaymentGateway",
    "PaymentMethodService",
    "ScheduleService",
]
